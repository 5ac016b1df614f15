# examdesk_platform/exams/serializers.py
from rest_framework import serializers
from .models import Exam, Question, Option, ExamCategory

# --- Helper Serializers ---

class OptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Option
        fields = ['id', 'text', 'sequence', 'is_correct']


class ExamCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ExamCategory
        fields = '__all__'


def build_options(question, options_text, correct_answer):
    """Create Option rows in the given order; the one matching correct_answer is correct."""
    correct = (correct_answer or '').strip().lower()
    for position, opt_text in enumerate(options_text):
        clean_text = opt_text.strip()
        if not clean_text:
            continue
        Option.objects.create(
            question=question,
            text=clean_text,
            sequence=position,
            is_correct=(clean_text.lower() == correct),
        )

# --- Question Serializers ---

class QuestionSerializer(serializers.ModelSerializer):
    # Map frontend 'question_text' to backend 'text'
    question_text = serializers.CharField(source='text')
    # Options arrive as an ordered list of strings; list order becomes option sequence
    options = serializers.ListField(child=serializers.CharField(), required=False, write_only=True)
    options_data = OptionSerializer(source='options', many=True, read_only=True)

    exam_title = serializers.CharField(source='exam.title', read_only=True)

    class Meta:
        model = Question
        fields = [
            'id', 'exam', 'exam_title', 'sequence', 'question_text', 'question_type',
            'category', 'difficulty', 'marks', 'randomize_options', 'correct_answer',
            'options', 'options_data'
        ]

    def validate(self, attrs):
        q_type = attrs.get('question_type', getattr(self.instance, 'question_type', Question.QuestionType.MCQ))
        options_text = attrs.get('options')
        if options_text is not None and q_type != Question.QuestionType.THEORY:
            correct = (attrs.get('correct_answer', getattr(self.instance, 'correct_answer', '')) or '').strip().lower()
            matches = [o for o in options_text if o.strip().lower() == correct]
            if len(matches) != 1:
                raise serializers.ValidationError(
                    {"correct_answer": "Exactly one option must match the correct answer."}
                )
        return attrs

    def create(self, validated_data):
        options_text = validated_data.pop('options', [])
        question = Question.objects.create(**validated_data)
        if options_text and question.is_gradable:
            build_options(question, options_text, validated_data.get('correct_answer', ''))
        return question

    def update(self, instance, validated_data):
        options_text = validated_data.pop('options', None)
        instance = super().update(instance, validated_data)
        if options_text is not None and instance.is_gradable:
            instance.options.all().delete()
            build_options(instance, options_text, instance.correct_answer)
        return instance

# --- Exam Serializers ---

class ExamSerializer(serializers.ModelSerializer):
    # Handle category as string (name) instead of ID
    category = serializers.CharField(source='category.name', required=False, allow_blank=True)
    total_questions = serializers.IntegerField(source='questions.count', read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'category', 'duration_minutes',
            'total_marks', 'passing_percentage', 'negative_marking',
            'is_active', 'total_questions'
        ]

    def _resolve_category(self, validated_data):
        cat_name = (validated_data.pop('category', None) or {}).get('name')
        if not cat_name:
            return None
        category_obj, _ = ExamCategory.objects.get_or_create(name=cat_name)
        return category_obj

    def create(self, validated_data):
        category_obj = self._resolve_category(validated_data)
        return Exam.objects.create(category=category_obj, **validated_data)

    def update(self, instance, validated_data):
        if 'category' in validated_data:
            instance.category = self._resolve_category(validated_data)
        return super().update(instance, validated_data)


class ExamListSerializer(serializers.ModelSerializer):
    category = serializers.CharField(source='category.name', read_only=True)
    total_questions = serializers.IntegerField(source='questions.count', read_only=True)

    class Meta:
        model = Exam
        fields = ['id', 'title', 'category', 'duration_minutes', 'total_marks', 'passing_percentage', 'total_questions']


class ExamDetailSerializer(ExamSerializer):
    """Detailed view for admins, answer key included"""
    questions = serializers.SerializerMethodField()

    class Meta(ExamSerializer.Meta):
        fields = ExamSerializer.Meta.fields + ['questions']

    def get_questions(self, obj):
        questions = obj.questions.order_by('sequence', 'id').prefetch_related('options')
        return QuestionSerializer(questions, many=True).data
