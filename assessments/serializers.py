# examdesk_platform/assessments/serializers.py
from rest_framework import serializers

from exams.serializers import ExamListSerializer
from .models import ExamAttempt, ExamAnswer, ExamResult


# --- Request payloads ---

class SubmitExamSerializer(serializers.Serializer):
    attemptId = serializers.UUIDField()
    # { "<questionId>": {"selectedOption": 2} | {"answerText": "..."} }
    answers = serializers.DictField(child=serializers.JSONField(allow_null=True), required=False, default=dict)
    timeSpent = serializers.IntegerField(required=False, allow_null=True, min_value=0)


class SaveAnswerSerializer(serializers.Serializer):
    questionId = serializers.IntegerField()
    selectedOption = serializers.JSONField(required=False, allow_null=True)
    answerText = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    isFlagged = serializers.BooleanField(required=False, default=False)
    timeSpent = serializers.IntegerField(required=False, default=0, min_value=0)


# --- Responses ---

class SubmittedResultSerializer(serializers.ModelSerializer):
    """Shape returned by the submit endpoint (camelCase, as the exam client expects)."""
    totalMarks = serializers.IntegerField(source='total_marks')
    obtainedMarks = serializers.FloatField(source='obtained_marks')
    percentage = serializers.FloatField()
    correctAnswers = serializers.IntegerField(source='correct_answers')
    incorrectAnswers = serializers.IntegerField(source='incorrect_answers')
    timeSpent = serializers.IntegerField(source='time_spent')

    class Meta:
        model = ExamResult
        fields = [
            'id', 'totalMarks', 'obtainedMarks', 'percentage', 'grade', 'status',
            'correctAnswers', 'incorrectAnswers', 'unanswered', 'timeSpent',
        ]


class ExamAnswerSerializer(serializers.ModelSerializer):
    question_text = serializers.CharField(source='question.text', read_only=True)

    class Meta:
        model = ExamAnswer
        fields = [
            'id', 'question', 'question_text', 'selected_option', 'answer_text', 'resolved_option',
            'is_answered', 'is_correct', 'marks_obtained', 'is_flagged',
        ]


class ExamResultSerializer(serializers.ModelSerializer):
    exam_title = serializers.CharField(source='exam.title', read_only=True)
    student_name = serializers.CharField(source='student.display_name', read_only=True)
    answers = serializers.SerializerMethodField()

    class Meta:
        model = ExamResult
        fields = [
            'id', 'attempt', 'exam', 'exam_title', 'student', 'student_name', 'attempt_number',
            'total_marks', 'obtained_marks', 'percentage', 'grade', 'status',
            'correct_answers', 'incorrect_answers', 'unanswered', 'time_spent',
            'negative_marking_applied', 'is_published', 'result_date', 'answers',
        ]

    def get_answers(self, obj):
        # Answer review only when the platform allows it (staff always see it)
        if not self.context.get('include_answers'):
            return None
        answers = obj.attempt.answers.select_related('question').order_by('question__sequence', 'question_id')
        return ExamAnswerSerializer(answers, many=True).data


class ExamAttemptSerializer(serializers.ModelSerializer):
    """Lightweight serializer for lists / dashboard history."""
    exam = ExamListSerializer(read_only=True)
    result_id = serializers.SerializerMethodField()
    time_remaining_seconds = serializers.SerializerMethodField()

    class Meta:
        model = ExamAttempt
        fields = [
            'id', 'exam', 'attempt_number', 'status', 'start_time', 'end_time',
            'total_time_spent', 'duration_minutes', 'time_remaining_seconds', 'result_id',
        ]

    def get_result_id(self, obj):
        result = getattr(obj, 'result', None) if obj.status == ExamAttempt.Status.SUBMITTED else None
        return str(result.pk) if result else None

    def get_time_remaining_seconds(self, obj):
        return obj.time_remaining_seconds()
