import csv
import io
import logging

from django.db import transaction
from rest_framework import viewsets, permissions, status, filters
from rest_framework.decorators import action
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.response import Response

from .models import Exam, Question, ExamCategory
from .serializers import (
    ExamSerializer, ExamDetailSerializer, ExamListSerializer,
    QuestionSerializer, ExamCategorySerializer, build_options,
)

logger = logging.getLogger(__name__)


class ExamViewSet(viewsets.ModelViewSet):
    queryset = Exam.objects.all().order_by('-created_at')

    filter_backends = [filters.SearchFilter]
    search_fields = ['title', 'category__name']

    def get_queryset(self):
        queryset = super().get_queryset()
        # Students only ever see published exams
        if not self.request.user.is_staff:
            queryset = queryset.filter(is_active=True)
        return queryset

    def get_serializer_class(self):
        if not self.request.user.is_staff:
            return ExamListSerializer
        if self.action == 'retrieve':
            return ExamDetailSerializer
        return ExamSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve']:
            return [permissions.IsAuthenticated()]
        return [permissions.IsAdminUser()]

    @action(detail=True, methods=['post'], url_path='assign-questions')
    def assign_questions(self, request, pk=None):
        """
        Assigns a list of Question IDs to this Exam, in the given order.
        Payload: { "question_ids": [1, 2, 3] }
        """
        exam = self.get_object()
        question_ids = request.data.get('question_ids', [])

        start = exam.questions.count()
        count = 0
        with transaction.atomic():
            for offset, question_id in enumerate(question_ids):
                count += Question.objects.filter(id=question_id).update(exam=exam, sequence=start + offset)

        return Response({"status": f"Added {count} questions to {exam.title}"})

    @action(detail=True, methods=['post'], url_path='remove-questions')
    def remove_questions(self, request, pk=None):
        """
        Removes questions from the exam (sets exam=None), returning them to the bank.
        """
        question_ids = request.data.get('question_ids', [])
        Question.objects.filter(id__in=question_ids, exam=self.get_object()).update(exam=None, sequence=0)
        return Response({"status": "Questions returned to bank"})


class QuestionViewSet(viewsets.ModelViewSet):
    queryset = Question.objects.all().prefetch_related('options').order_by('-id')
    serializer_class = QuestionSerializer
    permission_classes = [permissions.IsAdminUser]

    filter_backends = [filters.SearchFilter]
    search_fields = ['text', 'category']

    def get_queryset(self):
        queryset = super().get_queryset()
        # Filter by Exam if provided ?exam_id=1
        exam_id = self.request.query_params.get('exam_id')
        if exam_id:
            queryset = queryset.filter(exam_id=exam_id).order_by('sequence', 'id')
        return queryset

    @action(detail=False, methods=['post'], url_path='bulk-upload', parser_classes=[MultiPartParser, FormParser])
    def bulk_upload(self, request):
        """
        Upload questions via CSV.
        Expected CSV Header: question_text, question_type, category, difficulty, marks, options, correct_answer
        Options are separated by '|' and keep their column order as sequence.
        Optional form field exam_id attaches the questions to an exam.
        """
        file_obj = request.FILES.get('file')
        if not file_obj:
            return Response({"error": "No file uploaded"}, status=status.HTTP_400_BAD_REQUEST)

        exam = None
        exam_id = request.data.get('exam_id')
        if exam_id:
            exam = Exam.objects.filter(id=exam_id).first()
            if exam is None:
                return Response({"error": "Exam not found"}, status=status.HTTP_404_NOT_FOUND)

        try:
            decoded_file = file_obj.read().decode('utf-8')
            reader = csv.DictReader(io.StringIO(decoded_file))

            created_count = 0
            next_sequence = exam.questions.count() if exam else 0

            with transaction.atomic():
                for row in reader:
                    question = Question.objects.create(
                        exam=exam,
                        sequence=next_sequence + created_count if exam else 0,
                        text=row['question_text'],
                        question_type=(row.get('question_type') or 'mcq').lower(),
                        category=row.get('category') or 'General',
                        difficulty=(row.get('difficulty') or 'medium').lower(),
                        marks=int(row.get('marks') or 1),
                        correct_answer=(row.get('correct_answer') or '').strip(),
                    )

                    if question.is_gradable:
                        build_options(question, (row.get('options') or '').split('|'), question.correct_answer)

                    created_count += 1

            return Response({"status": f"Successfully uploaded {created_count} questions"}, status=status.HTTP_201_CREATED)

        except (KeyError, ValueError, UnicodeDecodeError) as e:
            logger.warning("Question bulk upload rejected: %s", e)
            return Response({"error": f"Invalid CSV: {e}"}, status=status.HTTP_400_BAD_REQUEST)


class CategoryViewSet(viewsets.ModelViewSet):
    queryset = ExamCategory.objects.all()
    serializer_class = ExamCategorySerializer
    permission_classes = [permissions.IsAdminUser]
