# examdesk_platform/assessments/views.py
import logging

from django.shortcuts import get_object_or_404
from rest_framework import generics, permissions, status, views
from rest_framework.response import Response

from cores.models import AuditLog, PlatformSetting
from exams.models import Exam, Question
from exams.serializers import ExamListSerializer
from notifications.models import Notification
from notifications.services import create_notification

from .attempts import AttemptPolicyError, build_exam_paper, start_or_resume_attempt
from .grading import parse_answer, storage_fields
from .leaderboard import PERIODS, build_leaderboards, build_rankings
from .models import ExamAnswer, ExamAttempt, ExamResult
from .permissions import IsExamStaff, is_exam_staff
from .serializers import (
    ExamAttemptSerializer,
    ExamResultSerializer,
    SaveAnswerSerializer,
    SubmitExamSerializer,
    SubmittedResultSerializer,
)
from .submission import GENERIC_FAILURE, ExamSubmissionService, SubmissionError

logger = logging.getLogger(__name__)

INVALID_REQUEST = "Invalid request data. Please try again."


# --- STUDENT VIEWS ---

class StartExamView(views.APIView):
    """
    Student starts an exam, or resumes the attempt already in progress.
    Returns the attempt with the questions in the order this student sees them.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, exam_id):
        exam = get_object_or_404(Exam, id=exam_id, is_active=True)
        exam_settings = PlatformSetting.load().exam_settings()

        try:
            attempt, resumed = start_or_resume_attempt(request.user, exam, exam_settings)
        except AttemptPolicyError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_403_FORBIDDEN)

        data = ExamAttemptSerializer(attempt).data
        data['exam'] = ExamListSerializer(exam).data
        data['questions'] = build_exam_paper(attempt, exam_settings)
        data['is_resume'] = resumed
        return Response(data, status=status.HTTP_200_OK if resumed else status.HTTP_201_CREATED)


class SaveAnswerView(views.APIView):
    """Autosave a single answer while the exam is in progress. Nothing is graded here."""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, attempt_id):
        attempt = ExamAttempt.objects.filter(pk=attempt_id, student=request.user).first()
        if attempt is None:
            return Response({"error": "Invalid attempt"}, status=status.HTTP_404_NOT_FOUND)
        if attempt.status != ExamAttempt.Status.ONGOING:
            return Response({"error": "Exam already submitted"}, status=status.HTTP_400_BAD_REQUEST)

        serializer = SaveAnswerSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": INVALID_REQUEST, "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        data = serializer.validated_data

        question = Question.objects.filter(pk=data['questionId'], exam_id=attempt.exam_id).first()
        if question is None:
            return Response({"error": "Invalid question"}, status=status.HTTP_404_NOT_FOUND)

        answer = parse_answer({
            'selectedOption': data.get('selectedOption'),
            'answerText': data.get('answerText'),
        })
        defaults = storage_fields(answer)
        defaults.update({
            'is_flagged': data['isFlagged'],
            'time_spent_seconds': data['timeSpent'],
        })
        row, _ = ExamAnswer.objects.update_or_create(attempt=attempt, question=question, defaults=defaults)
        return Response({
            "success": True,
            "questionId": question.pk,
            "isFlagged": row.is_flagged,
            "timeRemaining": attempt.time_remaining_seconds(),
        })


class SubmitExamView(views.APIView):
    """
    Student submits the attempt. Grading and persistence happen in one
    transaction; a repeated submit returns the result already stored.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = SubmitExamSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": INVALID_REQUEST, "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        data = serializer.validated_data
        exam_settings = PlatformSetting.load().exam_settings()

        service = ExamSubmissionService(request.user, exam_settings)
        try:
            outcome = service.submit(data['attemptId'], data.get('answers') or {}, data.get('timeSpent'))
        except SubmissionError as exc:
            body = {"error": exc.message}
            if exc.details is not None:
                body["details"] = exc.details
            return Response(body, status=exc.status_code)
        except Exception:
            logger.exception("Unexpected error submitting attempt=%s", data['attemptId'])
            return Response({"error": GENERIC_FAILURE}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        result = outcome.result
        if outcome.already_submitted:
            return Response({
                "success": True,
                "resultId": str(result.pk),
                "alreadySubmitted": True,
                "message": "This exam has already been submitted.",
            })

        if result.is_published:
            return Response({
                "success": True,
                "resultId": str(result.pk),
                "showResults": True,
                "result": SubmittedResultSerializer(result).data,
            })

        return Response({
            "success": True,
            "resultId": str(result.pk),
            "showResults": False,
            "message": "Exam submitted successfully. Results will be published later.",
        })


class StudentExamAttemptsView(generics.ListAPIView):
    """List all exam attempts for the logged-in student (Lightweight)."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ExamAttemptSerializer

    def get_queryset(self):
        queryset = ExamAttempt.objects.filter(student=self.request.user).select_related('exam', 'result')
        exam_id = self.request.query_params.get('exam_id')
        if exam_id:
            queryset = queryset.filter(exam_id=exam_id)
        return queryset.order_by('-start_time')


class ExamResultDetailView(views.APIView):
    """A student sees their own result once published; staff see any result."""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        result = get_object_or_404(ExamResult.objects.select_related('exam', 'student', 'attempt'), pk=pk)
        staff = is_exam_staff(request.user)
        if not staff and result.student_id != request.user.pk:
            return Response({"error": "Result not found"}, status=status.HTTP_404_NOT_FOUND)

        if not result.is_published and not staff:
            return Response({
                "id": str(result.pk),
                "is_published": False,
                "message": "Results will be published later.",
            })

        exam_settings = PlatformSetting.load().exam_settings()
        context = {'include_answers': staff or exam_settings.allow_review_after_submission}
        return Response(ExamResultSerializer(result, context=context).data)


class LeaderboardView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        period = request.query_params.get('period')
        if period is None:
            return Response(build_leaderboards(current_user_id=request.user.pk))

        if period not in PERIODS:
            return Response(
                {"error": f"Invalid period. Choose one of: {', '.join(PERIODS)}"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response({
            "period": period,
            "rankings": build_rankings(period, current_user_id=request.user.pk),
        })


# --- ADMIN VIEWS ---

class PublishResultView(views.APIView):
    permission_classes = [IsExamStaff]

    def post(self, request, pk):
        result = get_object_or_404(ExamResult.objects.select_related('exam', 'student'), pk=pk)
        if result.is_published:
            return Response({"status": "Already published", "id": str(result.pk)})

        result.is_published = True
        result.save(update_fields=['is_published'])
        AuditLog.objects.create(
            actor=request.user,
            action='PUBLISH',
            target_model='ExamResult',
            target_object_id=str(result.pk),
            details=f'Published result of {result.student} for {result.exam.title}',
        )

        try:
            create_notification(
                user=result.student,
                kind=Notification.Kind.EXAM_RESULT,
                title=f"{result.exam.title}: result published",
                message=f"You scored {result.percentage}% (grade {result.grade}).",
                link=f"/results/{result.pk}",
            )
        except Exception:
            logger.exception("Could not notify student of published result=%s", result.pk)

        return Response({"status": "Published", "id": str(result.pk)})
