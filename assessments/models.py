# examdesk_platform/assessments/models.py
import uuid
from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone

from exams.models import Exam, Question, Option
from exams.shuffling import CURRENT_SHUFFLE_VERSION


class ExamAttempt(models.Model):
    """One student's sitting of one exam."""

    class Status(models.TextChoices):
        ONGOING = "ongoing", "Ongoing"
        SUBMITTED = "submitted", "Submitted"
        ABANDONED = "abandoned", "Abandoned"
        EXPIRED = "expired", "Expired"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='attempts')
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='exam_attempts')
    attempt_number = models.PositiveIntegerField(default=1)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ONGOING)

    start_time = models.DateTimeField(default=timezone.now)
    end_time = models.DateTimeField(null=True, blank=True)  # When they submitted
    total_time_spent = models.PositiveIntegerField(null=True, blank=True, help_text="Seconds, as reported by the client")

    # Snapshot of the exam policy at start time
    duration_minutes = models.PositiveIntegerField()
    total_marks = models.PositiveIntegerField(default=0)
    passing_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=50)
    negative_marking = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)

    # Option shuffling in force for this paper; null falls back to the platform setting
    shuffle_options = models.BooleanField(null=True, blank=True)
    shuffle_version = models.PositiveSmallIntegerField(default=CURRENT_SHUFFLE_VERSION)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-start_time']
        constraints = [
            models.UniqueConstraint(
                fields=['exam', 'student', 'attempt_number'],
                name='unique_attempt_number_per_student_exam',
            ),
        ]

    @property
    def deadline(self):
        return self.start_time + timedelta(minutes=self.duration_minutes)

    def is_time_over(self, now=None):
        return (now or timezone.now()) > self.deadline

    def time_remaining_seconds(self, now=None):
        if self.status != self.Status.ONGOING:
            return 0
        remaining = (self.deadline - (now or timezone.now())).total_seconds()
        return max(0, int(remaining))

    def option_shuffle_enabled(self, exam_settings):
        if self.shuffle_options is None:
            return exam_settings.shuffle_questions
        return self.shuffle_options

    def __str__(self):
        return f"{self.student} - {self.exam.title} #{self.attempt_number}"


class ExamAnswer(models.Model):
    attempt = models.ForeignKey(ExamAttempt, related_name='answers', on_delete=models.CASCADE)
    question = models.ForeignKey(Question, on_delete=models.CASCADE)

    # Raw answer as sent by the client: an index into the presented options,
    # or text (free text / option identity). Never both.
    selected_option = models.IntegerField(null=True, blank=True)
    answer_text = models.TextField(null=True, blank=True)

    # Grading
    resolved_option = models.ForeignKey(Option, null=True, blank=True, on_delete=models.SET_NULL)
    is_answered = models.BooleanField(default=False)
    is_correct = models.BooleanField(default=False)
    marks_obtained = models.DecimalField(max_digits=7, decimal_places=2, default=0)

    is_flagged = models.BooleanField(default=False)
    time_spent_seconds = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['attempt', 'question'], name='unique_answer_per_attempt_question'),
        ]

    def raw_payload(self):
        """The stored answer in the same shape the submit endpoint accepts."""
        return {'selectedOption': self.selected_option, 'answerText': self.answer_text}

    def __str__(self):
        return f"{self.attempt_id} / Q{self.question_id}"


class ExamResult(models.Model):
    class Status(models.TextChoices):
        PASS = "pass", "Pass"
        FAIL = "fail", "Fail"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # One result per attempt; the unique index also arbitrates concurrent submits
    attempt = models.OneToOneField(ExamAttempt, on_delete=models.CASCADE, related_name='result')
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='results')
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='exam_results')
    attempt_number = models.PositiveIntegerField(default=1)

    total_marks = models.PositiveIntegerField()
    obtained_marks = models.DecimalField(max_digits=8, decimal_places=2)
    percentage = models.DecimalField(max_digits=7, decimal_places=2)
    grade = models.CharField(max_length=2)
    correct_answers = models.PositiveIntegerField(default=0)
    incorrect_answers = models.PositiveIntegerField(default=0)
    unanswered = models.PositiveIntegerField(default=0)
    time_spent = models.PositiveIntegerField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=Status.choices)
    negative_marking_applied = models.DecimalField(max_digits=5, decimal_places=2)

    is_published = models.BooleanField(default=False)
    result_date = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-result_date']

    @property
    def passed(self):
        return self.status == self.Status.PASS

    def __str__(self):
        return f"{self.student} - {self.exam.title}: {self.percentage}% ({self.grade})"
