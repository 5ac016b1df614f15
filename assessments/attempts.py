# examdesk_platform/assessments/attempts.py
import logging

from django.db import transaction
from django.utils import timezone

from exams.shuffling import CURRENT_SHUFFLE_VERSION, resolve_option_order

from .models import ExamAttempt

logger = logging.getLogger(__name__)


class AttemptPolicyError(Exception):
    """The student may not start another attempt right now."""


@transaction.atomic
def start_or_resume_attempt(user, exam, exam_settings, now=None):
    """
    Return ``(attempt, resumed)``.

    An ongoing attempt is resumed as is. Otherwise the attempt limit, retake
    permission and cooldown are enforced and a new attempt is created with a
    snapshot of the exam's marking policy.
    """
    now = now or timezone.now()

    # Lock the student's attempts on this exam so two tabs cannot both create one
    attempts = list(
        ExamAttempt.objects.select_for_update().filter(exam=exam, student=user).order_by('attempt_number')
    )

    for attempt in attempts:
        if attempt.status == ExamAttempt.Status.ONGOING:
            logger.info("Resuming attempt=%s for user=%s", attempt.pk, user.pk)
            return attempt, True

    submitted = [a for a in attempts if a.status == ExamAttempt.Status.SUBMITTED]
    if len(submitted) >= exam_settings.max_attempts_per_student:
        raise AttemptPolicyError(
            f"Maximum attempts ({exam_settings.max_attempts_per_student}) reached for this exam"
        )

    if submitted:
        if not exam_settings.allow_retake:
            raise AttemptPolicyError("Retake is not allowed for this exam.")

        finished_at = [a.end_time for a in submitted if a.end_time]
        if finished_at and exam_settings.retake_cooldown_days:
            days_since = (now - max(finished_at)).days
            if days_since < exam_settings.retake_cooldown_days:
                remaining = exam_settings.retake_cooldown_days - days_since
                raise AttemptPolicyError(f"You must wait {remaining} more day(s) before retaking this exam")

    next_number = max((a.attempt_number for a in attempts), default=0) + 1
    attempt = ExamAttempt.objects.create(
        exam=exam,
        student=user,
        attempt_number=next_number,
        start_time=now,
        duration_minutes=exam.duration_minutes,
        total_marks=exam.total_marks,
        passing_percentage=exam.passing_percentage,
        negative_marking=exam.negative_marking,
        shuffle_options=exam_settings.shuffle_questions,
        shuffle_version=CURRENT_SHUFFLE_VERSION,
    )
    logger.info("Started attempt=%s (#%s) exam=%s user=%s", attempt.pk, next_number, exam.pk, user.pk)
    return attempt, False


def build_exam_paper(attempt, exam_settings):
    """
    The questions of the attempt's exam with options in the order this
    student sees them. Correct flags are never included.
    """
    shuffle_enabled = attempt.option_shuffle_enabled(exam_settings)
    questions = attempt.exam.questions.order_by('sequence', 'id').prefetch_related('options')

    paper = []
    for question in questions:
        presented = resolve_option_order(
            list(question.options.all()),
            attempt.student_id,
            question.pk,
            shuffle_enabled and question.randomize_options,
            attempt_id=attempt.pk,
            version=attempt.shuffle_version,
        )
        paper.append({
            'id': question.pk,
            'sequence': question.sequence,
            'text': question.text,
            'question_type': question.question_type,
            'marks': question.marks,
            'options': [
                {'index': index, 'id': option.pk, 'text': option.text}
                for index, option in enumerate(presented)
            ],
        })
    return paper
