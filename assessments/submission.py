# examdesk_platform/assessments/submission.py
"""
Exam submission.

``ExamSubmissionService.submit`` turns an ongoing attempt into a graded,
persisted ``ExamResult``:

1. the attempt must belong to the caller (otherwise: not found);
2. an attempt that is already submitted returns its existing result;
3. grading of every answer, the attempt status flip and the result insert
   happen in one database transaction;
4. notifications, realtime events and the leaderboard run after commit and
   can never fail the submission.
"""
import logging
from dataclasses import dataclass

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from exams.models import Question
from exams.shuffling import resolve_option_order

from . import effects as submission_effects
from .grading import (
    ZERO,
    EmptyAnswer,
    GradeOutcome,
    compute_grade,
    compute_percentage,
    evaluate_status,
    grade_answer,
    is_supplied,
    parse_answer,
    resolve_negative_marking_rate,
    round_percentage,
    storage_fields,
)
from .models import ExamAnswer, ExamAttempt, ExamResult

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "An unexpected error occurred. Please try again."


class SubmissionError(Exception):
    status_code = 500

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class AttemptNotFound(SubmissionError):
    status_code = 404


class AttemptStateConflict(SubmissionError):
    status_code = 400


class SubmissionFailed(SubmissionError):
    status_code = 500


class _Preempted(Exception):
    """Another request submitted (or closed) the attempt while we were grading."""


@dataclass
class SubmissionOutcome:
    result: ExamResult
    already_submitted: bool = False


class ExamSubmissionService:
    def __init__(self, user, exam_settings, effects=None, clock=timezone.now):
        self.user = user
        self.exam_settings = exam_settings
        self.effects = submission_effects.DEFAULT_EFFECTS if effects is None else effects
        self.clock = clock

    def submit(self, attempt_id, answers=None, time_spent=None):
        answers = answers or {}
        logger.info(
            "Submission request received attempt=%s user=%s answers=%d",
            attempt_id, self.user.pk, len(answers),
        )

        attempt = self._load_attempt(attempt_id)

        if attempt.status != ExamAttempt.Status.ONGOING:
            return self._closed_attempt_outcome(attempt)

        if attempt.is_time_over(self.clock()):
            logger.info("Exam time expired for attempt=%s, accepting submission", attempt.pk)

        try:
            result = self._grade_and_persist(attempt, answers, time_spent)
        except _Preempted:
            attempt.refresh_from_db()
            existing = ExamResult.objects.filter(attempt=attempt).first()
            if existing is not None:
                logger.info("Concurrent submission detected for attempt=%s, returning result=%s", attempt.pk, existing.pk)
                return SubmissionOutcome(result=existing, already_submitted=True)
            return self._closed_attempt_outcome(attempt)
        except DatabaseError as exc:
            # Exception text stays in the log, never in the response
            logger.exception("Submission transaction rolled back for attempt=%s", attempt.pk)
            raise SubmissionFailed(GENERIC_FAILURE) from exc

        logger.info(
            "Result created result=%s attempt=%s obtained=%s percentage=%s status=%s",
            result.pk, attempt.pk, result.obtained_marks, result.percentage, result.status,
        )
        transaction.on_commit(lambda: submission_effects.run_effects(result, self.effects))
        return SubmissionOutcome(result=result)

    # --- Steps ---

    def _load_attempt(self, attempt_id):
        attempt = (
            ExamAttempt.objects.select_related('exam')
            .filter(pk=attempt_id, student=self.user)
            .first()
        )
        if attempt is None:
            # Logged for support only; the caller never learns whether it exists
            logger.info(
                "Attempt not found attempt=%s user=%s exists_for_other_user=%s",
                attempt_id, self.user.pk, ExamAttempt.objects.filter(pk=attempt_id).exists(),
            )
            raise AttemptNotFound("Exam attempt not found or you don't have permission to access it")
        return attempt

    def _closed_attempt_outcome(self, attempt):
        if attempt.status == ExamAttempt.Status.SUBMITTED:
            existing = ExamResult.objects.filter(attempt=attempt).first()
            if existing is not None:
                logger.info("Attempt=%s already submitted, returning result=%s", attempt.pk, existing.pk)
                return SubmissionOutcome(result=existing, already_submitted=True)

        logger.info("Rejected submission for attempt=%s in status %s", attempt.pk, attempt.status)
        raise AttemptStateConflict(
            f"This exam has already been {attempt.status}. You cannot submit it again.",
            details={'status': attempt.status, 'attemptId': str(attempt.pk)},
        )

    def _grade_and_persist(self, attempt, answers, time_spent):
        with transaction.atomic():
            locked = ExamAttempt.objects.select_for_update().get(pk=attempt.pk)
            if locked.status != ExamAttempt.Status.ONGOING:
                raise _Preempted()
            locked.exam = attempt.exam

            questions = {
                q.pk: q
                for q in Question.objects.filter(exam_id=locked.exam_id).prefetch_related('options')
            }
            stored = {a.question_id: a for a in ExamAnswer.objects.filter(attempt=locked)}
            rate = resolve_negative_marking_rate(locked.negative_marking)
            shuffle_enabled = locked.option_shuffle_enabled(self.exam_settings)

            submitted = self._collect_answers(locked, answers, questions, stored)
            for question_id in sorted(submitted, key=lambda qid: (questions[qid].sequence, qid)):
                question = questions[question_id]
                answer = submitted[question_id]
                outcome = self._grade_one(locked, question, answer, rate, shuffle_enabled)

                row = stored.get(question_id) or ExamAnswer(attempt=locked, question=question)
                for field, value in storage_fields(answer).items():
                    setattr(row, field, value)
                row.resolved_option_id = outcome.resolved_option_id
                row.is_answered = outcome.answered or (is_supplied(answer) and not question.is_gradable)
                row.is_correct = outcome.is_correct
                row.marks_obtained = outcome.marks_obtained
                row.save()

            totals = ExamAnswer.objects.filter(attempt=locked).aggregate(
                obtained=Sum('marks_obtained'),
                correct=Count('id', filter=Q(is_correct=True)),
                incorrect=Count('id', filter=Q(is_answered=True, is_correct=False)),
            )
            obtained = totals['obtained'] or ZERO
            correct = totals['correct']
            incorrect = totals['incorrect']
            unanswered = max(len(questions) - correct - incorrect, 0)

            percentage = compute_percentage(obtained, locked.total_marks)
            status = evaluate_status(percentage, locked.passing_percentage)
            grade = compute_grade(percentage)

            now = self.clock()
            locked.status = ExamAttempt.Status.SUBMITTED
            locked.end_time = now
            locked.total_time_spent = time_spent
            locked.save(update_fields=['status', 'end_time', 'total_time_spent', 'updated_at'])

            try:
                with transaction.atomic():
                    result = ExamResult.objects.create(
                        attempt=locked,
                        exam_id=locked.exam_id,
                        student_id=locked.student_id,
                        attempt_number=locked.attempt_number,
                        total_marks=locked.total_marks,
                        obtained_marks=obtained,
                        percentage=round_percentage(percentage),
                        grade=grade,
                        correct_answers=correct,
                        incorrect_answers=incorrect,
                        unanswered=unanswered,
                        time_spent=time_spent,
                        status=status,
                        negative_marking_applied=rate,
                        is_published=self.exam_settings.show_results_immediately,
                        result_date=now,
                    )
            except IntegrityError:
                if ExamResult.objects.filter(attempt_id=locked.pk).exists():
                    raise _Preempted()
                raise

        return result

    def _collect_answers(self, attempt, answers, questions, stored):
        """
        Merge the payload with answers saved earlier during the exam.
        Payload entries win; keys that are not questions of this exam are dropped.
        """
        collected = {}
        for question_id, row in stored.items():
            if question_id in questions:
                collected[question_id] = parse_answer(row.raw_payload())

        for raw_key, payload in answers.items():
            try:
                question_id = int(raw_key)
            except (TypeError, ValueError):
                question_id = None
            if question_id not in questions:
                logger.warning(
                    "Ignoring answer for question %r not in exam=%s (attempt=%s)",
                    raw_key, attempt.exam_id, attempt.pk,
                )
                continue
            collected[question_id] = parse_answer(payload)
        return collected

    def _grade_one(self, attempt, question, answer, rate, shuffle_enabled):
        if not question.is_gradable:
            return GradeOutcome(is_correct=False, marks_obtained=ZERO, resolved_option_id=None)

        options = list(question.options.all())
        presented = resolve_option_order(
            options,
            attempt.student_id,
            question.pk,
            shuffle_enabled and question.randomize_options,
            attempt_id=attempt.pk,
            version=attempt.shuffle_version,
        )
        correct_option_id = next((o.pk for o in presented if o.is_correct), None)
        if correct_option_id is None:
            logger.warning("Question %s has no correct option; answer left ungraded", question.pk)
            return GradeOutcome(is_correct=False, marks_obtained=ZERO, resolved_option_id=None)

        outcome = grade_answer(question.marks, correct_option_id, presented, answer, rate)

        if outcome.issue:
            logger.warning(
                "Answer could not be matched attempt=%s question=%s issue=%s answer=%r",
                attempt.pk, question.pk, outcome.issue, answer,
            )
        elif isinstance(answer, EmptyAnswer):
            logger.debug("Question %s skipped in attempt=%s", question.pk, attempt.pk)
        return outcome
