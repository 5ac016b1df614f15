from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import requests
from django.contrib.auth import get_user_model
from django.core import mail
from django.db import DatabaseError
from django.test import TestCase, override_settings

from cores.models import ExamSettings
from exams.models import Exam, Question, Option
from notifications.models import Notification
from assessments.attempts import build_exam_paper, start_or_resume_attempt
from assessments.models import ExamAnswer, ExamAttempt, ExamResult
from assessments.submission import (
    AttemptNotFound,
    AttemptStateConflict,
    ExamSubmissionService,
    SubmissionFailed,
)

User = get_user_model()

CORRECT = {'selectedOption': 1}
WRONG = {'selectedOption': 0}


class SubmissionFixtureMixin:
    exam_settings = ExamSettings(shuffle_questions=False, show_results_immediately=True)

    def make_student(self, username='student', **extra):
        return User.objects.create_user(
            username=username, email=f'{username}@example.com', password='testpass123', **extra
        )

    def make_exam(self, question_marks=(5, 5), negative_marking=None, passing='50', randomize=False):
        exam = Exam.objects.create(
            title='Algebra',
            duration_minutes=30,
            total_marks=sum(question_marks),
            passing_percentage=Decimal(passing),
            negative_marking=negative_marking,
            is_active=True,
        )
        questions = []
        for position, marks in enumerate(question_marks):
            question = Question.objects.create(
                exam=exam, sequence=position, text=f'Q{position + 1}', marks=marks, randomize_options=randomize,
            )
            for seq, text in enumerate(['A', 'B', 'C', 'D']):
                Option.objects.create(question=question, text=text, sequence=seq, is_correct=(text == 'B'))
            questions.append(question)
        return exam, questions

    def start(self, student, exam, exam_settings=None):
        attempt, _ = start_or_resume_attempt(student, exam, exam_settings or self.exam_settings)
        return attempt

    def service(self, student, exam_settings=None, effects=(), **kwargs):
        return ExamSubmissionService(student, exam_settings or self.exam_settings, effects=effects, **kwargs)


class ScoringScenarioTestCase(SubmissionFixtureMixin, TestCase):
    def setUp(self):
        self.student = self.make_student()
        self.exam, (self.q1, self.q2) = self.make_exam()
        self.attempt = self.start(self.student, self.exam)

    def submit(self, answers, **kwargs):
        return self.service(self.student, **kwargs).submit(self.attempt.pk, answers, time_spent=600)

    def test_correct_and_wrong_answer(self):
        outcome = self.submit({str(self.q1.id): CORRECT, str(self.q2.id): WRONG})
        result = ExamResult.objects.get(pk=outcome.result.pk)

        self.assertFalse(outcome.already_submitted)
        self.assertEqual(result.obtained_marks, Decimal('4.75'))
        self.assertEqual(result.total_marks, 10)
        self.assertEqual(result.percentage, Decimal('47.5'))
        self.assertEqual(result.status, 'fail')
        self.assertEqual(result.grade, 'D')
        self.assertEqual(result.correct_answers, 1)
        self.assertEqual(result.incorrect_answers, 1)
        self.assertEqual(result.unanswered, 0)
        self.assertEqual(result.time_spent, 600)
        self.assertEqual(result.negative_marking_applied, Decimal('0.25'))

    def test_skip_is_not_penalised(self):
        outcome = self.submit({str(self.q1.id): CORRECT})
        result = ExamResult.objects.get(pk=outcome.result.pk)

        self.assertEqual(result.obtained_marks, Decimal('5'))
        self.assertEqual(result.percentage, Decimal('50'))
        self.assertEqual(result.status, 'pass')
        self.assertEqual(result.grade, 'C')
        self.assertEqual(result.unanswered, 1)
        self.assertEqual(result.incorrect_answers, 0)

    def test_explicit_zero_negative_marking(self):
        self.attempt.negative_marking = Decimal('0')
        self.attempt.save()
        outcome = self.submit({str(self.q1.id): CORRECT, str(self.q2.id): WRONG})
        result = ExamResult.objects.get(pk=outcome.result.pk)
        self.assertEqual(result.obtained_marks, Decimal('5'))
        self.assertEqual(result.status, 'pass')
        self.assertEqual(result.negative_marking_applied, Decimal('0'))

    def test_obtained_marks_equal_sum_of_answer_marks(self):
        outcome = self.submit({str(self.q1.id): WRONG, str(self.q2.id): {'selectedOption': 3}})
        result = ExamResult.objects.get(pk=outcome.result.pk)
        answer_total = sum(a.marks_obtained for a in ExamAnswer.objects.filter(attempt=self.attempt))
        self.assertEqual(result.obtained_marks, answer_total)
        self.assertEqual(result.obtained_marks, Decimal('-0.5'))

    def test_attempt_marked_submitted(self):
        self.submit({str(self.q1.id): CORRECT})
        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.status, ExamAttempt.Status.SUBMITTED)
        self.assertIsNotNone(self.attempt.end_time)
        self.assertEqual(self.attempt.total_time_spent, 600)

    def test_answer_rows_record_raw_and_resolved_answer(self):
        self.submit({str(self.q1.id): CORRECT, str(self.q2.id): {'selectedOption': str(self.q2.options.get(text='C').id)}})
        first = ExamAnswer.objects.get(attempt=self.attempt, question=self.q1)
        second = ExamAnswer.objects.get(attempt=self.attempt, question=self.q2)

        self.assertEqual(first.selected_option, 1)
        self.assertEqual(first.resolved_option.text, 'B')
        self.assertTrue(first.is_correct)
        self.assertIsNone(second.selected_option)
        self.assertEqual(second.resolved_option.text, 'C')
        self.assertTrue(second.is_answered)
        self.assertFalse(second.is_correct)

    def test_out_of_range_index_counts_as_unanswered(self):
        with self.assertLogs('assessments.submission', level='WARNING') as logs:
            outcome = self.submit({str(self.q1.id): CORRECT, str(self.q2.id): {'selectedOption': 7}})
        result = ExamResult.objects.get(pk=outcome.result.pk)

        self.assertEqual(result.obtained_marks, Decimal('5'))
        self.assertEqual(result.unanswered, 1)
        self.assertTrue(any('index_out_of_range' in line for line in logs.output))

    def test_unknown_option_identity_is_a_wrong_answer(self):
        with self.assertLogs('assessments.submission', level='WARNING') as logs:
            outcome = self.submit({str(self.q1.id): CORRECT, str(self.q2.id): {'selectedOption': '999999'}})
        result = ExamResult.objects.get(pk=outcome.result.pk)
        row = ExamAnswer.objects.get(attempt=self.attempt, question=self.q2)

        self.assertEqual(result.obtained_marks, Decimal('4.75'))
        self.assertEqual(result.incorrect_answers, 1)
        self.assertEqual(result.unanswered, 0)
        self.assertTrue(row.is_answered)
        self.assertFalse(row.is_correct)
        self.assertIsNone(row.resolved_option)
        self.assertEqual(row.marks_obtained, Decimal('-0.25'))
        self.assertTrue(any('unknown_option' in line for line in logs.output))

    def test_answers_outside_the_exam_are_ignored(self):
        other_exam, (foreign,) = self.make_exam(question_marks=(3,))
        outcome = self.submit({
            str(self.q1.id): CORRECT,
            str(foreign.id): CORRECT,
            'not-a-number': CORRECT,
        })
        result = ExamResult.objects.get(pk=outcome.result.pk)
        self.assertEqual(result.obtained_marks, Decimal('5'))
        self.assertFalse(ExamAnswer.objects.filter(question=foreign).exists())

    def test_autosaved_answers_are_graded(self):
        ExamAnswer.objects.create(attempt=self.attempt, question=self.q2, selected_option=1)
        outcome = self.submit({str(self.q1.id): CORRECT})
        result = ExamResult.objects.get(pk=outcome.result.pk)
        self.assertEqual(result.obtained_marks, Decimal('10'))
        self.assertEqual(result.grade, 'A+')

    def test_payload_overrides_autosaved_answer(self):
        ExamAnswer.objects.create(attempt=self.attempt, question=self.q1, selected_option=1)
        outcome = self.submit({str(self.q1.id): WRONG})
        self.assertEqual(ExamResult.objects.get(pk=outcome.result.pk).obtained_marks, Decimal('-0.25'))
        self.assertEqual(ExamAnswer.objects.get(attempt=self.attempt, question=self.q1).selected_option, 0)

    def test_late_submission_is_accepted(self):
        late = self.attempt.start_time + timedelta(hours=2)
        outcome = self.submit({str(self.q1.id): CORRECT}, clock=lambda: late)
        self.assertEqual(outcome.result.result_date, late)

    def test_publication_follows_settings(self):
        hidden = ExamSettings(shuffle_questions=False, show_results_immediately=False)
        outcome = self.submit({}, exam_settings=hidden)
        result = ExamResult.objects.get(pk=outcome.result.pk)
        self.assertFalse(result.is_published)
        self.assertEqual(result.unanswered, 2)
        self.assertEqual(result.obtained_marks, Decimal('0'))


class NonGradableQuestionTestCase(SubmissionFixtureMixin, TestCase):
    def test_free_text_answer_is_answered_but_not_correct(self):
        student = self.make_student()
        exam, (mcq,) = self.make_exam(question_marks=(5,))
        theory = Question.objects.create(
            exam=exam, sequence=1, text='Explain.', question_type=Question.QuestionType.THEORY, marks=5,
        )
        exam.total_marks = 10
        exam.save()
        attempt = self.start(student, exam)

        outcome = self.service(student).submit(attempt.pk, {
            str(mcq.id): CORRECT,
            str(theory.id): {'answerText': 'Because of gravity.'},
        })
        result = ExamResult.objects.get(pk=outcome.result.pk)

        self.assertEqual(result.obtained_marks, Decimal('5'))
        self.assertEqual(result.correct_answers, 1)
        self.assertEqual(result.incorrect_answers, 1)
        self.assertEqual(result.unanswered, 0)
        essay = ExamAnswer.objects.get(attempt=attempt, question=theory)
        self.assertEqual(essay.answer_text, 'Because of gravity.')
        self.assertEqual(essay.marks_obtained, Decimal('0'))


class ShuffledPaperTestCase(SubmissionFixtureMixin, TestCase):
    def test_presented_index_is_graded_against_the_same_order(self):
        student = self.make_student()
        exam, questions = self.make_exam(question_marks=(1, 1, 1, 1), randomize=True)
        shuffled = ExamSettings(shuffle_questions=True, show_results_immediately=True)
        attempt = self.start(student, exam, shuffled)

        answers = {}
        for item in build_exam_paper(attempt, shuffled):
            correct_index = next(o['index'] for o in item['options'] if o['text'] == 'B')
            answers[str(item['id'])] = {'selectedOption': correct_index}

        outcome = self.service(student, shuffled).submit(attempt.pk, answers)
        result = ExamResult.objects.get(pk=outcome.result.pk)
        self.assertEqual(result.correct_answers, 4)
        self.assertEqual(result.obtained_marks, Decimal('4'))

    def test_paper_order_is_stable_across_requests(self):
        student = self.make_student()
        exam, _ = self.make_exam(question_marks=(1, 1), randomize=True)
        shuffled = ExamSettings(shuffle_questions=True)
        attempt = self.start(student, exam, shuffled)
        self.assertEqual(build_exam_paper(attempt, shuffled), build_exam_paper(attempt, shuffled))

    def test_attempt_keeps_shuffle_flag_from_start(self):
        student = self.make_student()
        exam, _ = self.make_exam(question_marks=(1,), randomize=True)
        attempt = self.start(student, exam, ExamSettings(shuffle_questions=True))
        # Turning shuffling off later must not change papers already handed out
        self.assertTrue(attempt.option_shuffle_enabled(ExamSettings(shuffle_questions=False)))


class IdempotencyTestCase(SubmissionFixtureMixin, TestCase):
    def setUp(self):
        self.student = self.make_student()
        self.exam, (self.q1, self.q2) = self.make_exam()
        self.attempt = self.start(self.student, self.exam)

    def test_second_submit_returns_same_result(self):
        first = self.service(self.student).submit(self.attempt.pk, {str(self.q1.id): CORRECT})
        second = self.service(self.student).submit(self.attempt.pk, {str(self.q1.id): WRONG, str(self.q2.id): CORRECT})

        self.assertTrue(second.already_submitted)
        self.assertEqual(second.result.pk, first.result.pk)
        self.assertEqual(ExamResult.objects.filter(attempt=self.attempt).count(), 1)
        # Not re-graded
        self.assertEqual(ExamResult.objects.get(attempt=self.attempt).obtained_marks, Decimal('5'))

    def test_duplicate_result_insert_returns_existing_result(self):
        existing = ExamResult.objects.create(
            attempt=self.attempt,
            exam=self.exam,
            student=self.student,
            total_marks=10,
            obtained_marks=Decimal('10'),
            percentage=Decimal('100'),
            grade='A+',
            status='pass',
            negative_marking_applied=Decimal('0.25'),
        )
        outcome = self.service(self.student).submit(self.attempt.pk, {str(self.q1.id): WRONG})

        self.assertTrue(outcome.already_submitted)
        self.assertEqual(outcome.result.pk, existing.pk)
        self.assertEqual(ExamResult.objects.filter(attempt=self.attempt).count(), 1)
        self.assertFalse(ExamAnswer.objects.filter(attempt=self.attempt).exists())

    def test_abandoned_attempt_is_a_conflict(self):
        self.attempt.status = ExamAttempt.Status.ABANDONED
        self.attempt.save()
        with self.assertRaises(AttemptStateConflict) as ctx:
            self.service(self.student).submit(self.attempt.pk, {})
        self.assertEqual(ctx.exception.details, {'status': 'abandoned', 'attemptId': str(self.attempt.pk)})
        self.assertIn('abandoned', ctx.exception.message)

    def test_other_students_attempt_is_not_found(self):
        intruder = self.make_student('intruder')
        with self.assertRaises(AttemptNotFound):
            self.service(intruder).submit(self.attempt.pk, {str(self.q1.id): CORRECT})
        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.status, ExamAttempt.Status.ONGOING)


class RollbackTestCase(SubmissionFixtureMixin, TestCase):
    def test_failed_result_insert_rolls_everything_back(self):
        student = self.make_student()
        exam, (q1, q2) = self.make_exam()
        attempt = self.start(student, exam)
        ExamAnswer.objects.create(attempt=attempt, question=q1, selected_option=0)

        with patch.object(ExamResult.objects, 'create', side_effect=DatabaseError('connection lost')):
            with self.assertRaises(SubmissionFailed):
                self.service(student).submit(attempt.pk, {str(q1.id): CORRECT, str(q2.id): CORRECT})

        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ExamAttempt.Status.ONGOING)
        self.assertIsNone(attempt.end_time)
        self.assertFalse(ExamResult.objects.exists())
        saved = ExamAnswer.objects.get(attempt=attempt, question=q1)
        self.assertEqual(saved.selected_option, 0)
        self.assertEqual(saved.marks_obtained, Decimal('0'))
        self.assertFalse(ExamAnswer.objects.filter(attempt=attempt, question=q2).exists())

        # Retrying after the failure succeeds
        outcome = self.service(student).submit(attempt.pk, {str(q1.id): CORRECT, str(q2.id): CORRECT})
        self.assertEqual(outcome.result.obtained_marks, Decimal('10'))

    @override_settings(DEBUG=True)
    def test_failure_never_carries_exception_text(self):
        student = self.make_student()
        exam, (q1, _) = self.make_exam()
        attempt = self.start(student, exam)

        with patch.object(ExamResult.objects, 'create', side_effect=DatabaseError('relation "secret" does not exist')):
            with self.assertLogs('assessments.submission', level='ERROR'):
                with self.assertRaises(SubmissionFailed) as ctx:
                    self.service(student).submit(attempt.pk, {str(q1.id): CORRECT})

        self.assertIsNone(ctx.exception.details)
        self.assertNotIn('secret', ctx.exception.message)


class SideEffectTestCase(SubmissionFixtureMixin, TestCase):
    def setUp(self):
        self.student = self.make_student(phone_number='+2348000000000', first_name='Ada', last_name='Obi')
        self.exam, (self.q1, _) = self.make_exam()
        self.attempt = self.start(self.student, self.exam)

    def test_failing_effect_does_not_stop_the_others(self):
        calls = []

        def broken(result):
            raise RuntimeError('gateway down')

        def recorder(result):
            calls.append(result.pk)

        service = self.service(self.student, effects=[broken, recorder])
        with self.assertLogs('assessments.effects', level='ERROR'):
            with self.captureOnCommitCallbacks(execute=True):
                outcome = service.submit(self.attempt.pk, {str(self.q1.id): CORRECT})

        self.assertEqual(calls, [outcome.result.pk])
        self.assertTrue(ExamResult.objects.filter(pk=outcome.result.pk).exists())

    def test_effects_wait_for_commit(self):
        calls = []
        service = self.service(self.student, effects=[lambda result: calls.append(result.pk)])
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            service.submit(self.attempt.pk, {})
        self.assertEqual(calls, [])
        self.assertEqual(len(callbacks), 1)

    @override_settings(SMS_GATEWAY_URL='http://sms.test/send', REALTIME_GATEWAY_URL='http://realtime.test')
    @patch('requests.post', side_effect=requests.ConnectionError('unreachable'))
    def test_default_effects_survive_gateway_outage(self, mock_post):
        service = ExamSubmissionService(self.student, self.exam_settings)
        with self.captureOnCommitCallbacks(execute=True):
            outcome = service.submit(self.attempt.pk, {str(self.q1.id): CORRECT})

        # SMS, submission event, leaderboard broadcast
        self.assertEqual(mock_post.call_count, 3)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('Algebra', mail.outbox[0].subject)
        notification = Notification.objects.get(user=self.student)
        self.assertEqual(notification.kind, Notification.Kind.EXAM_RESULT)
        self.assertTrue(ExamResult.objects.filter(pk=outcome.result.pk).exists())

    @patch('notifications.realtime.publish_event')
    def test_leaderboard_broadcast_for_unpublished_result(self, mock_publish):
        hidden = ExamSettings(shuffle_questions=False, show_results_immediately=False)
        service = ExamSubmissionService(self.student, hidden)
        with self.captureOnCommitCallbacks(execute=True):
            outcome = service.submit(self.attempt.pk, {str(self.q1.id): CORRECT})

        self.assertFalse(outcome.result.is_published)
        events = [c.args[0] for c in mock_publish.call_args_list]
        self.assertIn('leaderboard:update', events)
        payload = next(c.args[1] for c in mock_publish.call_args_list if c.args[0] == 'leaderboard:update')
        self.assertEqual(payload['all_time'], [])
