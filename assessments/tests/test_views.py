import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from cores.models import AuditLog, PlatformSetting
from notifications.models import Notification
from assessments.models import ExamAnswer, ExamAttempt, ExamResult
from assessments.tests.test_submission import CORRECT, WRONG, SubmissionFixtureMixin


class ExamFlowApiTestCase(SubmissionFixtureMixin, TestCase):
    def setUp(self):
        cache.clear()
        platform = PlatformSetting.load()
        platform.shuffle_questions = False
        platform.show_results_immediately = True
        platform.save()

        self.client = APIClient()
        self.student = self.make_student()
        self.exam, (self.q1, self.q2) = self.make_exam()
        self.client.force_authenticate(user=self.student)

    def start_exam(self):
        return self.client.post(f'/api/exams/{self.exam.id}/start/')

    def submit(self, attempt_id, answers, **extra):
        payload = {'attemptId': str(attempt_id), 'answers': answers, **extra}
        with self.captureOnCommitCallbacks(execute=True):
            return self.client.post('/api/exam-attempts/submit/', payload, format='json')

    # --- Start / resume ---

    def test_start_creates_attempt_with_paper(self):
        response = self.start_exam()
        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.data['is_resume'])
        self.assertEqual(response.data['attempt_number'], 1)
        self.assertEqual(len(response.data['questions']), 2)
        first = response.data['questions'][0]
        self.assertEqual([o['text'] for o in first['options']], ['A', 'B', 'C', 'D'])
        self.assertNotIn('is_correct', first['options'][0])
        self.assertGreater(response.data['time_remaining_seconds'], 0)

    def test_start_resumes_ongoing_attempt(self):
        first = self.start_exam()
        second = self.start_exam()
        self.assertEqual(second.status_code, 200)
        self.assertTrue(second.data['is_resume'])
        self.assertEqual(second.data['id'], first.data['id'])
        self.assertEqual(ExamAttempt.objects.count(), 1)

    def test_inactive_exam_cannot_be_started(self):
        self.exam.is_active = False
        self.exam.save()
        self.assertEqual(self.start_exam().status_code, 404)

    def test_retake_cooldown(self):
        attempt_id = self.start_exam().data['id']
        self.submit(attempt_id, {})
        response = self.start_exam()
        self.assertEqual(response.status_code, 403)
        self.assertIn('more day(s)', response.data['error'])

    def test_retake_after_cooldown(self):
        attempt_id = self.start_exam().data['id']
        self.submit(attempt_id, {})
        ExamAttempt.objects.filter(pk=attempt_id).update(end_time=timezone.now() - timedelta(days=8))
        response = self.start_exam()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['attempt_number'], 2)

    def test_retake_disabled(self):
        platform = PlatformSetting.load()
        platform.allow_retake = False
        platform.save()
        attempt_id = self.start_exam().data['id']
        self.submit(attempt_id, {})
        response = self.start_exam()
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['error'], 'Retake is not allowed for this exam.')

    def test_max_attempts(self):
        platform = PlatformSetting.load()
        platform.max_attempts_per_student = 1
        platform.save()
        attempt_id = self.start_exam().data['id']
        self.submit(attempt_id, {})
        response = self.start_exam()
        self.assertEqual(response.status_code, 403)
        self.assertIn('Maximum attempts (1)', response.data['error'])

    # --- Autosave ---

    def test_save_answer(self):
        attempt_id = self.start_exam().data['id']
        response = self.client.post(
            f'/api/exam-attempts/{attempt_id}/answers/',
            {'questionId': self.q1.id, 'selectedOption': 2, 'isFlagged': True, 'timeSpent': 12},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        saved = ExamAnswer.objects.get(attempt_id=attempt_id, question=self.q1)
        self.assertEqual(saved.selected_option, 2)
        self.assertTrue(saved.is_flagged)
        self.assertEqual(saved.time_spent_seconds, 12)

        # Same question again updates the row
        self.client.post(
            f'/api/exam-attempts/{attempt_id}/answers/',
            {'questionId': self.q1.id, 'selectedOption': 1},
            format='json',
        )
        self.assertEqual(ExamAnswer.objects.get(attempt_id=attempt_id, question=self.q1).selected_option, 1)

    def test_save_answer_rejects_foreign_question(self):
        attempt_id = self.start_exam().data['id']
        _, (foreign,) = self.make_exam(question_marks=(1,))
        response = self.client.post(
            f'/api/exam-attempts/{attempt_id}/answers/', {'questionId': foreign.id, 'selectedOption': 0}, format='json',
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['error'], 'Invalid question')

    def test_save_answer_after_submit(self):
        attempt_id = self.start_exam().data['id']
        self.submit(attempt_id, {})
        response = self.client.post(
            f'/api/exam-attempts/{attempt_id}/answers/', {'questionId': self.q1.id, 'selectedOption': 0}, format='json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'Exam already submitted')

    # --- Submit ---

    def test_submit_with_immediate_results(self):
        attempt_id = self.start_exam().data['id']
        response = self.submit(attempt_id, {str(self.q1.id): CORRECT, str(self.q2.id): WRONG}, timeSpent=300)

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['success'])
        self.assertTrue(response.data['showResults'])
        result = response.data['result']
        self.assertEqual(result['obtainedMarks'], 4.75)
        self.assertEqual(result['percentage'], 47.5)
        self.assertEqual(result['grade'], 'D')
        self.assertEqual(result['status'], 'fail')
        self.assertEqual(result['unanswered'], 0)
        self.assertEqual(result['timeSpent'], 300)
        self.assertEqual(response.data['resultId'], result['id'])

    def test_submit_with_deferred_results(self):
        platform = PlatformSetting.load()
        platform.show_results_immediately = False
        platform.save()
        attempt_id = self.start_exam().data['id']
        response = self.submit(attempt_id, {str(self.q1.id): CORRECT})

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data['showResults'])
        self.assertNotIn('result', response.data)
        self.assertEqual(response.data['message'], 'Exam submitted successfully. Results will be published later.')

    def test_submit_twice_is_idempotent(self):
        attempt_id = self.start_exam().data['id']
        first = self.submit(attempt_id, {str(self.q1.id): CORRECT})
        second = self.submit(attempt_id, {str(self.q1.id): CORRECT})
        self.assertEqual(second.status_code, 200)
        self.assertTrue(second.data['alreadySubmitted'])
        self.assertEqual(second.data['resultId'], first.data['resultId'])
        self.assertEqual(ExamResult.objects.count(), 1)

    def test_submit_unknown_attempt(self):
        response = self.submit(uuid.uuid4(), {})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['error'], "Exam attempt not found or you don't have permission to access it")

    def test_submit_invalid_payload(self):
        response = self.client.post(
            '/api/exam-attempts/submit/', {'attemptId': 'not-a-uuid', 'answers': []}, format='json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'Invalid request data. Please try again.')
        self.assertIn('attemptId', response.data['details'])

    def test_submit_abandoned_attempt(self):
        attempt_id = self.start_exam().data['id']
        ExamAttempt.objects.filter(pk=attempt_id).update(status=ExamAttempt.Status.ABANDONED)
        response = self.submit(attempt_id, {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['details']['status'], 'abandoned')
        self.assertEqual(response.data['details']['attemptId'], attempt_id)

    @override_settings(DEBUG=True)
    def test_submit_database_failure_hides_exception_text(self):
        attempt_id = self.start_exam().data['id']
        with patch.object(ExamResult.objects, 'create', side_effect=DatabaseError('relation "secret" does not exist')):
            with self.assertLogs('assessments.submission', level='ERROR'):
                response = self.submit(attempt_id, {str(self.q1.id): CORRECT})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data, {'error': 'An unexpected error occurred. Please try again.'})
        self.assertEqual(ExamAttempt.objects.get(pk=attempt_id).status, ExamAttempt.Status.ONGOING)

    def test_submit_requires_authentication(self):
        self.client.force_authenticate(user=None)
        response = self.client.post('/api/exam-attempts/submit/', {'attemptId': str(uuid.uuid4())}, format='json')
        self.assertEqual(response.status_code, 401)
        self.assertIn('error', response.data)

    # --- History & results ---

    def test_attempt_history(self):
        attempt_id = self.start_exam().data['id']
        result_id = self.submit(attempt_id, {}).data['resultId']
        response = self.client.get('/api/exam-attempts/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['status'], 'submitted')
        self.assertEqual(response.data[0]['result_id'], result_id)

    def test_result_detail_includes_review(self):
        attempt_id = self.start_exam().data['id']
        result_id = self.submit(attempt_id, {str(self.q1.id): CORRECT}).data['resultId']
        response = self.client.get(f'/api/results/{result_id}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['grade'], 'C')
        self.assertEqual(len(response.data['answers']), 1)

    def test_result_review_can_be_disabled(self):
        platform = PlatformSetting.load()
        platform.allow_review_after_submission = False
        platform.save()
        attempt_id = self.start_exam().data['id']
        result_id = self.submit(attempt_id, {str(self.q1.id): CORRECT}).data['resultId']
        response = self.client.get(f'/api/results/{result_id}/')
        self.assertIsNone(response.data['answers'])

    def test_unpublished_result_is_hidden_from_student(self):
        platform = PlatformSetting.load()
        platform.show_results_immediately = False
        platform.save()
        attempt_id = self.start_exam().data['id']
        result_id = self.submit(attempt_id, {str(self.q1.id): CORRECT}).data['resultId']
        response = self.client.get(f'/api/results/{result_id}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data['is_published'])
        self.assertNotIn('percentage', response.data)

    def test_other_students_result_is_not_found(self):
        attempt_id = self.start_exam().data['id']
        result_id = self.submit(attempt_id, {}).data['resultId']
        self.client.force_authenticate(user=self.make_student('other'))
        self.assertEqual(self.client.get(f'/api/results/{result_id}/').status_code, 404)


class PublishAndLeaderboardApiTestCase(SubmissionFixtureMixin, TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.admin = self.make_student('admin', is_staff=True)
        self.alice = self.make_student('alice', first_name='Alice', last_name='Ade')
        self.bola = self.make_student('bola')
        self.exam, (self.q1, self.q2) = self.make_exam()

    def result_for(self, student, obtained, published=True, days_ago=0):
        attempt = self.start(student, self.exam)
        attempt.status = ExamAttempt.Status.SUBMITTED
        attempt.save()
        return ExamResult.objects.create(
            attempt=attempt,
            exam=self.exam,
            student=student,
            total_marks=10,
            obtained_marks=Decimal(obtained),
            percentage=Decimal(obtained) * 10,
            grade='C',
            status='pass',
            negative_marking_applied=Decimal('0.25'),
            is_published=published,
            result_date=timezone.now() - timedelta(days=days_ago),
        )

    def test_publish_result(self):
        result = self.result_for(self.alice, '6', published=False)
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f'/api/admin/results/{result.pk}/publish/')

        self.assertEqual(response.status_code, 200)
        result.refresh_from_db()
        self.assertTrue(result.is_published)
        self.assertTrue(AuditLog.objects.filter(action='PUBLISH', target_object_id=str(result.pk)).exists())
        self.assertTrue(Notification.objects.filter(user=self.alice, kind=Notification.Kind.EXAM_RESULT).exists())

    def test_student_cannot_publish(self):
        result = self.result_for(self.alice, '6', published=False)
        self.client.force_authenticate(user=self.alice)
        response = self.client.post(f'/api/admin/results/{result.pk}/publish/')
        self.assertEqual(response.status_code, 403)

    def test_leaderboard_ranks_published_results(self):
        self.result_for(self.alice, '9')
        self.result_for(self.bola, '7')
        self.result_for(self.admin, '10', published=False)

        self.client.force_authenticate(user=self.bola)
        response = self.client.get('/api/leaderboard/', {'period': 'all_time'})
        self.assertEqual(response.status_code, 200)
        rankings = response.data['rankings']
        self.assertEqual([r['user_id'] for r in rankings], [self.alice.id, self.bola.id])
        self.assertEqual(rankings[0]['full_name'], 'Alice Ade')
        self.assertEqual(rankings[0]['score'], 9.0)
        self.assertEqual(rankings[1]['full_name'], 'bola')
        self.assertTrue(rankings[1]['is_current_user'])

    def test_weekly_leaderboard_excludes_old_results(self):
        self.result_for(self.alice, '9', days_ago=20)
        self.result_for(self.bola, '7')
        self.client.force_authenticate(user=self.bola)
        response = self.client.get('/api/leaderboard/', {'period': 'weekly'})
        self.assertEqual([r['user_id'] for r in response.data['rankings']], [self.bola.id])

    def test_invalid_period(self):
        self.client.force_authenticate(user=self.bola)
        response = self.client.get('/api/leaderboard/', {'period': 'daily'})
        self.assertEqual(response.status_code, 400)

    def test_all_periods_by_default(self):
        self.result_for(self.alice, '9', days_ago=20)
        self.client.force_authenticate(user=self.bola)
        response = self.client.get('/api/leaderboard/')
        self.assertEqual(set(response.data), {'weekly', 'monthly', 'all_time'})
        self.assertEqual(response.data['weekly'], [])
        self.assertEqual(len(response.data['monthly']), 1)
