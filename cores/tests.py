from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from rest_framework.test import APIClient

from .models import AuditLog, ExamSettings, PlatformSetting

User = get_user_model()


class PlatformSettingTestCase(TestCase):
    def setUp(self):
        cache.clear()

    def test_load_creates_singleton_with_defaults(self):
        settings = PlatformSetting.load()
        self.assertEqual(settings.pk, 1)
        self.assertEqual(settings.exam_settings(), ExamSettings())
        self.assertEqual(PlatformSetting.objects.count(), 1)

    def test_save_always_targets_the_singleton(self):
        PlatformSetting(site_name='Other').save()
        self.assertEqual(PlatformSetting.objects.count(), 1)
        self.assertEqual(PlatformSetting.load().site_name, 'Other')

    def test_exam_settings_snapshot(self):
        settings = PlatformSetting.load()
        settings.show_results_immediately = True
        settings.max_attempts_per_student = 5
        settings.save()
        snapshot = PlatformSetting.load().exam_settings()
        self.assertTrue(snapshot.show_results_immediately)
        self.assertEqual(snapshot.max_attempts_per_student, 5)


class PlatformSettingApiTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='testpass123', is_staff=True,
        )
        self.student = User.objects.create_user(
            username='student', email='student@example.com', password='testpass123',
        )

    def test_admin_updates_settings_and_is_audited(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.put('/api/admin/settings/', {'show_results_immediately': True}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(PlatformSetting.load().show_results_immediately)

        log = AuditLog.objects.get(action='SETTINGS')
        self.assertEqual(log.actor, self.admin)
        self.assertIn('show_results_immediately', log.details)

        logs = self.client.get('/api/admin/audit-logs/', {'action': 'SETTINGS'})
        self.assertEqual(len(logs.data), 1)
        self.assertEqual(logs.data[0]['actor_email'], 'admin@example.com')

    def test_invalid_settings(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.put('/api/admin/settings/', {'max_attempts_per_student': -1}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('max_attempts_per_student', response.data['details'])

    def test_students_cannot_read_settings(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get('/api/admin/settings/')
        self.assertEqual(response.status_code, 403)
        self.assertIn('error', response.data)

    def test_anonymous_error_shape(self):
        response = self.client.get('/api/admin/settings/')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data, {'error': 'Authentication credentials were not provided.'})
