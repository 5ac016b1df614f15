from unittest.mock import patch, MagicMock

import requests
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail.backends import smtp
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from . import realtime
from .models import Notification
from .services import create_notification, send_sms

User = get_user_model()


class SmsGatewayTestCase(TestCase):
    @override_settings(SMS_GATEWAY_URL='')
    @patch('notifications.services.requests.post')
    def test_unconfigured_gateway_is_skipped(self, mock_post):
        self.assertFalse(send_sms('+2348000000000', 'hello'))
        mock_post.assert_not_called()

    @override_settings(SMS_GATEWAY_URL='http://sms.test/send', SMS_GATEWAY_TOKEN='secret', SIDE_EFFECT_TIMEOUT_SECONDS=2)
    @patch('notifications.services.requests.post')
    def test_sms_is_posted(self, mock_post):
        mock_post.return_value = MagicMock(status_code=200)
        self.assertTrue(send_sms('+2348000000000', 'hello'))
        mock_post.assert_called_once_with(
            'http://sms.test/send',
            json={'to': '+2348000000000', 'message': 'hello'},
            headers={'Authorization': 'Bearer secret'},
            timeout=2,
        )

    @override_settings(SMS_GATEWAY_URL='http://sms.test/send')
    @patch('notifications.services.requests.post')
    def test_gateway_errors_propagate(self, mock_post):
        mock_post.return_value.raise_for_status.side_effect = requests.HTTPError('502')
        with self.assertRaises(requests.HTTPError):
            send_sms('+2348000000000', 'hello')


class EmailSettingsTestCase(TestCase):
    def test_smtp_connection_is_bounded_by_side_effect_timeout(self):
        self.assertIsNotNone(settings.EMAIL_TIMEOUT)
        self.assertEqual(settings.EMAIL_TIMEOUT, settings.SIDE_EFFECT_TIMEOUT_SECONDS)
        self.assertEqual(smtp.EmailBackend().timeout, settings.SIDE_EFFECT_TIMEOUT_SECONDS)


class RealtimeTestCase(TestCase):
    @override_settings(REALTIME_GATEWAY_URL='')
    @patch('notifications.realtime.requests.post')
    def test_unconfigured_gateway_is_skipped(self, mock_post):
        self.assertFalse(realtime.publish_event(realtime.EXAM_SUBMITTED, {}))
        mock_post.assert_not_called()

    @override_settings(REALTIME_GATEWAY_URL='http://realtime.test/', REALTIME_GATEWAY_TOKEN='')
    @patch('notifications.realtime.requests.post')
    def test_event_is_posted(self, mock_post):
        self.assertTrue(realtime.publish_event(realtime.LEADERBOARD_UPDATE, {'weekly': []}))
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'http://realtime.test/events')
        self.assertEqual(kwargs['json'], {'event': 'leaderboard:update', 'data': {'weekly': []}})


class NotificationApiTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username='ada', email='ada@example.com', password='testpass123')
        self.other = User.objects.create_user(username='bola', email='bola@example.com', password='testpass123')
        create_notification(self.user, 'First', 'Hello')
        create_notification(self.user, 'Second', 'Hello again')
        create_notification(self.other, 'Private', 'Not yours')
        self.client.force_authenticate(user=self.user)

    def test_list_own_notifications(self):
        response = self.client.get('/api/notifications/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 2)

    def test_mark_read(self):
        response = self.client.post('/api/notifications/read/', {}, format='json')
        self.assertEqual(response.data['updated'], 2)
        self.assertEqual(self.client.get('/api/notifications/', {'unread': 'true'}).data, [])
        self.assertFalse(Notification.objects.get(user=self.other).is_read)
