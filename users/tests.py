from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

User = get_user_model()


class AuthApiTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.payload = {
            'email': 'ada@example.com',
            'first_name': 'Ada',
            'last_name': 'Obi',
            'phone_number': '+2348000000000',
            'password': 'strongpass123',
        }

    def test_register_creates_student(self):
        response = self.client.post('/api/auth/register/', self.payload, format='json')
        self.assertEqual(response.status_code, 201)
        user = User.objects.get(email='ada@example.com')
        self.assertEqual(user.role, User.Role.STUDENT)
        self.assertFalse(user.is_staff)
        self.assertNotIn('password', response.data)

    def test_register_rejects_short_password(self):
        self.payload['password'] = 'short'
        response = self.client.post('/api/auth/register/', self.payload, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('password', response.data['details'])

    def test_login_with_email_returns_tokens(self):
        self.client.post('/api/auth/register/', self.payload, format='json')
        response = self.client.post(
            '/api/auth/login/', {'email': 'ADA@example.com', 'password': 'strongpass123'}, format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['email'], 'ada@example.com')

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        profile = self.client.get('/api/auth/profile/')
        self.assertEqual(profile.status_code, 200)
        self.assertEqual(profile.data['first_name'], 'Ada')

    def test_login_with_wrong_password(self):
        self.client.post('/api/auth/register/', self.payload, format='json')
        response = self.client.post(
            '/api/auth/login/', {'email': 'ada@example.com', 'password': 'wrongpass'}, format='json',
        )
        self.assertEqual(response.status_code, 401)
        self.assertIn('error', response.data)
