from datetime import timedelta

from django.test import TestCase
from rest_framework import status
from rest_framework.authtoken.models import Token

from .models import CustomUser, UserRole, AuditLog, GlobalSettings
from .testing import OutpassFixtureMixin, PASSWORD


class LoginTest(OutpassFixtureMixin, TestCase):
    url = '/api/auth/login'

    def login(self, email, password=PASSWORD):
        return self.client.post(self.url, {'email': email, 'password': password}, format='json')

    def test_student_login_returns_token_and_profile(self):
        response = self.login('student@campus.edu')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['token'], Token.objects.get(user=self.student).key)
        self.assertEqual(body['role'], 'student')
        self.assertEqual(body['user']['rollNumber'], 'CSE21001')
        self.assertEqual(body['user']['department'], 'Computer Science')
        self.assertEqual(body['user']['class'], 'CSE-A')
        self.student.refresh_from_db()
        self.assertEqual(self.student.last_login, self.now)
        self.assertTrue(AuditLog.objects.filter(user=self.student, action="User Login", target="API").exists())

    def test_staff_login(self):
        body = self.login('hod@campus.edu').json()
        self.assertEqual(body['role'], 'hod')
        self.assertIsNone(body['user']['rollNumber'])

    def test_bad_credentials(self):
        response = self.login('student@campus.edu', 'wrong-password')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['message'], 'Invalid email or password.')
        failed = AuditLog.objects.get(action="Failed Login")
        self.assertEqual((failed.status, failed.target), ('failed', 'student@campus.edu'))

    def test_inactive_user_cannot_login(self):
        CustomUser.objects.filter(pk=self.faculty.pk).update(is_active=False)
        self.assertEqual(self.login('teacher@campus.edu').status_code, status.HTTP_400_BAD_REQUEST)

    def test_maintenance_mode_blocks_everyone_but_admins(self):
        GlobalSettings.objects.create(key='maintenance_mode', label='Maintenance', value='true', group='maintenance')

        response = self.login('student@campus.edu')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(response.json()['success'])
        self.assertEqual(self.login('admin@campus.edu').status_code, status.HTTP_200_OK)


class TokenUsageTest(OutpassFixtureMixin, TestCase):

    def test_me_with_bearer_and_token_keyword(self):
        token = Token.objects.create(user=self.faculty)
        self.client.credentials(HTTP_AUTHORIZATION='Bearer ' + token.key)
        body = self.client.get('/api/auth/me').json()
        self.assertEqual(body['user']['email'], 'teacher@campus.edu')
        self.assertEqual(body['user']['role'], UserRole.FACULTY)

        self.client.credentials(HTTP_AUTHORIZATION='Token ' + token.key)
        self.assertEqual(self.client.get('/api/auth/me').status_code, status.HTTP_200_OK)

    def test_bad_token(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not-a-real-token')
        response = self.client.get('/api/auth/me')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_revokes_token(self):
        self.auth(self.student)
        response = self.client.post('/api/auth/logout')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Token.objects.filter(user=self.student).exists())
        self.assertTrue(AuditLog.objects.filter(action="User Logout").exists())
        self.assertEqual(self.client.get('/api/auth/me').status_code, status.HTTP_401_UNAUTHORIZED)

    def test_activity_updates_last_login(self):
        self.auth(self.security)
        self.client.get('/api/auth/me')
        self.security.refresh_from_db()
        self.assertEqual(self.security.last_login, self.now)

        self.freeze(self.now + timedelta(seconds=30))
        self.client.get('/api/auth/me')
        self.security.refresh_from_db()
        self.assertEqual(self.security.last_login, self.now)
