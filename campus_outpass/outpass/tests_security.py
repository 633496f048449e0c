from datetime import timedelta

from django.test import TestCase
from rest_framework import status

from .models import OutpassRequest, AuditLog
from .testing import OutpassFixtureMixin
from . import workflow


class GateTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.outpass = self.create_outpass(status=OutpassRequest.APPROVED, hod_approver=self.hod, hod_decided_at=self.now)
        self.gatepass = workflow.issue_gatepass(self.outpass, self.now)
        self.auth(self.security)

    def url(self, suffix):
        return f'/api/security/gatepasses/{self.gatepass.code}/{suffix}'

    def test_exit_inside_window(self):
        self.freeze(self.now + timedelta(minutes=50))
        response = self.client.post(self.url('exit'))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.content)
        self.gatepass.refresh_from_db()
        self.assertEqual(self.gatepass.exited_at, self.now + timedelta(minutes=50))
        self.assertEqual(self.gatepass.exit_recorded_by, self.security)
        self.assertEqual(response.json()['gatepass']['state'], 'out')
        self.assertTrue(AuditLog.objects.filter(action="Gate Exit", user=self.security).exists())

    def test_exit_allowed_shortly_before_exit_time(self):
        self.freeze(self.outpass.exit_time - timedelta(minutes=15))
        self.assertEqual(self.client.post(self.url('exit')).status_code, status.HTTP_200_OK)

    def test_exit_too_early(self):
        response = self.client.post(self.url('exit'))

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.json()['message'], 'This gatepass is not valid yet.')

    def test_exit_after_expiry(self):
        self.freeze(self.outpass.return_time + timedelta(minutes=1))
        response = self.client.post(self.url('exit'))

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.json()['message'], 'This gatepass has expired.')

    def test_double_exit_is_conflict(self):
        self.freeze(self.outpass.exit_time)
        self.client.post(self.url('exit'))
        response = self.client.post(self.url('exit'))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_return_on_time(self):
        self.freeze(self.outpass.exit_time)
        self.client.post(self.url('exit'))
        self.freeze(self.outpass.return_time - timedelta(minutes=5))
        response = self.client.post(self.url('return'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.json()['isLate'])
        self.assertEqual(response.json()['gatepass']['state'], 'returned')

    def test_late_return_is_flagged(self):
        self.freeze(self.outpass.exit_time)
        self.client.post(self.url('exit'))
        self.freeze(self.outpass.return_time + timedelta(hours=1))
        response = self.client.post(self.url('return'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.json()['isLate'])
        self.assertEqual(response.json()['message'], 'Late return recorded.')
        self.assertTrue(AuditLog.objects.filter(action="Gate Return", status="late").exists())

    def test_return_without_exit(self):
        response = self.client.post(self.url('return'))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_double_return(self):
        self.freeze(self.outpass.exit_time)
        self.client.post(self.url('exit'))
        self.client.post(self.url('return'))
        response = self.client.post(self.url('return'))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_code_lookup_ignores_case(self):
        self.freeze(self.outpass.exit_time)
        response = self.client.post(f'/api/security/gatepasses/{self.gatepass.code.lower()}/exit')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_unknown_code(self):
        response = self.client.post('/api/security/gatepasses/GP00000000/exit')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_verify_reports_window(self):
        response = self.client.post('/api/security/gatepasses/verify', {'code': self.gatepass.code}, format='json')
        self.assertFalse(response.json()['valid'])
        self.assertEqual(response.json()['reason'], 'This gatepass is not valid yet.')

        self.freeze(self.outpass.exit_time)
        response = self.client.post('/api/security/gatepasses/verify', {'code': self.gatepass.code}, format='json')
        body = response.json()
        self.assertTrue(body['valid'])
        self.assertEqual(body['gatepass']['rollNumber'], 'CSE21001')
        self.assertEqual(body['gatepass']['requestId'], self.outpass.request_id)

    def test_list_active_and_out(self):
        response = self.client.get('/api/security/gatepasses')
        self.assertEqual(response.json()['count'], 1)

        self.freeze(self.outpass.exit_time)
        self.client.post(self.url('exit'))
        self.assertEqual(self.client.get('/api/security/gatepasses').json()['count'], 0)
        out = self.client.get('/api/security/gatepasses', {'state': 'out'}).json()
        self.assertEqual(out['gatepasses'][0]['code'], self.gatepass.code)

    def test_only_security_staff(self):
        for user in (self.student, self.faculty, self.hod, self.admin):
            self.auth(user)
            response = self.client.post(self.url('exit'))
            self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
