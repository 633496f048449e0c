from datetime import timedelta

from django.test import TestCase
from rest_framework import status

from .models import OutpassRequest
from .testing import OutpassFixtureMixin, local_dt
from . import workflow


class CurrentOutpassTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.auth(self.student)

    def test_no_current_request(self):
        response = self.client.get('/api/outpass/current')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json()['message'], 'No active outpass request.')

    def test_active_request_is_current(self):
        outpass = self.create_outpass()
        response = self.client.get('/api/outpass/current')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()['data']
        self.assertEqual(data['requestId'], outpass.request_id)
        self.assertEqual(data['allowedActions'], ['faculty_approve', 'faculty_reject', 'cancel'])
        self.assertCountEqual([f['email'] for f in data['assignedFaculty']], ['teacher@campus.edu', 'mentor@campus.edu'])
        self.assertEqual(data['assignedHod'][0]['email'], 'hod@campus.edu')
        self.assertEqual(len(data['statusUpdates']), 1)

    def test_approved_request_with_open_gatepass_stays_current(self):
        outpass = self.create_outpass(status=OutpassRequest.APPROVED)
        gatepass = workflow.issue_gatepass(outpass, self.now)
        response = self.client.get('/api/outpass/current')
        self.assertEqual(response.json()['data']['gatepass']['code'], gatepass.code)

        gatepass.exited_at = outpass.exit_time
        gatepass.returned_at = outpass.return_time
        gatepass.save()
        self.assertEqual(self.client.get('/api/outpass/current').status_code, status.HTTP_404_NOT_FOUND)

    def test_cancelled_request_is_not_current(self):
        self.create_outpass(status=OutpassRequest.CANCELLED)
        self.assertEqual(self.client.get('/api/outpass/current').status_code, status.HTTP_404_NOT_FOUND)


class HistoryTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.auth(self.student)
        self.approved = self.create_outpass(status=OutpassRequest.APPROVED)
        self.rejected = self.create_outpass(status=OutpassRequest.REJECTED, rejection_stage='hod', rejection_reason='No')
        self.cancelled = self.create_outpass(status=OutpassRequest.CANCELLED)
        OutpassRequest.objects.filter(pk=self.approved.pk).update(created_at=local_dt(2025, 2, 5, 10))
        OutpassRequest.objects.filter(pk=self.rejected.pk).update(created_at=local_dt(2025, 3, 1, 10))

    def history(self, **params):
        response = self.client.get('/api/outpass/history', params)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return response.json()['data']

    def test_summary_and_newest_first(self):
        data = self.history()

        self.assertEqual(data['summary'], {'total': 3, 'approved': 1, 'rejected': 1, 'cancelled': 1})
        self.assertEqual(
            [o['requestId'] for o in data['outpasses']],
            [self.cancelled.request_id, self.rejected.request_id, self.approved.request_id],
        )
        self.assertEqual(data['pagination']['totalRecords'], 3)
        self.assertFalse(data['pagination']['hasNextPage'])

    def test_oldest_first_and_status_filter(self):
        data = self.history(sort='oldest')
        self.assertEqual(data['outpasses'][0]['requestId'], self.approved.request_id)

        data = self.history(status='rejected')
        self.assertEqual([o['rejectionStage'] for o in data['outpasses']], ['hod'])
        self.assertEqual(data['summary']['total'], 3)

    def test_month_filter(self):
        data = self.history(year=2025, month=2)
        self.assertEqual(data['summary']['total'], 1)
        self.assertEqual(data['outpasses'][0]['requestId'], self.approved.request_id)

    def test_date_range_filter(self):
        data = self.history(startDate='2025-03-01', endDate='2025-03-09')
        self.assertEqual([o['requestId'] for o in data['outpasses']], [self.rejected.request_id])

    def test_pagination(self):
        data = self.history(limit=2, page=2)

        self.assertEqual(len(data['outpasses']), 1)
        self.assertEqual(data['pagination']['currentPage'], 2)
        self.assertEqual(data['pagination']['totalPages'], 2)
        self.assertTrue(data['pagination']['hasPrevPage'])

    def test_other_students_requests_are_hidden(self):
        other = self.make_student('other@campus.edu', 'Other Student', 'CSE21002')
        self.create_outpass(student=other)
        self.assertEqual(self.history()['summary']['total'], 3)


class StudentProfileTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.auth(self.student)

    def test_profile_with_stats(self):
        self.create_outpass(status=OutpassRequest.APPROVED)
        self.create_outpass(status=OutpassRequest.REJECTED, rejection_stage='faculty', rejection_reason='No')
        response = self.client.get('/api/student/profile')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        body = response.json()
        self.assertEqual(body['profile']['rollNumber'], 'CSE21001')
        self.assertEqual(body['profile']['department'], 'Computer Science')
        self.assertEqual(body['stats']['totalRequests'], 2)
        self.assertEqual(body['stats']['approvalRate'], 50.0)
        self.assertEqual(body['stats']['currentScore'], 95)
        self.assertIsNone(body['currentOutpass'])
        self.assertEqual(len(body['recentActivity']), 2)

    def test_apply_details(self):
        response = self.client.get('/api/student/apply-details')

        data = response.json()['data']
        self.assertEqual(data['rollNumber'], 'CSE21001')
        self.assertEqual(data['class'], 'CSE-A')
        self.assertEqual(data['attendancePercentage'], 85.0)
        self.assertEqual(data['attendanceStatus'], 'good')
        self.assertEqual(data['primaryParentContact'], '9876543210')

    def test_student_without_profile(self):
        self.auth(self.make_user('new@campus.edu', 'student', 'New Student'))
        response = self.client.get('/api/student/apply-details')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_faculty_cannot_use_student_endpoints(self):
        self.auth(self.faculty)
        self.assertEqual(self.client.get('/api/student/profile').status_code, status.HTTP_403_FORBIDDEN)


class OutpassDetailTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.outpass = self.create_outpass(status=OutpassRequest.APPROVED, hod_approver=self.hod)
        workflow.issue_gatepass(self.outpass, self.now)

    def test_owner_sees_student_view(self):
        self.auth(self.student)
        data = self.client.get(f'/api/outpass/{self.outpass.pk}').json()['data']
        self.assertNotIn('student', data)
        self.assertEqual(data['hodApprover'], 'Meera HOD')

    def test_staff_see_student_block(self):
        for user in (self.faculty, self.hod, self.security, self.admin):
            self.auth(user)
            response = self.client.get(f'/api/outpass/{self.outpass.request_id}')
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual(response.json()['data']['student']['rollNumber'], 'CSE21001')

    def test_outsiders_get_404(self):
        other = self.make_student('other@campus.edu', 'Other Student', 'CSE21002')
        for user in (other, self.other_faculty, self.other_hod):
            self.auth(user)
            response = self.client.get(f'/api/outpass/{self.outpass.pk}')
            self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_gatepass_pdf(self):
        self.auth(self.student)
        response = self.client.get(f'/api/outpass/{self.outpass.pk}/gatepass')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))
        self.assertIn(self.outpass.gatepass.code, response['Content-Disposition'])

    def test_gatepass_pdf_missing(self):
        pending = self.create_outpass(
            student=self.make_student('other@campus.edu', 'Other Student', 'CSE21002'), status=OutpassRequest.PENDING_HOD,
        )
        self.auth(self.hod)
        response = self.client.get(f'/api/outpass/{pending.pk}/gatepass')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
