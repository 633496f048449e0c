from datetime import timedelta
from io import BytesIO

from django.test import TestCase
from openpyxl import load_workbook
from rest_framework import status

from .models import OutpassRequest
from .testing import OutpassFixtureMixin, local_dt
from . import workflow


class HodQueueTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.waiting = self.create_outpass(
            status=OutpassRequest.PENDING_HOD, faculty_approver=self.faculty,
            faculty_decided_at=self.now - timedelta(hours=2),
        )
        self.second = self.make_student('second@campus.edu', 'Second Student', 'CSE21002')
        self.urgent = self.create_outpass(
            student=self.second, status=OutpassRequest.PENDING_HOD, reason_category='emergency',
            is_emergency=True, faculty_approver=self.mentor, faculty_decided_at=self.now,
        )
        self.auth(self.hod)

    def test_dashboard(self):
        body = self.client.get('/api/hod/dashboard').json()

        self.assertEqual(body['hodDetails']['department'], 'Computer Science')
        self.assertEqual(body['stats']['pendingApprovals'], 2)
        self.assertEqual(body['stats']['approvedToday'], 0)
        self.assertEqual(body['stats']['totalFaculty'], 2)
        self.assertEqual([a['requestId'] for a in body['urgentAlerts']], [self.urgent.request_id])

    def test_pending_approvals_urgent_first(self):
        body = self.client.get('/api/hod/pending-approvals').json()

        self.assertEqual(body['summary']['totalPending'], 2)
        self.assertEqual(body['summary']['urgentCount'], 1)
        self.assertEqual([r['requestId'] for r in body['requests']], [self.urgent.request_id, self.waiting.request_id])
        self.assertEqual(body['requests'][1]['timeInHodQueue'], '2 hours ago')
        self.assertEqual(body['requests'][1]['facultyApprovedBy'], 'Asha Teacher')

    def test_pending_approvals_category_and_search(self):
        body = self.client.get('/api/hod/pending-approvals', {'category': 'Personal/Travel'}).json()
        self.assertEqual([r['requestId'] for r in body['requests']], [self.waiting.request_id])

        body = self.client.get('/api/hod/pending-approvals', {'search': 'Second'}).json()
        self.assertEqual([r['requestId'] for r in body['requests']], [self.urgent.request_id])

    def test_other_department_hod_sees_nothing(self):
        self.auth(self.other_hod)
        body = self.client.get('/api/hod/pending-approvals').json()
        self.assertEqual(body['summary']['totalPending'], 0)


class HodHistoryTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.approved = self.create_outpass(status=OutpassRequest.PENDING_HOD, faculty_approver=self.faculty)
        self.second = self.make_student('second@campus.edu', 'Second Student', 'CSE21002')
        self.rejected = self.create_outpass(student=self.second, status=OutpassRequest.PENDING_HOD, faculty_approver=self.faculty)
        workflow.hod_decide(self.hod, self.approved.pk, 'approve')
        workflow.hod_decide(self.hod, self.rejected.pk, 'reject', rejection_reason='Exams')
        self.auth(self.hod)

    def test_history_stats(self):
        body = self.client.get('/api/hod/history').json()

        self.assertEqual(body['stats'], {
            'totalProcessed': 2, 'approvedCount': 1, 'rejectedCount': 1, 'approvalRate': 50.0,
        })
        self.assertEqual(len(body['history']), 2)

        body = self.client.get('/api/hod/history', {'status': 'hod_rejected'}).json()
        self.assertEqual([h['requestId'] for h in body['history']], [self.rejected.request_id])
        self.assertEqual(body['history'][0]['rejectionReason'], 'Exams')

    def test_excel_export(self):
        response = self.client.get('/api/hod/history', {'export': 'excel'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')
        self.assertIn('HOD_History_CSE_2025-03-10.xlsx', response['Content-Disposition'])
        sheet = load_workbook(BytesIO(response.content)).active
        self.assertEqual(sheet['A1'].value, 'Request ID')
        self.assertEqual(sheet.max_row, 3)
        decisions = {sheet.cell(row=r, column=8).value for r in (2, 3)}
        self.assertEqual(decisions, {'APPROVED', 'REJECTED'})

    def test_pdf_export(self):
        response = self.client.get('/api/hod/history', {'export': 'pdf'})

        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_reports(self):
        body = self.client.get('/api/hod/reports').json()

        self.assertEqual(body['timeRange'], 'overall')
        self.assertEqual(body['stats']['totalRequests'], 2)
        self.assertEqual(body['stats']['approved'], 1)
        self.assertEqual(body['stats']['rejected'], 1)
        self.assertEqual(body['stats']['avgApprovalTime'], '0.0 hours')
        asha = next(p for p in body['performance'] if p['name'] == 'Asha Teacher')
        self.assertEqual(asha['totalRequests'], 2)
        self.assertEqual(asha['approved'], 2)

    def test_reports_this_month(self):
        OutpassRequest.objects.filter(pk=self.rejected.pk).update(created_at=local_dt(2025, 2, 20, 10))
        body = self.client.get('/api/hod/reports', {'range': 'this_month'}).json()

        self.assertEqual(body['timeRange'], 'this_month')
        self.assertEqual(body['stats']['totalRequests'], 1)

    def test_faculty_cannot_use_hod_endpoints(self):
        self.auth(self.faculty)
        self.assertEqual(self.client.get('/api/hod/dashboard').status_code, status.HTTP_403_FORBIDDEN)
