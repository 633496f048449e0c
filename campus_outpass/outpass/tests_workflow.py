from unittest import mock

from django.core import mail
from django.test import TestCase
from rest_framework import status

from .models import OutpassRequest, Gatepass, AuditLog, GlobalSettings
from .testing import OutpassFixtureMixin
from . import workflow


class FacultyDecisionTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.outpass = self.create_outpass()

    def decide(self, user, payload, outpass=None):
        outpass = outpass or self.outpass
        self.auth(user)
        return self.client.put(f'/api/outpass/{outpass.pk}/faculty-approve', payload, format='json')

    def verify(self, user, outcome, outpass=None):
        outpass = outpass or self.outpass
        self.auth(user)
        return self.client.post(
            f'/api/outpass/{outpass.pk}/parent-verification', {'outcome': outcome, 'notes': 'Called mother'}, format='json',
        )

    def test_approval_needs_parent_verification(self):
        response = self.decide(self.faculty, {'status': 'approved'})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.outpass.refresh_from_db()
        self.assertEqual(self.outpass.status, OutpassRequest.PENDING_FACULTY)

    def test_verified_request_is_forwarded_to_hod(self):
        self.assertEqual(self.verify(self.faculty, 'confirmed').status_code, status.HTTP_200_OK)
        response = self.decide(self.faculty, {'status': 'approved', 'notes': 'Fine'})

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.content)
        self.outpass.refresh_from_db()
        self.assertEqual(self.outpass.status, OutpassRequest.PENDING_HOD)
        self.assertEqual(self.outpass.faculty_approver, self.faculty)
        self.assertEqual(self.outpass.faculty_decided_at, self.now)
        self.assertEqual(self.outpass.parent_verified_by, self.faculty)
        self.assertEqual(response.json()['data']['allowedActions'], workflow.available_transitions(OutpassRequest.PENDING_HOD))

        subjects = [m.subject for m in mail.outbox]
        self.assertIn(f'[Outpass] {self.outpass.request_id} forwarded for HOD approval', subjects)
        self.assertIn(f'[Outpass] {self.outpass.request_id} approved by faculty', subjects)
        hod_mail = next(m for m in mail.outbox if 'HOD approval' in m.subject)
        self.assertEqual(hod_mail.to, ['hod@campus.edu'])

    def test_mentor_of_class_can_decide(self):
        self.verify(self.mentor, 'approved')
        response = self.decide(self.mentor, {'decision': 'approve'})
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.content)

    def test_emergency_skips_parent_verification(self):
        urgent = self.create_outpass(
            student=self.make_student('other@campus.edu', 'Other Student', 'CSE21002'),
            reason_category='emergency', is_emergency=True,
        )
        response = self.decide(self.faculty, {'status': 'approved'}, outpass=urgent)

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.content)
        urgent.refresh_from_db()
        self.assertEqual(urgent.status, OutpassRequest.PENDING_HOD)

    def test_parent_verification_can_be_switched_off(self):
        GlobalSettings.objects.create(key='require_parent_verification', label='Parent check', value='false')
        response = self.decide(self.faculty, {'status': 'approved'})
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.content)

    def test_denied_verification_blocks_approval(self):
        self.verify(self.faculty, 'denied')
        GlobalSettings.objects.create(key='require_parent_verification', label='Parent check', value='false')

        response = self.decide(self.faculty, {'status': 'approved'})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.decide(self.faculty, {'status': 'rejected', 'rejectionReason': 'Parent said no'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_reject_requires_reason(self):
        response = self.decide(self.faculty, {'status': 'rejected'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('rejectionReason', response.json()['errors'])
        self.outpass.refresh_from_db()
        self.assertEqual(self.outpass.status, OutpassRequest.PENDING_FACULTY)

    def test_reject_reason_can_come_from_notes(self):
        response = self.decide(self.faculty, {'status': 'rejected', 'notes': 'Exams this week'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.outpass.refresh_from_db()
        self.assertEqual(self.outpass.status, OutpassRequest.REJECTED)
        self.assertEqual(self.outpass.rejection_stage, 'faculty')
        self.assertEqual(self.outpass.rejection_reason, 'Exams this week')
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['student@campus.edu'])
        self.assertIn('Exams this week', mail.outbox[0].body)

    def test_mail_error_does_not_undo_decision(self):
        with mock.patch('outpass.notifications.send_mail', side_effect=OSError("connection refused")):
            with self.assertLogs('outpass.notifications', level='ERROR'):
                response = self.decide(self.faculty, {'status': 'rejected', 'rejectionReason': 'No'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.outpass.refresh_from_db()
        self.assertEqual(self.outpass.status, OutpassRequest.REJECTED)

    def test_decided_request_cannot_be_decided_again(self):
        self.decide(self.faculty, {'status': 'rejected', 'rejectionReason': 'No'})
        response = self.decide(self.mentor, {'status': 'rejected', 'rejectionReason': 'Also no'})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.outpass.refresh_from_db()
        self.assertEqual(self.outpass.rejection_reason, 'No')

    def test_unknown_decision_is_bad_request(self):
        response = self.decide(self.faculty, {'status': 'maybe'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_faculty_of_other_department_is_forbidden(self):
        response = self.decide(self.other_faculty, {'status': 'rejected', 'rejectionReason': 'No'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.verify(self.other_faculty, 'confirmed')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_hod_and_admin_cannot_take_faculty_stage(self):
        self.assertEqual(self.decide(self.hod, {'status': 'approved'}).status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.decide(self.admin, {'status': 'approved'}).status_code, status.HTTP_403_FORBIDDEN)

    def test_verification_only_before_faculty_decision(self):
        self.outpass.status = OutpassRequest.PENDING_HOD
        self.outpass.save()
        response = self.verify(self.faculty, 'confirmed')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_unknown_verification_outcome(self):
        response = self.verify(self.faculty, 'unsure')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_request_can_be_addressed_by_request_id(self):
        self.verify(self.faculty, 'confirmed')
        self.auth(self.faculty)
        response = self.client.post(
            f'/api/outpass/{self.outpass.request_id.lower()}/faculty-approve', {'status': 'approved'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.content)

    def test_unknown_request_is_404(self):
        self.auth(self.faculty)
        response = self.client.put('/api/outpass/99999/faculty-approve', {'status': 'approved'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.json()['success'])

    def test_decision_is_audited(self):
        self.decide(self.faculty, {'status': 'rejected', 'rejectionReason': 'No'})

        log = AuditLog.objects.filter(user=self.faculty).first()
        self.assertEqual(log.action, 'Rejected by faculty')
        self.assertEqual(log.target, f'Outpass {self.outpass.request_id}')
        messages = list(self.outpass.status_updates.values_list('message', flat=True))
        self.assertEqual(messages[-1], 'Rejected by Asha Teacher: No')


class HodDecisionTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.outpass = self.create_outpass(
            status=OutpassRequest.PENDING_HOD, faculty_approver=self.faculty, faculty_decided_at=self.now,
        )

    def decide(self, user, payload):
        self.auth(user)
        return self.client.put(f'/api/hod/outpass/{self.outpass.pk}/action', payload, format='json')

    def test_approval_issues_gatepass(self):
        response = self.decide(self.hod, {'action': 'approve'})

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.content)
        self.outpass.refresh_from_db()
        self.assertEqual(self.outpass.status, OutpassRequest.APPROVED)
        self.assertEqual(self.outpass.hod_approver, self.hod)
        gatepass = Gatepass.objects.get(outpass=self.outpass)
        self.assertRegex(gatepass.code, r'^GP[0-9A-F]{8}$')
        self.assertEqual(gatepass.valid_from, self.outpass.exit_time)
        self.assertEqual(gatepass.valid_until, self.outpass.return_time)
        self.assertIn(gatepass.code, response.json()['message'])

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['student@campus.edu'])
        self.assertIn(gatepass.code, mail.outbox[0].body)

    def test_rejection_records_hod_stage(self):
        response = self.decide(self.hod, {'action': 'reject', 'rejectionReason': 'Too frequent'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.outpass.refresh_from_db()
        self.assertEqual(self.outpass.status, OutpassRequest.REJECTED)
        self.assertEqual(self.outpass.rejection_stage, 'hod')
        self.assertFalse(Gatepass.objects.exists())

    def test_rejection_without_reason(self):
        response = self.decide(self.hod, {'action': 'reject'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_hod_of_other_department_is_forbidden(self):
        response = self.decide(self.other_hod, {'action': 'approve'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_faculty_and_admin_cannot_approve(self):
        self.assertEqual(self.decide(self.faculty, {'action': 'approve'}).status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.decide(self.admin, {'action': 'approve'}).status_code, status.HTTP_403_FORBIDDEN)

    def test_request_still_with_faculty_is_conflict(self):
        self.outpass.status = OutpassRequest.PENDING_FACULTY
        self.outpass.save()
        response = self.decide(self.hod, {'action': 'approve'})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_second_approval_is_conflict(self):
        self.decide(self.hod, {'action': 'approve'})
        response = self.decide(self.hod, {'action': 'approve'})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(Gatepass.objects.count(), 1)


class CancelOutpassTest(OutpassFixtureMixin, TestCase):

    def cancel(self, outpass, user=None):
        self.auth(user or self.student)
        return self.client.put(f'/api/outpass/{outpass.pk}/cancel')

    def test_student_cancels_pending_request(self):
        outpass = self.create_outpass()
        response = self.cancel(outpass)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        outpass.refresh_from_db()
        self.assertEqual(outpass.status, OutpassRequest.CANCELLED)
        self.assertEqual(outpass.cancelled_at, self.now)
        self.assertEqual(response.json()['data']['allowedActions'], [])

    def test_request_at_hod_can_be_cancelled(self):
        outpass = self.create_outpass(status=OutpassRequest.PENDING_HOD)
        self.assertEqual(self.cancel(outpass).status_code, status.HTTP_200_OK)

    def test_decided_request_cannot_be_cancelled(self):
        outpass = self.create_outpass(status=OutpassRequest.APPROVED)
        self.assertEqual(self.cancel(outpass).status_code, status.HTTP_409_CONFLICT)

    def test_other_students_request_is_forbidden(self):
        outpass = self.create_outpass()
        other = self.make_student('other@campus.edu', 'Other Student', 'CSE21002')
        self.assertEqual(self.cancel(outpass, other).status_code, status.HTTP_403_FORBIDDEN)

    def test_faculty_cannot_cancel(self):
        outpass = self.create_outpass()
        self.assertEqual(self.cancel(outpass, self.faculty).status_code, status.HTTP_403_FORBIDDEN)


class TransitionTableTest(TestCase):

    def test_available_transitions(self):
        self.assertEqual(
            workflow.available_transitions(OutpassRequest.PENDING_FACULTY),
            ['faculty_approve', 'faculty_reject', 'cancel'],
        )
        self.assertEqual(workflow.available_transitions(OutpassRequest.PENDING_HOD), ['hod_approve', 'hod_reject', 'cancel'])
        for terminal in OutpassRequest.TERMINAL_STATUSES:
            self.assertEqual(workflow.available_transitions(terminal), [])
