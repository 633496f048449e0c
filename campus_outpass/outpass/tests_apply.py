import shutil
import tempfile

from django.core import mail
from django.test import TestCase, override_settings
from rest_framework import status

from .models import OutpassRequest, GlobalSettings, AuditLog
from .testing import OutpassFixtureMixin, pdf_file

MEDIA_ROOT = tempfile.mkdtemp()


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class ApplyOutpassTest(OutpassFixtureMixin, TestCase):
    url = '/api/outpass/apply'

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def test_student_submits_request(self):
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form())

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        body = response.json()
        self.assertTrue(body['success'])
        outpass = OutpassRequest.objects.get(student=self.student)
        self.assertEqual(outpass.status, OutpassRequest.PENDING_FACULTY)
        self.assertEqual(outpass.reason_category, 'personal')
        self.assertEqual(outpass.request_id, f"OP250310{outpass.pk:05d}")
        self.assertEqual(body['data']['requestId'], outpass.request_id)
        self.assertEqual(outpass.department, self.department)
        self.assertEqual(outpass.student_class, self.student_class)
        self.assertEqual(outpass.parent_contact, '9876543210')
        self.assertFalse(outpass.is_emergency)
        self.assertTrue(outpass.supporting_document.name.endswith('.pdf'))
        self.assertEqual(outpass.status_updates.count(), 1)
        self.assertTrue(AuditLog.objects.filter(action="Outpass Submitted", user=self.student).exists())

    def test_faculty_of_class_are_notified(self):
        self.auth(self.student)
        self.client.post(self.url, self.apply_form())

        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("New request", mail.outbox[0].subject)
        self.assertEqual(sorted(mail.outbox[0].to), ['mentor@campus.edu', 'teacher@campus.edu'])

    def test_broken_mail_template_does_not_fail_submission(self):
        GlobalSettings.objects.create(
            key='email_new_request_subject', label='New Request Subject', value='{student_name.nope}', group='notification',
        )
        self.auth(self.student)
        with self.assertLogs('outpass.notifications', level='WARNING'):
            response = self.client.post(self.url, self.apply_form())

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        self.assertEqual(OutpassRequest.objects.filter(student=self.student).count(), 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('New request', mail.outbox[0].subject)

    def test_24_hour_times_are_accepted(self):
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form(timeOfExit='13:30', timeOfReturn='18:45'))

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        outpass = OutpassRequest.objects.get(student=self.student)
        self.assertEqual((outpass.exit_time - self.now).total_seconds(), 4.5 * 3600)

    def test_emergency_keyword_marks_request_urgent(self):
        self.auth(self.student)
        form = self.apply_form(reasonCategory='Religious', reason='Sudden fever at home, parents called', supportingDocument=None)
        response = self.client.post(self.url, form)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        self.assertTrue(OutpassRequest.objects.get(student=self.student).is_emergency)

    def test_emergency_category_does_not_need_document(self):
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form(reasonCategory='emergency', supportingDocument=None))
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)

    def test_second_active_request_is_refused(self):
        self.create_outpass(status=OutpassRequest.PENDING_HOD)
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form())

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(response.json()['success'])
        self.assertEqual(OutpassRequest.objects.filter(student=self.student).count(), 1)

    def test_finished_request_does_not_block_new_one(self):
        self.create_outpass(status=OutpassRequest.REJECTED, rejection_stage='faculty', rejection_reason='No')
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form())
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)

    def test_short_reason_is_rejected(self):
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form(reason='too short'))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        body = response.json()
        self.assertIn('reason', body['errors'])
        self.assertEqual(body['message'], body['errors']['reason'])

    def test_exit_date_must_be_today(self):
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form(dateOfExit='2025-03-11'))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['errors']['dateOfExit'], "You can only apply for today's date")

    def test_exit_time_must_be_in_future(self):
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form(timeOfExit='8:30 AM'))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('timeOfExit', response.json()['errors'])

    def test_return_must_follow_exit(self):
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form(timeOfExit='3:00 PM', timeOfReturn='2:00 PM'))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(list(response.json()['errors']), ['timeOfReturn'])

    def test_document_required_for_personal(self):
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form(supportingDocument=None))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('supportingDocument', response.json()['errors'])

    def test_document_type_and_size_are_checked(self):
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form(supportingDocument=pdf_file('notes.docx')))
        self.assertEqual(response.json()['errors']['supportingDocument'], 'Please upload a JPEG or PDF file')

        GlobalSettings.objects.create(key='max_document_mb', label='Max', value='1')
        response = self.client.post(self.url, self.apply_form(supportingDocument=pdf_file(size=1024 * 1024 + 1)))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['errors']['supportingDocument'], 'File size must be less than 1MB')

    def test_unknown_category_and_bad_alternate_contact(self):
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form(reasonCategory='Shopping', alternateContact='12345'))

        errors = response.json()['errors']
        self.assertIn('reasonCategory', errors)
        self.assertIn('alternateContact', errors)

    def test_missing_parent_phone_blocks_apply(self):
        profile = self.student.student_profile
        profile.parent_phone = ''
        profile.save()
        self.auth(self.student)
        response = self.client.post(self.url, self.apply_form())

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('parentContact', response.json()['errors'])

    def test_low_attendance_blocks_only_when_minimum_is_set(self):
        profile = self.student.student_profile
        profile.attendance_percentage = 60
        profile.save()
        self.auth(self.student)

        GlobalSettings.objects.create(key='min_attendance_to_apply', label='Min', value='65')
        response = self.client.post(self.url, self.apply_form())
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertIn('attendance', response.json()['message'])

        response = self.client.post(self.url, self.apply_form(reasonCategory='Emergency', supportingDocument=None))
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)

    def test_only_students_can_apply(self):
        self.auth(self.faculty)
        response = self.client.post(self.url, self.apply_form())
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_anonymous_request_is_rejected(self):
        response = self.client.post(self.url, self.apply_form())
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.json()['success'])
