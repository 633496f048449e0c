from datetime import timedelta

from django.test import SimpleTestCase, TestCase, override_settings

from .classification import (
    normalize_category, detect_emergency, normalize_status, priority, attendance_status, humanize_delta,
)
from .models import OutpassRequest, GlobalSettings
from .validators import parse_time, digits_only
from .listing import paginate, parse_int


class CategoryTest(SimpleTestCase):

    def test_labels_keys_and_parts(self):
        self.assertEqual(normalize_category('Personal/Travel'), 'personal')
        self.assertEqual(normalize_category('travel'), 'personal')
        self.assertEqual(normalize_category('  EMERGENCY '), 'emergency')
        self.assertEqual(normalize_category('Appointment'), 'appointment')
        self.assertEqual(normalize_category('Appointments'), 'appointment')
        self.assertEqual(normalize_category('academic'), 'academic')

    def test_unknown_or_empty(self):
        self.assertIsNone(normalize_category('Shopping'))
        self.assertIsNone(normalize_category(''))
        self.assertIsNone(normalize_category(None))

    def test_emergency_detection(self):
        self.assertTrue(detect_emergency('emergency', 'Going home'))
        self.assertTrue(detect_emergency('personal', 'Father admitted to HOSPITAL'))
        self.assertFalse(detect_emergency('personal', 'Cousin wedding in town'))


class StatusLabelTest(SimpleTestCase):

    def test_display_status(self):
        self.assertEqual(normalize_status(OutpassRequest(status=OutpassRequest.PENDING_FACULTY)), 'pending')
        self.assertEqual(normalize_status(OutpassRequest(status=OutpassRequest.PENDING_HOD)), 'under_review')
        self.assertEqual(normalize_status(OutpassRequest(status=OutpassRequest.PENDING_HOD, is_emergency=True)), 'urgent')
        self.assertEqual(normalize_status(OutpassRequest(status=OutpassRequest.APPROVED, is_emergency=True)), 'urgent')
        self.assertEqual(normalize_status(OutpassRequest(status=OutpassRequest.REJECTED)), 'rejected')

    def test_priority(self):
        self.assertEqual(priority(OutpassRequest(is_emergency=True)), 'urgent')
        self.assertEqual(priority(OutpassRequest()), 'normal')

    def test_humanize_delta(self):
        self.assertEqual(humanize_delta(timedelta(seconds=20)), 'just now')
        self.assertEqual(humanize_delta(timedelta(minutes=1)), '1 minute ago')
        self.assertEqual(humanize_delta(timedelta(hours=5, minutes=10)), '5 hours ago')
        self.assertEqual(humanize_delta(timedelta(days=2)), '2 days ago')
        self.assertEqual(humanize_delta(timedelta(seconds=-5)), 'just now')


class AttendanceStatusTest(TestCase):

    def test_threshold_from_settings(self):
        self.assertEqual(attendance_status(None), 'unknown')
        self.assertEqual(attendance_status(74.9), 'low')
        self.assertEqual(attendance_status(75), 'good')

        GlobalSettings.objects.create(key='attendance_warning_threshold', label='Warn', value='80')
        self.assertEqual(attendance_status(78), 'low')

    @override_settings(OUTPASS_ATTENDANCE_WARNING_THRESHOLD=90)
    def test_default_threshold_comes_from_settings(self):
        self.assertEqual(attendance_status(85), 'low')
        self.assertEqual(attendance_status(90), 'good')

    def test_bad_threshold_falls_back(self):
        GlobalSettings.objects.create(key='attendance_warning_threshold', label='Warn', value='lots')
        with self.assertLogs('outpass.global_settings', level='WARNING'):
            self.assertEqual(attendance_status(70), 'low')


class ParsingTest(SimpleTestCase):

    def test_parse_time(self):
        self.assertEqual(parse_time('2:30 PM').strftime('%H:%M'), '14:30')
        self.assertEqual(parse_time('12:05 am').strftime('%H:%M'), '00:05')
        self.assertEqual(parse_time('12:00 PM').strftime('%H:%M'), '12:00')
        self.assertEqual(parse_time('07:15').strftime('%H:%M'), '07:15')
        self.assertIsNone(parse_time('25:00'))
        self.assertIsNone(parse_time('13:00 PM'))
        self.assertIsNone(parse_time('noon'))

    def test_digits_only(self):
        self.assertEqual(digits_only('+91 98765-43210'), '919876543210')
        self.assertEqual(digits_only(None), '')

    def test_paginate(self):
        items, meta = paginate(list(range(25)), 3, 10)
        self.assertEqual(items, list(range(20, 25)))
        self.assertEqual(meta['totalPages'], 3)
        self.assertFalse(meta['hasNextPage'])

        items, meta = paginate([], 1, 10)
        self.assertEqual((items, meta['totalPages']), ([], 1))

    def test_parse_int(self):
        self.assertEqual(parse_int('abc', 10), 10)
        self.assertEqual(parse_int('0', 10), 1)
        self.assertEqual(parse_int('500', 10, maximum=100), 100)
