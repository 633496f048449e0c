"""Shared fixtures for the outpass test modules."""
from datetime import datetime, timedelta
from unittest import mock

from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from .models import Department, StudentClass, CustomUser, UserRole, StudentProfile, OutpassRequest, StatusUpdate

PASSWORD = "Str0ng-pass-123"


def local_dt(year, month, day, hour, minute=0):
    return timezone.make_aware(datetime(year, month, day, hour, minute), timezone.get_current_timezone())


def pdf_file(name="proof.pdf", size=None):
    content = b"%PDF-1.4 test document" if size is None else b"0" * size
    return SimpleUploadedFile(name, content, content_type="application/pdf")


class OutpassFixtureMixin:
    """
    Builds one department with a class, its staff and a student, and
    freezes the clock at 09:00 local time on a fixed day.
    """

    def setUp(self):
        self.client = APIClient()
        self.now = local_dt(2025, 3, 10, 9, 0)
        self.freeze(self.now)

        self.department = Department.objects.create(name="Computer Science", code="CSE")
        self.other_department = Department.objects.create(name="Mechanical", code="MECH")

        self.faculty = self.make_user("teacher@campus.edu", UserRole.FACULTY, "Asha Teacher", self.department)
        self.mentor = self.make_user("mentor@campus.edu", UserRole.MENTOR, "Ravi Mentor", self.department)
        self.hod = self.make_user("hod@campus.edu", UserRole.HOD, "Meera HOD", self.department)
        self.security = self.make_user("gate@campus.edu", UserRole.SECURITY, "Gate Officer")
        self.admin = self.make_user("admin@campus.edu", UserRole.ADMIN, "Site Admin")
        self.other_faculty = self.make_user("mech.teacher@campus.edu", UserRole.FACULTY, "Other Teacher", self.other_department)
        self.other_hod = self.make_user("mech.hod@campus.edu", UserRole.HOD, "Other HOD", self.other_department)

        self.student_class = StudentClass.objects.create(
            name="CSE-A", year=2, department=self.department, class_teacher=self.faculty,
        )
        self.student_class.mentors.add(self.mentor)
        self.student = self.make_student("student@campus.edu", "Kiran Student", "CSE21001")

    def freeze(self, moment):
        if getattr(self, '_clock', None):
            self._clock.stop()
        self._clock = mock.patch('django.utils.timezone.now', return_value=moment)
        self._clock.start()
        self.addCleanup(self._stop_clock)

    def _stop_clock(self):
        if self._clock:
            self._clock.stop()
            self._clock = None

    def make_user(self, email, role, full_name="Test User", department=None, **extra):
        user = CustomUser.objects.create_user(
            email=email, password=PASSWORD, full_name=full_name, department=department, **extra
        )
        UserRole.objects.update_or_create(user=user, defaults={'role': role})
        user.refresh_from_db()
        return user

    def make_student(self, email, full_name, roll_number, student_class=None, attendance=85, parent_phone="9876543210"):
        user = self.make_user(email, UserRole.STUDENT, full_name)
        StudentProfile.objects.create(
            user=user,
            roll_number=roll_number,
            student_class=student_class or self.student_class,
            year=2,
            parent_name="Parent of " + full_name,
            parent_phone=parent_phone,
            attendance_percentage=attendance,
        )
        user.refresh_from_db()
        return user

    def auth(self, user):
        token, _ = Token.objects.get_or_create(user=user)
        self.client.credentials(HTTP_AUTHORIZATION='Bearer ' + token.key)

    def apply_form(self, **overrides):
        data = {
            'reasonCategory': 'Personal/Travel',
            'reason': 'Visiting family for a function in town',
            'dateOfExit': self.now.date().isoformat(),
            'timeOfExit': '10:00 AM',
            'timeOfReturn': '5:00 PM',
            'supportingDocument': pdf_file(),
        }
        data.update(overrides)
        return {k: v for k, v in data.items() if v is not None}

    def create_outpass(self, student=None, status=OutpassRequest.PENDING_FACULTY, **fields):
        student = student or self.student
        profile = student.student_profile
        values = {
            'department': profile.department,
            'student_class': profile.student_class,
            'reason_category': 'personal',
            'reason': 'Visiting family for a function in town',
            'date_of_exit': self.now.date(),
            'exit_time': self.now + timedelta(hours=1),
            'return_time': self.now + timedelta(hours=8),
            'parent_contact': profile.parent_phone,
            'attendance_at_apply': profile.attendance_percentage,
            'status': status,
        }
        values.update(fields)
        outpass = OutpassRequest.objects.create(student=student, **values)
        StatusUpdate.objects.create(outpass=outpass, status=outpass.status, message="Submitted", actor=student)
        return outpass
