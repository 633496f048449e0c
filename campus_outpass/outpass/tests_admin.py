from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from rest_framework import status

from .models import CustomUser, UserRole, StudentProfile, OutpassRequest, Gatepass, AuditLog, GlobalSettings
from .forms import CustomUserCreationForm, StudentProfileForm
from .global_settings import default_settings
from .testing import OutpassFixtureMixin, PASSWORD
from . import workflow


class AdminDashboardTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.auth(self.admin)

    def test_dashboard_counts(self):
        self.create_outpass()
        AuditLog.objects.create(action="Failed Login", target="x@campus.edu", status="failed")
        body = self.client.get('/api/admin/dashboard').json()

        self.assertEqual(body['stats']['totalStudents'], 1)
        self.assertEqual(body['stats']['totalEmployees'], 7)
        self.assertEqual(body['stats']['pendingRequests'], 1)
        self.assertEqual(body['stats']['systemAlerts'], 1)
        self.assertEqual(body['systemHealth']['outpassRequests'], 1)

    def test_system_health(self):
        body = self.client.get('/api/admin/system-health').json()

        self.assertEqual(body['database']['status'], 'good')
        self.assertEqual(body['server']['time_zone'], 'Asia/Kolkata')
        self.assertIn(body['storage']['status'], ('good', 'warning'))

    def test_non_admin_is_forbidden(self):
        for user in (self.student, self.faculty, self.hod, self.security):
            self.auth(user)
            self.assertEqual(self.client.get('/api/admin/dashboard').status_code, status.HTTP_403_FORBIDDEN)

    def test_superuser_without_role_row_is_admin(self):
        root = CustomUser.objects.create_superuser(email='root@campus.edu', password=PASSWORD, full_name='Root')
        UserRole.objects.filter(user=root).delete()
        self.auth(CustomUser.objects.get(pk=root.pk))
        self.assertEqual(self.client.get('/api/admin/dashboard').status_code, status.HTTP_200_OK)


class AdminStudentsTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.weak = self.make_student('weak@campus.edu', 'Weak Attendance', 'CSE21002', attendance=60)
        self.late = self.make_student('late@campus.edu', 'Late Returner', 'CSE21003')
        outpass = self.create_outpass(student=self.late, status=OutpassRequest.APPROVED)
        gatepass = workflow.issue_gatepass(outpass, self.now)
        Gatepass.objects.filter(pk=gatepass.pk).update(
            exited_at=outpass.exit_time, returned_at=outpass.return_time.replace(hour=23),
        )
        for _ in range(2):
            self.create_outpass(student=self.late, status=OutpassRequest.REJECTED, rejection_stage='faculty', rejection_reason='No')
        self.auth(self.admin)

    def test_students_with_score_and_status(self):
        body = self.client.get('/api/admin/students').json()

        rows = {s['rollNumber']: s for s in body['students']}
        self.assertEqual(body['count'], 3)
        self.assertEqual((rows['CSE21001']['score'], rows['CSE21001']['status']), (100, 'active'))
        self.assertEqual(rows['CSE21002']['status'], 'warning')
        self.assertEqual((rows['CSE21003']['score'], rows['CSE21003']['status']), (80, 'active'))

    def test_filters(self):
        body = self.client.get('/api/admin/students', {'filter': 'low_attendance'}).json()
        self.assertEqual([s['rollNumber'] for s in body['students']], ['CSE21002'])

        body = self.client.get('/api/admin/students', {'filter': 'warning'}).json()
        self.assertEqual([s['rollNumber'] for s in body['students']], ['CSE21002'])

        body = self.client.get('/api/admin/students', {'search': 'late'}).json()
        self.assertEqual([s['rollNumber'] for s in body['students']], ['CSE21003'])

    def test_csv_export(self):
        response = self.client.get('/api/admin/students', {'export': 'csv'})

        self.assertEqual(response['Content-Type'], 'text/csv')
        lines = response.content.decode().strip().splitlines()
        self.assertEqual(lines[0].split(',')[:3], ['Name', 'Email', 'Roll No'])
        self.assertEqual(len(lines), 4)

    def test_employees(self):
        body = self.client.get('/api/admin/employees').json()
        self.assertEqual(body['count'], 7)

        body = self.client.get('/api/admin/employees', {'role': 'hod'}).json()
        self.assertEqual({e['email'] for e in body['employees']}, {'hod@campus.edu', 'mech.hod@campus.edu'})
        self.assertEqual(body['employees'][0]['roleLabel'], 'HOD')


class UserManagementTest(OutpassFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.auth(self.admin)

    def test_create_student_with_profile(self):
        response = self.client.post('/api/admin/users', {
            'full_name': 'New Student', 'email': 'new@campus.edu', 'password': 'temporary-123',
            'role': 'student', 'roll_number': 'CSE21050', 'student_class': self.student_class.pk,
            'year': 2, 'parent_phone': '9123456780', 'attendance_percentage': '91.5',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        self.assertEqual(response.json()['role'], 'student')
        user = CustomUser.objects.get(email='new@campus.edu')
        self.assertTrue(user.check_password('temporary-123'))
        self.assertEqual(user.student_profile.roll_number, 'CSE21050')
        self.assertEqual(user.student_profile.department, self.department)
        self.assertEqual(UserRole.objects.filter(user=user).count(), 1)
        self.assertTrue(AuditLog.objects.filter(action="User Created", target='new@campus.edu').exists())

    def test_create_staff_member(self):
        response = self.client.post('/api/admin/users', {
            'full_name': 'New HOD', 'email': 'newhod@campus.edu', 'password': 'temporary-123',
            'role': 'hod', 'department_id': self.other_department.pk,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        user = CustomUser.objects.get(email='newhod@campus.edu')
        self.assertEqual(user.role, 'hod')
        self.assertEqual(user.department, self.other_department)
        self.assertFalse(StudentProfile.objects.filter(user=user).exists())

    def test_student_needs_unique_roll_number(self):
        response = self.client.post('/api/admin/users', {
            'full_name': 'No Roll', 'email': 'noroll@campus.edu', 'password': 'temporary-123', 'role': 'student',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('roll_number', response.json()['errors'])

        response = self.client.post('/api/admin/users', {
            'full_name': 'Dup Roll', 'email': 'dup@campus.edu', 'password': 'temporary-123',
            'role': 'student', 'roll_number': 'CSE21001',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_password_required_on_create(self):
        response = self.client.post('/api/admin/users', {
            'full_name': 'No Pass', 'email': 'nopass@campus.edu', 'role': 'faculty',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.json()['errors'])

    def test_update_role_and_attendance(self):
        response = self.client.patch(f'/api/admin/users/{self.student.pk}', {'attendance_percentage': '70'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.content)
        self.student.student_profile.refresh_from_db()
        self.assertEqual(float(self.student.student_profile.attendance_percentage), 70.0)

        response = self.client.patch(f'/api/admin/users/{self.faculty.pk}', {'role': 'mentor'}, format='json')
        self.assertEqual(response.json()['role'], 'mentor')

    def test_list_by_role(self):
        body = self.client.get('/api/admin/users', {'role': 'faculty'}).json()
        self.assertEqual({u['email'] for u in body}, {'teacher@campus.edu', 'mech.teacher@campus.edu'})

    def test_admin_cannot_delete_self(self):
        response = self.client.delete(f'/api/admin/users/{self.admin.pk}')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.delete(f'/api/admin/users/{self.other_faculty.pk}')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertTrue(AuditLog.objects.filter(action="User Deleted").exists())


class GlobalSettingsApiTest(OutpassFixtureMixin, TestCase):

    def test_seed_and_visibility(self):
        self.auth(self.admin)
        body = self.client.post('/api/admin/settings/seed').json()
        self.assertEqual(body['created'], len(default_settings()))
        self.assertEqual(self.client.post('/api/admin/settings/seed').json()['created'], 0)
        self.assertEqual(len(self.client.get('/api/admin/settings').json()), len(default_settings()))

        self.auth(self.student)
        keys = {row['key'] for row in self.client.get('/api/admin/settings').json()}
        self.assertIn('maintenance_mode', keys)
        self.assertNotIn('email_new_request_subject', keys)

    def test_seed_keeps_edited_values(self):
        GlobalSettings.objects.create(key='system_name', label='System Name', value='North Campus Gate')
        self.auth(self.admin)
        self.client.post('/api/admin/settings/seed')
        self.assertEqual(GlobalSettings.objects.get(key='system_name').value, 'North Campus Gate')

    def test_only_admin_can_change_settings(self):
        setting = GlobalSettings.objects.create(key='max_document_mb', label='Max', value='5', is_public=True)
        self.auth(self.faculty)
        response = self.client.patch(f'/api/admin/settings/{setting.pk}', {'value': '50'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.auth(self.admin)
        response = self.client.patch(f'/api/admin/settings/{setting.pk}', {'value': '2'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(AuditLog.objects.filter(action="Settings Update", target='max_document_mb').exists())


class AuditLogApiTest(OutpassFixtureMixin, TestCase):

    def test_filters(self):
        AuditLog.objects.create(user=self.faculty, action="Rejected by faculty", target="Outpass OP1")
        AuditLog.objects.create(action="Failed Login", target="x@campus.edu", status="failed")
        self.auth(self.admin)

        body = self.client.get('/api/admin/audit-logs', {'status': 'failed'}).json()
        self.assertEqual([log['action'] for log in body], ['Failed Login'])

        body = self.client.get('/api/admin/audit-logs', {'user': 'teacher@'}).json()
        self.assertEqual(body[0]['user_name'], 'Asha Teacher')
        self.assertEqual(body[0]['role'], 'Faculty')


class ReferenceDataTest(OutpassFixtureMixin, TestCase):

    def test_departments_read_for_all_write_for_admin(self):
        self.auth(self.student)
        self.assertEqual(len(self.client.get('/api/admin/departments').json()), 2)
        response = self.client.post('/api/admin/departments', {'name': 'Civil', 'code': 'CIV'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.auth(self.admin)
        response = self.client.post('/api/admin/departments', {'name': 'Civil', 'code': 'CIV'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_classes(self):
        self.auth(self.admin)
        response = self.client.post('/api/admin/classes', {
            'name': 'CSE-B', 'year': 3, 'department': self.department.pk, 'class_teacher': self.faculty.pk, 'mentors': [],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        self.assertEqual(response.json()['department_name'], 'Computer Science')


class AdminFormsTest(OutpassFixtureMixin, TestCase):

    def profile_form(self, **overrides):
        data = {
            'user': self.make_user('form@campus.edu', 'student', 'Form Student').pk,
            'roll_number': 'CSE21099', 'student_class': self.student_class.pk, 'year': 2,
            'parent_name': 'Parent', 'parent_phone': '98765 43210', 'parent_phone_secondary': '',
            'attendance_percentage': '88', 'blood_group': '', 'address': '',
        }
        data.update(overrides)
        return StudentProfileForm(data=data)

    def test_parent_phone_is_normalized(self):
        form = self.profile_form()
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data['parent_phone'], '9876543210')

    def test_parent_phone_must_have_ten_digits(self):
        form = self.profile_form(parent_phone='12345')
        self.assertFalse(form.is_valid())
        self.assertIn('parent_phone', form.errors)

        form = self.profile_form(parent_phone='9876543210', parent_phone_secondary='555')
        self.assertIn('parent_phone_secondary', form.errors)

    def test_user_creation_form(self):
        form = CustomUserCreationForm(data={
            'email': 'added@campus.edu', 'full_name': 'Added User', 'phone': '',
            'password1': 'Long-enough-pass-1', 'password2': 'Long-enough-pass-1',
        })
        self.assertTrue(form.is_valid(), form.errors)
        user = form.save()
        self.assertTrue(user.check_password('Long-enough-pass-1'))
        self.assertEqual(user.role, 'student')


class MigrationStateTest(TestCase):

    def test_models_match_migrations(self):
        out = StringIO()
        try:
            call_command('makemigrations', 'outpass', '--check', '--dry-run', stdout=out)
        except SystemExit:
            self.fail("Models have changes without a migration:\n" + out.getvalue())
