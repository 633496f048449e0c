from django.contrib.auth import authenticate
from django.db import transaction
from django.utils import timezone
from rest_framework import serializers

from .models import (
    Department, StudentClass, CustomUser, UserRole, StudentProfile,
    OutpassRequest, StatusUpdate, Gatepass, AuditLog, GlobalSettings,
)
from .classification import normalize_status, priority, attendance_status, humanize_delta
from .permissions import get_role
from .workflow import available_transitions
from .notifications import faculty_for, hods_for


def contact(user):
    return {'id': user.pk, 'name': user.full_name, 'email': user.email, 'phone': user.phone}


def user_payload(user):
    """User object returned at login and by /api/auth/me."""
    profile = getattr(user, 'student_profile', None)
    return {
        'id': user.pk,
        'name': user.full_name,
        'email': user.email,
        'role': get_role(user),
        'phone': user.phone,
        'department': user.department.name if user.department else (
            profile.department.name if profile and profile.department else None
        ),
        'rollNumber': profile.roll_number if profile else None,
        'class': profile.student_class.name if profile and profile.student_class else None,
        'year': profile.year if profile else None,
    }


class AuditLogSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source='user.full_name', read_only=True, default=None)
    user_email = serializers.CharField(source='user.email', read_only=True, default=None)
    role = serializers.CharField(source='user.userrole.get_role_display', read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = '__all__'


class GlobalSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = GlobalSettings
        fields = '__all__'


class DepartmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Department
        fields = ['id', 'name', 'code']


class StudentClassSerializer(serializers.ModelSerializer):
    department_name = serializers.CharField(source='department.name', read_only=True)
    class_teacher_name = serializers.CharField(source='class_teacher.full_name', read_only=True, default=None)

    class Meta:
        model = StudentClass
        fields = ['id', 'name', 'year', 'department', 'department_name', 'class_teacher', 'class_teacher_name', 'mentors']


class StatusUpdateSerializer(serializers.ModelSerializer):
    actor = serializers.CharField(source='actor.full_name', read_only=True, default=None)
    timestamp = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = StatusUpdate
        fields = ['status', 'message', 'actor', 'timestamp']


class GatepassSerializer(serializers.ModelSerializer):
    requestId = serializers.CharField(source='outpass.request_id', read_only=True)
    studentName = serializers.CharField(source='outpass.student.full_name', read_only=True)
    rollNumber = serializers.SerializerMethodField()
    issuedAt = serializers.DateTimeField(source='issued_at', read_only=True)
    validFrom = serializers.DateTimeField(source='valid_from', read_only=True)
    validUntil = serializers.DateTimeField(source='valid_until', read_only=True)
    exitedAt = serializers.DateTimeField(source='exited_at', read_only=True)
    returnedAt = serializers.DateTimeField(source='returned_at', read_only=True)
    state = serializers.SerializerMethodField()
    isLate = serializers.BooleanField(source='is_late', read_only=True)

    class Meta:
        model = Gatepass
        fields = ['code', 'requestId', 'studentName', 'rollNumber', 'issuedAt', 'validFrom', 'validUntil',
                  'exitedAt', 'returnedAt', 'state', 'isLate']

    def get_rollNumber(self, obj):
        profile = getattr(obj.outpass.student, 'student_profile', None)
        return profile.roll_number if profile else None

    def get_state(self, obj):
        return obj.state()


class OutpassSerializer(serializers.ModelSerializer):
    """Outpass as the student sees it."""
    requestId = serializers.CharField(source='request_id', read_only=True)
    reasonCategory = serializers.CharField(source='reason_category', read_only=True)
    reasonCategoryLabel = serializers.CharField(source='get_reason_category_display', read_only=True)
    dateOfExit = serializers.DateField(source='date_of_exit', read_only=True)
    exitTime = serializers.DateTimeField(source='exit_time', read_only=True)
    returnTime = serializers.DateTimeField(source='return_time', read_only=True)
    statusLabel = serializers.CharField(source='get_status_display', read_only=True)
    isEmergency = serializers.BooleanField(source='is_emergency', read_only=True)
    parentContact = serializers.CharField(source='parent_contact', read_only=True)
    alternateContact = serializers.CharField(source='alternate_contact', read_only=True)
    supportingDocumentUrl = serializers.SerializerMethodField()
    rejectionStage = serializers.CharField(source='rejection_stage', read_only=True)
    rejectionReason = serializers.CharField(source='rejection_reason', read_only=True)
    facultyApprover = serializers.CharField(source='faculty_approver.full_name', read_only=True, default=None)
    facultyDecidedAt = serializers.DateTimeField(source='faculty_decided_at', read_only=True)
    hodApprover = serializers.CharField(source='hod_approver.full_name', read_only=True, default=None)
    hodDecidedAt = serializers.DateTimeField(source='hod_decided_at', read_only=True)
    parentVerification = serializers.CharField(source='parent_verification', read_only=True)
    statusUpdates = StatusUpdateSerializer(source='status_updates', many=True, read_only=True)
    gatepass = serializers.SerializerMethodField()
    allowedActions = serializers.SerializerMethodField()
    assignedFaculty = serializers.SerializerMethodField()
    assignedHod = serializers.SerializerMethodField()
    approvalNotes = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = OutpassRequest
        fields = [
            'id', 'requestId', 'reasonCategory', 'reasonCategoryLabel', 'reason', 'dateOfExit', 'exitTime',
            'returnTime', 'status', 'statusLabel', 'isEmergency', 'parentContact', 'alternateContact',
            'supportingDocumentUrl', 'rejectionStage', 'rejectionReason', 'facultyApprover', 'facultyDecidedAt',
            'hodApprover', 'hodDecidedAt', 'parentVerification', 'statusUpdates', 'gatepass', 'allowedActions',
            'assignedFaculty', 'assignedHod', 'approvalNotes', 'createdAt', 'updatedAt',
        ]

    def get_supportingDocumentUrl(self, obj):
        if not obj.supporting_document:
            return None
        request = self.context.get('request')
        url = obj.supporting_document.url
        return request.build_absolute_uri(url) if request else url

    def get_gatepass(self, obj):
        gatepass = getattr(obj, 'gatepass', None)
        return GatepassSerializer(gatepass).data if gatepass else None

    def get_allowedActions(self, obj):
        return available_transitions(obj.status)

    def get_assignedFaculty(self, obj):
        if obj.faculty_approver:
            return [contact(obj.faculty_approver)]
        return [contact(u) for u in faculty_for(obj)]

    def get_assignedHod(self, obj):
        if obj.hod_approver:
            return [contact(obj.hod_approver)]
        return [contact(u) for u in hods_for(obj)]

    def get_approvalNotes(self, obj):
        return obj.hod_notes or obj.faculty_notes or None


class StaffOutpassSerializer(OutpassSerializer):
    """Outpass as faculty and HOD see it, with the student block and queue hints."""
    student = serializers.SerializerMethodField()
    displayStatus = serializers.SerializerMethodField()
    priority = serializers.SerializerMethodField()
    attendanceStatus = serializers.SerializerMethodField()
    facultyApprovedBy = serializers.CharField(source='faculty_approver.full_name', read_only=True, default=None)
    facultyNotes = serializers.CharField(source='faculty_notes', read_only=True)
    parentVerifiedBy = serializers.CharField(source='parent_verified_by.full_name', read_only=True, default=None)
    parentVerificationNotes = serializers.CharField(source='parent_verification_notes', read_only=True)
    requestedAgo = serializers.SerializerMethodField()
    timeInHodQueue = serializers.SerializerMethodField()

    class Meta(OutpassSerializer.Meta):
        fields = OutpassSerializer.Meta.fields + [
            'student', 'displayStatus', 'priority', 'attendanceStatus', 'facultyApprovedBy', 'facultyNotes',
            'parentVerifiedBy', 'parentVerificationNotes', 'requestedAgo', 'timeInHodQueue',
        ]

    def get_student(self, obj):
        user = obj.student
        profile = getattr(user, 'student_profile', None)
        return {
            'id': user.pk,
            'name': user.full_name,
            'email': user.email,
            'phone': user.phone,
            'rollNumber': profile.roll_number if profile else None,
            'class': obj.student_class.name if obj.student_class else None,
            'year': profile.year if profile else None,
            'department': obj.department.name if obj.department else None,
            'attendance': float(obj.attendance_at_apply) if obj.attendance_at_apply is not None else None,
            'parentName': profile.parent_name if profile else None,
            'parentPhone': profile.parent_phone if profile else None,
        }

    def get_displayStatus(self, obj):
        return normalize_status(obj)

    def get_priority(self, obj):
        return priority(obj)

    def get_attendanceStatus(self, obj):
        return attendance_status(obj.attendance_at_apply)

    def get_requestedAgo(self, obj):
        return humanize_delta(timezone.now() - obj.created_at)

    def get_timeInHodQueue(self, obj):
        if obj.status != OutpassRequest.PENDING_HOD or not obj.faculty_decided_at:
            return None
        return humanize_delta(timezone.now() - obj.faculty_decided_at)


class StudentProfileSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source='user.full_name', read_only=True)
    email = serializers.CharField(source='user.email', read_only=True)
    phone = serializers.CharField(source='user.phone', read_only=True)
    rollNumber = serializers.CharField(source='roll_number', read_only=True)
    className = serializers.CharField(source='student_class.name', read_only=True, default=None)
    department = serializers.SerializerMethodField()
    parentName = serializers.CharField(source='parent_name', read_only=True)
    parentPhone = serializers.CharField(source='parent_phone', read_only=True)
    parentPhoneSecondary = serializers.CharField(source='parent_phone_secondary', read_only=True)
    attendancePercentage = serializers.DecimalField(source='attendance_percentage', max_digits=5, decimal_places=2, read_only=True, coerce_to_string=False)
    attendanceStatus = serializers.SerializerMethodField()
    dateOfBirth = serializers.DateField(source='date_of_birth', read_only=True)
    bloodGroup = serializers.CharField(source='blood_group', read_only=True)

    class Meta:
        model = StudentProfile
        fields = ['id', 'name', 'email', 'phone', 'rollNumber', 'className', 'year', 'department', 'parentName',
                  'parentPhone', 'parentPhoneSecondary', 'attendancePercentage', 'attendanceStatus',
                  'dateOfBirth', 'bloodGroup', 'address']

    def get_department(self, obj):
        department = obj.department
        return department.name if department else None

    def get_attendanceStatus(self, obj):
        return attendance_status(obj.attendance_percentage)


class CustomUserSerializer(serializers.ModelSerializer):
    role = serializers.CharField(source='userrole.role', read_only=True, default=None)
    department_name = serializers.CharField(source='department.name', read_only=True, default=None)

    class Meta:
        model = CustomUser
        fields = ['id', 'full_name', 'email', 'phone', 'department', 'department_name', 'is_active', 'is_staff',
                  'role', 'date_joined', 'last_login']


class UserManagementSerializer(serializers.ModelSerializer):
    role = serializers.ChoiceField(source='userrole.role', choices=UserRole.ROLE_CHOICES, required=False)
    department_id = serializers.PrimaryKeyRelatedField(
        source='department',
        queryset=Department.objects.all(),
        required=False,
        allow_null=True
    )
    password = serializers.CharField(write_only=True, required=False, min_length=8)
    # Student profile fields, only used when role is student
    roll_number = serializers.CharField(write_only=True, required=False)
    student_class = serializers.PrimaryKeyRelatedField(queryset=StudentClass.objects.all(), write_only=True, required=False, allow_null=True)
    year = serializers.IntegerField(write_only=True, required=False, min_value=1, max_value=5)
    parent_name = serializers.CharField(write_only=True, required=False, allow_blank=True)
    parent_phone = serializers.CharField(write_only=True, required=False, allow_blank=True)
    parent_phone_secondary = serializers.CharField(write_only=True, required=False, allow_blank=True)
    attendance_percentage = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, write_only=True, required=False, allow_null=True)

    PROFILE_FIELDS = ('roll_number', 'student_class', 'year', 'parent_name', 'parent_phone',
                      'parent_phone_secondary', 'attendance_percentage')

    class Meta:
        model = CustomUser
        fields = ['id', 'full_name', 'email', 'phone', 'is_active', 'department_id', 'role', 'password',
                  'roll_number', 'student_class', 'year', 'parent_name', 'parent_phone', 'parent_phone_secondary',
                  'attendance_percentage']

    def validate(self, attrs):
        role = attrs.get('userrole', {}).get('role')
        if self.instance is None:
            if not attrs.get('password'):
                raise serializers.ValidationError({'password': 'A temporary password is required for new users.'})
            if (role or UserRole.STUDENT) == UserRole.STUDENT and not attrs.get('roll_number'):
                raise serializers.ValidationError({'roll_number': 'Roll number is required for students.'})
        roll_number = attrs.get('roll_number')
        if roll_number:
            clash = StudentProfile.objects.filter(roll_number=roll_number)
            if self.instance is not None:
                clash = clash.exclude(user=self.instance)
            if clash.exists():
                raise serializers.ValidationError({'roll_number': 'This roll number is already assigned.'})
        return attrs

    def _split(self, validated_data):
        userrole_data = validated_data.pop('userrole', {})
        profile_data = {f: validated_data.pop(f) for f in self.PROFILE_FIELDS if f in validated_data}
        password = validated_data.pop('password', None)
        return userrole_data, profile_data, password

    def _save_profile(self, user, role, profile_data):
        if role != UserRole.STUDENT or not profile_data:
            return
        profile = getattr(user, 'student_profile', None)
        if profile is None:
            StudentProfile.objects.create(user=user, **profile_data)
            return
        for attr, value in profile_data.items():
            setattr(profile, attr, value)
        profile.save()

    @transaction.atomic
    def create(self, validated_data):
        userrole_data, profile_data, password = self._split(validated_data)
        user = CustomUser.objects.create_user(password=password, **validated_data)
        # the post_save signal already created a default role
        user_role, _ = UserRole.objects.update_or_create(user=user, defaults={'role': userrole_data.get('role', UserRole.STUDENT)})
        user.userrole = user_role
        self._save_profile(user, user_role.role, profile_data)
        return user

    @transaction.atomic
    def update(self, instance, validated_data):
        userrole_data, profile_data, password = self._split(validated_data)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        if password:
            instance.set_password(password)
        instance.save()

        if 'role' in userrole_data:
            user_role, _ = UserRole.objects.update_or_create(user=instance, defaults={'role': userrole_data['role']})
            instance.userrole = user_role
        self._save_profile(instance, get_role(instance), profile_data)
        return instance

    def to_representation(self, instance):
        return CustomUserSerializer(instance, context=self.context).data


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(style={'input_type': 'password'}, trim_whitespace=False)

    def validate(self, attrs):
        user = authenticate(request=self.context.get('request'), email=attrs['email'], password=attrs['password'])
        if not user:
            raise serializers.ValidationError('Invalid email or password.', code='authorization')
        attrs['user'] = user
        return attrs


def application_view(outpass):
    """Pending request in the shape the faculty dashboard renders."""
    student = outpass.student
    profile = getattr(student, 'student_profile', None)
    exit_local = timezone.localtime(outpass.exit_time)
    return_local = timezone.localtime(outpass.return_time)
    attendance = outpass.attendance_at_apply
    return {
        '_id': outpass.pk,
        'applicationId': outpass.request_id,
        'status': normalize_status(outpass),
        'submittedAt': outpass.created_at,
        'studentInfo': {
            'id': student.pk,
            'name': student.full_name,
            'rollNumber': profile.roll_number if profile else 'N/A',
            'department': outpass.department.name if outpass.department else 'Unknown Department',
            'class': outpass.student_class.name if outpass.student_class else None,
            'attendancePercentage': float(attendance) if attendance is not None else None,
            'attendanceStatus': attendance_status(attendance),
        },
        'requestDetails': {
            'reasonCategory': outpass.get_reason_category_display(),
            'detailedReason': outpass.reason,
            'exitDate': exit_local.date().isoformat(),
            'exitTime': exit_local.strftime('%H:%M'),
            'returnDate': return_local.date().isoformat(),
            'returnTime': return_local.strftime('%H:%M'),
        },
        'parentContacts': {
            'primaryContact': outpass.parent_contact or None,
            'secondaryContact': (profile.parent_phone_secondary if profile else '') or outpass.alternate_contact or None,
            'parentName': profile.parent_name if profile else None,
        },
        'parentVerification': outpass.parent_verification,
        'metadata': {
            'isEmergency': outpass.is_emergency,
            'priority': priority(outpass),
        },
    }
