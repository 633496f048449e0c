from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone


class Department(models.Model):
    name = models.CharField(max_length=100, unique=True)
    code = models.CharField(max_length=20, unique=True)

    def __str__(self):
        return self.name


class StudentClass(models.Model):
    name = models.CharField(max_length=50)
    year = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1), MaxValueValidator(5)])
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="classes")
    class_teacher = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="classes_as_teacher")
    mentors = models.ManyToManyField(settings.AUTH_USER_MODEL, blank=True, related_name="mentored_classes")

    class Meta:
        verbose_name = "Class"
        verbose_name_plural = "Classes"
        ordering = ['year', 'name']
        constraints = [
            models.UniqueConstraint(fields=['department', 'name'], name='unique_class_per_department'),
        ]

    def __str__(self):
        return f"{self.name} ({self.department.code})"


class CustomUserManager(BaseUserManager):
    use_in_migrations = True
    def create_user(self, email, password=None, **extra_fields):
        if not email: raise ValueError("Email is required")
        user = self.model(email=self.normalize_email(email), **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user
    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        return self.create_user(email, password, **extra_fields)


class CustomUser(AbstractBaseUser, PermissionsMixin):
    email = models.EmailField(unique=True)
    full_name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, blank=True)
    department = models.ForeignKey(Department, on_delete=models.SET_NULL, null=True, blank=True, related_name="members")
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(default=timezone.now)
    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['full_name']
    objects = CustomUserManager()
    def __str__(self): return f"{self.full_name} ({self.email})"
    def get_full_name(self): return self.full_name
    def get_short_name(self): return self.full_name.split(" ")[0] if self.full_name else self.email

    @property
    def role(self):
        if hasattr(self, 'userrole'):
            return self.userrole.role
        return UserRole.ADMIN if self.is_superuser else None


class UserRole(models.Model):
    STUDENT = 'student'
    FACULTY = 'faculty'
    MENTOR = 'mentor'
    HOD = 'hod'
    SECURITY = 'protocol_officer'
    ADMIN = 'admin'
    ROLE_CHOICES = [
        (STUDENT, 'Student'), (FACULTY, 'Faculty'), (MENTOR, 'Mentor'),
        (HOD, 'HOD'), (SECURITY, 'Security'), (ADMIN, 'Administrator'),
    ]
    FACULTY_ROLES = (FACULTY, MENTOR)
    EMPLOYEE_ROLES = (FACULTY, MENTOR, HOD, SECURITY, ADMIN)

    user = models.OneToOneField("outpass.CustomUser", on_delete=models.CASCADE)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=STUDENT)
    def __str__(self): return f"{self.user.full_name} - {self.role}"


class StudentProfile(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="student_profile")
    roll_number = models.CharField(max_length=30, unique=True)
    student_class = models.ForeignKey(StudentClass, on_delete=models.SET_NULL, null=True, blank=True, related_name="students")
    year = models.PositiveSmallIntegerField(default=1)
    parent_name = models.CharField(max_length=255, blank=True)
    parent_phone = models.CharField(max_length=20, blank=True)
    parent_phone_secondary = models.CharField(max_length=20, blank=True)
    attendance_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    date_of_birth = models.DateField(null=True, blank=True)
    blood_group = models.CharField(max_length=5, blank=True)
    address = models.TextField(blank=True)

    def __str__(self): return f"{self.user.full_name} ({self.roll_number})"

    @property
    def department(self):
        if self.student_class_id:
            return self.student_class.department
        return self.user.department


class OutpassRequest(models.Model):
    PENDING_FACULTY = 'pending_faculty'
    PENDING_HOD = 'pending_hod'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (PENDING_FACULTY, 'Pending Faculty'), (PENDING_HOD, 'Pending HOD'),
        (APPROVED, 'Approved'), (REJECTED, 'Rejected'), (CANCELLED, 'Cancelled'),
    ]
    ACTIVE_STATUSES = (PENDING_FACULTY, PENDING_HOD)
    TERMINAL_STATUSES = (APPROVED, REJECTED, CANCELLED)

    CATEGORY_CHOICES = [
        ('emergency', 'Emergency'), ('personal', 'Personal/Travel'), ('appointment', 'Appointments'),
        ('religious', 'Religious'), ('academic', 'Academic'),
    ]
    STAGE_CHOICES = [('', 'None'), ('faculty', 'Faculty'), ('hod', 'HOD')]

    VERIFICATION_PENDING = 'pending'
    VERIFICATION_CONFIRMED = 'confirmed'
    VERIFICATION_DENIED = 'denied'
    VERIFICATION_CHOICES = [
        (VERIFICATION_PENDING, 'Pending'), (VERIFICATION_CONFIRMED, 'Confirmed'), (VERIFICATION_DENIED, 'Denied'),
    ]

    request_id = models.CharField(max_length=20, unique=True, null=True, blank=True, editable=False)
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="outpasses")
    department = models.ForeignKey(Department, on_delete=models.SET_NULL, null=True, related_name="outpasses")
    student_class = models.ForeignKey(StudentClass, on_delete=models.SET_NULL, null=True, blank=True, related_name="outpasses")

    reason_category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    reason = models.TextField()
    date_of_exit = models.DateField()
    exit_time = models.DateTimeField()
    return_time = models.DateTimeField()
    parent_contact = models.CharField(max_length=20)
    alternate_contact = models.CharField(max_length=20, blank=True)
    supporting_document = models.FileField(upload_to='outpass/documents/%Y/%m/', blank=True)
    attendance_at_apply = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    is_emergency = models.BooleanField(default=False)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING_FACULTY)
    rejection_stage = models.CharField(max_length=10, choices=STAGE_CHOICES, blank=True, default='')
    rejection_reason = models.TextField(blank=True)

    faculty_approver = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="faculty_decisions")
    faculty_decided_at = models.DateTimeField(null=True, blank=True)
    faculty_notes = models.TextField(blank=True)
    hod_approver = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="hod_decisions")
    hod_decided_at = models.DateTimeField(null=True, blank=True)
    hod_notes = models.TextField(blank=True)

    parent_verification = models.CharField(max_length=10, choices=VERIFICATION_CHOICES, default=VERIFICATION_PENDING)
    parent_verified_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="parent_verifications")
    parent_verified_at = models.DateTimeField(null=True, blank=True)
    parent_verification_notes = models.TextField(blank=True)

    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'department'], name='outpass_status_dept_idx'),
            models.Index(fields=['student', 'status'], name='outpass_student_status_idx'),
        ]

    def __str__(self):
        return f"{self.request_id} - {self.student.full_name} ({self.status})"

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        if not self.request_id:
            stamp = timezone.localtime(self.created_at).strftime('%y%m%d')
            self.request_id = f"OP{stamp}{self.pk:05d}"
            OutpassRequest.objects.filter(pk=self.pk).update(request_id=self.request_id)

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES


class StatusUpdate(models.Model):
    outpass = models.ForeignKey(OutpassRequest, on_delete=models.CASCADE, related_name="status_updates")
    status = models.CharField(max_length=20, choices=OutpassRequest.STATUS_CHOICES)
    message = models.CharField(max_length=255)
    actor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self): return f"{self.outpass.request_id}: {self.message}"


class Gatepass(models.Model):
    outpass = models.OneToOneField(OutpassRequest, on_delete=models.CASCADE, related_name="gatepass")
    code = models.CharField(max_length=16, unique=True)
    issued_at = models.DateTimeField(default=timezone.now)
    valid_from = models.DateTimeField()
    valid_until = models.DateTimeField()
    exited_at = models.DateTimeField(null=True, blank=True)
    returned_at = models.DateTimeField(null=True, blank=True)
    exit_recorded_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="recorded_exits")
    return_recorded_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="recorded_returns")

    def __str__(self): return f"{self.code} ({self.outpass.request_id})"

    @property
    def is_late(self):
        if not self.returned_at:
            return False
        return self.returned_at > self.valid_until

    def state(self, now=None):
        now = now or timezone.now()
        if self.returned_at:
            return 'returned'
        if self.exited_at:
            return 'out'
        if now > self.valid_until:
            return 'expired'
        return 'issued'


class AuditLog(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=100)
    target = models.CharField(max_length=255, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    status = models.CharField(max_length=20, default="success")
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']
        verbose_name = "Audit Log"
        verbose_name_plural = "Audit Logs"

    def __str__(self):
        who = self.user.full_name if self.user else "System"
        return f"{who} ({self.action})"


class GlobalSettings(models.Model):
    GROUP_CHOICES = [('general', 'General'), ('policy', 'Policy'), ('notification', 'Notification'), ('maintenance', 'Maintenance')]
    key = models.CharField(max_length=100, unique=True)
    label = models.CharField(max_length=255)
    value = models.TextField(blank=True)
    group = models.CharField(max_length=20, choices=GROUP_CHOICES, default='general')
    is_public = models.BooleanField(default=False)

    class Meta:
        verbose_name = "Global Setting"
        verbose_name_plural = "Global Settings"

    def __str__(self): return f"{self.label} = {self.value}"
