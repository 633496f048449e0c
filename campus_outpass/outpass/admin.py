import csv
from datetime import timedelta, datetime

from django.contrib import admin
from django.contrib.admin import SimpleListFilter
from django.contrib.auth.admin import UserAdmin
from django.http import HttpResponse
from django.utils import timezone
from django.utils.html import format_html

from .forms import CustomUserChangeForm, CustomUserCreationForm, StudentProfileForm
from .models import (
    Department, StudentClass, CustomUser, UserRole, StudentProfile,
    OutpassRequest, StatusUpdate, Gatepass, AuditLog, GlobalSettings,
)

# ==========================================
# 0. CONFIGURATION
# ==========================================
admin.site.site_header = "CAMPUS OUTPASS ADMINISTRATION"
admin.site.site_title = "Outpass Admin Portal"
admin.site.index_title = "Outpass Control Center"

STATUS_COLORS = {
    'pending_faculty': '#ffc107', 'pending_hod': '#17a2b8', 'approved': '#28a745',
    'rejected': '#dc3545', 'cancelled': '#6c757d',
}


# ==========================================
# 1. FILTERS & HELPERS
# ==========================================
class WaitingFilter(SimpleListFilter):
    title = 'Queue Status'
    parameter_name = 'waiting'
    def lookups(self, request, model_admin):
        return (('stale', 'Waiting > 2 hours'), ('today', 'Submitted Today'))
    def queryset(self, request, queryset):
        now = timezone.now()
        if self.value() == 'stale':
            return queryset.filter(created_at__lt=now - timedelta(hours=2), status__in=OutpassRequest.ACTIVE_STATUSES)
        if self.value() == 'today':
            return queryset.filter(created_at__date=timezone.localdate())


def export_to_csv(modeladmin, request, queryset):
    opts = modeladmin.model._meta
    response = HttpResponse(content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename=Outpass_{opts.verbose_name_plural}_{timezone.localdate()}.csv'
    writer = csv.writer(response)
    fields = [field.name for field in opts.get_fields() if not field.many_to_many and not field.one_to_many and not (field.one_to_one and field.auto_created)]
    writer.writerow(fields)
    for obj in queryset:
        data_row = []
        for field in fields:
            value = getattr(obj, field)
            if callable(value): value = value()
            if isinstance(value, datetime): value = timezone.localtime(value).strftime('%Y-%m-%d %H:%M')
            data_row.append(value)
        writer.writerow(data_row)
    return response
export_to_csv.short_description = "Export Selected to CSV"


# ==========================================
# 2. INLINES
# ==========================================
class UserRoleInline(admin.StackedInline):
    model = UserRole
    can_delete = False
    fk_name = 'user'
    classes = ('collapse',)


class StudentProfileInline(admin.StackedInline):
    model = StudentProfile
    form = StudentProfileForm
    fk_name = 'user'
    extra = 0
    classes = ('collapse',)


class StatusUpdateInline(admin.TabularInline):
    model = StatusUpdate
    extra = 0
    can_delete = False
    fields = ('created_at', 'status', 'message', 'actor')
    readonly_fields = fields


class GatepassInline(admin.StackedInline):
    model = Gatepass
    extra = 0
    can_delete = False
    readonly_fields = ('code', 'issued_at', 'valid_from', 'valid_until', 'exited_at', 'returned_at',
                       'exit_recorded_by', 'return_recorded_by')


# ==========================================
# 3. ADMIN CLASSES
# ==========================================
@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'staff_count']
    search_fields = ['name', 'code']
    def staff_count(self, obj): return obj.members.count()


@admin.register(StudentClass)
class StudentClassAdmin(admin.ModelAdmin):
    list_display = ['name', 'year', 'department', 'class_teacher']
    list_filter = ['department', 'year']
    search_fields = ['name']
    filter_horizontal = ['mentors']


class CustomUserAdmin(UserAdmin):
    add_form = CustomUserCreationForm
    form = CustomUserChangeForm
    model = CustomUser
    inlines = [UserRoleInline, StudentProfileInline]

    list_display = ('email', 'full_name', 'department', 'role_badge', 'is_active', 'last_login')
    list_filter = ('userrole__role', 'department', 'is_active')
    search_fields = ('email', 'full_name', 'student_profile__roll_number')
    ordering = ('email',)

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Personal info', {'fields': ('full_name', 'phone', 'department')}),
        ('Permissions', {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions'
            )
        }),
        ('Important dates', {'fields': ('last_login', 'date_joined')}),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'email',
                'full_name',
                'phone',
                'department',
                'password1',
                'password2',
            ),
        }),
    )

    def get_inlines(self, request, obj):
        # the role row is created by a signal on first save
        return self.inlines if obj else []

    def role_badge(self, obj):
        return format_html('<strong>{}</strong>', obj.userrole.get_role_display() if hasattr(obj, 'userrole') else '-')
    role_badge.short_description = "Role"


admin.site.register(CustomUser, CustomUserAdmin)


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ("user", "role")
    search_fields = ("user__email", "user__full_name")
    list_filter = ('role',)


@admin.register(StudentProfile)
class StudentProfileAdmin(admin.ModelAdmin):
    form = StudentProfileForm
    list_display = ('roll_number', 'student_name', 'student_class', 'year', 'attendance_percentage', 'parent_phone')
    list_filter = ('student_class__department', 'student_class', 'year')
    search_fields = ('roll_number', 'user__full_name', 'user__email', 'parent_phone')
    actions = [export_to_csv]
    def student_name(self, obj): return obj.user.full_name


@admin.register(OutpassRequest)
class OutpassRequestAdmin(admin.ModelAdmin):
    list_display = ('request_id', 'student_info', 'reason_category', 'emergency_flag', 'status_badge', 'exit_time', 'waiting_time')
    list_filter = (WaitingFilter, 'status', 'reason_category', 'is_emergency', 'department', 'created_at')
    search_fields = ('request_id', 'student__full_name', 'student__email', 'student__student_profile__roll_number')
    inlines = [StatusUpdateInline, GatepassInline]
    date_hierarchy = 'created_at'
    actions = [export_to_csv]
    list_per_page = 20
    # transitions go through the API so the locking and audit trail apply
    readonly_fields = [f.name for f in OutpassRequest._meta.fields]

    def has_add_permission(self, request): return False

    def student_info(self, obj): return format_html("<strong>{}</strong><br><span style='color:#666;'>{}</span>", obj.student.full_name, obj.student.email)
    def emergency_flag(self, obj):
        return format_html('<span style="color:red; font-weight:bold;">URGENT</span>') if obj.is_emergency else "-"
    emergency_flag.short_description = "Priority"
    def waiting_time(self, obj):
        if obj.status not in OutpassRequest.ACTIVE_STATUSES:
            return "-"
        minutes = int((timezone.now() - obj.created_at).total_seconds() // 60)
        color = "red" if minutes > 120 else "green"
        return format_html('<span style="color: {}; font-weight:bold;">{} min</span>', color, minutes)
    def status_badge(self, obj):
        bg_color = STATUS_COLORS.get(obj.status, '#6c757d')
        return format_html('<span style="background-color:{}; color:white; padding:5px 10px; border-radius:12px; font-size:10px; font-weight:bold;">{}</span>', bg_color, obj.get_status_display().upper())


@admin.register(Gatepass)
class GatepassAdmin(admin.ModelAdmin):
    list_display = ('code', 'outpass', 'valid_from', 'valid_until', 'exited_at', 'returned_at', 'late_flag')
    list_filter = ('valid_from',)
    search_fields = ('code', 'outpass__request_id', 'outpass__student__full_name')
    date_hierarchy = 'valid_from'
    actions = [export_to_csv]
    def has_add_permission(self, request): return False
    def late_flag(self, obj): return format_html('<span style="color:red;">LATE</span>') if obj.is_late else "-"
    late_flag.short_description = "Late"


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('user', 'action', 'target', 'status', 'timestamp', 'ip_address')
    list_filter = ('action', 'status', 'timestamp')
    search_fields = ('user__full_name', 'user__email', 'target', 'ip_address')
    date_hierarchy = 'timestamp'
    actions = [export_to_csv]

    def has_add_permission(self, request): return False
    def has_change_permission(self, request, obj=None): return False


@admin.register(GlobalSettings)
class GlobalSettingsAdmin(admin.ModelAdmin):
    list_display = ('key', 'label', 'value', 'group', 'is_public')
    list_filter = ('group', 'is_public')
    search_fields = ('key', 'label')
