import logging

from django.conf import settings

from .models import GlobalSettings

logger = logging.getLogger(__name__)


def default_settings():
    """
    Rows written by the settings seed. Values are strings, exactly as stored.
    """
    return [
        {'key': 'system_name', 'label': 'System Name', 'value': 'Campus Outpass Portal', 'group': 'general', 'is_public': True},
        {'key': 'support_email', 'label': 'Support Email Address', 'value': getattr(settings, 'OUTPASS_SUPPORT_EMAIL', ''), 'group': 'general', 'is_public': True},
        {'key': 'system_email', 'label': 'System Email (Outgoing)', 'value': getattr(settings, 'DEFAULT_FROM_EMAIL', ''), 'group': 'general', 'is_public': False},
        {'key': 'maintenance_mode', 'label': 'Maintenance Mode', 'value': 'false', 'group': 'maintenance', 'is_public': True},

        {'key': 'require_parent_verification', 'label': 'Require Parent Verification Before Faculty Approval', 'value': 'true', 'group': 'policy', 'is_public': True},
        {'key': 'attendance_warning_threshold', 'label': 'Attendance Warning Threshold (%)', 'value': str(settings.OUTPASS_ATTENDANCE_WARNING_THRESHOLD), 'group': 'policy', 'is_public': True},
        {'key': 'min_attendance_to_apply', 'label': 'Minimum Attendance To Apply (%, 0 disables)', 'value': str(settings.OUTPASS_MIN_ATTENDANCE_TO_APPLY), 'group': 'policy', 'is_public': True},
        {'key': 'max_document_mb', 'label': 'Max Supporting Document Size (MB)', 'value': str(settings.OUTPASS_MAX_DOCUMENT_MB), 'group': 'policy', 'is_public': True},

        # Email Templates: new request (to faculty)
        {'key': 'email_new_request_subject', 'label': 'New Request Subject (to Faculty)', 'value': '[Outpass] New request {request_id} from {student_name}', 'group': 'notification', 'is_public': False},
        {'key': 'email_new_request_body', 'label': 'New Request Body (to Faculty)', 'value': 'A new outpass request is waiting for your review.\n\nStudent: {student_name} ({roll_number})\nClass: {class_name}\nCategory: {category}\nExit: {exit_time}\nReturn: {return_time}\nReason: {reason}\n\nPlease log in to the faculty dashboard to verify and action this request.', 'group': 'notification', 'is_public': False},

        # Email Templates: forwarded to HOD
        {'key': 'email_hod_review_subject', 'label': 'HOD Review Subject (to HOD)', 'value': '[Outpass] {request_id} forwarded for HOD approval', 'group': 'notification', 'is_public': False},
        {'key': 'email_hod_review_body', 'label': 'HOD Review Body (to HOD)', 'value': 'Outpass request {request_id} from {student_name} ({roll_number}) has been approved by {actor_name} and is waiting for your decision.\n\nCategory: {category}\nExit: {exit_time}\nReturn: {return_time}\nReason: {reason}', 'group': 'notification', 'is_public': False},

        # Email Templates: status updates (to student)
        {'key': 'email_faculty_approved_subject', 'label': 'Faculty Approval Subject (to Student)', 'value': '[Outpass] {request_id} approved by faculty', 'group': 'notification', 'is_public': False},
        {'key': 'email_faculty_approved_body', 'label': 'Faculty Approval Body (to Student)', 'value': 'Dear {student_name},\n\nYour outpass request {request_id} was approved by {actor_name} and has been forwarded to your HOD.\n\nRegards,\n{system_name}', 'group': 'notification', 'is_public': False},
        {'key': 'email_request_rejected_subject', 'label': 'Request Rejected Subject (to Student)', 'value': '[Outpass] {request_id} rejected', 'group': 'notification', 'is_public': False},
        {'key': 'email_request_rejected_body', 'label': 'Request Rejected Body (to Student)', 'value': 'Dear {student_name},\n\nYour outpass request {request_id} was rejected at the {stage} stage by {actor_name}.\n\nReason: {rejection_reason}\n\nRegards,\n{system_name}', 'group': 'notification', 'is_public': False},
        {'key': 'email_gatepass_issued_subject', 'label': 'Gatepass Issued Subject (to Student)', 'value': '[Outpass] Gatepass issued for {request_id}', 'group': 'notification', 'is_public': False},
        {'key': 'email_gatepass_issued_body', 'label': 'Gatepass Issued Body (to Student)', 'value': 'Dear {student_name},\n\nYour outpass request {request_id} has been approved by the HOD.\n\nGatepass code: {gatepass_code}\nValid from: {exit_time}\nValid until: {return_time}\n\nShow this code at the gate when leaving and returning.\n\nRegards,\n{system_name}', 'group': 'notification', 'is_public': False},
    ]


def get_global_setting(key, default_val=None):
    try:
        setting = GlobalSettings.objects.get(key=key)
        return setting.value if setting.value else default_val
    except GlobalSettings.DoesNotExist:
        return default_val


def get_bool_setting(key, default_val=False):
    value = get_global_setting(key)
    if value is None:
        return default_val
    return value.strip().lower() in ('true', '1', 'yes', 'on')


def get_int_setting(key, default_val=0):
    value = get_global_setting(key)
    if value is None:
        return default_val
    try:
        return int(float(value))
    except ValueError:
        logger.warning("Global setting %s has a non-numeric value %r, using %s", key, value, default_val)
        return default_val


def is_maintenance_mode():
    return get_bool_setting('maintenance_mode', False)


def seed_global_settings():
    created = 0
    for row in default_settings():
        _, was_created = GlobalSettings.objects.get_or_create(key=row['key'], defaults=row)
        created += int(was_created)
    return created
