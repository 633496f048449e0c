import os
import re
from datetime import datetime, date

from django.conf import settings
from django.utils import timezone

from .classification import normalize_category, detect_emergency
from .exceptions import ApplyValidationError, WorkflowForbidden
from .global_settings import get_int_setting

REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 500
DOCUMENT_EXTENSIONS = ('.jpg', '.jpeg', '.pdf')
DOCUMENT_REQUIRED_CATEGORIES = ('personal', 'appointment', 'academic')

_TIME_24H = re.compile(r'^(\d{1,2}):(\d{2})$')
_TIME_12H = re.compile(r'^(\d{1,2}):(\d{2})\s*([AaPp][Mm])$')


def digits_only(value):
    return re.sub(r'\D', '', value or '')


def parse_time(value):
    """
    Accepts '14:30' or '2:30 PM'. Returns a datetime.time or None.
    """
    value = (value or '').strip()
    match = _TIME_12H.match(value)
    if match:
        hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hour <= 12 or minute > 59:
            return None
        if meridiem == 'AM':
            hour = 0 if hour == 12 else hour
        else:
            hour = 12 if hour == 12 else hour + 12
        return datetime.min.replace(hour=hour, minute=minute).time()
    match = _TIME_24H.match(value)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return None
        return datetime.min.replace(hour=hour, minute=minute).time()
    return None


def parse_date(value):
    try:
        return date.fromisoformat((value or '').strip())
    except ValueError:
        return None


def validate_document(upload):
    """Returns an error message for the uploaded proof document, or None."""
    ext = os.path.splitext(upload.name)[1].lower()
    if ext not in DOCUMENT_EXTENSIONS:
        return 'Please upload a JPEG or PDF file'
    max_mb = get_int_setting('max_document_mb', settings.OUTPASS_MAX_DOCUMENT_MB)
    if upload.size > max_mb * 1024 * 1024:
        return f'File size must be less than {max_mb}MB'
    return None


def validate_apply_form(student, data, files, now=None):
    """
    Checks a multipart apply form against the student's record.
    Returns the cleaned values or raises ApplyValidationError with every field error.
    """
    now = now or timezone.now()
    today = timezone.localtime(now).date()
    errors = {}
    cleaned = {}

    profile = getattr(student, 'student_profile', None)
    if profile is None:
        raise ApplyValidationError({'profile': 'Student profile not found. Please contact the administrator.'})

    parent_contact = digits_only(profile.parent_phone)
    if len(parent_contact) != 10:
        errors['parentContact'] = 'No valid parent contact on record. Please contact the administrator.'
    cleaned['parent_contact'] = parent_contact

    raw_category = data.get('reasonCategory')
    category = normalize_category(raw_category)
    if not raw_category:
        errors['reasonCategory'] = 'Please select a reason category'
    elif category is None:
        errors['reasonCategory'] = f'Unknown reason category "{raw_category}"'
    cleaned['reason_category'] = category

    reason = (data.get('reason') or '').strip()
    if not reason:
        errors['reason'] = 'Please provide a detailed reason'
    elif len(reason) < REASON_MIN_LENGTH:
        errors['reason'] = f'Please provide at least {REASON_MIN_LENGTH} characters'
    elif len(reason) > REASON_MAX_LENGTH:
        errors['reason'] = f'Detailed reason cannot exceed {REASON_MAX_LENGTH} characters'
    cleaned['reason'] = reason

    exit_date = parse_date(data.get('dateOfExit'))
    if exit_date is None:
        errors['dateOfExit'] = 'Please select a valid exit date'
    elif exit_date != today:
        errors['dateOfExit'] = "You can only apply for today's date"
    cleaned['date_of_exit'] = exit_date

    exit_clock = parse_time(data.get('timeOfExit'))
    return_clock = parse_time(data.get('timeOfReturn'))
    if exit_clock is None:
        errors['timeOfExit'] = 'Please provide a valid exit time'
    if return_clock is None:
        errors['timeOfReturn'] = 'Please provide a valid return time'

    if exit_clock and return_clock and 'dateOfExit' not in errors:
        tz = timezone.get_current_timezone()
        exit_time = timezone.make_aware(datetime.combine(exit_date, exit_clock), tz)
        return_time = timezone.make_aware(datetime.combine(exit_date, return_clock), tz)
        if exit_time <= now:
            errors['timeOfExit'] = 'Exit time must be after the current time'
        if return_time <= exit_time:
            errors['timeOfReturn'] = 'Return time must be after exit time'
        cleaned['exit_time'] = exit_time
        cleaned['return_time'] = return_time

    alternate = data.get('alternateContact')
    cleaned['alternate_contact'] = ''
    if alternate:
        alternate_digits = digits_only(alternate)
        if len(alternate_digits) != 10:
            errors['alternateContact'] = 'Please enter a valid 10-digit phone number'
        cleaned['alternate_contact'] = alternate_digits

    document = files.get('supportingDocument')
    if document:
        document_error = validate_document(document)
        if document_error:
            errors['supportingDocument'] = document_error
    elif category in DOCUMENT_REQUIRED_CATEGORIES:
        errors['supportingDocument'] = 'Please upload proof document (JPEG or PDF)'
    cleaned['supporting_document'] = document

    if errors:
        raise ApplyValidationError(errors)

    cleaned['is_emergency'] = detect_emergency(category, reason)
    return cleaned


def check_eligibility(profile, is_emergency):
    minimum = get_int_setting('min_attendance_to_apply', settings.OUTPASS_MIN_ATTENDANCE_TO_APPLY)
    if minimum <= 0 or is_emergency or profile.attendance_percentage is None:
        return
    if float(profile.attendance_percentage) < minimum:
        raise WorkflowForbidden(
            f'Your attendance ({profile.attendance_percentage}%) is below the required {minimum}% to apply for an outpass.'
        )
