import re
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from .models import OutpassRequest, Gatepass
from .global_settings import get_int_setting

EMERGENCY_KEYWORDS = ('emergency', 'urgent', 'accident', 'sudden', 'fever', 'hospital')

SCORE_WINDOW_DAYS = 90
REJECTION_PENALTY = 5
LATE_RETURN_PENALTY = 10

_NON_ALNUM = re.compile(r'[^a-z0-9]+')


def _squash(value):
    return _NON_ALNUM.sub('', str(value).lower())


def _category_aliases():
    aliases = {}
    for key, label in OutpassRequest.CATEGORY_CHOICES:
        aliases[_squash(key)] = key
        aliases[_squash(label)] = key
        # "Personal/Travel" also matches "personal" and "travel" on their own
        for part in re.split(r'[/&,]', label):
            aliases.setdefault(_squash(part), key)
        if label.lower().endswith('s'):
            aliases.setdefault(_squash(label[:-1]), key)
    return aliases


CATEGORY_ALIASES = _category_aliases()


def normalize_category(value):
    if value is None:
        return None
    squashed = _squash(value)
    if not squashed:
        return None
    return CATEGORY_ALIASES.get(squashed)


def detect_emergency(category, reason):
    text = f"{category or ''} {reason or ''}".lower()
    return any(word in text for word in EMERGENCY_KEYWORDS)


def normalize_status(outpass):
    """Status label used by the faculty list. Emergencies always show as urgent."""
    if outpass.is_emergency:
        return 'urgent'
    if outpass.status == OutpassRequest.PENDING_FACULTY:
        return 'pending'
    if outpass.status == OutpassRequest.PENDING_HOD:
        return 'under_review'
    return outpass.status


def priority(outpass):
    return 'urgent' if outpass.is_emergency else 'normal'


def attendance_status(percentage):
    if percentage is None:
        return 'unknown'
    threshold = get_int_setting('attendance_warning_threshold', settings.OUTPASS_ATTENDANCE_WARNING_THRESHOLD)
    return 'low' if float(percentage) < threshold else 'good'


def student_score(student, now=None):
    now = now or timezone.now()
    since = now - timedelta(days=SCORE_WINDOW_DAYS)
    rejections = OutpassRequest.objects.filter(
        student=student, status=OutpassRequest.REJECTED, updated_at__gte=since,
    ).count()
    late_returns = sum(
        1 for gp in Gatepass.objects.filter(
            outpass__student=student, returned_at__isnull=False, returned_at__gte=since,
        )
        if gp.is_late
    )
    score = 100 - REJECTION_PENALTY * rejections - LATE_RETURN_PENALTY * late_returns
    return max(0, min(100, score))


def humanize_delta(delta):
    """'5 minutes ago' style text for queue ages."""
    seconds = max(0, int(delta.total_seconds()))
    if seconds < 60:
        return 'just now'
    for unit, size in (('day', 86400), ('hour', 3600), ('minute', 60)):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
