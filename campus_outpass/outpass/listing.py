import math
from datetime import date

from django.db.models import Q

from .models import OutpassRequest

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def parse_int(value, default, minimum=1, maximum=None):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    number = max(minimum, number)
    if maximum is not None:
        number = min(maximum, number)
    return number


def parse_bool(value):
    return str(value).strip().lower() in ('true', '1', 'yes')


def parse_iso_date(value):
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


def page_params(params, default_limit=DEFAULT_PAGE_SIZE, max_limit=MAX_PAGE_SIZE):
    page = parse_int(params.get('page'), 1)
    limit = parse_int(params.get('limit'), default_limit, maximum=max_limit)
    return page, limit


def paginate(items, page, limit):
    """
    Slices a queryset (or list) and returns (page_items, pagination) with
    the pagination block the web client reads.
    """
    total = len(items) if isinstance(items, list) else items.count()
    total_pages = max(1, math.ceil(total / limit)) if limit else 1
    start = (page - 1) * limit
    page_items = list(items[start:start + limit])
    return page_items, {
        'currentPage': page,
        'totalPages': total_pages,
        'totalRecords': total,
        'hasNextPage': page < total_pages,
        'hasPrevPage': page > 1,
    }


def search_outpasses(queryset, term):
    term = (term or '').strip()
    if not term:
        return queryset
    return queryset.filter(
        Q(student__full_name__icontains=term)
        | Q(student__email__icontains=term)
        | Q(student__student_profile__roll_number__icontains=term)
        | Q(request_id__icontains=term)
        | Q(reason_category__icontains=term)
        | Q(reason__icontains=term)
    )


def sort_outpasses(queryset, sort_order):
    if (sort_order or '').lower() == 'oldest':
        return queryset.order_by('created_at', 'id')
    return queryset.order_by('-created_at', '-id')


def filter_by_period(queryset, params):
    """year+month, or startDate/endDate (inclusive), on the creation date."""
    year = parse_int(params.get('year'), None, minimum=1970)
    month = parse_int(params.get('month'), None, maximum=12)
    if year and month:
        return queryset.filter(created_at__year=year, created_at__month=month)
    if year:
        return queryset.filter(created_at__year=year)
    start = parse_iso_date(params.get('startDate', ''))
    end = parse_iso_date(params.get('endDate', ''))
    if start:
        queryset = queryset.filter(created_at__date__gte=start)
    if end:
        queryset = queryset.filter(created_at__date__lte=end)
    return queryset


def outcome_summary(queryset):
    return {
        'total': queryset.count(),
        'approved': queryset.filter(status=OutpassRequest.APPROVED).count(),
        'rejected': queryset.filter(status=OutpassRequest.REJECTED).count(),
        'cancelled': queryset.filter(status=OutpassRequest.CANCELLED).count(),
    }
