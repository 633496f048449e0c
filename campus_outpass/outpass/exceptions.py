import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class WorkflowConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This request has already been processed.'
    default_code = 'conflict'


class WorkflowForbidden(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You are not allowed to act on this request.'
    default_code = 'forbidden'


class ApplyValidationError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid outpass application.'
    default_code = 'invalid'

    def __init__(self, errors, detail=None):
        self.errors = errors
        if detail is None and errors:
            detail = next(iter(errors.values()))
        super().__init__(detail)


class MaintenanceMode(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'System is currently in maintenance mode. Only Administrators can access.'
    default_code = 'maintenance'


def _first_message(detail):
    if isinstance(detail, list):
        return _first_message(detail[0]) if detail else ''
    if isinstance(detail, dict):
        if not detail:
            return ''
        key, value = next(iter(detail.items()))
        message = _first_message(value)
        if key in ('detail', 'non_field_errors'):
            return message
        return f"{key}: {message}"
    return str(detail)


def api_exception_handler(exc, context):
    """
    Every error leaves the API as {"success": false, "message": ...}.
    Field errors are kept under "errors" so forms can highlight them.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    body = {'success': False, 'message': _first_message(response.data)}
    errors = getattr(exc, 'errors', None)
    if errors:
        body['errors'] = errors
    elif isinstance(response.data, dict) and 'detail' not in response.data:
        body['errors'] = response.data

    if response.status_code >= 500:
        logger.error("API error %s: %s", response.status_code, body['message'])
    response.data = body
    return response
