import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class InvalidTransition(APIException):
    """Raised when a status change is not allowed from the current status."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'invalid status transition'
    default_code = 'invalid_transition'

    def __init__(self, current: str, new: str):
        super().__init__(f'cannot change status from {current} to {new}')
        self.current = current
        self.new = new


class BookingConflict(APIException):
    """An appointment cannot be booked; carries alternative slots when known."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'appointment conflicts with an existing booking'
    default_code = 'booking_conflict'

    def __init__(self, errors, warnings=None, suggestions=None):
        super().__init__('; '.join(errors) or self.default_detail)
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        self.suggestions = list(suggestions or [])


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('unhandled error in %s', context.get('view'))
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize response
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    code = getattr(exc, 'default_code', None) or 'api_error'
    error = {'code': code, 'message': detail}
    if isinstance(exc, BookingConflict):
        error['errors'] = exc.errors
        error['warnings'] = exc.warnings
        error['suggestions'] = exc.suggestions
    if resp.status_code >= 500:
        logger.error('api error %s: %s', resp.status_code, detail)
    out = Response({'ok': False, 'error': error}, status=resp.status_code)
    if 'Retry-After' in resp.headers:
        out['Retry-After'] = resp.headers['Retry-After']
    return out
