import logging
import time

from django.conf import settings

logger = logging.getLogger(__name__)


class RequestTimingMiddleware:
    """Log API requests that take longer than ``SLOW_REQUEST_MS``."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        started = time.monotonic()
        response = self.get_response(request)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        if elapsed_ms >= getattr(settings, 'SLOW_REQUEST_MS', 1000):
            logger.warning('slow request %s %s -> %s in %dms',
                           request.method, request.path, response.status_code, elapsed_ms)
        return response
