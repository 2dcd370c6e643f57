"""
Front desk dashboard endpoint.

Returns today's registrations, appointments, queue and diagnostics
figures.  The payload is cached briefly since the dashboard polls.
"""
from __future__ import annotations

from django.core.cache import cache
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..services.dashboard import dashboard_summary

DASHBOARD_CACHE_SECONDS = 30


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard(request):
    today = timezone.localdate()
    cache_key = f'dashboard:{today.isoformat()}'
    data = cache.get(cache_key)
    if data is None:
        data = dashboard_summary(today)
        cache.set(cache_key, data, DASHBOARD_CACHE_SECONDS)
    return Response({'ok': True, 'data': data})
