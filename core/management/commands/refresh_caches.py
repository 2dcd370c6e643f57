from django.core.cache import cache
from django.core.management.base import BaseCommand
from django.utils import timezone

from core.services.dashboard import dashboard_summary
from core.services.doctors import cache_timeout, cache_version, invalidate_doctor_cache, list_doctors, list_specializations
from core.services.events import publish_refresh
from core.views.dashboard import DASHBOARD_CACHE_SECONDS


class Command(BaseCommand):
    help = "Warm and refresh API caches; broadcast WebSocket refresh event."

    def handle(self, *args, **options):
        now = timezone.now()
        keys_refreshed = []

        # a new version orphans every previously cached doctor listing
        invalidate_doctor_cache()
        version = cache_version()

        data, total = list_doctors()
        ck = f"doctors:v={version}:q=:s=:d=:duty=0:st=active:p=None:ps=None"
        cache.set(ck, {'ok': True, 'data': data, 'pagination': {'total': total, 'page': 1, 'pageSize': total}},
                  cache_timeout())
        keys_refreshed.append(ck)

        ck = f"doctors:v={version}:specializations"
        cache.set(ck, list_specializations(), cache_timeout())
        keys_refreshed.append(ck)

        today = timezone.localdate()
        ck = f"dashboard:{today.isoformat()}"
        cache.set(ck, dashboard_summary(today), DASHBOARD_CACHE_SECONDS)
        keys_refreshed.append(ck)

        publish_refresh(keys_refreshed)
        self.stdout.write(self.style.SUCCESS(f"Refreshed {len(keys_refreshed)} keys at {now}"))
