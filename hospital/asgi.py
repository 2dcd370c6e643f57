"""
ASGI entrypoint: Django over HTTP plus the ``ws/updates/`` socket that
front desk, nursing and lab screens listen on.

Settings must be configured and Django set up before the consumer
module is imported.
"""
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "hospital.settings")

import django  # noqa: E402
django.setup()  # noqa: E402

from channels.auth import AuthMiddlewareStack  # noqa: E402
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from django.core.asgi import get_asgi_application  # noqa: E402
from django.urls import path  # noqa: E402

from core.realtime.consumers import UpdatesConsumer  # noqa: E402

websocket_urlpatterns = [
    path("ws/updates/", UpdatesConsumer.as_asgi()),
]

application = ProtocolTypeRouter({
    "http": get_asgi_application(),
    # read-only change feed; no login required to subscribe
    "websocket": AuthMiddlewareStack(URLRouter(websocket_urlpatterns)),
})
