"""Push change notifications to websocket clients on the ``updates`` group."""
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.utils import timezone

logger = logging.getLogger(__name__)

UPDATES_GROUP = "updates"


def _send(event: dict) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(UPDATES_GROUP, event)
    except (OSError, RuntimeError):
        # a missing redis must not fail the request that changed the data
        logger.exception("failed to publish %s", event.get("topic"))


def publish(topic: str, **payload) -> None:
    """Broadcast ``topic`` once the surrounding transaction commits."""
    now = timezone.now()
    event = {"type": "broadcast.update", "topic": topic, "ts": now.isoformat(), **payload}
    transaction.on_commit(lambda: _send(event))


def publish_refresh(keys: list[str]) -> None:
    now = timezone.now()
    _send({"type": "broadcast.refresh", "version": int(now.timestamp()), "ts": now.isoformat(), "keys": keys[:50]})
