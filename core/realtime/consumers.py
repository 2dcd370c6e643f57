import json
from channels.generic.websocket import AsyncWebsocketConsumer

from core.services.events import UPDATES_GROUP


class UpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes queue, vitals and diagnostics changes to connected desks."""
    GROUP = UPDATES_GROUP

    async def connect(self):
        await self.channel_layer.group_add(self.GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.GROUP, self.channel_name)

    async def broadcast_update(self, event):
        # event: {"type": "broadcast.update", "topic": "queue", "ts": "...", ...}
        await self.send(json.dumps(event, default=str))

    async def broadcast_refresh(self, event):
        # event: {"type": "broadcast.refresh", "version": int, "ts": "...", "keys": [...]}
        await self.send(json.dumps(event))
