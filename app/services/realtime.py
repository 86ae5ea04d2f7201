"""Named-channel realtime broadcaster over WebSocket connections."""

from __future__ import annotations

import logging

from fastapi import WebSocket

from app.schemas.ws_messages import BroadcastMessage

logger = logging.getLogger(__name__)


def job_channel(job_id: str) -> str:
    return f"job:{job_id}"


def engineer_channel(engineer_id: str) -> str:
    return f"engineer:{engineer_id}"


class RealtimeBroadcaster:
    """Fan-out of broadcast events to the sockets subscribed to a channel."""

    def __init__(self):
        self._channels: dict[str, list[WebSocket]] = {}

    async def subscribe(self, channel: str, websocket: WebSocket):
        self._channels.setdefault(channel, []).append(websocket)
        await websocket.accept()

    def unsubscribe(self, channel: str, websocket: WebSocket):
        conns = self._channels.get(channel, [])
        if websocket in conns:
            conns.remove(websocket)
        if not conns:
            self._channels.pop(channel, None)

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, []))

    async def broadcast(self, channel: str, event: str, payload: dict) -> int:
        """Send an event to every subscriber of `channel`. Returns deliveries."""
        message = BroadcastMessage(event=event, payload=payload).model_dump_json()
        conns = self._channels.get(channel, [])
        dead = []
        delivered = 0
        for ws in conns:
            try:
                await ws.send_text(message)
                delivered += 1
            except Exception:
                dead.append(ws)
        for ws in dead:
            logger.info(f"Dropping dead subscriber on {channel}")
            self.unsubscribe(channel, ws)
        return delivered
