from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError
from starlette.websockets import WebSocket

from ..schemas import (
    ChatMessageEvent,
    ChatMessageRead,
    HeartbeatEvent,
    JoinStreamEvent,
    client_event_adapter,
)
from .chat_rooms import ChatRoomRegistry
from .storage import Storage
from .stream_monitor import LivenessRegistry


logger = logging.getLogger(__name__)

CHAT_HISTORY_LIMIT = 20


def serialize_message(message: Any) -> Dict[str, Any]:
    return ChatMessageRead.model_validate(message).model_dump(by_alias=True, mode="json")


class ChatService:
    """Live chat over ``/ws``.

    Client events: ``join_stream``, ``chat_message``, ``heartbeat``.
    Server events: ``chat_history``, ``new_message``, ``viewer_count_update``
    and ``message_rejected``; ``stream_started`` and ``stream_stopped`` go to
    every socket in any room. Frames that do not parse, or that target a
    room the sender is not in, are dropped without a reply.
    """

    def __init__(
        self,
        rooms: ChatRoomRegistry,
        storage: Storage,
        liveness: Optional[LivenessRegistry] = None,
        history_limit: int = CHAT_HISTORY_LIMIT,
    ):
        self.rooms = rooms
        self.storage = storage
        self.liveness = liveness
        self.history_limit = history_limit

    async def dispatch(self, websocket: WebSocket, raw: Union[str, bytes]) -> None:
        try:
            event = client_event_adapter.validate_json(raw)
        except ValidationError:
            logger.debug("Dropping malformed chat frame: %.200r", raw)
            return

        if isinstance(event, JoinStreamEvent):
            await self.join(websocket, event.stream_id)
        elif isinstance(event, ChatMessageEvent):
            await self.post_message(websocket, event)
        elif isinstance(event, HeartbeatEvent):
            self.heartbeat(websocket)

    async def join(self, websocket: WebSocket, stream_id: str) -> None:
        previous = self.rooms.room_of(websocket)
        room = self.rooms.join(websocket, stream_id)
        if previous is not None and previous != stream_id:
            await self._announce_viewer_count(previous)

        # Messages posted meanwhile wait, so they land after the history
        async with room.lock:
            try:
                recent = await self.storage.get_chat_messages_by_stream(stream_id, self.history_limit)
            except Exception:
                logger.exception("Error fetching chat history for stream %s", stream_id)
            else:
                # Stored newest first; clients render oldest first
                history = [serialize_message(m) for m in reversed(recent)]
                await self.rooms.send(websocket, {"type": "chat_history", "messages": history})

        await self._announce_viewer_count(stream_id)

    async def post_message(self, websocket: WebSocket, event: ChatMessageEvent) -> None:
        if self.rooms.room_of(websocket) != event.stream_id:
            logger.debug("Dropping chat message for stream %s from a non-member", event.stream_id)
            return
        room = self.rooms.get(event.stream_id)
        if room is None:
            return

        async with room.lock:
            try:
                saved = await self.storage.create_chat_message(event.stream_id, event.user_id, event.message)
            except Exception:
                logger.exception("Error saving chat message for stream %s", event.stream_id)
                await self.rooms.send(websocket, {"type": "message_rejected", "reason": "persistence_failed"})
                return
            pruned = await self.rooms.deliver(room, {"type": "new_message", "message": serialize_message(saved)})

        for stream_id in pruned:
            await self._announce_viewer_count(stream_id)

    async def notify_stream_status(self, stream_id: str, is_live: bool) -> None:
        """Tell every connected chat socket that a broadcaster went on or off air."""
        event = {
            "type": "stream_started" if is_live else "stream_stopped",
            "streamId": stream_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        for pruned_id in await self.rooms.broadcast_all(event):
            await self._announce_viewer_count(pruned_id)

    def heartbeat(self, websocket: WebSocket) -> None:
        stream_id = self.rooms.room_of(websocket)
        if stream_id is None or self.liveness is None:
            return
        self.liveness.record_heartbeat(stream_id, self.rooms.count(stream_id))

    async def disconnect(self, websocket: WebSocket) -> None:
        stream_id = self.rooms.leave(websocket)
        if stream_id is not None:
            await self._announce_viewer_count(stream_id)

    async def _announce_viewer_count(self, stream_id: str) -> None:
        # Dead sockets found while announcing shrink the room; announce again
        while True:
            count = self.rooms.count(stream_id)
            if not count:
                return
            if not await self.rooms.broadcast(stream_id, {"type": "viewer_count_update", "count": count}):
                return
