import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from starlette.websockets import WebSocket


logger = logging.getLogger(__name__)


class ChatRoom:
    def __init__(self, stream_id: str):
        self.stream_id = stream_id
        self.members: Set[WebSocket] = set()
        # Held while a message is persisted and fanned out so every member
        # observes the same order
        self.lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.members)


class ChatRoomRegistry:
    """Groups chat sockets by stream.

    A socket is in at most one room; joining another room moves it. Empty
    rooms are deleted. Membership changes never await, so they are atomic on
    the event loop.
    """

    def __init__(self):
        self._rooms: Dict[str, ChatRoom] = {}
        self._memberships: Dict[WebSocket, str] = {}

    def join(self, websocket: WebSocket, stream_id: str) -> ChatRoom:
        current = self._memberships.get(websocket)
        if current is not None and current != stream_id:
            self.leave(websocket)
        room = self._rooms.get(stream_id)
        if room is None:
            room = self._rooms[stream_id] = ChatRoom(stream_id)
        room.members.add(websocket)
        self._memberships[websocket] = stream_id
        return room

    def leave(self, websocket: WebSocket) -> Optional[str]:
        """Remove the socket from its room; returns the room's stream id."""
        stream_id = self._memberships.pop(websocket, None)
        if stream_id is None:
            return None
        room = self._rooms.get(stream_id)
        if room is not None:
            room.members.discard(websocket)
            if not room.members:
                self._rooms.pop(stream_id, None)
        return stream_id

    def room_of(self, websocket: WebSocket) -> Optional[str]:
        return self._memberships.get(websocket)

    def get(self, stream_id: str) -> Optional[ChatRoom]:
        return self._rooms.get(stream_id)

    def count(self, stream_id: str) -> int:
        room = self._rooms.get(stream_id)
        return len(room) if room is not None else 0

    def rooms(self) -> List[str]:
        return list(self._rooms)

    async def send(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug("Send to chat socket failed: %s", e)
            return False

    async def broadcast(self, stream_id: str, message: Dict[str, Any]) -> Set[str]:
        room = self._rooms.get(stream_id)
        if room is None:
            return set()
        async with room.lock:
            return await self.deliver(room, message)

    async def broadcast_all(self, message: Dict[str, Any]) -> Set[str]:
        """Send to every socket in any room, one room at a time."""
        pruned: Set[str] = set()
        for room in list(self._rooms.values()):
            async with room.lock:
                pruned |= await self.deliver(room, message)
        return pruned

    async def deliver(self, room: ChatRoom, message: Dict[str, Any]) -> Set[str]:
        """Send to every member of ``room``; the caller holds ``room.lock``.

        Sockets that fail are dropped from the registry. Returns the ids of
        rooms that lost a member this way, so their size can be re-announced.
        """
        pruned: Set[str] = set()
        for ws in list(room.members):
            if await self.send(ws, message):
                continue
            if self._memberships.get(ws) == room.stream_id:
                self.leave(ws)
                pruned.add(room.stream_id)
        return pruned
