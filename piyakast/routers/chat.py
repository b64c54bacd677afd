import logging

from fastapi import APIRouter, Depends, Query
from fastapi import WebSocket, WebSocketDisconnect

from ..dependencies import get_chat_service, get_storage
from ..schemas import ChatMessageRead
from ..services.chat import ChatService
from ..services.storage import Storage


logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.get("/api/streams/{stream_id}/chat", response_model=list[ChatMessageRead])
async def get_chat_history(
    stream_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    storage: Storage = Depends(get_storage),
):
    messages = await storage.get_chat_messages_by_stream(stream_id, limit)
    # oldest first, same as the chat_history event
    return list(reversed(messages))


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket, chat: ChatService = Depends(get_chat_service)):
    await websocket.accept()
    logger.debug("Chat socket connected")
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await chat.dispatch(websocket, raw)
    except WebSocketDisconnect:
        pass
    finally:
        # Abrupt and clean closes both end up here
        await chat.disconnect(websocket)
        logger.debug("Chat socket disconnected")
