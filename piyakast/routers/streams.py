import logging

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_chat_service, get_monitor, get_storage
from ..schemas import ActiveStreamsRead, HeartbeatCreate, StreamCreate, StreamRead
from ..services.chat import ChatService
from ..services.storage import Storage
from ..services.stream_monitor import StreamMonitor


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/streams", tags=["streams"])


async def _require_stream(stream_id: str, storage: Storage):
    stream = await storage.get_stream(stream_id)
    if not stream:
        raise HTTPException(status_code=404, detail="Stream not found")
    return stream


@router.post("", response_model=StreamRead, status_code=201)
async def create_stream(payload: StreamCreate, storage: Storage = Depends(get_storage)):
    return await storage.create_stream(
        user_id=payload.user_id,
        title=payload.title,
        description=payload.description,
        category=payload.category,
    )


@router.get("", response_model=list[StreamRead])
async def list_streams(live: bool = False, storage: Storage = Depends(get_storage)):
    # latest first
    return await storage.list_streams(live_only=live)


@router.get("/active", response_model=ActiveStreamsRead)
async def list_active_streams(monitor: StreamMonitor = Depends(get_monitor)):
    # Streams with a heartbeat inside the timeout window, not the DB flag
    return ActiveStreamsRead(stream_ids=monitor.registry.list_active_stream_ids())


@router.get("/{stream_id}", response_model=StreamRead)
async def get_stream(stream_id: str, storage: Storage = Depends(get_storage)):
    return await _require_stream(stream_id, storage)


@router.post("/{stream_id}/start", response_model=StreamRead)
async def start_stream(
    stream_id: str,
    storage: Storage = Depends(get_storage),
    monitor: StreamMonitor = Depends(get_monitor),
    chat: ChatService = Depends(get_chat_service),
):
    await _require_stream(stream_id, storage)
    await monitor.start_stream(stream_id)
    logger.info("Stream %s started", stream_id)
    await chat.notify_stream_status(stream_id, is_live=True)
    return await storage.get_stream(stream_id)


@router.post("/{stream_id}/stop", response_model=StreamRead)
async def stop_stream(
    stream_id: str,
    storage: Storage = Depends(get_storage),
    monitor: StreamMonitor = Depends(get_monitor),
    chat: ChatService = Depends(get_chat_service),
):
    await _require_stream(stream_id, storage)
    await monitor.end_stream(stream_id)
    logger.info("Stream %s stopped", stream_id)
    await chat.notify_stream_status(stream_id, is_live=False)
    return await storage.get_stream(stream_id)


@router.post("/{stream_id}/heartbeat")
async def stream_heartbeat(
    stream_id: str,
    payload: HeartbeatCreate,
    storage: Storage = Depends(get_storage),
    monitor: StreamMonitor = Depends(get_monitor),
):
    await _require_stream(stream_id, storage)
    monitor.registry.record_heartbeat(stream_id, payload.viewer_count)
    return {"status": "ok"}
