from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from ..models.chat_message import ChatMessage
from ..models.stream import Stream


logger = logging.getLogger(__name__)


class Storage:
    """Async facade over the relational store.

    ORM work is synchronous, so each call runs in the threadpool and the
    event loop stays free while the database is busy. Returned objects are
    detached from their session with every attribute already loaded.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # Chat

    async def get_chat_messages_by_stream(self, stream_id: str, limit: int = 50) -> List[ChatMessage]:
        """Most recent messages first."""
        return await run_in_threadpool(self._get_chat_messages_by_stream, stream_id, limit)

    def _get_chat_messages_by_stream(self, stream_id: str, limit: int) -> List[ChatMessage]:
        with self._session_factory() as db:
            stmt = (
                select(ChatMessage)
                .where(ChatMessage.stream_id == stream_id)
                .order_by(ChatMessage.created_at.desc())
                .limit(limit)
            )
            return list(db.scalars(stmt).unique())

    async def create_chat_message(self, stream_id: str, user_id: str, message: str) -> ChatMessage:
        return await run_in_threadpool(self._create_chat_message, stream_id, user_id, message)

    def _create_chat_message(self, stream_id: str, user_id: str, message: str) -> ChatMessage:
        with self._session_factory() as db:
            msg = ChatMessage(
                id=str(uuid.uuid4()),
                stream_id=stream_id,
                user_id=user_id,
                message=message,
            )
            db.add(msg)
            db.commit()
            db.refresh(msg)
            _ = msg.user  # load while attached
            return msg

    # Streams

    async def get_live_streams(self) -> List[Stream]:
        return await run_in_threadpool(self._get_live_streams)

    def _get_live_streams(self) -> List[Stream]:
        with self._session_factory() as db:
            return list(db.scalars(select(Stream).where(Stream.is_live.is_(True))))

    async def update_stream_status(self, stream_id: str, is_live: bool, viewer_count: Optional[int] = None) -> None:
        await run_in_threadpool(self._update_stream_status, stream_id, is_live, viewer_count)

    def _update_stream_status(self, stream_id: str, is_live: bool, viewer_count: Optional[int]) -> None:
        values: Dict[str, Any] = {"is_live": is_live}
        if viewer_count is not None:
            values["viewer_count"] = viewer_count
        if is_live:
            values["started_at"] = datetime.utcnow()
            values["is_public"] = True
        else:
            values["ended_at"] = datetime.utcnow()
            values["is_public"] = False

        with self._session_factory() as db:
            result = db.execute(update(Stream).where(Stream.id == stream_id).values(**values))
            db.commit()
        if result.rowcount == 0:
            logger.debug("Status update for unknown stream %s", stream_id)

    async def get_stream(self, stream_id: str) -> Optional[Stream]:
        return await run_in_threadpool(self._get_stream, stream_id)

    def _get_stream(self, stream_id: str) -> Optional[Stream]:
        with self._session_factory() as db:
            return db.get(Stream, stream_id)

    async def list_streams(self, live_only: bool = False) -> List[Stream]:
        return await run_in_threadpool(self._list_streams, live_only)

    def _list_streams(self, live_only: bool) -> List[Stream]:
        stmt = select(Stream).order_by(Stream.created_at.desc())
        if live_only:
            stmt = stmt.where(Stream.is_live.is_(True))
        with self._session_factory() as db:
            return list(db.scalars(stmt))

    async def create_stream(
        self,
        user_id: str,
        title: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Stream:
        return await run_in_threadpool(self._create_stream, user_id, title, description, category)

    def _create_stream(self, user_id: str, title: str, description: Optional[str], category: Optional[str]) -> Stream:
        with self._session_factory() as db:
            stream = Stream(
                id=str(uuid.uuid4()),
                user_id=user_id,
                title=title,
                description=description,
                category=category,
            )
            db.add(stream)
            db.commit()
            db.refresh(stream)
            return stream
