from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from .config import Settings, get_settings
from .database import Base, engine as default_engine, make_session_factory
from .logging_config import configure_logging
from .routers.chat import router as chat_router
from .routers.streams import router as streams_router
from .services.chat import ChatService
from .services.chat_rooms import ChatRoomRegistry
from .services.storage import Storage
from .services.stream_monitor import LivenessRegistry, StreamMonitor


settings = get_settings()


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    settings = settings or get_settings()
    engine = engine or default_engine
    configure_logging(settings.log_level)

    storage = Storage(make_session_factory(engine))
    liveness = LivenessRegistry(
        timeout=settings.heartbeat_timeout_seconds,
        grace_period=settings.heartbeat_grace_seconds,
    )
    monitor = StreamMonitor(liveness, storage, interval=settings.sweep_interval_seconds)
    rooms = ChatRoomRegistry()
    chat = ChatService(rooms, storage, liveness, history_limit=settings.chat_history_limit)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables on startup (simple for demo; use migrations in prod)
        Base.metadata.create_all(bind=engine)
        if settings.stream_monitor_enabled:
            monitor.start()
        try:
            yield
        finally:
            await monitor.stop()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    app.state.settings = settings
    app.state.storage = storage
    app.state.liveness = liveness
    app.state.monitor = monitor
    app.state.rooms = rooms
    app.state.chat = chat

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(streams_router)
    app.include_router(chat_router)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("piyakast.main:app", host=settings.api_host, port=settings.api_port, reload=True)
