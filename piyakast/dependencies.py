from starlette.requests import HTTPConnection

from .services.chat import ChatService
from .services.storage import Storage
from .services.stream_monitor import StreamMonitor


def get_storage(conn: HTTPConnection) -> Storage:
    return conn.app.state.storage


def get_monitor(conn: HTTPConnection) -> StreamMonitor:
    return conn.app.state.monitor


def get_chat_service(conn: HTTPConnection) -> ChatService:
    return conn.app.state.chat
