from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire models use camelCase keys; Python code uses snake_case names."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class StreamCreate(CamelModel):
    user_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None


class StreamRead(CamelModel):
    id: str
    user_id: str
    title: str
    description: Optional[str]
    category: Optional[str]
    is_live: bool
    is_public: bool
    viewer_count: int
    started_at: Optional[datetime]
    ended_at: Optional[datetime]
    created_at: datetime


class HeartbeatCreate(CamelModel):
    viewer_count: int = Field(default=0, ge=0)


class ActiveStreamsRead(CamelModel):
    stream_ids: List[str]


class ChatMessageRead(CamelModel):
    id: str
    stream_id: str
    user_id: str
    message: str
    type: str = "normal"
    created_at: datetime
    username: str = "Unknown User"
    profile_image_url: Optional[str] = None


# Client -> server WebSocket events


class JoinStreamEvent(CamelModel):
    type: Literal["join_stream"]
    stream_id: str = Field(..., min_length=1)


class ChatMessageEvent(CamelModel):
    type: Literal["chat_message"]
    stream_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=2000)


class HeartbeatEvent(CamelModel):
    type: Literal["heartbeat"]


ClientEvent = Annotated[
    Union[JoinStreamEvent, ChatMessageEvent, HeartbeatEvent],
    Field(discriminator="type"),
]

client_event_adapter = TypeAdapter(ClientEvent)
