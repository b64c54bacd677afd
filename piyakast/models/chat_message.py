from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship
from ..database import Base
from .stream import guid_column
from .user import User


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (Index("ix_chat_messages_stream_created", "stream_id", "created_at"),)

    id = guid_column(primary_key=True)
    stream_id = Column(String(36), ForeignKey("streams.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    type = Column(String(20), default="normal", nullable=False)  # normal | superchat | moderator
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship(User, lazy="joined")

    @property
    def username(self) -> str:
        if self.user is None:
            return "Unknown User"
        return self.user.username or self.user.first_name or "Unknown User"

    @property
    def profile_image_url(self):
        return self.user.profile_image_url if self.user is not None else None
