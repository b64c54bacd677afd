import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from ..database import Base


def guid_column(primary_key: bool = False):
    # Use String for compatibility across SQLite/Postgres
    return Column(String(36), primary_key=primary_key, default=lambda: str(uuid.uuid4()))


class Stream(Base):
    __tablename__ = "streams"

    id = guid_column(primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)

    is_live = Column(Boolean, default=False, nullable=False, index=True)
    # Hidden from other users until the broadcast starts
    is_public = Column(Boolean, default=False, nullable=False)
    viewer_count = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
