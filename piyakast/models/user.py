from datetime import datetime
from sqlalchemy import Column, DateTime, String
from ..database import Base
from .stream import guid_column


class User(Base):
    __tablename__ = "users"

    id = guid_column(primary_key=True)
    username = Column(String(100), nullable=True, unique=True)
    first_name = Column(String(100), nullable=True)
    profile_image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
