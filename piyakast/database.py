from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool
from .config import get_settings


settings = get_settings()


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        # Avoid connection pool contention/timeouts with SQLite by disabling pooling
        return create_engine(
            database_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=NullPool,
        )
    # Bigger pool for Postgres
    return create_engine(
        database_url,
        echo=False,
        future=True,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, future=True, expire_on_commit=False)


engine = build_engine(settings.database_url)

SessionLocal = make_session_factory(engine)

Base = declarative_base()
