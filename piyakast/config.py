from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "piyakast-realtime"
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Networking
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    frontend_origin: str = Field(default="http://localhost:5173")

    # Database
    database_url: str = Field(default="sqlite:///./piyakast.db")

    # Stream liveness (fixed for the lifetime of the process)
    stream_monitor_enabled: bool = Field(default=True)
    heartbeat_timeout_seconds: float = Field(default=30.0, gt=0)
    heartbeat_grace_seconds: float = Field(default=10.0, ge=0)
    sweep_interval_seconds: float = Field(default=15.0, gt=0)

    # Chat
    chat_history_limit: int = Field(default=20, ge=0)

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
