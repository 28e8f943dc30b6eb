from __future__ import annotations

from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    CORS_ORIGINS: list[str] = ["*"]

    LOG_LEVEL: str = "INFO"

    # Time allowed to write one frame to the peer.
    WS_WRITE_WAIT_SECONDS: float = 10.0
    # Time allowed between two inbound frames before the peer is considered gone.
    WS_PONG_WAIT_SECONDS: float = 60.0
    # Ping period; must be less than WS_PONG_WAIT_SECONDS. Defaults to 9/10 of it.
    WS_PING_PERIOD_SECONDS: float | None = None
    WS_MAX_MESSAGE_SIZE: int = 1024
    WS_SEND_QUEUE_SIZE: int = 256
    WS_REPORT_ERRORS: bool = False

    CHAT_FANOUT_MODE: Literal["local", "redis"] = "local"
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PUBSUB_CHANNEL: str = "chat.private_messages"

    @model_validator(mode="after")
    def _check_ws_timings(self) -> Settings:
        if self.WS_PING_PERIOD_SECONDS is None:
            self.WS_PING_PERIOD_SECONDS = self.WS_PONG_WAIT_SECONDS * 9 / 10
        if self.WS_PING_PERIOD_SECONDS >= self.WS_PONG_WAIT_SECONDS:
            raise ValueError("WS_PING_PERIOD_SECONDS must be less than WS_PONG_WAIT_SECONDS")
        if self.WS_SEND_QUEUE_SIZE < 1:
            raise ValueError("WS_SEND_QUEUE_SIZE must be positive")
        return self

    @property
    def ws_ping_period(self) -> float:
        assert self.WS_PING_PERIOD_SECONDS is not None
        return self.WS_PING_PERIOD_SECONDS

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
