"""Entrypoint: python -m community_chat"""
from __future__ import annotations

import uvicorn

from community_chat.api.middleware.correlation_id import configure_logging
from community_chat.config import settings


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "community_chat.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
        # Protocol-level ping; browsers answer these without application code
        ws_ping_interval=settings.ws_ping_period,
        ws_ping_timeout=settings.WS_PONG_WAIT_SECONDS - settings.ws_ping_period,
        ws_max_size=settings.WS_MAX_MESSAGE_SIZE,
        log_config=None,
    )


if __name__ == "__main__":
    main()
