"""Create the chat tables in the configured database."""
from __future__ import annotations

import asyncio
import logging

from community_chat.api.middleware.correlation_id import configure_logging
from community_chat.config import settings
from community_chat.infrastructure.db.session import create_schema, dispose_engine

logger = logging.getLogger(__name__)


async def init_db() -> None:
    try:
        await create_schema()
        logger.info(
            "Schema ready on %s:%s/%s", settings.DB_HOST, settings.DB_PORT, settings.POSTGRES_DB,
        )
    finally:
        await dispose_engine()


def main() -> None:
    configure_logging(logging.INFO)
    asyncio.run(init_db())


if __name__ == "__main__":
    main()
