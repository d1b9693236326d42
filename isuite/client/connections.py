import asyncio
from typing import Optional

from isuite.client.api_client import AssistantClient
from isuite.core.logging import logger
from isuite.schemas import Connection


async def wait_for_connection(
    client: AssistantClient, toolkit: str, interval: float = 2.0, timeout: float = 30.0
) -> Optional[Connection]:
    """
    Poll the user's connections until `toolkit` shows up as ACTIVE.

    Advisory only: returns None when `timeout` passes first, the next
    `list_connections()` is still the source of truth.
    """
    toolkit = toolkit.lower()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempts = 0
    while True:
        attempts += 1
        for connection in await client.list_connections():
            if connection.toolkit_slug.lower() == toolkit and connection.is_active:
                logger.info("connection_became_active", toolkit=toolkit, attempts=attempts)
                return connection

        if loop.time() + interval > deadline:
            logger.info("connection_wait_timed_out", toolkit=toolkit, attempts=attempts)
            return None
        await asyncio.sleep(interval)
