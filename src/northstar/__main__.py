"""Main entry point: prepare the store and check the remote API."""
import asyncio
import logging
import sys

from northstar.config import settings
from northstar.logging_config import setup_logging
from northstar.models.base import init_db
from northstar.monitoring import start_monitoring
from northstar.services.api_client import APIClient

logger = logging.getLogger(__name__)


async def main() -> int:
    """Create the tables and report whether the API answers."""
    init_db()
    logger.info(f"Database ready at {settings.database.url}")

    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)
        logger.info(f"Metrics exposed on port {settings.monitoring.port}")

    async with APIClient() as client:
        response = await client.health_check()

    if not response.success:
        logger.error(f"API at {client.base_url} is unavailable: {response.error}")
        return 1
    logger.info(f"API at {client.base_url} is healthy")
    return 0


if __name__ == "__main__":
    setup_logging("Starting northstar ...")
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
