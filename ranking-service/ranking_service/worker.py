"""
Cache invalidation worker for Ranking Service

Connects the shared database pool and Redis cache, then consumes post,
friendship and follow events until interrupted.
"""
import asyncio
import logging
import signal

from .config import settings
from .database import db
from .cache import cache
from .kafka_consumer import kafka_consumer

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def run():
    """Run the worker until SIGINT or SIGTERM"""
    logger.info(f"Starting {settings.APP_NAME} worker...")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    # Connect to database
    await db.connect()
    logger.info("Database connected")

    # Connect to Redis
    await cache.connect()
    logger.info("Redis cache initialized")

    # Start Kafka consumer
    await kafka_consumer.start()
    logger.info("Kafka consumer started")

    try:
        await stop_event.wait()
    finally:
        logger.info(f"Shutting down {settings.APP_NAME} worker...")
        await kafka_consumer.stop()
        await cache.disconnect()
        await db.disconnect()
        logger.info(f"{settings.APP_NAME} worker shut down successfully")


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
