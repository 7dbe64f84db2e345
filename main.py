import asyncio
import signal

from constants import HOST, PORT, DATABASE_URL, DB_ECHO, LOG_LEVEL, LOG_FILE
from logging_config import setup_logging, get_logger

# Setup logging before the application modules create their loggers
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from api.handler import API
from database_client.initialize import DatabaseClient
from database_client.manager import DBStore
from database_client.memory import MemoryStore

logger = get_logger(__name__)


async def create_store():
    if not DATABASE_URL:
        logger.info("DATABASE_URL not set, using in-memory store")
        return MemoryStore()

    db = DatabaseClient(DATABASE_URL, echo=DB_ECHO)
    await db.connect()
    logger.info("Database connected")
    return DBStore(db)


async def main():
    store = await create_store()

    app = API(store, HOST, PORT)
    await app.run()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        await app.cleanup()


def run():
    asyncio.run(main())


if __name__ == '__main__':
    run()
