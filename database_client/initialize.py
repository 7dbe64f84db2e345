"""
DatabaseClient - async engine and session factory behind DBStore

connect() is the one call a process needs: it builds the engine for the
configured URL, checks the server answers and makes sure the relay tables exist.
"""

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker

from database_client.models import Base
from logging_config import get_logger

logger = get_logger(__name__)

# Plain scheme -> async driver the relay ships with
ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def async_url(db_url: str) -> str:
    """Rewrite a plain postgres:// or sqlite:// URL to its async driver form."""
    scheme, sep, rest = db_url.partition("://")
    if not sep or scheme not in ASYNC_DRIVERS:
        return db_url
    return f"{ASYNC_DRIVERS[scheme]}://{rest}"


class DatabaseClient:
    engine: AsyncEngine | None
    SessionLocal: async_sessionmaker[AsyncSession] | None

    def __init__(self, db_url: str, echo: bool = False, pool_size: int = 10, max_overflow: int = 20):
        """
        Args:
            db_url: connection string; plain postgres:// and sqlite:// URLs get their async driver
            echo: log every SQL statement
            pool_size, max_overflow: connection pool sizing, ignored for SQLite
        """
        self.db_url = async_url(db_url)
        self.echo = echo
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.engine = None
        self.SessionLocal = None

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.db_url).get_backend_name() == "sqlite"

    async def connect(self):
        await self.initialize()
        await self.ping()
        await self.create_tables()

    async def initialize(self):
        options = {"echo": self.echo}
        if not self.is_sqlite:
            options.update(pool_size=self.pool_size, max_overflow=self.max_overflow, pool_pre_ping=True)
        self.engine = create_async_engine(self.db_url, **options)
        self.SessionLocal = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info(f"Database engine ready for {self.engine.url.render_as_string(hide_password=True)}")

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Tables ensured: {', '.join(sorted(Base.metadata.tables))}")

    def get_session(self) -> AsyncSession:
        if self.SessionLocal is None:
            raise RuntimeError("DatabaseClient.initialize() has not been awaited")
        return self.SessionLocal()

    async def close(self):
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            logger.info("Database connection closed")
