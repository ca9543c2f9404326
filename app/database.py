import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from app.config import settings

logger = logging.getLogger(__name__)

# Ensure we use the async driver
SQLALCHEMY_DATABASE_URL = settings.database_url.replace("postgresql://", "postgresql+asyncpg://")


def _engine_options(url: str) -> dict:
    # SQLite (tests, local runs) has no server-side pool to size
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.DB_POOL_MIN,
        "max_overflow": max(settings.DB_POOL_MAX - settings.DB_POOL_MIN, 0),
        "pool_pre_ping": True,
        "pool_recycle": 1800,
    }


engine = create_async_engine(SQLALCHEMY_DATABASE_URL, echo=False, **_engine_options(SQLALCHEMY_DATABASE_URL))

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)

Base = declarative_base()

async def get_db():
    async with AsyncSessionLocal() as db:
        try:
            yield db
        finally:
            await db.close()


async def ping() -> None:
    """Borrow a pooled connection and run a trivial query. Raises on failure."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def dispose() -> None:
    """Close every pooled connection. The engine reconnects lazily on next use."""
    await engine.dispose()
    logger.info("[POOL] Database connections released")
