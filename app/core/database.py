from collections.abc import AsyncGenerator

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from app.core.config import settings

logger = structlog.get_logger(__name__)

Base = declarative_base()


def make_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Build an async engine for the scheduler database.

    Booking writes depend on ``SELECT ... FOR UPDATE`` on the business row,
    so Postgres is the production target. SQLite is accepted for local runs
    and tests; an in-memory SQLite database has to share one connection or
    every session would see an empty schema.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        options = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
    else:
        options = {
            "pool_pre_ping": True,
            "pool_recycle": 300,
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
        }

    return create_async_engine(database_url, echo=echo, future=True, **options)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Booking results are built from ORM rows after commit
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
AsyncSessionLocal = make_session_factory(engine)


async def init_db():
    """Verify the database connection on startup."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

        logger.info(
            "Database connection initialized successfully",
            dialect=engine.dialect.name,
        )
    except Exception as e:
        logger.error("Failed to initialize database", exc_info=e)
        raise


async def close_db():
    await engine.dispose()
    logger.info("Database engine disposed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; rolls back whatever the request left open."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error("Database session error", exc_info=e)
            raise
