import logging
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import Settings

logger = logging.getLogger(__name__)

# --- Base for Declarative Models ---
# All SQLAlchemy models will inherit from this Base
Base = declarative_base()


# --- SQLAlchemy Engine Setup ---
def build_engine(settings: Settings) -> AsyncEngine:
    """
    Creates the async engine for the configured database.
    Server databases get a bounded pool; SQLite keeps the driver defaults.
    """
    options = {"echo": settings.db_echo, "future": True}
    if not settings.is_sqlite:
        # QueuePool connects lazily, so there is no minimum to configure
        options.update(
            pool_size=settings.pool_max,
            max_overflow=0,
            pool_timeout=settings.pool_acquire_timeout,
            pool_recycle=3600,
            pool_pre_ping=True,
        )
    return create_async_engine(settings.database_url, **options)


# --- SQLAlchemy Session Factory ---
def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # expire_on_commit=False keeps loaded attributes usable after commit
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


# --- Database Initialization ---
async def init_db(engine: AsyncEngine, force: bool = False, alter: bool = False):
    """
    Creates all tables defined in the models.
    `force` drops everything first; `alter` only adds missing tables
    (column changes need a real migration).
    """
    # Importing models registers every table on Base.metadata
    import models  # noqa: F401

    async with engine.begin() as conn:
        if force:
            logger.warning("DB_FORCE_SYNC set: dropping all tables before recreating them.")
            await conn.run_sync(Base.metadata.drop_all)
        elif alter:
            logger.info("DB_ALTER_SYNC set: creating missing tables only.")
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created (or already exist).")


# --- Dependency for FastAPI to Get DB Session ---
async def get_async_session(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency that provides an asynchronous database session for each request.
    The session comes from the application context, is rolled back on error
    and is always closed after the request is processed.
    """
    session_factory = request.app.state.context.session_factory
    async_session = session_factory()
    try:
        yield async_session
        await async_session.commit()
    except Exception:
        await async_session.rollback()
        raise
    finally:
        await async_session.close()
