from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from config.settings import settings
from typing import AsyncGenerator

from app.db.base import Base

# --- 1. Create the Async Engine ---
# Built from the DATABASE_URL in config/settings.py.
engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,  # Test connections before using them
    echo=settings.DEBUG, # Log SQL queries if in debug mode
)

# --- 2. Create the Async SessionMaker ---
# One session per API request.
AsyncSessionLocal = async_sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency to get a new database session per request.

    Anything not committed by the handler is rolled back when the
    session closes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

async def create_tables() -> None:
    """
    Creates any missing tables. There is no migration tool; this is
    what AUTO_CREATE_TABLES and the seed script use.
    """
    # Imported for its side effect of registering the models on Base.metadata
    from app.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
