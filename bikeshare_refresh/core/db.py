from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from bikeshare_refresh.core.config import settings


# ---------------------------------------------------------------------
# Database engine
# ---------------------------------------------------------------------

# Asynchronous SQLAlchemy engine shared by the API and the CLI.
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    pool_pre_ping=True,  # Validates connections before using them
)


# ---------------------------------------------------------------------
# Database session factory
# ---------------------------------------------------------------------

# `expire_on_commit=False` keeps loaded objects usable after the
# per-network commits issued by the refresh service.
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------
# Dependency injection
# ---------------------------------------------------------------------

async def get_db() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency that provides an asynchronous database session.

    A new `AsyncSession` is created for each request and automatically
    closed once the request lifecycle ends.
    """
    async with AsyncSessionLocal() as session:
        yield session
