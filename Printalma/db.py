# db.py
import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# Import the centralized settings object
from settings import settings

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """
    Rewrites plain PostgreSQL URLs (as handed out by most hosting providers)
    to the asyncpg driver. Any other URL is returned unchanged.
    """
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def build_engine(url: str) -> AsyncEngine:
    """Creates the async engine, with connection pooling for server databases."""
    url = normalize_database_url(url)
    if url.startswith("sqlite"):
        logger.info("✅ Using local SQLite database for development.")
        return create_async_engine(url, echo=False)

    logger.info("✅ Connecting to PostgreSQL database.")
    # `pool_recycle` keeps idle connections from being dropped by the
    # database or network infrastructure.
    return create_async_engine(
        url,
        echo=False,
        pool_size=10,
        max_overflow=5,
        pool_timeout=30,
        pool_recycle=1800,
    )


# --- SQLAlchemy Engine & Session ---

engine = build_engine(settings.DATABASE_URL)

# `expire_on_commit=False` keeps attributes readable after commit, which the
# cascade relies on when it reports updated products.
async_session_maker = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Base class for declarative models. All models in `models.py` inherit from this.
Base = declarative_base()


# --- FastAPI Dependency ---

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session to each request.

    Uses an `async with` block to ensure the session is always
    closed correctly, even if an error occurs.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()
