"""SQLAlchemy async session setup for Commit.

Provides:
- Base: DeclarativeBase for all ORM models
- engine: async engine configured from settings
- async_session_factory: session maker bound to engine
- get_session_factory: FastAPI dependency handing the factory to the gateway
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.config.settings import get_settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


_settings = get_settings()

engine = create_async_engine(
    _settings.DATABASE_URL,
    echo=(_settings.ENVIRONMENT == "dev"),
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory.

    The gateway opens one short-lived session per call, so callers never
    share a transaction across gateway operations. Tests override this
    dependency with a factory bound to their own engine.
    """
    return async_session_factory
