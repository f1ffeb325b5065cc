"""Async database session and engine configuration."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pricewatch.config import Settings, settings


def build_engine(config: Settings = settings) -> AsyncEngine:
    """Create the engine for the configured database URL."""
    kwargs: dict = {"echo": config.DEBUG}
    # SQLite doesn't support pool_size / max_overflow / pool_pre_ping
    if not config.DATABASE_URL.startswith("sqlite"):
        # Each concurrent check holds its own session
        kwargs.update(
            pool_size=max(5, config.MAX_CONCURRENT_CHECKS + 2),
            max_overflow=5,
            pool_pre_ping=True,
        )
    return create_async_engine(config.DATABASE_URL, **kwargs)


engine = build_engine()

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
