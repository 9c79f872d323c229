"""
Database session management.

WHY: Every cascading write runs inside one AsyncSession transaction. The
session factory defined here is what the MutationCoordinator opens per
operation; reads outside a write use their own short-lived sessions.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from worktrack.core.config import settings


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    PostgreSQL engines run at the configured isolation level so a cascade
    sees a stable snapshot and concurrent overlapping cascades abort with a
    serialization failure instead of interleaving.

    Args:
        url: SQLAlchemy async database URL
        **kwargs: Extra engine options

    Returns:
        Configured AsyncEngine
    """
    if url.startswith("postgresql"):
        kwargs.setdefault("isolation_level", settings.TRANSACTION_ISOLATION_LEVEL)
        kwargs.setdefault("pool_size", 10)
        kwargs.setdefault("max_overflow", 20)
    return create_async_engine(url, echo=settings.DEBUG, pool_pre_ping=True, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create a session factory bound to an engine.

    expire_on_commit=False keeps committed entities readable by post-commit
    event builders. autoflush=False gives the cascade engine explicit
    control over when writes hit the database.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.async_database_url)

AsyncSessionLocal = build_session_factory(engine)
