"""
Async SQLAlchemy engines and sessions.

Two roles: "write" (primary) and "read" (replica, falling back to the
primary URL). Anything that locks a tenant or mutates the ledger must use
the write role; FOR UPDATE against a replica would either fail or lock the
wrong copy of the row.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings
from app.observability.tracing import instrument_sqlalchemy


class _DatabaseRole:
    """Lazily-built engine and session factory for one database URL."""

    def __init__(self, url_setting: str) -> None:
        self.url_setting = url_setting
        self.engine: AsyncEngine | None = None
        self.factory: async_sessionmaker[AsyncSession] | None = None

    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self.factory is None:
            self.engine = create_async_engine(
                getattr(settings, self.url_setting),
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_timeout=settings.database_pool_timeout,
                pool_recycle=settings.database_pool_recycle,
                pool_pre_ping=True,
                echo=settings.log_level == "DEBUG",
            )
            instrument_sqlalchemy(self.engine)
            # Services read balances back after commit; keep attributes loaded.
            self.factory = async_sessionmaker(self.engine, expire_on_commit=False)
        return self.factory

    async def dispose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self.factory = None


_write = _DatabaseRole("database_url")
_read = _DatabaseRole("read_database_url")


def get_write_session_factory() -> async_sessionmaker[AsyncSession]:
    """Primary-database sessions; used by the expiration job for one session per tenant."""
    return _write.session_factory()


def get_read_session_factory() -> async_sessionmaker[AsyncSession]:
    return _read.session_factory()


async def get_write_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for ledger mutations.

    Services commit explicitly. A transaction left open by a failed or
    cancelled request is rolled back when the session closes, which also
    releases any FOR UPDATE lock it held.
    """
    async with get_write_session_factory()() as session:
        yield session


async def get_read_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for balance and history reads."""
    async with get_read_session_factory()() as session:
        yield session


async def close_engines() -> None:
    await _write.dispose()
    await _read.dispose()
