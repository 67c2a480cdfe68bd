"""Async engine and sessions for the reservation ledger."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from chainsweep.config import Settings, get_settings
from chainsweep.ledger.models import Base

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None

SQLITE_PREFIX = "sqlite+aiosqlite:///"


def _async_url(url: str) -> str:
    """Route plain sqlite URLs through the aiosqlite driver."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", SQLITE_PREFIX, 1)
    return url


def _ensure_sqlite_dir(url: str) -> None:
    path = url[len(SQLITE_PREFIX):] if url.startswith(SQLITE_PREFIX) else ""
    if path and path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)


def get_engine(settings: Optional[Settings] = None) -> AsyncEngine:
    """Get or create the shared engine (first call decides the URL)."""
    global _engine
    if _engine is None:
        settings = settings or get_settings()
        db_url = _async_url(settings.database_url)
        _ensure_sqlite_dir(db_url)

        _engine = create_async_engine(
            db_url,
            echo=settings.debug and not settings.is_production,
            future=True,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on clean exit and rolls back on error."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(settings: Optional[Settings] = None) -> None:
    """Create the reservation and audit tables."""
    async with get_engine(settings).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
