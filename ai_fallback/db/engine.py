from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from ai_fallback.constants import DB_POOL_SIZE, get_database_url

_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker | None = None


def engine_options(database_url: str) -> dict[str, Any]:
    """Pool settings for a URL. SQLite drivers manage their own single connection."""
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"echo": False}
    return {"echo": False, "pool_size": DB_POOL_SIZE, "pool_pre_ping": True}


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        url = get_database_url()
        _engine = create_async_engine(url, **engine_options(url))
    return _engine


def get_session_maker() -> async_sessionmaker:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create the ``ai_model_configs`` table if it does not exist."""
    from ai_fallback.db.models import Base

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the process engine so the next call reconnects from current settings."""
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
