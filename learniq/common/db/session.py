"""
Database Session Management

Owns the process-wide async engine and session factory. The engine is
created lazily so that importing services never opens a connection; the
application lifespan (or a test fixture) calls ``init_engine`` first.
"""

from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from learniq.config import settings
from learniq.common.error_handling import DatabaseError
from learniq.common.logger import app_logger

logger = app_logger.getChild("db.session")

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine_kwargs(database_url: str) -> Dict[str, Any]:
    """
    Engine keyword arguments for the database type.
    Only server databases get a connection pool configuration.
    """
    kwargs: Dict[str, Any] = {"echo": settings.SQL_ECHO}

    if database_url.startswith("postgresql"):
        kwargs.update({
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_timeout": settings.DB_POOL_TIMEOUT,
            "pool_pre_ping": True,
            "pool_recycle": 300,
        })

    return kwargs


def init_engine(database_url: Optional[str] = None, **overrides: Any) -> AsyncEngine:
    """Create (or replace) the global engine and session factory."""
    global _engine, _session_factory

    url = database_url or settings.DATABASE_URL
    kwargs = get_engine_kwargs(url)
    kwargs.update(overrides)

    _engine = create_async_engine(url, **kwargs)
    _session_factory = sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)
    logger.info(f"Database engine created for {url.split(':', 1)[0]}")
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_engine() first.")
    return _engine


def get_session_factory() -> sessionmaker:
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call init_engine() first.")
    return _session_factory


async def dispose_engine() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a request-scoped async session.

    Commits when the request handler returns and rolls back on error.
    Store failures surface as ``DatabaseError``.
    """
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Database session error: {e}")
        raise DatabaseError("request", cause=e)
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
