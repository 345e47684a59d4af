"""
Database session configuration.

Async SQLAlchemy engine and session factory for PostgreSQL (asyncpg).
Every request gets one session; order, stock and ledger writes made through
it are committed together by the endpoint or rolled back together here.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from poscrm.app.core.config import settings


def _engine_options() -> dict:
    # SQLite (local runs) uses a single-connection pool without sizing knobs
    if settings.database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    future=True,
    **_engine_options(),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Anything left uncommitted when the request fails is rolled back, so a
    mutation that raised halfway never leaves partial stock or ledger rows.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
