"""
Async SQLAlchemy engine/session factories.

The API builds one pooled engine in its lifespan hook.  Celery tasks
build a fresh engine per task run (`asyncio.run` creates a new event
loop each time, and pooled asyncpg connections are bound to the loop
that opened them) and dispose it afterwards.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool


def create_session_factory(
    database_url: str,
    *,
    echo: bool = False,
    pooled: bool = True,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an async engine and its session factory."""
    if pooled:
        engine = create_async_engine(
            database_url,
            echo=echo,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
        )
    else:
        engine = create_async_engine(database_url, echo=echo, poolclass=NullPool)

    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, factory
