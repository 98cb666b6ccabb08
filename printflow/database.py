"""
Database engine and session management.

One async engine per process; request handlers get a fresh AsyncSession
through the get_db dependency.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from printflow.config import settings


def build_engine(url: str, echo: bool = False):
    """Create an async engine; SQLite connections get foreign keys and a busy timeout."""
    connect_args = {}
    if url.startswith("sqlite"):
        # Writers queue behind each other instead of failing with "database is locked".
        connect_args["timeout"] = 30

    engine = create_async_engine(url, echo=echo, connect_args=connect_args)

    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_sessionmaker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = build_sessionmaker(engine)


async def get_db():
    """FastAPI dependency yielding a session bound to the request."""
    async with AsyncSessionLocal() as session:
        yield session


async def create_all(bind=None) -> None:
    """Create every table and seed the token counter."""
    from printflow.models.base import Base
    from printflow.models.job import TokenCounter
    from printflow.services.job_repository import TOKEN_COUNTER_NAME
    # Imported for table registration
    from printflow.models import user, vendor  # noqa: F401

    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sessionmaker = build_sessionmaker(bind)
    async with sessionmaker() as session:
        if await session.get(TokenCounter, TOKEN_COUNTER_NAME) is None:
            session.add(TokenCounter(name=TOKEN_COUNTER_NAME, value=settings.TOKEN_NUMBER_START - 1))
            await session.commit()


async def drop_all(bind=None) -> None:
    from printflow.models.base import Base

    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
