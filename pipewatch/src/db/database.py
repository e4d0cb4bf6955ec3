from functools import lru_cache

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from pipewatch.src.config import get_settings

Base = declarative_base()

def to_async_url(database_url: str) -> str:
    """Convert postgresql:// and sqlite:// URLs to their async driver form."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url

def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    url = to_async_url(database_url)
    connect_args = {}
    if url.startswith("sqlite"):
        # Concurrent writers wait on the file lock instead of failing immediately
        connect_args["timeout"] = 30
    engine = create_async_engine(url, echo=echo, connect_args=connect_args)

    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine

def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

@lru_cache()
def get_engine() -> AsyncEngine:
    settings = get_settings()
    return create_engine_for(settings.database_url, echo=settings.database_echo)

@lru_cache()
def get_session_factory() -> async_sessionmaker:
    return create_session_factory(get_engine())

async def get_db():
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()

async def init_db(engine: AsyncEngine = None):
    # Models must be imported so their tables are registered on Base.metadata
    from pipewatch.src import models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
