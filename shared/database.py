from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def _in_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith(":"))


def get_engine(database_url: str, **kwargs) -> AsyncEngine:
    if _in_memory_sqlite(database_url):
        # in-memory sqlite lives per connection; share a single one
        kwargs.setdefault("poolclass", StaticPool)
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(database_url, echo=False, future=True, **kwargs)


def get_session(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Dev/test schema bootstrap; deployments run alembic instead."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)