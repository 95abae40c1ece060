"""Async engines and sessions, one engine per database URL per process."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

_engines: dict[str, AsyncEngine] = {}
_sessionmakers: dict[str, async_sessionmaker[AsyncSession]] = {}


def get_engine(database_url: str) -> AsyncEngine:
    engine = _engines.get(database_url)
    if engine is None:
        # pre-ping only matters for pooled server connections
        is_sqlite = make_url(database_url).get_backend_name() == "sqlite"
        engine = create_async_engine(database_url, pool_pre_ping=not is_sqlite)
        _engines[database_url] = engine
    return engine


def _sessionmaker(database_url: str) -> async_sessionmaker[AsyncSession]:
    factory = _sessionmakers.get(database_url)
    if factory is None:
        factory = async_sessionmaker(get_engine(database_url), expire_on_commit=False)
        _sessionmakers[database_url] = factory
    return factory


@asynccontextmanager
async def session_scope(database_url: str) -> AsyncIterator[AsyncSession]:
    """Plain session; callers commit explicitly."""

    async with _sessionmaker(database_url)() as session:
        yield session


@asynccontextmanager
async def transaction_scope(database_url: str) -> AsyncIterator[AsyncSession]:
    """Session inside one transaction, committed on exit and rolled back on error."""

    async with _sessionmaker(database_url)() as session:
        async with session.begin():
            yield session


async def dispose_engines() -> None:
    engines = list(_engines.values())
    _engines.clear()
    _sessionmakers.clear()
    for engine in engines:
        await engine.dispose()


def run_alembic_upgrade(*, database_url: str, alembic_config_path: str, revision: str = "head") -> None:
    alembic_cfg = Config(alembic_config_path)
    # alembic/env.py drives an async engine, so the async driver URL is kept as-is;
    # ini interpolation needs literal percent signs doubled.
    alembic_cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    command.upgrade(alembic_cfg, revision)
