from __future__ import annotations

from typing import AsyncIterator

from fastapi import FastAPI, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app import models  # noqa: F401
from app.db.base import Base


def build_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, echo=False, pool_pre_ping=True)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


async def open_database(app: FastAPI, database_url: str, *, create_tables: bool = False) -> None:
    """Creates the process-wide pool once and exposes it on `app.state`."""
    engine = build_engine(database_url)
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)


async def close_database(app: FastAPI) -> None:
    engine: AsyncEngine | None = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.dispose()
    app.state.engine = None
    app.state.session_factory = None


def session_factory_from(app) -> async_sessionmaker[AsyncSession] | None:
    return getattr(app.state, "session_factory", None)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    factory = session_factory_from(request.app)
    if factory is None:
        raise RuntimeError("Database is not initialised")
    async with factory() as session:
        yield session
