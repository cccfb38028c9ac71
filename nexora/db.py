import logging, time
from typing import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from sqlalchemy import text, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import get_settings
from .domain.errors import DuplicateKeyError, PersistenceError

log = logging.getLogger("nexora.sql")
S = get_settings()


def build_engine(url: str | None = None, **kwargs) -> AsyncEngine:
    engine = create_async_engine(
        url or S.DATABASE_URL,
        future=True,
        pool_pre_ping=True,
        **kwargs,
    )
    event.listen(engine.sync_engine, "before_cursor_execute", _before_cursor_execute)
    event.listen(engine.sync_engine, "after_cursor_execute", _after_cursor_execute)
    return engine


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@asynccontextmanager
async def lifespan_db(app: FastAPI):
    """Own the engine for the lifetime of the app; handlers reach it via app.state."""
    engine = build_engine()
    app.state.db_engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        yield
    finally:
        await engine.dispose()


async def db_health(engine: AsyncEngine) -> bool:
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.sessionmaker() as session:
        yield session


@asynccontextmanager
async def db_errors(op: str):
    """Translate driver/ORM failures into the storage error taxonomy."""
    try:
        yield
    except IntegrityError as exc:
        raise DuplicateKeyError(f"{op}: duplicate key") from exc
    except SQLAlchemyError as exc:
        raise PersistenceError(f"{op} failed") from exc


def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    context._query_start_time = time.perf_counter()


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    elapsed_ms = int((time.perf_counter() - getattr(context, "_query_start_time", time.perf_counter())) * 1000)
    if elapsed_ms >= S.SLOW_QUERY_MS:
        log.warning("slow_query", extra={"elapsed_ms": elapsed_ms, "sql": statement[:200]})
