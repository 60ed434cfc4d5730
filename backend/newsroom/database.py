"""Database configuration for the bookings backend.

The async engine connects to Postgres using ``DATABASE_URL``. Plain
``postgres://``/``postgresql://`` DSNs are rewritten to the ``asyncpg``
driver. The engine is built on first use so the package can be imported,
and the pure booking logic exercised, without a database configured.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator

from dotenv import find_dotenv, load_dotenv
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from . import migrations

logger = logging.getLogger(__name__)

_DOTENV_PATH = find_dotenv(filename=".env", raise_error_if_not_found=False, usecwd=True)
if _DOTENV_PATH:
    load_dotenv(_DOTENV_PATH)

_DATABASE_URL_ENV = "DATABASE_URL"


def build_async_database_url(raw_url: str) -> str:
    """Ensure the database URL uses the asyncpg driver."""

    if raw_url.startswith("postgresql+asyncpg://"):
        return raw_url
    if raw_url.startswith("postgres://"):
        raw_url = raw_url.replace("postgres://", "postgresql://", 1)
    if raw_url.startswith("postgresql://"):
        return raw_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return raw_url


def get_database_url() -> str:
    try:
        raw_url = os.environ[_DATABASE_URL_ENV]
    except KeyError as exc:
        raise RuntimeError("DATABASE_URL environment variable must be set") from exc
    return build_async_database_url(raw_url)


def get_engine_kwargs(url: str) -> dict:
    kwargs = {
        "echo": False,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }
    # Transaction-mode poolers cannot hold prepared statements.
    if ":6543" in url or "pgbouncer=true" in url:
        logger.info("Using transaction mode pooled connection - disabling prepared statements")
        kwargs["connect_args"] = {"statement_cache_size": 0}
    return kwargs


@lru_cache
def get_engine() -> AsyncEngine:
    url = get_database_url()
    return create_async_engine(url, **get_engine_kwargs(url))


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), expire_on_commit=False, class_=AsyncSession)


@asynccontextmanager
async def lifespan(app):  # pragma: no cover - FastAPI hook
    """Apply the schema on startup and dispose of the engine on shutdown."""

    engine = get_engine()
    try:
        applied, _ = await migrations.ensure_schema(engine)
        if applied:
            logger.info("Database schema applied during startup")
    except RuntimeError:
        logger.exception("Failed to apply database schema during startup")
        raise

    yield
    await engine.dispose()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an ``AsyncSession``."""

    async with get_session_factory()() as session:
        yield session
