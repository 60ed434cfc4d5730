"""Apply ``db/schema.sql`` at startup, once per distinct schema revision."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Iterable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

LOGGER = logging.getLogger(__name__)


def _detect_schema_path() -> Path:
    env_override = os.environ.get("APP_SCHEMA_PATH")
    if env_override:
        return Path(env_override)

    current = Path(__file__).resolve()
    for parent in current.parents:
        candidate = parent / "db" / "schema.sql"
        if candidate.exists():
            return candidate
    return current.parents[1] / "db" / "schema.sql"


SCHEMA_PATH = _detect_schema_path()

_MIGRATION_TABLE_SQL = (
    "CREATE TABLE IF NOT EXISTS newsroom_schema_migrations ("
    " schema_hash text PRIMARY KEY,"
    " applied_at timestamptz NOT NULL DEFAULT now()"
    ")"
)


def _load_schema_sql() -> str:
    try:
        return SCHEMA_PATH.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise RuntimeError(f"Database schema file not found at {SCHEMA_PATH}") from exc


def split_statements(schema_sql: str) -> Iterable[str]:
    """Split on ``;``; the schema file must not contain procedural blocks."""

    lines = (line for line in schema_sql.splitlines() if not line.lstrip().startswith("--"))
    return (stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip())


async def ensure_schema(engine: AsyncEngine) -> tuple[bool, int]:
    """Apply the schema if this revision has not been applied yet.

    Returns ``(applied, statement_count)``.
    """

    schema_sql = _load_schema_sql()
    statements = list(split_statements(schema_sql))
    if not statements:
        return False, 0

    schema_hash = hashlib.sha256(schema_sql.encode("utf-8")).hexdigest()

    async with engine.begin() as conn:
        await conn.exec_driver_sql(_MIGRATION_TABLE_SQL)

        result = await conn.execute(
            text("SELECT 1 FROM newsroom_schema_migrations WHERE schema_hash = :schema_hash"),
            {"schema_hash": schema_hash},
        )
        if result.first() is not None:
            LOGGER.debug("Database schema already applied (hash=%s)", schema_hash)
            return False, 0

        for statement in statements:
            await conn.exec_driver_sql(statement)

        insert_result = await conn.execute(
            text(
                "INSERT INTO newsroom_schema_migrations (schema_hash)"
                " VALUES (:schema_hash)"
                " ON CONFLICT DO NOTHING"
            ),
            {"schema_hash": schema_hash},
        )

    if insert_result.rowcount:
        LOGGER.info("Applied database schema (%d statements, hash=%s)", len(statements), schema_hash)
        return True, len(statements)

    LOGGER.debug("Database schema applied by another process (hash=%s)", schema_hash)
    return False, 0
