"""Tiny home-grown migration helpers."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

# Simple, idempotent migrations for SQLite.
# Every column ships with the first schema, so only indexes are ever added.


def _table_columns(engine: Engine, table: str) -> list[dict[str, object]]:
    """Fetch SQLite's description of a table so we know whether it exists."""

    with engine.connect() as conn:
        return conn.execute(text(f"PRAGMA table_info({table})")).mappings().all()


def _column_names(engine: Engine, table: str) -> set[str]:
    return {record["name"] for record in _table_columns(engine, table)}


def _create_index_if_not_exists(engine: Engine, table: str, name: str, cols: Iterable[str], unique: bool = False) -> None:
    """Build an index only if it hasn't already been defined."""

    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    logger.debug("migrate.ensure_index", extra={"extra_data": {"table": table, "index": name}})
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql})"))


def run_migrations(engine: Engine) -> None:
    """Bring an existing SQLite schema's indexes up-to-date with the models."""

    if engine.dialect.name != "sqlite":
        return

    if not _column_names(engine, "patrimonies"):
        # Table absent -> nothing to migrate; Base.metadata.create_all builds the fresh schema.
        return

    # The store, not the client, is the authority on asset number uniqueness.
    _create_index_if_not_exists(engine, "patrimonies", "ix_patrimonies_number_unique", ["number"], unique=True)
    _create_index_if_not_exists(engine, "patrimonies", "ix_patrimonies_registered_at", ["registered_at"])
    _create_index_if_not_exists(engine, "patrimonies", "ix_patrimonies_user_id", ["user_id"])

    if _column_names(engine, "user_roles"):
        _create_index_if_not_exists(engine, "user_roles", "uq_user_roles_user_role_idx", ["user_id", "role"], unique=True)
