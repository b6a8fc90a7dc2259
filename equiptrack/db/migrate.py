"""Small additive migrations for SQLite databases created by older releases.

Older installs have an ``inventory_items`` table that predates the
out-of-service columns and a ``changelog`` table without ``sequence``. We
only ADD columns and indexes here; nothing is dropped or rewritten.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger("equiptrack.migrate")

INVENTORY_LIFECYCLE_COLUMNS: dict[str, str] = {
    "is_out_of_service": "BOOLEAN NOT NULL DEFAULT 0",
    "out_of_service_date": "TEXT",
    "out_of_service_reason": "TEXT",
    "out_of_service_reported_by": "TEXT",
    "out_of_service_notes": "TEXT",
    "return_to_service_verified": "BOOLEAN",
    "return_to_service_verified_at": "TEXT",
    "return_to_service_verified_by": "TEXT",
    "return_to_service_notes": "TEXT",
    "return_to_service_resolved_by": "TEXT",
    "updated_at": "TEXT",
}


def _column_names(engine: Engine, table: str) -> set[str]:
    """Names of the columns SQLite reports for ``table``; empty if it is absent."""

    with engine.connect() as conn:
        rows = conn.execute(text(f"PRAGMA table_info({table})")).mappings().all()
    return {row["name"] for row in rows}


def _add_column_sqlite(engine: Engine, table: str, col_def: str) -> None:
    """ALTER TABLE ADD COLUMN helper."""
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(engine: Engine, table: str, name: str, cols: Iterable[str], unique: bool = False) -> None:
    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql})"))


def _backfill_changelog_sequence(engine: Engine) -> None:
    # Number legacy rows per item in (timestamp, rowid) order.
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                UPDATE changelog
                SET sequence = (
                    SELECT COUNT(*) FROM changelog AS earlier
                    WHERE earlier.item_id = changelog.item_id
                      AND (earlier.timestamp < changelog.timestamp
                           OR (earlier.timestamp = changelog.timestamp AND earlier.rowid <= changelog.rowid))
                )
                WHERE sequence IS NULL
                """
            )
        )


def run_migrations(engine: Engine) -> None:
    """Bring an existing SQLite schema up to what the models expect."""

    if engine.dialect.name != "sqlite":
        return

    item_cols = _column_names(engine, "inventory_items")
    if item_cols:
        for name, dtype in INVENTORY_LIFECYCLE_COLUMNS.items():
            if name not in item_cols:
                logger.info("migrate.add_column", extra={"extra_data": {"table": "inventory_items", "column": name}})
                _add_column_sqlite(engine, "inventory_items", f"{name} {dtype}")
        _create_index_if_not_exists(
            engine, "inventory_items", "ix_inventory_items_company_oos", ["company_id", "is_out_of_service"]
        )

    log_cols = _column_names(engine, "changelog")
    if log_cols:
        if "sequence" not in log_cols:
            logger.info("migrate.add_column", extra={"extra_data": {"table": "changelog", "column": "sequence"}})
            _add_column_sqlite(engine, "changelog", "sequence INTEGER")
            _backfill_changelog_sequence(engine)
            _create_index_if_not_exists(
                engine, "changelog", "uq_changelog_item_sequence", ["item_id", "sequence"], unique=True
            )
        _create_index_if_not_exists(engine, "changelog", "ix_changelog_item_id", ["item_id"])
