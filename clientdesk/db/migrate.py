"""Idempotent, additive schema upgrades for SQLite installations."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from ..core.config import get_settings
from ..core.logging import log_event

logger = logging.getLogger("clientdesk.migrate")

# Only ADD columns and indexes. Existing data is never dropped.
CLIENT_COLUMNS: dict[str, str] = {
    "email": "TEXT",
    "company": "TEXT",
    "contact_info": "TEXT",
    "is_individual": "BOOLEAN DEFAULT 0 NOT NULL",
    "client_code": "INTEGER",
    "created_by": "TEXT",
    "archived_at": "TEXT",
    "deleted_at": "TEXT",
}

CODE_INDEXES = (
    ("clients", "client_code", "ix_clients_client_code"),
    ("proposals", "proposal_number", "ix_proposals_proposal_number"),
    ("bills", "invoice_number", "ix_bills_invoice_number"),
)


def _table_columns(conn: Connection, table: str) -> list[dict[str, object]]:
    return [dict(row) for row in conn.execute(text(f"PRAGMA table_info({table})")).mappings().all()]


def _column_names(conn: Connection, table: str) -> set[str]:
    return {str(record["name"]) for record in _table_columns(conn, table)}


def _add_column_sqlite(conn: Connection, table: str, col_def: str) -> None:
    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _index_is_unique(conn: Connection, table: str, name: str) -> bool:
    for row in conn.execute(text(f"PRAGMA index_list({table})")).mappings():
        if row["name"] == name:
            return bool(row["unique"])
    return False


def _create_unique_index(conn: Connection, table: str, name: str, cols: Iterable[str]) -> None:
    if _index_is_unique(conn, table, name):
        return
    # A plain index created by an older build has to go before the unique one.
    conn.execute(text(f"DROP INDEX IF EXISTS {name}"))
    conn.execute(text(f"CREATE UNIQUE INDEX {name} ON {table} ({', '.join(cols)})"))


def _duplicate_values(conn: Connection, table: str, column: str) -> list[object]:
    rows = conn.execute(
        text(
            f"SELECT {column} FROM {table} WHERE {column} IS NOT NULL "
            f"GROUP BY {column} HAVING COUNT(*) > 1"
        )
    ).all()
    return [row[0] for row in rows]


def _renumber_duplicate_client_codes(conn: Connection) -> int:
    """Give every duplicate ``client_code`` but the oldest a fresh code.

    Databases written by the old scan-then-insert allocator can hold the
    same code twice, which would stop the unique index from being built.
    """

    duplicates = _duplicate_values(conn, "clients", "client_code")
    if not duplicates:
        return 0
    ceiling = get_settings().CLIENT_CODE_MAX
    next_code = (conn.execute(text("SELECT MAX(client_code) FROM clients")).scalar() or 0) + 1
    moved = 0
    for code in duplicates:
        ids = conn.execute(
            text("SELECT id FROM clients WHERE client_code = :code ORDER BY created_at, id"),
            {"code": code},
        ).scalars().all()
        for client_id in ids[1:]:
            new_code = next_code if next_code <= ceiling else None
            conn.execute(
                text("UPDATE clients SET client_code = :new WHERE id = :id"),
                {"new": new_code, "id": client_id},
            )
            log_event(
                logger,
                "migrate.client_code_renumbered",
                logging.WARNING,
                client_id=client_id,
                old=code,
                new=new_code,
            )
            if new_code is not None:
                next_code += 1
            moved += 1
    return moved


def run_migrations(engine: Engine) -> None:
    """Bring an existing SQLite schema up to what the models expect.

    ``Base.metadata.create_all`` builds fresh databases; this only patches
    databases created by older builds.
    """

    if engine.dialect.name != "sqlite":
        return

    with engine.begin() as conn:
        client_cols = _column_names(conn, "clients")
        if not client_cols:
            return
        for name, dtype in CLIENT_COLUMNS.items():
            if name not in client_cols:
                _add_column_sqlite(conn, "clients", f"{name} {dtype}")

        _renumber_duplicate_client_codes(conn)

        for table, column, index_name in CODE_INDEXES:
            if column not in _column_names(conn, table):
                continue
            if _duplicate_values(conn, table, column):
                log_event(
                    logger,
                    "migrate.unique_index_skipped",
                    logging.ERROR,
                    table=table,
                    column=column,
                )
                continue
            _create_unique_index(conn, table, index_name, [column])
