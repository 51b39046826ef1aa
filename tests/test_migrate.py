"""Tests for upgrading databases created by older builds."""

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from clientdesk.db.migrate import run_migrations


@pytest.fixture()
def legacy_engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    with engine.begin() as conn:
        # Clients table as written by the scan-then-insert allocator: no soft
        # delete columns and no unique index on the code.
        conn.execute(
            text(
                """
                CREATE TABLE clients (
                    id INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    client_code INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
        )
        conn.execute(text("CREATE INDEX ix_clients_client_code ON clients (client_code)"))
        rows = [
            (1, "Acme", 1, "2024-01-01"),
            (2, "Globex", 2, "2024-01-02"),
            (3, "Initech", 2, "2024-01-03"),
            (4, "Umbrella", 2, "2024-01-04"),
        ]
        for client_id, name, code, created in rows:
            conn.execute(
                text(
                    "INSERT INTO clients (id, name, client_code, created_at, updated_at) "
                    "VALUES (:id, :name, :code, :created, :created)"
                ),
                {"id": client_id, "name": name, "code": code, "created": created},
            )
    try:
        yield engine
    finally:
        engine.dispose()


def test_missing_columns_are_added(legacy_engine):
    run_migrations(legacy_engine)
    with legacy_engine.connect() as conn:
        columns = {row["name"] for row in conn.execute(text("PRAGMA table_info(clients)")).mappings()}
    assert {"deleted_at", "archived_at", "email", "is_individual"} <= columns


def test_duplicate_codes_are_renumbered_oldest_first(legacy_engine):
    run_migrations(legacy_engine)
    with legacy_engine.connect() as conn:
        codes = dict(conn.execute(text("SELECT name, client_code FROM clients")).all())
    assert codes == {"Acme": 1, "Globex": 2, "Initech": 3, "Umbrella": 4}


def test_unique_index_rejects_new_duplicates(legacy_engine):
    run_migrations(legacy_engine)
    with pytest.raises(IntegrityError):
        with legacy_engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO clients (name, client_code, created_at, updated_at) "
                    "VALUES ('Dup', 1, '2024-02-01', '2024-02-01')"
                )
            )


def test_migrations_are_idempotent(legacy_engine):
    run_migrations(legacy_engine)
    run_migrations(legacy_engine)
    with legacy_engine.connect() as conn:
        codes = sorted(conn.execute(text("SELECT client_code FROM clients")).scalars())
    assert codes == [1, 2, 3, 4]


def test_fresh_database_is_left_alone():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    run_migrations(engine)
    with engine.connect() as conn:
        tables = conn.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'")).scalars().all()
    assert tables == []
