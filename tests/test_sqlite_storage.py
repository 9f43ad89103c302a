import sqlite3

import pytest

from domain.errors import StoreClosedError
from storage.sqlite_storage import SQLiteStore, remove_side_files


@pytest.fixture
def store(tmp_path):
    s = SQLiteStore(str(tmp_path / "expenses.db"))
    s.initialize_schema()
    yield s
    s.close()


def test_store_uses_wal_and_foreign_keys(store):
    assert store.scalar("PRAGMA journal_mode") == "wal"
    assert store.scalar("PRAGMA foreign_keys") == 1


def test_initialize_schema_creates_domain_tables(store):
    for table in (
        "users",
        "categories",
        "income_categories",
        "accounts",
        "expenses",
        "incomes",
        "investments",
        "fixed_deposits",
        "pf_entries",
    ):
        assert store.table_exists(table)
    assert "whereSpent" in store.columns("expenses")
    assert "pinHash" in store.columns("users")


def test_initialize_schema_is_idempotent(store):
    store.execute(
        "INSERT INTO categories (name, icon, hexColor) VALUES (?, ?, ?)", ("Food", "x", "#000000")
    )
    store.initialize_schema()
    assert store.scalar("SELECT COUNT(*) FROM categories") == 1


def test_transaction_commits(store):
    with store.transaction():
        store.execute(
            "INSERT INTO categories (name, icon, hexColor) VALUES (?, ?, ?)", ("Food", "x", "#000000")
        )
    assert store.scalar("SELECT COUNT(*) FROM categories") == 1


def test_transaction_rolls_back_on_error(store):
    with pytest.raises(sqlite3.IntegrityError):
        with store.transaction():
            store.execute(
                "INSERT INTO categories (name, icon, hexColor) VALUES (?, ?, ?)",
                ("Food", "x", "#000000"),
            )
            store.execute(
                "INSERT INTO categories (name, icon, hexColor) VALUES (?, ?, ?)",
                ("Food", "y", "#111111"),
            )
    assert store.scalar("SELECT COUNT(*) FROM categories") == 0
    assert not store.connection.in_transaction


def test_closed_store_raises(tmp_path):
    s = SQLiteStore(str(tmp_path / "closed.db"), name="replica1")
    s.close()
    assert not s.is_open
    with pytest.raises(StoreClosedError, match="replica1"):
        s.fetch_all("SELECT 1")


def test_integrity_check_on_healthy_store(store):
    assert store.integrity_check() == ["ok"]


def test_backup_to_copies_every_row(store, tmp_path):
    store.execute(
        "INSERT INTO categories (name, icon, hexColor) VALUES (?, ?, ?)", ("Food", "x", "#000000")
    )
    target = SQLiteStore(str(tmp_path / "copy.db"), name="copy")
    try:
        store.backup_to(target)
        assert target.scalar("SELECT name FROM categories") == "Food"
    finally:
        target.close()


def test_remove_side_files(tmp_path):
    db_path = tmp_path / "expenses.db"
    db_path.write_bytes(b"")
    (tmp_path / "expenses.db-wal").write_bytes(b"wal")
    (tmp_path / "expenses.db-shm").write_bytes(b"shm")

    removed = remove_side_files(str(db_path))

    assert len(removed) == 2
    assert db_path.exists()
    assert not (tmp_path / "expenses.db-wal").exists()
    assert not (tmp_path / "expenses.db-shm").exists()
