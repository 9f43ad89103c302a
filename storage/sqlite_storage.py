from __future__ import annotations

import logging
import os
import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from domain.errors import StoreClosedError

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"
SIDE_FILE_SUFFIXES = ("-wal", "-shm", "-journal")


class SQLiteStore:
    """One open connection to a SQLite file, shared by every caller in the process.

    The connection runs in autocommit mode; atomic units of work go through
    :meth:`transaction`, which issues ``BEGIN IMMEDIATE`` so a writer takes the
    file lock up front. A re-entrant lock serializes threads on the shared
    connection.
    """

    def __init__(self, db_path: str, *, name: str = "primary") -> None:
        self.path = str(db_path)
        self.name = name
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self.open()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"SQLiteStore(name={self.name!r}, path={self.path!r}, {state})"

    def open(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._conn = conn
            self._configure()

    def _configure(self) -> None:
        # A damaged file still opens; the integrity check decides what happens next.
        try:
            self._conn.execute("PRAGMA foreign_keys = ON;")
            self._conn.execute("PRAGMA journal_mode = WAL;")
        except sqlite3.DatabaseError as exc:
            logger.warning("Could not configure store %s (%s): %s", self.name, self.path, exc)

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            finally:
                self._conn = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreClosedError(f"Store {self.name} is closed")
        return self._conn

    def file_exists(self) -> bool:
        return os.path.exists(self.path)

    def size_bytes(self) -> int:
        try:
            return os.path.getsize(self.path)
        except OSError:
            return 0

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self.connection
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            return self.connection.execute(sql, tuple(params))

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.connection.execute(sql, tuple(params)).fetchall()

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        with self._lock:
            return self.connection.execute(sql, tuple(params)).fetchone()

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        row = self.fetch_one(sql, params)
        if row is None:
            return None
        return row[0]

    def initialize_schema(self, schema_path: str | None = None) -> None:
        if schema_path is None:
            schema_path = str(SCHEMA_PATH)
        schema = Path(schema_path).read_text(encoding="utf-8")
        with self._lock:
            self.connection.executescript(schema)

    def table_exists(self, table: str) -> bool:
        row = self.fetch_one(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,),
        )
        return row is not None

    def columns(self, table: str) -> list[str]:
        rows = self.fetch_all(f'PRAGMA table_info("{table}")')
        return [str(row["name"]) for row in rows]

    def integrity_check(self) -> list[str]:
        rows = self.fetch_all("PRAGMA integrity_check")
        return [str(row[0]) for row in rows]

    def checkpoint(self) -> None:
        """Fold the write-ahead log into the main file so a byte copy is complete."""
        self.fetch_all("PRAGMA wal_checkpoint(TRUNCATE)")

    def backup_to(self, target: SQLiteStore) -> None:
        """Copy every page of this store into ``target`` using the online backup API."""
        with self._lock:
            source = self.connection
            with target._lock:
                source.backup(target.connection)


def remove_side_files(db_path: str) -> list[str]:
    """Delete WAL/SHM/journal files left next to a closed database file."""
    removed: list[str] = []
    for suffix in SIDE_FILE_SUFFIXES:
        candidate = f"{db_path}{suffix}"
        if os.path.exists(candidate):
            os.remove(candidate)
            removed.append(candidate)
    return removed
