from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import Any, Protocol


class Store(Protocol):
    """Low-level contract a store handle offers to mutations and checks."""

    name: str
    path: str

    @property
    def is_open(self) -> bool:
        ...

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        ...

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        ...

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        ...

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        ...

    def transaction(self) -> AbstractContextManager[sqlite3.Connection]:
        ...

    def integrity_check(self) -> list[str]:
        ...
