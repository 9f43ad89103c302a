"""Write operations expressed as data, so the same unit of work can be replayed on any store.

A :class:`Mutation` never carries a row id taken from another store. When an
operation needs a store-local value (the id of a row inserted earlier in the
same mutation, say) it uses a :class:`Lookup`, which every store resolves
against its own tables.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from domain.errors import NotFoundError

from .base import Store

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_CONFLICT_POLICIES = (None, "IGNORE", "REPLACE")


def quote_identifier(identifier: str) -> str:
    if not _IDENTIFIER.fullmatch(identifier or ""):
        raise ValueError(f"Invalid SQL identifier: {identifier!r}")
    return f'"{identifier}"'


@dataclass(frozen=True)
class Lookup:
    """A scalar query evaluated against whichever store the mutation is applied to."""

    sql: str
    params: tuple = ()

    def resolve(self, store: Store) -> Any:
        return store.scalar(self.sql, self.params)


def _resolve(value: Any, store: Store) -> Any:
    if isinstance(value, Lookup):
        return value.resolve(store)
    return value


def _where_clause(where: Mapping[str, Any], store: Store) -> tuple[str, list[Any]]:
    if not where:
        raise ValueError("A where clause is required")
    parts: list[str] = []
    params: list[Any] = []
    for column, value in where.items():
        value = _resolve(value, store)
        if value is None:
            parts.append(f"{quote_identifier(column)} IS NULL")
        else:
            parts.append(f"{quote_identifier(column)} = ?")
            params.append(value)
    return " AND ".join(parts), params


@dataclass(frozen=True)
class OperationResult:
    rowcount: int
    lastrowid: int | None = None


@dataclass(frozen=True)
class Insert:
    table: str
    values: Mapping[str, Any]
    on_conflict: str | None = None

    def __post_init__(self) -> None:
        if not self.values:
            raise ValueError("Insert needs at least one column")
        if self.on_conflict not in _CONFLICT_POLICIES:
            raise ValueError(f"Unsupported conflict policy: {self.on_conflict}")

    def apply(self, store: Store) -> OperationResult:
        columns = list(self.values)
        verb = "INSERT" if self.on_conflict is None else f"INSERT OR {self.on_conflict}"
        sql = (
            f"{verb} INTO {quote_identifier(self.table)} "
            f"({', '.join(quote_identifier(column) for column in columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        cursor = store.execute(sql, [_resolve(self.values[column], store) for column in columns])
        return OperationResult(cursor.rowcount, cursor.lastrowid)


@dataclass(frozen=True)
class Upsert:
    """Insert a row, or update ``update`` columns when ``conflict`` columns collide."""

    table: str
    values: Mapping[str, Any]
    conflict: tuple[str, ...]
    update: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.conflict:
            raise ValueError("Upsert needs conflict columns")
        missing = [column for column in self.conflict if column not in self.values]
        if missing:
            raise ValueError(f"Conflict columns missing from values: {missing}")

    def apply(self, store: Store) -> OperationResult:
        columns = list(self.values)
        update_columns = self.update or tuple(c for c in columns if c not in self.conflict)
        assignments = ", ".join(
            f"{quote_identifier(column)} = excluded.{quote_identifier(column)}"
            for column in update_columns
        )
        sql = (
            f"INSERT INTO {quote_identifier(self.table)} "
            f"({', '.join(quote_identifier(column) for column in columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT({', '.join(quote_identifier(column) for column in self.conflict)}) "
            f"DO UPDATE SET {assignments}"
        )
        cursor = store.execute(sql, [_resolve(self.values[column], store) for column in columns])
        return OperationResult(cursor.rowcount, cursor.lastrowid)


@dataclass(frozen=True)
class Update:
    table: str
    values: Mapping[str, Any]
    where: Mapping[str, Any]
    require_match: bool = False

    def __post_init__(self) -> None:
        if not self.values:
            raise ValueError("Update needs at least one column")

    def apply(self, store: Store) -> OperationResult:
        assignments = ", ".join(f"{quote_identifier(column)} = ?" for column in self.values)
        condition, where_params = _where_clause(self.where, store)
        params = [_resolve(value, store) for value in self.values.values()] + where_params
        cursor = store.execute(
            f"UPDATE {quote_identifier(self.table)} SET {assignments} WHERE {condition}",
            params,
        )
        if self.require_match and cursor.rowcount == 0:
            raise NotFoundError(f"No {self.table} row matches {dict(self.where)}")
        return OperationResult(cursor.rowcount)


@dataclass(frozen=True)
class Delete:
    table: str
    where: Mapping[str, Any]
    require_match: bool = False

    def apply(self, store: Store) -> OperationResult:
        condition, params = _where_clause(self.where, store)
        cursor = store.execute(
            f"DELETE FROM {quote_identifier(self.table)} WHERE {condition}",
            params,
        )
        if self.require_match and cursor.rowcount == 0:
            raise NotFoundError(f"No {self.table} row matches {dict(self.where)}")
        return OperationResult(cursor.rowcount)


Operation = Union[Insert, Upsert, Update, Delete]


@dataclass(frozen=True)
class AppliedMutation:
    """What one store reported after applying a mutation."""

    store: str
    results: tuple[OperationResult, ...] = field(default_factory=tuple)

    @property
    def rowcount(self) -> int:
        return sum(max(result.rowcount, 0) for result in self.results)

    @property
    def last_row_id(self) -> int | None:
        for result in reversed(self.results):
            if result.lastrowid:
                return int(result.lastrowid)
        return None

    def rowcount_of(self, index: int) -> int:
        return self.results[index].rowcount


@dataclass(frozen=True)
class Mutation:
    operations: tuple[Operation, ...]
    label: str = ""

    def __post_init__(self) -> None:
        if not self.operations:
            raise ValueError("A mutation needs at least one operation")

    @classmethod
    def of(cls, *operations: Operation, label: str = "") -> Mutation:
        return cls(tuple(operations), label=label)

    def describe(self) -> str:
        if self.label:
            return self.label
        return ", ".join(f"{type(op).__name__.lower()} {op.table}" for op in self.operations)

    def apply(self, store: Store) -> AppliedMutation:
        return AppliedMutation(
            store=store.name,
            results=tuple(operation.apply(store) for operation in self.operations),
        )
