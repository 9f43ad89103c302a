from __future__ import annotations

import calendar
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from .validation import parse_ymd


def _optional(row: sqlite3.Row, key: str) -> Any:
    return row[key] if key in row.keys() else None


@dataclass(frozen=True)
class Expense:
    id: int
    amount: float
    date: str
    category_id: int
    user_id: int
    note: str = ""
    where_spent: str = ""
    timestamp: int = 0
    account_id: int | None = None
    category_name: str | None = None
    category_icon: str | None = None
    category_color: str | None = None
    account_name: str | None = None
    account_icon: str | None = None
    account_color: str | None = None
    account_type: str | None = None

    def __post_init__(self) -> None:
        parse_ymd(self.date)
        object.__setattr__(self, "amount", float(self.amount))

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Expense:
        account_id = row["accountId"]
        return cls(
            id=int(row["id"]),
            amount=row["amount"],
            date=row["date"],
            category_id=int(row["categoryId"]),
            user_id=int(row["userId"]),
            note=row["note"] or "",
            where_spent=row["whereSpent"] or "",
            timestamp=int(row["timestamp"] or 0),
            account_id=int(account_id) if account_id is not None else None,
            category_name=_optional(row, "categoryName"),
            category_icon=_optional(row, "categoryIcon"),
            category_color=_optional(row, "categoryColor"),
            account_name=_optional(row, "accountName"),
            account_icon=_optional(row, "accountIcon"),
            account_color=_optional(row, "accountColor"),
            account_type=_optional(row, "accountType"),
        )


@dataclass(frozen=True)
class Income:
    id: int
    amount: float
    date: str
    category_id: int
    user_id: int
    source: str
    note: str = ""
    timestamp: int = 0
    account_id: int | None = None
    category_name: str | None = None
    category_icon: str | None = None
    category_color: str | None = None
    account_name: str | None = None
    account_icon: str | None = None
    account_color: str | None = None
    account_type: str | None = None

    def __post_init__(self) -> None:
        parse_ymd(self.date)
        object.__setattr__(self, "amount", float(self.amount))

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Income:
        account_id = row["accountId"]
        return cls(
            id=int(row["id"]),
            amount=row["amount"],
            date=row["date"],
            category_id=int(row["categoryId"]),
            user_id=int(row["userId"]),
            source=row["source"],
            note=row["note"] or "",
            timestamp=int(row["timestamp"] or 0),
            account_id=int(account_id) if account_id is not None else None,
            category_name=_optional(row, "categoryName"),
            category_icon=_optional(row, "categoryIcon"),
            category_color=_optional(row, "categoryColor"),
            account_name=_optional(row, "accountName"),
            account_icon=_optional(row, "accountIcon"),
            account_color=_optional(row, "accountColor"),
            account_type=_optional(row, "accountType"),
        )


@dataclass(frozen=True)
class CategoryTotal:
    category_id: int
    name: str
    icon: str
    hex_color: str
    total: float
    count: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> CategoryTotal:
        return cls(
            category_id=int(row["id"]),
            name=row["name"],
            icon=row["icon"],
            hex_color=row["hexColor"],
            total=float(row["total"]),
            count=int(row["count"]),
        )


@dataclass(frozen=True)
class MonthlySummary:
    year: int
    month: int
    total: float
    breakdown: tuple[CategoryTotal, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MonthTotal:
    month: int
    total: float = 0.0
    count: int = 0

    @property
    def month_name(self) -> str:
        return calendar.month_abbr[self.month]


@dataclass(frozen=True)
class YearlySummary:
    year: int
    months: tuple[MonthTotal, ...]

    @property
    def total(self) -> float:
        return sum(month.total for month in self.months)
