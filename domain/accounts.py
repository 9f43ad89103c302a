from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from .validation import ensure_text


@dataclass(frozen=True)
class AccountType:
    value: str
    label: str
    icon: str


ACCOUNT_TYPES: tuple[AccountType, ...] = (
    AccountType("Savings Account", "Savings Account", "🏦"),
    AccountType("Credit Card", "Credit Card", "💳"),
    AccountType("Debit Card", "Debit Card", "💳"),
    AccountType("Cash", "Cash", "💵"),
    AccountType("Digital Wallet", "Digital Wallet", "📱"),
    AccountType("Investment Account", "Investment Account", "📈"),
    AccountType("Other", "Other", "💼"),
)


@dataclass(frozen=True)
class Account:
    id: int
    name: str
    type: str
    user_id: int
    icon: str
    hex_color: str
    is_default: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", ensure_text(self.name, "name"))
        object.__setattr__(self, "is_default", bool(self.is_default))

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Account:
        return cls(
            id=int(row["id"]),
            name=row["name"],
            type=row["type"],
            user_id=int(row["userId"]),
            icon=row["icon"],
            hex_color=row["hexColor"],
            is_default=bool(row["isDefault"]),
        )
