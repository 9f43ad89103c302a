from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field


@dataclass(frozen=True)
class User:
    id: int
    username: str
    created_at: str
    password_hash: str | None = field(default=None, repr=False)
    salt: str | None = field(default=None, repr=False)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> User:
        keys = row.keys()
        return cls(
            id=int(row["id"]),
            username=row["username"],
            created_at=row["createdAt"],
            password_hash=row["passwordHash"] if "passwordHash" in keys else None,
            salt=row["salt"] if "salt" in keys else None,
        )


@dataclass(frozen=True)
class PinCredentials:
    pin_hash: str = field(repr=False)
    pin_salt: str = field(repr=False)
