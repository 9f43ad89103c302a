from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from .validation import ensure_hex_color, ensure_text


@dataclass(frozen=True)
class Category:
    """Expense or income category; both tables share this shape."""

    id: int
    name: str
    icon: str
    hex_color: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", ensure_text(self.name, "name"))
        object.__setattr__(self, "hex_color", ensure_hex_color(self.hex_color))

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Category:
        return cls(
            id=int(row["id"]),
            name=row["name"],
            icon=row["icon"],
            hex_color=row["hexColor"],
        )
