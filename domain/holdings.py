from __future__ import annotations

import sqlite3
from dataclasses import dataclass

PF_ENTRY_TYPES = ("deposit", "interest")


def _float_or_none(value) -> float | None:
    return float(value) if value is not None else None


@dataclass(frozen=True)
class Investment:
    id: int
    user_id: int
    ticker: str
    shares_owned: float
    manual_price_override: float | None = None
    manual_rate_override: float | None = None
    timestamp: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Investment:
        return cls(
            id=int(row["id"]),
            user_id=int(row["userId"]),
            ticker=row["ticker"],
            shares_owned=float(row["shares_owned"]),
            manual_price_override=_float_or_none(row["manual_price_override"]),
            manual_rate_override=_float_or_none(row["manual_rate_override"]),
            timestamp=int(row["timestamp"] or 0),
        )


@dataclass(frozen=True)
class FixedDeposit:
    id: int
    user_id: int
    bank_name: str
    principal: float
    rate_of_interest: float
    start_date: str
    maturity_date: str
    note: str = ""
    timestamp: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> FixedDeposit:
        return cls(
            id=int(row["id"]),
            user_id=int(row["userId"]),
            bank_name=row["bankName"],
            principal=float(row["principal"]),
            rate_of_interest=float(row["rateOfInterest"]),
            start_date=row["startDate"],
            maturity_date=row["maturityDate"],
            note=row["note"] or "",
            timestamp=int(row["timestamp"] or 0),
        )


@dataclass(frozen=True)
class PFEntry:
    id: int
    user_id: int
    type: str
    amount: float
    date: str
    financial_year: str | None = None
    note: str = ""
    timestamp: int = 0

    def __post_init__(self) -> None:
        if self.type not in PF_ENTRY_TYPES:
            raise ValueError('Type must be either "deposit" or "interest"')

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> PFEntry:
        return cls(
            id=int(row["id"]),
            user_id=int(row["userId"]),
            type=row["type"],
            amount=float(row["amount"]),
            date=row["date"],
            financial_year=row["financialYear"],
            note=row["note"] or "",
            timestamp=int(row["timestamp"] or 0),
        )


@dataclass(frozen=True)
class HoldingValue:
    """A holding priced in the target currency; ``value`` is None without a price."""

    ticker: str
    shares_owned: float
    price: float | None
    rate: float
    price_source: str
    rate_source: str

    @property
    def value(self) -> float | None:
        if self.price is None:
            return None
        return self.shares_owned * self.price * self.rate


@dataclass(frozen=True)
class PFSummary:
    total_deposits: float = 0.0
    total_interest: float = 0.0

    @property
    def grand_total(self) -> float:
        return self.total_deposits + self.total_interest
