from __future__ import annotations

import logging
from typing import Any

from domain.holdings import PF_ENTRY_TYPES, FixedDeposit, Investment, PFEntry, PFSummary
from domain.validation import (
    date_as_text,
    ensure_financial_year,
    ensure_non_negative,
    ensure_positive_amount,
    ensure_text,
    normalize_ticker,
    parse_ymd,
)
from storage.mutations import Delete, Insert, Update, Upsert

from .repositories import SQLiteRepository, timestamp_ms

logger = logging.getLogger(__name__)


def _optional_amount(value, field_name: str) -> float | None:
    if value is None:
        return None
    return ensure_non_negative(value, field_name)


class InvestmentRepository(SQLiteRepository):
    def list(self, user_id: int) -> list[Investment]:
        rows = self._store.fetch_all(
            "SELECT * FROM investments WHERE userId = ? ORDER BY ticker ASC", (user_id,)
        )
        return [Investment.from_row(row) for row in rows]

    def get_by_ticker(self, user_id: int, ticker: str) -> Investment | None:
        row = self._store.fetch_one(
            "SELECT * FROM investments WHERE userId = ? AND ticker = ?",
            (user_id, normalize_ticker(ticker)),
        )
        return Investment.from_row(row) if row is not None else None

    def upsert(
        self,
        user_id: int,
        *,
        ticker: str,
        shares_owned: float | None,
        manual_price_override: float | None = None,
        manual_rate_override: float | None = None,
    ) -> Investment:
        if not ticker or shares_owned is None:
            raise ValueError("Ticker and shares_owned are required")
        symbol = normalize_ticker(ticker)
        values = {
            "userId": user_id,
            "ticker": symbol,
            "shares_owned": ensure_non_negative(shares_owned, "shares_owned"),
            "manual_price_override": _optional_amount(manual_price_override, "manual_price_override"),
            "manual_rate_override": _optional_amount(manual_rate_override, "manual_rate_override"),
            "timestamp": timestamp_ms(),
        }
        self._write(
            Upsert("investments", values, conflict=("userId", "ticker")),
            label=f"upsert investment {symbol}",
        )
        logger.info("Investment saved user_id=%s ticker=%s shares=%s", user_id, symbol, shares_owned)
        return self.get_by_ticker(user_id, symbol)

    def update_overrides(
        self,
        user_id: int,
        ticker: str,
        *,
        manual_price_override: float | None,
        manual_rate_override: float | None,
    ) -> Investment:
        """Replace both manual overrides; NotFoundError when the holding does not exist."""
        symbol = normalize_ticker(ticker)
        self._write(
            Update(
                "investments",
                {
                    "manual_price_override": _optional_amount(
                        manual_price_override, "manual_price_override"
                    ),
                    "manual_rate_override": _optional_amount(
                        manual_rate_override, "manual_rate_override"
                    ),
                    "timestamp": timestamp_ms(),
                },
                {"userId": user_id, "ticker": symbol},
                require_match=True,
            ),
            label=f"update overrides {symbol}",
        )
        return self.get_by_ticker(user_id, symbol)

    def delete(self, user_id: int, ticker: str) -> bool:
        symbol = normalize_ticker(ticker)
        applied = self._write(
            Delete("investments", {"userId": user_id, "ticker": symbol}),
            label=f"delete investment {symbol}",
        )
        return applied.rowcount > 0


class FixedDepositRepository(SQLiteRepository):
    def list(self, user_id: int) -> list[FixedDeposit]:
        rows = self._store.fetch_all(
            "SELECT * FROM fixed_deposits WHERE userId = ? ORDER BY maturityDate ASC", (user_id,)
        )
        return [FixedDeposit.from_row(row) for row in rows]

    def get_by_id(self, deposit_id: int, user_id: int) -> FixedDeposit | None:
        row = self._store.fetch_one(
            "SELECT * FROM fixed_deposits WHERE id = ? AND userId = ?", (deposit_id, user_id)
        )
        return FixedDeposit.from_row(row) if row is not None else None

    @staticmethod
    def _values(
        bank_name: str,
        principal: float,
        rate_of_interest: float,
        start_date: str,
        maturity_date: str,
        note: str,
    ) -> dict[str, Any]:
        start = parse_ymd(start_date)
        maturity = parse_ymd(maturity_date)
        if maturity < start:
            raise ValueError("Maturity date cannot be earlier than start date")
        return {
            "bankName": ensure_text(bank_name, "bank_name"),
            "principal": ensure_positive_amount(principal, "principal"),
            "rateOfInterest": ensure_non_negative(rate_of_interest, "rate_of_interest"),
            "startDate": start.isoformat(),
            "maturityDate": maturity.isoformat(),
            "note": note or "",
            "timestamp": timestamp_ms(),
        }

    def create(
        self,
        user_id: int,
        *,
        bank_name: str,
        principal: float,
        rate_of_interest: float,
        start_date: str,
        maturity_date: str,
        note: str = "",
    ) -> FixedDeposit:
        values = self._values(bank_name, principal, rate_of_interest, start_date, maturity_date, note)
        values["userId"] = user_id
        applied = self._write(Insert("fixed_deposits", values), label="create fixed deposit")
        return self.get_by_id(applied.last_row_id, user_id)

    def update(
        self,
        deposit_id: int,
        user_id: int,
        *,
        bank_name: str,
        principal: float,
        rate_of_interest: float,
        start_date: str,
        maturity_date: str,
        note: str = "",
    ) -> FixedDeposit | None:
        values = self._values(bank_name, principal, rate_of_interest, start_date, maturity_date, note)
        self._write(
            Update("fixed_deposits", values, {"id": deposit_id, "userId": user_id}),
            label="update fixed deposit",
        )
        return self.get_by_id(deposit_id, user_id)

    def delete(self, deposit_id: int, user_id: int) -> bool:
        applied = self._write(
            Delete("fixed_deposits", {"id": deposit_id, "userId": user_id}),
            label="delete fixed deposit",
        )
        return applied.rowcount > 0


class PFEntryRepository(SQLiteRepository):
    def list(
        self, user_id: int, type: str | None = None, financial_year: str | None = None
    ) -> list[PFEntry]:
        sql = "SELECT * FROM pf_entries WHERE userId = ?"
        params: list[Any] = [user_id]
        if type:
            sql += " AND type = ?"
            params.append(type)
        if financial_year:
            sql += " AND financialYear = ?"
            params.append(financial_year)
        sql += " ORDER BY date DESC, id DESC"
        return [PFEntry.from_row(row) for row in self._store.fetch_all(sql, params)]

    def get_by_id(self, entry_id: int, user_id: int) -> PFEntry | None:
        row = self._store.fetch_one(
            "SELECT * FROM pf_entries WHERE id = ? AND userId = ?", (entry_id, user_id)
        )
        return PFEntry.from_row(row) if row is not None else None

    def summary(self, user_id: int) -> PFSummary:
        rows = self._store.fetch_all(
            """
            SELECT type, COALESCE(SUM(amount), 0) AS total
            FROM pf_entries
            WHERE userId = ?
            GROUP BY type
            """,
            (user_id,),
        )
        totals = {row["type"]: float(row["total"]) for row in rows}
        return PFSummary(
            total_deposits=totals.get("deposit", 0.0),
            total_interest=totals.get("interest", 0.0),
        )

    def financial_years(self, user_id: int) -> list[str]:
        rows = self._store.fetch_all(
            """
            SELECT DISTINCT financialYear
            FROM pf_entries
            WHERE userId = ? AND financialYear IS NOT NULL
            ORDER BY financialYear DESC
            """,
            (user_id,),
        )
        return [row["financialYear"] for row in rows]

    def create(
        self,
        user_id: int,
        *,
        type: str,
        amount: float,
        date: str,
        financial_year: str | None = None,
        note: str = "",
    ) -> PFEntry:
        if type not in PF_ENTRY_TYPES:
            raise ValueError('Type must be either "deposit" or "interest"')
        values = {
            "userId": user_id,
            "type": type,
            "amount": ensure_positive_amount(amount),
            "date": date_as_text(date),
            "financialYear": ensure_financial_year(financial_year),
            "note": note or "",
            "timestamp": timestamp_ms(),
        }
        applied = self._write(Insert("pf_entries", values), label=f"create pf {type}")
        return self.get_by_id(applied.last_row_id, user_id)

    def delete(self, entry_id: int, user_id: int) -> bool:
        applied = self._write(
            Delete("pf_entries", {"id": entry_id, "userId": user_id}), label="delete pf entry"
        )
        return applied.rowcount > 0
