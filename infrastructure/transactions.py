from __future__ import annotations

import logging
from typing import Any

from domain.transactions import (
    CategoryTotal,
    Expense,
    Income,
    MonthlySummary,
    MonthTotal,
    YearlySummary,
)
from domain.validation import date_as_text, ensure_positive_amount, ensure_text, month_key
from storage.mutations import Delete, Insert, Update

from .repositories import SQLiteRepository, pick_fields, timestamp_ms

logger = logging.getLogger(__name__)


class _LedgerRepository(SQLiteRepository):
    """Shared queries for the expenses and incomes tables."""

    table: str
    category_table: str
    entity: Any
    _columns: dict[str, str]

    def _select(self) -> str:
        return f"""
            SELECT t.*,
                   c.name AS categoryName, c.icon AS categoryIcon, c.hexColor AS categoryColor,
                   a.name AS accountName, a.icon AS accountIcon, a.hexColor AS accountColor,
                   a.type AS accountType
            FROM {self.table} AS t
            JOIN {self.category_table} AS c ON t.categoryId = c.id
            LEFT JOIN accounts AS a ON t.accountId = a.id
        """

    def list(self, user_id: int, month: int | None = None, year: int | None = None) -> list:
        sql = self._select() + " WHERE t.userId = ?"
        params: list[Any] = [user_id]
        if month and year:
            sql += " AND strftime('%Y-%m', t.date) = ?"
            params.append(month_key(year, month))
        sql += " ORDER BY t.date DESC, t.timestamp DESC"
        return [self.entity.from_row(row) for row in self._store.fetch_all(sql, params)]

    def get_by_id(self, record_id: int, user_id: int):
        row = self._store.fetch_one(
            self._select() + " WHERE t.id = ? AND t.userId = ?", (record_id, user_id)
        )
        return self.entity.from_row(row) if row is not None else None

    def update(self, record_id: int, user_id: int, **fields):
        values = pick_fields(fields, self._columns)
        if not values:
            return None
        if "amount" in values:
            values["amount"] = ensure_positive_amount(values["amount"])
        if "date" in values:
            values["date"] = date_as_text(values["date"])
        self._write(
            Update(self.table, values, {"id": record_id, "userId": user_id}),
            label=f"update {self.table}",
        )
        return self.get_by_id(record_id, user_id)

    def delete(self, record_id: int, user_id: int) -> bool:
        applied = self._write(
            Delete(self.table, {"id": record_id, "userId": user_id}),
            label=f"delete {self.table}",
        )
        return applied.rowcount > 0

    def monthly_summary(self, user_id: int, year: int, month: int) -> MonthlySummary:
        key = month_key(year, month)
        total = self._store.scalar(
            f"""
            SELECT COALESCE(SUM(amount), 0)
            FROM {self.table}
            WHERE strftime('%Y-%m', date) = ? AND userId = ?
            """,
            (key, user_id),
        )
        rows = self._store.fetch_all(
            f"""
            SELECT c.id, c.name, c.icon, c.hexColor,
                   COALESCE(SUM(t.amount), 0) AS total,
                   COUNT(t.id) AS count
            FROM {self.category_table} AS c
            LEFT JOIN {self.table} AS t ON c.id = t.categoryId
                AND strftime('%Y-%m', t.date) = ?
                AND t.userId = ?
            GROUP BY c.id
            HAVING total > 0
            ORDER BY total DESC
            """,
            (key, user_id),
        )
        return MonthlySummary(
            year=int(year),
            month=int(month),
            total=float(total or 0.0),
            breakdown=tuple(CategoryTotal.from_row(row) for row in rows),
        )


class ExpenseRepository(_LedgerRepository):
    table = "expenses"
    category_table = "categories"
    entity = Expense
    _columns = {
        "amount": "amount",
        "date": "date",
        "category_id": "categoryId",
        "note": "note",
        "where_spent": "whereSpent",
        "account_id": "accountId",
    }

    def create(
        self,
        user_id: int,
        *,
        amount: float,
        date: str,
        category_id: int,
        note: str = "",
        where_spent: str = "",
        account_id: int | None = None,
    ) -> Expense:
        values = {
            "amount": ensure_positive_amount(amount),
            "date": date_as_text(date),
            "categoryId": int(category_id),
            "userId": user_id,
            "note": note or "",
            "whereSpent": where_spent or "",
            "timestamp": timestamp_ms(),
            "accountId": account_id,
        }
        applied = self._write(Insert(self.table, values), label="create expense")
        return self.get_by_id(applied.last_row_id, user_id)


class IncomeRepository(_LedgerRepository):
    table = "incomes"
    category_table = "income_categories"
    entity = Income
    _columns = {
        "amount": "amount",
        "date": "date",
        "category_id": "categoryId",
        "note": "note",
        "source": "source",
        "account_id": "accountId",
    }

    def create(
        self,
        user_id: int,
        *,
        amount: float,
        date: str,
        category_id: int,
        source: str,
        note: str = "",
        account_id: int | None = None,
    ) -> Income:
        values = {
            "amount": ensure_positive_amount(amount),
            "date": date_as_text(date),
            "categoryId": int(category_id),
            "userId": user_id,
            "note": note or "",
            "source": ensure_text(source, "source"),
            "accountId": account_id,
            "timestamp": timestamp_ms(),
        }
        applied = self._write(Insert(self.table, values), label="create income")
        return self.get_by_id(applied.last_row_id, user_id)

    def yearly_summary(self, user_id: int, year: int) -> YearlySummary:
        rows = self._store.fetch_all(
            """
            SELECT CAST(strftime('%m', date) AS INTEGER) AS month,
                   COALESCE(SUM(amount), 0) AS total,
                   COUNT(id) AS count
            FROM incomes
            WHERE strftime('%Y', date) = ? AND userId = ?
            GROUP BY strftime('%m', date)
            """,
            (f"{int(year):04d}", user_id),
        )
        by_month = {int(row["month"]): row for row in rows}
        months = []
        for month in range(1, 13):
            row = by_month.get(month)
            if row is None:
                months.append(MonthTotal(month=month))
            else:
                months.append(MonthTotal(month=month, total=float(row["total"]), count=int(row["count"])))
        return YearlySummary(year=int(year), months=tuple(months))
