from __future__ import annotations

from collections.abc import Iterable

from prettytable import PrettyTable

from .holdings import HoldingValue
from .transactions import MonthlySummary, YearlySummary
from .validation import month_key


def _money(value: float) -> str:
    return f"{value:.2f}" if value >= 0 else f"({abs(value):.2f})"


class MonthlyReport:
    def __init__(self, expenses: MonthlySummary, incomes: MonthlySummary):
        if (expenses.year, expenses.month) != (incomes.year, incomes.month):
            raise ValueError("Expense and income summaries must cover the same month")
        self.expenses = expenses
        self.incomes = incomes

    @property
    def period(self) -> str:
        return month_key(self.expenses.year, self.expenses.month)

    def net(self) -> float:
        return self.incomes.total - self.expenses.total

    def as_table(self) -> str:
        table = PrettyTable()
        table.field_names = ["Type", "Category", "Count", "Amount"]
        table.align["Amount"] = "r"

        for item in self.incomes.breakdown:
            table.add_row(["Income", f"{item.icon} {item.name}", item.count, _money(item.total)])
        for item in self.expenses.breakdown:
            table.add_row(["Expense", f"{item.icon} {item.name}", item.count, _money(item.total)])

        table.add_row(["TOTAL INCOME", "", "", _money(self.incomes.total)], divider=True)
        table.add_row(["TOTAL EXPENSE", "", "", _money(self.expenses.total)])
        table.add_row(["NET", self.period, "", _money(self.net())])
        return str(table)


def yearly_income_table(summary: YearlySummary) -> str:
    table = PrettyTable()
    table.field_names = ["Month", "Entries", "Income"]
    for month in summary.months:
        table.add_row([f"{summary.year}-{month.month:02d} {month.month_name}", month.count, f"{month.total:.2f}"])
    table.add_row(["TOTAL", "", f"{summary.total:.2f}"], divider=True)
    return str(table)


def holdings_table(values: Iterable[HoldingValue]) -> str:
    table = PrettyTable()
    table.field_names = ["Ticker", "Shares", "Price", "Rate", "Value"]
    total = 0.0
    for holding in values:
        price = "n/a" if holding.price is None else f"{holding.price:.2f}"
        value = holding.value
        if value is not None:
            total += value
        table.add_row(
            [
                holding.ticker,
                f"{holding.shares_owned:g}",
                price,
                f"{holding.rate:.4f}",
                "n/a" if value is None else f"{value:.2f}",
            ]
        )
    table.add_row(["TOTAL", "", "", "", f"{total:.2f}"], divider=True)
    return str(table)
