import logging

from domain.holdings import HoldingValue
from domain.reports import MonthlyReport
from domain.transactions import Expense, Income
from domain.validation import month_key
from infrastructure.holdings import InvestmentRepository
from infrastructure.repositories import AccountRepository
from infrastructure.transactions import ExpenseRepository, IncomeRepository

from .services import ExchangeRateService, PriceProvider

logger = logging.getLogger(__name__)


def _resolve_account_id(accounts: AccountRepository, user_id: int, account_id: int | None) -> int:
    if account_id is None:
        return accounts.get_default(user_id).id
    if accounts.get_by_id(account_id, user_id) is None:
        raise ValueError(f"Account not found: {account_id}")
    return account_id


class CreateExpense:
    def __init__(self, expenses: ExpenseRepository, accounts: AccountRepository):
        self._expenses = expenses
        self._accounts = accounts

    def execute(
        self,
        *,
        user_id: int,
        amount: float,
        date: str,
        category_id: int,
        note: str = "",
        where_spent: str = "",
        account_id: int | None = None,
    ) -> Expense:
        """Create and persist an expense, booked to the default account if none is given."""
        account_id = _resolve_account_id(self._accounts, user_id, account_id)
        expense = self._expenses.create(
            user_id,
            amount=amount,
            date=date,
            category_id=category_id,
            note=note,
            where_spent=where_spent,
            account_id=account_id,
        )
        logger.info(
            "Expense created id=%s user_id=%s amount=%s category_id=%s account_id=%s",
            expense.id,
            user_id,
            expense.amount,
            category_id,
            account_id,
        )
        return expense


class CreateIncome:
    def __init__(self, incomes: IncomeRepository, accounts: AccountRepository):
        self._incomes = incomes
        self._accounts = accounts

    def execute(
        self,
        *,
        user_id: int,
        amount: float,
        date: str,
        category_id: int,
        source: str,
        note: str = "",
        account_id: int | None = None,
    ) -> Income:
        """Create and persist an income, booked to the default account if none is given."""
        account_id = _resolve_account_id(self._accounts, user_id, account_id)
        income = self._incomes.create(
            user_id,
            amount=amount,
            date=date,
            category_id=category_id,
            source=source,
            note=note,
            account_id=account_id,
        )
        logger.info(
            "Income created id=%s user_id=%s amount=%s source=%s account_id=%s",
            income.id,
            user_id,
            income.amount,
            source,
            account_id,
        )
        return income


class MonthlyOverview:
    def __init__(self, expenses: ExpenseRepository, incomes: IncomeRepository):
        self._expenses = expenses
        self._incomes = incomes

    def execute(self, *, user_id: int, year: int, month: int) -> MonthlyReport:
        month_key(year, month)
        return MonthlyReport(
            self._expenses.monthly_summary(user_id, year, month),
            self._incomes.monthly_summary(user_id, year, month),
        )


class ValueInvestments:
    def __init__(
        self,
        investments: InvestmentRepository,
        prices: PriceProvider,
        rates: ExchangeRateService,
    ):
        self._investments = investments
        self._prices = prices
        self._rates = rates

    def execute(self, user_id: int) -> list[HoldingValue]:
        values: list[HoldingValue] = []
        for investment in self._investments.list(user_id):
            if investment.manual_price_override is not None:
                price, price_source = investment.manual_price_override, "manual"
            else:
                price, price_source = self._prices.get_price(investment.ticker), "market"
                if price is None:
                    logger.warning("No price available for %s", investment.ticker)
                    price_source = "missing"
            if investment.manual_rate_override is not None:
                rate, rate_source = investment.manual_rate_override, "manual"
            else:
                rate, rate_source = self._rates.get_rate(), "service"
            values.append(
                HoldingValue(
                    ticker=investment.ticker,
                    shares_owned=investment.shares_owned,
                    price=price,
                    rate=rate,
                    price_source=price_source,
                    rate_source=rate_source,
                )
            )
        return values
