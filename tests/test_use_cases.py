from unittest.mock import Mock

import pytest

from app.services import ExchangeRateService
from app.use_cases import CreateExpense, CreateIncome, MonthlyOverview, ValueInvestments
from infrastructure.holdings import InvestmentRepository
from infrastructure.repositories import AccountRepository
from infrastructure.transactions import ExpenseRepository, IncomeRepository
from storage.migrations import SchemaMigrator


@pytest.fixture
def repos(context, writer, make_user):
    SchemaMigrator(context, writer).ensure_schema()
    make_user(7)
    return {
        "accounts": AccountRepository(context, writer),
        "expenses": ExpenseRepository(context, writer),
        "incomes": IncomeRepository(context, writer),
        "investments": InvestmentRepository(context, writer),
    }


def test_create_expense_uses_default_account(repos):
    use_case = CreateExpense(repos["expenses"], repos["accounts"])

    expense = use_case.execute(user_id=7, amount=42.50, date="2024-03-15", category_id=1, note="lunch")

    assert expense.account_name == "Cash"
    assert expense.account_id == repos["accounts"].get_default(7).id
    assert expense.note == "lunch"


def test_create_expense_with_explicit_account(repos):
    card = repos["accounts"].create(7, name="Card", type="Credit Card", icon="💳", hex_color="#222222")
    use_case = CreateExpense(repos["expenses"], repos["accounts"])

    expense = use_case.execute(user_id=7, amount=5, date="2024-03-15", category_id=2, account_id=card.id)

    assert expense.account_id == card.id
    assert expense.account_type == "Credit Card"


def test_create_expense_rejects_foreign_account(repos, make_user):
    make_user(8)
    other = repos["accounts"].get_default(8)
    use_case = CreateExpense(repos["expenses"], repos["accounts"])

    with pytest.raises(ValueError, match="Account not found"):
        use_case.execute(user_id=7, amount=5, date="2024-03-15", category_id=1, account_id=other.id)
    assert repos["expenses"].list(7) == []


def test_create_income(repos):
    use_case = CreateIncome(repos["incomes"], repos["accounts"])

    income = use_case.execute(user_id=7, amount=1000, date="2024-03-31", category_id=1, source="ACME")

    assert income.source == "ACME"
    assert income.category_name == "Salary"
    assert income.account_name == "Cash"


def test_monthly_overview(repos):
    CreateIncome(repos["incomes"], repos["accounts"]).execute(
        user_id=7, amount=1000, date="2024-03-31", category_id=1, source="ACME"
    )
    CreateExpense(repos["expenses"], repos["accounts"]).execute(
        user_id=7, amount=250, date="2024-03-02", category_id=1
    )

    report = MonthlyOverview(repos["expenses"], repos["incomes"]).execute(user_id=7, year=2024, month=3)

    assert report.period == "2024-03"
    assert report.net() == 750.0
    assert "NET" in report.as_table()


def test_monthly_overview_rejects_bad_month(repos):
    with pytest.raises(ValueError, match="Invalid month"):
        MonthlyOverview(repos["expenses"], repos["incomes"]).execute(user_id=7, year=2024, month=13)


def test_value_investments_prefers_overrides(repos, tmp_path):
    investments = repos["investments"]
    investments.upsert(7, ticker="AAPL", shares_owned=2, manual_price_override=150.0)
    investments.upsert(7, ticker="MSFT", shares_owned=1, manual_rate_override=80.0)
    investments.upsert(7, ticker="XYZ", shares_owned=4)
    prices = Mock()
    prices.get_price.side_effect = lambda ticker: {"MSFT": 400.0}.get(ticker)
    rates = ExchangeRateService(83.0, cache_path=str(tmp_path / "rates.json"))

    values = {item.ticker: item for item in ValueInvestments(investments, prices, rates).execute(7)}

    assert values["AAPL"].price_source == "manual"
    assert values["AAPL"].value == 2 * 150.0 * 83.0
    assert values["MSFT"].rate_source == "manual"
    assert values["MSFT"].value == 400.0 * 80.0
    assert values["XYZ"].price_source == "missing"
    assert values["XYZ"].value is None
    assert prices.get_price.call_count == 2
