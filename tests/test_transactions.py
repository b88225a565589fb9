import asyncio
from zoneinfo import ZoneInfo

from aggregator import ViewModelAggregator
from fake_service import FakeFinanceService
from schemas import ExpenseRecord
from transactions import TransactionRow, TransactionsView, to_transaction_rows

EXPENSES_PATH = "/users/1/expenses"


def test_rows_are_negated_and_dated() -> None:
    rows = to_transaction_rows(
        [
            ExpenseRecord(
                expense_id=5,
                expense_category="Food",
                monthly_amount="$45.50",
                description="Groceries",
                timestamp="2024-03-01T02:00:00+00:00",
            ),
            ExpenseRecord(expense_id=6, monthly_amount=-20, timestamp=None),
        ],
        tz=ZoneInfo("America/New_York"),
    )
    assert rows == (
        TransactionRow(
            id=5,
            date="2024-02-29",
            description="Groceries",
            category="Food",
            amount=-45.5,
        ),
        TransactionRow(id=6, date="N/A", description=None, category=None, amount=-20.0),
    )
    assert {row.type for row in rows} == {"expense"}


def test_ready_dashboard_is_reused() -> None:
    service = FakeFinanceService()
    service.add_expense("Travel", 300, "2024-05-02")

    async def run():
        async with service.client() as client:
            aggregator = ViewModelAggregator(client, tz=ZoneInfo("UTC"))
            aggregator.set_identity(1)
            await aggregator.fetch()
            service.calls.clear()
            return await TransactionsView(client, aggregator).load()

    result = asyncio.run(run())
    assert result.from_view_model
    assert [(row.category, row.amount) for row in result.rows] == [("Travel", -300.0)]
    assert service.calls == []


def test_falls_back_to_expense_list() -> None:
    service = FakeFinanceService()
    service.add_expense("Travel", 300, "2024-05-02")

    async def run():
        async with service.client() as client:
            aggregator = ViewModelAggregator(client, tz=ZoneInfo("UTC"))
            aggregator.set_identity(1)
            return await TransactionsView(client, aggregator).load()

    result = asyncio.run(run())
    assert not result.from_view_model
    assert result.error is None
    assert [row.date for row in result.rows] == ["2024-05-02"]
    assert service.calls == [("GET", EXPENSES_PATH)]


def test_fallback_failure_is_reported() -> None:
    service = FakeFinanceService()
    service.fail("GET", EXPENSES_PATH, status=500, detail="down")

    async def run():
        async with service.client() as client:
            aggregator = ViewModelAggregator(client, tz=ZoneInfo("UTC"))
            aggregator.set_identity(1)
            return await TransactionsView(client, aggregator).load()

    result = asyncio.run(run())
    assert result.rows == ()
    assert result.error == "Failed to fetch user expenses: 500 - down"
