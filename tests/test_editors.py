import asyncio
from datetime import date
from zoneinfo import ZoneInfo

import pytest

from aggregator import ViewModelAggregator
from editors import (
    DEFAULT_KNOWLEDGE_CATEGORIES,
    DebtEditor,
    ExpenseEditor,
    KnowledgeCatalog,
    KnowledgeCategoryAmbiguous,
    KnowledgeEditor,
)
from fake_service import FakeFinanceService
from models import FetchStatus
from schemas import DebtIn, ExpenseIn


def _aggregator(client) -> ViewModelAggregator:
    aggregator = ViewModelAggregator(client, tz=ZoneInfo("UTC"))
    aggregator.set_identity(1, "alex@example.com")
    return aggregator


def test_debt_save_refreshes_dashboard() -> None:
    service = FakeFinanceService()

    async def run():
        async with service.client() as client:
            aggregator = _aggregator(client)
            editor = DebtEditor(client, aggregator)
            outcome = await editor.save(
                DebtIn(account_name="Visa", current_balance=2500, min_monthly_payment=75)
            )
            return aggregator.state, outcome

    state, outcome = asyncio.run(run())
    assert outcome.ok
    assert outcome.record.account_name == "Visa"
    profile = state.view_model.financial_profile
    assert profile.total_debt == 2500.0
    assert profile.total_min_payments == 75.0


def test_debt_delete_failure_is_reported() -> None:
    service = FakeFinanceService()

    async def run():
        async with service.client() as client:
            editor = DebtEditor(client, _aggregator(client))
            return await editor.delete(404404)

    outcome = asyncio.run(run())
    assert not outcome.ok
    assert outcome.error == "Failed to delete debt detail: 404 - debts 404404 not found"
    assert ("GET", "/users/1/comprehensive_details") not in service.calls


def test_expense_update_changes_latest_month() -> None:
    service = FakeFinanceService()
    expense_id = service.add_expense("Food", 100, "2024-01-10")

    async def run():
        async with service.client() as client:
            aggregator = _aggregator(client)
            editor = ExpenseEditor(client, aggregator)
            await editor.save(
                ExpenseIn(
                    expense_category="Travel",
                    monthly_amount=400,
                    timestamp=date(2024, 6, 1),
                ),
                expense_id,
            )
            return aggregator.state

    habit = asyncio.run(run()).view_model.financial_profile.spending_habit
    assert service.expenses[expense_id]["timestamp"] == "2024-06-01"
    assert habit.latest_month == "2024-06"
    assert habit.top_category == "Travel"


def test_knowledge_level_is_validated_before_sending() -> None:
    service = FakeFinanceService()

    async def run():
        async with service.client() as client:
            editor = KnowledgeEditor(client, _aggregator(client))
            return await editor.save("Investing", 7)

    outcome = asyncio.run(run())
    assert not outcome.ok
    assert "less than or equal to 5" in outcome.error
    assert service.calls == []


def test_knowledge_recategorize_deletes_then_adds() -> None:
    service = FakeFinanceService()
    service.knowledge["Investing"] = {"category": "Investing", "level": 2}

    async def run():
        async with service.client() as client:
            aggregator = _aggregator(client)
            editor = KnowledgeEditor(client, aggregator)
            await editor.save("Budgeting", 4, "Track every month", original_category="Investing")
            return aggregator.state

    state = asyncio.run(run())
    assert list(service.knowledge) == ["Budgeting"]
    assert service.calls[:2] == [
        ("DELETE", "/users/1/financial_knowledge/Investing"),
        ("POST", "/users/1/financial_knowledge"),
    ]
    assert state.view_model.financial_knowledge["Budgeting"].label == "Level 4"


def test_knowledge_same_category_updates_in_place() -> None:
    service = FakeFinanceService()
    service.knowledge["Credit & Debt"] = {"category": "Credit & Debt", "level": 1}

    async def run():
        async with service.client() as client:
            editor = KnowledgeEditor(client, _aggregator(client))
            return await editor.save("Credit & Debt", 3, original_category="Credit & Debt")

    outcome = asyncio.run(run())
    assert outcome.ok
    assert service.knowledge["Credit & Debt"]["level"] == 3
    assert service.calls[0][0] == "PUT"


def test_catalog_uses_definitions_or_defaults() -> None:
    service = FakeFinanceService()

    async def run():
        async with service.client() as client:
            empty = await KnowledgeCatalog(client).categories()
            service.definitions = [{"category": "Taxation"}, {"category": "Budgeting"}]
            loaded = await KnowledgeCatalog(client).categories()
            service.fail("GET", "/financial_knowledge_definitions")
            failed = await KnowledgeCatalog(client).categories()
            return empty, loaded, failed

    empty, loaded, failed = asyncio.run(run())
    assert empty == DEFAULT_KNOWLEDGE_CATEGORIES
    assert loaded == ["Budgeting", "Taxation"]
    assert failed == DEFAULT_KNOWLEDGE_CATEGORIES


def test_resolve_category() -> None:
    categories = DEFAULT_KNOWLEDGE_CATEGORIES
    assert KnowledgeCatalog.resolve("investing", categories) == "Investing"
    assert KnowledgeCatalog.resolve(" Investng ", categories) == "Investing"
    assert KnowledgeCatalog.resolve("Crypto", categories) == "Crypto"
    with pytest.raises(KnowledgeCategoryAmbiguous):
        KnowledgeCatalog.resolve("Tac", ["Tax", "Tab"])


def test_new_knowledge_entry_snaps_to_catalog_category() -> None:
    service = FakeFinanceService()

    async def run():
        async with service.client() as client:
            aggregator = _aggregator(client)
            editor = KnowledgeEditor(client, aggregator)
            return await editor.save(" investng ", 2), aggregator.state

    outcome, state = asyncio.run(run())
    assert outcome.ok
    assert list(service.knowledge) == ["Investing"]
    assert "Investing" in state.view_model.financial_knowledge


def test_ambiguous_new_category_is_not_sent() -> None:
    service = FakeFinanceService()
    service.definitions = [{"category": "Tax"}, {"category": "Tab"}]

    async def run():
        async with service.client() as client:
            editor = KnowledgeEditor(client, _aggregator(client))
            return await editor.save("Tac", 2)

    outcome = asyncio.run(run())
    assert not outcome.ok
    assert outcome.error == "Category 'Tac' is ambiguous; matches: Tab, Tax"
    assert ("POST", "/users/1/financial_knowledge") not in service.calls


def test_refresh_is_skipped_after_logout() -> None:
    service = FakeFinanceService()

    async def run():
        async with service.client() as client:
            aggregator = _aggregator(client)
            editor = DebtEditor(client, aggregator)
            create = client.create_debt

            async def create_then_logout(user_id, data):
                record = await create(user_id, data)
                aggregator.reset()
                return record

            client.create_debt = create_then_logout
            outcome = await editor.save(DebtIn(account_name="Visa", current_balance=10))
            return outcome, aggregator.state

    outcome, state = asyncio.run(run())
    assert outcome.ok
    assert state.status == FetchStatus.idle
    assert state.error is None
    assert ("GET", "/users/1/comprehensive_details") not in service.calls
