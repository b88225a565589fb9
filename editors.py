from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

from pydantic import ValidationError
from rapidfuzz.distance import Levenshtein

from aggregator import ViewModelAggregator
from api_client import ApiError, FinanceApiClient, MissingIdentityError
from schemas import DebtIn, ExpenseIn, KnowledgeIn

logger = logging.getLogger(__name__)

DEFAULT_KNOWLEDGE_CATEGORIES = sorted(
    [
        "Budgeting",
        "Investing",
        "Credit & Debt",
        "Retirement Planning",
        "Insurance",
        "Taxation",
        "Estate Planning",
    ]
)


class KnowledgeCategoryAmbiguous(ValueError):
    pass


@dataclass(frozen=True)
class EditOutcome:
    ok: bool
    record: Any = None
    error: Optional[str] = None


class _RecordEditor:
    entity = "record"

    def __init__(self, client: FinanceApiClient, aggregator: ViewModelAggregator) -> None:
        self.client = client
        self.aggregator = aggregator

    @property
    def user_id(self) -> Optional[int]:
        return self.aggregator.state.user_id

    async def _run(
        self,
        action: str,
        call: Callable[[], Awaitable[Any]],
        *,
        refresh_on_error: bool = False,
    ) -> EditOutcome:
        session = self.aggregator.session
        try:
            record = await call()
        except (ApiError, MissingIdentityError) as exc:
            logger.warning(f"{self.entity}_{action}_failed: error={exc}")
            if refresh_on_error:
                await self._refresh(session)
            return EditOutcome(ok=False, error=str(exc))
        logger.info(f"{self.entity}_{action}: user_id={self.user_id}")
        await self._refresh(session)
        return EditOutcome(ok=True, record=record)

    async def _refresh(self, session: int) -> None:
        if self.aggregator.session != session:
            logger.info(f"{self.entity}_refresh_skipped: session changed")
            return
        await self.aggregator.refresh()


class DebtEditor(_RecordEditor):
    entity = "debt"

    async def save(self, data: DebtIn, debt_id: Optional[int] = None) -> EditOutcome:
        user_id = self.user_id
        if debt_id is None:
            return await self._run("created", lambda: self.client.create_debt(user_id, data))
        return await self._run(
            "updated", lambda: self.client.update_debt(user_id, debt_id, data)
        )

    async def delete(self, debt_id: int) -> EditOutcome:
        user_id = self.user_id
        return await self._run("deleted", lambda: self.client.delete_debt(user_id, debt_id))


class ExpenseEditor(_RecordEditor):
    entity = "expense"

    async def save(
        self, data: ExpenseIn, expense_id: Optional[int] = None
    ) -> EditOutcome:
        user_id = self.user_id
        if expense_id is None:
            return await self._run(
                "created", lambda: self.client.create_expense(user_id, data)
            )
        return await self._run(
            "updated", lambda: self.client.update_expense(user_id, expense_id, data)
        )

    async def delete(self, expense_id: int) -> EditOutcome:
        user_id = self.user_id
        return await self._run(
            "deleted", lambda: self.client.delete_expense(user_id, expense_id)
        )


class KnowledgeEditor(_RecordEditor):
    """
    Knowledge entries are keyed by category, which cannot be renamed in place:
    moving an entry to another category deletes the old one and creates the
    new one. New entries are matched against the catalog so a near-miss
    spelling lands on the existing category.
    """

    entity = "knowledge"

    def __init__(
        self,
        client: FinanceApiClient,
        aggregator: ViewModelAggregator,
        catalog: Optional["KnowledgeCatalog"] = None,
    ) -> None:
        super().__init__(client, aggregator)
        self.catalog = catalog or KnowledgeCatalog(client)

    async def save(
        self,
        category: str,
        level: int,
        description: Optional[str] = None,
        *,
        original_category: Optional[str] = None,
    ) -> EditOutcome:
        try:
            data = KnowledgeIn(
                category=category.strip(), level=level, description=description or None
            )
        except ValidationError as exc:
            message = "; ".join(error["msg"] for error in exc.errors())
            logger.info(f"knowledge_invalid: category={category} error={message}")
            return EditOutcome(ok=False, error=message)

        user_id = self.user_id
        if original_category is None:
            try:
                resolved = KnowledgeCatalog.resolve(
                    data.category, await self.catalog.categories()
                )
            except KnowledgeCategoryAmbiguous as exc:
                logger.info(f"knowledge_category_ambiguous: category={data.category}")
                return EditOutcome(ok=False, error=str(exc))
            data = data.model_copy(update={"category": resolved})
            return await self._run("created", lambda: self.client.add_knowledge(user_id, data))
        if original_category == data.category:
            return await self._run(
                "updated",
                lambda: self.client.update_knowledge(user_id, original_category, data),
            )

        async def recreate() -> Any:
            await self.client.delete_knowledge(user_id, original_category)
            return await self.client.add_knowledge(user_id, data)

        # The delete may have landed even if the create failed.
        return await self._run("recategorized", recreate, refresh_on_error=True)

    async def delete(self, category: str) -> EditOutcome:
        user_id = self.user_id
        return await self._run(
            "deleted", lambda: self.client.delete_knowledge(user_id, category)
        )


class KnowledgeCatalog:
    def __init__(self, client: FinanceApiClient) -> None:
        self.client = client
        self._categories: Optional[list[str]] = None

    async def categories(self) -> list[str]:
        if self._categories is not None:
            return list(self._categories)
        try:
            definitions = await self.client.fetch_knowledge_definitions()
        except ApiError as exc:
            logger.warning(f"knowledge_definitions_unavailable: error={exc}")
            return list(DEFAULT_KNOWLEDGE_CATEGORIES)
        names = sorted({definition.category for definition in definitions})
        self._categories = names or list(DEFAULT_KNOWLEDGE_CATEGORIES)
        return list(self._categories)

    @staticmethod
    def resolve(name: str, categories: Sequence[str]) -> str:
        """Match a typed category to the catalog: exact (any case), then one edit away."""
        raw = (name or "").strip()
        input_lower = raw.lower()
        for category in categories:
            if category.lower() == input_lower:
                return category

        best_distance: Optional[int] = None
        best: list[str] = []
        for category in categories:
            dist = int(Levenshtein.distance(input_lower, category.strip().lower()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [category]
            elif dist == best_distance:
                best.append(category)

        if best_distance is not None and best_distance <= 1:
            if len(best) > 1:
                options = ", ".join(sorted(set(best)))
                raise KnowledgeCategoryAmbiguous(
                    f"Category '{raw}' is ambiguous; matches: {options}"
                )
            return best[0]
        return raw
