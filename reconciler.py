from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from pydantic import ValidationError

from aggregator import ViewModelAggregator
from amounts import to_number
from api_client import ApiError, FinanceApiClient, MissingIdentityError
from goals import Goal, decode_goals, encode_goals, reorder
from models import ChangeKind
from schemas import IncomeIn, IncomeRecord, ProfileUpdateIn
from view_model import UserViewModel

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("age", "gender", "num_children", "marital_status", "retirement_status")


def _new_local_id() -> str:
    return f"income-{uuid4().hex[:12]}"


@dataclass(frozen=True)
class IncomeEntry:
    source: str
    monthly_amount: float
    description: Optional[str] = None
    remote_id: Optional[int] = None
    is_new: bool = True
    to_be_deleted: bool = False
    local_id: str = field(default_factory=_new_local_id)

    def __post_init__(self) -> None:
        if self.remote_id is None and not self.is_new:
            raise ValueError("An income entry without a remote id must be new")

    @classmethod
    def from_record(cls, record: IncomeRecord) -> "IncomeEntry":
        return cls(
            source=record.income_source or "",
            monthly_amount=to_number(record.monthly_income),
            description=record.description,
            remote_id=record.income_id,
            is_new=record.income_id is None,
        )

    def to_payload(self) -> IncomeIn:
        return IncomeIn(
            income_source=self.source.strip(),
            monthly_income=self.monthly_amount,
            description=self.description or None,
        )

    def same_values(self, other: "IncomeEntry") -> bool:
        return (
            self.source == other.source
            and self.monthly_amount == other.monthly_amount
            and (self.description or None) == (other.description or None)
        )


@dataclass(frozen=True)
class StagedChange:
    kind: ChangeKind
    entry: IncomeEntry


@dataclass(frozen=True)
class SubmitResult:
    ok: bool
    errors: tuple[str, ...] = ()

    @property
    def error(self) -> Optional[str]:
        return "; ".join(self.errors) if self.errors else None


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{loc}: {error.get('msg', '')}" if loc else error.get("msg", ""))
    return "; ".join(parts)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return int(to_number(value))


class EditReconciler:
    """
    Staged edits for the consolidated profile form.

    Profile fields, the ordered goal list and income sources are edited
    locally and sent in one best-effort batch: profile, then deletes, then
    updates, then creates. A failed call does not stop the others; the
    dashboard is re-fetched afterwards either way.
    """

    def __init__(self, client: FinanceApiClient, aggregator: ViewModelAggregator) -> None:
        self.client = client
        self.aggregator = aggregator
        self.is_open = False
        self.error: Optional[str] = None
        self._user_id: Optional[int] = None
        self._fields: dict[str, Any] = {}
        self._goals: list[Goal] = []
        self._incomes: list[IncomeEntry] = []
        self._baseline: dict[str, IncomeEntry] = {}

    # Lifecycle

    def open(self, view_model: Optional[UserViewModel] = None) -> None:
        state = self.aggregator.state
        view_model = view_model or state.view_model
        profile = view_model.raw_profile
        self._user_id = view_model.user_id or state.user_id
        self._fields = {
            name: (getattr(profile, name) if profile else None) for name in PROFILE_FIELDS
        }
        self._goals = decode_goals(profile.goals if profile else None)
        self._incomes = [IncomeEntry.from_record(record) for record in view_model.raw_income]
        self._baseline = {
            entry.local_id: entry for entry in self._incomes if not entry.is_new
        }
        self.error = None
        self.is_open = True

    def cancel(self) -> None:
        self._close()

    def _close(self) -> None:
        self.is_open = False
        self.error = None
        self._user_id = None
        self._fields = {}
        self._goals = []
        self._incomes = []
        self._baseline = {}

    def _require_open(self) -> None:
        if not self.is_open:
            raise RuntimeError("The edit form is not open")

    # Profile fields

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self._fields)

    def set_field(self, name: str, value: Any) -> None:
        self._require_open()
        if name not in PROFILE_FIELDS:
            raise KeyError(f"Unknown profile field: {name}")
        self._fields[name] = value

    # Goals

    @property
    def goals(self) -> tuple[Goal, ...]:
        return tuple(self._goals)

    def _goal_index(self, goal_id: str) -> int:
        for index, goal in enumerate(self._goals):
            if goal.id == goal_id:
                return index
        raise KeyError(f"Unknown goal: {goal_id}")

    def add_goal(self, title: str = "", description: str = "") -> Goal:
        self._require_open()
        goal = Goal(title=title, description=description)
        self._goals.append(goal)
        return goal

    def update_goal(
        self,
        goal_id: str,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Goal:
        self._require_open()
        index = self._goal_index(goal_id)
        goal = self._goals[index]
        updated = replace(
            goal,
            title=goal.title if title is None else title,
            description=goal.description if description is None else description,
        )
        self._goals[index] = updated
        return updated

    def finish_goal_edit(self, goal_id: str) -> bool:
        """Close a goal's inline editor; returns False if the goal was discarded."""
        self._require_open()
        index = self._goal_index(goal_id)
        goal = self._goals[index]
        if goal.original_id is None and goal.is_blank():
            del self._goals[index]
            return False
        return True

    def delete_goal(self, goal_id: str) -> None:
        self._require_open()
        del self._goals[self._goal_index(goal_id)]

    def move_goal(self, from_index: int, to_index: int) -> None:
        self._require_open()
        self._goals = reorder(self._goals, from_index, to_index)

    # Income

    @property
    def incomes(self) -> tuple[IncomeEntry, ...]:
        return tuple(self._incomes)

    @property
    def active_incomes(self) -> tuple[IncomeEntry, ...]:
        return tuple(entry for entry in self._incomes if not entry.to_be_deleted)

    def _income_index(self, local_id: str) -> int:
        for index, entry in enumerate(self._incomes):
            if entry.local_id == local_id:
                return index
        raise KeyError(f"Unknown income entry: {local_id}")

    def add_income(
        self, source: str, monthly_amount: Any, description: Optional[str] = None
    ) -> IncomeEntry:
        self._require_open()
        entry = IncomeEntry(
            source=source,
            monthly_amount=to_number(monthly_amount),
            description=description,
        )
        self._incomes.append(entry)
        return entry

    def update_income(
        self,
        local_id: str,
        *,
        source: Optional[str] = None,
        monthly_amount: Any = None,
        description: Optional[str] = None,
    ) -> IncomeEntry:
        self._require_open()
        index = self._income_index(local_id)
        entry = self._incomes[index]
        updated = replace(
            entry,
            source=entry.source if source is None else source,
            monthly_amount=(
                entry.monthly_amount if monthly_amount is None else to_number(monthly_amount)
            ),
            description=entry.description if description is None else description,
        )
        self._incomes[index] = updated
        return updated

    def delete_income(self, local_id: str) -> None:
        self._require_open()
        index = self._income_index(local_id)
        self._incomes[index] = replace(self._incomes[index], to_be_deleted=True)

    def restore_income(self, local_id: str) -> None:
        self._require_open()
        index = self._income_index(local_id)
        self._incomes[index] = replace(self._incomes[index], to_be_deleted=False)

    def staged_changes(self) -> list[StagedChange]:
        changes: list[StagedChange] = []
        for entry in self._incomes:
            if entry.to_be_deleted:
                if entry.remote_id is not None:
                    changes.append(StagedChange(ChangeKind.deleted, entry))
            elif entry.is_new:
                changes.append(StagedChange(ChangeKind.new, entry))
            else:
                baseline = self._baseline.get(entry.local_id)
                if baseline is None or not entry.same_values(baseline):
                    changes.append(StagedChange(ChangeKind.updated, entry))
        return changes

    # Submit

    def build_profile_payload(self) -> ProfileUpdateIn:
        return ProfileUpdateIn(
            age=_optional_int(self._fields.get("age")),
            gender=self._fields.get("gender") or None,
            num_children=_optional_int(self._fields.get("num_children")),
            marital_status=self._fields.get("marital_status") or None,
            retirement_status=self._fields.get("retirement_status") or None,
            goals=encode_goals(self._goals),
        )

    async def _attempt(
        self, label: str, call: Callable[[], Awaitable[Any]]
    ) -> tuple[bool, Any, Optional[str]]:
        try:
            return True, await call(), None
        except ValidationError as exc:
            message = f"{label}: {_validation_message(exc)}"
        except (ApiError, MissingIdentityError) as exc:
            message = f"{label}: {exc}"
        logger.warning(f"edit_submit_call_failed: {message}")
        return False, None, message

    async def submit(self) -> SubmitResult:
        self._require_open()
        user_id = self._user_id
        session = self.aggregator.session
        if not user_id:
            raise MissingIdentityError("User ID is required to save profile changes.")

        changes = self.staged_changes()
        to_delete = [c.entry for c in changes if c.kind == ChangeKind.deleted]
        to_update = [c.entry for c in changes if c.kind == ChangeKind.updated]
        to_create = [c.entry for c in changes if c.kind == ChangeKind.new]
        logger.info(
            f"edit_submit: user_id={user_id} goals={len(self._goals)} "
            f"deletes={len(to_delete)} updates={len(to_update)} creates={len(to_create)}"
        )

        errors: list[str] = []

        profile_ok, _, message = await self._attempt(
            "Could not update profile",
            lambda: self.client.update_profile(user_id, self.build_profile_payload()),
        )
        if message:
            errors.append(message)

        deleted = await asyncio.gather(
            *(
                self._attempt(
                    f"Could not delete income '{entry.source}'",
                    lambda entry=entry: self.client.delete_income(user_id, entry.remote_id),
                )
                for entry in to_delete
            )
        )
        updated = await asyncio.gather(
            *(
                self._attempt(
                    f"Could not update income '{entry.source}'",
                    lambda entry=entry: self.client.update_income(
                        user_id, entry.remote_id, entry.to_payload()
                    ),
                )
                for entry in to_update
            )
        )
        created = await asyncio.gather(
            *(
                self._attempt(
                    f"Could not add income '{entry.source}'",
                    lambda entry=entry: self.client.create_income(
                        user_id, entry.to_payload()
                    ),
                )
                for entry in to_create
            )
        )
        for _, _, message in (*deleted, *updated, *created):
            if message:
                errors.append(message)

        if self.aggregator.session != session:
            # Logged out or switched user while the batch was in flight.
            logger.info(f"edit_submit_session_changed: user_id={user_id}")
            return SubmitResult(ok=not errors, errors=tuple(errors))

        await self.aggregator.fetch(user_id)

        if not errors:
            logger.info(f"edit_submit_complete: user_id={user_id}")
            self._close()
            return SubmitResult(ok=True)

        self._rebase(
            profile_ok,
            zip(to_delete, deleted),
            zip(to_update, updated),
            zip(to_create, created),
        )
        result = SubmitResult(ok=False, errors=tuple(errors))
        self.error = result.error
        logger.warning(
            f"edit_submit_partial: user_id={user_id} failures={len(errors)}"
        )
        return result

    def _rebase(self, profile_ok: bool, deleted, updated, created) -> None:
        """Fold what persisted into the baseline so only failed changes stay staged."""
        if profile_ok:
            kept = [goal for goal in self._goals if not goal.is_blank()]
            self._goals = [
                replace(goal, original_id=str(position))
                for position, goal in enumerate(kept, start=1)
            ]

        removed: set[str] = set()
        for entry, (ok, _, _) in deleted:
            if ok:
                removed.add(entry.local_id)
                self._baseline.pop(entry.local_id, None)
        for entry, (ok, _, _) in updated:
            if ok:
                self._baseline[entry.local_id] = entry

        replacements: dict[str, IncomeEntry] = {}
        for entry, (ok, record, _) in created:
            if not ok:
                continue
            if isinstance(record, IncomeRecord) and record.income_id is not None:
                persisted = replace(entry, remote_id=record.income_id, is_new=False)
                replacements[entry.local_id] = persisted
                self._baseline[entry.local_id] = persisted
            else:
                # Created without an id in the response; it shows up on the next open.
                removed.add(entry.local_id)

        self._incomes = [
            replacements.get(entry.local_id, entry)
            for entry in self._incomes
            if entry.local_id not in removed
        ]
