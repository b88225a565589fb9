from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, TypeVar
from uuid import uuid4

from amounts import humanize_key

T = TypeVar("T")


def _new_goal_id() -> str:
    return f"goal-{uuid4().hex[:12]}"


@dataclass(frozen=True)
class Goal:
    title: str = ""
    description: str = ""
    original_id: Optional[str] = None  # backend priority key, None until saved
    id: str = field(default_factory=_new_goal_id)

    def is_blank(self) -> bool:
        return not self.title.strip() and not self.description.strip()


def _key_order(key: str) -> tuple[int, int, str]:
    try:
        return (0, int(key), "")
    except (TypeError, ValueError):
        return (1, 0, str(key))


def decode_goals(api_goals: Optional[Mapping[str, Any]]) -> list[Goal]:
    """
    Turn the backend goals map into an ordered list.

    Keys are priorities ("1", "2", ... "10") and are sorted numerically. Legacy
    profiles store a bare string per key; the key becomes the title.
    """
    if not api_goals or not isinstance(api_goals, Mapping):
        return []

    goals: list[Goal] = []
    for key in sorted(api_goals.keys(), key=_key_order):
        value = api_goals[key]
        if isinstance(value, Mapping):
            title = str(value.get("title") or "")
            description = str(value.get("description") or "")
        elif isinstance(value, str):
            title = humanize_key(key)
            description = value
        else:
            title = "Goal Detail"
            description = "" if value is None else str(value)
        goals.append(
            Goal(
                title=title,
                description=description,
                original_id=str(key),
                id=f"goal-{key}",
            )
        )
    return goals


def encode_goals(goals: Sequence[Goal]) -> dict[str, dict[str, str]]:
    encoded: dict[str, dict[str, str]] = {}
    for goal in goals:
        if goal.is_blank():
            continue
        encoded[str(len(encoded) + 1)] = {
            "title": goal.title,
            "description": goal.description,
        }
    return encoded


def reorder(items: Sequence[T], from_index: int, to_index: int) -> list[T]:
    result = list(items)
    size = len(result)
    if from_index == to_index:
        return result
    if not (0 <= from_index < size and 0 <= to_index < size):
        return result
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return result
