from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from amounts import parse_timestamp, to_number
from schemas import ExpenseRecord

UNCATEGORIZED = "Uncategorized"
NO_CATEGORY = "N/A"


@dataclass(frozen=True)
class ExpenseSummary:
    all_time: dict[str, float] = field(default_factory=dict)
    latest_month: dict[str, float] = field(default_factory=dict)
    latest_month_key: Optional[str] = None  # "YYYY-MM"


def to_local(moment: datetime, tz: Optional[ZoneInfo]) -> datetime:
    if moment.tzinfo is None:
        return moment
    if tz is not None:
        moment = moment.astimezone(tz)
    return moment.replace(tzinfo=None)


def _add(totals: dict[str, float], category: str, amount: float) -> None:
    totals[category] = totals.get(category, 0.0) + amount


def summarize_expenses(
    records: Sequence[ExpenseRecord], tz: Optional[ZoneInfo] = None
) -> ExpenseSummary:
    """
    Per-category totals for all time and for the latest month present.

    The latest month is the calendar month of the newest parseable timestamp,
    not the current month. Records whose timestamp cannot be parsed are left
    out of both totals.
    """
    dated: list[tuple[datetime, str, float]] = []
    for record in records:
        moment = parse_timestamp(record.timestamp)
        if moment is None:
            continue
        category = record.expense_category or UNCATEGORIZED
        dated.append((to_local(moment, tz), category, to_number(record.monthly_amount)))

    if not dated:
        return ExpenseSummary()

    latest = max(moment for moment, _, _ in dated)
    all_time: dict[str, float] = {}
    latest_month: dict[str, float] = {}
    for moment, category, amount in dated:
        _add(all_time, category, amount)
        if moment.year == latest.year and moment.month == latest.month:
            _add(latest_month, category, amount)

    return ExpenseSummary(
        all_time=all_time,
        latest_month=latest_month,
        latest_month_key=f"{latest.year}-{latest.month:02d}",
    )


def _largest(totals: Mapping[str, float]) -> Optional[str]:
    if not totals:
        return None
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return ranked[0][0]


def top_category(summary: ExpenseSummary) -> str:
    return _largest(summary.latest_month) or _largest(summary.all_time) or NO_CATEGORY
