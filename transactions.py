import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from aggregator import ViewModelAggregator
from amounts import parse_timestamp, to_number
from api_client import ApiError, FinanceApiClient, MissingIdentityError
from metrics import to_local
from models import FetchStatus
from schemas import ExpenseRecord

logger = logging.getLogger(__name__)

EXPENSE = "expense"


@dataclass(frozen=True)
class TransactionRow:
    id: Optional[int]
    date: str  # YYYY-MM-DD in the display timezone, or "N/A"
    description: Optional[str]
    category: Optional[str]
    amount: float  # expenses are outflows, always <= 0
    type: str = EXPENSE


@dataclass(frozen=True)
class TransactionList:
    rows: tuple[TransactionRow, ...] = ()
    error: Optional[str] = None
    from_view_model: bool = False


def _date_label(timestamp: Optional[str], tz: Optional[ZoneInfo]) -> str:
    moment = parse_timestamp(timestamp)
    if moment is None:
        return "N/A"
    return to_local(moment, tz).date().isoformat()


def to_transaction_rows(
    records: Iterable[ExpenseRecord], tz: Optional[ZoneInfo] = None
) -> tuple[TransactionRow, ...]:
    return tuple(
        TransactionRow(
            id=record.expense_id,
            date=_date_label(record.timestamp, tz),
            description=record.description,
            category=record.expense_category,
            amount=-abs(to_number(record.monthly_amount)),
        )
        for record in records
    )


class TransactionsView:
    """
    Expense history as transaction rows.

    Uses the dashboard's already fetched expenses when the snapshot is ready
    and clean; otherwise asks the service for the expense list directly.
    """

    def __init__(self, client: FinanceApiClient, aggregator: ViewModelAggregator) -> None:
        self.client = client
        self.aggregator = aggregator

    async def load(self) -> TransactionList:
        state = self.aggregator.state
        tz = self.aggregator.tz
        if (
            state.status == FetchStatus.ready
            and state.error is None
            and state.view_model.user_id == state.user_id
        ):
            rows = to_transaction_rows(state.view_model.raw_expenses, tz)
            return TransactionList(rows=rows, from_view_model=True)

        session = self.aggregator.session
        try:
            records = await self.client.list_expenses(state.user_id)
        except (ApiError, MissingIdentityError) as exc:
            logger.warning(f"transactions_fetch_failed: user_id={state.user_id} error={exc}")
            return TransactionList(error=str(exc))

        if self.aggregator.session != session:
            logger.info(f"transactions_fetch_discarded: user_id={state.user_id}")
            return TransactionList(error="Transactions discarded; the session changed.")
        logger.info(f"transactions_loaded: user_id={state.user_id} rows={len(records)}")
        return TransactionList(rows=to_transaction_rows(records, tz))
