from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Union
from zoneinfo import ZoneInfo

from api_client import ApiError, FinanceApiClient, MissingIdentityError
from config import get_settings
from models import FetchStatus
from store import Store
from view_model import UserViewModel, build_view_model

logger = logging.getLogger(__name__)


class FetchError(RuntimeError):
    pass


@dataclass(frozen=True)
class Ready:
    view_model: UserViewModel


@dataclass(frozen=True)
class Failed:
    error: FetchError

    @property
    def reason(self) -> str:
        return str(self.error)


FetchResult = Union[Ready, Failed]


@dataclass(frozen=True)
class DashboardState:
    status: FetchStatus = FetchStatus.idle
    view_model: UserViewModel = field(default_factory=UserViewModel.empty)
    error: Optional[str] = None
    user_id: Optional[int] = None
    email: Optional[str] = None

    @property
    def is_loading(self) -> bool:
        return self.status == FetchStatus.loading


class ViewModelAggregator:
    """
    Owns the dashboard snapshot for the logged-in user.

    idle -> loading -> ready | error, re-entering loading on every fetch. A
    failed refresh after a successful one keeps the old view model and reports
    the error next to it. Results that arrive after logout are dropped.
    """

    def __init__(
        self,
        client: FinanceApiClient,
        store: Optional[Store[DashboardState]] = None,
        *,
        tz: Optional[ZoneInfo] = None,
    ) -> None:
        self.client = client
        self.store = store or Store(DashboardState())
        self.tz = tz or ZoneInfo(get_settings().timezone)
        self._epoch = 0
        self._has_view_model = False

    @property
    def state(self) -> DashboardState:
        return self.store.get_snapshot()

    @property
    def session(self) -> int:
        """Changes on every logout or user switch."""
        return self._epoch

    def set_identity(self, user_id: int, email: Optional[str] = None) -> None:
        current = self.state
        if current.user_id != user_id:
            self._epoch += 1
            self._has_view_model = False
            self.store.set(DashboardState(user_id=user_id, email=email))
        elif email != current.email:
            self.store.set(replace(current, email=email))

    def reset(self) -> None:
        self._epoch += 1
        self._has_view_model = False
        self.store.set(DashboardState())
        logger.info("view_model_reset")

    async def refresh(self) -> FetchResult:
        return await self.fetch(self.state.user_id)

    async def fetch(self, user_id: Optional[int] = None) -> FetchResult:
        current = self.state.user_id
        if user_id and user_id != current:
            logger.warning(
                f"view_model_fetch_refused: user_id={user_id} current={current}"
            )
            return Failed(
                FetchError(f"User {user_id} is not the signed-in user; fetch refused.")
            )
        user_id = user_id or current
        if not user_id:
            return self._fail(FetchError("User ID is required to fetch user data."))

        epoch = self._epoch
        self.store.set(replace(self.state, status=FetchStatus.loading, error=None))
        logger.info(f"view_model_fetch: user_id={user_id}")

        try:
            details = await self.client.fetch_comprehensive_details(user_id)
        except (ApiError, MissingIdentityError) as exc:
            error = FetchError(str(exc))
            error.__cause__ = exc
            if epoch != self._epoch:
                logger.info(f"view_model_fetch_discarded: user_id={user_id}")
                return Failed(error)
            return self._fail(error)

        state = self.state
        view_model = build_view_model(
            details, user_id=user_id, email=state.email, tz=self.tz
        )
        if epoch != self._epoch:
            logger.info(f"view_model_fetch_discarded: user_id={user_id}")
            return Failed(FetchError("Fetch result discarded; the session changed."))

        self._has_view_model = True
        self.store.set(
            replace(
                state,
                status=FetchStatus.ready,
                view_model=view_model,
                error=None,
                user_id=user_id,
            )
        )
        logger.info(
            f"view_model_ready: user_id={user_id} "
            f"goals={len(view_model.financial_goals)} "
            f"income={len(view_model.raw_income)} "
            f"expenses={len(view_model.raw_expenses)}"
        )
        return Ready(view_model)

    def _fail(self, error: FetchError) -> Failed:
        logger.warning(f"view_model_fetch_failed: error={error}")
        state = self.state
        if self._has_view_model:
            self.store.set(replace(state, status=FetchStatus.ready, error=str(error)))
        else:
            self.store.set(replace(state, status=FetchStatus.error, error=str(error)))
        return Failed(error)
