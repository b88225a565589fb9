from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from api_client import ApiError, FinanceApiClient, MissingIdentityError
from models import InsightsStatus
from schemas import InsightReport
from store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsightsState:
    status: InsightsStatus = InsightsStatus.empty
    reports: tuple[InsightReport, ...] = ()
    error: Optional[str] = None
    regenerating: bool = False


def _join_errors(*messages: Optional[str]) -> Optional[str]:
    present = [message for message in messages if message]
    return " | ".join(present) if present else None


class InsightsOrchestrator:
    """
    Fetches the latest insight report and drives regeneration.

    Regeneration always ends with a fallback fetch of the latest stored report
    so a failed generation leaves the previous insights on screen, with the
    failure reported next to them.
    """

    def __init__(
        self,
        client: FinanceApiClient,
        store: Optional[Store[InsightsState]] = None,
    ) -> None:
        self.client = client
        self.store = store or Store(InsightsState())
        self._epoch = 0

    @property
    def state(self) -> InsightsState:
        return self.store.get_snapshot()

    def reset(self) -> None:
        self._epoch += 1
        self.store.set(InsightsState())

    async def fetch_latest(
        self,
        user_id: Optional[int],
        *,
        is_fallback: bool = False,
        prior_error: Optional[str] = None,
    ) -> InsightsState:
        epoch = self._epoch
        self.store.set(
            replace(self.state, status=InsightsStatus.loading, regenerating=False)
        )

        try:
            reports = await self.client.fetch_latest_insights(user_id)
        except (ApiError, MissingIdentityError) as exc:
            if epoch != self._epoch:
                return self.state
            if (
                isinstance(exc, ApiError)
                and exc.is_not_found
                and not is_fallback
            ):
                reports = None
            else:
                logger.warning(
                    f"insights_fetch_failed: user_id={user_id} "
                    f"fallback={is_fallback} error={exc}"
                )
                self.store.set(
                    replace(
                        self.state,
                        status=InsightsStatus.error,
                        error=_join_errors(prior_error, str(exc)),
                    )
                )
                return self.state

        if epoch != self._epoch:
            return self.state

        if not reports:
            if is_fallback and not prior_error:
                # Generation reported success yet nothing is stored.
                message = "No insights were found after regeneration."
                logger.warning(f"insights_missing_after_regeneration: user_id={user_id}")
                self.store.set(
                    replace(self.state, status=InsightsStatus.error, error=message)
                )
                return self.state
            if is_fallback:
                self.store.set(
                    replace(self.state, status=InsightsStatus.error, error=prior_error)
                )
                return self.state
            self.store.set(InsightsState(status=InsightsStatus.empty))
            logger.info(f"insights_empty: user_id={user_id}")
            return self.state

        self.store.set(
            InsightsState(
                status=InsightsStatus.ready,
                reports=tuple(reports),
                error=prior_error,
            )
        )
        logger.info(f"insights_ready: user_id={user_id} reports={len(reports)}")
        return self.state

    async def regenerate(self, user_id: Optional[int]) -> InsightsState:
        current = self.state
        if current.regenerating or current.status == InsightsStatus.loading:
            logger.info(f"insights_regenerate_skipped: user_id={user_id}")
            return current

        epoch = self._epoch
        self.store.set(replace(current, regenerating=True, error=None))
        generation_error: Optional[str] = None
        try:
            await self.client.generate_insights(user_id)
            logger.info(f"insights_regenerated: user_id={user_id}")
        except (ApiError, MissingIdentityError) as exc:
            generation_error = str(exc)
            logger.warning(f"insights_regenerate_failed: user_id={user_id} error={exc}")

        if epoch != self._epoch:
            return self.state
        return await self.fetch_latest(
            user_id, is_fallback=True, prior_error=generation_error
        )
