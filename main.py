import logging
from contextlib import AbstractContextManager
from typing import Callable, Optional

from sqlalchemy.orm import Session

from aggregator import DashboardState, ViewModelAggregator
from api_client import FinanceApiClient
from database import init_db, session_scope
from editors import DebtEditor, ExpenseEditor, KnowledgeCatalog, KnowledgeEditor
from identity import Identity, IdentityStore
from insights import InsightsOrchestrator, InsightsState
from reconciler import EditReconciler
from schemas import LoginIn, RegisterIn
from transactions import TransactionList, TransactionsView

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class Dashboard:
    """Wires the API client, the stores and the editors for one signed-in user."""

    def __init__(
        self,
        client: Optional[FinanceApiClient] = None,
        *,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        if session_factory is None:
            init_db()
            session_factory = session_scope
        self.session_factory = session_factory
        self.client = client or FinanceApiClient()
        self.aggregator = ViewModelAggregator(self.client)
        self.insights = InsightsOrchestrator(self.client)
        self.reconciler = EditReconciler(self.client, self.aggregator)
        self.debts = DebtEditor(self.client, self.aggregator)
        self.expenses = ExpenseEditor(self.client, self.aggregator)
        self.catalog = KnowledgeCatalog(self.client)
        self.knowledge = KnowledgeEditor(self.client, self.aggregator, self.catalog)
        self.transactions = TransactionsView(self.client, self.aggregator)
        self._identity: Optional[Identity] = None

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def state(self) -> DashboardState:
        return self.aggregator.state

    @property
    def insights_state(self) -> InsightsState:
        return self.insights.state

    async def login(self, email: str, password: str) -> Identity:
        result = await self.client.login(LoginIn(email=email, password=password))
        return await self._start_session(Identity(user_id=result.user_id, email=result.email))

    async def register(self, user_id: int, email: str, password: str) -> Identity:
        result = await self.client.register(
            RegisterIn(user_id=user_id, email=email, password=password)
        )
        return await self._start_session(Identity(user_id=result.user_id, email=result.email))

    async def restore_session(self) -> Optional[Identity]:
        with self.session_factory() as session:
            identity = IdentityStore(session).load()
        if identity is None:
            return None
        logger.info(f"session_restored: user_id={identity.user_id}")
        self._identity = identity
        self.aggregator.set_identity(identity.user_id, identity.email)
        await self.aggregator.fetch(identity.user_id)
        return identity

    async def _start_session(self, identity: Identity) -> Identity:
        with self.session_factory() as session:
            IdentityStore(session).save(identity)
        logger.info(f"session_started: user_id={identity.user_id}")
        self._identity = identity
        self.aggregator.set_identity(identity.user_id, identity.email)
        await self.aggregator.fetch(identity.user_id)
        return identity

    async def load_insights(self) -> InsightsState:
        return await self.insights.fetch_latest(self.state.user_id)

    async def regenerate_insights(self) -> InsightsState:
        return await self.insights.regenerate(self.state.user_id)

    async def load_transactions(self) -> TransactionList:
        return await self.transactions.load()

    def logout(self) -> None:
        with self.session_factory() as session:
            IdentityStore(session).clear()
        user_id = self._identity.user_id if self._identity else None
        self._identity = None
        self.reconciler.cancel()
        self.aggregator.reset()
        self.insights.reset()
        logger.info(f"session_ended: user_id={user_id}")

    async def aclose(self) -> None:
        await self.client.aclose()
