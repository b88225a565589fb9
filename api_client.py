from __future__ import annotations

import logging
from typing import Any, Optional, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from config import get_settings
from schemas import (
    ComprehensiveDetails,
    DebtIn,
    DebtRecord,
    ExpenseIn,
    ExpenseRecord,
    IncomeIn,
    IncomeRecord,
    InsightReport,
    KnowledgeDefinition,
    KnowledgeIn,
    KnowledgeRecord,
    LoginIn,
    LoginOut,
    ProfileRecord,
    ProfileUpdateIn,
    RegisterIn,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class MissingIdentityError(ValueError):
    pass


class ApiError(RuntimeError):
    def __init__(
        self, operation: str, status_code: Optional[int], detail: str
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            super().__init__(f"Failed to {operation}: {detail}")
        else:
            super().__init__(f"Failed to {operation}: {status_code} - {detail}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


def format_detail(detail: Any) -> str:
    """Render a `detail` field: plain text, or a list of validation errors."""
    if detail is None:
        return "Unknown API error"
    if isinstance(detail, list):
        parts = []
        for item in detail:
            if isinstance(item, dict):
                loc = " -> ".join(str(part) for part in item.get("loc") or [])
                msg = item.get("msg", "")
                parts.append(f"{loc}: {msg}" if loc else str(msg))
            else:
                parts.append(str(item))
        return "; ".join(parts) if parts else "Unknown API error"
    return str(detail)


def _error_detail(response: httpx.Response, operation: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP error {response.status_code} during {operation}"
    if isinstance(payload, dict) and "detail" in payload:
        return format_detail(payload["detail"])
    return f"HTTP error {response.status_code} during {operation}"


def _parse_items(
    model: type[ModelT], items: Any, operation: str
) -> list[ModelT]:
    if not isinstance(items, list):
        return []
    parsed: list[ModelT] = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                f"api_record_skipped: operation={operation} "
                f"model={model.__name__} errors={exc.error_count()}"
            )
    return parsed


def _parse_one(model: type[ModelT], payload: Any, operation: str) -> Optional[ModelT]:
    if payload is None:
        return None
    items = _parse_items(model, [payload], operation)
    return items[0] if items else None


def _insight_items(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if isinstance(payload.get("insights"), list):
            return payload["insights"]
        if "title" in payload:
            return [payload]
    return []


def _require_user(user_id: Optional[int], action: str) -> int:
    if not user_id:
        raise MissingIdentityError(f"User ID is required to {action}.")
    return user_id


def _require_id(value: Any, name: str, action: str) -> Any:
    if value is None or value == "":
        raise MissingIdentityError(f"{name} is required to {action}.")
    return value


class FinanceApiClient:
    """Async client for the finance service REST surface."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.api_timeout_secs,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "FinanceApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        payload: Optional[BaseModel] = None,
    ) -> Any:
        body = payload.model_dump(mode="json") if payload is not None else None
        try:
            response = await self._client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            logger.warning(
                f"api_transport_error: operation={operation} path={path} "
                f"error={exc.__class__.__name__}"
            )
            raise ApiError(
                operation, None, str(exc) or exc.__class__.__name__
            ) from exc

        if response.is_error:
            detail = _error_detail(response, operation)
            logger.warning(
                f"api_error: operation={operation} path={path} "
                f"status={response.status_code} detail={detail}"
            )
            raise ApiError(operation, response.status_code, detail)

        if response.status_code == 204 or not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                operation, response.status_code, "Unexpected non-JSON response"
            ) from exc

    # Profile

    async def fetch_comprehensive_details(
        self, user_id: Optional[int]
    ) -> ComprehensiveDetails:
        operation = "fetch comprehensive user details"
        user_id = _require_user(user_id, operation)
        payload = await self._request(
            "GET", f"/users/{user_id}/comprehensive_details", operation
        )
        if not isinstance(payload, dict):
            return ComprehensiveDetails()
        return ComprehensiveDetails(
            profile=_parse_one(ProfileRecord, payload.get("profile"), operation),
            income=_parse_items(IncomeRecord, payload.get("income"), operation),
            debts=_parse_items(DebtRecord, payload.get("debts"), operation),
            expenses=_parse_items(ExpenseRecord, payload.get("expenses"), operation),
            financial_knowledge=_parse_items(
                KnowledgeRecord, payload.get("financial_knowledge"), operation
            ),
        )

    async def update_profile(
        self, user_id: Optional[int], data: ProfileUpdateIn
    ) -> Optional[ProfileRecord]:
        operation = "update user profile"
        user_id = _require_user(user_id, operation)
        payload = await self._request("PUT", f"/users/{user_id}/profile", operation, data)
        return _parse_one(ProfileRecord, payload, operation)

    # Income

    async def list_income(self, user_id: Optional[int]) -> list[IncomeRecord]:
        operation = "fetch user income"
        user_id = _require_user(user_id, operation)
        payload = await self._request("GET", f"/users/{user_id}/income", operation)
        return _parse_items(IncomeRecord, payload, operation)

    async def create_income(
        self, user_id: Optional[int], data: IncomeIn
    ) -> Optional[IncomeRecord]:
        operation = "create income detail"
        user_id = _require_user(user_id, operation)
        payload = await self._request("POST", f"/users/{user_id}/income", operation, data)
        return _parse_one(IncomeRecord, payload, operation)

    async def update_income(
        self, user_id: Optional[int], income_id: Optional[int], data: IncomeIn
    ) -> Optional[IncomeRecord]:
        operation = "update income detail"
        user_id = _require_user(user_id, operation)
        income_id = _require_id(income_id, "Income ID", operation)
        payload = await self._request(
            "PUT", f"/users/{user_id}/income/{income_id}", operation, data
        )
        return _parse_one(IncomeRecord, payload, operation)

    async def delete_income(
        self, user_id: Optional[int], income_id: Optional[int]
    ) -> None:
        operation = "delete income detail"
        user_id = _require_user(user_id, operation)
        income_id = _require_id(income_id, "Income ID", operation)
        await self._request("DELETE", f"/users/{user_id}/income/{income_id}", operation)

    # Debts

    async def list_debts(self, user_id: Optional[int]) -> list[DebtRecord]:
        operation = "fetch user debts"
        user_id = _require_user(user_id, operation)
        payload = await self._request("GET", f"/users/{user_id}/debts", operation)
        return _parse_items(DebtRecord, payload, operation)

    async def create_debt(
        self, user_id: Optional[int], data: DebtIn
    ) -> Optional[DebtRecord]:
        operation = "create debt detail"
        user_id = _require_user(user_id, operation)
        payload = await self._request("POST", f"/users/{user_id}/debts", operation, data)
        return _parse_one(DebtRecord, payload, operation)

    async def update_debt(
        self, user_id: Optional[int], debt_id: Optional[int], data: DebtIn
    ) -> Optional[DebtRecord]:
        operation = "update debt detail"
        user_id = _require_user(user_id, operation)
        debt_id = _require_id(debt_id, "Debt ID", operation)
        payload = await self._request(
            "PUT", f"/users/{user_id}/debts/{debt_id}", operation, data
        )
        return _parse_one(DebtRecord, payload, operation)

    async def delete_debt(self, user_id: Optional[int], debt_id: Optional[int]) -> None:
        operation = "delete debt detail"
        user_id = _require_user(user_id, operation)
        debt_id = _require_id(debt_id, "Debt ID", operation)
        await self._request("DELETE", f"/users/{user_id}/debts/{debt_id}", operation)

    # Expenses

    async def list_expenses(self, user_id: Optional[int]) -> list[ExpenseRecord]:
        operation = "fetch user expenses"
        user_id = _require_user(user_id, operation)
        payload = await self._request("GET", f"/users/{user_id}/expenses", operation)
        return _parse_items(ExpenseRecord, payload, operation)

    async def create_expense(
        self, user_id: Optional[int], data: ExpenseIn
    ) -> Optional[ExpenseRecord]:
        operation = "create expense detail"
        user_id = _require_user(user_id, operation)
        payload = await self._request(
            "POST", f"/users/{user_id}/expenses", operation, data
        )
        return _parse_one(ExpenseRecord, payload, operation)

    async def update_expense(
        self, user_id: Optional[int], expense_id: Optional[int], data: ExpenseIn
    ) -> Optional[ExpenseRecord]:
        operation = "update expense detail"
        user_id = _require_user(user_id, operation)
        expense_id = _require_id(expense_id, "Expense ID", operation)
        payload = await self._request(
            "PUT", f"/users/{user_id}/expenses/{expense_id}", operation, data
        )
        return _parse_one(ExpenseRecord, payload, operation)

    async def delete_expense(
        self, user_id: Optional[int], expense_id: Optional[int]
    ) -> None:
        operation = "delete expense detail"
        user_id = _require_user(user_id, operation)
        expense_id = _require_id(expense_id, "Expense ID", operation)
        await self._request(
            "DELETE", f"/users/{user_id}/expenses/{expense_id}", operation
        )

    # Financial knowledge

    async def add_knowledge(
        self, user_id: Optional[int], data: KnowledgeIn
    ) -> Optional[KnowledgeRecord]:
        operation = "save financial knowledge"
        user_id = _require_user(user_id, operation)
        payload = await self._request(
            "POST", f"/users/{user_id}/financial_knowledge", operation, data
        )
        return _parse_one(KnowledgeRecord, payload, operation)

    async def update_knowledge(
        self, user_id: Optional[int], category: str, data: KnowledgeIn
    ) -> Optional[KnowledgeRecord]:
        operation = "update financial knowledge"
        user_id = _require_user(user_id, operation)
        category = _require_id(category, "Category", operation)
        payload = await self._request(
            "PUT",
            f"/users/{user_id}/financial_knowledge/{quote(category, safe='')}",
            operation,
            data,
        )
        return _parse_one(KnowledgeRecord, payload, operation)

    async def delete_knowledge(self, user_id: Optional[int], category: str) -> None:
        operation = "delete financial knowledge"
        user_id = _require_user(user_id, operation)
        category = _require_id(category, "Category", operation)
        await self._request(
            "DELETE",
            f"/users/{user_id}/financial_knowledge/{quote(category, safe='')}",
            operation,
        )

    async def fetch_knowledge_definitions(self) -> list[KnowledgeDefinition]:
        operation = "fetch financial knowledge definitions"
        payload = await self._request(
            "GET", "/financial_knowledge_definitions", operation
        )
        return _parse_items(KnowledgeDefinition, payload, operation)

    # Insights

    async def fetch_latest_insights(
        self, user_id: Optional[int]
    ) -> Optional[list[InsightReport]]:
        """Latest stored report, or None when the service returned no body."""
        operation = "fetch latest insights"
        user_id = _require_user(user_id, operation)
        payload = await self._request(
            "GET", f"/users/{user_id}/insights/latest", operation
        )
        if payload is None:
            return None
        return _parse_items(InsightReport, _insight_items(payload), operation)

    async def generate_insights(self, user_id: Optional[int]) -> Any:
        operation = "regenerate insights"
        user_id = _require_user(user_id, operation)
        return await self._request(
            "POST", f"/users/{user_id}/insights/financial_report", operation
        )

    # Auth

    async def login(self, data: LoginIn) -> LoginOut:
        operation = "log in"
        payload = await self._request("POST", "/auth/login", operation, data)
        return self._login_result(payload, operation)

    async def register(self, data: RegisterIn) -> LoginOut:
        operation = "register login"
        payload = await self._request("POST", "/auth/register_login", operation, data)
        return self._login_result(payload, operation)

    @staticmethod
    def _login_result(payload: Any, operation: str) -> LoginOut:
        try:
            return LoginOut.model_validate(payload)
        except ValidationError as exc:
            raise ApiError(operation, None, "Login response missing user_id or email") from exc
