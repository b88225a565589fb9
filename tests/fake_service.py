from typing import Any, Optional

import httpx
from fastapi import Body, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from api_client import FinanceApiClient


class RegisterBody(BaseModel):
    user_id: int
    email: str
    password: str = Field(..., min_length=8)


class FakeFinanceService:
    """In-memory stand-in for the finance REST service, served over ASGI."""

    def __init__(self, user_id: int = 1) -> None:
        self.user_id = user_id
        self.profile: dict[str, Any] = {
            "user_id": user_id,
            "name": "Alex Johnson",
            "email": "alex@example.com",
            "age": 34,
            "num_children": 2,
            "marital_status": "Married",
            "retirement_status": "Employed",
            "goals": {},
        }
        self.income: dict[int, dict[str, Any]] = {}
        self.debts: dict[int, dict[str, Any]] = {}
        self.expenses: dict[int, dict[str, Any]] = {}
        self.knowledge: dict[str, dict[str, Any]] = {}
        self.definitions: list[dict[str, Any]] = []
        self.insights: list[dict[str, Any]] = []
        self.next_insights: list[dict[str, Any]] = []
        self.credentials: dict[str, str] = {}
        self.failures: dict[tuple[str, str], tuple[int, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self._next_id = 100
        self.app = self._build_app()

    def new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def add_income(self, source: str, amount: Any, description: Optional[str] = None) -> int:
        income_id = self.new_id()
        self.income[income_id] = {
            "income_id": income_id,
            "income_source": source,
            "monthly_income": amount,
            "description": description,
        }
        return income_id

    def add_expense(self, category: str, amount: Any, timestamp: str) -> int:
        expense_id = self.new_id()
        self.expenses[expense_id] = {
            "expense_id": expense_id,
            "expense_category": category,
            "monthly_amount": amount,
            "description": None,
            "timestamp": timestamp,
        }
        return expense_id

    def add_debt(self, name: str, balance: Any, min_payment: Any = None) -> int:
        debt_id = self.new_id()
        self.debts[debt_id] = {
            "debt_id": debt_id,
            "account_name": name,
            "current_balance": balance,
            "interest_rate": 0.18,
            "min_monthly_payment": min_payment,
        }
        return debt_id

    def fail(self, method: str, path: str, status: int = 500, detail: Any = "boom") -> None:
        self.failures[(method, path)] = (status, detail)

    def client(self, **kwargs: Any) -> FinanceApiClient:
        return FinanceApiClient(
            base_url="http://testserver",
            transport=httpx.ASGITransport(app=self.app),
            **kwargs,
        )

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        service = self

        @app.middleware("http")
        async def record_and_fail(request: Request, call_next):
            key = (request.method, request.url.path)
            service.calls.append(key)
            if key in service.failures:
                status, detail = service.failures[key]
                return JSONResponse(status_code=status, content={"detail": detail})
            return await call_next(request)

        def collection(name: str) -> dict[Any, dict[str, Any]]:
            return getattr(service, name)

        @app.get("/users/{user_id}/comprehensive_details")
        def comprehensive(user_id: int):
            return {
                "profile": service.profile,
                "income": list(service.income.values()),
                "debts": list(service.debts.values()),
                "expenses": list(service.expenses.values()),
                "financial_knowledge": list(service.knowledge.values()),
            }

        @app.put("/users/{user_id}/profile")
        def update_profile(user_id: int, payload: dict[str, Any] = Body(...)):
            service.profile.update(payload)
            return service.profile

        for name, id_field in (
            ("income", "income_id"),
            ("debts", "debt_id"),
            ("expenses", "expense_id"),
        ):
            self._register_crud(app, name, id_field, collection)

        @app.post("/users/{user_id}/financial_knowledge")
        def add_knowledge(user_id: int, payload: dict[str, Any] = Body(...)):
            service.knowledge[payload["category"]] = payload
            return payload

        @app.put("/users/{user_id}/financial_knowledge/{category}")
        def update_knowledge(user_id: int, category: str, payload: dict[str, Any] = Body(...)):
            if category not in service.knowledge:
                raise HTTPException(status_code=404, detail="Knowledge entry not found")
            service.knowledge[category] = {**payload, "category": category}
            return service.knowledge[category]

        @app.delete("/users/{user_id}/financial_knowledge/{category}")
        def delete_knowledge(user_id: int, category: str):
            if service.knowledge.pop(category, None) is None:
                raise HTTPException(status_code=404, detail="Knowledge entry not found")
            return Response(status_code=204)

        @app.get("/financial_knowledge_definitions")
        def definitions():
            return service.definitions

        @app.get("/users/{user_id}/insights/latest")
        def latest_insights(user_id: int):
            if not service.insights:
                raise HTTPException(status_code=404, detail="No insights found")
            return {"insights": service.insights}

        @app.post("/users/{user_id}/insights/financial_report")
        def generate(user_id: int):
            service.insights = list(service.next_insights)
            return {"insights": service.insights}

        @app.post("/auth/login")
        def login(payload: dict[str, Any] = Body(...)):
            email = payload.get("email")
            if service.credentials.get(email) != payload.get("password"):
                raise HTTPException(status_code=401, detail="Invalid email or password")
            return {"user_id": service.user_id, "email": email}

        @app.post("/auth/register_login")
        def register(payload: RegisterBody):
            service.credentials[payload.email] = payload.password
            return {"user_id": payload.user_id, "email": payload.email}

        return app

    def _register_crud(self, app: FastAPI, name: str, id_field: str, collection) -> None:
        service = self

        @app.get(f"/users/{{user_id}}/{name}")
        def list_items(user_id: int):
            return list(collection(name).values())

        @app.post(f"/users/{{user_id}}/{name}")
        def create_item(user_id: int, payload: dict[str, Any] = Body(...)):
            item_id = service.new_id()
            collection(name)[item_id] = {**payload, id_field: item_id}
            return collection(name)[item_id]

        @app.put(f"/users/{{user_id}}/{name}/{{item_id}}")
        def update_item(user_id: int, item_id: int, payload: dict[str, Any] = Body(...)):
            if item_id not in collection(name):
                raise HTTPException(status_code=404, detail=f"{name} {item_id} not found")
            collection(name)[item_id] = {**payload, id_field: item_id}
            return collection(name)[item_id]

        @app.delete(f"/users/{{user_id}}/{name}/{{item_id}}")
        def delete_item(user_id: int, item_id: int):
            if collection(name).pop(item_id, None) is None:
                raise HTTPException(status_code=404, detail=f"{name} {item_id} not found")
            return Response(status_code=204)
