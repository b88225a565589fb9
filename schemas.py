import datetime as dt
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Backend money/count fields arrive as numbers, numeric strings, or
# currency-formatted strings; amounts.to_number reads all of them.
Loose = Union[int, float, str, None]


class RecordBase(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ProfileRecord(RecordBase):
    user_id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    age: Loose = None
    gender: Optional[str] = None
    num_children: Loose = None
    marital_status: Optional[str] = None
    retirement_status: Optional[str] = None
    goals: Optional[dict[str, Any]] = None

    @field_validator("goals", mode="before")
    @classmethod
    def _goals_map_only(cls, value: Any) -> Optional[dict[str, Any]]:
        if not isinstance(value, dict):
            return None
        return {str(key): item for key, item in value.items()}


class IncomeRecord(RecordBase):
    income_id: Optional[int] = None
    income_source: Optional[str] = None
    monthly_income: Loose = None
    description: Optional[str] = None


class DebtRecord(RecordBase):
    debt_id: Optional[int] = None
    account_name: Optional[str] = None
    current_balance: Loose = None
    interest_rate: Loose = None
    min_monthly_payment: Loose = None


class ExpenseRecord(RecordBase):
    expense_id: Optional[int] = None
    expense_category: Optional[str] = None
    monthly_amount: Loose = None
    description: Optional[str] = None
    timestamp: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp_as_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (dt.date, dt.datetime)):
            return value.isoformat()
        return str(value)


class KnowledgeRecord(RecordBase):
    category: str
    level: Loose = None
    description: Optional[str] = None


class KnowledgeDefinition(RecordBase):
    category: str
    level: Loose = None
    description: Optional[str] = None


class ComprehensiveDetails(RecordBase):
    profile: Optional[ProfileRecord] = None
    income: list[IncomeRecord] = Field(default_factory=list)
    debts: list[DebtRecord] = Field(default_factory=list)
    expenses: list[ExpenseRecord] = Field(default_factory=list)
    financial_knowledge: list[KnowledgeRecord] = Field(default_factory=list)

    @field_validator(
        "income", "debts", "expenses", "financial_knowledge", mode="before"
    )
    @classmethod
    def _list_or_empty(cls, value: Any) -> list[Any]:
        return value if isinstance(value, list) else []


class InsightReport(RecordBase):
    id: Union[int, str, None] = None
    title: str = ""
    explanation: str = ""
    impact: str = ""
    next_steps: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("next_steps", "nextSteps"),
    )


class LoginIn(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RegisterIn(LoginIn):
    user_id: int


class LoginOut(RecordBase):
    user_id: int
    email: str


class ProfileUpdateIn(BaseModel):
    age: Optional[int] = Field(default=None, ge=0, le=150)
    gender: Optional[str] = None
    num_children: Optional[int] = Field(default=None, ge=0)
    marital_status: Optional[str] = None
    retirement_status: Optional[str] = None
    goals: dict[str, dict[str, str]] = Field(default_factory=dict)


class IncomeIn(BaseModel):
    income_source: str = Field(..., min_length=1, max_length=200)
    monthly_income: float = 0
    description: Optional[str] = None


class DebtIn(BaseModel):
    account_name: Optional[str] = Field(default=None, max_length=200)
    current_balance: float = Field(default=0, ge=0)
    interest_rate: Optional[float] = Field(default=None, ge=0)
    min_monthly_payment: Optional[float] = Field(default=None, ge=0)


class ExpenseIn(BaseModel):
    expense_category: str = Field(..., min_length=1, max_length=100)
    monthly_amount: float = Field(..., ge=0)
    description: Optional[str] = None
    timestamp: dt.date


class KnowledgeIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    level: int = Field(..., ge=1, le=5)
    description: Optional[str] = None
