from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Union
from zoneinfo import ZoneInfo

from amounts import format_currency, to_number
from goals import Goal, decode_goals
from metrics import ExpenseSummary, summarize_expenses, top_category
from schemas import (
    ComprehensiveDetails,
    DebtRecord,
    ExpenseRecord,
    IncomeRecord,
    KnowledgeRecord,
    ProfileRecord,
)

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class Household:
    dependent_adults: int = 0
    dependent_children: int = 0


@dataclass(frozen=True)
class PersonalDetails:
    age: Optional[int] = None
    gender: Optional[str] = None
    employment_status: Optional[str] = None
    marital_status: Optional[str] = None
    household: Household = field(default_factory=Household)
    net_monthly_income: float = 0.0

    @property
    def net_monthly_income_label(self) -> str:
        if self.net_monthly_income > 0:
            return f"{format_currency(self.net_monthly_income)} monthly"
        return NOT_AVAILABLE


@dataclass(frozen=True)
class KnowledgeLevel:
    level: int
    description: Optional[str] = None

    @property
    def label(self) -> str:
        return f"Level {self.level}"


@dataclass(frozen=True)
class DebtEntry:
    remote_id: Optional[int]
    account_name: str
    current_balance: float
    interest_rate: Optional[float]
    min_payment: Optional[float]


@dataclass(frozen=True)
class SpendingHabit:
    summary: ExpenseSummary = field(default_factory=ExpenseSummary)
    top_category: str = NOT_AVAILABLE

    @property
    def expense_summary(self) -> Mapping[str, float]:
        return self.summary.all_time

    @property
    def latest_month_summary(self) -> Mapping[str, float]:
        return self.summary.latest_month

    @property
    def latest_month(self) -> Optional[str]:
        return self.summary.latest_month_key


@dataclass(frozen=True)
class FinancialProfile:
    total_debt: float = 0.0
    number_of_debt_accounts: int = 0
    total_min_payments: float = 0.0
    debt_to_income: Optional[float] = None
    detailed_debts: tuple[DebtEntry, ...] = ()
    spending_habit: SpendingHabit = field(default_factory=SpendingHabit)

    @property
    def total_debt_label(self) -> str:
        return format_currency(self.total_debt)


@dataclass(frozen=True)
class UserViewModel:
    """
    Everything the dashboard renders for one user.

    Derived fields come only from build_view_model(); the raw_* records are
    kept so the view can be recomputed and edit payloads built from them.
    """

    user_id: Optional[int] = None
    email: str = ""
    name: str = ""
    personal_details: PersonalDetails = field(default_factory=PersonalDetails)
    financial_goals: tuple[Goal, ...] = ()
    financial_knowledge: Mapping[str, KnowledgeLevel] = field(
        default_factory=lambda: MappingProxyType({})
    )
    financial_profile: FinancialProfile = field(default_factory=FinancialProfile)
    raw_profile: Optional[ProfileRecord] = None
    raw_income: tuple[IncomeRecord, ...] = ()
    raw_debts: tuple[DebtRecord, ...] = ()
    raw_expenses: tuple[ExpenseRecord, ...] = ()
    raw_knowledge: tuple[KnowledgeRecord, ...] = ()

    @classmethod
    def empty(cls) -> "UserViewModel":
        return cls()

    def raw_details(self) -> ComprehensiveDetails:
        return ComprehensiveDetails(
            profile=self.raw_profile,
            income=list(self.raw_income),
            debts=list(self.raw_debts),
            expenses=list(self.raw_expenses),
            financial_knowledge=list(self.raw_knowledge),
        )


def _optional_int(value: Union[int, float, str, None]) -> Optional[int]:
    if value is None or value == "":
        return None
    number = to_number(value)
    if number == 0 and not any(ch.isdigit() for ch in str(value)):
        return None
    return int(number)


def _optional_number(value: Union[int, float, str, None]) -> Optional[float]:
    if value is None or value == "":
        return None
    return to_number(value)


def _knowledge_map(records: tuple[KnowledgeRecord, ...]) -> Mapping[str, KnowledgeLevel]:
    knowledge: dict[str, KnowledgeLevel] = {}
    for record in records:
        knowledge[record.category] = KnowledgeLevel(
            level=int(to_number(record.level)), description=record.description
        )
    return MappingProxyType(knowledge)


def _debt_entries(records: tuple[DebtRecord, ...]) -> tuple[DebtEntry, ...]:
    return tuple(
        DebtEntry(
            remote_id=record.debt_id,
            account_name=record.account_name or NOT_AVAILABLE,
            current_balance=to_number(record.current_balance),
            interest_rate=_optional_number(record.interest_rate),
            min_payment=_optional_number(record.min_monthly_payment),
        )
        for record in records
    )


def build_view_model(
    details: ComprehensiveDetails,
    *,
    user_id: Optional[int] = None,
    email: Optional[str] = None,
    tz: Optional[ZoneInfo] = None,
) -> UserViewModel:
    profile = details.profile
    raw_income = tuple(details.income)
    raw_debts = tuple(details.debts)
    raw_expenses = tuple(details.expenses)
    raw_knowledge = tuple(details.financial_knowledge)

    net_income = sum(to_number(item.monthly_income) for item in raw_income)
    debts = _debt_entries(raw_debts)
    total_min_payments = sum(debt.min_payment or 0.0 for debt in debts)
    summary = summarize_expenses(raw_expenses, tz=tz)

    personal = PersonalDetails(
        age=_optional_int(profile.age) if profile else None,
        gender=profile.gender if profile else None,
        employment_status=profile.retirement_status if profile else None,
        marital_status=profile.marital_status if profile else None,
        household=Household(
            dependent_adults=0,
            dependent_children=(
                (_optional_int(profile.num_children) or 0) if profile else 0
            ),
        ),
        net_monthly_income=net_income,
    )
    financial_profile = FinancialProfile(
        total_debt=sum(debt.current_balance for debt in debts),
        number_of_debt_accounts=len(debts),
        total_min_payments=total_min_payments,
        debt_to_income=(total_min_payments / net_income) if net_income > 0 else None,
        detailed_debts=debts,
        spending_habit=SpendingHabit(summary=summary, top_category=top_category(summary)),
    )

    return UserViewModel(
        user_id=(user_id if user_id is not None else profile.user_id if profile else None),
        email=(profile.email if profile and profile.email else email or ""),
        name=(profile.name if profile and profile.name else ""),
        personal_details=personal,
        financial_goals=tuple(decode_goals(profile.goals if profile else None)),
        financial_knowledge=_knowledge_map(raw_knowledge),
        financial_profile=financial_profile,
        raw_profile=profile,
        raw_income=raw_income,
        raw_debts=raw_debts,
        raw_expenses=raw_expenses,
        raw_knowledge=raw_knowledge,
    )
