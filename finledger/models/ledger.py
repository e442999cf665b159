"""
Core Data Models for finledger

These models define the records the ledger owns and persists:
accounts, account groups, categories, transactions, recurring templates
and the derived monthly snapshots.

DESIGN DECISION: Derived fields (balances, running balances, transaction
counts) live on the models but are only ever written by the ledger
components. Callers read them, never set them.

Dates are calendar days. Anything date-like (date, datetime, ISO string)
is accepted on input and collapsed to a `datetime.date`; JSON output is
`YYYY-MM-DD`.
"""

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from finledger.dates import month_bounds, to_date
from finledger.models.enums import (
    AccountType,
    RecurrenceEndType,
    RecurrencePattern,
    TransactionType,
    WeekendHandling,
)


Day = Annotated[date, BeforeValidator(to_date)]

ZERO = Decimal("0")


def new_id() -> str:
    return str(uuid4())


class LedgerModel(BaseModel):
    """Base for every persisted record."""
    model_config = ConfigDict(str_strip_whitespace=True)

    def to_storage(self) -> dict[str, Any]:
        """JSON-safe dict for the key-value store."""
        return self.model_dump(mode="json")


# =============================================================================
# ACCOUNTS
# =============================================================================

class ReconciliationSnapshot(LedgerModel):
    """Bank-confirmed balance of an account on a given day."""
    date: Day
    balance: Decimal


class AccountGroup(LedgerModel):
    """
    Grouping of accounts for display.

    Cannot be deleted while any account references it.
    """
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    sort_order: int = 0


class Account(LedgerModel):
    """
    A money container.

    `balance` is derived: it always equals the running balance of the
    chronologically last transaction on the account (0 without any).
    `starting_balance` is informational and NOT folded into recomputes.
    """
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    account_group_id: str = Field(..., min_length=1)
    account_type: AccountType = AccountType.CHECKING
    starting_balance: Decimal = ZERO
    balance: Decimal = ZERO
    is_active: bool = True
    is_closed: bool = False
    sort_order: int = 0
    note: str = ""
    reconciliation: Optional[ReconciliationSnapshot] = None


# =============================================================================
# CATEGORIES
# =============================================================================

class Category(LedgerModel):
    """
    A budget envelope.

    `balance` is the running total of everything allocated to the
    envelope; `start_balance` is the month-start snapshot used as the
    fallback anchor for saldo aggregation.
    """
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    parent_category_id: Optional[str] = None
    is_income_category: bool = False
    is_savings_goal: bool = False
    is_active: bool = True
    balance: Decimal = ZERO
    start_balance: Decimal = ZERO
    transaction_count: int = Field(default=0, ge=0)
    average_transaction_value: Decimal = ZERO
    sort_order: int = 0

    @field_validator("parent_category_id", mode="before")
    @classmethod
    def blank_parent_is_root(cls, v: Optional[str]) -> Optional[str]:
        return v or None


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(LedgerModel):
    """
    A single ledger row.

    Amount is signed: positive is an inflow. Paired legs (transfers,
    category moves, income allocations) reference each other through
    `counter_transaction_id`.
    """
    id: str = Field(default_factory=new_id)
    account_id: str = ""
    category_id: Optional[str] = None
    date: Day
    value_date: Day
    amount: Decimal
    type: TransactionType = TransactionType.EXPENSE
    tag_ids: list[str] = Field(default_factory=list)
    payee: str = ""
    recipient_id: Optional[str] = None
    note: str = ""

    # Derived
    running_balance: Decimal = ZERO

    # Pairing / provenance
    counter_transaction_id: Optional[str] = None
    planning_transaction_id: Optional[str] = None
    to_category_id: Optional[str] = None
    to_account_id: Optional[str] = None

    reconciled: bool = False
    is_reconciliation: bool = False

    @model_validator(mode="before")
    @classmethod
    def default_value_date(cls, data: Any) -> Any:
        """Settlement date defaults to the booking date."""
        if isinstance(data, dict) and not data.get("value_date"):
            data = {**data, "value_date": data.get("date")}
        return data

    @field_validator("tag_ids")
    @classmethod
    def dedupe_tags(cls, v: list[str]) -> list[str]:
        """Tags have set semantics; keep first-seen order."""
        return list(dict.fromkeys(v))

    @property
    def is_paired(self) -> bool:
        return self.counter_transaction_id is not None


class TransferResult(BaseModel):
    """Both legs of a paired booking."""
    outgoing: Transaction
    incoming: Transaction


# =============================================================================
# RECURRING TEMPLATES
# =============================================================================

class PlanningTransaction(LedgerModel):
    """
    A recurring template.

    `start_date` always points at the next un-executed occurrence; the
    template is advanced in place after each materialization.
    """
    id: str = Field(default_factory=new_id)
    name: str = ""
    account_id: str = ""
    category_id: Optional[str] = None
    amount: Decimal
    transaction_type: TransactionType = TransactionType.EXPENSE
    start_date: Day
    end_date: Optional[Day] = None
    recurrence_pattern: RecurrencePattern = RecurrencePattern.ONCE
    recurrence_end_type: RecurrenceEndType = RecurrenceEndType.NEVER
    recurrence_count: Optional[int] = Field(default=None, ge=0)
    execution_day: Optional[int] = Field(default=None, ge=1, le=31)
    weekend_handling: WeekendHandling = WeekendHandling.NONE
    forecast_only: bool = False
    is_active: bool = True
    counter_planning_transaction_id: Optional[str] = None
    to_account_id: Optional[str] = None
    to_category_id: Optional[str] = None
    tag_ids: list[str] = Field(default_factory=list)
    payee: str = ""
    recipient_id: Optional[str] = None
    note: str = ""

    @model_validator(mode="after")
    def check_end_condition(self) -> "PlanningTransaction":
        """DATE needs an end date, COUNT needs a count."""
        if self.recurrence_end_type == RecurrenceEndType.DATE and self.end_date is None:
            raise ValueError("end_date is required when recurrence ends by DATE")
        if self.recurrence_end_type == RecurrenceEndType.COUNT and self.recurrence_count is None:
            raise ValueError("recurrence_count is required when recurrence ends by COUNT")
        return self


# =============================================================================
# DERIVED SNAPSHOTS
# =============================================================================

class MonthlyBalance(LedgerModel):
    """Closing balance of an account for one month. Never authoritative."""
    account_id: str
    year: int
    month: int = Field(..., ge=1, le=12)
    balance: Decimal


class CategoryMonthlyBalance(LedgerModel):
    """Cumulative envelope balance at the end of one month."""
    category_id: str
    year: int
    month: int = Field(..., ge=1, le=12)
    balance: Decimal

    @property
    def month_end(self) -> date:
        return month_bounds(self.year, self.month)[1]


class CategorySummary(BaseModel):
    """Budget figures of a category over a window."""
    budgeted: Decimal = ZERO
    spent: Decimal = ZERO
    saldo: Decimal = ZERO

    def __add__(self, other: "CategorySummary") -> "CategorySummary":
        return CategorySummary(
            budgeted=self.budgeted + other.budgeted,
            spent=self.spent + other.spent,
            saldo=self.saldo + other.saldo,
        )


# =============================================================================
# OPAQUE COLLECTIONS
# =============================================================================

class Tag(LedgerModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = None


class Recipient(LedgerModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    note: str = ""
