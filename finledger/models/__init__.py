"""
Data Models Package

This package contains all Pydantic models used by finledger.
Every record the ledger owns or persists conforms to these schemas.
"""

from finledger.models.enums import (
    ACCOUNT_BOUND_TYPES,
    AccountType,
    RecurrenceEndType,
    RecurrencePattern,
    RuleActionType,
    RuleConditionType,
    RuleStage,
    TransactionType,
    WeekendHandling,
)
from finledger.models.ledger import (
    Account,
    AccountGroup,
    Category,
    CategoryMonthlyBalance,
    CategorySummary,
    MonthlyBalance,
    PlanningTransaction,
    ReconciliationSnapshot,
    Recipient,
    Tag,
    Transaction,
    TransferResult,
)
from finledger.models.rules import (
    AutomationRule,
    RuleAction,
    RuleCondition,
)
from finledger.models.events import (
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
    LedgerSeverity,
)

__all__ = [
    # Enums
    "ACCOUNT_BOUND_TYPES",
    "AccountType",
    "RecurrenceEndType",
    "RecurrencePattern",
    "RuleActionType",
    "RuleConditionType",
    "RuleStage",
    "TransactionType",
    "WeekendHandling",
    # Ledger models
    "Account",
    "AccountGroup",
    "Category",
    "CategoryMonthlyBalance",
    "CategorySummary",
    "MonthlyBalance",
    "PlanningTransaction",
    "ReconciliationSnapshot",
    "Recipient",
    "Tag",
    "Transaction",
    "TransferResult",
    # Rule models
    "AutomationRule",
    "RuleAction",
    "RuleCondition",
    # Event models
    "LedgerEvent",
    "LedgerEventBuilder",
    "LedgerEventType",
    "LedgerSeverity",
]
