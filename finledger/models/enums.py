"""
Finite value sets shared by the ledger models.

Kept free of imports from the rest of the package so that any module
(including `finledger.dates`) can depend on it.
"""

from enum import Enum


class AccountType(str, Enum):
    """Kind of money container an account represents."""
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    CREDIT = "CREDIT"
    CASH = "CASH"


class TransactionType(str, Enum):
    """
    Transaction kinds.

    TRANSFER and CATEGORYTRANSFER rows always come in pairs.
    CATEGORYTRANSFER rows carry no account.
    """
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"
    TRANSFER = "TRANSFER"
    CATEGORYTRANSFER = "CATEGORYTRANSFER"
    RECONCILE = "RECONCILE"


# Types that must be booked on an account
ACCOUNT_BOUND_TYPES = frozenset({
    TransactionType.EXPENSE,
    TransactionType.INCOME,
    TransactionType.TRANSFER,
    TransactionType.RECONCILE,
})


class RecurrencePattern(str, Enum):
    ONCE = "ONCE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class RecurrenceEndType(str, Enum):
    NEVER = "NEVER"
    DATE = "DATE"
    COUNT = "COUNT"


class WeekendHandling(str, Enum):
    """Where an occurrence falling on Saturday/Sunday is moved."""
    NONE = "NONE"
    BEFORE = "BEFORE"
    AFTER = "AFTER"


class RuleStage(str, Enum):
    PRE = "PRE"
    DEFAULT = "DEFAULT"
    POST = "POST"


class RuleConditionType(str, Enum):
    ACCOUNT_IS = "ACCOUNT_IS"
    PAYEE_EQUALS = "PAYEE_EQUALS"
    PAYEE_CONTAINS = "PAYEE_CONTAINS"
    AMOUNT_EQUALS = "AMOUNT_EQUALS"
    AMOUNT_GREATER = "AMOUNT_GREATER"
    AMOUNT_LESS = "AMOUNT_LESS"
    DATE_IS = "DATE_IS"
    NOTE_CONTAINS = "NOTE_CONTAINS"


class RuleActionType(str, Enum):
    SET_CATEGORY = "SET_CATEGORY"
    ADD_TAG = "ADD_TAG"
    SET_NOTE = "SET_NOTE"
