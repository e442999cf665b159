"""
Ledger Event Models

Every significant engine step is described by a LedgerEvent and written
to the structured log. This provides:
1. Traceability of every mutation
2. Debugging information when a paired write is rolled back
3. Correlation of all rows written by one operation

DESIGN DECISION: Events are log records only. They are never persisted
to the ledger store and there is no undo built on top of them.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class LedgerEventType(str, Enum):
    """
    Types of events the engine emits.

    Every component has its own group of event types.
    """
    # Ledger lifecycle
    LEDGER_LOADED = "ledger_loaded"
    LEDGER_SAVED = "ledger_saved"
    LEDGER_CLOSED = "ledger_closed"
    BOOTSTRAP_CREATED = "bootstrap_created"

    # Transactions
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    BALANCES_RECOMPUTED = "balances_recomputed"

    # Paired writes
    TRANSFER_CREATED = "transfer_created"
    CATEGORY_TRANSFER_CREATED = "category_transfer_created"
    INCOME_ALLOCATED = "income_allocated"
    PAIRED_WRITE_ROLLED_BACK = "paired_write_rolled_back"

    # Recurrence
    PLANNING_EXECUTED = "planning_executed"
    PLANNING_ADVANCED = "planning_advanced"
    PLANNING_EXHAUSTED = "planning_exhausted"
    RECURRENCE_CAP_REACHED = "recurrence_cap_reached"

    # Rules / reconciliation
    RULES_APPLIED = "rules_applied"
    ACCOUNT_RECONCILED = "account_reconciled"

    # Guards and failures
    GUARD_REJECTED = "guard_rejected"
    VALIDATION_FAILED = "validation_failed"
    CONFIGURATION_ERROR = "configuration_error"
    STORAGE_ERROR = "storage_error"


class LedgerSeverity(str, Enum):
    """Severity level for ledger events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LedgerEvent(BaseModel):
    """
    A single ledger event.

    Every significant engine step creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: LedgerEventType = Field(
        ...,
        description="Type of event"
    )
    severity: LedgerSeverity = Field(
        default=LedgerSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'category')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - every event of one mutation shares an id
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


def _money(value: Decimal) -> str:
    return str(value)


class LedgerEventBuilder:
    """
    Helper class to build ledger events with common patterns.

    Usage:
        event = LedgerEventBuilder.transaction_added(tx, correlation_id)
        event = LedgerEventBuilder.guard_rejected("category", cat_id, "has children", cid)
    """

    @staticmethod
    def transaction_added(
        transaction_id: str,
        transaction_type: str,
        amount: Decimal,
        account_id: str,
        correlation_id: Optional[UUID]
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_ADDED,
            severity=LedgerSeverity.DEBUG,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{transaction_type} of {amount} booked",
            details={
                "amount": _money(amount),
                "account_id": account_id,
                "type": transaction_type,
            },
        )

    @staticmethod
    def transaction_updated(
        transaction_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID]
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_UPDATED,
            severity=LedgerSeverity.DEBUG,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {', '.join(changed_fields) or 'no changes'}",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        counter_transaction_id: Optional[str],
        correlation_id: Optional[UUID]
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_DELETED,
            severity=LedgerSeverity.DEBUG,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            details={"counter_transaction_id": counter_transaction_id},
        )

    @staticmethod
    def transfer_created(
        outgoing_id: str,
        incoming_id: str,
        amount: Decimal,
        kind: str,
        correlation_id: Optional[UUID]
    ) -> LedgerEvent:
        event_type = (
            LedgerEventType.CATEGORY_TRANSFER_CREATED
            if kind == "category"
            else LedgerEventType.TRANSFER_CREATED
        )
        return LedgerEvent(
            event_type=event_type,
            entity_type="transaction",
            entity_id=outgoing_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} transfer of {amount} created",
            details={
                "outgoing_id": outgoing_id,
                "incoming_id": incoming_id,
                "amount": _money(amount),
            },
        )

    @staticmethod
    def income_allocated(
        transaction_id: str,
        category_id: str,
        amount: Decimal,
        reason: str,
        correlation_id: Optional[UUID]
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.INCOME_ALLOCATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Income allocation ({reason}): {amount}",
            details={
                "category_id": category_id,
                "amount": _money(amount),
                "reason": reason,
            },
        )

    @staticmethod
    def paired_write_rolled_back(
        first_leg_id: str,
        error: str,
        correlation_id: Optional[UUID]
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.PAIRED_WRITE_ROLLED_BACK,
            severity=LedgerSeverity.WARNING,
            entity_type="transaction",
            entity_id=first_leg_id,
            correlation_id=correlation_id,
            description="Second leg failed, first leg discarded",
            error_message=error,
        )

    @staticmethod
    def planning_executed(
        template_id: str,
        occurrence: str,
        created_ids: list[str],
        correlation_id: Optional[UUID]
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.PLANNING_EXECUTED,
            entity_type="planning_transaction",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Planned occurrence {occurrence} materialized",
            details={
                "occurrence": occurrence,
                "created_ids": created_ids,
                "forecast_only": not created_ids,
            },
        )

    @staticmethod
    def planning_advanced(
        template_id: str,
        next_date: Optional[str],
        correlation_id: Optional[UUID]
    ) -> LedgerEvent:
        if next_date is None:
            return LedgerEvent(
                event_type=LedgerEventType.PLANNING_EXHAUSTED,
                entity_type="planning_transaction",
                entity_id=template_id,
                correlation_id=correlation_id,
                description="Template has no further occurrences and was removed",
            )
        return LedgerEvent(
            event_type=LedgerEventType.PLANNING_ADVANCED,
            severity=LedgerSeverity.DEBUG,
            entity_type="planning_transaction",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Template advanced to {next_date}",
            details={"next_date": next_date},
        )

    @staticmethod
    def recurrence_cap_reached(
        template_id: str,
        max_iterations: int
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.RECURRENCE_CAP_REACHED,
            severity=LedgerSeverity.WARNING,
            entity_type="planning_transaction",
            entity_id=template_id,
            description=f"Date walk stopped after {max_iterations} steps",
            details={"max_iterations": max_iterations},
        )

    @staticmethod
    def guard_rejected(
        entity_type: str,
        entity_id: str,
        reason: str,
        correlation_id: Optional[UUID]
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.GUARD_REJECTED,
            severity=LedgerSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Delete of {entity_type} rejected: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def account_reconciled(
        account_id: str,
        bank_balance: Decimal,
        delta: Decimal,
        marked: int,
        correlation_id: Optional[UUID]
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.ACCOUNT_RECONCILED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account reconciled with delta {delta}",
            details={
                "bank_balance": _money(bank_balance),
                "delta": _money(delta),
                "marked_transactions": marked,
            },
        )

    @staticmethod
    def error(
        event_type: LedgerEventType,
        description: str,
        error: Exception,
        correlation_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=event_type,
            severity=LedgerSeverity.ERROR,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            error_message=str(error),
        )
