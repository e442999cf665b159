"""
Ledger Event Logger

DESIGN DECISION: Every significant engine step is logged as a structured
event. This provides:
1. Traceability of every mutation
2. Debugging capability when a paired write is rolled back
3. Correlation of all rows one operation wrote

The event logger:
- Is synchronous, like the engine itself
- Never persists anything (events are not an audit trail)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from finledger.models.events import (
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
    LedgerSeverity,
)


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

LOGGER_NAME = "finledger"


def configure_logging(level: str = "INFO") -> None:
    """Set the stdlib level structlog filters against."""
    logging.getLogger(LOGGER_NAME).setLevel(level)


class EventLogger:
    """
    Central event logging service.

    The ledger sets `correlation_id` at the start of each outermost
    mutation; every event logged until it is cleared carries that id.
    """

    def __init__(self, debug_mode: bool = False, logger: Optional[Any] = None):
        """
        Args:
            debug_mode: Emit DEBUG events (per-row bookings, advances).
            logger: Logger to write to. Defaults to the structlog logger.
        """
        self.debug_mode = debug_mode
        self.correlation_id: Optional[UUID] = None
        self._logger = logger or structlog.get_logger(LOGGER_NAME)

    def log(self, event: LedgerEvent) -> None:
        """Write one event at the level its severity selects."""
        if event.severity == LedgerSeverity.DEBUG and not self.debug_mode:
            return
        if event.correlation_id is None and self.correlation_id is not None:
            event = event.model_copy(update={"correlation_id": self.correlation_id})

        log_dict = event.to_log_dict()

        if event.severity == LedgerSeverity.ERROR:
            self._logger.error("ledger_event", **log_dict)
        elif event.severity == LedgerSeverity.WARNING:
            self._logger.warning("ledger_event", **log_dict)
        elif event.severity == LedgerSeverity.DEBUG:
            self._logger.debug("ledger_event", **log_dict)
        else:
            self._logger.info("ledger_event", **log_dict)

    def log_transaction_added(self, transaction_id, transaction_type, amount, account_id) -> None:
        self.log(LedgerEventBuilder.transaction_added(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            account_id=account_id,
            correlation_id=self.correlation_id,
        ))

    def log_transaction_updated(self, transaction_id: str, changed_fields: list[str]) -> None:
        self.log(LedgerEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            correlation_id=self.correlation_id,
        ))

    def log_transaction_deleted(self, transaction_id: str, counter_transaction_id: Optional[str]) -> None:
        self.log(LedgerEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            counter_transaction_id=counter_transaction_id,
            correlation_id=self.correlation_id,
        ))

    def log_transfer_created(self, outgoing_id, incoming_id, amount, kind: str) -> None:
        self.log(LedgerEventBuilder.transfer_created(
            outgoing_id=outgoing_id,
            incoming_id=incoming_id,
            amount=amount,
            kind=kind,
            correlation_id=self.correlation_id,
        ))

    def log_income_allocated(self, transaction_id, category_id, amount, reason: str) -> None:
        self.log(LedgerEventBuilder.income_allocated(
            transaction_id=transaction_id,
            category_id=category_id,
            amount=amount,
            reason=reason,
            correlation_id=self.correlation_id,
        ))

    def log_rollback(self, first_leg_id: str, error: Exception) -> None:
        self.log(LedgerEventBuilder.paired_write_rolled_back(
            first_leg_id=first_leg_id,
            error=str(error),
            correlation_id=self.correlation_id,
        ))

    def log_planning_executed(self, template_id: str, occurrence: str, created_ids: list[str]) -> None:
        self.log(LedgerEventBuilder.planning_executed(
            template_id=template_id,
            occurrence=occurrence,
            created_ids=created_ids,
            correlation_id=self.correlation_id,
        ))

    def log_planning_advanced(self, template_id: str, next_date: Optional[str]) -> None:
        self.log(LedgerEventBuilder.planning_advanced(
            template_id=template_id,
            next_date=next_date,
            correlation_id=self.correlation_id,
        ))

    def log_recurrence_cap(self, template_id: str, max_iterations: int) -> None:
        self.log(LedgerEventBuilder.recurrence_cap_reached(
            template_id=template_id,
            max_iterations=max_iterations,
        ))

    def log_guard_rejected(self, entity_type: str, entity_id: str, reason: str) -> None:
        self.log(LedgerEventBuilder.guard_rejected(
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
            correlation_id=self.correlation_id,
        ))

    def log_reconciled(self, account_id, bank_balance, delta, marked: int) -> None:
        self.log(LedgerEventBuilder.account_reconciled(
            account_id=account_id,
            bank_balance=bank_balance,
            delta=delta,
            marked=marked,
            correlation_id=self.correlation_id,
        ))

    def log_error(
        self,
        event_type: LedgerEventType,
        description: str,
        error: Exception,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.log(LedgerEventBuilder.error(
            event_type=event_type,
            description=description,
            error=error,
            correlation_id=self.correlation_id,
            details=details,
        ))

    def log_simple(
        self,
        event_type: LedgerEventType,
        description: str,
        severity: LedgerSeverity = LedgerSeverity.INFO,
        **details: Any,
    ) -> None:
        """Lifecycle events that need no dedicated builder."""
        self.log(LedgerEvent(
            event_type=event_type,
            severity=severity,
            description=description,
            details=details,
        ))


def create_correlation_id() -> UUID:
    """Create a new correlation ID for one outermost mutation."""
    return uuid4()
