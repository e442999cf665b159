"""
Recurrence Engine

Expands recurring templates into concrete dates and materializes the
due ones into real bookings.

Date walk of a template:
1. Step n is computed from `start_date` directly. Day-based patterns add
   n * 1/7/14 days; month-based patterns add n * 1/3/12 months and clamp
   to the anchor day (`execution_day`, else the start day), so a
   31st-of-month template yields Feb 29, Mar 31, Apr 30 and never drifts.
2. Weekend handling is applied to each raw step date.
3. The walk stops after the first step for ONCE, when the step count
   reaches `recurrence_count` (COUNT), when the raw date passes
   `end_date` (DATE), or at the iteration cap.

DESIGN DECISION: `start_date` is the next un-executed occurrence. After
materializing, the template is advanced in place (or removed when the
walk is exhausted), which makes due execution idempotent by date.
"""

from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, Iterator, NamedTuple, Optional

from pydantic import ValidationError

from finledger.dates import DateLike, add_months_clamped, apply_weekend_handling, to_date
from finledger.ledger.errors import LedgerValidationError
from finledger.models import (
    LedgerEventType,
    PlanningTransaction,
    RecurrenceEndType,
    RecurrencePattern,
    RuleStage,
    Transaction,
    TransactionType,
)
from finledger.models.ledger import new_id

if TYPE_CHECKING:
    from finledger.ledger.context import Ledger


DEFAULT_MAX_ITERATIONS = 10000

# Weekend handling moves a date by at most this much
WEEKEND_SHIFT = timedelta(days=2)

DAY_STEPS = {
    RecurrencePattern.DAILY: 1,
    RecurrencePattern.WEEKLY: 7,
    RecurrencePattern.BIWEEKLY: 14,
}
MONTH_STEPS = {
    RecurrencePattern.MONTHLY: 1,
    RecurrencePattern.QUARTERLY: 3,
    RecurrencePattern.YEARLY: 12,
}

# Copied onto the counter template of a transfer pair
SCHEDULE_FIELDS = (
    "name",
    "start_date",
    "end_date",
    "recurrence_pattern",
    "recurrence_end_type",
    "recurrence_count",
    "execution_day",
    "weekend_handling",
    "forecast_only",
    "is_active",
    "note",
)


class Step(NamedTuple):
    index: int
    raw: date
    adjusted: date


# =============================================================================
# PURE DATE WALK
# =============================================================================

def step_date(template: PlanningTransaction, index: int) -> date:
    """Raw (unadjusted) date of the n-th step."""
    start = template.start_date
    if index == 0 or template.recurrence_pattern == RecurrencePattern.ONCE:
        return start
    pattern = template.recurrence_pattern
    if pattern in DAY_STEPS:
        return start + timedelta(days=DAY_STEPS[pattern] * index)
    anchor = template.execution_day or start.day
    return add_months_clamped(start, MONTH_STEPS[pattern] * index, anchor)


class DateWalk:
    """
    Iterates the steps of a template in order, honoring its end condition.

    `capped` is set when iteration ran into the cap instead of ending.
    Equal consecutive adjusted dates (weekend collapse) are yielded once.
    """

    def __init__(self, template: PlanningTransaction, max_iterations: int = DEFAULT_MAX_ITERATIONS):
        self.template = template
        self.max_iterations = max_iterations
        self.capped = False

    def __iter__(self) -> Iterator[Step]:
        template = self.template
        last: Optional[date] = None
        for index in range(self.max_iterations):
            if (
                template.recurrence_end_type == RecurrenceEndType.COUNT
                and index >= (template.recurrence_count or 0)
            ):
                return
            raw = step_date(template, index)
            if (
                template.recurrence_end_type == RecurrenceEndType.DATE
                and template.end_date is not None
                and raw > template.end_date
            ):
                return
            adjusted = apply_weekend_handling(raw, template.weekend_handling)
            if last is None or adjusted > last:
                yield Step(index, raw, adjusted)
                last = adjusted
            if template.recurrence_pattern == RecurrencePattern.ONCE:
                return
        self.capped = True


def occurrences(
    template: PlanningTransaction,
    window_start: DateLike,
    window_end: DateLike,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> list[date]:
    """
    Occurrence dates of a template within [window_start, window_end].

    Deterministic and side-effect free.
    """
    window_start, window_end = to_date(window_start), to_date(window_end)
    return [
        step.adjusted
        for step in _steps_in_window(DateWalk(template, max_iterations), window_start, window_end)
    ]


def _steps_in_window(walk: DateWalk, window_start: date, window_end: date) -> list[Step]:
    template = walk.template
    if not template.is_active or template.start_date > window_end + WEEKEND_SHIFT:
        return []
    if template.end_date is not None and template.end_date + WEEKEND_SHIFT < window_start:
        return []
    hits = []
    for step in walk:
        if step.raw > window_end + WEEKEND_SHIFT:
            break
        if window_start <= step.adjusted <= window_end:
            hits.append(step)
    return hits


def next_step(
    template: PlanningTransaction,
    after: DateLike,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Optional[Step]:
    """First step whose adjusted date is strictly after `after`."""
    after = to_date(after)
    return next((s for s in DateWalk(template, max_iterations) if s.adjusted > after), None)


def next_occurrence(
    template: PlanningTransaction,
    after: DateLike,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Optional[date]:
    """
    First occurrence strictly after `after`, or None when exhausted.

    Ignores the active flag: this is a pure walk over the schedule.
    """
    step = next_step(template, after, max_iterations)
    return step.adjusted if step else None


# =============================================================================
# ENGINE
# =============================================================================

class RecurrenceEngine:
    """Template CRUD plus due execution against the ledger."""

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger
        self._state = ledger.state
        self._events = ledger.events
        self._max_iterations = ledger.settings.recurrence_max_iterations

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_planning_transaction(self, planning_id: str) -> Optional[PlanningTransaction]:
        return self._state.find_planning(planning_id)

    def occurrences(self, template: PlanningTransaction, window_start: DateLike, window_end: DateLike) -> list[date]:
        walk = DateWalk(template, self._max_iterations)
        hits = _steps_in_window(walk, to_date(window_start), to_date(window_end))
        if walk.capped:
            self._events.log_recurrence_cap(template.id, self._max_iterations)
        return [step.adjusted for step in hits]

    def next_occurrence(self, template: PlanningTransaction, after: DateLike) -> Optional[date]:
        return next_occurrence(template, after, self._max_iterations)

    def get_upcoming_planning_transactions(
        self,
        days: Optional[int] = None,
        today: Optional[DateLike] = None,
    ) -> list[tuple[PlanningTransaction, date]]:
        """Active templates with their next occurrence in [today, today + days]."""
        today = to_date(today) if today else self._ledger.clock.today()
        horizon = today + timedelta(days=days or self._ledger.settings.forecast_horizon_days)
        upcoming = []
        for template in self._state.planning_transactions:
            dates = self.occurrences(template, today, horizon)
            if dates:
                upcoming.append((template, dates[0]))
        return sorted(upcoming, key=lambda pair: pair[1])

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def _validate(self, data: dict[str, Any]) -> PlanningTransaction:
        try:
            template = PlanningTransaction.model_validate(data)
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid planning transaction: {e}") from e
        if template.account_id and self._state.find_account(template.account_id) is None:
            raise LedgerValidationError(f"Unknown account: {template.account_id}")
        if template.to_account_id and self._state.find_account(template.to_account_id) is None:
            raise LedgerValidationError(f"Unknown account: {template.to_account_id}")
        for category_id in (template.category_id, template.to_category_id):
            if category_id and self._state.find_category(category_id) is None:
                raise LedgerValidationError(f"Unknown category: {category_id}")
        self._check_bookable(template)
        return template

    @staticmethod
    def _check_bookable(template: PlanningTransaction) -> None:
        """Reject templates whose occurrences could never be booked."""
        if template.amount == 0:
            raise LedgerValidationError("Planned amount must not be zero")
        if template.transaction_type == TransactionType.CATEGORYTRANSFER:
            if not (template.category_id and template.to_category_id):
                raise LedgerValidationError("Category transfers need a source and a destination category")
        elif template.transaction_type == TransactionType.TRANSFER or template.to_account_id:
            if not (template.account_id and template.to_account_id):
                raise LedgerValidationError("Account transfers need a source and a destination account")
        else:
            if not template.account_id:
                raise LedgerValidationError("Planned transaction needs an account")
            if not template.category_id:
                raise LedgerValidationError("Planned transaction needs a category")

    def add_planning_transaction(self, data: dict[str, Any]) -> PlanningTransaction:
        """
        Register a template.

        An account transfer template gets a counter template on the
        destination account, linked both ways.
        """
        template = self._validate(data)
        if self._state.find_planning(template.id):
            raise LedgerValidationError(f"Planning transaction already exists: {template.id}")

        is_transfer = template.transaction_type == TransactionType.TRANSFER and template.to_account_id
        if is_transfer and template.account_id == template.to_account_id:
            raise LedgerValidationError("Source and destination account must differ")
        self._state.planning_transactions.append(template)

        if is_transfer and template.counter_planning_transaction_id is None:
            counter = template.model_copy(update={
                "id": new_id(),
                "account_id": template.to_account_id,
                "to_account_id": template.account_id,
                "amount": -template.amount,
                "counter_planning_transaction_id": template.id,
                "tag_ids": list(template.tag_ids),
            })
            template.counter_planning_transaction_id = counter.id
            self._state.planning_transactions.append(counter)
        return template

    def update_planning_transaction(self, planning_id: str, changes: dict[str, Any]) -> bool:
        template = self._state.find_planning(planning_id)
        if template is None:
            return False
        changes = {k: v for k, v in changes.items() if k != "id"}
        updated = self._validate({**template.model_dump(), **changes})
        index = self._state.planning_transactions.index(template)
        self._state.planning_transactions[index] = updated

        counter = self._state.find_planning(updated.counter_planning_transaction_id)
        if counter is not None:
            self._sync_counter(updated, counter)
            if "amount" in changes:
                counter.amount = -updated.amount
        return True

    def delete_planning_transaction(self, planning_id: str) -> bool:
        """Removes the template and its counter template."""
        template = self._state.find_planning(planning_id)
        if template is None:
            return False
        counter = self._state.find_planning(template.counter_planning_transaction_id)
        for item in (template, counter):
            if item is not None:
                self._state.planning_transactions.remove(item)
        return True

    @staticmethod
    def _sync_counter(template: PlanningTransaction, counter: PlanningTransaction) -> None:
        for field in SCHEDULE_FIELDS:
            setattr(counter, field, getattr(template, field))

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _materialize(self, template: PlanningTransaction, occurrence: date) -> list[Transaction]:
        """Create the bookings of one occurrence. Forecast-only creates none."""
        if template.forecast_only:
            return []
        self._check_bookable(template)

        transfers = self._ledger.transfers
        amount = abs(template.amount)

        if template.transaction_type == TransactionType.CATEGORYTRANSFER:
            result = transfers.add_category_transfer(
                template.category_id, template.to_category_id, amount, occurrence, template.note
            )
            return [result.outgoing, result.incoming]

        if template.transaction_type == TransactionType.TRANSFER or template.to_account_id:
            # The template's own account pays when the amount is negative
            if template.amount < 0:
                source, target = template.account_id, template.to_account_id
            else:
                source, target = template.to_account_id, template.account_id
            result = transfers.add_account_transfer(
                source, target, amount, occurrence,
                note=template.note,
                planning_transaction_id=template.id,
            )
            return [result.outgoing, result.incoming]

        tx = self._ledger.transactions.add_transaction({
            "type": TransactionType.EXPENSE if template.amount < 0 else TransactionType.INCOME,
            "account_id": template.account_id,
            "category_id": template.category_id,
            "date": occurrence,
            "amount": template.amount,
            "payee": template.payee or template.name,
            "note": template.note,
            "tag_ids": list(template.tag_ids),
            "recipient_id": template.recipient_id,
            "planning_transaction_id": template.id,
        })
        return [tx]

    def _apply_rules(self, rows: list[Transaction]) -> None:
        """Run every rule stage on freshly created rows and write back rewrites."""
        engine = self._ledger.rule_engine
        store = self._ledger.transactions
        for row in rows:
            if row.type == TransactionType.CATEGORYTRANSFER:
                continue
            rewritten = row
            for stage in (RuleStage.PRE, RuleStage.DEFAULT, RuleStage.POST):
                rewritten = engine.apply_rules_to_transaction(rewritten, stage)
            changes = {
                field: getattr(rewritten, field)
                for field in ("category_id", "tag_ids", "note")
                if getattr(rewritten, field) != getattr(row, field)
            }
            if changes:
                store.update_transaction(row.id, changes)
                self._events.log_simple(
                    LedgerEventType.RULES_APPLIED, "Automation rules rewrote a booking",
                    transaction_id=row.id, changed_fields=sorted(changes),
                )

    def _execute_occurrence(self, template: PlanningTransaction, occurrence: date) -> None:
        created = self._materialize(template, occurrence)
        self._apply_rules(created)
        self._events.log_planning_executed(
            template.id, occurrence.isoformat(), [t.id for t in created]
        )

    def _advance(self, template: PlanningTransaction, upcoming: Optional[Step]) -> None:
        """
        Move a template (and its counter) to `upcoming`, or remove both
        when the walk is exhausted.
        """
        counter = self._state.find_planning(template.counter_planning_transaction_id)
        if upcoming is None:
            for item in (template, counter):
                if item is not None and item in self._state.planning_transactions:
                    self._state.planning_transactions.remove(item)
            self._events.log_planning_advanced(template.id, None)
            return

        if template.recurrence_pattern in MONTH_STEPS and template.execution_day is None:
            # Keep the month-end anchor once start_date moves to a shorter month
            template.execution_day = template.start_date.day
        if template.recurrence_end_type == RecurrenceEndType.COUNT:
            template.recurrence_count = (template.recurrence_count or 0) - upcoming.index
        template.start_date = upcoming.raw
        if counter is not None:
            self._sync_counter(template, counter)
        self._events.log_planning_advanced(template.id, upcoming.adjusted.isoformat())

    def execute_planning_transaction(self, planning_id: str, execution_date: DateLike) -> bool:
        """
        Materialize one occurrence of a template now and advance it past
        that occurrence. False if the template does not exist.
        """
        template = self._state.find_planning(planning_id)
        if template is None:
            return False
        execution_date = to_date(execution_date)
        self._execute_occurrence(template, execution_date)

        first = apply_weekend_handling(template.start_date, template.weekend_handling)
        upcoming = next_step(template, max(execution_date, first), self._max_iterations)
        self._advance(template, upcoming)
        return True

    def execute_all_due(self, today: Optional[DateLike] = None) -> int:
        """
        Materialize every occurrence up to and including today.

        Returns the number of occurrences processed (forecast-only ones
        included). Running it twice for the same day creates nothing new.
        """
        today = to_date(today) if today else self._ledger.clock.today()
        handled: set[str] = set()
        processed = 0

        for template in list(self._state.planning_transactions):
            if template.id in handled or not template.is_active:
                continue
            handled.add(template.id)
            if template.counter_planning_transaction_id:
                handled.add(template.counter_planning_transaction_id)
            if apply_weekend_handling(template.start_date, template.weekend_handling) > today:
                continue

            walk = DateWalk(template, self._max_iterations)
            due: list[Step] = []
            upcoming: Optional[Step] = None
            for step in walk:
                if step.adjusted > today:
                    upcoming = step
                    break
                due.append(step)
            if walk.capped:
                self._events.log_recurrence_cap(template.id, self._max_iterations)
                # Resume after the last processed step on the next run
                index = due[-1].index + 1
                raw = step_date(template, index)
                upcoming = Step(index, raw, apply_weekend_handling(raw, template.weekend_handling))

            for step in due:
                self._execute_occurrence(template, step.adjusted)
                processed += 1
            if due or upcoming is None:
                self._advance(template, upcoming)

        return processed
