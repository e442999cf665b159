"""
Monthly Balance Aggregator

Builds the derived monthly snapshots and answers balance-at-date and
projection queries.

DESIGN DECISION: Snapshots are never authoritative. `recompute()` rebuilds
both sets from the transaction list after every mutation and replaces
the previous sets entirely.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from itertools import accumulate
from typing import TYPE_CHECKING, Optional

from finledger.dates import DateLike, to_date
from finledger.ledger.errors import LedgerValidationError
from finledger.models import (
    CategoryMonthlyBalance,
    LedgerEventType,
    LedgerSeverity,
    MonthlyBalance,
    PlanningTransaction,
    Transaction,
    TransactionType,
)

if TYPE_CHECKING:
    from finledger.ledger.context import Ledger


def affects_category(tx: Transaction, category_id: str) -> bool:
    """Rows that move a category's envelope: anything booked on it."""
    return tx.category_id == category_id


class BalanceAggregator:

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger
        self._state = ledger.state
        self._events = ledger.events

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def recompute(self) -> None:
        self._state.monthly_balances = self._account_snapshots()
        self._state.category_monthly_balances = self._category_snapshots()
        self._events.log_simple(
            LedgerEventType.BALANCES_RECOMPUTED, "Monthly snapshots rebuilt", LedgerSeverity.DEBUG,
            accounts=len(self._state.monthly_balances),
            categories=len(self._state.category_monthly_balances),
        )

    def _account_snapshots(self) -> list[MonthlyBalance]:
        closing: dict[tuple[str, int, int], Decimal] = {}
        rows = sorted(
            (t for t in self._state.transactions if t.account_id),
            key=lambda t: t.date,
        )
        # Last row of each (account, month) in date order wins
        for tx in rows:
            closing[(tx.account_id, tx.date.year, tx.date.month)] = tx.running_balance
        return [
            MonthlyBalance(account_id=account_id, year=year, month=month, balance=balance)
            for (account_id, year, month), balance in sorted(closing.items())
        ]

    def _category_snapshots(self) -> list[CategoryMonthlyBalance]:
        per_month: dict[str, dict[tuple[int, int], Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        for tx in self._state.transactions:
            if tx.category_id:
                per_month[tx.category_id][(tx.value_date.year, tx.value_date.month)] += tx.amount

        snapshots = []
        for category_id in sorted(per_month):
            months = sorted(per_month[category_id])
            totals = accumulate(per_month[category_id][m] for m in months)
            for (year, month), balance in zip(months, totals):
                snapshots.append(CategoryMonthlyBalance(
                    category_id=category_id, year=year, month=month, balance=balance,
                ))
        return snapshots

    def get_monthly_balance(self, account_id: str, year: int, month: int) -> Optional[MonthlyBalance]:
        return next(
            (
                mb for mb in self._state.monthly_balances
                if mb.account_id == account_id and mb.year == year and mb.month == month
            ),
            None,
        )

    def latest_category_snapshot_before(self, category_id: str, day: date) -> Optional[CategoryMonthlyBalance]:
        """Most recent category snapshot whose month ends before `day`."""
        candidates = [
            s for s in self._state.category_monthly_balances
            if s.category_id == category_id and s.month_end < day
        ]
        return max(candidates, key=lambda s: (s.year, s.month), default=None)

    # =========================================================================
    # BALANCE AT DATE
    # =========================================================================

    def account_balance_for_date(self, account_id: str, on_date: DateLike) -> Decimal:
        """Running balance of the last row booked on or before the date."""
        on_date = to_date(on_date)
        rows = sorted(
            (t for t in self._state.transactions if t.account_id == account_id and t.date <= on_date),
            key=lambda t: t.date,
        )
        return rows[-1].running_balance if rows else Decimal("0")

    def category_balance_for_date(self, category_id: str, on_date: DateLike) -> Decimal:
        """Envelope balance by value date."""
        on_date = to_date(on_date)
        return sum(
            (
                t.amount for t in self._state.transactions
                if affects_category(t, category_id) and t.value_date <= on_date
            ),
            Decimal("0"),
        )

    # =========================================================================
    # PROJECTIONS
    # =========================================================================

    def _planned_account_amount(self, template: PlanningTransaction, account_id: str) -> Decimal:
        """Signed effect of one occurrence of a template on an account."""
        if template.transaction_type == TransactionType.CATEGORYTRANSFER:
            return Decimal("0")
        if template.account_id == account_id:
            return template.amount
        if template.to_account_id == account_id and template.counter_planning_transaction_id is None:
            return -template.amount
        return Decimal("0")

    def _planned_category_amount(self, template: PlanningTransaction, category_id: str) -> Decimal:
        if template.transaction_type == TransactionType.CATEGORYTRANSFER:
            if template.category_id == category_id:
                return -abs(template.amount)
            if template.to_category_id == category_id:
                return abs(template.amount)
            return Decimal("0")
        if template.transaction_type == TransactionType.TRANSFER or template.to_account_id:
            return Decimal("0")
        return template.amount if template.category_id == category_id else Decimal("0")

    def projected_account_balance(
        self,
        account_id: str,
        on_date: DateLike,
        today: Optional[DateLike] = None,
    ) -> Decimal:
        """
        Current balance plus every active template occurrence (forecast-only
        ones included) from tomorrow through `on_date`. Past dates return
        the historical balance.
        """
        account = self._state.find_account(account_id)
        if account is None:
            raise LedgerValidationError(f"Unknown account: {account_id}")
        on_date = to_date(on_date)
        today = to_date(today) if today else self._ledger.clock.today()
        if on_date <= today:
            return self.account_balance_for_date(account_id, on_date)

        tomorrow = today + timedelta(days=1)
        recurrence = self._ledger.recurrence
        projected = account.balance
        for template in self._state.planning_transactions:
            amount = self._planned_account_amount(template, account_id)
            if amount:
                projected += amount * len(recurrence.occurrences(template, tomorrow, on_date))
        return projected

    def projected_category_balance(
        self,
        category_id: str,
        on_date: DateLike,
        today: Optional[DateLike] = None,
    ) -> Decimal:
        """Envelope balance today plus planned category movements until `on_date`."""
        if self._state.find_category(category_id) is None:
            raise LedgerValidationError(f"Unknown category: {category_id}")
        on_date = to_date(on_date)
        today = to_date(today) if today else self._ledger.clock.today()
        if on_date <= today:
            return self.category_balance_for_date(category_id, on_date)

        tomorrow = today + timedelta(days=1)
        recurrence = self._ledger.recurrence
        projected = self.category_balance_for_date(category_id, today)
        for template in self._state.planning_transactions:
            amount = self._planned_category_amount(template, category_id)
            if amount:
                projected += amount * len(recurrence.occurrences(template, tomorrow, on_date))
        return projected
