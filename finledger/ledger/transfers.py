"""
Transfer Engine

Creates paired bookings as one unit:

    leg A: outgoing, negative amount
    leg B: incoming, positive amount, same date and note
    A.counter_transaction_id == B.id and B.counter_transaction_id == A.id

If leg B cannot be written, leg A is discarded again (compensating
rollback) so the caller never observes half a pair.

Income allocation also lives here: positive INCOME booked on a category
is moved on to "Available Funds" by a category transfer. Every later
correction is a new pair; existing allocation rows are never edited.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from finledger.dates import DateLike, to_date
from finledger.ledger.errors import LedgerError, LedgerValidationError, PairedWriteError
from finledger.models import Transaction, TransactionType, TransferResult

if TYPE_CHECKING:
    from finledger.ledger.context import Ledger


def _to_amount(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except ArithmeticError as e:
        raise LedgerValidationError(f"Invalid amount: {value!r}") from e


class TransferEngine:

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger
        self._state = ledger.state
        self._events = ledger.events

    # =========================================================================
    # PAIRED WRITE
    # =========================================================================

    def _book_pair(self, outgoing: dict[str, Any], incoming: dict[str, Any]) -> TransferResult:
        store = self._ledger.transactions
        first = store.add_transaction(outgoing, allocate_income=False)
        try:
            second = store.add_transaction(incoming, allocate_income=False)
        except Exception as e:
            store.discard(first.id)
            self._events.log_rollback(first.id, e)
            if isinstance(e, LedgerError):
                raise
            raise PairedWriteError(f"Paired write failed, nothing was booked: {e}") from e

        first.counter_transaction_id = second.id
        second.counter_transaction_id = first.id
        return TransferResult(outgoing=first, incoming=second)

    # =========================================================================
    # ACCOUNT TRANSFERS
    # =========================================================================

    def add_account_transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: Any,
        date: DateLike,
        value_date: Optional[DateLike] = None,
        note: str = "",
        planning_transaction_id: Optional[str] = None,
    ) -> TransferResult:
        """Move money between two accounts. Payees name the other account."""
        amount = abs(_to_amount(amount))
        if from_account_id == to_account_id:
            raise LedgerValidationError("Source and destination account must differ")
        if amount == 0:
            raise LedgerValidationError("Transfer amount must not be zero")
        source = self._state.find_account(from_account_id)
        target = self._state.find_account(to_account_id)
        if source is None or target is None:
            raise LedgerValidationError(
                f"Unknown account: {from_account_id if source is None else to_account_id}"
            )

        booking_date = to_date(date)
        leg = {
            "type": TransactionType.TRANSFER,
            "date": booking_date,
            "value_date": to_date(value_date) if value_date else booking_date,
            "category_id": None,
            "note": note,
            "planning_transaction_id": planning_transaction_id,
        }
        result = self._book_pair(
            {
                **leg,
                "account_id": source.id,
                "to_account_id": target.id,
                "amount": -amount,
                "payee": f"Transfer to {target.name}",
            },
            {
                **leg,
                "account_id": target.id,
                "to_account_id": source.id,
                "amount": amount,
                "payee": f"Transfer from {source.name}",
            },
        )
        self._events.log_transfer_created(result.outgoing.id, result.incoming.id, amount, "account")
        return result

    # =========================================================================
    # CATEGORY TRANSFERS
    # =========================================================================

    def _category_legs(
        self,
        from_category_id: str,
        to_category_id: str,
        amount: Decimal,
        date: DateLike,
        note: str,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        if amount == 0:
            raise LedgerValidationError("Category transfer amount must not be zero")
        if from_category_id == to_category_id:
            raise LedgerValidationError("Source and destination category must differ")
        source = self._state.find_category(from_category_id)
        target = self._state.find_category(to_category_id)
        if source is None or target is None:
            raise LedgerValidationError(
                f"Unknown category: {from_category_id if source is None else to_category_id}"
            )
        booking_date = to_date(date)
        leg = {
            "type": TransactionType.CATEGORYTRANSFER,
            "account_id": "",
            "date": booking_date,
            "value_date": booking_date,
            "note": note,
        }
        return (
            {
                **leg,
                "category_id": source.id,
                "to_category_id": target.id,
                "amount": -amount,
                "payee": f"Category transfer to {target.name}",
            },
            {
                **leg,
                "category_id": target.id,
                "to_category_id": source.id,
                "amount": amount,
                "payee": f"Category transfer from {source.name}",
            },
        )

    def add_category_transfer(
        self,
        from_category_id: str,
        to_category_id: str,
        amount: Any,
        date: DateLike,
        note: str = "",
    ) -> TransferResult:
        """Move envelope money between categories. No account is involved."""
        amount = abs(_to_amount(amount))
        outgoing, incoming = self._category_legs(from_category_id, to_category_id, amount, date, note)
        result = self._book_pair(outgoing, incoming)
        self._events.log_transfer_created(result.outgoing.id, result.incoming.id, amount, "category")
        return result

    def update_category_transfer(
        self,
        transaction_id: str,
        counter_transaction_id: str,
        from_category_id: str,
        to_category_id: str,
        amount: Any,
        date: DateLike,
        note: str = "",
    ) -> bool:
        """Rewrite both legs of an existing category transfer."""
        outgoing = self._state.find_transaction(transaction_id)
        incoming = self._state.find_transaction(counter_transaction_id)
        if outgoing is None or incoming is None:
            return False
        if outgoing.counter_transaction_id != incoming.id or incoming.counter_transaction_id != outgoing.id:
            raise LedgerValidationError("Transactions are not two legs of one transfer")

        amount = abs(_to_amount(amount))
        out_changes, in_changes = self._category_legs(
            from_category_id, to_category_id, amount, date, note
        )
        store = self._ledger.transactions
        store.update_transaction(outgoing.id, out_changes, mirror=False)
        store.update_transaction(incoming.id, in_changes, mirror=False)
        return True

    # =========================================================================
    # INCOME ALLOCATION
    # =========================================================================

    def needs_income_allocation(self, tx: Transaction) -> bool:
        """Positive INCOME on any category other than Available Funds."""
        return (
            tx.type == TransactionType.INCOME
            and tx.amount > 0
            and bool(tx.category_id)
            and not self._ledger.categories.is_available_funds(tx.category_id)
        )

    def needs_income_reallocation(self, old: Transaction, new: Transaction) -> bool:
        old_relevant = self.needs_income_allocation(old)
        new_relevant = self.needs_income_allocation(new)
        if not (old_relevant or new_relevant):
            return False
        return (
            old_relevant != new_relevant
            or old.amount != new.amount
            or old.category_id != new.category_id
            or (old.date.year, old.date.month) != (new.date.year, new.date.month)
        )

    def _income_legs(
        self, tx: Transaction, amount: Decimal, to_available: bool
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        available = self._ledger.categories.require_available_funds_category()
        if to_available:
            source, target = tx.category_id, available.id
        else:
            source, target = available.id, tx.category_id
        return self._category_legs(source, target, amount, tx.date, "Income allocation")

    def _move_income(
        self,
        tx: Transaction,
        amount: Decimal,
        to_available: bool,
        reason: str,
        legs: Optional[tuple[dict[str, Any], dict[str, Any]]] = None,
    ) -> TransferResult:
        outgoing, incoming = legs or self._income_legs(tx, amount, to_available)
        result = self._book_pair(outgoing, incoming)
        self._events.log_income_allocated(tx.id, tx.category_id, amount if to_available else -amount, reason)
        return result

    def allocate_income(self, tx: Transaction) -> TransferResult:
        """Move the full income amount to Available Funds."""
        return self._move_income(tx, tx.amount, True, "booked")

    def income_reversal_legs(self, tx: Transaction) -> tuple[dict[str, Any], dict[str, Any]]:
        """Validated legs of the pair that would reverse `tx`'s allocation."""
        return self._income_legs(tx, tx.amount, False)

    def reverse_income_allocation(
        self,
        tx: Transaction,
        legs: Optional[tuple[dict[str, Any], dict[str, Any]]] = None,
    ) -> TransferResult:
        """Move a deleted income's amount back out of Available Funds."""
        return self._move_income(tx, tx.amount, False, "reversed", legs)

    def reallocate_income(self, old: Transaction, new: Transaction) -> None:
        """
        Book compensating pairs after an income row changed.

        Category or month changes reverse the old allocation at the old
        date and book a fresh one at the new date. Otherwise only the
        amount delta moves.
        """
        old_relevant = self.needs_income_allocation(old)
        new_relevant = self.needs_income_allocation(new)
        moved = (
            old.category_id != new.category_id
            or (old.date.year, old.date.month) != (new.date.year, new.date.month)
        )
        if moved:
            if old_relevant:
                self.reverse_income_allocation(old)
            if new_relevant:
                self.allocate_income(new)
            return

        delta = (new.amount if new_relevant else 0) - (old.amount if old_relevant else 0)
        if delta > 0:
            self._move_income(new, delta, True, "increased")
        elif delta < 0:
            self._move_income(new, -delta, False, "decreased")

    # =========================================================================
    # RECONCILIATION BOOKING
    # =========================================================================

    def add_reconcile_transaction(
        self,
        account_id: str,
        amount: Any,
        date: DateLike,
        note: str = "",
    ) -> Optional[Transaction]:
        """
        Single-leg correction booking. Skipped entirely for a zero amount.

        Uses the configured reconciliation category when it exists.
        """
        amount = _to_amount(amount)
        if amount == 0:
            return None
        name = self._ledger.settings.reconciliation_category_name
        category = next((c for c in self._state.categories if c.name == name), None)
        return self._ledger.transactions.add_transaction({
            "type": TransactionType.RECONCILE,
            "account_id": account_id,
            "category_id": category.id if category else None,
            "date": date,
            "amount": amount,
            "payee": "Reconciliation",
            "note": note or "Balance adjustment",
            "is_reconciliation": True,
            "reconciled": True,
        })
