"""
Ledger Store

Owns the transaction set. Every write recomputes the running balances of
each touched account and keeps category envelopes in step:

    running_balance(tx) = running_balance(previous tx on account) + tx.amount
    account.balance     = running_balance(last tx on account), 0 without any

DESIGN DECISION: Recompute always resorts the whole account. A date or
amount change can reorder or shift every later balance, and a personal
ledger is small enough that the full prefix sum is the simple, safe path.

The account's starting balance is NOT folded into the recompute; it only
seeds the cached balance when the account is created.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from pydantic import ValidationError

from finledger.dates import DateLike, to_date
from finledger.ledger.errors import LedgerValidationError
from finledger.models import ACCOUNT_BOUND_TYPES, Transaction, TransactionType

if TYPE_CHECKING:
    from finledger.ledger.context import Ledger


# Only set by the transfer engine when it links the two legs of a pair
PAIRING_FIELDS = frozenset({"counter_transaction_id"})

# Never taken from caller input on update
PROTECTED_FIELDS = frozenset({"id", "running_balance"}) | PAIRING_FIELDS

# Edits to one leg that are mirrored onto its counterpart
MIRRORED_FIELDS = ("amount", "date", "value_date", "reconciled")


class TransactionStore:

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger
        self._state = ledger.state
        self._events = ledger.events

    # =========================================================================
    # QUERIES (all newest first)
    # =========================================================================

    @staticmethod
    def _newest_first(rows: Iterable[Transaction]) -> list[Transaction]:
        return sorted(rows, key=lambda t: t.date, reverse=True)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._state.find_transaction(transaction_id)

    def get_transactions_by_account(self, account_id: str) -> list[Transaction]:
        return self._newest_first(t for t in self._state.transactions if t.account_id == account_id)

    def get_transactions_by_category(self, category_id: str) -> list[Transaction]:
        return self._newest_first(t for t in self._state.transactions if t.category_id == category_id)

    def get_transactions_by_date_range(self, start: DateLike, end: DateLike) -> list[Transaction]:
        """Rows whose value date lies in [start, end]."""
        start, end = to_date(start), to_date(end)
        return self._newest_first(
            t for t in self._state.transactions if start <= t.value_date <= end
        )

    def get_recent_transactions(self, limit: int = 10) -> list[Transaction]:
        return self._newest_first(self._state.transactions)[:limit]

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def _build(self, data: Union[Transaction, dict[str, Any]], keep_pairing: bool = True) -> Transaction:
        if isinstance(data, Transaction):
            data = data.model_dump()
        dropped = {"running_balance"} if keep_pairing else {"running_balance"} | PAIRING_FIELDS
        data = {k: v for k, v in data.items() if k not in dropped}
        try:
            return Transaction.model_validate(data)
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid transaction: {e}") from e

    def _check_references(self, tx: Transaction) -> None:
        if tx.type in ACCOUNT_BOUND_TYPES and not tx.account_id:
            raise LedgerValidationError(f"{tx.type.value} transactions require an account_id")
        if tx.account_id and self._state.find_account(tx.account_id) is None:
            raise LedgerValidationError(f"Unknown account: {tx.account_id}")
        if tx.type == TransactionType.CATEGORYTRANSFER and not tx.category_id:
            raise LedgerValidationError("Category transfers require a category_id")
        if tx.category_id and self._state.find_category(tx.category_id) is None:
            raise LedgerValidationError(f"Unknown category: {tx.category_id}")

    # =========================================================================
    # BALANCES
    # =========================================================================

    def recompute_account(self, account_id: str) -> Decimal:
        """Full resort and prefix sum. Ties keep insertion order."""
        rows = sorted(
            (t for t in self._state.transactions if t.account_id == account_id),
            key=lambda t: t.date,
        )
        running = Decimal("0")
        for tx in rows:
            running += tx.amount
            tx.running_balance = running

        account = self._state.find_account(account_id)
        if account is not None:
            account.balance = running
        return running

    def _recompute_accounts(self, *account_ids: str) -> None:
        for account_id in dict.fromkeys(a for a in account_ids if a):
            self.recompute_account(account_id)

    def _book_category(self, tx: Transaction) -> None:
        if tx.category_id and not tx.is_reconciliation:
            self._ledger.categories.update_category_balance(tx.category_id, tx.amount)

    def _unbook_category(self, tx: Transaction) -> None:
        if tx.category_id and not tx.is_reconciliation:
            self._ledger.categories.release_category_balance(tx.category_id, tx.amount)

    # =========================================================================
    # WRITES
    # =========================================================================

    def add_transaction(
        self,
        data: Union[Transaction, dict[str, Any]],
        allocate_income: bool = True,
    ) -> Transaction:
        """
        Book one row.

        Positive INCOME on a category is moved on to Available Funds by a
        category transfer pair. If that allocation fails the row is
        discarded again and the error propagates.
        """
        tx = self._build(data, keep_pairing=False)
        if self._state.find_transaction(tx.id):
            raise LedgerValidationError(f"Transaction already exists: {tx.id}")
        self._check_references(tx)

        transfers = self._ledger.transfers
        allocate = allocate_income and transfers.needs_income_allocation(tx)
        if allocate:
            self._ledger.categories.require_available_funds_category()

        self._state.transactions.append(tx)
        self._recompute_accounts(tx.account_id)
        self._book_category(tx)
        self._events.log_transaction_added(tx.id, tx.type.value, tx.amount, tx.account_id)

        if allocate:
            try:
                transfers.allocate_income(tx)
            except Exception as e:
                self.discard(tx.id)
                self._events.log_rollback(tx.id, e)
                raise
        return tx

    def update_transaction(
        self,
        transaction_id: str,
        changes: dict[str, Any],
        mirror: bool = True,
    ) -> bool:
        """
        Merge `changes` into a row.

        Amount, date, value date and the reconciled flag are mirrored onto
        the counterpart of a paired row. Income allocations follow amount,
        category and month changes.
        """
        tx = self._state.find_transaction(transaction_id)
        if tx is None:
            return False

        changes = {
            k: v for k, v in changes.items()
            if k in Transaction.model_fields and k not in PROTECTED_FIELDS
        }
        # A value date that tracked the booking date keeps tracking it
        if "date" in changes and "value_date" not in changes and tx.value_date == tx.date:
            changes["value_date"] = changes["date"]

        updated = self._build({**tx.model_dump(), **changes, "id": tx.id})
        self._check_references(updated)

        transfers = self._ledger.transfers
        reallocate = transfers.needs_income_reallocation(tx, updated)
        if reallocate:
            self._ledger.categories.require_available_funds_category()

        changed = [f for f in changes if getattr(tx, f) != getattr(updated, f)]
        if not changed:
            return True

        if (
            tx.category_id != updated.category_id
            or tx.amount != updated.amount
            or tx.is_reconciliation != updated.is_reconciliation
        ):
            self._unbook_category(tx)
            self._book_category(updated)

        self._state.transactions[self._state.transactions.index(tx)] = updated
        self._recompute_accounts(tx.account_id, updated.account_id)
        self._events.log_transaction_updated(updated.id, changed)

        if mirror and updated.counter_transaction_id:
            self._mirror_onto_counterpart(updated, changed)
        if reallocate:
            transfers.reallocate_income(tx, updated)
        return True

    def _mirror_onto_counterpart(self, tx: Transaction, changed: list[str]) -> None:
        counterpart = self._state.find_transaction(tx.counter_transaction_id)
        if counterpart is None:
            return
        mirrored: dict[str, Any] = {}
        for field in MIRRORED_FIELDS:
            if field in changed:
                mirrored[field] = -tx.amount if field == "amount" else getattr(tx, field)
        if mirrored:
            self.update_transaction(counterpart.id, mirrored, mirror=False)

    def delete_transaction(self, transaction_id: str) -> bool:
        """
        Remove a row together with its counterpart.

        Deleting allocated income books a reversing allocation pair. The
        reversal is validated before anything is removed, and the rows are
        restored if booking it fails.
        """
        tx = self._state.find_transaction(transaction_id)
        if tx is None:
            return False

        transfers = self._ledger.transfers
        reversal = transfers.income_reversal_legs(tx) if transfers.needs_income_allocation(tx) else None

        counterpart = self._state.find_transaction(tx.counter_transaction_id)
        removed = [
            (self._state.transactions.index(row), row)
            for row in (tx, counterpart) if row is not None
        ]
        for _, row in removed:
            self._state.transactions.remove(row)
            self._unbook_category(row)
        touched = (tx.account_id, counterpart.account_id if counterpart else "")
        self._recompute_accounts(*touched)
        self._events.log_transaction_deleted(tx.id, tx.counter_transaction_id)

        if reversal is not None:
            try:
                transfers.reverse_income_allocation(tx, reversal)
            except Exception as e:
                for index, row in sorted(removed, key=lambda pair: pair[0]):
                    self._state.transactions.insert(index, row)
                    self._book_category(row)
                self._recompute_accounts(*touched)
                self._events.log_rollback(tx.id, e)
                raise
        return True

    def discard(self, transaction_id: str) -> bool:
        """
        Drop a single row without touching its counterpart or income
        allocation. Used to compensate a half-written pair.
        """
        tx = self._state.find_transaction(transaction_id)
        if tx is None:
            return False
        self._state.transactions.remove(tx)
        self._unbook_category(tx)
        self._recompute_accounts(tx.account_id)
        return True

    def mark_reconciled(self, rows: Iterable[Transaction], on: bool = True) -> int:
        """Set the reconciled flag on rows and their counterparts."""
        marked = 0
        for tx in list(rows):
            if tx.reconciled == on:
                continue
            tx.reconciled = on
            marked += 1
            counterpart = self._state.find_transaction(tx.counter_transaction_id)
            if counterpart is not None:
                counterpart.reconciled = on
        return marked

    def rows_until(self, account_id: str, on_date: date) -> list[Transaction]:
        """Rows of an account with a value date on or before `on_date`."""
        return [
            t for t in self._state.transactions
            if t.account_id == account_id and t.value_date <= on_date
        ]
