"""
Reconciliation workflow: compare an account with the bank's statement,
book the difference and mark everything up to the statement date as
reconciled.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from finledger.dates import DateLike, to_date
from finledger.ledger.errors import LedgerValidationError
from finledger.models import ReconciliationSnapshot, Transaction

if TYPE_CHECKING:
    from finledger.ledger.context import Ledger


class Reconciler:

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger
        self._state = ledger.state

    def balance_at(self, account_id: str, on_date: DateLike) -> Decimal:
        """
        Running balance of the latest row (by value date) on or before the
        date; the cached account balance when there is none.
        """
        account = self._state.find_account(account_id)
        if account is None:
            raise LedgerValidationError(f"Unknown account: {account_id}")
        rows = self._ledger.transactions.rows_until(account_id, to_date(on_date))
        if not rows:
            return account.balance
        latest = sorted(rows, key=lambda t: (t.value_date, t.date))[-1]
        return latest.running_balance

    def reconcile_account(
        self,
        account_id: str,
        bank_balance: Any,
        on_date: DateLike,
        note: str = "",
    ) -> Optional[Transaction]:
        """
        Book bank balance minus ledger balance, remember the statement on
        the account and mark rows up to the date reconciled.

        Returns the correction booking, or None when already in balance.
        """
        on_date = to_date(on_date)
        try:
            bank_balance = Decimal(str(bank_balance))
        except ArithmeticError as e:
            raise LedgerValidationError(f"Invalid bank balance: {bank_balance!r}") from e
        delta = bank_balance - self.balance_at(account_id, on_date)

        booking = self._ledger.transfers.add_reconcile_transaction(account_id, delta, on_date, note)
        account = self._state.find_account(account_id)
        account.reconciliation = ReconciliationSnapshot(date=on_date, balance=bank_balance)
        marked = self.reconcile_all_transactions_until(account_id, on_date)

        self._ledger.events.log_reconciled(account_id, bank_balance, delta, marked)
        return booking

    def reconcile_all_transactions_until(self, account_id: str, on_date: DateLike) -> int:
        """Mark every row up to the date reconciled. Returns how many changed."""
        rows = self._ledger.transactions.rows_until(account_id, to_date(on_date))
        return self._ledger.transactions.mark_reconciled(rows, True)

    def toggle_transaction_reconciled(self, transaction_id: str) -> bool:
        tx = self._state.find_transaction(transaction_id)
        if tx is None:
            return False
        return self._ledger.transactions.update_transaction(
            transaction_id, {"reconciled": not tx.reconciled}
        )
