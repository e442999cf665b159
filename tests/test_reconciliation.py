"""Tests for the reconciliation workflow."""

import pytest
from datetime import date
from decimal import Decimal

from finledger.ledger import LedgerValidationError
from finledger.models import TransactionType


class TestReconcileAccount:
    """Tests for reconcile_account."""

    def test_books_difference(self, ledger, checking, expense):
        """Test that the gap to the bank balance is booked and rows marked."""
        row = expense(-50, "2024-01-05")
        booking = ledger.reconcile_account(checking.id, "-40", "2024-01-10")

        assert booking.type == TransactionType.RECONCILE
        assert booking.amount == Decimal("10")
        assert booking.is_reconciliation is True
        assert ledger.get_transaction(row.id).reconciled is True

        account = ledger.get_account(checking.id)
        assert account.balance == Decimal("-40")
        assert account.reconciliation.date == date(2024, 1, 10)
        assert account.reconciliation.balance == Decimal("-40")

    def test_in_balance_books_nothing(self, ledger, checking, expense):
        """Test that a matching bank balance only marks rows."""
        row = expense(-50, "2024-01-05")
        assert ledger.reconcile_account(checking.id, -50, "2024-01-10") is None
        assert len(ledger.state.transactions) == 1
        assert ledger.get_transaction(row.id).reconciled is True

    def test_later_rows_untouched(self, ledger, checking, expense):
        """Test that rows after the statement date stay unreconciled."""
        later = expense(-5, "2024-01-12")
        ledger.reconcile_account(checking.id, 0, "2024-01-10")
        assert ledger.get_transaction(later.id).reconciled is False

    def test_uses_reconciliation_category(self, ledger, checking, settings):
        """Test that the configured category is used without moving its envelope."""
        category = ledger.add_category({"name": settings.reconciliation_category_name})
        booking = ledger.reconcile_account(checking.id, "25", "2024-01-10")
        assert booking.category_id == category.id
        assert ledger.get_category(category.id).balance == Decimal("0")

    def test_invalid_balance_rejected(self, ledger, checking):
        """Test that the bank balance must be a number."""
        with pytest.raises(LedgerValidationError, match="Invalid bank balance"):
            ledger.reconcile_account(checking.id, "lots", "2024-01-10")

    def test_unknown_account_rejected(self, ledger):
        """Test that reconciliation needs a known account."""
        with pytest.raises(LedgerValidationError, match="Unknown account"):
            ledger.reconcile_account("missing", 0, "2024-01-10")


class TestReconciledFlag:
    """Tests for marking rows reconciled."""

    def test_toggle_mirrors_onto_counterpart(self, ledger, checking, savings):
        """Test that both transfer legs share the flag."""
        result = ledger.add_account_transfer(checking.id, savings.id, 10, "2024-01-05")
        assert ledger.toggle_transaction_reconciled(result.outgoing.id) is True
        assert ledger.get_transaction(result.incoming.id).reconciled is True
        ledger.toggle_transaction_reconciled(result.outgoing.id)
        assert ledger.get_transaction(result.incoming.id).reconciled is False

    def test_reconcile_all_until(self, ledger, checking, expense):
        """Test the count of newly marked rows."""
        expense(-1, "2024-01-02")
        expense(-2, "2024-01-03")
        expense(-3, "2024-01-20")
        assert ledger.reconcile_all_transactions_until(checking.id, "2024-01-10") == 2
        assert ledger.reconcile_all_transactions_until(checking.id, "2024-01-10") == 0

    def test_toggle_unknown(self, ledger):
        """Test that unknown ids report False."""
        assert ledger.toggle_transaction_reconciled("missing") is False
