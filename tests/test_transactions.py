"""Tests for booking, updating and deleting transactions."""

import pytest
from datetime import date
from decimal import Decimal

from finledger.ledger import LedgerValidationError


class TestRunningBalances:
    """Tests for running balance recompute."""

    def test_date_order_not_insertion_order(self, ledger, checking):
        """Test that running balances follow the booking date."""
        a = ledger.add_transaction({
            "type": "EXPENSE", "account_id": checking.id, "date": "2024-01-05", "amount": -50,
        })
        b = ledger.add_transaction({
            "type": "INCOME", "account_id": checking.id, "date": "2024-01-03", "amount": 100,
        })
        assert ledger.get_transaction(b.id).running_balance == Decimal("100")
        assert ledger.get_transaction(a.id).running_balance == Decimal("50")
        assert ledger.get_account(checking.id).balance == Decimal("50")

    def test_starting_balance_is_not_folded_in(self, ledger):
        """Test that starting balance only seeds the cached balance."""
        group = ledger.state.account_groups[0]
        account = ledger.add_account({
            "name": "Wallet", "account_group_id": group.id, "starting_balance": "500",
        })
        assert ledger.get_account(account.id).balance == Decimal("500")

        tx = ledger.add_transaction({
            "type": "EXPENSE", "account_id": account.id, "date": "2024-01-05", "amount": -20,
        })
        assert ledger.get_account(account.id).balance == Decimal("-20")

        ledger.delete_transaction(tx.id)
        assert ledger.get_account(account.id).balance == Decimal("0")

    def test_update_amount_shifts_later_rows(self, ledger, expense, checking):
        """Test that an amount change ripples through later rows."""
        first = expense(-10, "2024-01-02")
        second = expense(-20, "2024-01-04")
        ledger.update_transaction(first.id, {"amount": -15})
        assert ledger.get_transaction(second.id).running_balance == Decimal("-35")
        assert ledger.get_account(checking.id).balance == Decimal("-35")

    def test_update_date_reorders(self, ledger, expense):
        """Test that a date change reorders the prefix sum."""
        first = expense(-10, "2024-01-02")
        second = expense(-20, "2024-01-04")
        ledger.update_transaction(first.id, {"date": "2024-01-06"})
        assert ledger.get_transaction(second.id).running_balance == Decimal("-20")
        assert ledger.get_transaction(first.id).running_balance == Decimal("-30")

    def test_moving_row_between_accounts(self, ledger, expense, checking, savings):
        """Test that both accounts are recomputed when a row moves."""
        tx = expense(-10, "2024-01-02")
        ledger.update_transaction(tx.id, {"account_id": savings.id})
        assert ledger.get_account(checking.id).balance == Decimal("0")
        assert ledger.get_account(savings.id).balance == Decimal("-10")


class TestTransactionWrites:
    """Tests for add/update/delete semantics."""

    def test_value_date_follows_date(self, ledger, expense):
        """Test that a tracking value date moves with the booking date."""
        tx = expense(-10, "2024-01-02")
        ledger.update_transaction(tx.id, {"date": "2024-01-09"})
        assert ledger.get_transaction(tx.id).value_date == date(2024, 1, 9)

    def test_explicit_value_date_kept(self, ledger, expense):
        """Test that a separate value date is not overwritten."""
        tx = expense(-10, "2024-01-02", value_date="2024-01-03")
        ledger.update_transaction(tx.id, {"date": "2024-01-09"})
        assert ledger.get_transaction(tx.id).value_date == date(2024, 1, 3)

    def test_running_balance_cannot_be_set(self, ledger, expense):
        """Test that derived fields are ignored on update."""
        tx = expense(-10, "2024-01-02")
        ledger.update_transaction(tx.id, {"running_balance": 999})
        assert ledger.get_transaction(tx.id).running_balance == Decimal("-10")

    def test_pair_link_cannot_be_set(self, ledger, expense):
        """Test that only transfers link rows to a counterpart."""
        first = expense(-10, "2024-01-02")
        second = expense(-20, "2024-01-03", counter_transaction_id=first.id)
        assert second.counter_transaction_id is None

        assert ledger.update_transaction(first.id, {"counter_transaction_id": second.id}) is True
        assert ledger.get_transaction(first.id).counter_transaction_id is None

        ledger.delete_transaction(first.id)
        assert ledger.get_transaction(second.id) is not None

    def test_missing_account_rejected(self, ledger, groceries):
        """Test that account-bound types need an account."""
        with pytest.raises(LedgerValidationError, match="require an account_id"):
            ledger.add_transaction({
                "type": "EXPENSE", "category_id": groceries.id, "date": "2024-01-02", "amount": -1,
            })
        assert ledger.state.transactions == []

    def test_unknown_category_rejected(self, ledger, checking):
        """Test that references are checked before writing."""
        with pytest.raises(LedgerValidationError, match="Unknown category"):
            ledger.add_transaction({
                "type": "EXPENSE", "account_id": checking.id, "category_id": "nope",
                "date": "2024-01-02", "amount": -1,
            })
        assert ledger.state.transactions == []

    def test_unknown_ids_report_false(self, ledger):
        """Test that not-found is a boolean failure."""
        assert ledger.update_transaction("missing", {"amount": 1}) is False
        assert ledger.delete_transaction("missing") is False

    def test_category_balance_tracks_rows(self, ledger, expense, groceries):
        """Test that envelope balance and count follow the rows."""
        tx = expense(-30, "2024-01-02")
        expense(-10, "2024-01-03")
        category = ledger.get_category(groceries.id)
        assert category.balance == Decimal("-40")
        assert category.transaction_count == 2
        assert category.average_transaction_value == Decimal("-20.00")

        ledger.delete_transaction(tx.id)
        category = ledger.get_category(groceries.id)
        assert category.balance == Decimal("-10")
        assert category.transaction_count == 1

    def test_recategorize_moves_envelope_money(self, ledger, expense, groceries, housing):
        """Test that a category change releases the old envelope."""
        tx = expense(-30, "2024-01-02")
        ledger.update_transaction(tx.id, {"category_id": housing.id})
        assert ledger.get_category(groceries.id).balance == Decimal("0")
        assert ledger.get_category(housing.id).balance == Decimal("-30")


class TestTransactionQueries:
    """Tests for read-only queries."""

    def test_newest_first(self, ledger, expense, checking, groceries):
        """Test that queries return the latest rows first."""
        expense(-1, "2024-01-02")
        expense(-2, "2024-01-09")
        expense(-3, "2024-01-05")
        dates = [t.date.day for t in ledger.get_transactions_by_account(checking.id)]
        assert dates == [9, 5, 2]
        assert len(ledger.get_transactions_by_category(groceries.id)) == 3
        assert [t.date.day for t in ledger.get_recent_transactions(limit=2)] == [9, 5]

    def test_date_range_uses_value_date(self, ledger, expense):
        """Test that the range filter reads the value date."""
        expense(-1, "2024-01-02", value_date="2024-02-01")
        expense(-2, "2024-01-09")
        found = ledger.get_transactions_by_date_range("2024-01-01", "2024-01-31")
        assert [t.amount for t in found] == [Decimal("-2")]
