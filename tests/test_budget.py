"""Tests for category saldo aggregation and monthly summaries."""

import pytest
from decimal import Decimal


class TestCategorySaldo:
    """Tests for calculate_category_saldo."""

    def test_first_month_anchors_on_start_balance(self, ledger, expense, groceries):
        """Test a window without an earlier snapshot."""
        expense(-30, "2024-01-10")
        summary = ledger.calculate_category_saldo(groceries.id, "2024-01-01", "2024-01-31")
        assert summary.spent == Decimal("-30")
        assert summary.saldo == Decimal("-30")
        assert summary.budgeted == Decimal("0")

    def test_later_month_anchors_on_snapshot(self, ledger, expense, groceries):
        """Test that the previous month's snapshot carries the saldo."""
        expense(-30, "2024-01-10")
        expense(-20, "2024-02-10")
        summary = ledger.calculate_category_saldo(groceries.id, "2024-02-01", "2024-02-29")
        assert summary.spent == Decimal("-20")
        assert summary.saldo == Decimal("-50")

    def test_spent_ignores_transfers(self, ledger, expense, groceries, available_funds):
        """Test that envelope moves change saldo but not spent."""
        ledger.add_category_transfer(available_funds.id, groceries.id, 100, "2024-01-02")
        expense(-30, "2024-01-10")
        summary = ledger.calculate_category_saldo(groceries.id, "2024-01-01", "2024-01-31")
        assert summary.spent == Decimal("-30")
        assert summary.saldo == Decimal("70")

    def test_rolls_up_active_children(self, ledger, expense, groceries):
        """Test that active direct children are added to their parent."""
        fruit = ledger.add_category({"name": "Fruit", "parent_category_id": groceries.id})
        sweets = ledger.add_category({
            "name": "Sweets", "parent_category_id": groceries.id, "is_active": False,
        })
        expense(-20, "2024-02-10")
        expense(-5, "2024-02-11", category_id=fruit.id)
        expense(-7, "2024-02-12", category_id=sweets.id)

        summary = ledger.calculate_category_saldo(groceries.id, "2024-02-01", "2024-02-29")
        assert summary.spent == Decimal("-25")
        assert summary.saldo == Decimal("-25")

    def test_unknown_category(self, ledger):
        """Test that unknown ids yield no summary."""
        assert ledger.calculate_category_saldo("missing", "2024-01-01", "2024-01-31") is None


class TestIncomeSaldo:
    """Tests for calculate_income_category_saldo."""

    def test_income_counts_as_spent(self, ledger, checking, salary):
        """Test that the income side sums INCOME rows."""
        ledger.add_transaction({
            "type": "INCOME", "account_id": checking.id, "category_id": salary.id,
            "date": "2024-01-10", "amount": 1000,
        })
        summary = ledger.calculate_income_category_saldo(salary.id, "2024-01-01", "2024-01-31")
        assert summary.spent == Decimal("1000")
        assert summary.saldo == Decimal("0")


class TestMonthlySummary:
    """Tests for the totals over root categories."""

    def test_expense_totals(self, ledger, expense, housing, checking):
        """Test totals over expense categories."""
        expense(-30, "2024-01-10")
        ledger.add_transaction({
            "type": "EXPENSE", "account_id": checking.id, "category_id": housing.id,
            "date": "2024-01-12", "amount": -500,
        })
        summary = ledger.monthly_summary("2024-01-01", "2024-01-31")
        assert summary.spent == Decimal("-530")

    def test_income_totals_exclude_available_funds(self, ledger, checking, salary):
        """Test that Available Funds is not part of the income totals."""
        ledger.add_transaction({
            "type": "INCOME", "account_id": checking.id, "category_id": salary.id,
            "date": "2024-01-10", "amount": 1000,
        })
        summary = ledger.monthly_summary("2024-01-01", "2024-01-31", income=True)
        assert summary.spent == Decimal("1000")
        assert summary.saldo == Decimal("0")


class TestPlannedAmount:
    """Tests for planned_amount_for_category."""

    def test_sums_occurrences_in_window(self, ledger, checking, groceries):
        """Test planned amounts of a monthly template."""
        ledger.add_planning_transaction({
            "account_id": checking.id, "category_id": groceries.id, "amount": -50,
            "start_date": "2024-01-15", "recurrence_pattern": "MONTHLY",
        })
        assert ledger.planned_amount_for_category(groceries.id, "2024-02-01", "2024-04-30") == Decimal("-150")

    def test_inactive_templates_ignored(self, ledger, checking, groceries):
        """Test that inactive templates plan nothing."""
        ledger.add_planning_transaction({
            "account_id": checking.id, "category_id": groceries.id, "amount": -50,
            "start_date": "2024-01-15", "recurrence_pattern": "MONTHLY", "is_active": False,
        })
        assert ledger.planned_amount_for_category(groceries.id, "2024-02-01", "2024-04-30") == Decimal("0")
