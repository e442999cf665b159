"""
Category saldo aggregation and monthly budget summaries.

For a category and a window [start, end]:

    anchor = latest category snapshot whose month ends before `start`
             (else the category's start_balance, anchored the day before `start`)
    saldo  = anchor + every row on the category after the anchor through `end`
    spent  = EXPENSE (or INCOME) rows on the category inside the window
    budgeted = 0 (no budgeting input exists yet)

Parents add the figures of their active direct children; the rollup is
one level deep.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from finledger.dates import DateLike, to_date
from finledger.ledger.balances import affects_category
from finledger.models import Category, CategorySummary, TransactionType

if TYPE_CHECKING:
    from finledger.ledger.context import Ledger


class BudgetCalculator:

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger
        self._state = ledger.state

    def _own_summary(
        self,
        category: Category,
        start: date,
        end: date,
        spent_type: TransactionType,
    ) -> CategorySummary:
        snapshot = self._ledger.balances.latest_category_snapshot_before(category.id, start)
        if snapshot is not None:
            anchor_balance, anchor_date = snapshot.balance, snapshot.month_end
        else:
            anchor_balance, anchor_date = category.start_balance, start - timedelta(days=1)

        saldo = anchor_balance
        spent = Decimal("0")
        for tx in self._state.transactions:
            if not affects_category(tx, category.id):
                continue
            if anchor_date < tx.value_date <= end:
                saldo += tx.amount
            if tx.type == spent_type and start <= tx.value_date <= end:
                spent += tx.amount
        return CategorySummary(budgeted=Decimal("0"), spent=spent, saldo=saldo)

    def _rolled_up(
        self,
        category_id: str,
        start: DateLike,
        end: DateLike,
        spent_type: TransactionType,
    ) -> Optional[CategorySummary]:
        category = self._state.find_category(category_id)
        if category is None:
            return None
        start, end = to_date(start), to_date(end)
        summary = self._own_summary(category, start, end, spent_type)
        for child in self._ledger.categories.get_child_categories(category.id):
            if child.is_active:
                summary = summary + self._own_summary(child, start, end, spent_type)
        return summary

    def calculate_category_saldo(self, category_id: str, start: DateLike, end: DateLike) -> Optional[CategorySummary]:
        """Expense-side figures. None for an unknown category."""
        return self._rolled_up(category_id, start, end, TransactionType.EXPENSE)

    def calculate_income_category_saldo(self, category_id: str, start: DateLike, end: DateLike) -> Optional[CategorySummary]:
        """Income-side figures: `spent` sums INCOME rows."""
        return self._rolled_up(category_id, start, end, TransactionType.INCOME)

    def monthly_summary(self, start: DateLike, end: DateLike, income: bool = False) -> CategorySummary:
        """Totals over active root categories of one kind, Available Funds excluded."""
        categories = self._ledger.categories
        total = CategorySummary()
        for category in categories.root_categories():
            if not category.is_active or category.is_income_category != income:
                continue
            if categories.is_available_funds(category.id):
                continue
            if income:
                summary = self.calculate_income_category_saldo(category.id, start, end)
            else:
                summary = self.calculate_category_saldo(category.id, start, end)
            total = total + summary
        return total

    def planned_amount_for_category(self, category_id: str, start: DateLike, end: DateLike) -> Decimal:
        """
        Planned amount of active non-transfer templates in the window,
        active children included.
        """
        recurrence = self._ledger.recurrence
        amount = Decimal("0")
        for template in self._state.planning_transactions:
            if not template.is_active or template.category_id != category_id:
                continue
            if template.transaction_type in (TransactionType.TRANSFER, TransactionType.CATEGORYTRANSFER):
                continue
            amount += template.amount * len(recurrence.occurrences(template, start, end))

        for child in self._ledger.categories.get_child_categories(category_id):
            if child.is_active:
                amount += self.planned_amount_for_category(child.id, start, end)
        return amount
