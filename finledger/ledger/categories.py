"""
Category Ledger

Owns category records and their envelope balances. Balances only move
through update_category_balance / release_category_balance, which the
transaction store calls alongside every row it writes or removes.

DESIGN DECISION: "Available Funds" is identified by its configured name
and exists exactly once per ledger. It is created at bootstrap and can
never be deleted or renamed.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError

from finledger.ledger.errors import ConfigurationError, LedgerValidationError
from finledger.models import Category, LedgerEventType

if TYPE_CHECKING:
    from finledger.ledger.context import Ledger


CENT = Decimal("0.01")

DERIVED_CATEGORY_FIELDS = frozenset({
    "id",
    "balance",
    "transaction_count",
    "average_transaction_value",
})


class CategoryLedger:

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger
        self._state = ledger.state
        self._available_funds_name = ledger.settings.available_funds_category_name

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_category(self, category_id: str) -> Optional[Category]:
        return self._state.find_category(category_id)

    def get_child_categories(self, parent_id: str) -> list[Category]:
        return sorted(
            (c for c in self._state.categories if c.parent_category_id == parent_id),
            key=lambda c: c.sort_order,
        )

    def root_categories(self) -> list[Category]:
        return sorted(
            (c for c in self._state.categories if c.parent_category_id is None),
            key=lambda c: c.sort_order,
        )

    def savings_goals(self) -> list[Category]:
        return [c for c in self._state.categories if c.is_savings_goal and c.is_active]

    def get_available_funds_category(self) -> Optional[Category]:
        return next(
            (c for c in self._state.categories if c.name == self._available_funds_name),
            None,
        )

    def require_available_funds_category(self) -> Category:
        """Raises ConfigurationError when the bootstrap invariant is broken."""
        category = self.get_available_funds_category()
        if category is None:
            error = ConfigurationError(
                f"Category '{self._available_funds_name}' is missing; "
                "income cannot be allocated"
            )
            self._ledger.events.log_error(
                LedgerEventType.CONFIGURATION_ERROR,
                "Available Funds category missing",
                error,
            )
            raise error
        return category

    def is_available_funds(self, category_id: Optional[str]) -> bool:
        category = self.get_available_funds_category()
        return category is not None and category.id == category_id

    # =========================================================================
    # CRUD
    # =========================================================================

    def add_category(self, data: dict[str, Any]) -> Category:
        try:
            category = Category.model_validate(data)
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid category: {e}") from e
        if category.name == self._available_funds_name and self.get_available_funds_category():
            raise LedgerValidationError(f"'{category.name}' already exists")
        if category.parent_category_id and not self._state.find_category(category.parent_category_id):
            raise LedgerValidationError(f"Unknown parent category: {category.parent_category_id}")
        if self._state.find_category(category.id):
            raise LedgerValidationError(f"Category already exists: {category.id}")

        category.transaction_count = 0
        category.average_transaction_value = Decimal("0")
        self._state.categories.append(category)
        return category

    def update_category(self, category_id: str, changes: dict[str, Any]) -> bool:
        category = self._state.find_category(category_id)
        if category is None:
            return False
        changes = {k: v for k, v in changes.items() if k not in DERIVED_CATEGORY_FIELDS}

        new_name = changes.get("name", category.name)
        if category.name == self._available_funds_name and new_name != category.name:
            raise LedgerValidationError(f"'{category.name}' cannot be renamed")
        if new_name == self._available_funds_name and category.name != new_name:
            raise LedgerValidationError(f"'{new_name}' already exists")

        parent_id = changes.get("parent_category_id", category.parent_category_id)
        if parent_id:
            if parent_id == category_id:
                raise LedgerValidationError("A category cannot be its own parent")
            if not self._state.find_category(parent_id):
                raise LedgerValidationError(f"Unknown parent category: {parent_id}")

        try:
            updated = Category.model_validate({**category.model_dump(), **changes})
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid category update: {e}") from e
        index = self._state.categories.index(category)
        self._state.categories[index] = updated
        return True

    def delete_category(self, category_id: str) -> bool:
        """
        Refused for Available Funds and for categories that still have
        children, transactions or planned transactions.
        """
        category = self._state.find_category(category_id)
        if category is None:
            return False
        if category.name == self._available_funds_name:
            self._ledger.events.log_guard_rejected("category", category_id, "Available Funds is required")
            return False
        if self.get_child_categories(category_id):
            self._ledger.events.log_guard_rejected("category", category_id, "category has children")
            return False
        if any(category_id in (t.category_id, t.to_category_id) for t in self._state.transactions):
            self._ledger.events.log_guard_rejected("category", category_id, "category has transactions")
            return False
        if any(category_id in (p.category_id, p.to_category_id) for p in self._state.planning_transactions):
            self._ledger.events.log_guard_rejected("category", category_id, "category has planned transactions")
            return False
        self._state.categories.remove(category)
        return True

    def ensure_available_funds_category(self) -> Optional[Category]:
        """Bootstrap. Returns the category only if it had to be created."""
        if self.get_available_funds_category():
            return None
        category = Category(
            name=self._available_funds_name,
            is_income_category=True,
            sort_order=-1,
        )
        self._state.categories.append(category)
        return category

    # =========================================================================
    # ENVELOPE BALANCES
    # =========================================================================

    def update_category_balance(self, category_id: str, delta: Decimal) -> bool:
        """balance += delta, one more transaction, refreshed average."""
        category = self._state.find_category(category_id)
        if category is None:
            return False
        category.balance += delta
        category.transaction_count += 1
        self._refresh_average(category)
        return True

    def release_category_balance(self, category_id: str, amount: Decimal) -> bool:
        """Inverse of update_category_balance for a removed or rewritten row."""
        category = self._state.find_category(category_id)
        if category is None:
            return False
        category.balance -= amount
        category.transaction_count = max(category.transaction_count - 1, 0)
        self._refresh_average(category)
        return True

    @staticmethod
    def _refresh_average(category: Category) -> None:
        if category.transaction_count == 0:
            category.average_transaction_value = Decimal("0")
        else:
            category.average_transaction_value = (
                category.balance / category.transaction_count
            ).quantize(CENT)

    def set_monthly_snapshot(self) -> None:
        """Freeze current balances as every category's month-start balance."""
        for category in self._state.categories:
            category.start_balance = category.balance
