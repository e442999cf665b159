"""
Account and account group registry.

Balances are not writable here: `Account.balance` is owned by the
transaction store's recompute.
"""

from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError

from finledger.ledger.errors import LedgerValidationError
from finledger.models import Account, AccountGroup

if TYPE_CHECKING:
    from finledger.ledger.context import Ledger


DEFAULT_ACCOUNT_GROUPS = ("Checking", "Savings", "Credit Cards", "Cash")

# Fields callers may not set through update_account
DERIVED_ACCOUNT_FIELDS = frozenset({"id", "balance", "reconciliation"})


class AccountRegistry:
    """CRUD for accounts and account groups with referential guards."""

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger
        self._state = ledger.state

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def get_account(self, account_id: str) -> Optional[Account]:
        return self._state.find_account(account_id)

    def active_accounts(self) -> list[Account]:
        return sorted(
            (a for a in self._state.accounts if a.is_active and not a.is_closed),
            key=lambda a: (a.sort_order, a.name),
        )

    def add_account(self, data: dict[str, Any]) -> Account:
        """
        Register an account.

        The cached balance starts at the starting balance. The first
        recompute replaces it with the prefix sum of the account's rows.
        """
        try:
            account = Account.model_validate(data)
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid account: {e}") from e
        if not self._find_group(account.account_group_id):
            raise LedgerValidationError(f"Unknown account group: {account.account_group_id}")
        if self._state.find_account(account.id):
            raise LedgerValidationError(f"Account already exists: {account.id}")

        account.balance = account.starting_balance
        self._state.accounts.append(account)
        return account

    def update_account(self, account_id: str, changes: dict[str, Any]) -> bool:
        account = self._state.find_account(account_id)
        if account is None:
            return False
        changes = {k: v for k, v in changes.items() if k not in DERIVED_ACCOUNT_FIELDS}
        if "account_group_id" in changes and not self._find_group(changes["account_group_id"]):
            raise LedgerValidationError(f"Unknown account group: {changes['account_group_id']}")
        try:
            updated = Account.model_validate({**account.model_dump(), **changes})
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid account update: {e}") from e

        index = self._state.accounts.index(account)
        self._state.accounts[index] = updated
        return True

    def delete_account(self, account_id: str) -> bool:
        """Refused while any transaction or template references the account."""
        account = self._state.find_account(account_id)
        if account is None:
            return False
        if any(t.account_id == account_id for t in self._state.transactions):
            self._ledger.events.log_guard_rejected("account", account_id, "account has transactions")
            return False
        if any(account_id in (p.account_id, p.to_account_id) for p in self._state.planning_transactions):
            self._ledger.events.log_guard_rejected("account", account_id, "account has planned transactions")
            return False
        self._state.accounts.remove(account)
        return True

    # =========================================================================
    # ACCOUNT GROUPS
    # =========================================================================

    def _find_group(self, group_id: Optional[str]) -> Optional[AccountGroup]:
        return next((g for g in self._state.account_groups if g.id == group_id), None)

    def get_account_group(self, group_id: str) -> Optional[AccountGroup]:
        return self._find_group(group_id)

    def add_account_group(self, name: str, sort_order: Optional[int] = None) -> AccountGroup:
        if sort_order is None:
            sort_order = len(self._state.account_groups)
        try:
            group = AccountGroup(name=name, sort_order=sort_order)
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid account group: {e}") from e
        self._state.account_groups.append(group)
        return group

    def update_account_group(self, group_id: str, changes: dict[str, Any]) -> bool:
        group = self._find_group(group_id)
        if group is None:
            return False
        try:
            updated = AccountGroup.model_validate({**group.model_dump(), **changes, "id": group.id})
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid account group update: {e}") from e
        index = self._state.account_groups.index(group)
        self._state.account_groups[index] = updated
        return True

    def delete_account_group(self, group_id: str) -> bool:
        """Refused while any account references the group."""
        group = self._find_group(group_id)
        if group is None:
            return False
        if any(a.account_group_id == group_id for a in self._state.accounts):
            self._ledger.events.log_guard_rejected("account_group", group_id, "group has accounts")
            return False
        self._state.account_groups.remove(group)
        return True

    def ensure_default_groups(self) -> list[AccountGroup]:
        """Create the default groups on a ledger that has none."""
        if self._state.account_groups:
            return []
        return [self.add_account_group(name, i) for i, name in enumerate(DEFAULT_ACCOUNT_GROUPS)]
