"""
In-memory collections of one ledger and their persisted layout.

Every collection is stored as a list of JSON dicts under one logical key.
"""

from typing import Optional, Type

from pydantic import ValidationError

from finledger.models import (
    Account,
    AccountGroup,
    AutomationRule,
    Category,
    CategoryMonthlyBalance,
    MonthlyBalance,
    PlanningTransaction,
    Recipient,
    Tag,
    Transaction,
)
from finledger.models.ledger import LedgerModel
from finledger.services.storage import KeyValueStorage, SerializationError


# Logical key -> record model
COLLECTIONS: dict[str, Type[LedgerModel]] = {
    "accounts": Account,
    "account_groups": AccountGroup,
    "transactions": Transaction,
    "categories": Category,
    "planning_transactions": PlanningTransaction,
    "monthly_balances": MonthlyBalance,
    "category_monthly_balances": CategoryMonthlyBalance,
    "tags": Tag,
    "recipients": Recipient,
    "automation_rules": AutomationRule,
}


class LedgerState:
    """Owned record lists. Components mutate these in place."""

    def __init__(self):
        self.accounts: list[Account] = []
        self.account_groups: list[AccountGroup] = []
        self.transactions: list[Transaction] = []
        self.categories: list[Category] = []
        self.planning_transactions: list[PlanningTransaction] = []
        self.monthly_balances: list[MonthlyBalance] = []
        self.category_monthly_balances: list[CategoryMonthlyBalance] = []
        self.tags: list[Tag] = []
        self.recipients: list[Recipient] = []
        self.automation_rules: list[AutomationRule] = []

    def load(self, storage: KeyValueStorage) -> dict[str, int]:
        """
        Replace every collection with what the store holds.

        Returns record counts per key.
        """
        counts = {}
        for key, model in COLLECTIONS.items():
            raw = storage.load(key) or []
            try:
                records = [model.model_validate(item) for item in raw]
            except ValidationError as e:
                raise SerializationError(f"Stored {key} are invalid: {e}") from e
            setattr(self, key, records)
            counts[key] = len(records)
        return counts

    def save(self, storage: KeyValueStorage) -> None:
        for key in COLLECTIONS:
            storage.save(key, [record.to_storage() for record in getattr(self, key)])

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def find_transaction(self, transaction_id: Optional[str]) -> Optional[Transaction]:
        if not transaction_id:
            return None
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def find_account(self, account_id: Optional[str]) -> Optional[Account]:
        if not account_id:
            return None
        return next((a for a in self.accounts if a.id == account_id), None)

    def find_category(self, category_id: Optional[str]) -> Optional[Category]:
        if not category_id:
            return None
        return next((c for c in self.categories if c.id == category_id), None)

    def find_planning(self, planning_id: Optional[str]) -> Optional[PlanningTransaction]:
        if not planning_id:
            return None
        return next((p for p in self.planning_transactions if p.id == planning_id), None)
