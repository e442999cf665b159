"""
Ledger context

One `Ledger` is created per tenant. It owns the collections, wires the
components together and is the public API of the engine.

DESIGN DECISION: Persistence is an explicit post-mutation step. Every
public mutating call runs inside a mutation scope; when the outermost
scope exits without error the ledger
1. recomputes the monthly snapshots,
2. saves every collection to the key-value store,
3. calls the injected `on_change(ledger)` hook.
A scope that raises saves nothing.
"""

import functools
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterator, Optional

from finledger.config import LedgerSettings, get_settings
from finledger.dates import Clock, DateLike
from finledger.events import EventLogger, configure_logging, create_correlation_id
from finledger.ledger.accounts import AccountRegistry
from finledger.ledger.balances import BalanceAggregator
from finledger.ledger.budget import BudgetCalculator
from finledger.ledger.categories import CategoryLedger
from finledger.ledger.errors import LedgerError, LedgerValidationError
from finledger.ledger.reconciliation import Reconciler
from finledger.ledger.recurrence import RecurrenceEngine
from finledger.ledger.rules import RuleEngine
from finledger.ledger.state import LedgerState
from finledger.ledger.transactions import TransactionStore
from finledger.ledger.transfers import TransferEngine
from finledger.models import (
    Account,
    AccountGroup,
    AutomationRule,
    Category,
    CategorySummary,
    LedgerEventType,
    LedgerSeverity,
    PlanningTransaction,
    RuleStage,
    Transaction,
    TransferResult,
)
from finledger.services.storage import KeyValueStorage, StorageError, create_storage


def mutating(method: Callable) -> Callable:
    """Run a public method inside a mutation scope."""

    @functools.wraps(method)
    def wrapper(self: "Ledger", *args, **kwargs):
        with self.mutation():
            return method(self, *args, **kwargs)

    return wrapper


class Ledger:
    """
    Ledger consistency engine for one tenant.

    Usage:
        ledger = Ledger(InMemoryStorage())
        checking = ledger.add_account({"name": "Checking", "account_group_id": group.id})
        ledger.add_transaction({"account_id": checking.id, "date": "2024-01-05", ...})
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        settings: Optional[LedgerSettings] = None,
        clock: Optional[Clock] = None,
        on_change: Optional[Callable[["Ledger"], None]] = None,
        rule_engine: Optional[Any] = None,
    ):
        self.settings = settings or get_settings().ledger
        self.storage = storage or create_storage()
        self.clock = clock or Clock()
        configure_logging(self.settings.log_level)
        self.events = EventLogger(debug_mode=self.settings.debug_mode)
        self.state = LedgerState()

        self.accounts = AccountRegistry(self)
        self.categories = CategoryLedger(self)
        self.transactions = TransactionStore(self)
        self.transfers = TransferEngine(self)
        self.recurrence = RecurrenceEngine(self)
        self.balances = BalanceAggregator(self)
        self.budget = BudgetCalculator(self)
        self.reconciliation = Reconciler(self)
        self.rule_engine = rule_engine or RuleEngine(lambda: self.state.automation_rules)

        self._depth = 0
        self._closed = False
        self._on_change: Optional[Callable[["Ledger"], None]] = None

        counts = self.state.load(self.storage)
        self.events.log_simple(LedgerEventType.LEDGER_LOADED, "Ledger loaded", **counts)
        self._bootstrap()
        self._on_change = on_change

    @mutating
    def _bootstrap(self) -> None:
        created = self.categories.ensure_available_funds_category()
        groups = self.accounts.ensure_default_groups()
        if created or groups:
            self.events.log_simple(
                LedgerEventType.BOOTSTRAP_CREATED,
                "Ledger bootstrapped",
                available_funds=created is not None,
                account_groups=[g.name for g in groups],
            )

    # =========================================================================
    # MUTATION SCOPE
    # =========================================================================

    @contextmanager
    def mutation(self) -> Iterator["Ledger"]:
        """
        Group several calls into one persisted unit. Nested scopes join
        the outermost one.
        """
        if self._closed:
            raise LedgerError("Ledger is closed")
        outermost = self._depth == 0
        if outermost:
            self.events.correlation_id = create_correlation_id()
        self._depth += 1
        try:
            yield self
        except Exception as e:
            self._depth -= 1
            if outermost:
                if isinstance(e, LedgerValidationError):
                    self.events.log_simple(
                        LedgerEventType.VALIDATION_FAILED, str(e), LedgerSeverity.WARNING,
                        error_type=type(e).__name__,
                    )
                self.events.correlation_id = None
            raise
        self._depth -= 1
        if outermost:
            try:
                self._commit()
            finally:
                self.events.correlation_id = None

    def _commit(self) -> None:
        self.balances.recompute()
        try:
            self.state.save(self.storage)
        except StorageError as e:
            self.events.log_error(LedgerEventType.STORAGE_ERROR, "Saving the ledger failed", e)
            raise
        self.events.log_simple(
            LedgerEventType.LEDGER_SAVED, "Ledger saved", LedgerSeverity.DEBUG,
            transactions=len(self.state.transactions),
        )
        if self._on_change is not None:
            self._on_change(self)

    def save(self) -> None:
        """Force a recompute and save outside of any mutation."""
        with self.mutation():
            pass

    def close(self) -> None:
        """Flush and detach. Any later mutation raises LedgerError."""
        if self._closed:
            return
        self.save()
        self._closed = True
        self._on_change = None
        self.events.log_simple(LedgerEventType.LEDGER_CLOSED, "Ledger closed")

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def get_account(self, account_id: str) -> Optional[Account]:
        return self.accounts.get_account(account_id)

    def active_accounts(self) -> list[Account]:
        return self.accounts.active_accounts()

    @mutating
    def add_account(self, data: dict[str, Any]) -> Account:
        return self.accounts.add_account(data)

    @mutating
    def update_account(self, account_id: str, changes: dict[str, Any]) -> bool:
        return self.accounts.update_account(account_id, changes)

    @mutating
    def delete_account(self, account_id: str) -> bool:
        return self.accounts.delete_account(account_id)

    @mutating
    def add_account_group(self, name: str, sort_order: Optional[int] = None) -> AccountGroup:
        return self.accounts.add_account_group(name, sort_order)

    @mutating
    def update_account_group(self, group_id: str, changes: dict[str, Any]) -> bool:
        return self.accounts.update_account_group(group_id, changes)

    @mutating
    def delete_account_group(self, group_id: str) -> bool:
        return self.accounts.delete_account_group(group_id)

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def get_category(self, category_id: str) -> Optional[Category]:
        return self.categories.get_category(category_id)

    def get_child_categories(self, parent_id: str) -> list[Category]:
        return self.categories.get_child_categories(parent_id)

    def root_categories(self) -> list[Category]:
        return self.categories.root_categories()

    def savings_goals(self) -> list[Category]:
        return self.categories.savings_goals()

    def get_available_funds_category(self) -> Optional[Category]:
        return self.categories.get_available_funds_category()

    @mutating
    def add_category(self, data: dict[str, Any]) -> Category:
        return self.categories.add_category(data)

    @mutating
    def update_category(self, category_id: str, changes: dict[str, Any]) -> bool:
        return self.categories.update_category(category_id, changes)

    @mutating
    def delete_category(self, category_id: str) -> bool:
        return self.categories.delete_category(category_id)

    @mutating
    def set_monthly_snapshot(self) -> None:
        self.categories.set_monthly_snapshot()

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self.transactions.get_transaction(transaction_id)

    def get_transactions_by_account(self, account_id: str) -> list[Transaction]:
        return self.transactions.get_transactions_by_account(account_id)

    def get_transactions_by_category(self, category_id: str) -> list[Transaction]:
        return self.transactions.get_transactions_by_category(category_id)

    def get_transactions_by_date_range(self, start: DateLike, end: DateLike) -> list[Transaction]:
        return self.transactions.get_transactions_by_date_range(start, end)

    def get_recent_transactions(self, limit: int = 10) -> list[Transaction]:
        return self.transactions.get_recent_transactions(limit)

    @mutating
    def add_transaction(self, data: dict[str, Any]) -> Transaction:
        return self.transactions.add_transaction(data)

    @mutating
    def update_transaction(self, transaction_id: str, changes: dict[str, Any]) -> bool:
        return self.transactions.update_transaction(transaction_id, changes)

    @mutating
    def delete_transaction(self, transaction_id: str) -> bool:
        return self.transactions.delete_transaction(transaction_id)

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    @mutating
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
        return self.transfers.add_account_transfer(
            from_account_id, to_account_id, amount, date, value_date, note, planning_transaction_id
        )

    @mutating
    def add_category_transfer(
        self,
        from_category_id: str,
        to_category_id: str,
        amount: Any,
        date: DateLike,
        note: str = "",
    ) -> TransferResult:
        return self.transfers.add_category_transfer(from_category_id, to_category_id, amount, date, note)

    @mutating
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
        return self.transfers.update_category_transfer(
            transaction_id, counter_transaction_id, from_category_id, to_category_id, amount, date, note
        )

    @mutating
    def add_reconcile_transaction(
        self,
        account_id: str,
        amount: Any,
        date: DateLike,
        note: str = "",
    ) -> Optional[Transaction]:
        return self.transfers.add_reconcile_transaction(account_id, amount, date, note)

    # =========================================================================
    # PLANNED TRANSACTIONS
    # =========================================================================

    def get_planning_transaction(self, planning_id: str) -> Optional[PlanningTransaction]:
        return self.recurrence.get_planning_transaction(planning_id)

    def get_upcoming_planning_transactions(
        self,
        days: Optional[int] = None,
        today: Optional[DateLike] = None,
    ) -> list[tuple[PlanningTransaction, date]]:
        return self.recurrence.get_upcoming_planning_transactions(days, today)

    def occurrences(self, template: PlanningTransaction, window_start: DateLike, window_end: DateLike) -> list[date]:
        return self.recurrence.occurrences(template, window_start, window_end)

    def next_occurrence(self, template: PlanningTransaction, after: DateLike) -> Optional[date]:
        return self.recurrence.next_occurrence(template, after)

    @mutating
    def add_planning_transaction(self, data: dict[str, Any]) -> PlanningTransaction:
        return self.recurrence.add_planning_transaction(data)

    @mutating
    def update_planning_transaction(self, planning_id: str, changes: dict[str, Any]) -> bool:
        return self.recurrence.update_planning_transaction(planning_id, changes)

    @mutating
    def delete_planning_transaction(self, planning_id: str) -> bool:
        return self.recurrence.delete_planning_transaction(planning_id)

    @mutating
    def execute_planning_transaction(self, planning_id: str, execution_date: DateLike) -> bool:
        return self.recurrence.execute_planning_transaction(planning_id, execution_date)

    @mutating
    def execute_all_due(self, today: Optional[DateLike] = None) -> int:
        return self.recurrence.execute_all_due(today)

    # =========================================================================
    # BALANCES & BUDGET
    # =========================================================================

    def account_balance_for_date(self, account_id: str, on_date: DateLike) -> Decimal:
        return self.balances.account_balance_for_date(account_id, on_date)

    def category_balance_for_date(self, category_id: str, on_date: DateLike) -> Decimal:
        return self.balances.category_balance_for_date(category_id, on_date)

    def projected_account_balance(
        self, account_id: str, on_date: DateLike, today: Optional[DateLike] = None
    ) -> Decimal:
        return self.balances.projected_account_balance(account_id, on_date, today)

    def projected_category_balance(
        self, category_id: str, on_date: DateLike, today: Optional[DateLike] = None
    ) -> Decimal:
        return self.balances.projected_category_balance(category_id, on_date, today)

    def calculate_category_saldo(self, category_id: str, start: DateLike, end: DateLike) -> Optional[CategorySummary]:
        return self.budget.calculate_category_saldo(category_id, start, end)

    def calculate_income_category_saldo(self, category_id: str, start: DateLike, end: DateLike) -> Optional[CategorySummary]:
        return self.budget.calculate_income_category_saldo(category_id, start, end)

    def monthly_summary(self, start: DateLike, end: DateLike, income: bool = False) -> CategorySummary:
        return self.budget.monthly_summary(start, end, income)

    def planned_amount_for_category(self, category_id: str, start: DateLike, end: DateLike) -> Decimal:
        return self.budget.planned_amount_for_category(category_id, start, end)

    # =========================================================================
    # AUTOMATION RULES
    # =========================================================================

    @mutating
    def add_automation_rule(self, data: dict[str, Any]) -> AutomationRule:
        try:
            rule = AutomationRule.model_validate(data)
        except ValueError as e:
            raise LedgerValidationError(f"Invalid automation rule: {e}") from e
        self.state.automation_rules.append(rule)
        return rule

    @mutating
    def delete_automation_rule(self, rule_id: str) -> bool:
        rule = next((r for r in self.state.automation_rules if r.id == rule_id), None)
        if rule is None:
            return False
        self.state.automation_rules.remove(rule)
        return True

    def apply_rules_to_transaction(
        self, transaction: Transaction, stage: RuleStage = RuleStage.DEFAULT
    ) -> Transaction:
        return self.rule_engine.apply_rules_to_transaction(transaction, stage)

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    def balance_at(self, account_id: str, on_date: DateLike) -> Decimal:
        return self.reconciliation.balance_at(account_id, on_date)

    @mutating
    def reconcile_account(
        self, account_id: str, bank_balance: Any, on_date: DateLike, note: str = ""
    ) -> Optional[Transaction]:
        return self.reconciliation.reconcile_account(account_id, bank_balance, on_date, note)

    @mutating
    def reconcile_all_transactions_until(self, account_id: str, on_date: DateLike) -> int:
        return self.reconciliation.reconcile_all_transactions_until(account_id, on_date)

    @mutating
    def toggle_transaction_reconciled(self, transaction_id: str) -> bool:
        return self.reconciliation.toggle_transaction_reconciled(transaction_id)
