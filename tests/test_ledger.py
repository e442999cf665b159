"""Tests for the Ledger context: mutation scopes, persistence hook and lifecycle."""

import pytest
from unittest.mock import MagicMock

from finledger.ledger import Ledger, LedgerError, LedgerValidationError
from finledger.ledger.state import COLLECTIONS
from finledger.services.storage import InMemoryStorage, StorageError


class FailingStorage(InMemoryStorage):
    """Accepts writes until `fail` is set."""

    fail = False

    def save(self, key, value):
        if self.fail:
            raise StorageError("backend unavailable")
        super().save(key, value)


class TestMutationScope:
    """Tests for commit on mutation."""

    def test_every_collection_saved(self, ledger, storage):
        """Test that all collections are persisted after bootstrap."""
        assert sorted(storage.keys()) == sorted(COLLECTIONS)

    def test_on_change_once_per_call(self, storage, settings, clock):
        """Test that the hook runs after each public mutation."""
        on_change = MagicMock()
        ledger = Ledger(storage=storage, settings=settings, clock=clock, on_change=on_change)
        on_change.assert_not_called()

        group = ledger.state.account_groups[0]
        ledger.add_account({"name": "Checking", "account_group_id": group.id})
        on_change.assert_called_once_with(ledger)

    def test_nested_scope_commits_once(self, storage, settings, clock):
        """Test that grouped calls are persisted as one unit."""
        on_change = MagicMock()
        ledger = Ledger(storage=storage, settings=settings, clock=clock, on_change=on_change)
        group = ledger.state.account_groups[0]

        with ledger.mutation():
            account = ledger.add_account({"name": "Checking", "account_group_id": group.id})
            ledger.add_transaction({
                "type": "EXPENSE", "account_id": account.id, "date": "2024-01-05", "amount": -5,
            })
            assert storage.load("transactions") == []
        assert on_change.call_count == 1
        assert len(storage.load("transactions")) == 1

    def test_failed_call_saves_nothing(self, storage, settings, clock):
        """Test that a rejected mutation neither saves nor notifies."""
        on_change = MagicMock()
        ledger = Ledger(storage=storage, settings=settings, clock=clock, on_change=on_change)
        with pytest.raises(LedgerValidationError):
            ledger.add_transaction({"type": "EXPENSE", "date": "2024-01-05", "amount": -5})
        on_change.assert_not_called()
        assert ledger.events.correlation_id is None

    def test_correlation_id_scoped_to_mutation(self, ledger):
        """Test that a correlation id exists only inside a mutation."""
        assert ledger.events.correlation_id is None
        with ledger.mutation():
            outer = ledger.events.correlation_id
            with ledger.mutation():
                assert ledger.events.correlation_id == outer
        assert outer is not None
        assert ledger.events.correlation_id is None

    def test_storage_failure_propagates(self, settings, clock):
        """Test that a failing store surfaces as StorageError."""
        storage = FailingStorage()
        ledger = Ledger(storage=storage, settings=settings, clock=clock)
        storage.fail = True
        with pytest.raises(StorageError, match="backend unavailable"):
            ledger.add_account_group("Investments")


class TestLifecycle:
    """Tests for closing a ledger."""

    def test_close_flushes_and_detaches(self, storage, settings, clock):
        """Test that close saves and refuses later mutations."""
        on_change = MagicMock()
        ledger = Ledger(storage=storage, settings=settings, clock=clock, on_change=on_change)
        ledger.close()
        on_change.assert_called_once_with(ledger)

        with pytest.raises(LedgerError, match="closed"):
            ledger.add_account_group("Late")
        ledger.close()

    def test_custom_rule_engine(self, storage, settings, clock, checking, groceries):
        """Test that an injected rule engine is used for planned rows."""
        engine = MagicMock()
        engine.apply_rules_to_transaction.side_effect = lambda tx, stage: tx
        ledger = Ledger(storage=storage, settings=settings, clock=clock, rule_engine=engine)
        ledger.add_planning_transaction({
            "account_id": checking.id, "category_id": groceries.id,
            "amount": -5, "start_date": "2024-01-10",
        })
        ledger.execute_all_due("2024-01-15")
        assert engine.apply_rules_to_transaction.call_count == 3
