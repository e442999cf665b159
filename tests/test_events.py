"""Tests for structured event logging."""

import pytest
from decimal import Decimal
from unittest.mock import MagicMock

from finledger.events import EventLogger, create_correlation_id
from finledger.ledger import LedgerValidationError
from finledger.models import LedgerEventType, LedgerSeverity


class TestEventLogger:
    """Tests for EventLogger."""

    def test_info_event_written(self):
        """Test that INFO events go to logger.info."""
        logger = MagicMock()
        events = EventLogger(logger=logger)
        events.log_transfer_created("out", "in", Decimal("10"), "account")

        logger.info.assert_called_once()
        args, kwargs = logger.info.call_args
        assert args == ("ledger_event",)
        assert kwargs["event_type"] == "transfer_created"
        assert kwargs["details"]["amount"] == "10"

    def test_debug_suppressed_without_debug_mode(self):
        """Test that per-row events need debug mode."""
        logger = MagicMock()
        EventLogger(logger=logger).log_transaction_added("tx", "EXPENSE", Decimal("-1"), "acc")
        logger.debug.assert_not_called()

        EventLogger(debug_mode=True, logger=logger).log_transaction_added("tx", "EXPENSE", Decimal("-1"), "acc")
        logger.debug.assert_called_once()

    def test_severity_routing(self):
        """Test that warnings and errors use their levels."""
        logger = MagicMock()
        events = EventLogger(logger=logger)
        events.log_guard_rejected("category", "c1", "category has children")
        events.log_error(LedgerEventType.STORAGE_ERROR, "Save failed", OSError("disk full"))

        logger.warning.assert_called_once()
        _, kwargs = logger.error.call_args
        assert kwargs["error_message"] == "disk full"
        assert kwargs["severity"] == LedgerSeverity.ERROR.value

    def test_correlation_id_attached(self):
        """Test that events inside a mutation share its id."""
        logger = MagicMock()
        events = EventLogger(logger=logger)
        events.correlation_id = create_correlation_id()
        events.log_simple(LedgerEventType.LEDGER_SAVED, "Ledger saved", transactions=3)

        _, kwargs = logger.info.call_args
        assert kwargs["correlation_id"] == str(events.correlation_id)
        assert kwargs["details"] == {"transactions": 3}


class TestLedgerEvents:
    """Tests for events emitted by ledger operations."""

    def test_guard_rejection_logged(self, ledger, groceries):
        """Test that refused deletes are reported."""
        logger = MagicMock()
        ledger.events._logger = logger
        ledger.add_category({"name": "Fruit", "parent_category_id": groceries.id})
        ledger.delete_category(groceries.id)

        _, kwargs = logger.warning.call_args
        assert kwargs["event_type"] == "guard_rejected"
        assert kwargs["correlation_id"] is not None

    def test_validation_failure_logged(self, ledger):
        """Test that rejected mutations are reported with their correlation id."""
        logger = MagicMock()
        ledger.events._logger = logger
        with pytest.raises(LedgerValidationError):
            ledger.add_account({"name": "Loose", "account_group_id": "missing"})

        _, kwargs = logger.warning.call_args
        assert kwargs["event_type"] == "validation_failed"
        assert "Unknown account group" in kwargs["description"]
        assert kwargs["correlation_id"] is not None

    def test_recompute_logged_in_debug_mode(self, ledger):
        """Test that snapshot rebuilds are traced when debugging."""
        logger = MagicMock()
        ledger.events._logger = logger
        ledger.events.debug_mode = True
        ledger.add_account_group("Investments")

        event_types = [kwargs["event_type"] for _, kwargs in logger.debug.call_args_list]
        assert "balances_recomputed" in event_types

    def test_rule_rewrite_logged(self, ledger, checking, housing):
        """Test that rules rewriting a planned booking are reported."""
        ledger.add_automation_rule({"name": "Tag all", "actions": [{"type": "ADD_TAG", "value": "auto"}]})
        ledger.add_planning_transaction({
            "account_id": checking.id, "category_id": housing.id,
            "amount": -50, "start_date": "2024-01-10",
        })
        logger = MagicMock()
        ledger.events._logger = logger
        ledger.execute_all_due("2024-01-15")

        applied = [
            kwargs for _, kwargs in logger.info.call_args_list
            if kwargs["event_type"] == "rules_applied"
        ]
        assert len(applied) == 1
        assert applied[0]["details"]["changed_fields"] == ["tag_ids"]
