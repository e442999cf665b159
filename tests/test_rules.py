"""Tests for the automation rule engine."""

import pytest
from decimal import Decimal

from finledger.ledger import LedgerValidationError, RuleEngine
from finledger.models import AutomationRule, RuleStage, Transaction


def _tx(**fields):
    data = {"account_id": "acc-1", "date": "2024-01-05", "amount": Decimal("-42.50"), "payee": "Corner Shop"}
    data.update(fields)
    return Transaction(**data)


def _rule(**fields):
    data = {"name": "rule"}
    data.update(fields)
    return AutomationRule.model_validate(data)


class TestRuleEngine:
    """Tests for RuleEngine.apply_rules_to_transaction."""

    def test_rule_without_conditions_matches(self):
        """Test that an empty condition list always matches."""
        engine = RuleEngine(lambda: [_rule(actions=[{"type": "SET_NOTE", "value": "seen"}])])
        assert engine.apply_rules_to_transaction(_tx()).note == "seen"

    def test_all_conditions_must_match(self):
        """Test that conditions are a conjunction."""
        rule = _rule(
            conditions=[
                {"type": "PAYEE_CONTAINS", "value": "shop"},
                {"type": "AMOUNT_LESS", "value": "-100"},
            ],
            actions=[{"type": "SET_CATEGORY", "value": "cat-1"}],
        )
        engine = RuleEngine(lambda: [rule])
        assert engine.apply_rules_to_transaction(_tx()).category_id is None
        assert engine.apply_rules_to_transaction(_tx(amount=Decimal("-150"))).category_id == "cat-1"

    def test_priority_order(self):
        """Test that higher priority numbers run later and win."""
        rules = [
            _rule(priority=1, actions=[{"type": "SET_NOTE", "value": "late"}]),
            _rule(priority=0, actions=[{"type": "SET_NOTE", "value": "early"}]),
        ]
        engine = RuleEngine(lambda: rules)
        assert engine.apply_rules_to_transaction(_tx()).note == "late"

    def test_stage_and_active_filter(self):
        """Test that only active rules of the requested stage run."""
        rules = [
            _rule(stage="PRE", actions=[{"type": "SET_NOTE", "value": "pre"}]),
            _rule(is_active=False, actions=[{"type": "SET_NOTE", "value": "off"}]),
        ]
        engine = RuleEngine(lambda: rules)
        assert engine.apply_rules_to_transaction(_tx()).note == ""
        assert engine.apply_rules_to_transaction(_tx(), RuleStage.PRE).note == "pre"

    def test_conditions(self):
        """Test each condition kind against one transaction."""
        tx = _tx(note="weekly groceries")
        cases = {
            ("ACCOUNT_IS", "acc-1"): True,
            ("PAYEE_EQUALS", "Corner Shop"): True,
            ("PAYEE_EQUALS", "corner shop"): False,
            ("NOTE_CONTAINS", "GROCER"): True,
            ("AMOUNT_EQUALS", "-42.5"): True,
            ("AMOUNT_GREATER", "-50"): True,
            ("DATE_IS", "2024-01-05"): True,
            ("DATE_IS", "not a date"): False,
            ("AMOUNT_LESS", "abc"): False,
        }
        for (kind, value), expected in cases.items():
            engine = RuleEngine(lambda: [_rule(
                conditions=[{"type": kind, "value": value}],
                actions=[{"type": "SET_NOTE", "value": "hit"}],
            )])
            assert (engine.apply_rules_to_transaction(tx).note == "hit") is expected, (kind, value)

    def test_add_tag_once(self):
        """Test that ADD_TAG does not duplicate tags."""
        engine = RuleEngine(lambda: [_rule(actions=[{"type": "ADD_TAG", "value": "t1"}])])
        assert engine.apply_rules_to_transaction(_tx(tag_ids=["t1"])).tag_ids == ["t1"]
        assert engine.apply_rules_to_transaction(_tx()).tag_ids == ["t1"]

    def test_input_not_mutated(self):
        """Test that the engine returns a copy."""
        engine = RuleEngine(lambda: [_rule(actions=[{"type": "SET_NOTE", "value": "x"}])])
        tx = _tx()
        engine.apply_rules_to_transaction(tx)
        assert tx.note == ""


class TestLedgerRules:
    """Tests for rule management through the ledger."""

    def test_add_and_delete(self, ledger, storage):
        """Test automation rule CRUD and persistence."""
        rule = ledger.add_automation_rule({"name": "Tag shop", "actions": [{"type": "ADD_TAG", "value": "t"}]})
        assert len(storage.load("automation_rules")) == 1
        assert ledger.apply_rules_to_transaction(_tx()).tag_ids == ["t"]

        assert ledger.delete_automation_rule(rule.id) is True
        assert ledger.delete_automation_rule(rule.id) is False
        assert storage.load("automation_rules") == []

    def test_invalid_rule_rejected(self, ledger):
        """Test that malformed rules are rejected."""
        with pytest.raises(LedgerValidationError, match="Invalid automation rule"):
            ledger.add_automation_rule({"name": "Bad", "conditions": [{"type": "PAYEE_RHYMES", "value": "x"}]})
