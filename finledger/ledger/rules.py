"""
Automation rule engine.

`apply_rules_to_transaction` is pure: it returns a rewritten copy and
never touches the ledger. The caller writes back whatever changed.
A rule without conditions matches every transaction.
"""

from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

import structlog

from finledger.dates import to_date
from finledger.models import (
    AutomationRule,
    RuleActionType,
    RuleConditionType,
    RuleStage,
    Transaction,
)
from finledger.models.rules import RuleAction, RuleCondition

logger = structlog.get_logger("finledger")


def _as_decimal(value: str) -> Optional[Decimal]:
    try:
        return Decimal(value)
    except InvalidOperation:
        return None


def condition_matches(condition: RuleCondition, tx: Transaction) -> bool:
    value = condition.value
    kind = condition.type

    if kind == RuleConditionType.ACCOUNT_IS:
        return tx.account_id == value
    if kind == RuleConditionType.PAYEE_EQUALS:
        return tx.payee == value
    if kind == RuleConditionType.PAYEE_CONTAINS:
        return value.lower() in tx.payee.lower()
    if kind == RuleConditionType.NOTE_CONTAINS:
        return value.lower() in tx.note.lower()
    if kind == RuleConditionType.DATE_IS:
        try:
            return tx.date == to_date(value)
        except ValueError:
            return False

    threshold = _as_decimal(value)
    if threshold is None:
        return False
    if kind == RuleConditionType.AMOUNT_EQUALS:
        return tx.amount == threshold
    if kind == RuleConditionType.AMOUNT_GREATER:
        return tx.amount > threshold
    if kind == RuleConditionType.AMOUNT_LESS:
        return tx.amount < threshold
    return False


def apply_action(action: RuleAction, tx: Transaction) -> Transaction:
    if action.type == RuleActionType.SET_CATEGORY:
        return tx.model_copy(update={"category_id": action.value})
    if action.type == RuleActionType.ADD_TAG:
        if action.value in tx.tag_ids:
            return tx
        return tx.model_copy(update={"tag_ids": [*tx.tag_ids, action.value]})
    if action.type == RuleActionType.SET_NOTE:
        return tx.model_copy(update={"note": action.value})
    return tx


class RuleEngine:
    """
    Applies automation rules of one stage, lowest priority first.

    Rules are read through `rules_provider` on every call so the engine
    always sees the ledger's current rule list.
    """

    def __init__(self, rules_provider: Callable[[], list[AutomationRule]]):
        self._rules_provider = rules_provider

    def rules_for_stage(self, stage: RuleStage) -> list[AutomationRule]:
        return sorted(
            (r for r in self._rules_provider() if r.is_active and r.stage == stage),
            key=lambda r: r.priority,
        )

    def apply_rules_to_transaction(
        self,
        transaction: Transaction,
        stage: RuleStage = RuleStage.DEFAULT,
    ) -> Transaction:
        result = transaction
        applied = 0
        for rule in self.rules_for_stage(stage):
            if all(condition_matches(c, result) for c in rule.conditions):
                for action in rule.actions:
                    result = apply_action(action, result)
                applied += 1

        logger.debug(
            "rules_applied",
            transaction_id=transaction.id,
            stage=stage.value,
            rules_applied=applied,
        )
        return result
