"""
Automation rule models.

A rule is a conjunction of conditions plus a list of actions. Rules are
grouped into stages (PRE, DEFAULT, POST) and ordered by priority within
a stage, lowest first.
"""

from typing import Optional

from pydantic import Field

from finledger.models.enums import RuleActionType, RuleConditionType, RuleStage
from finledger.models.ledger import LedgerModel, new_id


class RuleCondition(LedgerModel):
    """
    One predicate over a transaction.

    `value` is kept as a string; amount and date conditions parse it
    when evaluated.
    """
    type: RuleConditionType
    value: str


class RuleAction(LedgerModel):
    type: RuleActionType
    value: str


class AutomationRule(LedgerModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    stage: RuleStage = RuleStage.DEFAULT
    priority: int = 0
    is_active: bool = True
    conditions: list[RuleCondition] = Field(default_factory=list)
    actions: list[RuleAction] = Field(default_factory=list)
