"""Decides which of a company's approval rules apply to an expense."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional
import logging

from app.database.models.approval import ApprovalRule
from app.logic.conditions import RuleCondition, condition_matches, decode_condition
from app.logic.exceptions import RuleEvaluationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpenseFacts:
    amount: Decimal
    category: str
    submitter_role: str
    submitter_department: Optional[str] = None


def rule_conditions(rule: ApprovalRule) -> List[RuleCondition]:
    """Decode every persisted condition of a rule, tagging failures with the rule id"""
    decoded = []
    for row in rule.conditions:
        try:
            decoded.append(decode_condition(row.kind, row.params))
        except RuleEvaluationError as e:
            raise RuleEvaluationError(
                f"Rule {rule.id} condition {row.id}: {e.message}", rule_id=rule.id
            ) from e
    return decoded


def rule_matches(rule: ApprovalRule, facts: ExpenseFacts) -> bool:
    return all(condition_matches(c, facts) for c in rule_conditions(rule))


def evaluate_applicable_rules(facts: ExpenseFacts, rules: Iterable[ApprovalRule]) -> List[int]:
    """
    Return the ids of the rules whose conditions all match, in the order given.

    Callers pass the company's active rules already sorted by priority and creation
    order. A rule with undecodable conditions is logged and skipped; the rest are
    still evaluated.
    """
    applicable = []
    for rule in rules:
        try:
            if rule_matches(rule, facts):
                applicable.append(rule.id)
        except RuleEvaluationError as e:
            logger.warning(f"Data integrity: excluding approval rule {rule.id} from evaluation: {e.message}")
    return applicable
