"""
Approval decision state machine.

Each rule of a chain is PENDING until enough of its approvers approved
(SATISFIED) or one of them rejected (FAILED). The expense is approved once every
rule is SATISFIED and rejected as soon as any rule FAILED. Thresholds compare
integers: approved * 100 >= min_approval_percentage * total_approvers.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy.orm import Session

from app.database.models.expense import (
    Expense,
    ApprovalChainRule,
    ExpenseApproval,
    ApprovalStatus,
    ExpenseStatus,
)
from app.logic.exceptions import (
    ApprovalNotFoundError,
    AuthorizationError,
    AlreadyProcessedError,
    InvalidStateTransitionError,
    OutOfSequenceError,
)

logger = logging.getLogger(__name__)


class RuleState(str, Enum):
    PENDING = "PENDING"
    SATISFIED = "SATISFIED"
    FAILED = "FAILED"


class Decision(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


@dataclass
class DecisionResult:
    approval: ExpenseApproval
    decision: Decision
    rule_states: Dict[int, RuleState]
    outcome: Optional[ExpenseStatus] = None  # None while the expense is still pending
    newly_actionable: List[ExpenseApproval] = field(default_factory=list)
    cancelled: List[ExpenseApproval] = field(default_factory=list)


def required_approvals(chain_rule: ApprovalChainRule) -> int:
    """Smallest approval count that meets the rule's percentage"""
    return -(-chain_rule.min_approval_percentage * chain_rule.total_approvers // 100)


def records_for_rule(chain_rule: ApprovalChainRule, approvals: Iterable[ExpenseApproval]) -> List[ExpenseApproval]:
    return [a for a in approvals if a.chain_rule_id == chain_rule.id]


def compute_rule_state(chain_rule: ApprovalChainRule, approvals: Iterable[ExpenseApproval]) -> RuleState:
    records = records_for_rule(chain_rule, approvals)

    if any(a.status == ApprovalStatus.REJECTED.value for a in records):
        return RuleState.FAILED

    approved = sum(1 for a in records if a.status == ApprovalStatus.APPROVED.value)
    required_done = all(a.status == ApprovalStatus.APPROVED.value for a in records if a.is_required)
    if approved * 100 >= chain_rule.min_approval_percentage * chain_rule.total_approvers and required_done:
        return RuleState.SATISFIED

    return RuleState.PENDING


def actionable_approvals(chain_rule: ApprovalChainRule, approvals: Iterable[ExpenseApproval]) -> List[ExpenseApproval]:
    """
    Records of one rule that may be decided right now: every PENDING record of a
    parallel rule, or the lowest-ordered PENDING record of a sequential one.
    """
    records = records_for_rule(chain_rule, approvals)
    if compute_rule_state(chain_rule, records) != RuleState.PENDING:
        return []

    pending = [a for a in records if a.status == ApprovalStatus.PENDING.value]
    if not chain_rule.is_sequential or not pending:
        return pending
    return [min(pending, key=lambda a: (a.sequence_order if a.sequence_order is not None else 0, a.id))]


def actionable_for_expense(expense: Expense) -> List[ExpenseApproval]:
    if expense.status != ExpenseStatus.PENDING_APPROVAL.value:
        return []
    result = []
    for chain_rule in expense.chain_rules:
        result.extend(actionable_approvals(chain_rule, expense.approvals))
    return result


def determine_expense_outcome(rule_states: Iterable[RuleState]) -> Optional[ExpenseStatus]:
    states = list(rule_states)
    if any(state == RuleState.FAILED for state in states):
        return ExpenseStatus.REJECTED
    if states and all(state == RuleState.SATISFIED for state in states):
        return ExpenseStatus.APPROVED
    return None


def _cancel(records: Iterable[ExpenseApproval], now: datetime) -> List[ExpenseApproval]:
    cancelled = []
    for record in records:
        if record.status == ApprovalStatus.PENDING.value:
            record.status = ApprovalStatus.CANCELLED.value
            record.processed_at = now
            cancelled.append(record)
    return cancelled


def _validate_decision(expense: Expense, approval: Optional[ExpenseApproval], approval_id: int, approver_id: int):
    if approval is None:
        raise ApprovalNotFoundError(f"Approval with ID {approval_id} not found for expense {expense.id}")

    if approval.approver_id != approver_id:
        raise AuthorizationError(f"User {approver_id} is not the assigned approver of approval {approval_id}")

    if approval.status in (ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value):
        raise AlreadyProcessedError(f"Approval {approval_id} has already been {approval.status.lower()}")

    if approval.status == ApprovalStatus.CANCELLED.value:
        raise InvalidStateTransitionError(f"Approval {approval_id} is no longer required")

    if expense.status != ExpenseStatus.PENDING_APPROVAL.value:
        raise InvalidStateTransitionError(
            f"Expense {expense.id} is {expense.status}; decisions are only accepted while PENDING_APPROVAL"
        )

    chain_rule = approval.chain_rule
    if chain_rule.is_sequential and approval not in actionable_approvals(chain_rule, expense.approvals):
        raise OutOfSequenceError(
            f"Approval {approval_id} is step {approval.sequence_order} of rule '{chain_rule.rule_name}'; "
            f"an earlier step is still pending"
        )


def record_decision(
    db: Session,
    expense: Expense,
    approval_id: int,
    approver_id: int,
    decision: Decision,
    comment: Optional[str] = None
) -> DecisionResult:
    """
    Apply one approver's decision to an expense whose row the caller has locked.

    Marks the record, cancels records that became moot and reports the expense
    outcome. The expense status itself is left for the caller to persist.
    """
    approval = next((a for a in expense.approvals if a.id == approval_id), None)
    _validate_decision(expense, approval, approval_id, approver_id)

    actionable_before = {a.id for a in actionable_for_expense(expense)}
    now = datetime.utcnow()

    approval.status = (
        ApprovalStatus.APPROVED.value if decision == Decision.APPROVE else ApprovalStatus.REJECTED.value
    )
    approval.processed_at = now
    approval.comments = comment

    cancelled = []
    rule_states = {cr.id: compute_rule_state(cr, expense.approvals) for cr in expense.chain_rules}

    if decision == Decision.REJECT:
        outcome = ExpenseStatus.REJECTED
        cancelled.extend(_cancel(expense.approvals, now))
    else:
        for chain_rule in expense.chain_rules:
            if rule_states[chain_rule.id] == RuleState.SATISFIED:
                cancelled.extend(_cancel(records_for_rule(chain_rule, expense.approvals), now))
        outcome = determine_expense_outcome(rule_states.values())
        if outcome is not None:
            cancelled.extend(_cancel(expense.approvals, now))

    newly_actionable = []
    if outcome is None:
        newly_actionable = [
            a for a in actionable_for_expense(expense)
            if a.id not in actionable_before
        ]

    db.flush()

    logger.info(
        f"Expense {expense.id}: approval {approval.id} {decision.value} by user {approver_id}; "
        f"outcome={outcome.value if outcome else 'PENDING'}"
    )

    return DecisionResult(
        approval=approval,
        decision=decision,
        rule_states=rule_states,
        outcome=outcome,
        newly_actionable=newly_actionable,
        cancelled=cancelled
    )
