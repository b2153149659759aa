"""Materializes Approval records for the rules that apply to a submitted expense."""
from dataclasses import dataclass
from typing import List, Sequence, TYPE_CHECKING
import logging

from sqlalchemy.orm import Session

from app.database.models.approval import ApprovalRule
from app.database.models.expense import Expense, ApprovalChainRule, ExpenseApproval, ApprovalStatus
from app.logic.chain_mode import ChainMode, Parallel, Sequential, order_for_mode
from app.logic.exceptions import InvalidApproverError

if TYPE_CHECKING:
    from app.database.services.user_service import UserDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApproverAssignment:
    approver_id: int
    mode: ChainMode
    is_required: bool
    is_manager: bool = False


def _check_approver(directory: "UserDirectory", expense: Expense, rule: ApprovalRule, approver_id: int, label: str):
    if approver_id == expense.submitter_id:
        raise InvalidApproverError(
            f"Rule '{rule.name}' assigns the submitter (user {approver_id}) as {label} of their own expense",
            approver_id=approver_id,
            rule_id=rule.id
        )
    if not directory.is_valid_approver(approver_id, expense.company_id):
        raise InvalidApproverError(
            f"Rule '{rule.name}' {label} user {approver_id} is no longer an active member of company {expense.company_id}",
            approver_id=approver_id,
            rule_id=rule.id
        )


def plan_rule_assignments(
    expense: Expense,
    rule: ApprovalRule,
    directory: "UserDirectory"
) -> List[ApproverAssignment]:
    """Work out who approves for one rule, in chain order, without touching the session"""
    sequential = bool(rule.is_sequence_required)

    if sequential:
        ordered = sorted(rule.approvers, key=lambda a: (a.sequence_order or 0, a.id or 0))
    else:
        ordered = list(rule.approvers)

    assignments = []
    for entry in ordered:
        _check_approver(directory, expense, rule, entry.approver_id, "approver")
        mode = Sequential(entry.sequence_order) if sequential else Parallel()
        assignments.append(ApproverAssignment(entry.approver_id, mode, bool(entry.is_required)))

    if rule.is_manager_approval_required:
        submitter = directory.get_user(expense.submitter_id)
        manager = directory.resolve_manager(submitter) if submitter else None
        if manager is None:
            raise InvalidApproverError(
                f"Rule '{rule.name}' requires manager approval but user {expense.submitter_id} has no manager",
                rule_id=rule.id
            )
        _check_approver(directory, expense, rule, manager.id, "manager")

        # An explicit approver who is also the manager moves to the front as the manager task
        assignments = [a for a in assignments if a.approver_id != manager.id]
        mode = Sequential(0) if sequential else Parallel()
        assignments.insert(0, ApproverAssignment(manager.id, mode, True, is_manager=True))

    if not assignments:
        raise InvalidApproverError(f"Rule '{rule.name}' has no approvers", rule_id=rule.id)

    return assignments


def build_approval_chain(
    db: Session,
    expense: Expense,
    rules: Sequence[ApprovalRule],
    directory: "UserDirectory"
) -> List[ExpenseApproval]:
    """
    Create the chain snapshot and one PENDING Approval record per approver of
    every applicable rule, in evaluation order.

    Every rule is planned before anything is added, so an invalid approver leaves
    the session untouched. Rows are flushed, not committed; the caller owns the
    transaction.
    """
    plans = [(rule, plan_rule_assignments(expense, rule, directory)) for rule in rules]

    created = []
    for position, (rule, assignments) in enumerate(plans, start=1):
        chain_rule = ApprovalChainRule(
            expense_id=expense.id,
            rule_id=rule.id,
            rule_name=rule.name,
            position=position,
            is_sequential=bool(rule.is_sequence_required),
            min_approval_percentage=rule.min_approval_percentage,
            total_approvers=len(assignments)
        )
        db.add(chain_rule)
        db.flush()

        for assignment in assignments:
            approval = ExpenseApproval(
                expense_id=expense.id,
                chain_rule_id=chain_rule.id,
                rule_id=None if assignment.is_manager else rule.id,
                approver_id=assignment.approver_id,
                status=ApprovalStatus.PENDING.value,
                sequence_order=order_for_mode(assignment.mode),
                is_manager_approval=assignment.is_manager,
                is_required=assignment.is_required
            )
            db.add(approval)
            created.append(approval)

        logger.info(
            f"Expense {expense.id}: rule {rule.id} '{rule.name}' -> {len(assignments)} approval task(s), "
            f"{'sequential' if chain_rule.is_sequential else 'parallel'}"
        )

    db.flush()
    return created
