from app.database.models.expense import ApprovalChainRule, ApprovalStatus, ExpenseApproval, ExpenseStatus
from app.logic.decision_processor import (
    RuleState,
    actionable_approvals,
    compute_rule_state,
    determine_expense_outcome,
    required_approvals,
)

PENDING = ApprovalStatus.PENDING.value
APPROVED = ApprovalStatus.APPROVED.value
REJECTED = ApprovalStatus.REJECTED.value
CANCELLED = ApprovalStatus.CANCELLED.value


def chain_rule(total, pct=100, sequential=False):
    return ApprovalChainRule(
        id=1,
        rule_name="Rule",
        position=1,
        is_sequential=sequential,
        min_approval_percentage=pct,
        total_approvers=total,
    )


def records(*statuses, sequential=False, required=()):
    return [
        ExpenseApproval(
            id=index,
            chain_rule_id=1,
            approver_id=100 + index,
            status=status,
            sequence_order=index if sequential else None,
            is_required=index in required,
        )
        for index, status in enumerate(statuses, start=1)
    ]


def test_required_approvals_rounds_up():
    assert required_approvals(chain_rule(4, pct=50)) == 2
    assert required_approvals(chain_rule(3, pct=50)) == 2
    assert required_approvals(chain_rule(3, pct=100)) == 3
    assert required_approvals(chain_rule(3, pct=1)) == 1


def test_half_of_four_is_satisfied_at_second_approval():
    rule = chain_rule(4, pct=50)
    assert compute_rule_state(rule, records(APPROVED, PENDING, PENDING, PENDING)) == RuleState.PENDING
    assert compute_rule_state(rule, records(APPROVED, APPROVED, PENDING, PENDING)) == RuleState.SATISFIED


def test_any_rejection_fails_the_rule():
    rule = chain_rule(3, pct=34)
    assert compute_rule_state(rule, records(APPROVED, APPROVED, REJECTED)) == RuleState.FAILED


def test_required_approver_blocks_satisfaction():
    rule = chain_rule(3, pct=50)
    state = compute_rule_state(rule, records(APPROVED, APPROVED, PENDING, required=(3,)))
    assert state == RuleState.PENDING
    state = compute_rule_state(rule, records(APPROVED, PENDING, APPROVED, required=(3,)))
    assert state == RuleState.SATISFIED


def test_parallel_rule_exposes_every_pending_record():
    rule = chain_rule(3)
    rows = records(APPROVED, PENDING, PENDING)
    assert [a.id for a in actionable_approvals(rule, rows)] == [2, 3]


def test_sequential_rule_exposes_only_next_step():
    rule = chain_rule(3, sequential=True)
    assert [a.id for a in actionable_approvals(rule, records(PENDING, PENDING, PENDING, sequential=True))] == [1]
    assert [a.id for a in actionable_approvals(rule, records(APPROVED, PENDING, PENDING, sequential=True))] == [2]


def test_decided_rule_has_nothing_actionable():
    rule = chain_rule(2, pct=50)
    assert actionable_approvals(rule, records(APPROVED, CANCELLED)) == []


def test_expense_outcome():
    assert determine_expense_outcome([RuleState.SATISFIED, RuleState.SATISFIED]) == ExpenseStatus.APPROVED
    assert determine_expense_outcome([RuleState.SATISFIED, RuleState.PENDING]) is None
    assert determine_expense_outcome([RuleState.PENDING, RuleState.FAILED]) == ExpenseStatus.REJECTED
    assert determine_expense_outcome([]) is None


def test_rule_waits_while_threshold_is_unmet():
    rule = chain_rule(3)
    assert compute_rule_state(rule, records(APPROVED, APPROVED, PENDING)) == RuleState.PENDING
    assert compute_rule_state(rule, records(APPROVED, APPROVED, APPROVED)) == RuleState.SATISFIED


def test_sequential_rule_below_full_percentage():
    rule = chain_rule(3, pct=50, sequential=True)
    rows = records(APPROVED, APPROVED, PENDING, sequential=True)
    assert compute_rule_state(rule, rows) == RuleState.SATISFIED
    assert actionable_approvals(rule, rows) == []
