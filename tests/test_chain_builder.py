import pytest

from app.database.models.expense import ApprovalStatus
from app.database.services.user_service import UserDirectory
from app.logic.chain_builder import build_approval_chain, plan_rule_assignments
from app.logic.chain_mode import Parallel, Sequential
from app.logic.exceptions import InvalidApproverError


@pytest.fixture
def org(make_user):
    manager = make_user("Maria Manager", role="manager")
    employee = make_user("Eve Employee", manager=manager, department="Sales")
    finance = make_user("Frank Finance", role="manager")
    director = make_user("Dana Director", role="admin")
    return {"manager": manager, "employee": employee, "finance": finance, "director": director}


class TestPlanRuleAssignments:

    def test_parallel_rule(self, db_session, org, make_rule, make_expense):
        rule = make_rule("Parallel", [org["finance"], org["director"]])
        expense = make_expense(org["employee"])

        plan = plan_rule_assignments(expense, rule, UserDirectory(db_session))

        assert [a.approver_id for a in plan] == [org["finance"].id, org["director"].id]
        assert all(a.mode == Parallel() for a in plan)

    def test_sequential_rule_keeps_sequence_order(self, db_session, org, make_rule, make_expense):
        rule = make_rule("Sequential", [org["finance"], org["director"]], sequential=True)
        expense = make_expense(org["employee"])

        plan = plan_rule_assignments(expense, rule, UserDirectory(db_session))

        assert [a.mode for a in plan] == [Sequential(1), Sequential(2)]

    def test_manager_is_inserted_first(self, db_session, org, make_rule, make_expense):
        rule = make_rule("With manager", [org["finance"]], sequential=True, manager_required=True)
        expense = make_expense(org["employee"])

        plan = plan_rule_assignments(expense, rule, UserDirectory(db_session))

        assert plan[0].approver_id == org["manager"].id
        assert plan[0].mode == Sequential(0)
        assert plan[0].is_manager and plan[0].is_required

    def test_manager_already_listed_is_not_duplicated(self, db_session, org, make_rule, make_expense):
        rule = make_rule("Manager listed", [org["finance"], org["manager"]], manager_required=True)
        expense = make_expense(org["employee"])

        plan = plan_rule_assignments(expense, rule, UserDirectory(db_session))

        assert [a.approver_id for a in plan] == [org["manager"].id, org["finance"].id]
        assert plan[0].is_manager and plan[0].is_required

    def test_listed_manager_moves_ahead_in_sequential_rule(self, db_session, org, make_rule, make_expense):
        rule = make_rule(
            "Manager listed last",
            [org["finance"], org["director"], org["manager"]],
            sequential=True,
            manager_required=True,
        )
        expense = make_expense(org["employee"])

        plan = plan_rule_assignments(expense, rule, UserDirectory(db_session))

        assert [a.approver_id for a in plan] == [org["manager"].id, org["finance"].id, org["director"].id]
        assert [a.mode for a in plan] == [Sequential(0), Sequential(1), Sequential(2)]
        assert plan[0].is_manager

        approvals = build_approval_chain(db_session, expense, [rule], UserDirectory(db_session))
        assert len(approvals) == 3
        assert approvals[0].chain_rule.total_approvers == 3
        assert approvals[0].approver_id == org["manager"].id
        assert approvals[0].sequence_order == 0

    def test_missing_manager(self, db_session, org, make_rule, make_expense):
        rule = make_rule("Needs manager", [org["director"]], manager_required=True)
        expense = make_expense(org["finance"])

        with pytest.raises(InvalidApproverError):
            plan_rule_assignments(expense, rule, UserDirectory(db_session))

    def test_submitter_cannot_approve_own_expense(self, db_session, org, make_rule, make_expense):
        rule = make_rule("Self", [org["employee"], org["finance"]])
        expense = make_expense(org["employee"])

        with pytest.raises(InvalidApproverError) as exc:
            plan_rule_assignments(expense, rule, UserDirectory(db_session))
        assert exc.value.approver_id == org["employee"].id

    def test_inactive_approver(self, db_session, org, make_rule, make_expense):
        rule = make_rule("Inactive", [org["finance"]])
        org["finance"].is_active = False
        db_session.commit()
        expense = make_expense(org["employee"])

        with pytest.raises(InvalidApproverError):
            plan_rule_assignments(expense, rule, UserDirectory(db_session))


class TestBuildApprovalChain:

    def test_one_record_per_approver_per_rule(self, db_session, org, make_rule, make_expense):
        first = make_rule("First", [org["finance"], org["director"]])
        second = make_rule("Second", [org["finance"]], manager_required=True)
        expense = make_expense(org["employee"])

        approvals = build_approval_chain(db_session, expense, [first, second], UserDirectory(db_session))

        assert len(approvals) == 4
        assert all(a.status == ApprovalStatus.PENDING.value for a in approvals)
        finance_records = [a for a in approvals if a.approver_id == org["finance"].id]
        assert len(finance_records) == 2

        manager_record = next(a for a in approvals if a.is_manager_approval)
        assert manager_record.rule_id is None

    def test_snapshot_records_totals(self, db_session, org, make_rule, make_expense):
        rule = make_rule("Snapshot", [org["finance"], org["director"]], min_pct=50, manager_required=True)
        expense = make_expense(org["employee"])

        build_approval_chain(db_session, expense, [rule], UserDirectory(db_session))
        db_session.commit()
        db_session.refresh(expense)

        chain_rule = expense.chain_rules[0]
        assert chain_rule.rule_id == rule.id
        assert chain_rule.rule_name == "Snapshot"
        assert chain_rule.total_approvers == 3
        assert chain_rule.min_approval_percentage == 50
        assert chain_rule.position == 1

    def test_invalid_rule_adds_nothing(self, db_session, org, make_rule, make_expense):
        good = make_rule("Good", [org["finance"]])
        bad = make_rule("Bad", [org["employee"]])
        expense = make_expense(org["employee"])

        with pytest.raises(InvalidApproverError):
            build_approval_chain(db_session, expense, [good, bad], UserDirectory(db_session))

        assert len(db_session.new) == 0
