from decimal import Decimal

import pytest

from app.database.models.approval import ApprovalRule, ApprovalRuleCondition
from app.logic.conditions import (
    AmountThreshold,
    CategoryCondition,
    DepartmentCondition,
    UserRoleCondition,
    condition_matches,
    decode_condition,
    encode_condition,
)
from app.logic.exceptions import RuleEvaluationError
from app.logic.rule_evaluator import ExpenseFacts, evaluate_applicable_rules, rule_matches


def facts(amount="100.00", category="Travel", role="employee", department=None):
    return ExpenseFacts(Decimal(amount), category, role, department)


def rule(rule_id, *conditions):
    r = ApprovalRule(id=rule_id, name=f"rule {rule_id}")
    for index, (kind, params) in enumerate(conditions, start=1):
        r.conditions.append(ApprovalRuleCondition(id=rule_id * 100 + index, kind=kind, params=params))
    return r


class TestDecodeCondition:

    def test_amount_threshold_accepts_numbers_and_strings(self):
        assert decode_condition("amount_threshold", {"threshold": 100}) == AmountThreshold(Decimal("100"))
        assert decode_condition("amount_threshold", {"threshold": "99.50"}) == AmountThreshold(Decimal("99.50"))

    @pytest.mark.parametrize("params", [{}, {"threshold": "abc"}, {"threshold": -1}, {"threshold": True}])
    def test_bad_amount_threshold(self, params):
        with pytest.raises(RuleEvaluationError):
            decode_condition("amount_threshold", params)

    def test_category_values_are_casefolded(self):
        condition = decode_condition("category", {"categories": ["Travel", " MEALS "]})
        assert condition == CategoryCondition(frozenset({"travel", "meals"}))

    def test_unknown_role_is_rejected(self):
        with pytest.raises(RuleEvaluationError):
            decode_condition("user_role", {"roles": ["ceo"]})

    def test_empty_list_is_rejected(self):
        with pytest.raises(RuleEvaluationError):
            decode_condition("department", {"departments": []})

    def test_unknown_kind(self):
        with pytest.raises(RuleEvaluationError):
            decode_condition("weekday", {"days": ["monday"]})

    def test_encode_produces_decodable_params(self):
        kind, params = encode_condition(UserRoleCondition(frozenset({"manager", "admin"})))
        assert kind == "user_role"
        assert params == {"roles": ["admin", "manager"]}


class TestConditionMatches:

    def test_amount_threshold_is_strict(self):
        condition = AmountThreshold(Decimal("100"))
        assert not condition_matches(condition, facts(amount="100.00"))
        assert condition_matches(condition, facts(amount="100.01"))

    def test_category_match_ignores_case(self):
        assert condition_matches(CategoryCondition(frozenset({"travel"})), facts(category="TRAVEL"))
        assert not condition_matches(CategoryCondition(frozenset({"travel"})), facts(category="Meals"))

    def test_role_match(self):
        condition = UserRoleCondition(frozenset({"manager"}))
        assert condition_matches(condition, facts(role="Manager"))
        assert not condition_matches(condition, facts(role="employee"))

    def test_department_never_matches_missing_department(self):
        condition = DepartmentCondition(frozenset({"sales"}))
        assert condition_matches(condition, facts(department="Sales"))
        assert not condition_matches(condition, facts(department=None))


class TestEvaluateApplicableRules:

    def test_rule_without_conditions_matches_everything(self):
        assert rule_matches(rule(1), facts())

    def test_all_conditions_must_match(self):
        r = rule(
            1,
            ("amount_threshold", {"threshold": 100}),
            ("category", {"categories": ["travel"]}),
        )
        assert rule_matches(r, facts(amount="500", category="Travel"))
        assert not rule_matches(r, facts(amount="500", category="Meals"))
        assert not rule_matches(r, facts(amount="50", category="Travel"))

    def test_preserves_given_order(self):
        rules = [rule(3), rule(1, ("amount_threshold", {"threshold": 1000})), rule(2)]
        assert evaluate_applicable_rules(facts(amount="200"), rules) == [3, 2]

    def test_malformed_rule_is_skipped_and_logged(self, caplog):
        rules = [rule(1, ("amount_threshold", {"threshold": "lots"})), rule(2)]
        with caplog.at_level("WARNING"):
            assert evaluate_applicable_rules(facts(), rules) == [2]
        assert "excluding approval rule 1" in caplog.text

    def test_no_rules(self):
        assert evaluate_applicable_rules(facts(), []) == []
