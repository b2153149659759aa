"""
Approval rule conditions.

A rule applies to an expense when every one of its conditions matches. Conditions
are a closed set of variants; persisted rows are decoded into one of them before
evaluation so that matching never depends on looking fields up by name.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, Tuple, Union, TYPE_CHECKING

from app.logic.exceptions import RuleEvaluationError

if TYPE_CHECKING:
    from app.logic.rule_evaluator import ExpenseFacts


class ConditionKind(str, Enum):
    AMOUNT_THRESHOLD = "amount_threshold"
    CATEGORY = "category"
    USER_ROLE = "user_role"
    DEPARTMENT = "department"


KNOWN_ROLES = frozenset({"admin", "manager", "employee"})


@dataclass(frozen=True)
class AmountThreshold:
    """Matches expenses whose amount is strictly greater than the threshold"""
    threshold: Decimal


@dataclass(frozen=True)
class CategoryCondition:
    categories: FrozenSet[str]


@dataclass(frozen=True)
class UserRoleCondition:
    roles: FrozenSet[str]


@dataclass(frozen=True)
class DepartmentCondition:
    departments: FrozenSet[str]


RuleCondition = Union[AmountThreshold, CategoryCondition, UserRoleCondition, DepartmentCondition]


def _normalize(value: str) -> str:
    return value.strip().casefold()


def _string_set(params: Dict[str, Any], key: str) -> FrozenSet[str]:
    values = params.get(key)
    if not isinstance(values, (list, tuple)) or not values:
        raise RuleEvaluationError(f"Condition requires a non-empty '{key}' list")
    if not all(isinstance(v, str) and v.strip() for v in values):
        raise RuleEvaluationError(f"Condition '{key}' must contain non-empty strings")
    return frozenset(_normalize(v) for v in values)


def decode_condition(kind: str, params: Dict[str, Any]) -> RuleCondition:
    """Build a condition variant from its persisted (kind, params) form"""
    if not isinstance(params, dict):
        raise RuleEvaluationError(f"Condition params for '{kind}' must be an object")

    if kind == ConditionKind.AMOUNT_THRESHOLD.value:
        raw = params.get("threshold")
        if raw is None or isinstance(raw, bool):
            raise RuleEvaluationError("Amount threshold condition requires 'threshold'")
        try:
            threshold = Decimal(str(raw))
        except InvalidOperation:
            raise RuleEvaluationError(f"Amount threshold '{raw}' is not a number")
        if not threshold.is_finite() or threshold < 0:
            raise RuleEvaluationError(f"Amount threshold must be a non-negative number, got '{raw}'")
        return AmountThreshold(threshold)

    if kind == ConditionKind.CATEGORY.value:
        return CategoryCondition(_string_set(params, "categories"))

    if kind == ConditionKind.USER_ROLE.value:
        roles = _string_set(params, "roles")
        unknown = roles - KNOWN_ROLES
        if unknown:
            raise RuleEvaluationError(f"Unknown user roles in condition: {sorted(unknown)}")
        return UserRoleCondition(roles)

    if kind == ConditionKind.DEPARTMENT.value:
        return DepartmentCondition(_string_set(params, "departments"))

    raise RuleEvaluationError(f"Unknown condition kind '{kind}'")


def encode_condition(condition: RuleCondition) -> Tuple[str, Dict[str, Any]]:
    """Inverse of decode_condition, used when storing a rule"""
    if isinstance(condition, AmountThreshold):
        return ConditionKind.AMOUNT_THRESHOLD.value, {"threshold": str(condition.threshold)}
    if isinstance(condition, CategoryCondition):
        return ConditionKind.CATEGORY.value, {"categories": sorted(condition.categories)}
    if isinstance(condition, UserRoleCondition):
        return ConditionKind.USER_ROLE.value, {"roles": sorted(condition.roles)}
    if isinstance(condition, DepartmentCondition):
        return ConditionKind.DEPARTMENT.value, {"departments": sorted(condition.departments)}
    raise TypeError(f"Unknown condition type: {type(condition).__name__}")


def condition_matches(condition: RuleCondition, facts: "ExpenseFacts") -> bool:
    if isinstance(condition, AmountThreshold):
        return Decimal(facts.amount) > condition.threshold
    if isinstance(condition, CategoryCondition):
        return _normalize(facts.category) in condition.categories
    if isinstance(condition, UserRoleCondition):
        return _normalize(facts.submitter_role) in condition.roles
    if isinstance(condition, DepartmentCondition):
        if not facts.submitter_department:
            return False
        return _normalize(facts.submitter_department) in condition.departments
    raise TypeError(f"Unknown condition type: {type(condition).__name__}")
