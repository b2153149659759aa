from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional, List

from app.logic.conditions import ConditionKind
from app.logic.decision_processor import Decision, RuleState

# Rule Store request models
class RuleConditionRequest(BaseModel):
    kind: ConditionKind = Field(..., description="amount_threshold, category, user_role or department")
    params: Dict[str, Any] = Field(
        default_factory=dict,
        description="{'threshold': 100} | {'categories': [...]} | {'roles': [...]} | {'departments': [...]}"
    )

class RuleApproverRequest(BaseModel):
    approver_id: int = Field(..., gt=0, description="Approver user ID")
    sequence_order: Optional[int] = Field(None, ge=1, description="Position in a sequential rule (1..N)")
    is_required: bool = Field(default=False, description="Rule cannot be satisfied without this approver")

    @field_validator('approver_id', 'sequence_order', mode='before')
    @classmethod
    def parse_int_fields(cls, v):
        if isinstance(v, str):
            return int(v)
        return v

class CreateApprovalRuleRequest(BaseModel):
    company_id: int = Field(..., gt=0, description="Company the rule belongs to")
    name: str = Field(..., min_length=1, max_length=100, description="Rule name")
    description: Optional[str] = Field(None, max_length=500, description="Rule description")
    is_manager_approval_required: bool = Field(default=False, description="Insert the submitter's manager as an approver")
    is_sequence_required: bool = Field(default=False, description="Approvers decide one at a time in sequence order")
    min_approval_percentage: int = Field(default=100, ge=1, le=100, description="Share of approvers needed to satisfy the rule")
    priority: int = Field(default=100, ge=0, description="Evaluation order, lower first")
    is_active: bool = Field(default=True)
    conditions: List[RuleConditionRequest] = Field(default_factory=list)
    approvers: List[RuleApproverRequest] = Field(default_factory=list, max_length=10)

    @field_validator('company_id', mode='before')
    @classmethod
    def parse_company_id(cls, v):
        if isinstance(v, str):
            return int(v)
        return v

class UpdateApprovalRuleRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    is_manager_approval_required: Optional[bool] = None
    is_sequence_required: Optional[bool] = None
    min_approval_percentage: Optional[int] = Field(None, ge=1, le=100)
    priority: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    conditions: Optional[List[RuleConditionRequest]] = None
    approvers: Optional[List[RuleApproverRequest]] = Field(None, max_length=10)

    @model_validator(mode='after')
    def check_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self

class ApprovalRuleQueryParams(BaseModel):
    page: int = Field(default=1, ge=1, description="Page number")
    limit: int = Field(default=10, ge=1, le=100, description="Items per page")
    company_id: Optional[int] = Field(None, gt=0, description="Filter by company")
    is_active: Optional[bool] = Field(None, description="Filter by active flag")
    search: Optional[str] = Field(None, max_length=255, description="Search in name and description")

# Rule Store response models
class RuleConditionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    params: Dict[str, Any]

class RuleApproverResponse(BaseModel):
    id: int
    approver_id: int
    approver_name: str
    approver_email: str
    sequence_order: Optional[int] = None
    is_required: bool

class ApprovalRuleResponse(BaseModel):
    id: int
    company_id: int
    name: str
    description: Optional[str] = None
    is_manager_approval_required: bool
    is_sequence_required: bool
    min_approval_percentage: int
    priority: int
    is_active: bool
    conditions: List[RuleConditionResponse]
    approvers: List[RuleApproverResponse]
    created_at: datetime
    updated_at: Optional[datetime] = None

class ApprovalRuleListResponse(BaseModel):
    rules: List[ApprovalRuleResponse]
    total: int
    page: int
    limit: int
    total_pages: int

class ApprovalRuleStatsResponse(BaseModel):
    total_rules: int
    active_rules: int
    rules_by_sequence: dict
    rules_with_manager_approval: int
    average_approvers_per_rule: float

# Decision models
class ApprovalDecisionRequest(BaseModel):
    approver_id: int = Field(..., gt=0, description="User deciding the approval; must be its assigned approver")
    decision: Decision = Field(..., description="APPROVE or REJECT")
    comment: Optional[str] = Field(None, max_length=1000, description="Required when rejecting")

    @field_validator('decision', mode='before')
    @classmethod
    def parse_decision(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator('comment')
    @classmethod
    def strip_comment(cls, v):
        if v is not None:
            v = v.strip()
            return v or None
        return v

    @model_validator(mode='after')
    def require_rejection_reason(self):
        if self.decision == Decision.REJECT and not self.comment:
            raise ValueError("A comment explaining the rejection is required")
        return self

class ExpenseApprovalResponse(BaseModel):
    id: int
    expense_id: int
    chain_rule_id: int
    rule_id: Optional[int] = None
    approver_id: int
    approver_name: str
    status: str
    sequence_order: Optional[int] = None
    is_manager_approval: bool
    is_required: bool
    is_actionable: bool
    comments: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime

class ChainRuleStatusResponse(BaseModel):
    chain_rule_id: int
    rule_id: Optional[int] = None
    rule_name: str
    position: int
    is_sequential: bool
    min_approval_percentage: int
    total_approvers: int
    required_approvals: int
    approved_count: int
    state: RuleState
    approvals: List[ExpenseApprovalResponse]

class ExpenseApprovalStatusResponse(BaseModel):
    expense_id: int
    status: str
    is_fully_approved: bool
    chain_error: Optional[str] = None
    submitted_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    rules: List[ChainRuleStatusResponse]
    actionable_approval_ids: List[int]

class ApprovalDecisionResponse(BaseModel):
    approval_id: int
    decision: Decision
    expense_id: int
    expense_status: str
    is_decided: bool
    next_approval_ids: List[int] = []

# Approver queue models
class PendingApprovalResponse(BaseModel):
    """Task an approver can act on now"""
    approval_id: int
    expense_id: int
    submitter_id: int
    submitter_name: str
    amount: Decimal
    currency_code: str
    category: str
    description: Optional[str] = None
    expense_date: date
    submitted_at: Optional[datetime] = None
    rule_name: str
    sequence_order: Optional[int] = None
    is_manager_approval: bool

class ApproverPendingListResponse(BaseModel):
    pending_approvals: List[PendingApprovalResponse]
    total_count: int
    total_amount: Decimal
