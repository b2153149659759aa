from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from sqlalchemy.orm import Session
from typing import Optional

from app.database.database import get_db
from app.database.services.approval_service import ApprovalRuleService
from app.ReqResModels.approvalmodels import (
    CreateApprovalRuleRequest,
    UpdateApprovalRuleRequest,
    ApprovalRuleQueryParams,
    ApprovalRuleResponse,
    ApprovalRuleListResponse,
    ApprovalRuleStatsResponse
)
from app.ReqResModels.errormodels import error_responses
from app.logic.exceptions import (
    ApprovalRuleNotFoundError,
    CompanyNotFoundError,
    UserNotFoundError,
    RuleInUseError,
    ValidationError,
    DatabaseError
)

router = APIRouter(
    prefix="/approval-rules",
    tags=["approval-rules"],
    responses=error_responses(409, descriptions={409: "Rule is used by an expense awaiting approval"})
)

@router.post(
    "/",
    response_model=ApprovalRuleResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Create a new approval rule",
    description="Create a company approval rule with its conditions, approvers and threshold"
)
def create_approval_rule(
    request: CreateApprovalRuleRequest,
    db: Session = Depends(get_db)
):
    """Create a new approval rule"""
    try:
        return ApprovalRuleService.create_approval_rule(db, request)
    except (CompanyNotFoundError, UserNotFoundError) as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail=e.to_detail()
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )

@router.get(
    "/stats/overview",
    response_model=ApprovalRuleStatsResponse,
    summary="Get approval rule statistics"
)
def get_approval_rule_stats(
    company_id: Optional[int] = Query(None, description="Restrict to one company"),
    db: Session = Depends(get_db)
):
    """Get approval rule statistics"""
    try:
        return ApprovalRuleService.get_approval_rule_stats(db, company_id)
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )

@router.get(
    "/",
    response_model=ApprovalRuleListResponse,
    summary="List approval rules",
    description="Rules are returned in evaluation order: priority, then creation"
)
def get_approval_rules(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    company_id: Optional[int] = Query(None, description="Filter by company"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    search: Optional[str] = Query(None, description="Search in name and description"),
    db: Session = Depends(get_db)
):
    """Get paginated list of approval rules"""
    params = ApprovalRuleQueryParams(
        page=page,
        limit=limit,
        company_id=company_id,
        is_active=is_active,
        search=search
    )
    return ApprovalRuleService.get_approval_rules(db, params)

@router.get(
    "/{rule_id}",
    response_model=ApprovalRuleResponse,
    summary="Get approval rule by ID"
)
def get_approval_rule(
    rule_id: int,
    db: Session = Depends(get_db)
):
    """Get a specific approval rule by ID"""
    try:
        return ApprovalRuleService.get_approval_rule_by_id(db, rule_id)
    except ApprovalRuleNotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )

@router.put(
    "/{rule_id}",
    response_model=ApprovalRuleResponse,
    summary="Update approval rule",
    description="Changes apply to expenses submitted afterwards; chains already built are unaffected"
)
def update_approval_rule(
    rule_id: int,
    request: UpdateApprovalRuleRequest,
    db: Session = Depends(get_db)
):
    """Update an existing approval rule"""
    try:
        return ApprovalRuleService.update_approval_rule(db, rule_id, request)
    except (ApprovalRuleNotFoundError, UserNotFoundError) as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail=e.to_detail()
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )

@router.delete(
    "/{rule_id}",
    status_code=http_status.HTTP_204_NO_CONTENT,
    summary="Delete approval rule"
)
def delete_approval_rule(
    rule_id: int,
    db: Session = Depends(get_db)
):
    """Delete an approval rule that no pending expense depends on"""
    try:
        ApprovalRuleService.delete_approval_rule(db, rule_id)
    except ApprovalRuleNotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
    except RuleInUseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_409_CONFLICT,
            detail=e.to_detail()
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )
