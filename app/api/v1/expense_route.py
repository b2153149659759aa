from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date
from decimal import Decimal

from app.database.database import get_db
from app.database.services.expense_service import ExpenseService
from app.database.services.expense_approval_service import ExpenseApprovalService
from app.logic.notifications import NotificationSink, get_notification_sink
from app.ReqResModels.expensemodels import (
    CreateExpenseRequest,
    UpdateExpenseRequest,
    SubmitExpenseRequest,
    RetryChainRequest,
    ExpenseQueryParams,
    ExpenseResponse,
    ExpenseListResponse,
    SubmitExpenseResponse,
    ExpenseStatsResponse
)
from app.ReqResModels.approvalmodels import ExpenseApprovalStatusResponse
from app.ReqResModels.errormodels import error_responses
from app.logic.exceptions import (
    NotFoundError,
    AuthorizationError,
    StateConflictError,
    ConfigurationError,
    ValidationError,
    DatabaseError
)

router = APIRouter(
    prefix="/expenses",
    tags=["expenses"],
    responses=error_responses(403, 409, 422)
)

@router.post(
    "/",
    response_model=ExpenseResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Create a draft expense"
)
def create_expense(
    request: CreateExpenseRequest,
    db: Session = Depends(get_db)
):
    """Create a new expense in DRAFT"""
    try:
        return ExpenseService.create_expense(db, request)
    except NotFoundError as e:
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
    "/",
    response_model=ExpenseListResponse,
    summary="List expenses"
)
def get_expenses(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Number of items per page"),
    submitter_id: Optional[int] = Query(None, description="Filter by submitter user ID"),
    company_id: Optional[int] = Query(None, description="Filter by company ID"),
    status: Optional[str] = Query(None, description="Filter by expense status"),
    category: Optional[str] = Query(None, description="Filter by expense category"),
    date_from: Optional[date] = Query(None, description="Filter expenses from this date"),
    date_to: Optional[date] = Query(None, description="Filter expenses to this date"),
    amount_min: Optional[Decimal] = Query(None, ge=0, description="Minimum amount filter"),
    amount_max: Optional[Decimal] = Query(None, ge=0, description="Maximum amount filter"),
    db: Session = Depends(get_db)
):
    """Get expenses with filtering and pagination"""
    params = ExpenseQueryParams(
        page=page,
        page_size=page_size,
        submitter_id=submitter_id,
        company_id=company_id,
        status=status,
        category=category,
        date_from=date_from,
        date_to=date_to,
        amount_min=amount_min,
        amount_max=amount_max
    )
    return ExpenseService.get_expenses(db, params)

@router.get(
    "/stats/summary",
    response_model=ExpenseStatsResponse,
    summary="Get expense statistics"
)
def get_expense_stats(
    company_id: Optional[int] = Query(None, description="Filter by company ID"),
    submitter_id: Optional[int] = Query(None, description="Filter by submitter user ID"),
    db: Session = Depends(get_db)
):
    """Get expense counts and amounts per status"""
    return ExpenseService.get_expense_stats(db, company_id, submitter_id)

@router.get(
    "/{expense_id}",
    response_model=ExpenseResponse,
    summary="Get expense by ID"
)
def get_expense(
    expense_id: int,
    db: Session = Depends(get_db)
):
    """Get a specific expense by ID"""
    try:
        return ExpenseService.get_expense_by_id(db, expense_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )

@router.put(
    "/{expense_id}",
    response_model=ExpenseResponse,
    summary="Update a draft expense"
)
def update_expense(
    expense_id: int,
    request: UpdateExpenseRequest,
    db: Session = Depends(get_db)
):
    """Update an expense that has not been submitted yet"""
    try:
        return ExpenseService.update_expense(db, expense_id, request)
    except NotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
    except StateConflictError as e:
        raise HTTPException(
            status_code=http_status.HTTP_409_CONFLICT,
            detail=e.to_detail()
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )

@router.delete(
    "/{expense_id}",
    status_code=http_status.HTTP_204_NO_CONTENT,
    summary="Delete a draft expense"
)
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db)
):
    """Delete an expense that has not been submitted yet"""
    try:
        ExpenseService.delete_expense(db, expense_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
    except StateConflictError as e:
        raise HTTPException(
            status_code=http_status.HTTP_409_CONFLICT,
            detail=e.to_detail()
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )

@router.put(
    "/{expense_id}/submit",
    response_model=SubmitExpenseResponse,
    summary="Submit an expense for approval",
    description=(
        "Evaluates the company's active approval rules and builds the approval chain. "
        "An expense no rule applies to is approved immediately."
    )
)
def submit_expense(
    expense_id: int,
    request: SubmitExpenseRequest,
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink)
):
    """Submit a draft expense"""
    try:
        return ExpenseApprovalService.on_submit(db, expense_id, request.submitter_id, sink)
    except NotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
    except AuthorizationError as e:
        raise HTTPException(
            status_code=http_status.HTTP_403_FORBIDDEN,
            detail=e.to_detail()
        )
    except StateConflictError as e:
        raise HTTPException(
            status_code=http_status.HTTP_409_CONFLICT,
            detail=e.to_detail()
        )
    except ConfigurationError as e:
        raise HTTPException(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.to_detail()
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )

@router.put(
    "/{expense_id}/approval-chain/retry",
    response_model=SubmitExpenseResponse,
    summary="Retry building the approval chain",
    description=(
        "For a submitted expense whose chain could not be built, e.g. because an approver was deactivated. "
        "Only the submitter or an admin of the company may retry."
    )
)
def retry_approval_chain(
    expense_id: int,
    request: RetryChainRequest,
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink)
):
    """Re-run rule evaluation for an expense stuck without approvers"""
    try:
        return ExpenseApprovalService.retry_chain_build(db, expense_id, request.requested_by, sink)
    except NotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
    except AuthorizationError as e:
        raise HTTPException(
            status_code=http_status.HTTP_403_FORBIDDEN,
            detail=e.to_detail()
        )
    except StateConflictError as e:
        raise HTTPException(
            status_code=http_status.HTTP_409_CONFLICT,
            detail=e.to_detail()
        )
    except ConfigurationError as e:
        raise HTTPException(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.to_detail()
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )

@router.get(
    "/{expense_id}/approvals",
    response_model=ExpenseApprovalStatusResponse,
    summary="Get the approval chain of an expense"
)
def get_expense_approvals(
    expense_id: int,
    db: Session = Depends(get_db)
):
    """Approval progress per rule, with the approvals that can be decided now"""
    try:
        return ExpenseApprovalService.get_expense_approval_status(db, expense_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
