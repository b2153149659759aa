from fastapi import APIRouter, Depends, HTTPException, status as http_status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.database.services.expense_approval_service import ExpenseApprovalService
from app.logic.notifications import NotificationSink, get_notification_sink
from app.ReqResModels.approvalmodels import (
    ApprovalDecisionRequest,
    ApprovalDecisionResponse,
    ApproverPendingListResponse
)
from app.ReqResModels.errormodels import error_responses
from app.logic.exceptions import (
    NotFoundError,
    AuthorizationError,
    StateConflictError,
    DatabaseError
)

router = APIRouter(
    prefix="/approvals",
    tags=["approvals"],
    responses=error_responses(403, 409)
)

@router.put(
    "/{approval_id}",
    response_model=ApprovalDecisionResponse,
    summary="Approve or reject",
    description=(
        "Record the assigned approver's decision. A rejection needs a comment and "
        "rejects the whole expense; approvals advance the chain."
    )
)
def decide_approval(
    approval_id: int,
    request: ApprovalDecisionRequest,
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink)
):
    """Record an approval decision"""
    try:
        return ExpenseApprovalService.on_decision(db, approval_id, request, sink)
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
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )

@router.get(
    "/pending/{approver_id}",
    response_model=ApproverPendingListResponse,
    summary="Get an approver's queue",
    description="Only approvals the user can decide right now; later sequential steps are hidden"
)
def get_pending_approvals(
    approver_id: int,
    db: Session = Depends(get_db)
):
    """Get actionable approvals for a user"""
    return ExpenseApprovalService.get_pending_approvals(db, approver_id)
