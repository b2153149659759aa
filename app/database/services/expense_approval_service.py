from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy import and_
from datetime import datetime
from decimal import Decimal
from typing import Optional
import logging

from app.database.models.expense import (
    Expense,
    ExpenseApproval,
    ExpenseStatus,
    ApprovalStatus
)
from app.database.models.users import User
from app.database.services.approval_service import ApprovalRuleService
from app.database.services.user_service import UserDirectory
from app.logic.chain_builder import build_approval_chain
from app.logic.decision_processor import (
    record_decision,
    compute_rule_state,
    records_for_rule,
    required_approvals,
    actionable_approvals,
    actionable_for_expense
)
from app.logic.rule_evaluator import ExpenseFacts, evaluate_applicable_rules
from app.logic.notifications import NotificationEvent, NotificationEventType, NotificationSink
from app.ReqResModels.approvalmodels import (
    ApprovalDecisionRequest,
    ApprovalDecisionResponse,
    ExpenseApprovalResponse,
    ChainRuleStatusResponse,
    ExpenseApprovalStatusResponse,
    PendingApprovalResponse,
    ApproverPendingListResponse
)
from app.ReqResModels.expensemodels import SubmitExpenseResponse
from app.logic.exceptions import (
    BaseCustomError,
    ExpenseNotFoundError,
    ApprovalNotFoundError,
    AuthorizationError,
    InvalidStateTransitionError,
    InvalidApproverError,
    DatabaseError
)

logger = logging.getLogger(__name__)

class ExpenseApprovalService:
    """Drives an expense from submission through its approval chain to a final decision"""

    @staticmethod
    def on_submit(db: Session, expense_id: int, submitter_id: int, sink: NotificationSink) -> SubmitExpenseResponse:
        """
        Move a DRAFT expense into approval.

        The status change is committed before the chain is built, so a chain that
        cannot be built leaves a PENDING_APPROVAL expense with `chain_error` set
        that can be retried once the rules or the org chart are fixed.
        """
        try:
            expense = ExpenseApprovalService._lock_expense(db, expense_id)

            if expense.submitter_id != submitter_id:
                raise AuthorizationError(f"User {submitter_id} cannot submit expense {expense_id} of another user")

            if expense.status != ExpenseStatus.DRAFT.value:
                raise InvalidStateTransitionError(
                    f"Expense {expense_id} is {expense.status}; only DRAFT expenses can be submitted"
                )

            now = datetime.utcnow()
            expense.status = ExpenseStatus.PENDING_APPROVAL.value
            expense.submitted_at = now
            expense.updated_at = now
            db.commit()

            logger.info(f"Expense {expense_id} submitted by user {submitter_id}")

        except BaseCustomError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to submit expense: {str(e)}")

        return ExpenseApprovalService._build_chain(db, expense_id, sink)

    @staticmethod
    def retry_chain_build(db: Session, expense_id: int, requested_by: int, sink: NotificationSink) -> SubmitExpenseResponse:
        """Re-run rule evaluation for a submitted expense whose chain could not be built"""
        logger.info(f"Expense {expense_id}: approval chain retry requested by user {requested_by}")
        return ExpenseApprovalService._build_chain(db, expense_id, sink, requested_by=requested_by)

    @staticmethod
    def _check_retry_allowed(db: Session, expense: Expense, requested_by: int):
        if expense.submitter_id == requested_by:
            return
        requester = db.query(User).filter(User.id == requested_by).first()
        if requester is None or requester.role != "admin" or requester.company_id != expense.company_id:
            raise AuthorizationError(
                f"User {requested_by} cannot retry expense {expense.id}; only its submitter or an admin can"
            )

    @staticmethod
    def _build_chain(
        db: Session,
        expense_id: int,
        sink: NotificationSink,
        requested_by: Optional[int] = None
    ) -> SubmitExpenseResponse:
        events = []
        try:
            expense = ExpenseApprovalService._lock_expense(db, expense_id)

            if requested_by is not None:
                ExpenseApprovalService._check_retry_allowed(db, expense, requested_by)

            if expense.status != ExpenseStatus.PENDING_APPROVAL.value or expense.approvals:
                raise InvalidStateTransitionError(
                    f"Expense {expense_id} already has an approval chain or is not awaiting approval"
                )

            submitter = db.query(User).filter(User.id == expense.submitter_id).first()
            facts = ExpenseFacts(
                amount=Decimal(str(expense.amount)),
                category=expense.category,
                submitter_role=submitter.role,
                submitter_department=submitter.department
            )

            active_rules = ApprovalRuleService.get_active_rules(db, expense.company_id)
            applicable_ids = evaluate_applicable_rules(facts, active_rules)

            if not applicable_ids:
                now = datetime.utcnow()
                expense.status = ExpenseStatus.APPROVED.value
                expense.decided_at = now
                expense.updated_at = now
                expense.chain_error = None
                db.commit()

                logger.info(f"Expense {expense_id} auto-approved: no approval rule applies")
                sink.emit(NotificationEvent(
                    event_type=NotificationEventType.EXPENSE_AUTO_APPROVED,
                    user_id=expense.submitter_id,
                    expense_id=expense_id,
                    message=f"Your expense #{expense_id} was approved automatically"
                ))
                return SubmitExpenseResponse(
                    expense_id=expense_id,
                    status=ExpenseStatus.APPROVED.value,
                    message="No approval rule applies; expense approved"
                )

            rules_by_id = {rule.id: rule for rule in active_rules}
            applicable = [rules_by_id[rule_id] for rule_id in applicable_ids]

            approvals = build_approval_chain(db, expense, applicable, UserDirectory(db))
            expense.chain_error = None
            expense.updated_at = datetime.utcnow()
            db.flush()
            db.expire(expense, ["chain_rules", "approvals"])

            approval_ids = [a.id for a in approvals]
            for approval in actionable_for_expense(expense):
                events.append(ExpenseApprovalService._approval_requested(expense, approval))

            db.commit()

        except InvalidApproverError as e:
            db.rollback()
            ExpenseApprovalService._record_chain_error(db, expense_id, e.message)
            raise
        except BaseCustomError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to build approval chain: {str(e)}")

        logger.info(f"Expense {expense_id}: approval chain built with {len(approval_ids)} task(s)")
        sink.emit_all(events)

        return SubmitExpenseResponse(
            expense_id=expense_id,
            status=ExpenseStatus.PENDING_APPROVAL.value,
            message="Expense submitted for approval",
            applicable_rule_ids=applicable_ids,
            approval_ids=approval_ids
        )

    @staticmethod
    def _record_chain_error(db: Session, expense_id: int, message: str):
        try:
            expense = ExpenseApprovalService._lock_expense(db, expense_id)
            expense.chain_error = message
            expense.updated_at = datetime.utcnow()
            db.commit()
            logger.warning(f"Expense {expense_id}: approval chain could not be built: {message}")
        except Exception as e:
            db.rollback()
            logger.error(f"Expense {expense_id}: failed to record chain error: {str(e)}")

    @staticmethod
    def on_decision(
        db: Session,
        approval_id: int,
        request: ApprovalDecisionRequest,
        sink: NotificationSink
    ) -> ApprovalDecisionResponse:
        """Apply an approver's decision under a row lock on the owning expense"""
        events = []
        try:
            expense_id = db.query(ExpenseApproval.expense_id).filter(ExpenseApproval.id == approval_id).scalar()
            if expense_id is None:
                raise ApprovalNotFoundError(f"Approval with ID {approval_id} not found")

            expense = ExpenseApprovalService._lock_expense(db, expense_id)

            result = record_decision(
                db,
                expense,
                approval_id,
                request.approver_id,
                request.decision,
                request.comment
            )

            if result.outcome is not None:
                now = datetime.utcnow()
                expense.status = result.outcome.value
                expense.decided_at = now
                expense.updated_at = now

                if result.outcome == ExpenseStatus.APPROVED:
                    events.append(NotificationEvent(
                        event_type=NotificationEventType.EXPENSE_APPROVED,
                        user_id=expense.submitter_id,
                        expense_id=expense_id,
                        message=f"Your expense #{expense_id} has been approved"
                    ))
                else:
                    events.append(NotificationEvent(
                        event_type=NotificationEventType.EXPENSE_REJECTED,
                        user_id=expense.submitter_id,
                        expense_id=expense_id,
                        message=f"Your expense #{expense_id} has been rejected. Reason: {request.comment}"
                    ))
            else:
                for approval in result.newly_actionable:
                    events.append(ExpenseApprovalService._approval_requested(expense, approval))

            expense_status = expense.status
            next_approval_ids = [a.id for a in result.newly_actionable]
            db.commit()

        except BaseCustomError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to record decision: {str(e)}")

        sink.emit_all(events)

        return ApprovalDecisionResponse(
            approval_id=approval_id,
            decision=request.decision,
            expense_id=expense_id,
            expense_status=expense_status,
            is_decided=result.outcome is not None,
            next_approval_ids=next_approval_ids
        )

    @staticmethod
    def get_expense_approval_status(db: Session, expense_id: int) -> ExpenseApprovalStatusResponse:
        """Chain view of an expense, grouped per applicable rule"""
        expense = db.query(Expense).options(
            selectinload(Expense.chain_rules),
            selectinload(Expense.approvals).joinedload(ExpenseApproval.approver)
        ).filter(Expense.id == expense_id).first()

        if not expense:
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")

        actionable_ids = [a.id for a in actionable_for_expense(expense)]

        rules = []
        for chain_rule in expense.chain_rules:
            records = records_for_rule(chain_rule, expense.approvals)
            rules.append(ChainRuleStatusResponse(
                chain_rule_id=chain_rule.id,
                rule_id=chain_rule.rule_id,
                rule_name=chain_rule.rule_name,
                position=chain_rule.position,
                is_sequential=chain_rule.is_sequential,
                min_approval_percentage=chain_rule.min_approval_percentage,
                total_approvers=chain_rule.total_approvers,
                required_approvals=required_approvals(chain_rule),
                approved_count=sum(1 for a in records if a.status == ApprovalStatus.APPROVED.value),
                state=compute_rule_state(chain_rule, records),
                approvals=[
                    ExpenseApprovalService._approval_to_response(a, a.id in actionable_ids)
                    for a in sorted(records, key=lambda a: (a.sequence_order if a.sequence_order is not None else 0, a.id))
                ]
            ))

        return ExpenseApprovalStatusResponse(
            expense_id=expense.id,
            status=expense.status,
            is_fully_approved=expense.status == ExpenseStatus.APPROVED.value,
            chain_error=expense.chain_error,
            submitted_at=expense.submitted_at,
            decided_at=expense.decided_at,
            rules=rules,
            actionable_approval_ids=actionable_ids
        )

    @staticmethod
    def get_pending_approvals(db: Session, approver_id: int) -> ApproverPendingListResponse:
        """Tasks the approver can act on now; steps waiting on an earlier approver are left out"""
        candidates = db.query(ExpenseApproval).join(
            Expense, Expense.id == ExpenseApproval.expense_id
        ).options(
            joinedload(ExpenseApproval.expense).joinedload(Expense.submitter),
            joinedload(ExpenseApproval.chain_rule)
        ).filter(
            and_(
                ExpenseApproval.approver_id == approver_id,
                ExpenseApproval.status == ApprovalStatus.PENDING.value,
                Expense.status == ExpenseStatus.PENDING_APPROVAL.value
            )
        ).order_by(Expense.submitted_at, ExpenseApproval.id).all()

        pending = []
        for approval in candidates:
            expense = approval.expense
            if approval not in actionable_approvals(approval.chain_rule, expense.approvals):
                continue

            pending.append(PendingApprovalResponse(
                approval_id=approval.id,
                expense_id=expense.id,
                submitter_id=expense.submitter_id,
                submitter_name=expense.submitter.name if expense.submitter else '',
                amount=expense.amount,
                currency_code=expense.currency_code,
                category=expense.category,
                description=expense.description,
                expense_date=expense.expense_date,
                submitted_at=expense.submitted_at,
                rule_name=approval.chain_rule.rule_name,
                sequence_order=approval.sequence_order,
                is_manager_approval=approval.is_manager_approval
            ))

        return ApproverPendingListResponse(
            pending_approvals=pending,
            total_count=len(pending),
            total_amount=sum((p.amount for p in pending), Decimal("0"))
        )

    @staticmethod
    def _lock_query(db: Session, expense_id: int):
        """SELECT ... FOR UPDATE on the expense row, reloading its chain"""
        return db.query(Expense).options(
            selectinload(Expense.chain_rules),
            selectinload(Expense.approvals)
        ).filter(Expense.id == expense_id).populate_existing().with_for_update()

    @staticmethod
    def _lock_expense(db: Session, expense_id: int) -> Expense:
        expense = ExpenseApprovalService._lock_query(db, expense_id).first()

        if not expense:
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")
        return expense

    @staticmethod
    def _approval_requested(expense: Expense, approval: ExpenseApproval) -> NotificationEvent:
        return NotificationEvent(
            event_type=NotificationEventType.APPROVAL_REQUESTED,
            user_id=approval.approver_id,
            expense_id=expense.id,
            message=(
                f"Expense #{expense.id} ({expense.amount} {expense.currency_code}, {expense.category}) "
                f"is waiting for your approval"
            )
        )

    @staticmethod
    def _approval_to_response(approval: ExpenseApproval, is_actionable: bool) -> ExpenseApprovalResponse:
        return ExpenseApprovalResponse(
            id=approval.id,
            expense_id=approval.expense_id,
            chain_rule_id=approval.chain_rule_id,
            rule_id=approval.rule_id,
            approver_id=approval.approver_id,
            approver_name=approval.approver.name if approval.approver else '',
            status=approval.status,
            sequence_order=approval.sequence_order,
            is_manager_approval=approval.is_manager_approval,
            is_required=approval.is_required,
            is_actionable=is_actionable,
            comments=approval.comments,
            processed_at=approval.processed_at,
            created_at=approval.created_at
        )
