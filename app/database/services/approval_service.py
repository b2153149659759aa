from typing import List, Optional
from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy import func, or_, and_
from datetime import datetime
import logging

from app.database.models.approval import ApprovalRule, ApprovalRuleCondition, ApprovalRuleApprover
from app.database.models.expense import Expense, ApprovalChainRule, ExpenseApproval, ExpenseStatus
from app.database.models.users import User, Company
from app.logic.conditions import decode_condition, encode_condition
from app.ReqResModels.approvalmodels import (
    CreateApprovalRuleRequest,
    UpdateApprovalRuleRequest,
    ApprovalRuleQueryParams,
    RuleConditionRequest,
    RuleApproverRequest,
    RuleConditionResponse,
    RuleApproverResponse,
    ApprovalRuleResponse,
    ApprovalRuleListResponse,
    ApprovalRuleStatsResponse
)
from app.logic.exceptions import (
    ApprovalRuleNotFoundError,
    CompanyNotFoundError,
    UserNotFoundError,
    RuleEvaluationError,
    RuleInUseError,
    ValidationError,
    DatabaseError
)

logger = logging.getLogger(__name__)

class ApprovalRuleService:
    """Rule Store: CRUD over approval rules plus the ordered active-rule lookup used at submission"""

    @staticmethod
    def create_approval_rule(db: Session, request: CreateApprovalRuleRequest) -> ApprovalRuleResponse:
        """Create a new approval rule"""
        try:
            company = db.query(Company).filter(Company.id == request.company_id).first()
            if not company:
                raise CompanyNotFoundError(f"Company with ID {request.company_id} not found")

            conditions = ApprovalRuleService._validate_conditions(request.conditions)
            ApprovalRuleService._validate_approvers(
                db,
                request.company_id,
                request.approvers,
                request.is_sequence_required,
                request.is_manager_approval_required
            )

            now = datetime.utcnow()
            db_rule = ApprovalRule(
                company_id=request.company_id,
                name=request.name,
                description=request.description,
                is_manager_approval_required=request.is_manager_approval_required,
                is_sequence_required=request.is_sequence_required,
                min_approval_percentage=request.min_approval_percentage,
                priority=request.priority,
                is_active=request.is_active,
                created_at=now,
                updated_at=now
            )
            db.add(db_rule)
            db.flush()  # Get the ID

            ApprovalRuleService._replace_conditions(db_rule, conditions)
            ApprovalRuleService._replace_approvers(db_rule, request.approvers, request.is_sequence_required)

            db.commit()
            db.refresh(db_rule)

            logger.info(f"Approval rule {db_rule.id} '{db_rule.name}' created for company {db_rule.company_id}")
            return ApprovalRuleService._model_to_response(db_rule)

        except (CompanyNotFoundError, UserNotFoundError, ValidationError):
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to create approval rule: {str(e)}")

    @staticmethod
    def get_approval_rule_by_id(db: Session, rule_id: int) -> ApprovalRuleResponse:
        """Get approval rule by ID"""
        rule = ApprovalRuleService._load_rule(db, rule_id)
        return ApprovalRuleService._model_to_response(rule)

    @staticmethod
    def get_approval_rules(db: Session, params: ApprovalRuleQueryParams) -> ApprovalRuleListResponse:
        """Get paginated list of approval rules with filters"""
        query = db.query(ApprovalRule).options(
            selectinload(ApprovalRule.conditions),
            selectinload(ApprovalRule.approvers).joinedload(ApprovalRuleApprover.approver)
        )

        if params.company_id:
            query = query.filter(ApprovalRule.company_id == params.company_id)

        if params.is_active is not None:
            query = query.filter(ApprovalRule.is_active == params.is_active)

        if params.search:
            search_term = f"%{params.search}%"
            query = query.filter(
                or_(
                    ApprovalRule.name.ilike(search_term),
                    ApprovalRule.description.ilike(search_term)
                )
            )

        total = query.count()

        rules = (
            query.order_by(ApprovalRule.priority, ApprovalRule.created_at, ApprovalRule.id)
            .offset((params.page - 1) * params.limit)
            .limit(params.limit)
            .all()
        )

        return ApprovalRuleListResponse(
            rules=[ApprovalRuleService._model_to_response(rule) for rule in rules],
            total=total,
            page=params.page,
            limit=params.limit,
            total_pages=(total + params.limit - 1) // params.limit
        )

    @staticmethod
    def get_active_rules(db: Session, company_id: int) -> List[ApprovalRule]:
        """Active rules of a company in evaluation order: priority, then creation order"""
        return (
            db.query(ApprovalRule)
            .options(
                selectinload(ApprovalRule.conditions),
                selectinload(ApprovalRule.approvers)
            )
            .filter(
                and_(
                    ApprovalRule.company_id == company_id,
                    ApprovalRule.is_active.is_(True)
                )
            )
            .order_by(ApprovalRule.priority, ApprovalRule.created_at, ApprovalRule.id)
            .all()
        )

    @staticmethod
    def update_approval_rule(db: Session, rule_id: int, request: UpdateApprovalRuleRequest) -> ApprovalRuleResponse:
        """
        Update an existing approval rule.

        Expenses already in approval keep the chain snapshot taken at submission;
        only later submissions see the change.
        """
        try:
            rule = db.query(ApprovalRule).filter(ApprovalRule.id == rule_id).first()
            if not rule:
                raise ApprovalRuleNotFoundError(f"Approval rule with ID {rule_id} not found")

            conditions = None
            if request.conditions is not None:
                conditions = ApprovalRuleService._validate_conditions(request.conditions)

            is_sequential = (
                request.is_sequence_required
                if request.is_sequence_required is not None
                else rule.is_sequence_required
            )
            needs_manager = (
                request.is_manager_approval_required
                if request.is_manager_approval_required is not None
                else rule.is_manager_approval_required
            )

            if request.approvers is not None:
                approvers = request.approvers
            else:
                # Re-check the stored approvers against the new sequencing mode
                approvers = [
                    RuleApproverRequest(
                        approver_id=a.approver_id,
                        sequence_order=a.sequence_order if is_sequential else None,
                        is_required=a.is_required
                    )
                    for a in rule.approvers
                ]
                if is_sequential and not rule.is_sequence_required:
                    approvers = [
                        a.model_copy(update={"sequence_order": index})
                        for index, a in enumerate(approvers, start=1)
                    ]

            ApprovalRuleService._validate_approvers(db, rule.company_id, approvers, is_sequential, needs_manager)

            update_data = request.model_dump(exclude_unset=True, exclude={'conditions', 'approvers'})
            for field, value in update_data.items():
                if value is not None:
                    setattr(rule, field, value)

            if conditions is not None:
                ApprovalRuleService._replace_conditions(rule, conditions)
            if request.approvers is not None or request.is_sequence_required is not None:
                ApprovalRuleService._replace_approvers(rule, approvers, is_sequential)

            rule.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(rule)

            logger.info(f"Approval rule {rule.id} updated")
            return ApprovalRuleService._model_to_response(rule)

        except (ApprovalRuleNotFoundError, UserNotFoundError, ValidationError):
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to update approval rule: {str(e)}")

    @staticmethod
    def delete_approval_rule(db: Session, rule_id: int) -> bool:
        """
        Delete an approval rule.

        Refused while an expense awaiting approval has the rule in its chain.
        Decided expenses keep their history; their snapshot rows just lose the link.
        """
        try:
            rule = db.query(ApprovalRule).filter(ApprovalRule.id == rule_id).first()
            if not rule:
                raise ApprovalRuleNotFoundError(f"Approval rule with ID {rule_id} not found")

            in_flight = (
                db.query(ApprovalChainRule.expense_id)
                .join(Expense, Expense.id == ApprovalChainRule.expense_id)
                .filter(
                    and_(
                        ApprovalChainRule.rule_id == rule_id,
                        Expense.status == ExpenseStatus.PENDING_APPROVAL.value
                    )
                )
                .distinct()
                .all()
            )
            if in_flight:
                expense_ids = sorted(row[0] for row in in_flight)
                raise RuleInUseError(
                    f"Approval rule {rule_id} is part of the approval chain of pending expenses {expense_ids}"
                )

            db.query(ApprovalChainRule).filter(ApprovalChainRule.rule_id == rule_id).update(
                {ApprovalChainRule.rule_id: None}, synchronize_session=False
            )
            db.query(ExpenseApproval).filter(ExpenseApproval.rule_id == rule_id).update(
                {ExpenseApproval.rule_id: None}, synchronize_session=False
            )

            db.delete(rule)
            db.commit()

            logger.info(f"Approval rule {rule_id} deleted")
            return True

        except (ApprovalRuleNotFoundError, RuleInUseError):
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to delete approval rule: {str(e)}")

    @staticmethod
    def get_approval_rule_stats(db: Session, company_id: Optional[int] = None) -> ApprovalRuleStatsResponse:
        """Get approval rule statistics"""
        try:
            query = db.query(ApprovalRule)
            if company_id:
                query = query.filter(ApprovalRule.company_id == company_id)

            total_rules = query.count()
            active_rules = query.filter(ApprovalRule.is_active.is_(True)).count()

            sequential_rules = query.filter(ApprovalRule.is_sequence_required.is_(True)).count()
            rules_by_sequence = {
                "sequential": sequential_rules,
                "parallel": total_rules - sequential_rules
            }

            rules_with_manager_approval = query.filter(
                ApprovalRule.is_manager_approval_required.is_(True)
            ).count()

            approver_query = db.query(func.count(ApprovalRuleApprover.id)).join(
                ApprovalRule, ApprovalRule.id == ApprovalRuleApprover.rule_id
            )
            if company_id:
                approver_query = approver_query.filter(ApprovalRule.company_id == company_id)
            total_approvers = approver_query.scalar() or 0
            average_approvers_per_rule = total_approvers / total_rules if total_rules > 0 else 0

            return ApprovalRuleStatsResponse(
                total_rules=total_rules,
                active_rules=active_rules,
                rules_by_sequence=rules_by_sequence,
                rules_with_manager_approval=rules_with_manager_approval,
                average_approvers_per_rule=round(average_approvers_per_rule, 2)
            )

        except Exception as e:
            raise DatabaseError(f"Failed to get approval rule stats: {str(e)}")

    @staticmethod
    def _load_rule(db: Session, rule_id: int) -> ApprovalRule:
        rule = db.query(ApprovalRule).options(
            selectinload(ApprovalRule.conditions),
            selectinload(ApprovalRule.approvers).joinedload(ApprovalRuleApprover.approver)
        ).filter(ApprovalRule.id == rule_id).first()

        if not rule:
            raise ApprovalRuleNotFoundError(f"Approval rule with ID {rule_id} not found")
        return rule

    @staticmethod
    def _validate_conditions(conditions: List[RuleConditionRequest]):
        """Decode each condition up front so malformed rules never reach the store"""
        decoded = []
        for condition in conditions:
            try:
                decoded.append(decode_condition(condition.kind.value, condition.params))
            except RuleEvaluationError as e:
                raise ValidationError(f"Invalid {condition.kind.value} condition: {e.message}")
        return decoded

    @staticmethod
    def _validate_approvers(
        db: Session,
        company_id: int,
        approvers: List[RuleApproverRequest],
        is_sequential: bool,
        needs_manager: bool
    ):
        if not approvers and not needs_manager:
            raise ValidationError("A rule needs at least one approver or manager approval")

        approver_ids = [a.approver_id for a in approvers]
        if len(set(approver_ids)) != len(approver_ids):
            raise ValidationError("Duplicate approvers not allowed")

        if approver_ids:
            existing_approvers = db.query(User).filter(User.id.in_(approver_ids)).all()
            if len(existing_approvers) != len(approver_ids):
                missing_ids = set(approver_ids) - {u.id for u in existing_approvers}
                raise UserNotFoundError(f"Approvers with IDs {sorted(missing_ids)} not found")

            for user in existing_approvers:
                if user.company_id != company_id:
                    raise ValidationError(f"Approver {user.id} does not belong to company {company_id}")
                if not user.is_active:
                    raise ValidationError(f"Approver {user.id} is deactivated")

        if is_sequential and approvers:
            sequence_orders = [a.sequence_order for a in approvers]
            if any(order is None for order in sequence_orders):
                raise ValidationError("Every approver of a sequential rule needs a sequence_order")
            if len(set(sequence_orders)) != len(sequence_orders):
                raise ValidationError("Duplicate sequence orders not allowed")
            if min(sequence_orders) != 1 or max(sequence_orders) != len(sequence_orders):
                raise ValidationError("Sequence orders must start from 1 and be consecutive")

    @staticmethod
    def _replace_conditions(rule: ApprovalRule, conditions):
        rule.conditions.clear()
        for condition in conditions:
            kind, params = encode_condition(condition)
            rule.conditions.append(ApprovalRuleCondition(kind=kind, params=params))

    @staticmethod
    def _replace_approvers(rule: ApprovalRule, approvers: List[RuleApproverRequest], is_sequential: bool):
        rule.approvers.clear()
        for approver_req in approvers:
            rule.approvers.append(ApprovalRuleApprover(
                approver_id=approver_req.approver_id,
                sequence_order=approver_req.sequence_order if is_sequential else None,
                is_required=approver_req.is_required
            ))

    @staticmethod
    def _model_to_response(rule: ApprovalRule) -> ApprovalRuleResponse:
        """Convert SQLAlchemy model to Pydantic response model"""
        approvers = []
        for entry in sorted(rule.approvers, key=lambda a: (a.sequence_order or 0, a.id)):
            approvers.append(RuleApproverResponse(
                id=entry.id,
                approver_id=entry.approver_id,
                approver_name=entry.approver.name if entry.approver else '',
                approver_email=entry.approver.email if entry.approver else '',
                sequence_order=entry.sequence_order,
                is_required=entry.is_required
            ))

        return ApprovalRuleResponse(
            id=rule.id,
            company_id=rule.company_id,
            name=rule.name,
            description=rule.description,
            is_manager_approval_required=rule.is_manager_approval_required,
            is_sequence_required=rule.is_sequence_required,
            min_approval_percentage=rule.min_approval_percentage,
            priority=rule.priority,
            is_active=rule.is_active,
            conditions=[RuleConditionResponse.model_validate(c) for c in rule.conditions],
            approvers=approvers,
            created_at=rule.created_at,
            updated_at=rule.updated_at
        )
