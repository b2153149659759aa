from sqlalchemy.orm import Session, joinedload
from sqlalchemy import func
from datetime import datetime
from decimal import Decimal

from app.database.models.expense import Expense, ExpenseStatus
from app.database.models.users import User
from app.ReqResModels.expensemodels import (
    CreateExpenseRequest,
    UpdateExpenseRequest,
    ExpenseResponse,
    ExpenseListResponse,
    ExpenseStatsResponse,
    ExpenseQueryParams
)
from app.logic.exceptions import (
    ExpenseNotFoundError,
    UserNotFoundError,
    InvalidStateTransitionError,
    ValidationError,
    DatabaseError
)

class ExpenseService:
    """Service class for handling expense-related operations"""

    @staticmethod
    def create_expense(db: Session, request: CreateExpenseRequest) -> ExpenseResponse:
        """Create a new expense in DRAFT"""
        try:
            submitter = db.query(User).filter(User.id == request.submitter_id).first()
            if not submitter:
                raise UserNotFoundError(f"User with ID {request.submitter_id} not found")
            if submitter.company_id != request.company_id:
                raise ValidationError(f"User {request.submitter_id} does not belong to company {request.company_id}")

            expense = Expense(
                submitter_id=request.submitter_id,
                company_id=request.company_id,
                amount=request.amount,
                currency_code=request.currency_code.upper(),
                category=request.category,
                description=request.description,
                remarks=request.remarks,
                expense_date=request.expense_date,
                status=ExpenseStatus.DRAFT.value,
                created_at=datetime.utcnow()
            )

            db.add(expense)
            db.commit()
            db.refresh(expense)

            return ExpenseService._build_expense_response(expense)

        except (UserNotFoundError, ValidationError):
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to create expense: {str(e)}")

    @staticmethod
    def get_expense_by_id(db: Session, expense_id: int) -> ExpenseResponse:
        """Get expense by ID"""
        expense = db.query(Expense).options(
            joinedload(Expense.submitter)
        ).filter(Expense.id == expense_id).first()

        if not expense:
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")

        return ExpenseService._build_expense_response(expense)

    @staticmethod
    def get_expenses(db: Session, params: ExpenseQueryParams) -> ExpenseListResponse:
        """Get expenses with filtering and pagination"""
        query = db.query(Expense).options(joinedload(Expense.submitter))

        if params.submitter_id:
            query = query.filter(Expense.submitter_id == params.submitter_id)

        if params.company_id:
            query = query.filter(Expense.company_id == params.company_id)

        if params.status:
            query = query.filter(Expense.status == params.status.upper())

        if params.category:
            query = query.filter(Expense.category.ilike(f"%{params.category}%"))

        if params.date_from:
            query = query.filter(Expense.expense_date >= params.date_from)

        if params.date_to:
            query = query.filter(Expense.expense_date <= params.date_to)

        if params.amount_min is not None:
            query = query.filter(Expense.amount >= params.amount_min)

        if params.amount_max is not None:
            query = query.filter(Expense.amount <= params.amount_max)

        total_count = query.count()

        offset = (params.page - 1) * params.page_size
        expenses = query.order_by(Expense.created_at.desc(), Expense.id.desc()).offset(offset).limit(params.page_size).all()

        total_pages = (total_count + params.page_size - 1) // params.page_size

        return ExpenseListResponse(
            expenses=[ExpenseService._build_expense_response(expense) for expense in expenses],
            total_count=total_count,
            page=params.page,
            page_size=params.page_size,
            total_pages=total_pages
        )

    @staticmethod
    def update_expense(db: Session, expense_id: int, request: UpdateExpenseRequest) -> ExpenseResponse:
        """Edit a draft expense; submitted expenses are frozen"""
        try:
            expense = db.query(Expense).filter(Expense.id == expense_id).first()
            if not expense:
                raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")

            if expense.status != ExpenseStatus.DRAFT.value:
                raise InvalidStateTransitionError(
                    f"Expense {expense_id} is {expense.status}; only DRAFT expenses can be edited"
                )

            update_data = request.model_dump(exclude_unset=True, exclude_none=True)
            for field, value in update_data.items():
                setattr(expense, field, value.upper() if field == "currency_code" else value)

            expense.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(expense)

            return ExpenseService._build_expense_response(expense)

        except (ExpenseNotFoundError, InvalidStateTransitionError):
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to update expense: {str(e)}")

    @staticmethod
    def delete_expense(db: Session, expense_id: int) -> bool:
        """Delete a draft expense"""
        try:
            expense = db.query(Expense).filter(Expense.id == expense_id).first()
            if not expense:
                raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")

            if expense.status != ExpenseStatus.DRAFT.value:
                raise InvalidStateTransitionError(
                    f"Expense {expense_id} is {expense.status}; only DRAFT expenses can be deleted"
                )

            db.delete(expense)
            db.commit()
            return True

        except (ExpenseNotFoundError, InvalidStateTransitionError):
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to delete expense: {str(e)}")

    @staticmethod
    def get_expense_stats(db: Session, company_id: int = None, submitter_id: int = None) -> ExpenseStatsResponse:
        """Get expense statistics"""
        query = db.query(Expense)

        if company_id:
            query = query.filter(Expense.company_id == company_id)

        if submitter_id:
            query = query.filter(Expense.submitter_id == submitter_id)

        def count_with(status: ExpenseStatus) -> int:
            return query.filter(Expense.status == status.value).count()

        def amount_with(status: ExpenseStatus = None) -> Decimal:
            amount_query = query.with_entities(func.coalesce(func.sum(Expense.amount), 0))
            if status is not None:
                amount_query = amount_query.filter(Expense.status == status.value)
            return Decimal(str(amount_query.scalar() or 0))

        return ExpenseStatsResponse(
            total_expenses=query.count(),
            draft_expenses=count_with(ExpenseStatus.DRAFT),
            pending_expenses=count_with(ExpenseStatus.PENDING_APPROVAL),
            approved_expenses=count_with(ExpenseStatus.APPROVED),
            rejected_expenses=count_with(ExpenseStatus.REJECTED),
            total_amount=amount_with(),
            pending_amount=amount_with(ExpenseStatus.PENDING_APPROVAL),
            approved_amount=amount_with(ExpenseStatus.APPROVED)
        )

    @staticmethod
    def _build_expense_response(expense: Expense) -> ExpenseResponse:
        """Build expense response object"""
        return ExpenseResponse(
            id=expense.id,
            company_id=expense.company_id,
            submitter_id=expense.submitter_id,
            submitter_name=expense.submitter.name if expense.submitter else None,
            amount=expense.amount,
            currency_code=expense.currency_code,
            category=expense.category,
            description=expense.description,
            remarks=expense.remarks,
            expense_date=expense.expense_date,
            status=expense.status,
            chain_error=expense.chain_error,
            submitted_at=expense.submitted_at,
            decided_at=expense.decided_at,
            created_at=expense.created_at,
            updated_at=expense.updated_at
        )
