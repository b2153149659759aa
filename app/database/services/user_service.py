from typing import Optional
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import or_, and_
from datetime import datetime

from app.database.models.users import User, Company
from app.ReqResModels.usermodels import (
    CreateUserRequest,
    UpdateUserRequest,
    UserQueryParams,
    UserResponse,
    UserListResponse
)
from app.logic.exceptions import (
    UserNotFoundError,
    UserAlreadyExistsError,
    CompanyNotFoundError,
    ValidationError,
    DatabaseError
)


class UserDirectory:
    """Read-only view of users used by the approval engine to resolve approvers"""

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def resolve_manager(self, user: User) -> Optional[User]:
        """Direct manager of a user, or None if they have none"""
        if user.manager_id is None:
            return None
        return self.get_user(user.manager_id)

    def is_valid_approver(self, user_id: int, company_id: int) -> bool:
        user = self.get_user(user_id)
        return bool(user and user.is_active and user.company_id == company_id)


class UserService:

    @staticmethod
    def create_user(db: Session, request: CreateUserRequest) -> UserResponse:
        """Create a new user"""
        try:
            existing_user = db.query(User).filter(User.email == request.email).first()
            if existing_user:
                raise UserAlreadyExistsError(f"User with email '{request.email}' already exists")

            company = db.query(Company).filter(Company.id == request.company_id).first()
            if not company:
                raise CompanyNotFoundError(f"Company with ID {request.company_id} not found")

            if request.manager_id:
                UserService._check_manager(db, request.manager_id, request.company_id)

            db_user = User(
                company_id=request.company_id,
                name=request.name,
                email=request.email,
                role=request.role.value,
                department=request.department,
                manager_id=request.manager_id,
                is_active=True,
                created_at=datetime.utcnow()
            )

            db.add(db_user)
            db.commit()
            db.refresh(db_user)

            return UserService._model_to_response(db_user)

        except (UserAlreadyExistsError, CompanyNotFoundError, ValidationError):
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to create user: {str(e)}")

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> UserResponse:
        """Get user by ID"""
        user = db.query(User).options(joinedload(User.manager)).filter(User.id == user_id).first()
        if not user:
            raise UserNotFoundError(f"User with ID {user_id} not found")

        return UserService._model_to_response(user)

    @staticmethod
    def get_users(db: Session, params: UserQueryParams) -> UserListResponse:
        """Get paginated list of users with filters"""
        query = db.query(User).options(joinedload(User.manager))

        if params.search:
            search_term = f"%{params.search}%"
            query = query.filter(
                or_(
                    User.name.ilike(search_term),
                    User.email.ilike(search_term)
                )
            )

        if params.company_id:
            query = query.filter(User.company_id == params.company_id)

        if params.role:
            query = query.filter(User.role == params.role.value)

        if params.manager_id:
            query = query.filter(User.manager_id == params.manager_id)

        if params.is_active is not None:
            query = query.filter(User.is_active == params.is_active)

        total = query.count()

        offset = (params.page - 1) * params.limit
        users = query.order_by(User.id).offset(offset).limit(params.limit).all()

        return UserListResponse(
            users=[UserService._model_to_response(user) for user in users],
            total=total,
            page=params.page,
            limit=params.limit,
            total_pages=(total + params.limit - 1) // params.limit
        )

    @staticmethod
    def update_user(db: Session, user_id: int, request: UpdateUserRequest) -> UserResponse:
        """Update role, department, manager or active flag of a user"""
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise UserNotFoundError(f"User with ID {user_id} not found")

            if request.manager_id:
                if request.manager_id == user_id:
                    raise ValidationError("A user cannot be their own manager")
                UserService._check_manager(db, request.manager_id, user.company_id)

            update_data = request.model_dump(exclude_unset=True)
            for field, value in update_data.items():
                if field == 'role' and value is not None:
                    user.role = value.value if hasattr(value, 'value') else value
                elif field in ('name', 'is_active') and value is None:
                    continue
                else:
                    setattr(user, field, value)

            user.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(user)

            return UserService._model_to_response(user)

        except (UserNotFoundError, ValidationError):
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to update user: {str(e)}")

    @staticmethod
    def _check_manager(db: Session, manager_id: int, company_id: int):
        manager = db.query(User).filter(
            and_(User.id == manager_id, User.company_id == company_id)
        ).first()
        if not manager:
            raise ValidationError(f"Manager with ID {manager_id} not found in the same company")
        if not manager.is_active:
            raise ValidationError(f"Manager with ID {manager_id} is deactivated")

    @staticmethod
    def _model_to_response(user: User) -> UserResponse:
        """Convert SQLAlchemy model to Pydantic response model"""
        return UserResponse(
            id=user.id,
            company_id=user.company_id,
            name=user.name,
            email=user.email,
            role=user.role,
            department=user.department,
            manager_id=user.manager_id,
            manager_name=user.manager.name if user.manager else None,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at
        )
