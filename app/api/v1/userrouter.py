from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from sqlalchemy.orm import Session
from typing import Optional

from app.database.database import get_db
from app.database.services.user_service import UserService
from app.ReqResModels.usermodels import (
    CreateUserRequest,
    UpdateUserRequest,
    UserQueryParams,
    UserResponse,
    UserListResponse,
    UserRole,
)
from app.ReqResModels.errormodels import COMMON_RESPONSES
from app.logic.exceptions import (
    UserNotFoundError,
    UserAlreadyExistsError,
    CompanyNotFoundError,
    ValidationError,
    DatabaseError
)

router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses=COMMON_RESPONSES
)

@router.post(
    "/",
    response_model=UserResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Create a new user",
    description="Create a user with a role, an optional department and an optional direct manager"
)
def create_user(
    request: CreateUserRequest,
    db: Session = Depends(get_db)
):
    """Create a new user"""
    try:
        return UserService.create_user(db, request)
    except CompanyNotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
    except (UserAlreadyExistsError, ValidationError) as e:
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
    response_model=UserListResponse,
    summary="List users"
)
def get_users(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search in name and email"),
    company_id: Optional[int] = Query(None, description="Filter by company"),
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    manager_id: Optional[int] = Query(None, description="Filter by manager"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    db: Session = Depends(get_db)
):
    """Get paginated list of users with filters"""
    params = UserQueryParams(
        page=page,
        limit=limit,
        search=search,
        company_id=company_id,
        role=role,
        manager_id=manager_id,
        is_active=is_active
    )
    return UserService.get_users(db, params)

@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user by ID"
)
def get_user(
    user_id: int,
    db: Session = Depends(get_db)
):
    """Get a specific user by ID"""
    try:
        return UserService.get_user_by_id(db, user_id)
    except UserNotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )

@router.put(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update user",
    description="Change role, department or manager, or deactivate a user"
)
def update_user(
    user_id: int,
    request: UpdateUserRequest,
    db: Session = Depends(get_db)
):
    """Update user information"""
    try:
        return UserService.update_user(db, user_id, request)
    except UserNotFoundError as e:
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
