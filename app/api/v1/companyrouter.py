from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.database.services.company_service import CompanyService
from app.ReqResModels.companymodels import (
    CreateCompanyRequest,
    UpdateCompanyRequest,
    CompanyResponse,
    CompanyListResponse
)
from app.ReqResModels.errormodels import COMMON_RESPONSES
from app.logic.exceptions import (
    CompanyNotFoundError,
    CompanyAlreadyExistsError,
    DatabaseError
)

router = APIRouter(
    prefix="/companies",
    tags=["companies"],
    responses=COMMON_RESPONSES
)

@router.post(
    "/",
    response_model=CompanyResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Create a new company"
)
def create_company(
    request: CreateCompanyRequest,
    db: Session = Depends(get_db)
):
    """Create a new company"""
    try:
        return CompanyService.create_company(db, request)
    except CompanyAlreadyExistsError as e:
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
    response_model=CompanyListResponse,
    summary="List companies"
)
def get_companies(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    db: Session = Depends(get_db)
):
    """Get paginated list of companies"""
    return CompanyService.get_companies(db, page, limit)

@router.get(
    "/{company_id}",
    response_model=CompanyResponse,
    summary="Get company by ID"
)
def get_company(
    company_id: int,
    db: Session = Depends(get_db)
):
    """Get a specific company by ID"""
    try:
        return CompanyService.get_company_by_id(db, company_id)
    except CompanyNotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )

@router.put(
    "/{company_id}",
    response_model=CompanyResponse,
    summary="Update company"
)
def update_company(
    company_id: int,
    request: UpdateCompanyRequest,
    db: Session = Depends(get_db)
):
    """Update company name, country or currency"""
    try:
        return CompanyService.update_company(db, company_id, request)
    except CompanyNotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
    except CompanyAlreadyExistsError as e:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail=e.to_detail()
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )
