from sqlalchemy.orm import Session
from sqlalchemy import func, and_
from datetime import datetime

from app.database.models.users import Company, User
from app.ReqResModels.companymodels import (
    CreateCompanyRequest,
    UpdateCompanyRequest,
    CompanyResponse,
    CompanyListResponse
)
from app.logic.exceptions import (
    CompanyNotFoundError,
    CompanyAlreadyExistsError,
    DatabaseError
)

class CompanyService:

    @staticmethod
    def create_company(db: Session, request: CreateCompanyRequest) -> CompanyResponse:
        """Create a new company"""
        try:
            existing_company = db.query(Company).filter(Company.name == request.name).first()
            if existing_company:
                raise CompanyAlreadyExistsError(f"Company with name '{request.name}' already exists")

            db_company = Company(
                name=request.name,
                country=request.country,
                currency_code=request.currency_code.upper(),
                created_at=datetime.utcnow()
            )

            db.add(db_company)
            db.commit()
            db.refresh(db_company)

            return CompanyService._model_to_response(db, db_company)

        except CompanyAlreadyExistsError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to create company: {str(e)}")

    @staticmethod
    def get_company_by_id(db: Session, company_id: int) -> CompanyResponse:
        """Get company by ID"""
        company = db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise CompanyNotFoundError(f"Company with ID {company_id} not found")

        return CompanyService._model_to_response(db, company)

    @staticmethod
    def get_companies(db: Session, page: int = 1, limit: int = 10) -> CompanyListResponse:
        """Get paginated list of companies"""
        query = db.query(Company).order_by(Company.id)
        total = query.count()
        companies = query.offset((page - 1) * limit).limit(limit).all()

        return CompanyListResponse(
            companies=[CompanyService._model_to_response(db, c) for c in companies],
            total=total,
            page=page,
            limit=limit,
            total_pages=(total + limit - 1) // limit
        )

    @staticmethod
    def update_company(db: Session, company_id: int, request: UpdateCompanyRequest) -> CompanyResponse:
        """Update company information"""
        try:
            company = db.query(Company).filter(Company.id == company_id).first()
            if not company:
                raise CompanyNotFoundError(f"Company with ID {company_id} not found")

            # Check if new name conflicts with existing company
            if request.name and request.name != company.name:
                existing = db.query(Company).filter(
                    and_(Company.name == request.name, Company.id != company_id)
                ).first()
                if existing:
                    raise CompanyAlreadyExistsError(f"Company with name '{request.name}' already exists")

            update_data = request.model_dump(exclude_unset=True, exclude_none=True)
            for field, value in update_data.items():
                setattr(company, field, value.upper() if field == "currency_code" else value)

            company.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(company)

            return CompanyService._model_to_response(db, company)

        except (CompanyNotFoundError, CompanyAlreadyExistsError):
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to update company: {str(e)}")

    @staticmethod
    def _model_to_response(db: Session, company: Company) -> CompanyResponse:
        """Convert SQLAlchemy model to Pydantic response model"""
        user_count = db.query(func.count(User.id)).filter(User.company_id == company.id).scalar() or 0

        return CompanyResponse(
            id=company.id,
            name=company.name,
            country=company.country,
            currency_code=company.currency_code,
            created_at=company.created_at,
            updated_at=company.updated_at,
            user_count=user_count
        )
