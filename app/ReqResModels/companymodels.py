from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

# Request Models
class CreateCompanyRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Company name")
    country: str = Field(..., min_length=2, max_length=100, description="Country name")
    currency_code: str = Field(default="USD", min_length=3, max_length=3, description="Currency code (ISO 4217)")

class UpdateCompanyRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    country: Optional[str] = Field(None, min_length=2, max_length=100)
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)

class CompanyResponse(BaseModel):
    id: int
    name: str
    country: str
    currency_code: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    user_count: int = 0

class CompanyListResponse(BaseModel):
    companies: List[CompanyResponse]
    total: int
    page: int
    limit: int
    total_pages: int
