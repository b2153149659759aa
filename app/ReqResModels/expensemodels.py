from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal

# Request Models
class CreateExpenseRequest(BaseModel):
    submitter_id: int = Field(..., gt=0, description="ID of the user the expense belongs to")
    company_id: int = Field(..., gt=0, description="ID of the company")
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Amount of the expense")
    currency_code: str = Field(default="USD", min_length=3, max_length=10, description="Currency code")
    category: str = Field(..., min_length=1, max_length=100, description="Expense category")
    description: Optional[str] = Field(None, description="Expense description")
    remarks: Optional[str] = Field(None, description="Additional remarks")
    expense_date: date = Field(..., description="Date when the expense occurred")

    @field_validator('expense_date')
    @classmethod
    def validate_expense_date(cls, v):
        if v > date.today():
            raise ValueError('Expense date cannot be in the future')
        return v

class UpdateExpenseRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    currency_code: Optional[str] = Field(None, min_length=3, max_length=10)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    remarks: Optional[str] = None
    expense_date: Optional[date] = None

    @field_validator('expense_date')
    @classmethod
    def validate_expense_date(cls, v):
        if v is not None and v > date.today():
            raise ValueError('Expense date cannot be in the future')
        return v

class RetryChainRequest(BaseModel):
    requested_by: int = Field(..., gt=0, description="The expense's submitter or an admin of its company")

class SubmitExpenseRequest(BaseModel):
    submitter_id: int = Field(..., gt=0, description="Must be the expense's submitter")

class ExpenseQueryParams(BaseModel):
    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(default=10, ge=1, le=100, description="Number of items per page")
    submitter_id: Optional[int] = Field(None, description="Filter by submitter user ID")
    company_id: Optional[int] = Field(None, description="Filter by company ID")
    status: Optional[str] = Field(None, description="Filter by expense status")
    category: Optional[str] = Field(None, description="Filter by expense category")
    date_from: Optional[date] = Field(None, description="Filter expenses from this date")
    date_to: Optional[date] = Field(None, description="Filter expenses to this date")
    amount_min: Optional[Decimal] = Field(None, ge=0, description="Minimum amount filter")
    amount_max: Optional[Decimal] = Field(None, ge=0, description="Maximum amount filter")

# Response Models
class ExpenseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    submitter_id: int
    submitter_name: Optional[str] = None
    amount: Decimal
    currency_code: str
    category: str
    description: Optional[str] = None
    remarks: Optional[str] = None
    expense_date: date
    status: str
    chain_error: Optional[str] = None
    submitted_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

class ExpenseListResponse(BaseModel):
    expenses: List[ExpenseResponse]
    total_count: int
    page: int
    page_size: int
    total_pages: int

class SubmitExpenseResponse(BaseModel):
    expense_id: int
    status: str
    message: str
    applicable_rule_ids: List[int] = []
    approval_ids: List[int] = []

class ExpenseStatsResponse(BaseModel):
    total_expenses: int
    draft_expenses: int
    pending_expenses: int
    approved_expenses: int
    rejected_expenses: int
    total_amount: Decimal
    pending_amount: Decimal
    approved_amount: Decimal
