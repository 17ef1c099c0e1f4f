from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

class ExpenseStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

class ExpenseScope(str, Enum):
    MINE = "mine"
    TEAM = "team"
    COMPANY = "company"

# Request Models
class CreateExpenseRequest(BaseModel):
    """Shape only; business validation happens in ExpenseService so every field error is reported together"""
    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(..., description="Amount of the expense")
    currency: str = Field(..., description="ISO 4217 currency code")
    category_id: int = Field(..., description="Expense category ID")
    description: str = Field(..., description="Expense description")
    expense_date: date = Field(..., description="Date when the expense occurred")
    merchant_name: Optional[str] = Field(None, description="Merchant name")
    remarks: Optional[str] = Field(None, max_length=1000, description="Additional remarks")

class UpdateExpenseRequest(BaseModel):
    # Status is owned by the workflow; a patch carrying it is rejected as an unknown field
    model_config = ConfigDict(extra="forbid")

    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    category_id: Optional[int] = None
    description: Optional[str] = None
    expense_date: Optional[date] = None
    merchant_name: Optional[str] = None
    remarks: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def check_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self

class OcrResultRequest(BaseModel):
    """Fields extracted from a receipt by the external OCR service"""
    merchant_name: Optional[str] = Field(None, max_length=255)
    total_amount: Optional[Decimal] = Field(None, ge=0)
    receipt_date: Optional[date] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)

class ExpenseQueryParams(BaseModel):
    page: int = Field(default=1, ge=1, description="Page number")
    limit: int = Field(default=20, ge=1, le=100, description="Number of items per page")
    scope: ExpenseScope = Field(default=ExpenseScope.MINE, description="Whose expenses to list")
    status: Optional[ExpenseStatus] = Field(None, description="Filter by expense status")
    category_id: Optional[int] = Field(None, description="Filter by category")
    date_from: Optional[date] = Field(None, description="Filter expenses from this date")
    date_to: Optional[date] = Field(None, description="Filter expenses to this date")

# Response Models
class ReceiptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    expense_id: int
    file_url: str
    file_name: str
    file_type: str
    file_size: int
    ocr_merchant: Optional[str] = None
    ocr_amount: Optional[Decimal] = None
    ocr_date: Optional[date] = None
    ocr_confidence: Optional[float] = None
    uploaded_at: datetime

class ExpenseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    submitter_id: int
    company_id: int
    category_id: int
    amount: Decimal
    currency: str
    description: str
    merchant_name: Optional[str] = None
    remarks: Optional[str] = None
    expense_date: date
    status: ExpenseStatus
    submission_cycle: int
    approval_sequence: Optional[str] = None
    required_approval_percentage: Optional[int] = None
    submitted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    receipt: Optional[ReceiptResponse] = None
    receipt_required: bool = False

class ExpenseDetailResponse(ExpenseResponse):
    """Expense with the approval rows of its current submission cycle"""
    approvals: List["ExpenseApprovalResponse"] = []

class ExpenseListResponse(BaseModel):
    expenses: List[ExpenseResponse]
    total: int
    page: int
    limit: int
    total_pages: int

# Import the approval models to avoid circular imports
from app.ReqResModels.approvalmodels import ExpenseApprovalResponse

# Update forward references
ExpenseDetailResponse.model_rebuild()
