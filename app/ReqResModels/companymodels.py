from pydantic import BaseModel, Field, ConfigDict, EmailStr, model_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from app.ReqResModels.usermodels import UserResponse

class AdminAccountRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Admin full name")
    email: EmailStr = Field(..., description="Admin email address")
    password: str = Field(..., min_length=8, max_length=100, description="Admin password")

# Request Models
class CreateCompanyRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Company name")
    country: str = Field(..., min_length=2, max_length=100, description="Country name")
    currency_code: str = Field(default="USD", min_length=3, max_length=3, description="Base currency (ISO 4217)")
    admin: AdminAccountRequest

class CompanySettings(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    max_expense_amount: Decimal = Field(default=Decimal("10000"), gt=0)
    require_receipts: bool = True
    receipt_min_amount: Decimal = Field(default=Decimal("25"), gt=0)

class UpdateCompanySettingsRequest(BaseModel):
    max_expense_amount: Optional[Decimal] = Field(None, gt=0)
    require_receipts: Optional[bool] = None
    receipt_min_amount: Optional[Decimal] = Field(None, gt=0)

    @model_validator(mode="after")
    def check_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("At least one setting must be provided")
        return self

class CreateCategoryRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, description="Category name")

# Response Models
class CompanyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    country: str
    currency_code: str
    settings: CompanySettings
    created_at: datetime
    updated_at: Optional[datetime] = None

class CreateCompanyResponse(BaseModel):
    company: CompanyResponse
    admin: UserResponse

class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    name: str

class CategoryListResponse(BaseModel):
    categories: List[CategoryResponse]
    total: int
