from pydantic import BaseModel, Field, EmailStr, ConfigDict
from datetime import datetime
from typing import Optional, List
from enum import Enum

class UserRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"

# Request Models
class CreateUserRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="User full name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=8, max_length=100, description="User password")
    role: UserRole = Field(default=UserRole.EMPLOYEE, description="User role")
    manager_id: Optional[int] = Field(None, gt=0, description="Manager ID (optional)")
    department: Optional[str] = Field(None, min_length=1, max_length=100, description="Department name")

class UpdateUserRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    role: Optional[UserRole] = None
    manager_id: Optional[int] = Field(None, gt=0)
    department: Optional[str] = Field(None, min_length=1, max_length=100)

# Response Models
class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    name: str
    email: str
    role: UserRole
    manager_id: Optional[int] = None
    department: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
    page: int
    limit: int
    total_pages: int
