from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from enum import Enum

from app.ReqResModels.usermodels import UserRole

class ApprovalSequence(str, Enum):
    SEQUENTIAL = "SEQUENTIAL"
    PARALLEL = "PARALLEL"

class ExpenseApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

class ApprovalDecision(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"

# Request Models
class RuleConditions(BaseModel):
    """All provided conditions must hold for a rule to match an expense"""
    amount_threshold: Optional[Decimal] = Field(None, ge=0, description="Rule applies at or above this amount")
    category_ids: Optional[List[int]] = Field(None, description="Rule applies to these categories")
    user_roles: Optional[List[UserRole]] = Field(None, description="Rule applies to submitters with these roles")
    departments: Optional[List[str]] = Field(None, description="Rule applies to submitters in these departments")

    @field_validator('category_ids', 'user_roles', 'departments')
    @classmethod
    def non_empty_lists(cls, v):
        if v is not None and len(v) == 0:
            raise ValueError("must not be empty when provided")
        return v

class CreateApprovalRuleRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Rule name")
    description: Optional[str] = Field(None, max_length=500, description="Rule description")
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    approvers: List[int] = Field(..., min_length=1, max_length=10, description="Approver user IDs in sequence order")
    sequence: ApprovalSequence = Field(default=ApprovalSequence.SEQUENTIAL, description="Sequential or parallel approval")
    min_approval_percentage: int = Field(default=100, ge=1, le=100, description="Minimum approval percentage required")
    is_manager_approval_required: bool = Field(default=False, description="Submitter's manager approves first")
    is_active: bool = Field(default=True)

    @field_validator('sequence', mode='before')
    @classmethod
    def parse_sequence(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

class UpdateApprovalRuleRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    conditions: Optional[RuleConditions] = None
    approvers: Optional[List[int]] = Field(None, min_length=1, max_length=10)
    sequence: Optional[ApprovalSequence] = None
    min_approval_percentage: Optional[int] = Field(None, ge=1, le=100)
    is_manager_approval_required: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator('sequence', mode='before')
    @classmethod
    def parse_sequence(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @model_validator(mode="after")
    def check_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self

class ApprovalRuleQueryParams(BaseModel):
    page: int = Field(default=1, ge=1, description="Page number")
    limit: int = Field(default=20, ge=1, le=100, description="Items per page")
    is_active: Optional[bool] = Field(None, description="Filter by active flag")

class ApproveExpenseRequest(BaseModel):
    """Request model for approving an expense"""
    comment: Optional[str] = Field(None, max_length=1000, description="Optional approval comment")

    @field_validator('comment')
    @classmethod
    def comment_not_blank(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Comment must not be empty if provided")
        return v

class RejectExpenseRequest(BaseModel):
    """Request model for rejecting an expense; a rejection is always explained"""
    reason: str = Field(..., min_length=1, max_length=500, description="Required rejection reason")
    comment: str = Field(..., min_length=1, max_length=1000, description="Required rejection comment")

class ApprovalTaskQueryParams(BaseModel):
    page: int = Field(default=1, ge=1, description="Page number")
    limit: int = Field(default=20, ge=1, le=100, description="Items per page")
    status: ExpenseApprovalStatus = Field(default=ExpenseApprovalStatus.PENDING, description="Approval status")

# Response Models
class ApproverResponse(BaseModel):
    approver_id: int
    approver_name: str
    approver_email: str
    sequence_order: int

class ApprovalRuleResponse(BaseModel):
    id: int
    company_id: int
    name: str
    description: Optional[str] = None
    conditions: RuleConditions
    sequence: ApprovalSequence
    min_approval_percentage: int
    is_manager_approval_required: bool
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None
    approvers: List[ApproverResponse]

class ApprovalRuleListResponse(BaseModel):
    rules: List[ApprovalRuleResponse]
    total: int
    page: int
    limit: int
    total_pages: int

class ExpenseApprovalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    expense_id: int
    approver_id: int
    submission_cycle: int
    sequence_order: int
    status: ExpenseApprovalStatus
    is_manager_approval: bool
    comments: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime

class ExpenseApprovalStatusResponse(BaseModel):
    expense_id: int
    current_status: str
    submission_cycle: int
    sequence: Optional[ApprovalSequence] = None
    is_fully_approved: bool
    approved_count: int
    total_approvers: int
    required_approvals: int
    approval_percentage: float
    required_percentage: int
    next_approver_ids: List[int]
    pending_approvals: List[ExpenseApprovalResponse]
    completed_approvals: List[ExpenseApprovalResponse]

class DecisionResponse(BaseModel):
    approval: ExpenseApprovalResponse
    expense_id: int
    expense_status: str

class ApprovalTaskResponse(BaseModel):
    """An approval row from the approver's perspective"""
    approval_id: int
    expense_id: int
    status: ExpenseApprovalStatus
    sequence_order: int
    is_manager_approval: bool
    can_decide_now: bool
    submitter_id: int
    submitter_name: str
    amount: Decimal
    currency: str
    category_id: int
    description: str
    expense_date: date
    expense_status: str
    submitted_at: Optional[datetime] = None

class ApprovalTaskListResponse(BaseModel):
    tasks: List[ApprovalTaskResponse]
    total: int
    page: int
    limit: int
    total_pages: int
