from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_caller, get_emitter
from app.database.database import get_db
from app.database.services.expense_approval_service import ExpenseApprovalService
from app.logic.access_control import Caller
from app.logic.notifications import NotificationEmitter
from app.ReqResModels.common import ApiResponse, ErrorBody, ok
from app.ReqResModels.approvalmodels import (
    ApprovalDecision,
    ApproveExpenseRequest,
    RejectExpenseRequest,
    ApprovalTaskQueryParams,
    ApprovalTaskListResponse,
    DecisionResponse,
    ExpenseApprovalStatusResponse,
)

router = APIRouter(
    prefix="/approvals",
    tags=["approvals"],
    responses={
        403: {"model": ErrorBody, "description": "Not an approver"},
        404: {"model": ErrorBody, "description": "Expense or approval not found"},
        409: {"model": ErrorBody, "description": "Approval already processed"},
    }
)

@router.get(
    "",
    response_model=ApiResponse[ApprovalTaskListResponse],
    summary="List my approval tasks",
    description="PENDING lists only the approvals that can be decided right now"
)
def get_approval_tasks(
    params: ApprovalTaskQueryParams = Depends(),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ExpenseApprovalService.get_tasks(db, caller, params))

@router.post(
    "/{expense_id}/approve",
    response_model=ApiResponse[DecisionResponse],
    summary="Approve an expense"
)
def approve_expense(
    expense_id: int,
    request: ApproveExpenseRequest,
    caller: Caller = Depends(get_caller),
    emitter: NotificationEmitter = Depends(get_emitter),
    db: Session = Depends(get_db)
):
    return ok(ExpenseApprovalService.decide_for_expense(
        db, caller, expense_id, ApprovalDecision.APPROVE, comment=request.comment, emitter=emitter
    ))

@router.post(
    "/{expense_id}/reject",
    response_model=ApiResponse[DecisionResponse],
    summary="Reject an expense",
    description="A reason and a comment are both required"
)
def reject_expense(
    expense_id: int,
    request: RejectExpenseRequest,
    caller: Caller = Depends(get_caller),
    emitter: NotificationEmitter = Depends(get_emitter),
    db: Session = Depends(get_db)
):
    return ok(ExpenseApprovalService.decide_for_expense(
        db, caller, expense_id, ApprovalDecision.REJECT,
        comment=request.comment, reason=request.reason, emitter=emitter
    ))

@router.get(
    "/{expense_id}/status",
    response_model=ApiResponse[ExpenseApprovalStatusResponse],
    summary="Approval progress of an expense"
)
def get_approval_status(
    expense_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ExpenseApprovalService.get_approval_status(db, caller, expense_id))
