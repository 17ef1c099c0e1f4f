from fastapi import APIRouter, Depends, File, UploadFile, status as http_status
from sqlalchemy.orm import Session

from app.api.deps import get_caller, get_emitter
from app.database.database import get_db
from app.database.services.expense_service import ExpenseService
from app.logic.access_control import Caller
from app.logic.notifications import NotificationEmitter
from app.ReqResModels.common import ApiResponse, ErrorBody, ok
from app.ReqResModels.expensemodels import (
    CreateExpenseRequest,
    UpdateExpenseRequest,
    ExpenseQueryParams,
    ExpenseResponse,
    ExpenseDetailResponse,
    ExpenseListResponse,
    ReceiptResponse,
)

router = APIRouter(
    prefix="/expenses",
    tags=["expenses"],
    responses={
        400: {"model": ErrorBody, "description": "Validation error"},
        401: {"model": ErrorBody, "description": "Missing or unknown caller"},
        403: {"model": ErrorBody, "description": "Not allowed"},
        404: {"model": ErrorBody, "description": "Expense not found"},
        422: {"model": ErrorBody, "description": "Business rule violation"},
    }
)

@router.post(
    "",
    response_model=ApiResponse[ExpenseResponse],
    status_code=http_status.HTTP_201_CREATED,
    summary="Create a draft expense"
)
def create_expense(
    request: CreateExpenseRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ExpenseService.create_expense(db, caller, request))

@router.get(
    "",
    response_model=ApiResponse[ExpenseListResponse],
    summary="List expenses",
    description="Own expenses by default; scope=team for managers, scope=company for admins"
)
def get_expenses(
    params: ExpenseQueryParams = Depends(),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ExpenseService.get_expenses(db, caller, params))

@router.get(
    "/{expense_id}",
    response_model=ApiResponse[ExpenseDetailResponse],
    summary="Get expense by ID"
)
def get_expense(
    expense_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ExpenseService.get_expense(db, caller, expense_id))

@router.put(
    "/{expense_id}",
    response_model=ApiResponse[ExpenseResponse],
    summary="Update a draft or rejected expense"
)
def update_expense(
    expense_id: int,
    request: UpdateExpenseRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ExpenseService.update_expense(db, caller, expense_id, request))

@router.delete(
    "/{expense_id}",
    response_model=ApiResponse[dict],
    summary="Delete a draft expense"
)
def delete_expense(
    expense_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    ExpenseService.delete_expense(db, caller, expense_id)
    return ok({"id": expense_id, "deleted": True})

@router.post(
    "/{expense_id}/submit",
    response_model=ApiResponse[ExpenseDetailResponse],
    summary="Submit an expense for approval"
)
def submit_expense(
    expense_id: int,
    caller: Caller = Depends(get_caller),
    emitter: NotificationEmitter = Depends(get_emitter),
    db: Session = Depends(get_db)
):
    return ok(ExpenseService.submit_expense(db, caller, expense_id, emitter=emitter))

@router.post(
    "/{expense_id}/receipts",
    response_model=ApiResponse[ReceiptResponse],
    status_code=http_status.HTTP_201_CREATED,
    summary="Upload the receipt of an expense",
    description="JPEG, PNG or PDF up to 10MB; one receipt per expense"
)
def upload_receipt(
    expense_id: int,
    receipt: UploadFile = File(..., description="Receipt file"),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    content = receipt.file.read()
    return ok(ExpenseService.attach_receipt(
        db, caller, expense_id, receipt.filename, receipt.content_type, content
    ))

@router.delete(
    "/{expense_id}/receipts",
    response_model=ApiResponse[dict],
    summary="Remove the receipt of an expense"
)
def remove_receipt(
    expense_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    ExpenseService.remove_receipt(db, caller, expense_id)
    return ok({"expense_id": expense_id, "deleted": True})
