from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_caller
from app.database.database import get_db
from app.database.services.expense_service import ExpenseService
from app.logic.access_control import Caller
from app.ReqResModels.common import ApiResponse, ErrorBody, ok
from app.ReqResModels.expensemodels import OcrResultRequest, ReceiptResponse

router = APIRouter(
    prefix="/receipts",
    tags=["receipts"],
    responses={
        404: {"model": ErrorBody, "description": "Receipt not found"},
    }
)

@router.post(
    "/{receipt_id}/ocr",
    response_model=ApiResponse[ReceiptResponse],
    summary="Record OCR results",
    description="Store the merchant, amount and date extracted from a receipt by the OCR service"
)
def record_ocr(
    receipt_id: int,
    request: OcrResultRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ExpenseService.record_ocr(db, caller, receipt_id, request))
