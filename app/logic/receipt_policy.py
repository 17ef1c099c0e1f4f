from decimal import Decimal

from app.logic.exceptions import ReceiptRequiredError


def is_receipt_required(amount, settings) -> bool:
    """settings is anything exposing require_receipts and receipt_min_amount (Company or CompanySettings)"""
    if not settings.require_receipts:
        return False
    return Decimal(str(amount)) > Decimal(str(settings.receipt_min_amount))


def enforce_receipt_requirement(amount, receipt_count: int, settings) -> None:
    if receipt_count == 0 and is_receipt_required(amount, settings):
        raise ReceiptRequiredError(
            f"A receipt is required for expenses above {settings.receipt_min_amount}",
            details={
                "amount": str(amount),
                "receipt_min_amount": str(settings.receipt_min_amount),
            },
        )
