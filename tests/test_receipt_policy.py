from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.logic.exceptions import ReceiptRequiredError
from app.logic.receipt_policy import enforce_receipt_requirement, is_receipt_required


def settings(require_receipts=True, minimum="25"):
    return SimpleNamespace(require_receipts=require_receipts, receipt_min_amount=Decimal(minimum))


class TestIsReceiptRequired:
    def test_amount_above_minimum_requires_receipt(self):
        assert is_receipt_required(Decimal("30.00"), settings())

    def test_minimum_itself_is_exempt(self):
        assert not is_receipt_required(Decimal("25.00"), settings())

    def test_disabled_policy_never_requires(self):
        assert not is_receipt_required(Decimal("5000"), settings(require_receipts=False))

    def test_zero_minimum_requires_for_any_positive_amount(self):
        assert is_receipt_required(Decimal("0.01"), settings(minimum="0"))


class TestEnforceReceiptRequirement:
    def test_missing_receipt_is_rejected(self):
        with pytest.raises(ReceiptRequiredError) as exc:
            enforce_receipt_requirement(Decimal("30.00"), 0, settings())
        assert exc.value.status_code == 422
        assert exc.value.details["receipt_min_amount"] == "25"

    def test_attached_receipt_satisfies_requirement(self):
        enforce_receipt_requirement(Decimal("30.00"), 1, settings())

    def test_small_amount_passes_without_receipt(self):
        enforce_receipt_requirement(Decimal("12.50"), 0, settings())
