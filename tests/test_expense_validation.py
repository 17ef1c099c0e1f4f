"""
Unit tests for expense field validation.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.logic.expense_validation import (
    check_amount,
    check_currency,
    check_description,
    check_expense_date,
    check_merchant,
    one_year_before,
    validate_expense_fields,
)

TODAY = date(2026, 6, 15)
MAX = Decimal("10000")


class TestAmount:
    @pytest.mark.parametrize("amount", ["0.01", "30", "99.90", "10000"])
    def test_valid_amounts(self, amount):
        assert check_amount(Decimal(amount), MAX) is None

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_amounts(self, amount):
        assert check_amount(Decimal(amount), MAX) == "Amount must be positive"

    def test_more_than_two_decimals(self):
        assert "2 decimal places" in check_amount(Decimal("10.123"), MAX)

    def test_trailing_zeros_are_fine(self):
        assert check_amount(Decimal("10.100"), MAX) is None

    def test_company_maximum(self):
        assert check_amount(Decimal("10000.01"), MAX) == "Amount cannot exceed 10000"

    def test_not_a_number(self):
        assert check_amount("ten", MAX) == "Amount must be a number"


class TestCurrency:
    @pytest.mark.parametrize("code", ["USD", "eur", "INR"])
    def test_supported(self, code):
        assert check_currency(code) is None

    @pytest.mark.parametrize("code", ["XYZ", "", None])
    def test_unsupported(self, code):
        assert check_currency(code) is not None


class TestExpenseDate:
    def test_today_is_fine(self):
        assert check_expense_date(TODAY, today=TODAY) is None

    def test_future_date(self):
        assert check_expense_date(TODAY + timedelta(days=1), today=TODAY) == "Expense date cannot be in the future"

    def test_exactly_one_year_ago_is_fine(self):
        assert check_expense_date(date(2025, 6, 15), today=TODAY) is None

    def test_older_than_one_year(self):
        assert check_expense_date(date(2025, 6, 14), today=TODAY) == "Expense date cannot be more than 1 year ago"

    def test_missing_date(self):
        assert check_expense_date(None, today=TODAY) == "Expense date is required"

    def test_leap_day_window(self):
        assert one_year_before(date(2028, 2, 29)) == date(2027, 2, 28)


class TestTextFields:
    def test_description_length(self):
        assert check_description("ab") is not None
        assert check_description("   abc   ") is None
        assert check_description("x" * 501) is not None

    def test_merchant_is_optional(self):
        assert check_merchant(None) is None

    def test_merchant_cannot_be_blank_or_long(self):
        assert check_merchant("   ") == "Merchant name must not be empty"
        assert check_merchant("m" * 101) is not None


class TestValidateExpenseFields:
    def test_all_violations_are_reported_together(self):
        errors = validate_expense_fields(
            {
                "amount": Decimal("-1"),
                "currency": "ABC",
                "expense_date": TODAY + timedelta(days=3),
                "description": "no",
            },
            MAX,
            today=TODAY,
        )
        assert set(errors) == {"amount", "currency", "expense_date", "description"}

    def test_only_present_fields_are_checked(self):
        # Partial updates only carry the changed fields
        assert validate_expense_fields({"currency": "GBP"}, MAX, today=TODAY) == {}
