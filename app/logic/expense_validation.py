from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

SUPPORTED_CURRENCIES = frozenset({
    "USD", "EUR", "GBP", "JPY", "AUD", "CAD", "CHF", "CNY", "SEK", "NZD",
    "MXN", "SGD", "HKD", "NOK", "INR", "KRW", "TRY", "RUB", "BRL", "ZAR",
})

DESCRIPTION_MIN_LENGTH = 3
DESCRIPTION_MAX_LENGTH = 500
MERCHANT_MAX_LENGTH = 100


def one_year_before(day: date) -> date:
    try:
        return day.replace(year=day.year - 1)
    except ValueError:
        # Feb 29 -> Feb 28
        return day.replace(year=day.year - 1, day=28)


def check_amount(amount, max_amount) -> Optional[str]:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return "Amount must be a number"
    if not value.is_finite():
        return "Amount must be a number"
    if value <= 0:
        return "Amount must be positive"
    if value.as_tuple().exponent < -2 and value != value.quantize(Decimal("0.01")):
        return "Amount cannot have more than 2 decimal places"
    if value > Decimal(str(max_amount)):
        return f"Amount cannot exceed {max_amount}"
    return None


def check_currency(currency) -> Optional[str]:
    if not currency or currency.upper() not in SUPPORTED_CURRENCIES:
        return "Invalid currency code. Must be a valid ISO 4217 currency code"
    return None


def check_expense_date(expense_date: date, today: Optional[date] = None) -> Optional[str]:
    if expense_date is None:
        return "Expense date is required"
    today = today or date.today()
    if expense_date > today:
        return "Expense date cannot be in the future"
    if expense_date < one_year_before(today):
        return "Expense date cannot be more than 1 year ago"
    return None


def check_description(description) -> Optional[str]:
    text = (description or "").strip()
    if len(text) < DESCRIPTION_MIN_LENGTH:
        return f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters"
    if len(text) > DESCRIPTION_MAX_LENGTH:
        return f"Description must not exceed {DESCRIPTION_MAX_LENGTH} characters"
    return None


def check_merchant(merchant_name) -> Optional[str]:
    if merchant_name is None:
        return None
    text = merchant_name.strip()
    if not text:
        return "Merchant name must not be empty"
    if len(text) > MERCHANT_MAX_LENGTH:
        return f"Merchant name must not exceed {MERCHANT_MAX_LENGTH} characters"
    return None


def validate_expense_fields(fields: Dict, max_amount, today: Optional[date] = None) -> Dict[str, str]:
    """
    Check whichever expense fields are present in `fields` and return
    {field: message} for every violation.
    """
    checks = {
        "amount": lambda v: check_amount(v, max_amount),
        "currency": check_currency,
        "expense_date": lambda v: check_expense_date(v, today),
        "description": check_description,
        "merchant_name": check_merchant,
    }
    errors = {}
    for name, check in checks.items():
        if name not in fields:
            continue
        message = check(fields[name])
        if message:
            errors[name] = message
    return errors
