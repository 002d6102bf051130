"""
Validators — Rule-based checks for discount codes and payment amounts.
"""
import re
from decimal import Decimal, InvalidOperation


def normalize_code(code: str | None) -> str:
    """Discount codes are compared upper-cased with surrounding whitespace removed."""
    if not code:
        return ""
    return code.strip().upper()


def validate_discount_code(code: str | None) -> bool:
    """Validate discount code format: 3-32 letters, digits, dash or underscore."""
    if not code:
        return False
    return bool(re.match(r"^[A-Z0-9_-]{3,32}$", normalize_code(code)))


def validate_amount_precision(amount) -> tuple[bool, str]:
    """Amounts must be finite, non-negative and carry at most 2 decimal places."""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return False, "Amount must be a number"

    if not value.is_finite():
        return False, "Amount must be a finite number"
    if value < 0:
        return False, "Amount cannot be negative"
    if value.as_tuple().exponent < -2 and value != value.quantize(Decimal("0.01")):
        return False, "Amount has too many decimal places. Maximum 2 decimal places allowed."
    if 0 < value < Decimal("0.01"):
        return False, "Amount is too small. Minimum amount is 0.01"
    return True, "Valid"


def validate_email(email: str | None) -> bool:
    """Loose email check: something@something.tld"""
    if not email:
        return False
    return bool(re.match(r"^[\w.+-]+@[\w-]+(\.[\w-]+)+$", email.strip()))
