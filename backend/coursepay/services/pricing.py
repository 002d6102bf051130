"""
Pricing Calculator — discount, GST and total for a course price.

Pure functions over ``Decimal``; identical inputs always give identical
outputs. Rounding is half-to-even at two places.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional

from coursepay.errors import ValidationError

GST_RATE = Decimal("0.18")
TWO_PLACES = Decimal("0.01")

DISCOUNT_TYPES = ("percentage", "flat")


def to_money(value) -> Decimal:
    """Round any numeric input to two decimal places (banker's rounding)."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class Discount:
    type: str
    value: Decimal

    def __post_init__(self):
        if self.type not in DISCOUNT_TYPES:
            raise ValidationError(f"Unknown discount type '{self.type}'")
        if Decimal(str(self.value)) < 0:
            raise ValidationError("Discount value cannot be negative")


@dataclass(frozen=True)
class PriceBreakdown:
    original: Decimal
    discount: Decimal
    subtotal: Decimal
    gst: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {
            "original": self.original,
            "discount": self.discount,
            "subtotal": self.subtotal,
            "gst": self.gst,
            "total": self.total,
        }


def discount_amount(original: Decimal, discount: Optional[Discount]) -> Decimal:
    """Amount taken off ``original``, clamped so the subtotal never goes negative."""
    if discount is None:
        return to_money(0)

    value = Decimal(str(discount.value))
    if discount.type == "percentage":
        amount = to_money(original * value / Decimal(100))
    else:
        amount = to_money(value)
    return min(amount, original)


def calculate_price(price, discount: Optional[Discount] = None) -> PriceBreakdown:
    """Derive ``original, discount, subtotal, gst, total`` from a course price."""
    original = to_money(price)
    if original <= 0:
        raise ValidationError("Course price must be greater than zero")

    off = discount_amount(original, discount)
    subtotal = to_money(original - off)
    gst = to_money(subtotal * GST_RATE)
    total = to_money(subtotal + gst)

    return PriceBreakdown(original=original, discount=off, subtotal=subtotal, gst=gst, total=total)


def to_minor_units(amount: Decimal) -> int:
    """Gateway amount in paise/cents."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_EVEN))
