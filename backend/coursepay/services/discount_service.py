"""
Discount Service — lookup, scope check and redemption of discount codes.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import update, or_
from sqlalchemy.orm import Session

from coursepay.errors import NotFoundError, ScopeError, ValidationError
from coursepay.models.course import Course
from coursepay.models.discount import DiscountCode
from coursepay.services.pricing import Discount, DISCOUNT_TYPES, to_money
from coursepay.utils.logger import get_logger
from coursepay.utils.validators import normalize_code, validate_discount_code

logger = get_logger(__name__)


class DiscountService:
    """Validates codes at checkout; read-only except for ``redeem``."""

    @staticmethod
    def validate(db: Session, code: Optional[str], course_id: int) -> DiscountCode:
        """Return the active code applicable to ``course_id``.

        Raises:
            ValidationError: no code supplied.
            NotFoundError: unknown, inactive, expired or used-up code.
            ScopeError: the code is restricted to a different course.
        """
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError("Discount code is required")

        discount = db.query(DiscountCode).filter(DiscountCode.code == normalized).first()
        if (
            discount is None
            or not discount.is_active
            or (discount.expiry_date is not None and discount.expiry_date <= datetime.utcnow())
        ):
            raise NotFoundError("Invalid or expired discount code")

        if discount.usage_limit is not None and discount.usage_count >= discount.usage_limit:
            raise NotFoundError("This discount code has reached its usage limit")

        if discount.course_id is not None and discount.course_id != course_id:
            raise ScopeError("This discount code does not apply to the selected course")

        return discount

    @staticmethod
    def as_pricing_discount(discount: Optional[DiscountCode]) -> Optional[Discount]:
        if discount is None:
            return None
        return Discount(type=discount.type, value=Decimal(str(discount.value)))

    @staticmethod
    def create(
        db: Session,
        code: str,
        type: str,
        value,
        expiry_date: Optional[datetime] = None,
        course_id: Optional[int] = None,
        partner_id: Optional[int] = None,
        usage_limit: Optional[int] = None,
    ) -> DiscountCode:
        normalized = normalize_code(code)
        if not validate_discount_code(normalized):
            raise ValidationError("Discount code must be 3-32 letters, digits, '-' or '_'")
        if type not in DISCOUNT_TYPES:
            raise ValidationError(f"Discount type must be one of {', '.join(DISCOUNT_TYPES)}")

        amount = to_money(value)
        if amount <= 0:
            raise ValidationError("Discount value must be greater than zero")
        if type == "percentage" and amount > 100:
            raise ValidationError("Percentage discount cannot exceed 100")

        if db.query(DiscountCode).filter(DiscountCode.code == normalized).first():
            raise ValidationError("Discount code already exists")

        if course_id is not None and not db.query(Course).filter(Course.id == course_id).first():
            raise NotFoundError("Course not found")

        discount = DiscountCode(
            code=normalized,
            type=type,
            value=amount,
            expiry_date=expiry_date,
            course_id=course_id,
            partner_id=partner_id,
            usage_limit=usage_limit,
        )
        db.add(discount)
        db.commit()
        db.refresh(discount)
        logger.info("discount code %s created (type=%s value=%s)", normalized, type, amount)
        return discount

    @staticmethod
    def redeem(db: Session, code: str) -> bool:
        """Increment usage for a paid transaction.

        A single conditional UPDATE, so two concurrent redemptions of the last
        use cannot both succeed. Returns False when the code was already used up.
        Caller commits.
        """
        normalized = normalize_code(code)
        result = db.execute(
            update(DiscountCode)
            .where(DiscountCode.code == normalized)
            .where(or_(DiscountCode.usage_limit.is_(None), DiscountCode.usage_count < DiscountCode.usage_limit))
            .values(usage_count=DiscountCode.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning("discount code %s could not be redeemed: usage limit reached", normalized)
            return False
        return True
