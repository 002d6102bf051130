"""
Discount Routes — Code validation at checkout, partner code management.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coursepay.database import get_db
from coursepay.models.discount import DiscountCode
from coursepay.models.user import User
from coursepay.schemas.schemas import (
    DiscountValidateRequest, DiscountValidateResponse, DiscountCreateRequest, DiscountOut,
)
from coursepay.services.discount_service import DiscountService
from coursepay.utils.rate_limiter import rate_limit
from coursepay.utils.security import get_current_user, require_roles

router = APIRouter(prefix="/api/discount", tags=["Discount"])


@router.post("/validate", response_model=DiscountValidateResponse)
def validate_discount(
    payload: DiscountValidateRequest,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
    _throttle: bool = Depends(rate_limit(requests=20, window=60, scope="discount")),
):
    """Check a code against a course. Read-only; usage is counted on payment."""
    discount = DiscountService.validate(db, payload.code, payload.course_id)
    return DiscountValidateResponse(code=discount.code, type=discount.type, value=float(discount.value))


@router.post("", response_model=DiscountOut, status_code=201)
def create_discount(
    payload: DiscountCreateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("partner", "admin")),
):
    return DiscountService.create(
        db,
        code=payload.code,
        type=payload.type,
        value=payload.value,
        expiry_date=payload.expiry_date,
        course_id=payload.course_id,
        partner_id=user.id if user.role == "partner" else None,
        usage_limit=payload.usage_limit,
    )


@router.get("", response_model=list[DiscountOut])
def list_discounts(
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("partner", "admin")),
):
    query = db.query(DiscountCode)
    if user.role == "partner":
        query = query.filter(DiscountCode.partner_id == user.id)
    return query.order_by(DiscountCode.created_at.desc()).all()
