"""
Discount Code Model — Percentage or flat reductions, optionally course-scoped.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Numeric, Boolean, ForeignKey

from coursepay.database import Base


class DiscountCode(Base):
    __tablename__ = "discount_codes"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    code = Column(String(32), unique=True, index=True, nullable=False)   # stored upper-case
    type = Column(String(16), nullable=False, default="percentage")      # percentage | flat
    value = Column(Numeric(12, 2), nullable=False)

    is_active = Column(Boolean, default=True)
    expiry_date = Column(DateTime, nullable=True)

    # Scope: null course_id means every course
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=True, index=True)
    partner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    usage_limit = Column(Integer, nullable=True)    # null = unlimited
    usage_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
