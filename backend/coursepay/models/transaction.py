"""
Transaction Model — One payment attempt, from initiation to terminal outcome.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, Numeric, Text, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from coursepay.database import Base


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(String(40), unique=True, index=True, nullable=False)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)

    # Amounts (Decimal, 2 places)
    original_amount = Column(Numeric(12, 2), nullable=False)
    discount_code = Column(String(32), nullable=True)
    discount_amount = Column(Numeric(12, 2), default=0)
    subtotal_amount = Column(Numeric(12, 2), nullable=False)
    gst_amount = Column(Numeric(12, 2), nullable=False)
    final_amount = Column(Numeric(12, 2), nullable=False)   # subtotal + GST
    currency = Column(String(3), default="INR")

    mode = Column(String(16), default="checkout")           # elements | checkout
    gateway = Column(String(16), default="stripe")          # stripe | mock

    status = Column(String(16), default="pending", index=True)
    # Statuses: pending → processing → success | failed ; success → refunded

    # Timeline
    initiated_at = Column(DateTime, default=datetime.utcnow)
    session_expires_at = Column(DateTime)
    callback_received_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Gateway
    gateway_transaction_id = Column(String(255), index=True)
    payment_method = Column(String(32))
    payment_method_details = Column(JSON, default=dict)
    callback_data = Column(JSON, default=dict)
    webhook_processed = Column(Boolean, default=False)

    # Failure
    error_code = Column(String(64))
    error_message = Column(Text)
    error_category = Column(String(32))

    # Refund
    refund_amount = Column(Numeric(12, 2), nullable=True)
    refund_transaction_id = Column(String(255))
    refund_reason = Column(Text)
    refund_initiated_by = Column(Integer, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    # Receipt
    receipt_number = Column(String(32), unique=True, nullable=True)

    # Retry lineage
    retry_count = Column(Integer, default=0)
    last_retry_at = Column(DateTime, nullable=True)
    parent_transaction_id = Column(String(40), nullable=True)

    ip_address = Column(String(45))
    user_agent = Column(String(256))

    user = relationship("User", lazy="joined")
    course = relationship("Course", lazy="joined")
