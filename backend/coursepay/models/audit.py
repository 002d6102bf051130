"""
Payment Audit Log Model — Append-only, hash-chained trail per transaction.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON

from coursepay.database import Base


class PaymentAuditLog(Base):
    __tablename__ = "payment_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    transaction_id = Column(String(40), nullable=False, index=True)

    action = Column(String(50), nullable=False)
    # Actions: PAYMENT_INITIATED, PAYMENT_REUSED, CALLBACK_RECEIVED, CALLBACK_REJECTED, WEBHOOK_RECEIVED,
    #          STATUS_CHANGED, PAYMENT_RETRIED, REFUND_PROCESSED, RECONCILED

    payload_hash = Column(String(64))       # chain hash over action, actor and payload
    previous_hash = Column(String(64))      # hash of the previous entry for this transaction

    actor_id = Column(String(36))
    ip_address = Column(String(45))
    user_agent = Column(String(256))

    log_metadata = Column(JSON, default=dict)   # the hashed payload
    timestamp = Column(DateTime, default=datetime.utcnow)
