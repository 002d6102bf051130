"""
Status Service — transaction lookups for the status page, history and receipts.
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from coursepay.errors import GatewayError
from coursepay.lifecycle import build_timeline
from coursepay.models.transaction import Transaction
from coursepay.models.user import User
from coursepay.services.payment_service import PaymentService
from coursepay.services.pricing import to_money
from coursepay.utils.logger import get_logger

logger = get_logger(__name__)


def _amount(value) -> Optional[float]:
    if value is None:
        return None
    return float(to_money(value))


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_transaction(txn: Transaction, include_timeline: bool = True) -> Dict[str, Any]:
    finished_at = txn.refunded_at if txn.status == "refunded" else txn.completed_at
    data = {
        "transactionId": txn.transaction_id,
        "status": txn.status,
        "mode": txn.mode,
        "gateway": txn.gateway,
        "currency": txn.currency,
        "course": {
            "id": txn.course_id,
            "title": txn.course.title if txn.course else None,
        },
        "amount": {
            "original": _amount(txn.original_amount),
            "discount": _amount(txn.discount_amount or 0),
            "subtotal": _amount(txn.subtotal_amount),
            "gst": _amount(txn.gst_amount),
            "total": _amount(txn.final_amount),
        },
        "discountCode": txn.discount_code,
        "gatewayTransactionId": txn.gateway_transaction_id,
        "paymentMethod": txn.payment_method,
        "paymentMethodDetails": txn.payment_method_details or {},
        "errorCode": txn.error_code,
        "errorMessage": txn.error_message,
        "errorCategory": txn.error_category,
        "receiptNumber": txn.receipt_number,
        "retryCount": txn.retry_count or 0,
        "parentTransactionId": txn.parent_transaction_id,
        "refundAmount": _amount(txn.refund_amount),
        "initiatedAt": _iso(txn.initiated_at),
        "expiresAt": _iso(txn.session_expires_at),
        "callbackReceivedAt": _iso(txn.callback_received_at),
        "completedAt": _iso(txn.completed_at),
        "refundedAt": _iso(txn.refunded_at),
    }
    if include_timeline:
        data["timeline"] = [
            {**point, "timestamp": _iso(point["timestamp"])}
            for point in build_timeline(
                txn.status,
                initiated_at=txn.initiated_at,
                processed_at=txn.callback_received_at or txn.completed_at,
                finished_at=finished_at,
            )
        ]
    return data


class StatusService:

    def __init__(self, payments: PaymentService):
        self.payments = payments
        self.db: Session = payments.db

    def get_status(self, user: User, transaction_id: str) -> Dict[str, Any]:
        """Current state for the owner (or an admin), re-checked with the gateway while open."""
        txn = self.payments.get_owned_transaction(user, transaction_id)

        try:
            changed = self.payments.refresh_from_gateway(txn)
        except GatewayError as e:
            logger.warning("status refresh for %s failed, returning stored state: %s", transaction_id, e)
            self.db.rollback()
            txn = self.payments.get_transaction(transaction_id)
        else:
            changed = self.payments.expire_if_stale(txn) or changed
            if changed:
                self.db.commit()
                self.db.refresh(txn)

        return serialize_transaction(txn)

    def history(self, user: User, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)

        query = self.db.query(Transaction).filter(Transaction.user_id == user.id)
        total = query.count()
        rows = (
            query.order_by(Transaction.initiated_at.desc(), Transaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "transactions": [serialize_transaction(t, include_timeline=False) for t in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }
