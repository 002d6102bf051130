"""
Reconciliation — settles open transactions whose callback never arrived.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from coursepay.config import get_settings
from coursepay.errors import CoursePayError
from coursepay.models.transaction import Transaction
from coursepay.services.gateways.base import PaymentGateway
from coursepay.services.payment_service import PaymentService
from coursepay.services.transaction_state import FAILED, OPEN_STATUSES, SUCCESS
from coursepay.utils.logger import get_logger

logger = get_logger(__name__)


class ReconciliationService:

    @staticmethod
    def run(db: Session, gateway: PaymentGateway, now: Optional[datetime] = None, settings=None) -> Dict[str, int]:
        settings = settings or get_settings()
        now = now or datetime.utcnow()
        cutoff = now - timedelta(minutes=settings.RECONCILE_AFTER_MINUTES)
        payments = PaymentService(db, gateway, settings)

        stale = (
            db.query(Transaction)
            .filter(Transaction.status.in_(OPEN_STATUSES), Transaction.initiated_at <= cutoff)
            .order_by(Transaction.initiated_at)
            .all()
        )

        summary = {"checked": 0, "succeeded": 0, "failed": 0, "expired": 0, "unchanged": 0, "errors": 0}
        for txn in stale:
            summary["checked"] += 1
            try:
                changed = payments.refresh_from_gateway(txn, source="reconciliation")
                if not changed and payments.expire_if_stale(txn, now):
                    summary["expired"] += 1
                elif changed and txn.status == SUCCESS:
                    summary["succeeded"] += 1
                elif changed and txn.status == FAILED:
                    summary["failed"] += 1
                else:
                    summary["unchanged"] += 1
                db.commit()
            except CoursePayError as e:
                db.rollback()
                summary["errors"] += 1
                logger.warning("reconciliation of %s failed: %s", txn.transaction_id, e.message)

        logger.info("reconciliation finished: %s", summary)
        return summary
