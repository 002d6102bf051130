"""
Monitoring Service — staff view over stored transactions: filtered listing
and success/failure metrics for a recent time window.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from coursepay.errors import ValidationError
from coursepay.lifecycle import FAILED, STATUSES, SUCCESS
from coursepay.models.transaction import Transaction
from coursepay.services.status_service import serialize_transaction

TIME_RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


class MonitoringService:

    @staticmethod
    def list_transactions(
        db: Session,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """All transactions, newest first, with the paying student attached."""
        if status and status not in STATUSES:
            raise ValidationError(f"Status must be one of {', '.join(STATUSES)}")
        if start and end and start > end:
            raise ValidationError("startDate must not be after endDate")
        page = max(page, 1)
        limit = min(max(limit, 1), 100)

        query = db.query(Transaction)
        if status:
            query = query.filter(Transaction.status == status)
        if start:
            query = query.filter(Transaction.initiated_at >= start)
        if end:
            query = query.filter(Transaction.initiated_at <= end)

        total = query.count()
        rows = (
            query.order_by(Transaction.initiated_at.desc(), Transaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        transactions = []
        for txn in rows:
            data = serialize_transaction(txn, include_timeline=False)
            data["student"] = {
                "id": txn.user_id,
                "name": txn.user.name if txn.user else None,
                "email": txn.user.email if txn.user else None,
            }
            transactions.append(data)

        return {
            "transactions": transactions,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }

    @staticmethod
    def payment_metrics(db: Session, time_range: str = "24h", now: Optional[datetime] = None) -> Dict[str, Any]:
        if time_range not in TIME_RANGES:
            raise ValidationError(f"timeRange must be one of {', '.join(TIME_RANGES)}")
        now = now or datetime.utcnow()
        start = now - TIME_RANGES[time_range]
        window = Transaction.initiated_at >= start

        by_status = dict(
            db.query(Transaction.status, func.count(Transaction.id))
            .filter(window).group_by(Transaction.status).all()
        )
        total = sum(by_status.values())
        succeeded = by_status.get(SUCCESS, 0)
        failed = by_status.get(FAILED, 0)

        failures = {}
        for category, count in (
            db.query(Transaction.error_category, func.count(Transaction.id))
            .filter(window, Transaction.status == FAILED)
            .group_by(Transaction.error_category).all()
        ):
            key = category or "other"
            failures[key] = failures.get(key, 0) + count

        methods = {}
        for method, count in (
            db.query(Transaction.payment_method, func.count(Transaction.id))
            .filter(window).group_by(Transaction.payment_method).all()
        ):
            key = method or "unknown"
            methods[key] = methods.get(key, 0) + count

        # Average seconds from initiation to a terminal outcome
        completed = (
            db.query(Transaction.initiated_at, Transaction.completed_at)
            .filter(window, Transaction.completed_at.isnot(None), Transaction.initiated_at.isnot(None))
            .all()
        )
        avg_seconds = 0.0
        if completed:
            avg_seconds = sum((done - began).total_seconds() for began, done in completed) / len(completed)

        top = sorted(failures.items(), key=lambda item: item[1], reverse=True)[:5]
        return {
            "timeRange": time_range,
            "startDate": start.isoformat(),
            "endDate": now.isoformat(),
            "totalAttempts": total,
            "successfulPayments": succeeded,
            "failedPayments": failed,
            "statusDistribution": by_status,
            "successRate": round(succeeded / total * 100, 2) if total else 0.0,
            "avgProcessingTime": round(avg_seconds, 2),
            "failureDistribution": failures,
            "failureReasons": [
                {"category": category, "count": count, "percentage": round(count / total * 100, 2)}
                for category, count in top
            ],
            "paymentMethodDistribution": methods,
        }
