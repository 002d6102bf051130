"""
Admin Routes — Refunds, reconciliation, transaction monitoring and the payment audit trail.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from coursepay.database import get_db
from coursepay.errors import NotFoundError
from coursepay.models.user import User
from coursepay.schemas.schemas import RefundRequest, ReconcileResponse, AuditEntryOut
from coursepay.services.audit_service import AuditService
from coursepay.services.gateways import PaymentGateway, get_gateway
from coursepay.services.monitoring_service import MonitoringService
from coursepay.services.payment_service import PaymentService
from coursepay.services.reconciliation import ReconciliationService
from coursepay.services.status_service import serialize_transaction
from coursepay.utils.security import require_roles

router = APIRouter(prefix="/api/admin", tags=["Admin"])

staff_only = require_roles("admin", "finance")


@router.post("/payment/refund")
def refund_payment(
    payload: RefundRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    admin: User = Depends(staff_only),
):
    """Refund a successful payment, fully or partially."""
    txn = PaymentService(db, gateway).refund(admin, payload.transaction_id, payload.amount, payload.reason)
    return {
        "success": True,
        "message": "Refund processed successfully",
        "refundId": txn.refund_transaction_id,
        "transaction": serialize_transaction(txn),
    }


@router.post("/payment/reconcile", response_model=ReconcileResponse)
def reconcile_payments(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    _admin: User = Depends(staff_only),
):
    """Settle open transactions whose callback never arrived."""
    return ReconcileResponse(**ReconciliationService.run(db, gateway))


@router.get("/payment/transactions")
def list_transactions(
    status: Optional[str] = None,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(get_db),
    _admin: User = Depends(staff_only),
):
    """All payment transactions, filterable by status and initiation date."""
    return {"success": True, **MonitoringService.list_transactions(db, status, start_date, end_date, page, limit)}


@router.get("/payment/metrics")
def payment_metrics(
    time_range: str = Query("24h", alias="timeRange"),
    db: Session = Depends(get_db),
    _admin: User = Depends(staff_only),
):
    """Success rate, failure breakdown and payment methods over a recent window."""
    return {"success": True, "metrics": MonitoringService.payment_metrics(db, time_range)}


@router.get("/payment/audit/{transaction_id}", response_model=list[AuditEntryOut])
def get_audit_trail(
    transaction_id: str,
    db: Session = Depends(get_db),
    _admin: User = Depends(staff_only),
):
    """Get the full audit trail for a transaction."""
    entries = AuditService.get_trail(db, transaction_id)
    if not entries:
        raise NotFoundError("No audit logs found for this transaction")
    return entries


@router.get("/payment/audit/{transaction_id}/verify")
def verify_audit_chain(
    transaction_id: str,
    db: Session = Depends(get_db),
    _admin: User = Depends(staff_only),
):
    result = AuditService.verify_chain(db, transaction_id)
    return {
        "valid": result["valid"],
        "totalEntries": result["total_entries"],
        "brokenAt": result["broken_at"],
        "message": result.get("message"),
    }
