from coursepay.services.audit_service import AuditService
from coursepay.services.discount_service import DiscountService
from coursepay.services.enrollment_service import EnrollmentService
from coursepay.services.monitoring_service import MonitoringService
from coursepay.services.payment_service import PaymentService
from coursepay.services.receipt_service import ReceiptService
from coursepay.services.reconciliation import ReconciliationService
from coursepay.services.status_service import StatusService

__all__ = [
    "AuditService", "DiscountService", "EnrollmentService", "MonitoringService", "PaymentService",
    "ReceiptService", "ReconciliationService", "StatusService",
]
