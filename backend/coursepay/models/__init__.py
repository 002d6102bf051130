from coursepay.models.user import User
from coursepay.models.course import Course
from coursepay.models.discount import DiscountCode
from coursepay.models.transaction import Transaction
from coursepay.models.enrollment import Enrollment, Progress
from coursepay.models.audit import PaymentAuditLog

__all__ = ["User", "Course", "DiscountCode", "Transaction", "Enrollment", "Progress", "PaymentAuditLog"]
