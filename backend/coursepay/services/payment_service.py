"""
Payment Service — initiation, provider round-trip and terminal outcomes.

The callback route, the webhook and reconciliation are the only triggers
that move a transaction forward; all of them funnel through
``apply_outcome`` so the same rules hold whichever arrives first.
"""
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Mapping, Optional
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from coursepay.config import get_settings
from coursepay.errors import (
    GatewayError, GatewayTimeoutError, InvalidTransitionError, MaintenanceModeError,
    NotFoundError, PermissionDeniedError, ValidationError, provider_message,
)
from coursepay.models.course import Course
from coursepay.models.transaction import Transaction
from coursepay.models.user import User
from coursepay.services.audit_service import AuditService
from coursepay.services.discount_service import DiscountService
from coursepay.services.enrollment_service import EnrollmentService
from coursepay.services.gateways.base import GatewayPayment, GatewayStatus, PaymentGateway, PaymentRequest
from coursepay.services.pricing import PriceBreakdown, calculate_price, to_money
from coursepay.services.receipt_service import ReceiptService
from coursepay.services.transaction_state import (
    FAILED, PENDING, PROCESSING, REFUNDED, SUCCESS, TERMINAL_STATUSES, TransactionStateMachine,
)
from coursepay.utils.logger import get_logger
from coursepay.utils.validators import normalize_code, validate_amount_precision

logger = get_logger(__name__)

MODES = ("elements", "checkout")
_BASE36 = string.digits + string.ascii_uppercase


def _base36(number: int) -> str:
    digits = ""
    while number:
        number, rem = divmod(number, 36)
        digits = _BASE36[rem] + digits
    return digits or "0"


def generate_transaction_id() -> str:
    """Format: TXN_<base36 ms timestamp>_<6 random chars>"""
    random_part = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"TXN_{_base36(int(time.time() * 1000))}_{random_part}"


def categorize_error(error_code: Optional[str]) -> str:
    code = (error_code or "").upper()
    if "INSUFFICIENT" in code:
        return "insufficient_funds"
    if "DECLINED" in code or "CARD" in code:
        return "card_declined"
    if "TIMEOUT" in code or "NETWORK" in code:
        return "network"
    if "EXPIRED" in code:
        return "expired"
    return "other"


@dataclass
class Outcome:
    """A reported payment state, from a callback, webhook or provider query."""
    status: str
    gateway_transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    payment_method: Optional[str] = None
    payment_method_details: Optional[dict] = None
    refund_amount: Optional[Decimal] = None

    @classmethod
    def from_gateway(cls, status: GatewayStatus) -> "Outcome":
        return cls(
            status=status.status,
            gateway_transaction_id=status.gateway_transaction_id,
            error_code=status.error_code,
            error_message=status.error_message,
            payment_method=status.payment_method,
            payment_method_details=status.payment_method_details or None,
        )


@dataclass
class InitiationResult:
    transaction: Transaction
    mode: str
    breakdown: PriceBreakdown
    client_secret: Optional[str] = None
    payment_url: Optional[str] = None
    publishable_key: Optional[str] = None
    reused: bool = False


class PaymentService:

    def __init__(self, db: Session, gateway: PaymentGateway, settings=None):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()

    # ─── Lookup ──────────────────────────────────────────────────────

    def get_transaction(self, transaction_id: str) -> Transaction:
        txn = self.db.query(Transaction).filter(Transaction.transaction_id == transaction_id).first()
        if txn is None:
            raise NotFoundError("Transaction not found")
        return txn

    def get_owned_transaction(self, user: User, transaction_id: str) -> Transaction:
        txn = self.get_transaction(transaction_id)
        if txn.user_id != user.id and user.role not in ("admin", "finance"):
            raise PermissionDeniedError("Unauthorized access to transaction")
        return txn

    # ─── Initiation ──────────────────────────────────────────────────

    def quote(self, course: Course, discount_code: Optional[str]) -> PriceBreakdown:
        """Server-side price for a course, re-validating the discount code."""
        ok, error = validate_amount_precision(course.price)
        if not ok:
            raise ValidationError(f"Course price validation error: {error}")

        discount = None
        if normalize_code(discount_code):
            discount = DiscountService.validate(self.db, discount_code, course.id)
        return calculate_price(course.price, DiscountService.as_pricing_discount(discount))

    def _check_bounds(self, breakdown: PriceBreakdown) -> None:
        minimum = to_money(self.settings.MIN_PAYMENT_AMOUNT)
        maximum = to_money(self.settings.MAX_PAYMENT_AMOUNT)
        if breakdown.subtotal < minimum:
            raise ValidationError(
                f"Payment amount must be at least {self.settings.CURRENCY} {minimum:.2f}",
                details={"subtotal": f"{breakdown.subtotal:.2f}", "minAmount": f"{minimum:.2f}"},
            )
        if breakdown.total > maximum:
            raise ValidationError(
                f"Total amount including GST cannot exceed {self.settings.CURRENCY} {maximum:.2f}",
                details={"total": f"{breakdown.total:.2f}", "maxAmount": f"{maximum:.2f}"},
            )

    def _payment_request(self, txn: Transaction, user: User, course: Course) -> PaymentRequest:
        return PaymentRequest(
            transaction_id=txn.transaction_id,
            amount=Decimal(str(txn.final_amount)),
            currency=txn.currency,
            description=f"{course.title} - Course Enrollment",
            customer_name=user.name,
            customer_email=user.email,
            customer_phone=user.phone or "",
            course_id=course.id,
            user_id=user.id,
        )

    def _return_urls(self, transaction_id: str) -> tuple[str, str]:
        base = f"{self.settings.API_BASE_URL.rstrip('/')}/api/payment/callback"
        success = f"{base}?{urlencode({'transactionId': transaction_id, 'status': PROCESSING})}"
        cancel = f"{base}?{urlencode({'transactionId': transaction_id, 'status': 'cancelled'})}"
        return success, cancel

    def _find_reusable(self, user: User, course: Course, code: Optional[str], mode: str,
                       breakdown: PriceBreakdown) -> Optional[Transaction]:
        candidates = (
            self.db.query(Transaction)
            .filter(
                Transaction.user_id == user.id,
                Transaction.course_id == course.id,
                Transaction.status == PENDING,
                Transaction.mode == mode,
                Transaction.gateway == self.gateway.name,
                Transaction.session_expires_at > datetime.utcnow(),
                Transaction.gateway_transaction_id.isnot(None),
            )
            .order_by(Transaction.initiated_at.desc())
            .all()
        )
        for txn in candidates:
            if (txn.discount_code or None) == code and Decimal(str(txn.final_amount)) == breakdown.total:
                return txn
        return None

    def _create_provider_object(self, txn: Transaction, request: PaymentRequest, mode: str) -> GatewayPayment:
        if mode == "elements":
            return self.gateway.create_payment_intent(request)
        success_url, cancel_url = self._return_urls(txn.transaction_id)
        return self.gateway.create_checkout_session(request, success_url, cancel_url)

    def initiate(
        self,
        user: User,
        course_id: int,
        discount_code: Optional[str] = None,
        mode: str = "checkout",
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> InitiationResult:
        """Price the course, open a provider payment and persist a pending transaction."""
        if self.settings.PAYMENT_MAINTENANCE_MODE:
            logger.warning("initiation refused for user=%s: maintenance mode", user.id)
            raise MaintenanceModeError()

        if mode not in MODES:
            raise ValidationError(f"Payment mode must be one of {', '.join(MODES)}")

        course = self.db.query(Course).filter(Course.id == course_id).first()
        if course is None:
            raise NotFoundError("Course not found")

        if EnrollmentService.is_enrolled(self.db, user.id, course.id):
            logger.info("user %s is re-enrolling in course %s", user.id, course.id)

        breakdown = self.quote(course, discount_code)
        self._check_bounds(breakdown)
        code = normalize_code(discount_code) or None

        existing = self._find_reusable(user, course, code, mode, breakdown)
        if existing is not None:
            try:
                handoff = self.gateway.resume(existing.gateway_transaction_id, self._payment_request(existing, user, course))
            except GatewayError as e:
                logger.info("pending transaction %s not resumable (%s); creating a new one", existing.transaction_id, e)
            else:
                AuditService.log(self.db, existing.transaction_id, "PAYMENT_REUSED",
                                 payload={"mode": mode}, actor_id=user.id, ip_address=ip_address)
                logger.info("reusing pending transaction %s for user=%s course=%s",
                            existing.transaction_id, user.id, course.id)
                return self._result(existing, mode, breakdown, handoff, reused=True)

        now = datetime.utcnow()
        txn = Transaction(
            transaction_id=generate_transaction_id(),
            user_id=user.id,
            course_id=course.id,
            original_amount=breakdown.original,
            discount_code=code,
            discount_amount=breakdown.discount,
            subtotal_amount=breakdown.subtotal,
            gst_amount=breakdown.gst,
            final_amount=breakdown.total,
            currency=self.settings.CURRENCY,
            mode=mode,
            gateway=self.gateway.name,
            status=PENDING,
            initiated_at=now,
            session_expires_at=now + timedelta(minutes=self.settings.PAYMENT_SESSION_MINUTES),
            ip_address=ip_address,
            user_agent=(user_agent or "")[:256] or None,
        )
        self.db.add(txn)
        self.db.commit()
        self.db.refresh(txn)

        handoff = self._open_with_gateway(txn, user, course, mode)

        AuditService.log(
            self.db, txn.transaction_id, "PAYMENT_INITIATED",
            payload={"course_id": course.id, "mode": mode, "total": str(breakdown.total), "discount_code": code},
            actor_id=user.id, ip_address=ip_address, user_agent=user_agent,
        )
        logger.info("payment initiated: txn=%s user=%s course=%s mode=%s total=%s",
                    txn.transaction_id, user.id, course.id, mode, breakdown.total)
        return self._result(txn, mode, breakdown, handoff)

    def _open_with_gateway(self, txn: Transaction, user: User, course: Course, mode: str) -> GatewayPayment:
        request = self._payment_request(txn, user, course)
        try:
            handoff = self._create_provider_object(txn, request, mode)
        except GatewayTimeoutError as e:
            self._fail(txn, "GATEWAY_TIMEOUT", "Payment gateway timeout", "gateway_timeout")
            self.db.commit()
            raise GatewayTimeoutError(e.message, transactionId=txn.transaction_id)
        except GatewayError as e:
            self._fail(txn, "GATEWAY_ERROR", e.message, "gateway")
            self.db.commit()
            raise GatewayError(provider_message(e.provider_type, e.message),
                               provider_type=e.provider_type, transactionId=txn.transaction_id)

        txn.gateway_transaction_id = handoff.gateway_transaction_id
        self.db.commit()
        return handoff

    def _result(self, txn: Transaction, mode: str, breakdown: PriceBreakdown,
                handoff: GatewayPayment, reused: bool = False) -> InitiationResult:
        return InitiationResult(
            transaction=txn,
            mode=mode,
            breakdown=breakdown,
            client_secret=handoff.client_secret,
            payment_url=handoff.payment_url,
            publishable_key=self.gateway.publishable_key if mode == "elements" else None,
            reused=reused,
        )

    # ─── Outcomes ────────────────────────────────────────────────────

    def _fail(self, txn: Transaction, code: str, message: str, category: Optional[str] = None) -> bool:
        changed = TransactionStateMachine.transition(txn, FAILED)
        if changed:
            txn.error_code = code
            txn.error_message = message
            txn.error_category = category or categorize_error(code)
        return changed

    def _on_success(self, txn: Transaction) -> None:
        EnrollmentService.activate_for(self.db, txn)
        if txn.discount_code:
            DiscountService.redeem(self.db, txn.discount_code)
        ReceiptService.assign_number(self.db, txn)

    def _record_refund(self, txn: Transaction, amount: Optional[Decimal]) -> None:
        """Record the cumulative refunded amount; course access goes only on a full refund."""
        total = to_money(txn.final_amount)
        if amount is not None:
            txn.refund_amount = min(to_money(amount), total)
        elif txn.refund_amount is None:
            txn.refund_amount = total
        if to_money(txn.refund_amount) >= total:
            EnrollmentService.deactivate_for(self.db, txn)

    def apply_outcome(self, txn: Transaction, outcome: Outcome, source: str) -> bool:
        """Apply a reported state to ``txn``. Returns True when the status changed.

        Reports that arrive after a terminal state (other than a refund of a
        successful payment) are ignored.
        """
        if outcome.gateway_transaction_id and outcome.status in (SUCCESS, PROCESSING) and txn.status in (PENDING, PROCESSING):
            txn.gateway_transaction_id = outcome.gateway_transaction_id
        if outcome.payment_method:
            txn.payment_method = outcome.payment_method
            txn.payment_method_details = outcome.payment_method_details or {}

        previous = txn.status
        try:
            if outcome.status == PROCESSING:
                changed = TransactionStateMachine.transition(txn, PROCESSING)
            elif outcome.status == SUCCESS:
                changed = TransactionStateMachine.transition(txn, SUCCESS)
                if changed:
                    self._on_success(txn)
            elif outcome.status == FAILED:
                changed = self._fail(
                    txn,
                    outcome.error_code or "PAYMENT_FAILED",
                    outcome.error_message or "Payment failed",
                )
            elif outcome.status == REFUNDED:
                changed = TransactionStateMachine.transition(txn, REFUNDED)
                if changed or outcome.refund_amount is not None:
                    self._record_refund(txn, outcome.refund_amount)
            else:
                changed = False
        except InvalidTransitionError:
            logger.info("%s for %s ignored: '%s' after '%s'", source, txn.transaction_id, outcome.status, previous)
            return False

        if changed:
            AuditService.log(
                self.db, txn.transaction_id, "STATUS_CHANGED",
                payload={"from": previous, "to": txn.status, "source": source},
                commit=False,
            )
            logger.info("txn %s: %s -> %s (%s)", txn.transaction_id, previous, txn.status, source)
        return changed

    def expire_if_stale(self, txn: Transaction, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        if txn.status in (PENDING, PROCESSING) and txn.session_expires_at and now > txn.session_expires_at:
            minutes = self.settings.PAYMENT_SESSION_MINUTES
            return self._fail(txn, "SESSION_EXPIRED",
                              f"Payment session has expired ({minutes} minute timeout)", "expired")
        return False

    def refresh_from_gateway(self, txn: Transaction, source: str = "status_check") -> bool:
        """Ask the provider for the real state of an open transaction."""
        if txn.status not in (PENDING, PROCESSING) or not txn.gateway_transaction_id:
            return False
        status = self.gateway.retrieve(txn.gateway_transaction_id)
        return self.apply_outcome(txn, Outcome.from_gateway(status), source)

    # ─── Callback & webhook ──────────────────────────────────────────

    def handle_callback(self, params: Mapping[str, str]) -> Transaction:
        """Browser redirect back from the provider (or the mock simulator)."""
        transaction_id = params.get("transactionId")
        if not transaction_id:
            raise ValidationError("Invalid callback - missing transaction ID")

        txn = self.get_transaction(transaction_id)
        reported = (params.get("status") or "").lower()

        if self.gateway.trusts_callback_status and not self.gateway.verify_callback_signature(params):
            # Only the rejection is recorded; the transaction row is left as it was.
            AuditService.log(self.db, txn.transaction_id, "CALLBACK_REJECTED",
                             payload={"status": reported, "reason": "bad signature"})
            logger.warning("callback for %s rejected: bad signature", transaction_id)
            raise ValidationError("Invalid callback signature")

        if txn.status not in TERMINAL_STATUSES:
            txn.callback_data = dict(params)
            txn.callback_received_at = datetime.utcnow()
        AuditService.log(self.db, txn.transaction_id, "CALLBACK_RECEIVED",
                         payload={"status": reported, "gateway_transaction_id": params.get("gatewayTransactionId")},
                         commit=False)

        if self.gateway.trusts_callback_status:
            outcome = self._outcome_from_params(params, reported)
        else:
            outcome = self._outcome_from_provider(txn, reported)

        if outcome.status != SUCCESS:
            self.expire_if_stale(txn)
        self.apply_outcome(txn, outcome, "callback")

        self.db.commit()
        self.db.refresh(txn)
        return txn

    @staticmethod
    def _outcome_from_params(params: Mapping[str, str], reported: str) -> Outcome:
        details = {
            key: params.get(key)
            for key in ("cardType", "cardLast4", "bankName", "upiId", "walletProvider")
            if params.get(key)
        }
        if reported == "cancelled":
            return Outcome(status=FAILED, error_code="PAYMENT_CANCELLED", error_message="Payment was cancelled")
        return Outcome(
            status=reported if reported in (PROCESSING, SUCCESS, FAILED) else PENDING,
            gateway_transaction_id=params.get("gatewayTransactionId") or None,
            error_code=params.get("errorCode"),
            error_message=params.get("errorMessage"),
            payment_method=params.get("paymentMethod"),
            payment_method_details=details,
        )

    def _outcome_from_provider(self, txn: Transaction, reported: str) -> Outcome:
        if not txn.gateway_transaction_id:
            return Outcome(status=PENDING)
        try:
            outcome = Outcome.from_gateway(self.gateway.retrieve(txn.gateway_transaction_id))
        except GatewayError as e:
            logger.warning("could not verify %s with gateway in callback: %s", txn.transaction_id, e)
            return Outcome(status=PROCESSING if reported == PROCESSING else PENDING)

        if outcome.status == PENDING and reported == "cancelled":
            return Outcome(status=FAILED, error_code="PAYMENT_CANCELLED", error_message="Payment was cancelled")
        if outcome.status == PENDING and reported == PROCESSING:
            outcome.status = PROCESSING
        return outcome

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> dict:
        event = self.gateway.parse_webhook(payload, signature)

        txn = None
        if event.transaction_id:
            txn = self.db.query(Transaction).filter(Transaction.transaction_id == event.transaction_id).first()
        if txn is None and event.gateway_transaction_id:
            txn = (self.db.query(Transaction)
                   .filter(Transaction.gateway_transaction_id == event.gateway_transaction_id).first())

        if txn is None or event.status is None:
            logger.info("webhook %s ignored (transaction=%s)", event.type, event.transaction_id)
            return {"received": True, "processed": False}

        AuditService.log(self.db, txn.transaction_id, "WEBHOOK_RECEIVED",
                         payload={"type": event.type, "status": event.status}, commit=False)
        changed = self.apply_outcome(
            txn,
            Outcome(
                status=event.status,
                gateway_transaction_id=event.gateway_transaction_id,
                error_code=event.error_code,
                error_message=event.error_message,
                refund_amount=event.refund_amount,
            ),
            "webhook",
        )
        txn.webhook_processed = True
        self.db.commit()
        return {"received": True, "processed": changed, "transactionId": txn.transaction_id, "status": txn.status}

    # ─── Retry & refund ──────────────────────────────────────────────

    def retry(self, user: User, transaction_id: str,
              ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> InitiationResult:
        """Open a new attempt for a failed transaction with the same amounts."""
        if self.settings.PAYMENT_MAINTENANCE_MODE:
            raise MaintenanceModeError()

        original = self.get_transaction(transaction_id)
        if original.user_id != user.id:
            raise PermissionDeniedError("Unauthorized access to transaction")
        if original.status != FAILED:
            raise ValidationError("Can only retry failed transactions")
        if (original.retry_count or 0) >= self.settings.MAX_RETRY_COUNT:
            raise ValidationError("Maximum retry attempts reached. Please create a new payment session.")
        window = timedelta(hours=self.settings.RETRY_WINDOW_HOURS)
        if original.initiated_at and datetime.utcnow() - original.initiated_at > window:
            raise ValidationError("Retry period expired. Please create a new payment session.")

        now = datetime.utcnow()
        txn = Transaction(
            transaction_id=generate_transaction_id(),
            user_id=user.id,
            course_id=original.course_id,
            original_amount=original.original_amount,
            discount_code=original.discount_code,
            discount_amount=original.discount_amount,
            subtotal_amount=original.subtotal_amount,
            gst_amount=original.gst_amount,
            final_amount=original.final_amount,
            currency=original.currency,
            mode=original.mode,
            gateway=self.gateway.name,
            status=PENDING,
            initiated_at=now,
            session_expires_at=now + timedelta(minutes=self.settings.PAYMENT_SESSION_MINUTES),
            retry_count=(original.retry_count or 0) + 1,
            last_retry_at=now,
            parent_transaction_id=original.transaction_id,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:256] or None,
        )
        original.retry_count = (original.retry_count or 0) + 1
        original.last_retry_at = now
        self.db.add(txn)
        self.db.commit()
        self.db.refresh(txn)

        handoff = self._open_with_gateway(txn, user, original.course, txn.mode)
        AuditService.log(self.db, txn.transaction_id, "PAYMENT_RETRIED",
                         payload={"parent": original.transaction_id, "retry_count": txn.retry_count},
                         actor_id=user.id, ip_address=ip_address, user_agent=user_agent)
        logger.info("retry %s of %s opened as %s", txn.retry_count, original.transaction_id, txn.transaction_id)

        breakdown = PriceBreakdown(
            original=to_money(txn.original_amount),
            discount=to_money(txn.discount_amount or 0),
            subtotal=to_money(txn.subtotal_amount),
            gst=to_money(txn.gst_amount),
            total=to_money(txn.final_amount),
        )
        return self._result(txn, txn.mode, breakdown, handoff)

    def refund(self, admin: User, transaction_id: str, amount=None, reason: str = "") -> Transaction:
        txn = self.get_transaction(transaction_id)
        if txn.status == REFUNDED:
            raise ValidationError("Transaction already refunded")
        if txn.status != SUCCESS:
            raise ValidationError("Can only refund successful transactions")

        total = to_money(txn.final_amount)
        refund_amount = to_money(amount) if amount is not None else total
        if refund_amount <= 0 or refund_amount > total:
            raise ValidationError("Invalid refund amount")
        if not txn.gateway_transaction_id:
            raise ValidationError("Transaction has no gateway reference to refund against")

        result = self.gateway.refund(txn.gateway_transaction_id, refund_amount)
        if not result.success:
            logger.error("refund for %s rejected by gateway: status=%s", txn.transaction_id, result.status)
            raise GatewayError(f"Refund was not accepted by the payment gateway (status: {result.status})")

        TransactionStateMachine.transition(txn, REFUNDED)
        txn.refund_transaction_id = result.refund_id
        txn.refund_reason = reason
        txn.refund_initiated_by = admin.id
        self._record_refund(txn, refund_amount)

        AuditService.log(self.db, txn.transaction_id, "REFUND_PROCESSED",
                         payload={"amount": str(refund_amount), "refund_id": result.refund_id, "reason": reason},
                         actor_id=admin.id, commit=False)
        self.db.commit()
        self.db.refresh(txn)
        logger.info("refund %s processed for %s (%s)", result.refund_id, txn.transaction_id, refund_amount)
        return txn
