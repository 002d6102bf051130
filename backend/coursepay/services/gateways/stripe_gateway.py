"""
Stripe Gateway — PaymentIntents (Elements mode) and Checkout Sessions
(redirect mode) on the official stripe SDK.
"""
from decimal import Decimal
from typing import Any, Dict, Optional

import stripe

from coursepay.errors import GatewayError, GatewayTimeoutError, ValidationError
from coursepay.services.gateways.base import (
    GatewayPayment, GatewayRefund, GatewayStatus, PaymentGateway, PaymentRequest, WebhookEvent,
)
from coursepay.services.pricing import to_minor_units
from coursepay.utils.logger import get_logger

logger = get_logger(__name__)

_INTENT_STATUS = {
    "succeeded": "success",
    "processing": "processing",
    "requires_capture": "processing",
    "canceled": "failed",
}


def _plain(obj):
    """Stripe resources as plain dicts, nested objects included."""
    if obj is None or type(obj) is dict:
        return obj
    to_dict = getattr(obj, "to_dict", None) or getattr(obj, "to_dict_recursive", None)
    return to_dict() if to_dict else dict(obj)


def _error_type(error: stripe.StripeError) -> Optional[str]:
    body = getattr(error, "json_body", None) or {}
    return (body.get("error") or {}).get("type")


class StripeGateway(PaymentGateway):

    name = "stripe"

    def __init__(self, secret_key: str, publishable_key: str = "", webhook_secret: str = ""):
        self.secret_key = secret_key
        self.publishable_key = publishable_key
        self.webhook_secret = webhook_secret

    def _stripe(self):
        if not self.secret_key:
            raise GatewayError("Stripe is not configured (STRIPE_SECRET_KEY missing)")
        stripe.api_key = self.secret_key
        stripe.max_network_retries = 2
        return stripe

    def _call(self, operation: str, fn, *args, **kwargs):
        try:
            return _plain(fn(*args, **kwargs))
        except stripe.APIConnectionError as e:
            logger.warning("stripe %s: connection failure: %s", operation, e)
            raise GatewayTimeoutError("Payment gateway is temporarily unavailable. Please try again in a few minutes.")
        except stripe.StripeError as e:
            logger.error("stripe %s failed: %s", operation, e)
            raise GatewayError(
                getattr(e, "user_message", None) or str(e),
                provider_type=_error_type(e),
            )

    @staticmethod
    def _metadata(request: PaymentRequest) -> Dict[str, str]:
        return {
            "transactionId": request.transaction_id,
            "studentId": str(request.user_id or ""),
            "courseId": str(request.course_id or ""),
        }

    def create_payment_intent(self, request: PaymentRequest) -> GatewayPayment:
        s = self._stripe()
        intent = self._call(
            "create_payment_intent",
            s.PaymentIntent.create,
            amount=to_minor_units(request.amount),
            currency=request.currency.lower(),
            automatic_payment_methods={"enabled": True},
            metadata=self._metadata(request),
            description=f"Payment for {request.description}",
            receipt_email=request.customer_email or None,
            idempotency_key=f"pi-{request.transaction_id}",
        )
        return GatewayPayment(gateway_transaction_id=intent["id"], client_secret=intent["client_secret"])

    def create_checkout_session(self, request: PaymentRequest, success_url: str, cancel_url: str) -> GatewayPayment:
        s = self._stripe()
        session = self._call(
            "create_checkout_session",
            s.checkout.Session.create,
            mode="payment",
            line_items=[{
                "price_data": {
                    "currency": request.currency.lower(),
                    "product_data": {"name": request.description},
                    "unit_amount": to_minor_units(request.amount),
                },
                "quantity": 1,
            }],
            success_url=success_url,
            cancel_url=cancel_url,
            client_reference_id=request.transaction_id,
            customer_email=request.customer_email or None,
            metadata=self._metadata(request),
            idempotency_key=f"cs-{request.transaction_id}",
        )
        return GatewayPayment(gateway_transaction_id=session["id"], payment_url=session["url"])

    def resume(self, gateway_transaction_id: str, request: PaymentRequest) -> GatewayPayment:
        s = self._stripe()
        if gateway_transaction_id.startswith("pi_"):
            intent = self._call("resume", s.PaymentIntent.retrieve, gateway_transaction_id)
            if intent.get("status") not in ("requires_payment_method", "requires_confirmation", "requires_action"):
                raise GatewayError(f"PaymentIntent {gateway_transaction_id} is no longer open")
            return GatewayPayment(gateway_transaction_id=intent["id"], client_secret=intent["client_secret"])

        session = self._call("resume", s.checkout.Session.retrieve, gateway_transaction_id)
        if session.get("status") != "open" or not session.get("url"):
            raise GatewayError(f"Checkout session {gateway_transaction_id} is no longer open")
        return GatewayPayment(gateway_transaction_id=session["id"], payment_url=session["url"])

    def _intent_status(self, intent) -> GatewayStatus:
        status = _INTENT_STATUS.get(intent.get("status"), "pending")
        error = intent.get("last_payment_error") or {}
        if intent.get("status") == "requires_payment_method" and error:
            status = "failed"

        types = intent.get("payment_method_types") or []
        code = error.get("decline_code") or error.get("code")
        return GatewayStatus(
            status=status,
            gateway_transaction_id=intent.get("id"),
            payment_method=types[0] if types else None,
            error_code=str(code).upper() if code else None,
            error_message=error.get("message"),
            amount=Decimal(intent.get("amount") or 0) / 100,
        )

    def retrieve(self, gateway_transaction_id: str) -> GatewayStatus:
        s = self._stripe()
        if gateway_transaction_id.startswith("pi_"):
            intent = self._call("retrieve", s.PaymentIntent.retrieve, gateway_transaction_id)
            return self._intent_status(intent)

        session = self._call("retrieve", s.checkout.Session.retrieve, gateway_transaction_id, expand=["payment_intent"])
        intent = session.get("payment_intent")
        if intent and not isinstance(intent, str):
            return self._intent_status(intent)

        if session.get("payment_status") == "paid":
            return GatewayStatus(status="success", gateway_transaction_id=session.get("id"))
        if session.get("status") == "expired":
            return GatewayStatus(
                status="failed", gateway_transaction_id=session.get("id"),
                error_code="SESSION_EXPIRED", error_message="Checkout session expired",
            )
        return GatewayStatus(status="pending", gateway_transaction_id=session.get("id"))

    def refund(self, gateway_transaction_id: str, amount: Decimal) -> GatewayRefund:
        s = self._stripe()
        if not gateway_transaction_id.startswith("pi_"):
            gateway_transaction_id = self.retrieve(gateway_transaction_id).gateway_transaction_id or gateway_transaction_id
        refund = self._call(
            "refund",
            s.Refund.create,
            payment_intent=gateway_transaction_id,
            amount=to_minor_units(amount),
        )
        status = refund.get("status")
        return GatewayRefund(refund_id=refund["id"], status=status, success=status in ("succeeded", "pending"))

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        if not self.webhook_secret:
            raise GatewayError("Stripe webhook secret is not configured")
        try:
            event = _plain(stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret))
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("webhook signature verification failed: %s", e)
            raise ValidationError(f"Webhook Error: {e}")

        obj = event["data"]["object"]
        event_type = event["type"]
        metadata = obj.get("metadata") or {}
        transaction_id = metadata.get("transactionId") or obj.get("client_reference_id")

        status = None
        error_code = error_message = refund_amount = None
        gateway_id = obj.get("id")
        if event_type == "payment_intent.succeeded":
            status = "success"
        elif event_type == "payment_intent.processing":
            status = "processing"
        elif event_type == "payment_intent.payment_failed":
            status = "failed"
            error = obj.get("last_payment_error") or {}
            error_code = str(error.get("decline_code") or error.get("code") or "PAYMENT_FAILED").upper()
            error_message = error.get("message") or "Payment failed"
        elif event_type == "checkout.session.completed":
            status = "success" if obj.get("payment_status") == "paid" else "processing"
            gateway_id = obj.get("payment_intent") or obj.get("id")
        elif event_type == "checkout.session.expired":
            status = "failed"
            error_code, error_message = "SESSION_EXPIRED", "Checkout session expired"
        elif event_type == "charge.refunded":
            status = "refunded"
            if obj.get("amount_refunded") is not None:
                refund_amount = Decimal(obj["amount_refunded"]) / 100
            gateway_id = obj.get("payment_intent") or obj.get("id")

        return WebhookEvent(
            type=event_type,
            transaction_id=transaction_id,
            status=status,
            gateway_transaction_id=gateway_id,
            error_code=error_code,
            error_message=error_message,
            refund_amount=refund_amount,
            raw=dict(obj),
        )

    def health(self) -> Dict[str, Any]:
        configured = bool(self.secret_key)
        return {"available": configured, "status": "healthy" if configured else "unconfigured"}
