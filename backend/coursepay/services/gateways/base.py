"""
Gateway interface shared by the Stripe integration and the mock simulator.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional


@dataclass
class PaymentRequest:
    transaction_id: str
    amount: Decimal             # total including GST
    currency: str
    description: str
    customer_name: str
    customer_email: str
    customer_phone: str = ""
    course_id: Optional[int] = None
    user_id: Optional[int] = None


@dataclass
class GatewayPayment:
    """Provider object created for a transaction."""
    gateway_transaction_id: str
    client_secret: Optional[str] = None
    payment_url: Optional[str] = None


@dataclass
class GatewayStatus:
    """Provider view of a payment, already mapped onto our lifecycle statuses."""
    status: str
    gateway_transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_method_details: Dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    amount: Optional[Decimal] = None


@dataclass
class GatewayRefund:
    refund_id: str
    status: str
    success: bool


@dataclass
class WebhookEvent:
    type: str
    transaction_id: Optional[str]
    status: Optional[str]
    gateway_transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    refund_amount: Optional[Decimal] = None     # cumulative amount refunded so far
    raw: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway:
    """Operations the checkout flow needs from a payment provider."""

    name = "base"
    publishable_key: Optional[str] = None
    # When True the callback's status parameter is authoritative once its
    # signature checks out; otherwise the provider is asked for the real state.
    trusts_callback_status = False

    def create_payment_intent(self, request: PaymentRequest) -> GatewayPayment:
        raise NotImplementedError

    def create_checkout_session(self, request: PaymentRequest, success_url: str, cancel_url: str) -> GatewayPayment:
        raise NotImplementedError

    def resume(self, gateway_transaction_id: str, request: PaymentRequest) -> GatewayPayment:
        """Hand back an existing, still-open provider object (client secret or URL)."""
        raise NotImplementedError

    def retrieve(self, gateway_transaction_id: str) -> GatewayStatus:
        raise NotImplementedError

    def refund(self, gateway_transaction_id: str, amount: Decimal) -> GatewayRefund:
        raise NotImplementedError

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        raise NotImplementedError

    def verify_callback_signature(self, params: Mapping[str, str]) -> bool:
        return True

    def health(self) -> Dict[str, Any]:
        return {"available": True, "status": "healthy"}
