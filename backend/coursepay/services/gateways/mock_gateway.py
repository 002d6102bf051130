"""
Mock Gateway — local stand-in for the payment provider.

Both checkout and elements mode hand out a URL to the in-app simulator
page (``/mock-gateway``), which redirects back to the callback route with a
fabricated gateway id and an HMAC signature. Never active in production.
"""
import secrets
import time
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

from coursepay.errors import ValidationError
from coursepay.services.gateways.base import (
    GatewayPayment, GatewayRefund, GatewayStatus, PaymentGateway, PaymentRequest, WebhookEvent,
)
from coursepay.utils.hashing import sign_callback, verify_callback

MOCK_ERROR_CODE = "MOCK_ERROR_001"
MOCK_ERROR_MESSAGE = "Payment declined by mock gateway"


def mock_gateway_transaction_id() -> str:
    return f"MOCK_{int(time.time() * 1000)}_{secrets.token_hex(5).upper()[:9]}"


class MockGateway(PaymentGateway):

    name = "mock"
    publishable_key = "pk_test_mock"
    trusts_callback_status = True

    def __init__(self, secret: str, api_base_url: str, merchant_id: str = "MOCK_MERCHANT"):
        self.secret = secret
        self.api_base_url = api_base_url.rstrip("/")
        self.merchant_id = merchant_id

    @property
    def callback_url(self) -> str:
        return f"{self.api_base_url}/api/payment/callback"

    def sign(self, transaction_id: str, status: str, gateway_transaction_id: str) -> str:
        return sign_callback(self.secret, transaction_id, status, gateway_transaction_id)

    def _simulator_url(self, request: PaymentRequest) -> str:
        query = urlencode({
            "transactionId": request.transaction_id,
            "amount": f"{request.amount:.2f}",
            "customerName": request.customer_name,
            "customerEmail": request.customer_email,
            "customerPhone": request.customer_phone or "",
            "callbackUrl": self.callback_url,
            "merchantId": self.merchant_id,
        })
        return f"{self.api_base_url}/mock-gateway?{query}"

    def create_payment_intent(self, request: PaymentRequest) -> GatewayPayment:
        # There is no card form to confirm against, so the simulator page stands in for it.
        intent_id = f"mock_pi_{secrets.token_hex(8)}"
        return GatewayPayment(
            gateway_transaction_id=intent_id,
            client_secret=f"{intent_id}_secret_{secrets.token_hex(8)}",
            payment_url=self._simulator_url(request),
        )

    def create_checkout_session(self, request: PaymentRequest, success_url: str, cancel_url: str) -> GatewayPayment:
        return GatewayPayment(
            gateway_transaction_id=f"mock_cs_{request.transaction_id}",
            payment_url=self._simulator_url(request),
        )

    def resume(self, gateway_transaction_id: str, request: PaymentRequest) -> GatewayPayment:
        if gateway_transaction_id.startswith("mock_pi_"):
            return GatewayPayment(
                gateway_transaction_id=gateway_transaction_id,
                client_secret=f"{gateway_transaction_id}_secret_{secrets.token_hex(8)}",
                payment_url=self._simulator_url(request),
            )
        return self.create_checkout_session(request, success_url="", cancel_url="")

    def retrieve(self, gateway_transaction_id: str) -> GatewayStatus:
        # The simulator keeps no state; only the callback reports outcomes.
        return GatewayStatus(status="pending", gateway_transaction_id=gateway_transaction_id)

    def refund(self, gateway_transaction_id: str, amount: Decimal) -> GatewayRefund:
        return GatewayRefund(refund_id=f"MOCK_RF_{secrets.token_hex(6).upper()}", status="succeeded", success=True)

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        raise ValidationError("Webhooks are not used by the mock gateway")

    def verify_callback_signature(self, params: Mapping[str, str]) -> bool:
        return verify_callback(
            self.secret,
            params.get("signature") or "",
            params.get("transactionId") or "",
            params.get("status") or "",
            params.get("gatewayTransactionId") or "",
        )

    def health(self) -> Dict[str, Any]:
        return {"available": True, "status": "mock"}
