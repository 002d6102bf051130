"""
Payment form adapter for embedded (elements) mode.

Submitting hands the provider a return URL carrying the transaction id;
from then on the callback page owns the outcome. Only an immediate
provider error comes back to the caller.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from coursepay.errors import provider_message

CALLBACK_PATH = "/dashboard/payment-callback"


def build_return_url(origin: str, transaction_id: str) -> str:
    query = urlencode({"transactionId": transaction_id, "status": "processing"})
    return f"{origin.rstrip('/')}{CALLBACK_PATH}?{query}"


@dataclass
class SubmitResult:
    redirected: bool
    message: Optional[str] = None


class PaymentFormAdapter:
    """
    ``confirm_payment(client_secret, return_url)`` is the provider SDK call.
    It returns ``None`` (or ``{"error": None}``) when the browser is sent
    to the return URL, and ``{"error": {"type", "message"}}`` on an
    immediate failure.
    """

    def __init__(self, confirm_payment: Callable[[str, str], Optional[Dict[str, Any]]], origin: str):
        self.confirm_payment = confirm_payment
        self.origin = origin

    def submit(self, transaction_id: str, client_secret: str) -> SubmitResult:
        result = self.confirm_payment(client_secret, build_return_url(self.origin, transaction_id)) or {}
        error = result.get("error")
        if not error:
            return SubmitResult(redirected=True)
        return SubmitResult(redirected=False, message=provider_message(error.get("type"), error.get("message")))
