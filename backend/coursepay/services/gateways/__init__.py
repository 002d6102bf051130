"""
Gateway selection. ``get_gateway`` is the FastAPI dependency; tests
override it with their own gateway.
"""
from coursepay.config import get_settings
from coursepay.errors import GatewayError
from coursepay.services.gateways.base import (
    GatewayPayment, GatewayRefund, GatewayStatus, PaymentGateway, PaymentRequest, WebhookEvent,
)
from coursepay.services.gateways.mock_gateway import MockGateway
from coursepay.services.gateways.stripe_gateway import StripeGateway

_gateway = None


def build_gateway(settings=None) -> PaymentGateway:
    settings = settings or get_settings()
    if settings.PAYMENT_GATEWAY == "mock":
        if settings.is_production:
            raise GatewayError("The mock payment gateway cannot be used in production")
        return MockGateway(settings.SECRET_KEY, settings.API_BASE_URL, settings.MOCK_MERCHANT_ID)
    if settings.PAYMENT_GATEWAY == "stripe":
        return StripeGateway(
            secret_key=settings.STRIPE_SECRET_KEY,
            publishable_key=settings.STRIPE_PUBLISHABLE_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        )
    raise GatewayError(f"Unknown payment gateway '{settings.PAYMENT_GATEWAY}'")


def get_gateway() -> PaymentGateway:
    """Lazily built, process-wide gateway."""
    global _gateway
    if _gateway is None:
        _gateway = build_gateway()
    return _gateway


__all__ = [
    "PaymentGateway", "PaymentRequest", "GatewayPayment", "GatewayStatus", "GatewayRefund", "WebhookEvent",
    "MockGateway", "StripeGateway", "build_gateway", "get_gateway",
]
