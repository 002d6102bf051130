from decimal import Decimal

import pytest
import stripe

from coursepay.config import Settings
from coursepay.errors import GatewayError, GatewayTimeoutError, ValidationError
from coursepay.services.gateways import MockGateway, StripeGateway, build_gateway
from coursepay.services.gateways.base import PaymentRequest


def _request(**overrides):
    fields = dict(
        transaction_id="TXN_ABC_123456",
        amount=Decimal("1180.00"),
        currency="INR",
        description="Python for Data Science - Course Enrollment",
        customer_name="Asha",
        customer_email="asha@example.com",
        course_id=1,
        user_id=2,
    )
    fields.update(overrides)
    return PaymentRequest(**fields)


class TestSelection:

    def test_mock_refused_in_production(self):
        with pytest.raises(GatewayError):
            build_gateway(Settings(PAYMENT_GATEWAY="mock", ENVIRONMENT="production"))

    def test_stripe_selected(self):
        gateway = build_gateway(Settings(PAYMENT_GATEWAY="stripe", STRIPE_SECRET_KEY="sk_test_x"))
        assert isinstance(gateway, StripeGateway)

    def test_unknown_gateway(self):
        with pytest.raises(GatewayError):
            build_gateway(Settings(PAYMENT_GATEWAY="paypal"))


class TestMockGateway:

    def test_signature_roundtrip(self):
        gateway = MockGateway("secret", "http://api.test")
        params = {"transactionId": "TXN_1", "status": "success", "gatewayTransactionId": "MOCK_1"}
        params["signature"] = gateway.sign("TXN_1", "success", "MOCK_1")
        assert gateway.verify_callback_signature(params)

        params["status"] = "failed"
        assert not gateway.verify_callback_signature(params)

    def test_other_secret_rejected(self):
        signed = MockGateway("secret", "http://api.test").sign("TXN_1", "success", "MOCK_1")
        other = MockGateway("another", "http://api.test")
        assert not other.verify_callback_signature(
            {"transactionId": "TXN_1", "status": "success", "gatewayTransactionId": "MOCK_1", "signature": signed})

    def test_checkout_url(self):
        payment = MockGateway("secret", "http://api.test/").create_checkout_session(_request(), "", "")
        assert payment.payment_url.startswith("http://api.test/mock-gateway?transactionId=TXN_ABC_123456")
        assert "amount=1180.00" in payment.payment_url
        assert "callbackUrl=http%3A%2F%2Fapi.test%2Fapi%2Fpayment%2Fcallback" in payment.payment_url

    def test_webhooks_unsupported(self):
        with pytest.raises(ValidationError):
            MockGateway("secret", "http://api.test").parse_webhook(b"{}", None)


class TestStripeGateway:

    @pytest.fixture
    def gateway(self, monkeypatch):
        monkeypatch.setattr(stripe, "api_key", None)
        return StripeGateway("sk_test_123", "pk_test_123", "whsec_123")

    def test_payment_intent_in_minor_units(self, gateway, monkeypatch):
        seen = {}

        def create(**kwargs):
            seen.update(kwargs)
            return {"id": "pi_1", "client_secret": "pi_1_secret_x"}

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)
        payment = gateway.create_payment_intent(_request())
        assert payment.gateway_transaction_id == "pi_1"
        assert payment.client_secret == "pi_1_secret_x"
        assert seen["amount"] == 118000
        assert seen["currency"] == "inr"
        assert seen["metadata"]["transactionId"] == "TXN_ABC_123456"
        assert seen["idempotency_key"] == "pi-TXN_ABC_123456"

    def test_checkout_session(self, gateway, monkeypatch):
        seen = {}

        def create(**kwargs):
            seen.update(kwargs)
            return {"id": "cs_1", "url": "https://checkout.stripe.test/cs_1"}

        monkeypatch.setattr(stripe.checkout.Session, "create", create)
        payment = gateway.create_checkout_session(_request(), "https://ok", "https://cancel")
        assert payment.payment_url == "https://checkout.stripe.test/cs_1"
        assert seen["client_reference_id"] == "TXN_ABC_123456"
        assert seen["line_items"][0]["price_data"]["unit_amount"] == 118000

    def test_connection_error_is_timeout(self, gateway, monkeypatch):
        def create(**kwargs):
            raise stripe.APIConnectionError("Network down")

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)
        with pytest.raises(GatewayTimeoutError):
            gateway.create_payment_intent(_request())

    def test_provider_error_keeps_type(self, gateway, monkeypatch):
        def create(**kwargs):
            raise stripe.InvalidRequestError(
                "Amount must be at least 50 cents", param="amount",
                json_body={"error": {"type": "invalid_request_error"}},
            )

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)
        with pytest.raises(GatewayError) as exc:
            gateway.create_payment_intent(_request())
        assert exc.value.provider_type == "invalid_request_error"
        assert not isinstance(exc.value, GatewayTimeoutError)

    def test_missing_key(self):
        with pytest.raises(GatewayError):
            StripeGateway("").create_payment_intent(_request())

    @pytest.mark.parametrize("intent,expected", [
        ({"id": "pi_1", "status": "succeeded", "amount": 118000}, "success"),
        ({"id": "pi_1", "status": "processing", "amount": 118000}, "processing"),
        ({"id": "pi_1", "status": "requires_payment_method", "amount": 118000}, "pending"),
        ({"id": "pi_1", "status": "requires_payment_method", "amount": 118000,
          "last_payment_error": {"code": "card_declined", "decline_code": "insufficient_funds", "message": "No"}},
         "failed"),
        ({"id": "pi_1", "status": "canceled", "amount": 118000}, "failed"),
    ])
    def test_retrieve_maps_intent_status(self, gateway, monkeypatch, intent, expected):
        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", lambda *a, **kw: intent)
        status = gateway.retrieve("pi_1")
        assert status.status == expected
        assert status.amount == Decimal("1180")
        if expected == "failed" and intent.get("last_payment_error"):
            assert status.error_code == "INSUFFICIENT_FUNDS"

    def test_retrieve_expired_session(self, gateway, monkeypatch):
        monkeypatch.setattr(stripe.checkout.Session, "retrieve",
                            lambda *a, **kw: {"id": "cs_1", "status": "expired", "payment_status": "unpaid"})
        status = gateway.retrieve("cs_1")
        assert status.status == "failed"
        assert status.error_code == "SESSION_EXPIRED"

    def test_webhook_event_mapping(self, gateway, monkeypatch):
        event = {
            "type": "checkout.session.completed",
            "data": {"object": {
                "id": "cs_1", "payment_status": "paid", "payment_intent": "pi_9",
                "client_reference_id": "TXN_ABC_123456", "metadata": {},
            }},
        }
        monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: event)
        parsed = gateway.parse_webhook(b"{}", "t=1,v1=abc")
        assert parsed.transaction_id == "TXN_ABC_123456"
        assert parsed.status == "success"
        assert parsed.gateway_transaction_id == "pi_9"

    def test_partial_refund_amount(self, gateway, monkeypatch):
        event = {
            "type": "charge.refunded",
            "data": {"object": {
                "id": "ch_1", "payment_intent": "pi_9", "amount": 118000, "amount_refunded": 20000,
                "metadata": {"transactionId": "TXN_ABC_123456"},
            }},
        }
        monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: event)
        parsed = gateway.parse_webhook(b"{}", "t=1,v1=abc")
        assert parsed.status == "refunded"
        assert parsed.refund_amount == Decimal("200")
        assert parsed.gateway_transaction_id == "pi_9"

    def test_webhook_bad_signature(self, gateway, monkeypatch):
        def construct(payload, sig, secret):
            raise stripe.SignatureVerificationError("No signatures found", sig)

        monkeypatch.setattr(stripe.Webhook, "construct_event", construct)
        with pytest.raises(ValidationError):
            gateway.parse_webhook(b"{}", "bad")
