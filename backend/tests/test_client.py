"""
Client package: session providers, API error mapping, payment form adapter
and status tracker. HTTP is stubbed; nothing here talks to a server.
"""
import pytest
import requests

from coursepay.client import (
    InMemorySessionProvider, JsonFileSessionProvider, PaymentApiClient, PaymentFormAdapter,
    TransactionStatusTracker, build_return_url, home_path_for_role,
)
from coursepay.errors import (
    AuthError, GatewayTimeoutError, MaintenanceModeError, NetworkError, NotFoundError, ValidationError,
)


class StubResponse:

    def __init__(self, status_code=200, body=None, content=b""):
        self.status_code = status_code
        self._body = body
        self.content = content

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class StubHttp:

    def __init__(self, *responses, error=None):
        self.responses = list(responses)
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.responses.pop(0)


def _api(*responses, error=None, token="tok"):
    session = InMemorySessionProvider({"token": token, "role": "student"} if token else None)
    http = StubHttp(*responses, error=error)
    return PaymentApiClient("http://api.test/", session, http=http), http


class TestSessionProviders:

    @pytest.mark.parametrize("role,path", [
        ("admin", "/admin/dashboard"),
        ("university", "/university/dashboard"),
        ("partner", "/partner/dashboard"),
        ("finance", "/finance/dashboard"),
        ("student", "/dashboard"),
        (None, "/dashboard"),
    ])
    def test_home_paths(self, role, path):
        assert home_path_for_role(role) == path

    def test_in_memory_notifies_listeners(self):
        provider = InMemorySessionProvider()
        seen = []
        unsubscribe = provider.on_session_change(seen.append)

        provider.set_user({"token": "abc", "role": "partner"})
        assert provider.get_token() == "abc"
        assert provider.get_role() == "partner"

        unsubscribe()
        provider.clear()
        assert seen == [{"token": "abc", "role": "partner"}]
        assert provider.get_token() is None

    def test_json_file_roundtrip(self, tmp_path):
        path = tmp_path / "session" / "user.json"
        provider = JsonFileSessionProvider(str(path))
        assert provider.get_user() is None

        provider.set_user({"token": "t1", "role": "admin"})
        assert JsonFileSessionProvider(str(path)).get_role() == "admin"

        provider.clear()
        assert not path.exists()

    def test_json_file_corrupt_means_logged_out(self, tmp_path):
        path = tmp_path / "user.json"
        path.write_text("{not json")
        assert JsonFileSessionProvider(str(path)).get_token() is None


class TestApiClient:

    def test_sends_bearer_token_and_normalized_code(self):
        api, http = _api(StubResponse(body={"code": "SAVE10", "type": "percentage", "value": 10}))
        assert api.validate_discount(" save10 ", 3)["value"] == 10
        method, url, kwargs = http.calls[0]
        assert (method, url) == ("POST", "http://api.test/api/discount/validate")
        assert kwargs["headers"] == {"Authorization": "Bearer tok"}
        assert kwargs["json"] == {"code": "SAVE10", "courseId": 3}

    def test_no_token_no_header(self):
        api, http = _api(StubResponse(body=[]), token=None)
        api.list_courses()
        assert http.calls[0][2]["headers"] == {}

    def test_get_status_unwraps_transaction(self):
        api, _ = _api(StubResponse(body={"success": True, "transaction": {"status": "pending"}}))
        assert api.get_status("TXN_1") == {"status": "pending"}

    def test_maintenance(self):
        api, _ = _api(StubResponse(503, {"success": False, "message": "down", "errorCategory": "maintenance",
                                         "maintenanceMode": True}))
        with pytest.raises(MaintenanceModeError):
            api.initiate_payment(1)

    def test_gateway_timeout_keeps_transaction_id(self):
        api, _ = _api(StubResponse(503, {"message": "slow", "errorCategory": "gateway_timeout",
                                         "transactionId": "TXN_9"}))
        with pytest.raises(GatewayTimeoutError) as exc:
            api.initiate_payment(1)
        assert exc.value.extra["transactionId"] == "TXN_9"

    def test_not_found_and_validation(self):
        api, _ = _api(
            StubResponse(404, {"message": "Invalid or expired discount code", "errorCategory": "not_found"}),
            StubResponse(422, {"detail": [{"msg": "field required"}]}),
        )
        with pytest.raises(NotFoundError):
            api.validate_discount("X", 1)
        with pytest.raises(ValidationError):
            api.validate_discount("X", 1)

    def test_unauthorized(self):
        api, _ = _api(StubResponse(401, None))
        with pytest.raises(AuthError):
            api.get_status("TXN_1")

    def test_transport_failure(self):
        api, _ = _api(error=requests.exceptions.ConnectionError("refused"))
        with pytest.raises(NetworkError):
            api.list_courses()

    def test_receipt_bytes(self):
        api, _ = _api(StubResponse(content=b"%PDF-1.4"))
        assert api.download_receipt("TXN_1") == b"%PDF-1.4"


class TestPaymentFormAdapter:

    def test_return_url(self):
        assert build_return_url("https://app.test/", "TXN_1") == (
            "https://app.test/dashboard/payment-callback?transactionId=TXN_1&status=processing"
        )

    def test_redirect(self):
        calls = []
        adapter = PaymentFormAdapter(lambda secret, url: calls.append((secret, url)), "https://app.test")
        result = adapter.submit("TXN_1", "pi_1_secret")
        assert result.redirected is True
        assert calls == [("pi_1_secret", build_return_url("https://app.test", "TXN_1"))]

    @pytest.mark.parametrize("error_type", ["card_error", "validation_error"])
    def test_provider_message_verbatim(self, error_type):
        adapter = PaymentFormAdapter(
            lambda s, u: {"error": {"type": error_type, "message": "Your card was declined."}}, "https://app.test")
        result = adapter.submit("TXN_1", "pi_1_secret")
        assert result.redirected is False
        assert result.message == "Your card was declined."

    def test_other_errors_generic(self):
        adapter = PaymentFormAdapter(
            lambda s, u: {"error": {"type": "api_error", "message": "internal detail"}}, "https://app.test")
        assert adapter.submit("TXN_1", "pi_1_secret").message == "An unexpected error occurred."


class TestStatusTracker:

    def test_check_status_refetches(self):
        api, http = _api(
            StubResponse(body={"transaction": {"transactionId": "TXN_1", "status": "pending"}}),
            StubResponse(body={"transaction": {"transactionId": "TXN_1", "status": "success"}}),
        )
        tracker = TransactionStatusTracker(api)
        assert tracker.get_status("TXN_1")["status"] == "pending"
        assert tracker.check_status("TXN_1")["status"] == "success"
        assert len(http.calls) == 2

    def test_timeline_fallback(self):
        points = TransactionStatusTracker.timeline({"status": "processing"})
        assert [p["completed"] for p in points] == [True, True, False]

    def test_receipt_only_after_success(self):
        api, http = _api(StubResponse(body={"transaction": {"transactionId": "TXN_1", "status": "failed"}}))
        with pytest.raises(ValidationError):
            TransactionStatusTracker(api).download_receipt("TXN_1")
        assert [url for _, url, _ in http.calls] == ["http://api.test/api/payment/status/TXN_1"]

    def test_receipt_uses_fresh_status(self):
        api, http = _api(
            StubResponse(body={"transaction": {"transactionId": "TXN_1", "status": "success"}}),
            StubResponse(content=b"%PDF-1.4"),
        )
        assert TransactionStatusTracker(api).download_receipt("TXN_1") == b"%PDF-1.4"
        assert http.calls[1][1] == "http://api.test/api/payment/receipt/TXN_1"
