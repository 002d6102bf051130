"""
Checkout through the HTTP API with the mock gateway: initiation,
simulator round-trip, callback outcomes and their side effects.
"""
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from coursepay.models import DiscountCode, Enrollment, PaymentAuditLog, Progress, Transaction
from coursepay.utils.hashing import sign_callback


def _initiate(client, headers, course_id, **body):
    payload = {"courseId": course_id, "mode": "checkout"}
    payload.update(body)
    return client.post("/api/payment/initiate", json=payload, headers=headers)


def _callback(client, settings, transaction_id, status, gateway_id="MOCK_1_ABC", **extra):
    params = {
        "transactionId": transaction_id,
        "status": status,
        "gatewayTransactionId": gateway_id,
        "signature": sign_callback(settings.SECRET_KEY, transaction_id, status, gateway_id),
    }
    params.update(extra)
    return client.get("/api/payment/callback", params=params, follow_redirects=False)


def _stored(db, transaction_id):
    db.expire_all()
    return db.query(Transaction).filter_by(transaction_id=transaction_id).one()


class TestInitiate:

    def test_checkout_mode_returns_mock_payment_url(self, client, db, student, course, auth_headers):
        resp = _initiate(client, auth_headers(student), course.id)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["transactionId"].startswith("TXN_")
        assert body["amount"] == {"original": 1000.0, "discount": 0.0, "subtotal": 1000.0, "gst": 180.0, "total": 1180.0}

        url = urlparse(body["paymentUrl"])
        assert url.path == "/mock-gateway"
        query = parse_qs(url.query)
        assert query["transactionId"] == [body["transactionId"]]
        assert query["amount"] == ["1180.00"]
        assert query["customerEmail"] == [student.email]
        assert query["callbackUrl"] == ["http://testserver/api/payment/callback"]

        txn = _stored(db, body["transactionId"])
        assert txn.status == "pending"
        assert str(txn.final_amount) == "1180.00"
        assert txn.session_expires_at > txn.initiated_at

    def test_elements_mode_returns_client_secret(self, client, student, course, auth_headers):
        body = _initiate(client, auth_headers(student), course.id, mode="elements").json()
        assert body["clientSecret"].startswith("mock_pi_")
        assert body["publishableKey"] == "pk_test_mock"
        assert body["paymentUrl"].startswith("http://testserver/mock-gateway?transactionId=")

    def test_discount_is_revalidated_and_applied(self, client, student, course, discount, auth_headers):
        body = _initiate(client, auth_headers(student), course.id, discountCode="save10").json()
        assert body["amount"]["discount"] == 100.0
        assert body["amount"]["total"] == 1062.0

    def test_invalid_discount_rejected(self, client, db, student, course, auth_headers):
        resp = _initiate(client, auth_headers(student), course.id, discountCode="NOPE")
        assert resp.status_code == 404
        assert db.query(Transaction).count() == 0

    def test_unknown_course(self, client, student, auth_headers):
        resp = _initiate(client, auth_headers(student), 9999)
        assert resp.status_code == 404
        assert resp.json()["message"] == "Course not found"

    def test_unknown_mode(self, client, student, course, auth_headers):
        resp = _initiate(client, auth_headers(student), course.id, mode="popup")
        assert resp.status_code == 400

    def test_subtotal_below_minimum(self, client, student, cheap_course, auth_headers):
        resp = _initiate(client, auth_headers(student), cheap_course.id)
        assert resp.status_code == 400
        assert resp.json()["errorCategory"] == "validation"

    def test_zero_total_rejected(self, client, db, student, course, auth_headers):
        db.add(DiscountCode(code="FREEBIE", type="flat", value=5000, is_active=True))
        db.commit()
        resp = _initiate(client, auth_headers(student), course.id, discountCode="FREEBIE")
        assert resp.status_code == 400

    def test_requires_token(self, client, course):
        resp = client.post("/api/payment/initiate", json={"courseId": course.id, "mode": "checkout"})
        assert resp.status_code == 401
        assert resp.json()["errorCategory"] == "auth"

    def test_maintenance_mode_creates_nothing(self, client, db, settings, student, course, auth_headers, monkeypatch):
        monkeypatch.setattr(settings, "PAYMENT_MAINTENANCE_MODE", True)
        resp = _initiate(client, auth_headers(student), course.id)
        assert resp.status_code == 503
        body = resp.json()
        assert body["maintenanceMode"] is True
        assert body["errorCategory"] == "maintenance"
        assert "transactionId" not in body
        assert db.query(Transaction).count() == 0

    def test_repeat_initiation_reuses_pending_transaction(self, client, db, student, course, auth_headers):
        first = _initiate(client, auth_headers(student), course.id).json()
        second = _initiate(client, auth_headers(student), course.id).json()
        assert second["transactionId"] == first["transactionId"]
        assert second["reused"] is True
        assert db.query(Transaction).count() == 1

    def test_different_mode_is_not_reused(self, client, db, student, course, auth_headers):
        first = _initiate(client, auth_headers(student), course.id).json()
        second = _initiate(client, auth_headers(student), course.id, mode="elements").json()
        assert second["transactionId"] != first["transactionId"]

    def test_expired_pending_is_not_reused(self, client, db, student, course, auth_headers):
        first = _initiate(client, auth_headers(student), course.id).json()
        txn = _stored(db, first["transactionId"])
        txn.session_expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.commit()
        second = _initiate(client, auth_headers(student), course.id).json()
        assert second["transactionId"] != first["transactionId"]

    def test_rate_limited(self, client, settings, student, course, auth_headers):
        headers = auth_headers(student)
        for _ in range(settings.RATE_LIMIT_INITIATE):
            _initiate(client, headers, course.id)
        resp = _initiate(client, headers, course.id)
        assert resp.status_code == 429


class TestMockRoundTrip:

    def test_simulated_failure(self, client, db, settings, student, course, auth_headers):
        body = _initiate(client, auth_headers(student), course.id).json()
        url = urlparse(body["paymentUrl"])
        query = {k: v[0] for k, v in parse_qs(url.query).items()}

        page = client.get("/mock-gateway", params=query)
        assert page.status_code == 200
        assert "Simulate Failure" in page.text

        simulated = client.get(
            "/mock-gateway/simulate",
            params={"transactionId": query["transactionId"], "amount": query["amount"],
                    "callbackUrl": query["callbackUrl"], "outcome": "failed"},
            follow_redirects=False,
        )
        assert simulated.status_code == 303
        callback_url = simulated.headers["location"]
        callback_query = parse_qs(urlparse(callback_url).query)
        assert callback_query["status"] == ["failed"]
        assert callback_query["errorCode"] == ["MOCK_ERROR_001"]
        assert callback_query["gatewayTransactionId"][0].startswith("MOCK_")

        landed = client.get(callback_url, follow_redirects=False)
        assert landed.status_code == 303
        assert landed.headers["location"] == (
            f"http://client.test/dashboard/payment-callback?transactionId={body['transactionId']}&status=failed"
        )

        status = client.get(f"/api/payment/status/{body['transactionId']}", headers=auth_headers(student)).json()
        txn = status["transaction"]
        assert txn["status"] == "failed"
        assert txn["errorCode"] == "MOCK_ERROR_001"
        assert txn["errorMessage"] == "Payment declined by mock gateway"
        assert txn["errorCategory"] == "other"

    def test_simulated_success_enrolls_student(self, client, db, student, course, discount, auth_headers):
        body = _initiate(client, auth_headers(student), course.id, discountCode="SAVE10").json()
        query = {k: v[0] for k, v in parse_qs(urlparse(body["paymentUrl"]).query).items()}

        simulated = client.get(
            "/mock-gateway/simulate",
            params={"transactionId": query["transactionId"], "amount": query["amount"],
                    "callbackUrl": query["callbackUrl"], "outcome": "success"},
            follow_redirects=False,
        )
        landed = client.get(simulated.headers["location"], follow_redirects=False)
        assert landed.headers["location"].endswith("status=success")

        txn = _stored(db, body["transactionId"])
        assert txn.status == "success"
        assert txn.receipt_number.startswith("RCP-")
        assert txn.payment_method == "card"
        assert txn.payment_method_details["cardLast4"] == "4242"
        assert txn.completed_at is not None

        enrollment = db.query(Enrollment).filter_by(user_id=student.id, course_id=course.id).one()
        assert enrollment.status == "active"
        assert enrollment.total_modules == 2
        assert db.query(Progress).filter_by(user_id=student.id, course_id=course.id).count() == 1
        assert db.query(DiscountCode).filter_by(code="SAVE10").one().usage_count == 1

    def test_elements_payment_settles_through_simulator(self, client, db, student, course, auth_headers):
        body = _initiate(client, auth_headers(student), course.id, mode="elements").json()
        query = {k: v[0] for k, v in parse_qs(urlparse(body["paymentUrl"]).query).items()}
        assert query["transactionId"] == body["transactionId"]

        simulated = client.get(
            "/mock-gateway/simulate",
            params={"transactionId": query["transactionId"], "amount": query["amount"],
                    "callbackUrl": query["callbackUrl"], "outcome": "success"},
            follow_redirects=False,
        )
        landed = client.get(simulated.headers["location"], follow_redirects=False)
        assert landed.headers["location"].endswith("status=success")

        txn = _stored(db, body["transactionId"])
        assert txn.status == "success"
        assert txn.mode == "elements"
        assert db.query(Enrollment).filter_by(user_id=student.id, course_id=course.id).one().status == "active"

    def test_simulator_rejects_foreign_callback(self, client):
        resp = client.get(
            "/mock-gateway/simulate",
            params={"transactionId": "TXN_X", "amount": "10.00", "callbackUrl": "https://evil.test/cb"},
            follow_redirects=False,
        )
        assert resp.status_code == 400

    def test_page_without_parameters_shows_error(self, client):
        resp = client.get("/mock-gateway")
        assert resp.status_code == 400
        assert "Missing required parameters" in resp.text

    def test_disabled_in_production(self, client, settings, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        resp = client.get("/mock-gateway", params={"transactionId": "TXN_X", "amount": "1", "callbackUrl": "x"})
        assert resp.status_code == 404


class TestCallback:

    @pytest.fixture
    def pending(self, client, student, course, auth_headers):
        return _initiate(client, auth_headers(student), course.id).json()["transactionId"]

    def test_success_is_idempotent(self, client, db, settings, pending):
        _callback(client, settings, pending, "success")
        _callback(client, settings, pending, "success")
        txn = _stored(db, pending)
        assert txn.status == "success"
        assert db.query(Enrollment).count() == 1

    def test_late_failure_does_not_regress_success(self, client, db, settings, pending):
        _callback(client, settings, pending, "success")
        resp = _callback(client, settings, pending, "failed", errorCode="CARD_DECLINED")
        assert resp.status_code == 303
        assert resp.headers["location"].endswith("status=success")
        assert _stored(db, pending).status == "success"

    def test_bad_signature_rejected(self, client, db, pending):
        resp = client.get(
            "/api/payment/callback",
            params={"transactionId": pending, "status": "success", "gatewayTransactionId": "MOCK_1", "signature": "forged"},
            follow_redirects=False,
        )
        assert resp.status_code == 400
        assert _stored(db, pending).status == "pending"
        txn = _stored(db, pending)
        assert not txn.callback_data
        assert txn.callback_received_at is None
        actions = [e.action for e in db.query(PaymentAuditLog).filter_by(transaction_id=pending).order_by(PaymentAuditLog.id)]
        assert actions[-1] == "CALLBACK_REJECTED"
        assert "CALLBACK_RECEIVED" not in actions

    def test_late_callback_keeps_original_callback_data(self, client, db, settings, pending):
        _callback(client, settings, pending, "success")
        first = _stored(db, pending)
        received_at = first.callback_received_at

        _callback(client, settings, pending, "failed", gateway_id="MOCK_2_XYZ", errorCode="CARD_DECLINED")
        txn = _stored(db, pending)
        assert txn.callback_received_at == received_at
        assert txn.callback_data["status"] == "success"

    def test_unknown_transaction(self, client, settings):
        resp = _callback(client, settings, "TXN_UNKNOWN", "success")
        assert resp.status_code == 404

    def test_missing_transaction_id(self, client):
        resp = client.get("/api/payment/callback", params={"status": "success"}, follow_redirects=False)
        assert resp.status_code == 400

    @pytest.mark.parametrize("code,category", [
        ("INSUFFICIENT_FUNDS", "insufficient_funds"),
        ("CARD_DECLINED", "card_declined"),
        ("NETWORK_TIMEOUT", "network"),
        ("SESSION_EXPIRED", "expired"),
        ("SOMETHING_ELSE", "other"),
    ])
    def test_failure_categories(self, client, db, settings, pending, code, category):
        _callback(client, settings, pending, "failed", errorCode=code, errorMessage="nope")
        txn = _stored(db, pending)
        assert txn.status == "failed"
        assert txn.error_code == code
        assert txn.error_category == category

    def test_cancelled(self, client, db, settings, pending):
        _callback(client, settings, pending, "cancelled", gateway_id="")
        txn = _stored(db, pending)
        assert txn.status == "failed"
        assert txn.error_code == "PAYMENT_CANCELLED"

    def test_expired_session_fails_with_expired_category(self, client, db, settings, pending):
        txn = _stored(db, pending)
        txn.session_expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.commit()

        resp = _callback(client, settings, pending, "processing")
        assert resp.headers["location"].endswith("status=failed")
        txn = _stored(db, pending)
        assert txn.error_category == "expired"
        assert txn.error_code == "SESSION_EXPIRED"

    def test_late_success_is_honoured_after_expiry(self, client, db, settings, pending):
        txn = _stored(db, pending)
        txn.session_expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.commit()
        _callback(client, settings, pending, "success")
        assert _stored(db, pending).status == "success"

    def test_callback_is_audited(self, client, db, settings, admin, auth_headers, pending):
        _callback(client, settings, pending, "success")
        trail = client.get(f"/api/admin/payment/audit/{pending}", headers=auth_headers(admin)).json()
        actions = [entry["action"] for entry in trail]
        assert actions[0] == "PAYMENT_INITIATED"
        assert "CALLBACK_RECEIVED" in actions
        assert "STATUS_CHANGED" in actions

        verify = client.get(f"/api/admin/payment/audit/{pending}/verify", headers=auth_headers(admin)).json()
        assert verify["valid"] is True
        assert verify["totalEntries"] == len(trail)

    def test_edited_audit_entry_breaks_chain(self, client, db, settings, admin, auth_headers, pending):
        _callback(client, settings, pending, "success")
        entry = (db.query(PaymentAuditLog)
                 .filter(PaymentAuditLog.transaction_id == pending, PaymentAuditLog.action == "CALLBACK_RECEIVED")
                 .one())
        entry.log_metadata = {"status": "failed", "gateway_transaction_id": "MOCK_1_ABC"}
        db.commit()

        verify = client.get(f"/api/admin/payment/audit/{pending}/verify", headers=auth_headers(admin)).json()
        assert verify["valid"] is False
        assert verify["brokenAt"] == entry.id
