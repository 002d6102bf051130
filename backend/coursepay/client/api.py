"""
HTTP client for the checkout API.

Error responses come back as the same exception classes the server
raises, picked by ``errorCategory``; transport failures become
``NetworkError``.
"""
from typing import Any, Dict, Optional

import requests

from coursepay.client.session import SessionProvider
from coursepay.errors import (
    AuthError, CoursePayError, GatewayError, GatewayTimeoutError, InvalidTransitionError,
    MaintenanceModeError, NetworkError, NotFoundError, PermissionDeniedError, ScopeError,
    ValidationError,
)

_CATEGORY_ERRORS = {
    "validation": ValidationError,
    "not_found": NotFoundError,
    "scope": ScopeError,
    "invalid_transition": InvalidTransitionError,
    "auth": AuthError,
    "forbidden": PermissionDeniedError,
    "maintenance": MaintenanceModeError,
    "gateway_timeout": GatewayTimeoutError,
    "gateway": GatewayError,
}


def error_from_response(response) -> CoursePayError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = body.get("message") or body.get("detail") or f"Request failed with status {response.status_code}"
    if not isinstance(message, str):
        message = str(message)
    extra = {k: v for k, v in body.items() if k not in ("success", "message", "errorCategory", "detail")}

    category = body.get("errorCategory")
    if body.get("maintenanceMode"):
        category = "maintenance"
    cls = _CATEGORY_ERRORS.get(category)
    if cls is None:
        if response.status_code == 401:
            cls = AuthError
        elif response.status_code == 403:
            cls = PermissionDeniedError
        elif response.status_code == 503:
            cls = GatewayTimeoutError
        elif 400 <= response.status_code < 500:
            cls = ValidationError
        else:
            cls = CoursePayError

    if cls is MaintenanceModeError:
        extra.pop("maintenanceMode", None)
    return cls(message, **extra)


class PaymentApiClient:

    def __init__(self, base_url: str, session_provider: SessionProvider,
                 http: Optional[requests.Session] = None, timeout: float = 20):
        self.base_url = base_url.rstrip("/")
        self.session_provider = session_provider
        self.http = http or requests.Session()
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        token = self.session_provider.get_token()
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            response = self.http.request(
                method, f"{self.base_url}{path}",
                headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except requests.exceptions.Timeout:
            raise NetworkError("The server took too long to respond")
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Network error: {e}")

        if response.status_code >= 400:
            raise error_from_response(response)
        return response

    def _json(self, method: str, path: str, **kwargs) -> Any:
        return self._request(method, path, **kwargs).json()

    # ─── Catalog ─────────────────────────────────────────────────────

    def list_courses(self, category: Optional[str] = None) -> list:
        params = {"category": category} if category else None
        return self._json("GET", "/api/courses", params=params)

    def get_course(self, course_id: int) -> dict:
        return self._json("GET", f"/api/courses/{course_id}")

    def validate_discount(self, code: str, course_id: int) -> dict:
        return self._json("POST", "/api/discount/validate",
                          json={"code": (code or "").strip().upper(), "courseId": course_id})

    # ─── Payment ─────────────────────────────────────────────────────

    def initiate_payment(self, course_id: int, discount_code: Optional[str] = None, mode: str = "elements") -> dict:
        body = {"courseId": course_id, "mode": mode}
        if discount_code:
            body["discountCode"] = discount_code.strip().upper()
        return self._json("POST", "/api/payment/initiate", json=body)

    def get_status(self, transaction_id: str) -> dict:
        return self._json("GET", f"/api/payment/status/{transaction_id}")["transaction"]

    def download_receipt(self, transaction_id: str) -> bytes:
        return self._request("GET", f"/api/payment/receipt/{transaction_id}").content

    def retry_payment(self, transaction_id: str) -> dict:
        return self._json("POST", f"/api/payment/retry/{transaction_id}")

    def payment_history(self, page: int = 1, limit: int = 10) -> dict:
        return self._json("GET", "/api/payment/history", params={"page": page, "limit": limit})
