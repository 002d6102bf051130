"""
Error taxonomy for the checkout flow.

Every error carries the HTTP status it maps to and an ``error_category``
string that the client uses to decide how to present it (inline message,
persistent banner, login redirect, generic toast).
"""
from typing import Any, Dict, Optional


class CoursePayError(Exception):
    status_code = 500
    error_category = "internal"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "message": self.message, "errorCategory": self.error_category}
        body.update(self.extra)
        return body


class ValidationError(CoursePayError):
    status_code = 400
    error_category = "validation"


class NotFoundError(ValidationError):
    status_code = 404
    error_category = "not_found"


class ScopeError(ValidationError):
    status_code = 400
    error_category = "scope"


class InvalidTransitionError(CoursePayError):
    status_code = 409
    error_category = "invalid_transition"


class AuthError(CoursePayError):
    status_code = 401
    error_category = "auth"


class PermissionDeniedError(CoursePayError):
    status_code = 403
    error_category = "forbidden"


class MaintenanceModeError(CoursePayError):
    status_code = 503
    error_category = "maintenance"

    def __init__(self, message: str = "Payments are temporarily unavailable due to scheduled maintenance.", **extra):
        super().__init__(message, maintenanceMode=True, **extra)


class GatewayError(CoursePayError):
    status_code = 502
    error_category = "gateway"

    def __init__(self, message: str, provider_type: Optional[str] = None, **extra):
        super().__init__(message, **extra)
        self.provider_type = provider_type


class GatewayTimeoutError(GatewayError):
    status_code = 503
    error_category = "gateway_timeout"


class NetworkError(CoursePayError):
    """Transport failure seen by the client package (no HTTP response)."""
    error_category = "network"


UNEXPECTED_PROVIDER_MESSAGE = "An unexpected error occurred."


def provider_message(error_type: Optional[str], message: Optional[str]) -> str:
    """User-facing text for a provider-side payment error."""
    if error_type in ("card_error", "validation_error") and message:
        return message
    return UNEXPECTED_PROVIDER_MESSAGE
