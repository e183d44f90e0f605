"""
Service-layer exceptions.

Services raise these instead of ``HTTPException`` so they stay usable from
Celery tasks and scripts. ``wagba.main`` maps them to JSON responses using
``http_status``.
"""

from typing import Any, Mapping, Optional


class WagbaError(Exception):
    """Base class for expected business errors.

    Attributes:
        message: human-readable message
        details: optional mapping with extra context
        code: optional machine-readable error code
        http_status: suggested HTTP status code for handlers
    """

    http_status = 400
    default_message = "Request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
        code: Optional[str] = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.details = details
        self.code = code

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"message": self.message}
        if self.code:
            payload["code"] = self.code
        if self.details:
            payload["details"] = dict(self.details)
        return payload

    def __str__(self) -> str:
        return self.message


class ValidationError(WagbaError):
    """Input data is invalid or a precondition is not met."""
    http_status = 400
    default_message = "Invalid input"


class AuthenticationError(WagbaError):
    """No valid session or credentials."""
    http_status = 401
    default_message = "Unauthorized"


class PermissionDeniedError(WagbaError):
    """Authenticated, but not allowed to touch the resource."""
    http_status = 403
    default_message = "Forbidden"


class NotFoundError(WagbaError):
    http_status = 404
    default_message = "Not found"


class ConflictError(WagbaError):
    """Duplicate entry or conflicting state."""
    http_status = 409
    default_message = "Conflict"


class PaymentGatewayError(WagbaError):
    """The payment gateway could not start a payment."""
    http_status = 502
    default_message = "Payment service temporarily unavailable"


class DeadlinePassedError(ValidationError):
    default_message = "Order deadline has passed"

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault("code", "deadline_passed")
        super().__init__(message, **kwargs)
