"""
Domain Exceptions

Every error the API reports on purpose derives from BistroError and carries
the HTTP status it maps to. A single exception handler in bistro.main turns
them into the standard ErrorResponse body.
"""

from typing import Any, Optional


class BistroError(Exception):
    """Base class for errors with a fixed HTTP status."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, detail: Optional[str] = None, **extra: Any):
        super().__init__(detail or self.error)
        self.detail = detail or self.error
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.error,
            "detail": self.detail,
            **self.extra,
        }


class Unauthenticated(BistroError):
    """Missing or malformed credential."""
    status_code = 401
    error = "unauthorized access"


class TokenExpired(Unauthenticated):
    error = "token expired"


class Forbidden(BistroError):
    """Valid credential, insufficient privilege or identity mismatch."""
    status_code = 403
    error = "forbidden access"


class NotFound(BistroError):
    status_code = 404
    error = "not found"


class PartialReconciliation(BistroError):
    """
    The payment record is durable but its cart entries were not removed.

    Re-sending the same payment (same transaction id) completes the cleanup
    without creating a second payment.
    """
    status_code = 503
    error = "partial reconciliation"

    def __init__(self, payment_id: str, detail: Optional[str] = None):
        super().__init__(
            detail or "Payment recorded but cart cleanup failed; retry the request",
            paymentId=payment_id,
            retryable=True,
        )
        self.payment_id = payment_id


class UpstreamFailure(BistroError):
    """The payment provider or the store is unavailable."""
    status_code = 502
    error = "upstream failure"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(detail)
        if status_code is not None:
            self.status_code = status_code
