"""
Error taxonomy for the KYC flow.

Every error carries a machine-readable code and, where one exists, the
originating exception (also chained as ``__cause__`` by the raiser).
"""

from typing import Any, List, Optional


class KYCError(Exception):
    """Base exception for KYC flow errors"""

    default_code = "KYC_ERROR"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        code: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.code = code or self.default_code
        self.details = details


class ValidationError(KYCError):
    """Captured data or configuration failed validation"""

    default_code = "VALIDATION_ERROR"

    def __init__(self, violations: List[str]):
        self.violations = list(violations)
        super().__init__(
            f"Validation failed: {', '.join(self.violations)}",
            details={"errors": self.violations},
        )


class APIError(KYCError):
    """The backend answered with a non-2xx status"""

    default_code = "API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause=cause, details={"status_code": status_code, "body": body})
        self.status_code = status_code
        self.body = body


class AuthError(APIError):
    """401 - invalid API key or unauthorized access"""
    default_code = "AUTH_ERROR"


class ForbiddenError(APIError):
    """403 - the API key lacks permission"""
    default_code = "FORBIDDEN"


class RateLimitError(APIError):
    """429 - too many requests"""
    default_code = "RATE_LIMIT"


class ServerError(APIError):
    """5xx - backend failure"""
    default_code = "SERVER_ERROR"


class TransportError(APIError):
    """Any other non-2xx status, a malformed URL or an undecodable body"""
    default_code = "TRANSPORT_ERROR"


class NetworkError(KYCError):
    """No response was received"""
    default_code = "NETWORK_ERROR"


class SessionError(KYCError):
    """An operation needed an active session and there was none"""
    default_code = "SESSION_ERROR"


class InitializationError(KYCError):
    """The flow could not be initialized"""
    default_code = "INIT_ERROR"


class OperationInProgressError(KYCError):
    """A mutating operation was issued while another one was still running"""
    default_code = "OPERATION_IN_PROGRESS"


class FlowDestroyedError(KYCError):
    """The flow was destroyed and accepts no further operations"""
    default_code = "DESTROYED"


def classify_status(status_code: int, body: str) -> APIError:
    """Map a non-2xx HTTP status to the matching error type"""
    if status_code == 401:
        return AuthError("Invalid API key or unauthorized access", status_code, body)
    if status_code == 403:
        return ForbiddenError("Access forbidden. Check your API key permissions", status_code, body)
    if status_code == 429:
        return RateLimitError("Rate limit exceeded. Please try again later", status_code, body)
    if status_code >= 500:
        return ServerError("Server error. Please try again later", status_code, body)
    return TransportError(f"HTTP error! status: {status_code}, message: {body}", status_code, body)
