"""
Custom Exceptions for the Intake Gateway
Provides structured error handling across the application
"""

from typing import Optional, Dict, Any, List


class IntakeGatewayException(Exception):
    """Base exception for all intake gateway errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        """Server-side and rate-limit failures may succeed on a later attempt"""
        return self.status_code >= 500 or self.status_code == 429

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication Exceptions
class AuthenticationError(IntakeGatewayException):
    """Raised when an inbound event cannot be authenticated"""

    def __init__(
        self,
        message: str = "Authentication failed",
        error_code: str = "AUTH_FAILED",
        details: Optional[Dict] = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            status_code=401
        )

    @property
    def retryable(self) -> bool:
        return False


class MissingSignatureError(AuthenticationError):
    """Raised when the signature header is absent"""

    def __init__(self, header: str):
        super().__init__(
            message=f"Missing webhook signature header: {header}",
            error_code="MISSING_SIGNATURE",
            details={"header": header}
        )


class InvalidSignatureError(AuthenticationError):
    """Raised when the keyed hash does not match the payload"""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message=message, error_code="INVALID_SIGNATURE")


class StaleEventError(AuthenticationError):
    """Raised when an event timestamp falls outside the accepted clock skew"""

    def __init__(self, skew_seconds: float, max_skew_seconds: int):
        super().__init__(
            message="Event timestamp outside acceptable range",
            error_code="STALE_EVENT",
            details={
                "skew_seconds": round(skew_seconds, 3),
                "max_skew_seconds": max_skew_seconds
            }
        )


# Validation Exceptions
class ValidationError(IntakeGatewayException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        errors: Optional[List[str]] = None
    ):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if errors:
            details["errors"] = errors
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details,
            status_code=400
        )


class PayloadTooLargeError(IntakeGatewayException):
    """Raised when a webhook body exceeds the configured maximum size"""

    def __init__(self, size: int, max_size: int):
        super().__init__(
            message=f"Payload too large: {size} bytes (maximum {max_size})",
            error_code="PAYLOAD_TOO_LARGE",
            details={"size": size, "max_size": max_size},
            status_code=413
        )


class ConfigurationError(IntakeGatewayException):
    """Raised when a required setting is missing"""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting} if setting else {},
            status_code=500
        )

    @property
    def retryable(self) -> bool:
        return False


# Downstream Service Exceptions
class DownstreamError(IntakeGatewayException):
    """Base exception for failures of an external dependency"""

    def __init__(
        self,
        dependency: str,
        message: str,
        error_code: str = "DOWNSTREAM_ERROR",
        upstream_status: Optional[int] = None,
        status_code: int = 502
    ):
        details: Dict[str, Any] = {"dependency": dependency}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            status_code=status_code
        )
        self.dependency = dependency
        self.upstream_status = upstream_status

    @property
    def retryable(self) -> bool:
        if self.upstream_status is None:
            return True
        return self.upstream_status >= 500 or self.upstream_status == 429


class DownstreamTimeoutError(DownstreamError):
    """Raised when a downstream call exceeds its explicit timeout"""

    def __init__(self, dependency: str, timeout_seconds: float):
        super().__init__(
            dependency=dependency,
            message=f"{dependency} timed out after {timeout_seconds}s",
            error_code="DOWNSTREAM_TIMEOUT",
            status_code=504
        )
        self.details["timeout_seconds"] = timeout_seconds


class SmsDeliveryError(DownstreamError):
    """Raised when the SMS gateway reports a failed send"""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(
            dependency="sms_gateway",
            message=f"SMS delivery failed: {message}",
            error_code="SMS_DELIVERY_FAILED",
            upstream_status=upstream_status
        )


class StorageError(DownstreamError):
    """Raised when the storage sink rejects or fails an operation"""

    def __init__(self, operation: str, message: str, upstream_status: Optional[int] = None):
        super().__init__(
            dependency="storage",
            message=f"Storage operation '{operation}' failed: {message}",
            error_code="STORAGE_ERROR",
            upstream_status=upstream_status
        )
        self.details["operation"] = operation


class CircuitOpenError(IntakeGatewayException):
    """Raised when a circuit breaker rejects a call without attempting it"""

    def __init__(self, name: str, retry_after_seconds: float = 0.0):
        super().__init__(
            message=f"Circuit {name} is open",
            error_code="CIRCUIT_OPEN",
            details={
                "dependency": name,
                "retry_after_seconds": round(max(retry_after_seconds, 0.0), 3)
            },
            status_code=503
        )
        self.name = name

    @property
    def retryable(self) -> bool:
        return False


# Rate Limiting
class RateLimitError(IntakeGatewayException):
    """Raised when rate limit is exceeded"""

    def __init__(self, retry_after: int = 60):
        super().__init__(
            message="Rate limit exceeded",
            error_code="RATE_LIMIT_EXCEEDED",
            details={"retry_after_seconds": retry_after},
            status_code=429
        )
