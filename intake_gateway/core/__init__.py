"""Core module for configuration, settings, and shared utilities"""

from .config import settings, get_settings, Settings
from .logging import setup_logging, get_logger, mask_phone
from .exceptions import (
    IntakeGatewayException,
    AuthenticationError,
    MissingSignatureError,
    InvalidSignatureError,
    StaleEventError,
    ValidationError,
    PayloadTooLargeError,
    ConfigurationError,
    DownstreamError,
    DownstreamTimeoutError,
    SmsDeliveryError,
    StorageError,
    CircuitOpenError,
    RateLimitError
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    "Settings",
    # Logging
    "setup_logging",
    "get_logger",
    "mask_phone",
    # Exceptions
    "IntakeGatewayException",
    "AuthenticationError",
    "MissingSignatureError",
    "InvalidSignatureError",
    "StaleEventError",
    "ValidationError",
    "PayloadTooLargeError",
    "ConfigurationError",
    "DownstreamError",
    "DownstreamTimeoutError",
    "SmsDeliveryError",
    "StorageError",
    "CircuitOpenError",
    "RateLimitError"
]
