"""
Webhook Security Middleware
Validates HMAC signatures and freshness of voice platform callbacks
"""

import hmac
import hashlib
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple
from fastapi import Request

from intake_gateway.core.config import Settings, settings
from intake_gateway.core.logging import get_logger
from intake_gateway.core.exceptions import (
    ConfigurationError,
    InvalidSignatureError,
    MissingSignatureError,
    PayloadTooLargeError,
    StaleEventError,
)

logger = get_logger(__name__)

ALGORITHMS = {
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}


def sign_payload(payload: bytes, secret: str, algorithm: str = "sha256") -> str:
    """
    Compute the signature header value for a payload

    Returns:
        "<algorithm>=<hex digest>"
    """
    digest = hmac.new(secret.encode("utf-8"), payload, ALGORITHMS[algorithm]).hexdigest()
    return f"{algorithm}={digest}"


class SignatureVerifier:
    """
    Verifies the keyed hash of an inbound event.

    Header format is "<algorithm>=<hex digest>" with an optional "hmac-"
    prefix on the algorithm, or a bare hex digest using the default
    algorithm. The hash covers the exact raw body bytes.
    """

    def __init__(
        self,
        secret: str,
        header_name: str = "x-vapi-signature",
        default_algorithm: str = "sha256",
        max_payload_bytes: int = 1024 * 1024,
        max_clock_skew_seconds: int = 300,
        reject_stale_events: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        if default_algorithm not in ALGORITHMS:
            raise ConfigurationError(
                f"Unsupported signature algorithm: {default_algorithm}",
                "webhook_signature_algorithm",
            )
        self.secret = secret
        self.header_name = header_name
        self.default_algorithm = default_algorithm
        self.max_payload_bytes = max_payload_bytes
        self.max_clock_skew_seconds = max_clock_skew_seconds
        self.reject_stale_events = reject_stale_events
        self._clock = clock

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None, **overrides) -> "SignatureVerifier":
        config = config or settings
        values = {
            "secret": config.vapi_webhook_secret,
            "header_name": config.webhook_signature_header,
            "default_algorithm": config.webhook_signature_algorithm,
            "max_payload_bytes": config.webhook_max_payload_bytes,
            "max_clock_skew_seconds": config.webhook_max_clock_skew_seconds,
            "reject_stale_events": config.webhook_reject_stale_events,
        }
        values.update(overrides)
        return cls(**values)

    def sign(self, payload: bytes, algorithm: Optional[str] = None) -> str:
        """Signature header value for a payload, using the configured secret"""
        return sign_payload(payload, self.secret, algorithm or self.default_algorithm)

    def check_size(self, size: int):
        """
        Raises:
            PayloadTooLargeError: If size exceeds the configured maximum
        """
        if size > self.max_payload_bytes:
            logger.warning(f"Rejected webhook payload of {size} bytes")
            raise PayloadTooLargeError(size, self.max_payload_bytes)

    def _parse_header(self, signature_header: str) -> Tuple[str, str]:
        value = signature_header.strip()
        if "=" in value:
            algorithm, digest = value.split("=", 1)
            algorithm = algorithm.strip().lower()
            if algorithm.startswith("hmac-"):
                algorithm = algorithm[len("hmac-"):]
        else:
            algorithm, digest = self.default_algorithm, value

        if algorithm not in ALGORITHMS:
            raise InvalidSignatureError(f"Unsupported signature algorithm: {algorithm}")

        digest = digest.strip().lower()
        try:
            bytes.fromhex(digest)
        except ValueError:
            raise InvalidSignatureError("Malformed signature digest")
        if not digest:
            raise InvalidSignatureError("Malformed signature digest")
        return algorithm, digest

    def verify(self, payload: bytes, signature_header: Optional[str]) -> bool:
        """
        Validate an inbound payload

        Args:
            payload: Exact raw request body
            signature_header: Value of the signature header, if any

        Returns:
            True if valid

        Raises:
            PayloadTooLargeError: Body exceeds the maximum size (checked before hashing)
            MissingSignatureError: Header absent or empty
            InvalidSignatureError: Malformed header or digest mismatch
            ConfigurationError: No secret configured
        """
        self.check_size(len(payload))

        if not signature_header or not signature_header.strip():
            logger.warning("Missing webhook signature header")
            raise MissingSignatureError(self.header_name)

        if not self.secret:
            logger.error("Webhook secret is not configured, refusing unsigned processing")
            raise ConfigurationError("Webhook secret is not configured", "vapi_webhook_secret")

        algorithm, received = self._parse_header(signature_header)
        expected = hmac.new(self.secret.encode("utf-8"), payload, ALGORITHMS[algorithm]).hexdigest()

        if not hmac.compare_digest(received, expected):
            logger.warning("Invalid webhook signature")
            raise InvalidSignatureError()

        return True

    def check_freshness(self, timestamp: Optional[datetime]) -> bool:
        """
        Compare an event timestamp with the local clock

        Returns:
            True when fresh or absent, False when stale and stale events are tolerated

        Raises:
            StaleEventError: When stale and stale events are rejected
        """
        if timestamp is None:
            return True
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        skew = abs(self._clock() - timestamp.timestamp())
        if skew <= self.max_clock_skew_seconds:
            return True

        if self.reject_stale_events:
            logger.warning(f"Rejected stale webhook event (skew {skew:.0f}s)")
            raise StaleEventError(skew, self.max_clock_skew_seconds)

        logger.warning(f"Webhook event timestamp outside acceptable range (skew {skew:.0f}s)")
        return False


# Singleton instance
_signature_verifier: Optional[SignatureVerifier] = None


def get_signature_verifier() -> SignatureVerifier:
    """Get signature verifier singleton"""
    global _signature_verifier
    if _signature_verifier is None:
        _signature_verifier = SignatureVerifier.from_settings()
    return _signature_verifier


def _verifier_for(request: Request) -> SignatureVerifier:
    return getattr(request.app.state, "signature_verifier", None) or get_signature_verifier()


async def verified_body(request: Request) -> bytes:
    """
    Dependency returning the raw body of a correctly signed webhook

    Usage:
        @router.post("/webhook")
        async def webhook(body: bytes = Depends(verified_body)):
            ...
    """
    verifier = _verifier_for(request)

    declared = request.headers.get("content-length")
    if declared and declared.isdigit():
        verifier.check_size(int(declared))

    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        verifier.check_size(size)
        chunks.append(chunk)
    body = b"".join(chunks)

    verifier.verify(body, request.headers.get(verifier.header_name))
    return body
