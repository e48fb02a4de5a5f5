"""API Middleware"""

from .rate_limit import (
    RateLimiter,
    get_rate_limiter,
    check_webhook_rate_limit
)

from .webhook_security import (
    SignatureVerifier,
    sign_payload,
    get_signature_verifier,
    verified_body
)

__all__ = [
    # Rate limiting
    "RateLimiter",
    "get_rate_limiter",
    "check_webhook_rate_limit",
    # Webhook security
    "SignatureVerifier",
    "sign_payload",
    "get_signature_verifier",
    "verified_body"
]
