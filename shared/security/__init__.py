"""Security module for token hashing and signing."""

from .crypto import (
    generate_hmac,
    generate_hmac_base64url,
    generate_secure_token,
    hash_data,
    timing_safe_equal,
    verify_hmac,
)

__all__ = [
    "generate_hmac",
    "generate_hmac_base64url",
    "generate_secure_token",
    "hash_data",
    "timing_safe_equal",
    "verify_hmac",
]
