"""Cryptographic utilities for token hashing and signing.

Provides hashing of secrets before they are stored, HMAC signatures for
self-validating tokens, constant-time comparison, and secure random tokens.
"""

import base64
import hashlib
import hmac
import secrets
from typing import Union


def _to_bytes(data: Union[str, bytes]) -> bytes:
    if isinstance(data, str):
        return data.encode()
    return data


def hash_data(data: Union[str, bytes], algorithm: str = "sha256") -> str:
    """Hash data using specified algorithm.

    Refresh tokens, device ids and IP addresses are stored only as digests.

    Args:
        data: Data to hash
        algorithm: Hash algorithm (sha256, sha512)

    Returns:
        Hexadecimal hash string

    Raises:
        ValueError: If the algorithm is not supported
    """
    data = _to_bytes(data)

    if algorithm == "sha256":
        hasher = hashlib.sha256()
    elif algorithm == "sha512":
        hasher = hashlib.sha512()
    else:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")

    hasher.update(data)
    return hasher.hexdigest()


def generate_hmac(
    data: Union[str, bytes], key: Union[str, bytes], algorithm: str = "sha256"
) -> str:
    """Generate HMAC for data integrity verification.

    Args:
        data: Data to create HMAC for
        key: Secret key
        algorithm: HMAC algorithm (sha256, sha512)

    Returns:
        Hexadecimal HMAC string
    """
    return _hmac_digest(data, key, algorithm).hex()


def generate_hmac_base64url(
    data: Union[str, bytes], key: Union[str, bytes], algorithm: str = "sha256"
) -> str:
    """Generate an unpadded base64url HMAC, suitable for cookies and headers.

    Args:
        data: Data to sign
        key: Secret key
        algorithm: HMAC algorithm (sha256, sha512)

    Returns:
        Base64url encoded signature without padding
    """
    digest = _hmac_digest(data, key, algorithm)
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


def verify_hmac(
    data: Union[str, bytes],
    key: Union[str, bytes],
    expected_hmac: str,
    algorithm: str = "sha256",
) -> bool:
    """Verify HMAC for data integrity.

    Args:
        data: Data to verify
        key: Secret key
        expected_hmac: Expected HMAC value (hex)
        algorithm: HMAC algorithm (sha256, sha512)

    Returns:
        True if HMAC matches, False otherwise
    """
    computed_hmac = generate_hmac(data, key, algorithm)
    return timing_safe_equal(computed_hmac, expected_hmac)


def timing_safe_equal(a: Union[str, bytes], b: Union[str, bytes]) -> bool:
    """Compare two values in constant time.

    Args:
        a: First value
        b: Second value

    Returns:
        True if both values are equal
    """
    return hmac.compare_digest(_to_bytes(a), _to_bytes(b))


def generate_secure_token(size: int = 32) -> str:
    """Generate a URL-safe random token.

    Args:
        size: Number of random bytes (default: 32)

    Returns:
        URL-safe token string
    """
    return secrets.token_urlsafe(size)


def _hmac_digest(
    data: Union[str, bytes], key: Union[str, bytes], algorithm: str
) -> bytes:
    if algorithm == "sha256":
        digestmod = hashlib.sha256
    elif algorithm == "sha512":
        digestmod = hashlib.sha512
    else:
        raise ValueError(f"Unsupported HMAC algorithm: {algorithm}")

    return hmac.new(_to_bytes(key), _to_bytes(data), digestmod).digest()
