"""
Signature Derivation

String to Sign Format:
    HSP1-HMAC-SHA256\\n{timestamp}\\n{sha256_hex(canonical_request)}

The signature is the hex HMAC-SHA256 of the string to sign, keyed with the
private secret. Uses the cryptography library for the keyed MAC and for
constant-time comparison.
"""

import hashlib

from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.constant_time import bytes_eq

from hsp_auth.core.signing.canonical import ALGORITHM


def create_string_to_sign(canonical_request: str, timestamp: int) -> str:
    """
    Combine algorithm tag, timestamp and canonical request hash.

    Args:
        canonical_request: Output of create_canonical_request()
        timestamp: Unix timestamp in seconds, as sent by the signer

    Returns:
        String to sign
    """
    canonical_hash = hashlib.sha256(canonical_request.encode("utf-8")).hexdigest()
    return f"{ALGORITHM}\n{int(timestamp)}\n{canonical_hash}"


def hmac_sha256_hex(key: bytes, data: str) -> str:
    """Hex HMAC-SHA256 of ``data`` (UTF-8) under ``key``."""
    mac = hmac.HMAC(key, hashes.SHA256())
    mac.update(data.encode("utf-8"))
    return mac.finalize().hex()


def derive_signature(canonical_request: str, timestamp: int, private_secret: bytes) -> str:
    """
    Derive the request signature.

    Args:
        canonical_request: Canonical request string
        timestamp: Unix timestamp in seconds
        private_secret: HMAC key

    Returns:
        64-character lowercase hex signature
    """
    return hmac_sha256_hex(private_secret, create_string_to_sign(canonical_request, timestamp))


def signatures_match(expected: str, provided: str) -> bool:
    """Compare two hex signatures in constant time."""
    return bytes_eq(expected.encode("utf-8"), provided.encode("utf-8"))
