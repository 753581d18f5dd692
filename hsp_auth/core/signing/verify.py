"""
Signature Verification

Verifies HSP1-HMAC-SHA256 signatures on incoming requests.

The canonical request is rebuilt from the request as received, using the
header names declared in the Authorization header. That list is itself part
of the signed canonical request, so altering it breaks the signature.

Checks, in order:
    1. Authorization header present and well formed
    2. Timestamp header present and an integer
    3. Timestamp inside the replay window (only when one is configured)
    4. Signature matches (constant-time comparison)
    5. Declared public id matches the expected key pair
"""

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping, Optional

from hsp_auth.core.signing.canonical import SigningContext, create_canonical_request
from hsp_auth.core.signing.header import (
    MalformedAuthorizationHeader,
    parse_authorization_header,
)
from hsp_auth.core.signing.keys import KeyPair
from hsp_auth.core.signing.signature import (
    create_string_to_sign,
    derive_signature,
    signatures_match,
)
from hsp_auth.core.signing.signer import DEFAULT_TIMESTAMP_HEADER

logger = logging.getLogger(__name__)

KeyLookup = Callable[[str], Optional[KeyPair]]

# Unsigned ASCII decimal seconds
_TIMESTAMP_RE = re.compile(r"[0-9]+")


class VerificationError(Enum):
    """Enumeration of possible verification failures."""
    MISSING_AUTH_HEADER = "missing_auth_header"
    MALFORMED_AUTH_HEADER = "malformed_auth_header"
    INVALID_TIMESTAMP = "invalid_timestamp"
    TIMESTAMP_OUT_OF_WINDOW = "timestamp_out_of_window"
    SIGNATURE_MISMATCH = "signature_mismatch"
    PUBLIC_KEY_MISMATCH = "public_key_mismatch"


@dataclass
class VerificationResult:
    """
    Result of signature verification.

    Attributes:
        success: Whether verification succeeded
        error: Error type if verification failed
        error_message: Human-readable error message
        public_id: Public id declared by the request (if parsed)
        timestamp: Parsed timestamp (if valid)
    """
    success: bool
    error: Optional[VerificationError] = None
    error_message: Optional[str] = None
    public_id: Optional[str] = None
    timestamp: Optional[int] = None

    @classmethod
    def ok(cls, public_id: str, timestamp: int) -> "VerificationResult":
        """Create a successful result."""
        return cls(success=True, public_id=public_id, timestamp=timestamp)

    @classmethod
    def fail(
        cls,
        error: VerificationError,
        message: str,
        public_id: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> "VerificationResult":
        """Create a failed result."""
        return cls(
            success=False,
            error=error,
            error_message=message,
            public_id=public_id,
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class InboundRequest:
    """
    A received request, independent of the web framework.

    Attributes:
        method: HTTP method
        path: Request path without query string
        query_params: One value per key (repeated keys already merged)
        headers: Header values; names are matched case-insensitively
        body: Raw body bytes
    """
    method: str
    path: str
    query_params: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


def validate_timestamp(timestamp: int, tolerance_seconds: int, now: Optional[int] = None) -> bool:
    """
    Check that a timestamp is within ``tolerance_seconds`` of now, either way.

    Args:
        timestamp: Unix timestamp in seconds
        tolerance_seconds: Maximum allowed skew
        now: Current time (default: time.time())

    Returns:
        True if inside the window
    """
    if now is None:
        now = int(time.time())
    return abs(now - timestamp) <= tolerance_seconds


def verify_request(
    request: InboundRequest,
    key_pair: Optional[KeyPair] = None,
    key_lookup: Optional[KeyLookup] = None,
    timestamp_header: str = DEFAULT_TIMESTAMP_HEADER,
    timestamp_tolerance: Optional[int] = None,
    now: Optional[int] = None,
) -> VerificationResult:
    """
    Verify a signed request.

    Exactly one of ``key_pair`` (the expected key) or ``key_lookup``
    (resolves a declared public id to its key pair, e.g.
    ``KeyRegistry.get_key_pair``) must be given.

    Args:
        request: The inbound request
        key_pair: Expected key pair
        key_lookup: Callable returning the key pair for a public id, or None
        timestamp_header: Header carrying the signing timestamp
        timestamp_tolerance: Replay window in seconds; None disables the check
        now: Current time for the window check (default: time.time())

    Returns:
        VerificationResult with success status and details

    Example:
        >>> result = verify_request(request, key_pair=pair)
        >>> if not result.success:
        ...     reject(result.error_message)
    """
    if (key_pair is None) == (key_lookup is None):
        raise TypeError("Provide exactly one of key_pair or key_lookup")

    # 1. Authorization header
    raw_header = request.header("authorization")
    if not raw_header:
        return VerificationResult.fail(
            VerificationError.MISSING_AUTH_HEADER,
            "Missing Authorization header",
        )

    try:
        auth = parse_authorization_header(raw_header)
    except MalformedAuthorizationHeader as e:
        return VerificationResult.fail(
            VerificationError.MALFORMED_AUTH_HEADER,
            f"Malformed Authorization header: {e}",
        )

    # 2. Timestamp
    timestamp_str = request.header(timestamp_header)
    if timestamp_str is None or not _TIMESTAMP_RE.fullmatch(timestamp_str):
        return VerificationResult.fail(
            VerificationError.INVALID_TIMESTAMP,
            f"Invalid {timestamp_header} header: '{timestamp_str}'",
            public_id=auth.public_id,
        )
    timestamp = int(timestamp_str)

    # 3. Replay window (opt-in)
    if timestamp_tolerance is not None and not validate_timestamp(timestamp, timestamp_tolerance, now):
        return VerificationResult.fail(
            VerificationError.TIMESTAMP_OUT_OF_WINDOW,
            f"Timestamp outside the {timestamp_tolerance}s window: {timestamp}",
            public_id=auth.public_id,
            timestamp=timestamp,
        )

    if key_lookup is not None:
        key_pair = key_lookup(auth.public_id)
        if key_pair is None:
            return VerificationResult.fail(
                VerificationError.PUBLIC_KEY_MISMATCH,
                f"Unknown public key: '{auth.public_id}'",
                public_id=auth.public_id,
                timestamp=timestamp,
            )

    # 4. Signature over the request as received
    context = SigningContext.create(
        method=request.method,
        path=request.path,
        query_params=request.query_params,
        header_values=request.headers,
        headers_to_sign=auth.signed_headers,
        body=request.body,
    )
    canonical = create_canonical_request(context)
    logger.debug(f"Canonical request:\n{canonical}")
    logger.debug(f"String to sign:\n{create_string_to_sign(canonical, timestamp)}")

    expected = derive_signature(canonical, timestamp, key_pair.private_secret)
    signature_match = signatures_match(expected, auth.signature)

    # 5. Public id
    public_key_match = auth.public_id == key_pair.public_id

    if not signature_match:
        return VerificationResult.fail(
            VerificationError.SIGNATURE_MISMATCH,
            "Signature verification failed",
            public_id=auth.public_id,
            timestamp=timestamp,
        )
    if not public_key_match:
        return VerificationResult.fail(
            VerificationError.PUBLIC_KEY_MISMATCH,
            f"Public key mismatch: '{auth.public_id}'",
            public_id=auth.public_id,
            timestamp=timestamp,
        )

    return VerificationResult.ok(public_id=auth.public_id, timestamp=timestamp)
