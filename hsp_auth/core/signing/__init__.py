"""
HSP1-HMAC-SHA256 Request Signing Module

Shared-secret request signing for API calls between two parties.
The signer and the verifier share one canonicalization algorithm.
"""

from hsp_auth.core.signing.keys import (
    KeyPair,
    generate_keypair,
)
from hsp_auth.core.signing.canonical import (
    ALGORITHM,
    SigningContext,
    create_canonical_request,
    hash_body,
)
from hsp_auth.core.signing.signature import (
    create_string_to_sign,
    derive_signature,
    signatures_match,
)
from hsp_auth.core.signing.header import (
    AuthorizationHeader,
    MalformedAuthorizationHeader,
    format_authorization_header,
    parse_authorization_header,
)
from hsp_auth.core.signing.signer import (
    DEFAULT_TIMESTAMP_HEADER,
    build_signing_context,
    sign_context,
    sign_request,
)
from hsp_auth.core.signing.verify import (
    InboundRequest,
    VerificationError,
    VerificationResult,
    verify_request,
)
from hsp_auth.core.signing.registry import (
    KeyRegistry,
    load_key_registry,
)

__all__ = [
    # Keys
    "KeyPair",
    "generate_keypair",
    # Canonicalization
    "ALGORITHM",
    "SigningContext",
    "create_canonical_request",
    "hash_body",
    # Signature
    "create_string_to_sign",
    "derive_signature",
    "signatures_match",
    # Authorization header
    "AuthorizationHeader",
    "MalformedAuthorizationHeader",
    "format_authorization_header",
    "parse_authorization_header",
    # Signing
    "DEFAULT_TIMESTAMP_HEADER",
    "build_signing_context",
    "sign_context",
    "sign_request",
    # Verification
    "InboundRequest",
    "VerificationError",
    "VerificationResult",
    "verify_request",
    # Registry
    "KeyRegistry",
    "load_key_registry",
]
