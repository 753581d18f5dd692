"""
Authorization Header

Wire format:
    HSP1-HMAC-SHA256 pub=<public_id>,sig=<64 hex chars>,headers=<name;name;...>

The ``headers`` list names the request headers covered by the signature,
in the sorted order used for canonicalization.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

from hsp_auth.core.signing.canonical import ALGORITHM, ordered_header_names

AUTHORIZATION_HEADER = "Authorization"
SCHEME_PREFIX = f"{ALGORITHM} "

REQUIRED_FIELDS = ("pub", "sig", "headers")

_SIGNATURE_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


class MalformedAuthorizationHeader(ValueError):
    """Authorization header present but not a valid HSP1 value."""


@dataclass(frozen=True)
class AuthorizationHeader:
    """
    Parsed Authorization header.

    Attributes:
        public_id: Key pair identifier (``pub``)
        signature: Lowercase hex signature (``sig``)
        signed_headers: Header names covered by the signature (``headers``)
    """
    public_id: str
    signature: str
    signed_headers: Tuple[str, ...]

    def to_header_value(self) -> str:
        """Serialize, listing signed header names sorted."""
        return format_authorization_header(self.public_id, self.signature, self.signed_headers)


def format_authorization_header(public_id: str, signature: str, signed_headers: Iterable[str]) -> str:
    """
    Build the outbound Authorization header value.

    Example:
        >>> format_authorization_header("hsp_pub_x", "ab" * 32, ["x-ts", "host"]).endswith(
        ...     ",headers=host;x-ts"
        ... )
        True
    """
    names = ";".join(sorted(ordered_header_names(signed_headers)))
    return f"{SCHEME_PREFIX}pub={public_id},sig={signature},headers={names}"


def parse_authorization_header(raw: str) -> AuthorizationHeader:
    """
    Parse an Authorization header value.

    Args:
        raw: Header value as received

    Returns:
        AuthorizationHeader

    Raises:
        MalformedAuthorizationHeader: Wrong scheme, unparseable segment,
            missing or empty field, or a signature that isn't 64 hex chars
    """
    if not raw.startswith(SCHEME_PREFIX):
        raise MalformedAuthorizationHeader(f"Expected '{ALGORITHM}' authorization scheme")

    fields: Dict[str, str] = {}
    for segment in raw[len(SCHEME_PREFIX):].split(","):
        key, sep, value = segment.partition("=")
        if not sep:
            raise MalformedAuthorizationHeader(f"Invalid segment: '{segment}'")
        fields[key.strip()] = value

    missing = [name for name in REQUIRED_FIELDS if not fields.get(name)]
    if missing:
        raise MalformedAuthorizationHeader(f"Missing required fields: {', '.join(missing)}")

    signature = fields["sig"]
    if not _SIGNATURE_PATTERN.match(signature):
        raise MalformedAuthorizationHeader("Signature must be 64 hex characters")

    return AuthorizationHeader(
        public_id=fields["pub"],
        signature=signature.lower(),
        signed_headers=ordered_header_names(fields["headers"].split(";")),
    )
