"""
Canonical Request

Serializes an HTTP request into the deterministic string that gets signed.

Canonical Request Format:
    {method}\\n{path}\\n{query}\\n{headers}\\n{body_hash}

Where:
    - method: HTTP method, uppercase
    - path: Request path only (no scheme, host or query string)
    - query: Parameters sorted by key, values percent-encoded, joined as k=v&k=v
    - headers: Signed header names sorted, one "name:value" line each
    - body_hash: SHA-256 hex digest of the raw body (empty body included)

This format is part of the wire contract. Both sides must reproduce it
byte for byte.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import quote

ALGORITHM = "HSP1-HMAC-SHA256"

# Characters left alone by URI component encoding besides letters, digits and "_.-"
_URI_COMPONENT_SAFE = "!~*'()"

# Separator for repeated query parameters (matches how the platform stringifies lists)
QUERY_VALUE_SEPARATOR = ","

# Separator for repeated header fields (RFC 9110 field combination)
HEADER_VALUE_SEPARATOR = ", "


@dataclass(frozen=True)
class SigningContext:
    """
    Inputs needed to canonicalize one request.

    Use :meth:`create` to build one; it normalizes header names to lowercase
    so lookups are case-insensitive.

    Attributes:
        method: HTTP method
        path: Request path without query string
        query_params: Query parameters, one value per key
        header_values: Header values keyed by lowercase name
        headers_to_sign: Names of the headers covered by the signature
        body: Raw request body
    """
    method: str
    path: str
    query_params: Mapping[str, str] = field(default_factory=dict)
    header_values: Mapping[str, str] = field(default_factory=dict)
    headers_to_sign: Tuple[str, ...] = ()
    body: bytes = b""

    @classmethod
    def create(
        cls,
        method: str,
        path: str,
        query_params: Optional[Mapping[str, object]] = None,
        header_values: Optional[Mapping[str, object]] = None,
        headers_to_sign: Iterable[str] = (),
        body: Optional[bytes] = b"",
    ) -> "SigningContext":
        """Build a context, normalizing header names and deduplicating signed names."""
        return cls(
            method=method,
            path=path,
            query_params={key: str(value) for key, value in (query_params or {}).items()},
            header_values={name.lower(): str(value) for name, value in (header_values or {}).items()},
            headers_to_sign=ordered_header_names(headers_to_sign),
            body=body or b"",
        )

    def header_value(self, name: str) -> str:
        """Value of a header, empty string when the request doesn't carry it."""
        return self.header_values.get(name.lower(), "")


def ordered_header_names(names: Iterable[str]) -> Tuple[str, ...]:
    """Drop duplicate names, keeping first-seen order."""
    return tuple(dict.fromkeys(names))


def merge_multi_items(items: Iterable[Tuple[str, str]], separator: str) -> Dict[str, str]:
    """
    Collapse repeated keys into one value per key.

    Args:
        items: (key, value) pairs, possibly with repeated keys
        separator: Joins the values of a repeated key, in arrival order

    Returns:
        Dict with one entry per distinct key
    """
    grouped: Dict[str, list] = {}
    for key, value in items:
        grouped.setdefault(key, []).append(value)
    return {key: separator.join(values) for key, values in grouped.items()}


def percent_encode(value: str) -> str:
    """
    Percent-encode a query value as a URI component.

    Example:
        >>> percent_encode("name,created_at")
        'name%2Ccreated_at'
    """
    return quote(value, safe=_URI_COMPONENT_SAFE)


def hash_body(body: bytes) -> str:
    """
    Compute SHA-256 hash of request body.

    Args:
        body: Request body bytes (may be empty)

    Returns:
        Hex-encoded SHA-256 hash
    """
    return hashlib.sha256(body or b"").hexdigest()


def canonical_query_string(query_params: Mapping[str, str]) -> str:
    """Sorted ``key=value`` pairs joined with ``&``; keys verbatim, values encoded."""
    return "&".join(
        f"{key}={percent_encode(query_params[key])}"
        for key in sorted(query_params)
    )


def canonical_headers(context: SigningContext) -> str:
    """
    One ``name:value`` line per signed header, sorted by name.

    A signed name the request doesn't carry renders with an empty value
    rather than failing; the signature check catches the difference.
    """
    return "\n".join(
        f"{name}:{context.header_value(name)}"
        for name in sorted(context.headers_to_sign)
    )


def create_canonical_request(context: SigningContext) -> str:
    """
    Create the canonical request string for signing/verification.

    Args:
        context: The request parts to serialize

    Returns:
        Canonical request string

    Example:
        >>> ctx = SigningContext.create(
        ...     "POST", "/install",
        ...     header_values={"Host": "localhost:4000"},
        ...     headers_to_sign=["host"],
        ... )
        >>> create_canonical_request(ctx).split("\\n")[:4]
        ['POST', '/install', '', 'host:localhost:4000']
    """
    return "\n".join([
        context.method.upper(),
        context.path,
        canonical_query_string(context.query_params),
        canonical_headers(context),
        hash_body(context.body),
    ])
