"""
Request Signing

Signs outgoing requests and returns the headers to attach. The signature
always covers ``host`` and the timestamp header; callers can add more names
(e.g. content-type) as long as the request carries them.
"""

import logging
import time
from typing import Dict, Iterable, Mapping, Optional, Union
from urllib.parse import parse_qsl, quote, urlsplit

from hsp_auth.core.signing.canonical import (
    QUERY_VALUE_SEPARATOR,
    SigningContext,
    create_canonical_request,
    merge_multi_items,
    ordered_header_names,
)
from hsp_auth.core.signing.header import AUTHORIZATION_HEADER, AuthorizationHeader
from hsp_auth.core.signing.keys import KeyPair
from hsp_auth.core.signing.signature import derive_signature

logger = logging.getLogger(__name__)

DEFAULT_TIMESTAMP_HEADER = "x-hs-platform-request-timestamp"
HOST_HEADER = "host"

# Left alone when percent-encoding the path, so existing %XX escapes pass through
_PATH_SAFE = "/%:@!$&'()*+,;=~"


def sign_context(key_pair: KeyPair, context: SigningContext, timestamp: int) -> AuthorizationHeader:
    """
    Sign a prepared signing context.

    Args:
        key_pair: Signer's key pair
        context: Request parts, including the names to sign
        timestamp: Unix timestamp in seconds sent alongside the request

    Returns:
        AuthorizationHeader ready to serialize
    """
    canonical = create_canonical_request(context)
    logger.debug(f"Canonical request:\n{canonical}")

    return AuthorizationHeader(
        public_id=key_pair.public_id,
        signature=derive_signature(canonical, timestamp, key_pair.private_secret),
        signed_headers=tuple(sorted(context.headers_to_sign)),
    )


def build_signing_context(
    method: str,
    url: str,
    timestamp: int,
    body: Union[bytes, str] = b"",
    headers: Optional[Mapping[str, object]] = None,
    headers_to_sign: Iterable[str] = (),
    timestamp_header: str = DEFAULT_TIMESTAMP_HEADER,
) -> SigningContext:
    """
    Build the signing context for an outgoing request.

    Path and query come from ``url``; the path is percent-encoded the way
    HTTP clients send it. The Host value defaults to the URL's
    netloc and the timestamp header is set to ``timestamp``; both are
    always signed.

    Raises:
        ValueError: If the URL has no host and none is given, or a header
            to sign is not present on the request
    """
    if isinstance(body, str):
        body = body.encode("utf-8")

    parts = urlsplit(url)
    query_params = merge_multi_items(
        parse_qsl(parts.query, keep_blank_values=True),
        QUERY_VALUE_SEPARATOR,
    )

    header_values = {name.lower(): str(value) for name, value in (headers or {}).items()}
    host = header_values.get(HOST_HEADER) or parts.netloc
    if not host:
        raise ValueError(f"Cannot determine host for '{url}'")
    header_values[HOST_HEADER] = host
    header_values[timestamp_header.lower()] = str(timestamp)

    names = ordered_header_names(
        [HOST_HEADER, timestamp_header.lower()] + [name.lower() for name in headers_to_sign]
    )
    absent = [name for name in names if name not in header_values]
    if absent:
        raise ValueError(f"Cannot sign headers missing from the request: {', '.join(absent)}")

    return SigningContext.create(
        method=method,
        path=quote(parts.path or "/", safe=_PATH_SAFE),
        query_params=query_params,
        header_values=header_values,
        headers_to_sign=names,
        body=body,
    )


def sign_request(
    key_pair: KeyPair,
    method: str,
    url: str,
    body: Union[bytes, str] = b"",
    headers: Optional[Mapping[str, object]] = None,
    headers_to_sign: Iterable[str] = (),
    timestamp: Optional[int] = None,
    timestamp_header: str = DEFAULT_TIMESTAMP_HEADER,
) -> Dict[str, str]:
    """
    Sign an HTTP request and return headers.

    Args:
        key_pair: Signer's key pair
        method: HTTP method (GET, POST, etc.)
        url: Full request URL; path and query are taken from it
        body: Request body (str is encoded as UTF-8)
        headers: Headers the request will carry
        headers_to_sign: Extra header names to cover besides host and timestamp
        timestamp: Unix timestamp in seconds (default: now)
        timestamp_header: Name of the timestamp header

    Returns:
        Dict with the headers to send: Host, the timestamp header and
        Authorization. Send these values unchanged.

    Raises:
        ValueError: If the URL has no host and none is given, or a header
            to sign is not present on the request

    Example:
        >>> headers = sign_request(pair, "POST", "http://localhost:4000/install", body=b"{}")
        >>> sorted(headers)
        ['Authorization', 'Host', 'x-hs-platform-request-timestamp']
    """
    if timestamp is None:
        timestamp = int(time.time())

    context = build_signing_context(
        method,
        url,
        timestamp,
        body=body,
        headers=headers,
        headers_to_sign=headers_to_sign,
        timestamp_header=timestamp_header,
    )
    authorization = sign_context(key_pair, context, timestamp)

    return {
        "Host": context.header_value(HOST_HEADER),
        timestamp_header: str(timestamp),
        AUTHORIZATION_HEADER: authorization.to_header_value(),
    }
