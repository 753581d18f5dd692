"""
Signed Request Authentication for FastAPI

Verifies HSP1-HMAC-SHA256 signed requests as a FastAPI dependency.

Example:
    verifier = HspSignatureVerifier.from_settings()

    @app.post("/install")
    async def install(auth: AuthContext = Depends(verifier)):
        ...

Any verification failure becomes a 401. The raw body stays readable in the
route handler because Starlette caches it.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import HTTPException, Request, status

from hsp_auth.core.config import Settings, get_settings
from hsp_auth.core.signing.canonical import (
    ALGORITHM,
    HEADER_VALUE_SEPARATOR,
    QUERY_VALUE_SEPARATOR,
    merge_multi_items,
)
from hsp_auth.core.signing.keys import KeyPair
from hsp_auth.core.signing.registry import KeyRegistry, load_key_registry
from hsp_auth.core.signing.signer import DEFAULT_TIMESTAMP_HEADER
from hsp_auth.core.signing.verify import InboundRequest, VerificationResult, verify_request

logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    """
    Authentication context for a verified request.

    Attributes:
        public_id: Public id of the key pair that signed the request
        timestamp: Signing timestamp sent by the caller
    """
    public_id: str
    timestamp: int


def inbound_request_from_starlette(request: Request, body: bytes) -> InboundRequest:
    """
    Adapt a Starlette/FastAPI request for verification.

    Uses the raw (still percent-encoded) path when the server provides it,
    merges repeated query parameters with "," and repeated headers with ", ".
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path

    return InboundRequest(
        method=request.method,
        path=path,
        query_params=merge_multi_items(request.query_params.multi_items(), QUERY_VALUE_SEPARATOR),
        headers=merge_multi_items(request.headers.items(), HEADER_VALUE_SEPARATOR),
        body=body,
    )


class HspSignatureVerifier:
    """
    FastAPI dependency that verifies signed requests.

    Give either a single expected key pair or a registry to look key pairs
    up by the declared public id.
    """

    def __init__(
        self,
        key_pair: Optional[KeyPair] = None,
        registry: Optional[KeyRegistry] = None,
        timestamp_header: str = DEFAULT_TIMESTAMP_HEADER,
        timestamp_tolerance: Optional[int] = None,
    ):
        if (key_pair is None) == (registry is None):
            raise ValueError("Provide exactly one of key_pair or registry")
        self.key_pair = key_pair
        self.registry = registry
        self.timestamp_header = timestamp_header
        self.timestamp_tolerance = timestamp_tolerance

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "HspSignatureVerifier":
        """
        Build a verifier from configuration.

        Uses HSP_PUBLIC_ID/HSP_PRIVATE_SECRET when both are set, otherwise
        the key registry (HSP_KEYS_CONFIG or keys.yaml in CONFIG_DIR).
        """
        settings = settings or get_settings()
        key_pair = settings.key_pair
        registry = None
        if key_pair is None:
            config_path = Path(settings.hsp_keys_config) if settings.hsp_keys_config else None
            registry = load_key_registry(config_path)

        return cls(
            key_pair=key_pair,
            registry=registry,
            timestamp_header=settings.hsp_timestamp_header,
            timestamp_tolerance=settings.hsp_timestamp_tolerance_seconds,
        )

    def verify(self, request: InboundRequest) -> VerificationResult:
        """Verify an adapted request."""
        return verify_request(
            request,
            key_pair=self.key_pair,
            key_lookup=self.registry.get_key_pair if self.registry is not None else None,
            timestamp_header=self.timestamp_header,
            timestamp_tolerance=self.timestamp_tolerance,
        )

    async def __call__(self, request: Request) -> AuthContext:
        """
        Verify the request.

        Returns:
            AuthContext if verification succeeds

        Raises:
            HTTPException: 401 if verification fails
        """
        body = await request.body()
        result = self.verify(inbound_request_from_starlette(request, body))

        if not result.success:
            logger.warning(
                f"Rejected {request.method} {request.url.path}: "
                f"{result.error.value} - {result.error_message}"
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=result.error_message,
                headers={"WWW-Authenticate": ALGORITHM},
            )

        logger.debug(f"Authenticated request signed by {result.public_id}")
        return AuthContext(public_id=result.public_id, timestamp=result.timestamp)
