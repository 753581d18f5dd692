"""
Signed API Client

HTTP client that signs every outgoing request with HSP1-HMAC-SHA256.

The Host and timestamp header values that went into the signature are sent
exactly as signed, so the receiving side rebuilds the same canonical request.
"""
import json as json_module
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Union
from urllib.parse import urlencode, urljoin

import httpx

from hsp_auth.core.config import Settings, get_settings
from hsp_auth.core.signing.keys import KeyPair
from hsp_auth.core.signing.signer import DEFAULT_TIMESTAMP_HEADER, sign_request

logger = logging.getLogger(__name__)


class SignedAPIClient:
    """
    HTTP client for APIs that verify HSP1-HMAC-SHA256 signatures.
    """

    def __init__(
        self,
        key_pair: KeyPair,
        base_url: str = "http://localhost:4000",
        timeout: float = 60.0,
        timestamp_header: str = DEFAULT_TIMESTAMP_HEADER,
        headers_to_sign: Iterable[str] = (),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize API client.

        Args:
            key_pair: Key pair used to sign requests
            base_url: API base URL
            timeout: Request timeout in seconds
            timestamp_header: Name of the timestamp header
            headers_to_sign: Extra header names to cover (host and timestamp always are)
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
        """
        self.key_pair = key_pair
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.timestamp_header = timestamp_header
        self.headers_to_sign = tuple(headers_to_sign)
        self._transport = transport

        logger.info(f"SignedAPIClient initialized: {self.base_url} (pub={key_pair.public_id})")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs) -> "SignedAPIClient":
        """
        Build a client from HSP_* settings.

        Raises:
            ValueError: If HSP_PUBLIC_ID or HSP_PRIVATE_SECRET is missing
        """
        settings = settings or get_settings()
        key_pair = settings.key_pair
        if key_pair is None:
            raise ValueError("HSP_PUBLIC_ID and HSP_PRIVATE_SECRET environment variables are required.")
        return cls(
            key_pair=key_pair,
            base_url=settings.hsp_api_base_url,
            timeout=settings.hsp_request_timeout,
            timestamp_header=settings.hsp_timestamp_header,
            **kwargs,
        )

    def build_url(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """Join endpoint onto the base URL and append encoded query parameters."""
        url = urljoin(self.base_url + "/", endpoint.lstrip('/'))
        if params:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{urlencode(params, doseq=True)}"
        return url

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        json_data: Any = None,
        content: Union[bytes, str, None] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """
        Sign and send a request.

        Args:
            method: HTTP method
            endpoint: Path relative to the base URL
            params: Query parameters
            json_data: JSON body (serialized here so the signed bytes are the sent bytes)
            content: Raw body, used when json_data is None
            headers: Extra headers to send

        Returns:
            httpx.Response

        Raises:
            httpx.HTTPStatusError: On 4xx/5xx responses
            httpx.RequestError: On transport failures
        """
        url = self.build_url(endpoint, params)

        request_headers: Dict[str, str] = dict(headers or {})
        body = b""
        if json_data is not None:
            body = json_module.dumps(json_data).encode("utf-8")
            request_headers.setdefault("Content-Type", "application/json")
        elif content is not None:
            body = content.encode("utf-8") if isinstance(content, str) else content

        signed_headers = sign_request(
            self.key_pair,
            method,
            url,
            body=body,
            headers=request_headers,
            headers_to_sign=self.headers_to_sign,
            timestamp_header=self.timestamp_header,
        )
        replaced = {name.lower() for name in signed_headers}
        request_headers = {k: v for k, v in request_headers.items() if k.lower() not in replaced}
        request_headers.update(signed_headers)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=request_headers,
                    content=body if body else None,
                )
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                logger.error(f"API error {e.response.status_code}: {method} {endpoint}")
                raise
            except httpx.RequestError as e:
                logger.error(f"Request error: {e}")
                raise

    async def get(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> httpx.Response:
        return await self.request("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_data: Any = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> httpx.Response:
        return await self.request("POST", endpoint, params=params, json_data=json_data)
