"""
Shared fixtures for HSP signing tests.

The reference key pair and install call are the ones used by the platform's
integration example, so signatures here double as interoperability vectors.
"""
import os
from urllib.parse import parse_qsl, urlsplit

import pytest

from hsp_auth.core import config
from hsp_auth.core.signing.canonical import QUERY_VALUE_SEPARATOR, merge_multi_items
from hsp_auth.core.signing.keys import KeyPair
from hsp_auth.core.signing.signer import sign_request
from hsp_auth.core.signing.verify import InboundRequest


REFERENCE_PUBLIC_ID = "hsp_pub_2078d1e8d7373674dd68577e0817d38a"
REFERENCE_PRIVATE_SECRET = "hsp_pri_4e253c9dc91f5cb2843a5d54e43081d528ef2eee11801b0461a327f5"
INSTALL_BODY = b'{"companyId":"1234","userId":"54321","installationId":"5678"}'
INSTALL_TIMESTAMP = 1739361956


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep HSP_* variables from the host environment out of every test."""
    for name in list(os.environ):
        if name.upper().startswith("HSP_"):
            monkeypatch.delenv(name)
    monkeypatch.setattr(config, "_settings", None)
    yield


@pytest.fixture
def key_pair():
    """The reference key pair."""
    return KeyPair.from_strings(REFERENCE_PUBLIC_ID, REFERENCE_PRIVATE_SECRET)


@pytest.fixture
def other_key_pair():
    """Same public id, different secret."""
    return KeyPair.from_strings(REFERENCE_PUBLIC_ID, "hsp_pri_" + "0" * 56)


@pytest.fixture
def install_body():
    return INSTALL_BODY


@pytest.fixture
def install_timestamp():
    return INSTALL_TIMESTAMP


def inbound_from_url(method, url, headers, body):
    """Build the request a server would see for ``url``."""
    parts = urlsplit(url)
    return InboundRequest(
        method=method,
        path=parts.path or "/",
        query_params=merge_multi_items(
            parse_qsl(parts.query, keep_blank_values=True),
            QUERY_VALUE_SEPARATOR,
        ),
        headers=headers,
        body=body,
    )


@pytest.fixture
def signed_request(key_pair):
    """
    Factory: sign a request and return it as the receiving side sees it.

    Defaults to the reference install call.
    """
    def _make(
        method="POST",
        url="http://localhost:4000/install",
        body=INSTALL_BODY,
        headers=None,
        headers_to_sign=(),
        timestamp=INSTALL_TIMESTAMP,
        signer=None,
    ):
        request_headers = dict(headers or {})
        request_headers.update(sign_request(
            signer or key_pair,
            method,
            url,
            body=body,
            headers=request_headers,
            headers_to_sign=headers_to_sign,
            timestamp=timestamp,
        ))
        return inbound_from_url(method, url, request_headers, body)

    return _make
