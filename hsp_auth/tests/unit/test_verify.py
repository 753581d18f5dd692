"""
Unit tests for request verification.

Tests:
- Round trip with the signer
- Fixed and recorded vectors
- Tamper sensitivity (body, headers, method, path, signed header list)
- Key mismatches
- Missing/malformed headers and timestamps
- Optional replay window
"""
from dataclasses import replace

import pytest

from hsp_auth.core.signing.keys import KeyPair
from hsp_auth.core.signing.registry import KeyRegistry, RegisteredKey
from hsp_auth.core.signing.verify import (
    InboundRequest,
    VerificationError,
    VerificationResult,
    validate_timestamp,
    verify_request,
)


RECORDED_AUTHORIZATION = (
    "HSP1-HMAC-SHA256 pub=hsp_pub_2078d1e8d7373674dd68577e0817d38a,"
    "sig=0eea4aad471b4877a3afb0efe9c22f685b8d643af4c2c410a75a68b6c2f8761c,"
    "headers=content-length;content-type;host;x-hs-platform-request-timestamp"
)


def with_headers(request, **changes):
    """Copy a request with some headers replaced (underscores become dashes)."""
    headers = {name.lower(): value for name, value in request.headers.items()}
    for name, value in changes.items():
        name = name.replace("_", "-")
        if value is None:
            headers.pop(name, None)
        else:
            headers[name] = value
    return replace(request, headers=headers)


class TestRoundTrip:
    """Test signed requests are accepted unmodified."""

    def test_accepts_signed_request(self, signed_request, key_pair, install_timestamp):
        result = verify_request(signed_request(), key_pair=key_pair)
        assert result.success
        assert result.error is None
        assert result.public_id == key_pair.public_id
        assert result.timestamp == install_timestamp

    def test_accepts_query_and_extra_headers(self, signed_request, key_pair):
        request = signed_request(
            url="http://localhost:4000/install?sort=name,created_at&tag=a&tag=b&activeOnly",
            headers={"Content-Type": "application/json"},
            headers_to_sign=["content-type"],
        )
        assert verify_request(request, key_pair=key_pair).success

    def test_accepts_empty_body_get(self, signed_request, key_pair):
        request = signed_request(method="GET", url="http://localhost:4000/status", body=b"")
        assert verify_request(request, key_pair=key_pair).success

    def test_header_name_casing_irrelevant(self, signed_request, key_pair):
        request = signed_request()
        upper = replace(request, headers={name.upper(): value for name, value in request.headers.items()})
        assert verify_request(upper, key_pair=key_pair).success

    def test_query_order_irrelevant(self, signed_request, key_pair):
        request = signed_request(url="http://localhost:4000/install?a=1&b=2&c=3")
        reordered = replace(request, query_params={"c": "3", "b": "2", "a": "1"})
        assert verify_request(reordered, key_pair=key_pair).success

    def test_unsigned_header_may_change(self, signed_request, key_pair):
        request = with_headers(signed_request(), user_agent="something-else")
        assert verify_request(request, key_pair=key_pair).success


class TestVectors:
    """Test requests built independently of the signer."""

    def test_reference_install_call(self, key_pair, install_body):
        request = InboundRequest(
            method="POST",
            path="/install",
            headers={
                "host": "localhost:4000",
                "x-hs-platform-request-timestamp": "1739361956",
                "content-type": "application/json",
                "authorization": (
                    "HSP1-HMAC-SHA256 pub=hsp_pub_2078d1e8d7373674dd68577e0817d38a,"
                    "sig=dfedc6ca02c37a1410d84ec2ada35954cea9bf5113f2200dfaf7bd12f2145e25,"
                    "headers=host;x-hs-platform-request-timestamp"
                ),
            },
            body=install_body,
        )
        assert verify_request(request, key_pair=key_pair).success

    def test_recorded_call(self, key_pair):
        """Test a call recorded from the platform verifies."""
        request = InboundRequest(
            method="POST",
            path="/install",
            query_params={
                "user_id": "1",
                "company_id": "4",
                "sort": "name,created_at",
                "limit": "5",
                "activeOnly": "",
            },
            headers={
                "content-type": "application/json;charset=UTF-8",
                "content-length": "61",
                "host": "10.0.64.112:4000",
                "x-hs-platform-request-timestamp": "1739361956",
                "authorization": RECORDED_AUTHORIZATION,
            },
            body=b'{"companyId":2,"userId":2001,"installationId":"loYOjlVXd7KA"}',
        )
        result = verify_request(request, key_pair=key_pair)
        assert result.success, result.error_message


class TestTampering:
    """Test any change to signed content is rejected."""

    def test_body_byte_flipped(self, signed_request, key_pair):
        request = signed_request()
        body = bytearray(request.body)
        body[5] ^= 0x01
        result = verify_request(replace(request, body=bytes(body)), key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_body_appended(self, signed_request, key_pair):
        request = signed_request()
        result = verify_request(replace(request, body=request.body + b" "), key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_signed_header_changed(self, signed_request, key_pair):
        request = with_headers(signed_request(), host="evil.example.com")
        result = verify_request(request, key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_signed_header_whitespace_changed(self, signed_request, key_pair):
        request = signed_request(
            headers={"content-type": "application/json"},
            headers_to_sign=["content-type"],
        )
        result = verify_request(with_headers(request, content_type="application/json "), key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_signed_header_removed(self, signed_request, key_pair):
        request = signed_request(
            headers={"content-type": "application/json"},
            headers_to_sign=["content-type"],
        )
        result = verify_request(with_headers(request, content_type=None), key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_method_changed(self, signed_request, key_pair):
        result = verify_request(replace(signed_request(), method="PUT"), key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_path_changed(self, signed_request, key_pair):
        result = verify_request(replace(signed_request(), path="/uninstall"), key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_query_param_added(self, signed_request, key_pair):
        result = verify_request(replace(signed_request(), query_params={"admin": "1"}), key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_timestamp_changed(self, signed_request, key_pair, install_timestamp):
        request = with_headers(signed_request(), x_hs_platform_request_timestamp=str(install_timestamp + 1))
        result = verify_request(request, key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH


class TestSignedHeaderListTampering:
    """The declared header list is covered by the signature."""

    def test_dropping_a_signed_header(self, signed_request, key_pair):
        request = signed_request(
            headers={"content-type": "application/json"},
            headers_to_sign=["content-type"],
        )
        auth = request.header("authorization")
        assert "headers=content-type;host;" in auth
        tampered = with_headers(request, authorization=auth.replace("headers=content-type;", "headers="))
        result = verify_request(tampered, key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_adding_a_header(self, signed_request, key_pair):
        request = with_headers(signed_request(), user_agent="curl")
        auth = request.header("authorization")
        tampered = with_headers(request, authorization=auth.replace("headers=", "headers=user-agent;"))
        result = verify_request(tampered, key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_reordering_is_harmless(self, signed_request, key_pair):
        """Test the verifier sorts declared names, so order alone changes nothing."""
        request = signed_request()
        auth = request.header("authorization")
        reordered = auth.replace(
            "headers=host;x-hs-platform-request-timestamp",
            "headers=x-hs-platform-request-timestamp;host",
        )
        assert verify_request(with_headers(request, authorization=reordered), key_pair=key_pair).success


class TestKeyMismatch:
    """Test wrong secret and wrong public id are caught separately."""

    def test_wrong_secret(self, signed_request, key_pair, other_key_pair):
        result = verify_request(signed_request(signer=other_key_pair), key_pair=key_pair)
        assert not result.success
        assert result.error == VerificationError.SIGNATURE_MISMATCH

    def test_wrong_public_id_valid_signature(self, signed_request, key_pair):
        """Test a correct signature under a different pub is still rejected."""
        request = signed_request()
        auth = request.header("authorization").replace(key_pair.public_id, "hsp_pub_someone_else")
        result = verify_request(with_headers(request, authorization=auth), key_pair=key_pair)
        assert result.error == VerificationError.PUBLIC_KEY_MISMATCH
        assert result.public_id == "hsp_pub_someone_else"

    def test_wrong_public_id_and_secret(self, signed_request, key_pair):
        stranger = KeyPair.from_strings("hsp_pub_stranger", "hsp_pri_stranger")
        result = verify_request(signed_request(signer=stranger), key_pair=key_pair)
        assert not result.success
        assert result.error == VerificationError.SIGNATURE_MISMATCH


class TestAuthorizationHeaderErrors:
    """Test missing vs malformed vs wrong headers."""

    def test_missing(self, signed_request, key_pair):
        result = verify_request(with_headers(signed_request(), authorization=None), key_pair=key_pair)
        assert result.error == VerificationError.MISSING_AUTH_HEADER
        assert result.error_message == "Missing Authorization header"

    def test_empty(self, signed_request, key_pair):
        result = verify_request(with_headers(signed_request(), authorization=""), key_pair=key_pair)
        assert result.error == VerificationError.MISSING_AUTH_HEADER

    @pytest.mark.parametrize("value", [
        "Bearer abc",
        "HSP1-HMAC-SHA256 pub=x",
        "HSP1-HMAC-SHA256 garbage",
        "HSP1-HMAC-SHA256 pub=x,sig=nothex,headers=host",
    ])
    def test_malformed(self, signed_request, key_pair, value):
        result = verify_request(with_headers(signed_request(), authorization=value), key_pair=key_pair)
        assert result.error == VerificationError.MALFORMED_AUTH_HEADER
        assert result.error_message.startswith("Malformed Authorization header")

    def test_wrong_signature_is_not_malformed(self, signed_request, key_pair):
        request = signed_request()
        auth = request.header("authorization")
        sig_start = auth.index("sig=") + 4
        forged = auth[:sig_start] + "0" * 64 + auth[sig_start + 64:]
        result = verify_request(with_headers(request, authorization=forged), key_pair=key_pair)
        assert result.error == VerificationError.SIGNATURE_MISMATCH


class TestTimestamp:
    """Test timestamp header handling and the optional replay window."""

    def test_missing_timestamp_header(self, signed_request, key_pair):
        request = with_headers(signed_request(), x_hs_platform_request_timestamp=None)
        result = verify_request(request, key_pair=key_pair)
        assert result.error == VerificationError.INVALID_TIMESTAMP

    def test_non_integer_timestamp(self, signed_request, key_pair):
        request = with_headers(signed_request(), x_hs_platform_request_timestamp="yesterday")
        result = verify_request(request, key_pair=key_pair)
        assert result.error == VerificationError.INVALID_TIMESTAMP

    @pytest.mark.parametrize("value", [
        "1_739_361_956",
        " 1739361956",
        "1739361956 ",
        "+1739361956",
        "-1739361956",
        "\u0661\u0667\u0663\u0669\u0663\u0666\u0661\u0669\u0665\u0666",
        "",
    ])
    def test_loosely_formatted_timestamp(self, signed_request, key_pair, value):
        """Test only plain ASCII decimal digits are accepted as a timestamp."""
        request = with_headers(signed_request(), x_hs_platform_request_timestamp=value)
        result = verify_request(request, key_pair=key_pair)
        assert result.error == VerificationError.INVALID_TIMESTAMP

    def test_custom_timestamp_header(self, key_pair):
        from hsp_auth.core.signing.signer import sign_request

        headers = sign_request(
            key_pair, "GET", "http://localhost/", timestamp=100, timestamp_header="x-timestamp",
        )
        request = InboundRequest(method="GET", path="/", headers=headers)
        assert verify_request(request, key_pair=key_pair, timestamp_header="x-timestamp").success
        assert (
            verify_request(request, key_pair=key_pair).error
            == VerificationError.INVALID_TIMESTAMP
        )

    def test_old_timestamp_accepted_without_window(self, signed_request, key_pair):
        """Test stale timestamps pass when no window is configured."""
        assert verify_request(signed_request(timestamp=1), key_pair=key_pair).success

    def test_inside_window(self, signed_request, key_pair, install_timestamp):
        result = verify_request(
            signed_request(), key_pair=key_pair,
            timestamp_tolerance=300, now=install_timestamp + 300,
        )
        assert result.success

    def test_too_old(self, signed_request, key_pair, install_timestamp):
        result = verify_request(
            signed_request(), key_pair=key_pair,
            timestamp_tolerance=300, now=install_timestamp + 301,
        )
        assert result.error == VerificationError.TIMESTAMP_OUT_OF_WINDOW
        assert result.timestamp == install_timestamp

    def test_too_new(self, signed_request, key_pair, install_timestamp):
        result = verify_request(
            signed_request(), key_pair=key_pair,
            timestamp_tolerance=300, now=install_timestamp - 301,
        )
        assert result.error == VerificationError.TIMESTAMP_OUT_OF_WINDOW

    def test_validate_timestamp_uses_clock(self, monkeypatch):
        from hsp_auth.core.signing import verify

        monkeypatch.setattr(verify.time, "time", lambda: 1000.0)
        assert validate_timestamp(990, 10)
        assert not validate_timestamp(989, 10)


class TestKeyLookup:
    """Test verification against a registry of key pairs."""

    @pytest.fixture
    def registry(self, key_pair):
        registry = KeyRegistry()
        registry.register(RegisteredKey(key_pair=key_pair, description="reference"))
        return registry

    def test_known_key(self, signed_request, registry):
        assert verify_request(signed_request(), key_lookup=registry.get_key_pair).success

    def test_unknown_key(self, signed_request, registry):
        stranger = KeyPair.from_strings("hsp_pub_stranger", "hsp_pri_stranger")
        result = verify_request(signed_request(signer=stranger), key_lookup=registry.get_key_pair)
        assert result.error == VerificationError.PUBLIC_KEY_MISMATCH
        assert "Unknown public key" in result.error_message

    def test_disabled_key(self, signed_request, key_pair):
        registry = KeyRegistry()
        registry.register(RegisteredKey(key_pair=key_pair, enabled=False))
        result = verify_request(signed_request(), key_lookup=registry.get_key_pair)
        assert result.error == VerificationError.PUBLIC_KEY_MISMATCH

    def test_requires_exactly_one_key_source(self, signed_request, key_pair, registry):
        with pytest.raises(TypeError):
            verify_request(signed_request())
        with pytest.raises(TypeError):
            verify_request(signed_request(), key_pair=key_pair, key_lookup=registry.get_key_pair)


class TestVerificationResult:
    """Test result helpers."""

    def test_ok(self):
        result = VerificationResult.ok(public_id="hsp_pub_x", timestamp=1)
        assert result.success and result.error is None

    def test_fail(self):
        result = VerificationResult.fail(VerificationError.SIGNATURE_MISMATCH, "nope")
        assert not result.success
        assert result.error_message == "nope"
