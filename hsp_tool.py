#!/usr/bin/env python3
"""
HSP Signing Tool

Generates key pairs, signs requests and checks signatures from the command
line. Useful for debugging an integration: `canonical` prints exactly what
gets hashed and signed.

Usage:
    python hsp_tool.py generate-keys
    python hsp_tool.py sign --url http://localhost:4000/install --body '{"companyId":"1234"}'
    python hsp_tool.py canonical --url http://localhost:4000/install --timestamp 1739361956
    python hsp_tool.py verify --url http://localhost:4000/install \\
        --header 'x-hs-platform-request-timestamp: 1739361956' \\
        --authorization 'HSP1-HMAC-SHA256 pub=...,sig=...,headers=host;x-hs-platform-request-timestamp'

The key pair comes from HSP_PUBLIC_ID / HSP_PRIVATE_SECRET (environment or
.env). `verify` falls back to the key registry when they are unset.
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from urllib.parse import parse_qsl, urlsplit

from dotenv import load_dotenv
load_dotenv()


def setup_logging(settings, verbose: bool = False, quiet: bool = False):
    """Configure logging based on verbosity, falling back to LOG_LEVEL."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=settings.log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_headers(values: list[str]) -> dict[str, str]:
    """Parse repeated 'Name: value' arguments."""
    headers = {}
    for item in values or []:
        name, sep, value = item.partition(":")
        if not sep:
            raise ValueError(f"Header must look like 'Name: value', got '{item}'")
        headers[name.strip()] = value.strip()
    return headers


def read_body(args) -> bytes:
    """Body from --body-file or --body (empty by default)."""
    if args.body_file:
        return Path(args.body_file).read_bytes()
    return (args.body or "").encode("utf-8")


def require_key_pair(settings):
    key_pair = settings.key_pair
    if key_pair is None:
        raise ValueError("HSP_PUBLIC_ID and HSP_PRIVATE_SECRET must be set")
    return key_pair


def cmd_generate_keys(args, settings) -> int:
    from hsp_auth.core.signing.keys import generate_keypair

    key_pair = generate_keypair()
    print(f"HSP_PUBLIC_ID={key_pair.public_id}")
    print(f"HSP_PRIVATE_SECRET={key_pair.private_secret.decode('utf-8')}")
    return 0


def cmd_sign(args, settings) -> int:
    from hsp_auth.core.signing.signer import sign_request

    signed = sign_request(
        require_key_pair(settings),
        args.method,
        args.url,
        body=read_body(args),
        headers=parse_headers(args.header),
        headers_to_sign=args.sign_header or (),
        timestamp=args.timestamp,
        timestamp_header=settings.hsp_timestamp_header,
    )
    for name, value in signed.items():
        print(f"{name}: {value}")
    return 0


def cmd_canonical(args, settings) -> int:
    from hsp_auth.core.signing.canonical import create_canonical_request
    from hsp_auth.core.signing.signature import create_string_to_sign
    from hsp_auth.core.signing.signer import build_signing_context

    timestamp = args.timestamp if args.timestamp is not None else int(time.time())
    context = build_signing_context(
        args.method,
        args.url,
        timestamp,
        body=read_body(args),
        headers=parse_headers(args.header),
        headers_to_sign=args.sign_header or (),
        timestamp_header=settings.hsp_timestamp_header,
    )
    canonical = create_canonical_request(context)

    print("Canonical request:")
    print("#" * 80)
    print(canonical)
    print("#" * 80)
    print("String to sign:")
    print("#" * 80)
    print(create_string_to_sign(canonical, timestamp))
    print("#" * 80)
    return 0


def cmd_verify(args, settings) -> int:
    from hsp_auth.core.signing.canonical import QUERY_VALUE_SEPARATOR, merge_multi_items
    from hsp_auth.core.paths import get_config_path
    from hsp_auth.core.signing.registry import load_key_registry
    from hsp_auth.core.signing.verify import InboundRequest, verify_request

    logger = logging.getLogger(__name__)

    parts = urlsplit(args.url)
    headers = {"host": parts.netloc}
    headers.update(parse_headers(args.header))
    if args.authorization:
        headers["authorization"] = args.authorization

    request = InboundRequest(
        method=args.method,
        path=parts.path or "/",
        query_params=merge_multi_items(
            parse_qsl(parts.query, keep_blank_values=True),
            QUERY_VALUE_SEPARATOR,
        ),
        headers=headers,
        body=read_body(args),
    )

    key_pair = settings.key_pair
    key_lookup = None
    if key_pair is None:
        if settings.hsp_keys_config:
            config_path = Path(settings.hsp_keys_config)
        else:
            config_path = get_config_path("keys.yaml", required=True)
        key_lookup = load_key_registry(config_path).get_key_pair

    result = verify_request(
        request,
        key_pair=key_pair,
        key_lookup=key_lookup,
        timestamp_header=settings.hsp_timestamp_header,
        timestamp_tolerance=settings.hsp_timestamp_tolerance_seconds,
    )

    if result.success:
        print(f"OK: signed by {result.public_id} at {result.timestamp}")
        return 0

    logger.warning(f"Verification failed: {result.error.value}")
    print(f"FAILED ({result.error.value}): {result.error_message}")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sign and verify HSP1-HMAC-SHA256 requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s generate-keys                                   # New key pair for .env
  %(prog)s sign --url http://localhost:4000/install -b '{}' # Print headers to send
  %(prog)s canonical --url http://localhost:4000/install   # Show canonical request
        """
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only log warnings and errors")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("generate-keys", help="Generate a new key pair")

    request_parent = argparse.ArgumentParser(add_help=False)
    request_parent.add_argument("--method", "-X", default="POST", help="HTTP method (default: POST)")
    request_parent.add_argument("--url", "-u", required=True, help="Full request URL including query string")
    request_parent.add_argument("--body", "-b", help="Request body")
    request_parent.add_argument("--body-file", help="Read the request body from a file")
    request_parent.add_argument(
        "--header", "-H",
        action="append",
        help="Request header as 'Name: value' (repeatable)",
    )

    for name, help_text in (("sign", "Print the headers for a signed request"),
                            ("canonical", "Print the canonical request and string to sign")):
        sub = subparsers.add_parser(name, parents=[request_parent], help=help_text)
        sub.add_argument(
            "--sign-header", "-s",
            action="append",
            help="Extra header name to sign besides host and the timestamp (repeatable)",
        )
        sub.add_argument("--timestamp", "-t", type=int, help="Signing timestamp (default: now)")

    verify = subparsers.add_parser("verify", parents=[request_parent], help="Verify a signed request")
    verify.add_argument("--authorization", "-a", help="Authorization header value")

    return parser


COMMANDS = {
    "generate-keys": cmd_generate_keys,
    "sign": cmd_sign,
    "canonical": cmd_canonical,
    "verify": cmd_verify,
}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    from hsp_auth.core.config import get_settings

    settings = get_settings()
    setup_logging(settings, verbose=args.verbose, quiet=args.quiet)

    try:
        return COMMANDS[args.command](args, settings)
    except (ValueError, OSError) as e:
        logging.getLogger(__name__).error(str(e))
        return 2


if __name__ == "__main__":
    sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
    sys.exit(main())
