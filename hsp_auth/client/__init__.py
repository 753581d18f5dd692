"""
Signed HTTP client for HSP1-HMAC-SHA256 protected APIs.
"""

from .api_client import SignedAPIClient

__all__ = ["SignedAPIClient"]
