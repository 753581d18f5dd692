"""
hsp-auth

HSP1-HMAC-SHA256 request signing and verification.
"""

__version__ = "1.0.0"
