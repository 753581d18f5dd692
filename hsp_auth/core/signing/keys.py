"""
HSP Key Pairs

A key pair is a public identifier (sent with every request as ``pub``) and a
private secret (the HMAC key, never transmitted).

Generated keys follow the platform format:
    hsp_pub_<32 hex chars>
    hsp_pri_<56 hex chars>
"""

import secrets
from dataclasses import dataclass, field
from typing import Union

PUBLIC_ID_PREFIX = "hsp_pub_"
PRIVATE_SECRET_PREFIX = "hsp_pri_"

# Random bytes behind each generated key (hex doubles the length)
PUBLIC_ID_BYTES = 16
PRIVATE_SECRET_BYTES = 28


@dataclass(frozen=True)
class KeyPair:
    """
    Shared key pair for one signing party.

    Attributes:
        public_id: Non-secret identifier naming the key pair
        private_secret: HMAC key bytes (excluded from repr)
    """
    public_id: str
    private_secret: bytes = field(repr=False)

    def __post_init__(self):
        if not self.public_id:
            raise ValueError("public_id must not be empty")
        if not self.private_secret:
            raise ValueError("private_secret must not be empty")

    @classmethod
    def from_strings(cls, public_id: str, private_secret: Union[str, bytes]) -> "KeyPair":
        """
        Build a key pair from configuration values.

        String secrets are used as their UTF-8 bytes, which is how the
        ``hsp_pri_...`` keys are fed to HMAC on both sides.
        """
        if isinstance(private_secret, str):
            private_secret = private_secret.encode("utf-8")
        return cls(public_id=public_id, private_secret=private_secret)


def generate_keypair() -> KeyPair:
    """
    Generate a new random key pair.

    Returns:
        KeyPair with ``hsp_pub_``/``hsp_pri_`` prefixed identifiers

    Example:
        >>> pair = generate_keypair()
        >>> pair.public_id.startswith("hsp_pub_")
        True
    """
    public_id = PUBLIC_ID_PREFIX + secrets.token_hex(PUBLIC_ID_BYTES)
    private_secret = PRIVATE_SECRET_PREFIX + secrets.token_hex(PRIVATE_SECRET_BYTES)
    return KeyPair.from_strings(public_id, private_secret)
