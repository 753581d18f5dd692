"""
Key Registry

Maps public ids to key pairs so a verifier can serve several signing
partners. Loaded from YAML; secrets can live in the file or, preferably,
in environment variables named by the file.

Configuration format (config/keys.yaml):
```yaml
keys:
  hsp_pub_2078d1e8d7373674dd68577e0817d38a:
    description: "Partner integration"
    private_secret_env: HSP_SECRET_PARTNER   # or private_secret: "hsp_pri_..."
    enabled: true
```
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from hsp_auth.core.paths import get_config_path
from hsp_auth.core.signing.keys import KeyPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredKey:
    """
    A configured key pair.

    Attributes:
        key_pair: The key pair itself
        description: Human-readable description
        enabled: Whether requests signed with it are accepted
    """
    key_pair: KeyPair
    description: str = ""
    enabled: bool = True

    @property
    def public_id(self) -> str:
        return self.key_pair.public_id


class KeyRegistry:
    """
    Registry of key pairs keyed by public id.

    Read-only after loading, so concurrent lookups need no locking.
    """

    def __init__(self):
        self._keys: Dict[str, RegisteredKey] = {}
        self._loaded = False

    def load_from_yaml(self, config_path: Path) -> None:
        """
        Load keys from a YAML file.

        Args:
            config_path: Path to keys.yaml

        Raises:
            ValueError: If an entry is invalid
        """
        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Keys config not found: {config_path}")
            self._loaded = True
            return

        with open(config_path) as f:
            config = yaml.safe_load(f) or {}

        for public_id, data in (config.get("keys") or {}).items():
            try:
                self.register(self._parse_entry(public_id, data or {}))
            except ValueError as e:
                logger.error(f"Failed to load key '{public_id}': {e}")
                raise ValueError(f"Invalid key config for '{public_id}': {e}") from e

        self._loaded = True
        logger.info(f"Loaded {len(self._keys)} keys from {config_path}")

    def _parse_entry(self, public_id: str, data: dict) -> RegisteredKey:
        """Parse one key entry, resolving the secret from the environment if needed."""
        secret = data.get("private_secret")
        env_name = data.get("private_secret_env")
        if env_name:
            secret = os.getenv(env_name)
            if not secret:
                raise ValueError(f"Environment variable {env_name} is not set")
        if not secret:
            raise ValueError("No private_secret or private_secret_env given")

        return RegisteredKey(
            key_pair=KeyPair.from_strings(str(public_id), str(secret)),
            description=data.get("description", ""),
            enabled=bool(data.get("enabled", True)),
        )

    def register(self, key: RegisteredKey) -> None:
        """Add a key, replacing any entry with the same public id."""
        self._keys[key.public_id] = key

    def get_key_pair(self, public_id: str) -> Optional[KeyPair]:
        """
        Get the key pair for a public id.

        Returns:
            KeyPair if registered and enabled, None otherwise
        """
        key = self._keys.get(public_id)
        if key and key.enabled:
            return key.key_pair
        return None

    def list_public_ids(self) -> List[str]:
        """Get list of all registered public ids."""
        return list(self._keys.keys())

    @property
    def is_loaded(self) -> bool:
        """Check if registry has been loaded."""
        return self._loaded


def load_key_registry(config_path: Optional[Path] = None) -> KeyRegistry:
    """
    Load a key registry from configuration.

    Args:
        config_path: Path to keys.yaml. If None, uses get_config_path().

    Returns:
        A new KeyRegistry (empty if no file was found)
    """
    registry = KeyRegistry()
    if config_path is None:
        config_path = get_config_path("keys.yaml")
        if config_path is None:
            logger.info("No keys.yaml found - key registry is empty")
            return registry

    registry.load_from_yaml(config_path)
    return registry
