"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables with sensible defaults.
"""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr

from hsp_auth.core.signing.keys import KeyPair
from hsp_auth.core.signing.signer import DEFAULT_TIMESTAMP_HEADER


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ignore extra environment variables that aren't defined in the model
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================================
    # Key Pair (single-partner setups; use the key registry for several)
    # ============================================================
    hsp_public_id: Optional[str] = Field(None, description="Public id sent as pub=")
    hsp_private_secret: Optional[SecretStr] = Field(None, description="HMAC signing secret")
    hsp_keys_config: Optional[str] = Field(
        None,
        description="Path to keys.yaml registry (defaults to CONFIG_DIR lookup)"
    )

    # ============================================================
    # Verification
    # ============================================================
    hsp_timestamp_header: str = Field(
        DEFAULT_TIMESTAMP_HEADER,
        description="Header carrying the signing timestamp"
    )
    hsp_timestamp_tolerance_seconds: Optional[int] = Field(
        None,
        ge=0,
        description="Replay window in seconds (unset = timestamps are not checked)"
    )

    # ============================================================
    # Signed Client
    # ============================================================
    hsp_api_base_url: str = Field("http://localhost:4000", description="Base URL for signed requests")
    hsp_request_timeout: float = Field(60.0, description="Request timeout in seconds")

    # ============================================================
    # Logging Configuration
    # ============================================================
    log_level: str = Field("INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string"
    )

    @property
    def key_pair(self) -> Optional[KeyPair]:
        """Configured key pair, or None unless both id and secret are set."""
        if not self.hsp_public_id or self.hsp_private_secret is None:
            return None
        return KeyPair.from_strings(
            self.hsp_public_id,
            self.hsp_private_secret.get_secret_value(),
        )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
