"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load ARCA_* environment variables, falling back to a .env file
  - Validate the CUIT, point of sale and credential sources at startup
  - Keep the certificate and private key out of reprs and logs (SecretStr)

Credentials come either from files (ARCA_CERT_PATH, ARCA_KEY_PATH) or inline
PEM text (ARCA_CERT, ARCA_KEY). Exactly one source of each must be set.

Settings are optional: every service can also be built with explicit
arguments. `from_settings` constructors exist for the common case.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from arca_client.adapters.token_store import FileTokenStore
from arca_client.domain.credentials import is_valid_cuit
from arca_client.domain.models import Environment

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class ArcaSettings(BaseSettings):
    """
    Root settings for one taxpayer talking to ARCA.

    Load order (highest priority first):
      1. Environment variables (ARCA_ prefix)
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="ARCA_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Environment = Field(default=Environment.TESTING)
    cuit: str = Field(description="Issuer CUIT, 11 digits without dashes")

    cert_path: Path | None = Field(default=None, description="PEM certificate file")
    key_path: Path | None = Field(default=None, description="PEM private key file")
    cert: SecretStr | None = Field(default=None, description="Inline PEM certificate")
    key: SecretStr | None = Field(default=None, description="Inline PEM private key")

    point_of_sale: int | None = Field(default=None, ge=1, le=9999)
    http_timeout_seconds: float = Field(default=15.0, gt=0)
    read_retry_attempts: int = Field(default=3, ge=1)
    legacy_tls: bool = Field(default=True)
    token_cache_dir: Path | None = Field(default=None, description="Enables the file ticket cache")
    log_level: str = Field(default="INFO")

    @field_validator("cuit")
    @classmethod
    def validate_cuit(cls, value: str) -> str:
        value = value.strip()
        if not is_valid_cuit(value):
            raise ValueError(f"CUIT must be 11 digits without dashes, got {value!r}")
        return value

    @model_validator(mode="after")
    def check_credential_sources(self) -> ArcaSettings:
        """Exactly one of path / inline must be set for both the certificate and the key."""
        for name, path, inline in (
            ("certificate", self.cert_path, self.cert),
            ("private key", self.key_path, self.key),
        ):
            if path is None and inline is None:
                raise ValueError(f"No {name} configured: set ARCA_{_env(name)}_PATH or ARCA_{_env(name)}")
            if path is not None and inline is not None:
                raise ValueError(f"Both a path and inline PEM were given for the {name}; set only one")
        return self

    def load_certificate(self) -> str:
        if self.cert is not None:
            return self.cert.get_secret_value()
        return self.cert_path.read_text(encoding="utf-8")  # type: ignore[union-attr]

    def load_private_key(self) -> str:
        if self.key is not None:
            return self.key.get_secret_value()
        return self.key_path.read_text(encoding="utf-8")  # type: ignore[union-attr]

    def token_store(self, service: str) -> FileTokenStore | None:
        """File-backed ticket cache for `service`, or None when no cache dir is set."""
        if self.token_cache_dir is None:
            return None
        return FileTokenStore(self.token_cache_dir, service=service)


def _env(name: str) -> str:
    return "CERT" if name == "certificate" else "KEY"
