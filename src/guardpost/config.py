# Authorization server settings.
# Created: 2026-03-02
#
# Loaded from GUARDPOST_* environment variables (or a .env file). The engine
# never reads these ambiently: a Settings instance travels in ServerContext.

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urljoin, urlparse

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

KNOWN_GRANT_TYPES = (
    "authorization_code",
    "client_credentials",
    "password",
    "refresh_token",
    "urn:ietf:params:oauth:grant-type:jwt-bearer",
    "urn:ietf:params:oauth:grant-type:device_code",
)

KNOWN_RESPONSE_TYPES = (
    "code",
    "id_token",
    "token",
    "code id_token",
    "code token",
    "id_token token",
    "code id_token token",
)

KNOWN_RESPONSE_MODES = (
    "query",
    "fragment",
    "form_post",
    "query.jwt",
    "fragment.jwt",
    "form_post.jwt",
    "jwt",
)

KNOWN_PKCE_METHODS = ("plain", "S256")

KNOWN_CLIENT_AUTHENTICATION_METHODS = (
    "client_secret_basic",
    "client_secret_post",
    "client_secret_jwt",
    "private_key_jwt",
    "none",
)


class Settings(BaseSettings):
    """Authorization server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GUARDPOST_",
        env_file=".env",
        extra="ignore",
    )

    issuer: str = "http://localhost:8000"
    scopes: list[str] = Field(
        default_factory=lambda: ["openid", "profile", "email", "phone", "address", "offline_access"]
    )

    grant_types: list[str] = Field(default_factory=lambda: list(KNOWN_GRANT_TYPES))
    response_types: list[str] = Field(default_factory=lambda: list(KNOWN_RESPONSE_TYPES))
    response_modes: list[str] = Field(default_factory=lambda: list(KNOWN_RESPONSE_MODES))
    pkce_methods: list[str] = Field(default_factory=lambda: ["S256", "plain"])
    client_authentication_methods: list[str] = Field(
        default_factory=lambda: list(KNOWN_CLIENT_AUTHENTICATION_METHODS)
    )
    client_authentication_signature_algorithms: list[str] = Field(
        default_factory=lambda: ["HS256", "HS384", "HS512", "RS256", "PS256", "ES256", "EdDSA"]
    )
    id_token_signature_algorithms: list[str] = Field(default_factory=lambda: ["RS256", "HS256"])

    # Lifetimes, in seconds
    access_token_ttl: int = 3600
    refresh_token_ttl: int = 30 * 86400
    authorization_code_ttl: int = 600
    id_token_ttl: int = 3600
    authorization_response_ttl: int = 300
    device_code_ttl: int = 1800
    grant_ttl: int = 1800
    session_ttl: int = 86400
    consent_ttl: int = 365 * 86400
    logout_token_ttl: int = 120

    device_polling_interval: int = 5
    cleanup_interval: int = 300
    user_code_length: int = 8
    device_verification_path: str = "/device"

    enable_refresh_token_rotation: bool = True
    enable_refresh_token_introspection: bool = True
    enable_refresh_token_revocation: bool = True
    enable_authorization_response_issuer_identifier: bool = False
    enable_claims_parameter: bool = False

    # User interaction pages served by the host application
    login_path: str = "/login"
    consent_path: str = "/consent"
    error_path: str | None = "/oauth/error"
    post_logout_path: str = "/logged-out"

    backchannel_logout_timeout: float = 5.0

    secret_key: str = "change-me"
    jwks_path: Path | None = None
    audit_log_path: Path | None = None

    @field_validator("issuer")
    @classmethod
    def _check_issuer(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"issuer must be an absolute http(s) URL, got {value!r}")
        if parsed.query or parsed.fragment:
            raise ValueError("issuer must not contain a query or fragment")
        return value.rstrip("/")

    @field_validator("device_polling_interval", "cleanup_interval", "user_code_length", "logout_token_ttl")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("response_types")
    @classmethod
    def _normalize_response_types(cls, value: list[str]) -> list[str]:
        return [" ".join(sorted(rt.split())) for rt in value]

    @model_validator(mode="after")
    def _check_known_names(self) -> Settings:
        for field_name, known in (
            ("grant_types", KNOWN_GRANT_TYPES),
            ("response_types", KNOWN_RESPONSE_TYPES),
            ("response_modes", KNOWN_RESPONSE_MODES),
            ("pkce_methods", KNOWN_PKCE_METHODS),
            ("client_authentication_methods", KNOWN_CLIENT_AUTHENTICATION_METHODS),
        ):
            unknown = set(getattr(self, field_name)) - set(known)
            if unknown:
                raise ValueError(f"Unsupported {field_name}: {sorted(unknown)}")
        return self

    @classmethod
    def load(cls) -> Settings:
        """Load settings from the environment."""
        return cls()

    def url_for(self, path: str) -> str:
        """Absolute URL of *path* relative to the issuer."""
        return urljoin(self.issuer + "/", path.lstrip("/"))


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
        logger.debug("Loaded settings for issuer %s", _settings.issuer)
    return _settings


def reset_settings() -> None:
    """Reset cached settings (for testing)."""
    global _settings
    _settings = None
