# OAuth2 data models.
# Created: 2026-03-02
#
# Plain dataclasses for the entities the engine reasons about. Persistence is
# the services layer's business; these only carry state and a few predicates.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any


def utcnow() -> datetime:
    return datetime.now(UTC)


def timestamp(value: datetime) -> int:
    return int(value.timestamp())


@dataclass
class Client:
    """Registered OAuth2 client."""

    client_id: str
    client_name: str = ""
    client_secret: str | None = None
    client_secret_issued_at: datetime | None = None
    client_secret_expires_at: datetime | None = None
    redirect_uris: list[str] = field(default_factory=list)
    grant_types: list[str] = field(default_factory=lambda: ["authorization_code"])
    response_types: list[str] = field(default_factory=lambda: ["code"])
    scopes: list[str] = field(default_factory=list)
    authentication_method: str = "client_secret_basic"
    authentication_signing_alg: str | None = None
    jwks: dict[str, Any] | None = None
    jwks_uri: str | None = None
    subject_type: str = "public"
    sector_identifier: str | None = None
    id_token_signed_response_alg: str = "RS256"
    userinfo_signed_response_alg: str | None = None
    authorization_signed_response_alg: str | None = None
    authorization_encrypted_response_alg: str | None = None
    authorization_encrypted_response_enc: str | None = None
    application_type: str = "web"
    contacts: list[str] = field(default_factory=list)
    client_uri: str | None = None
    logo_uri: str | None = None
    post_logout_redirect_uris: list[str] = field(default_factory=list)
    backchannel_logout_uri: str | None = None
    backchannel_logout_session_required: bool = False
    registration_access_token: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_public(self) -> bool:
        return self.authentication_method == "none"

    def secret_expired(self, now: datetime | None = None) -> bool:
        if self.client_secret_expires_at is None:
            return False
        return (now or utcnow()) >= self.client_secret_expires_at


@dataclass
class User:
    """End user. Only ``user_id`` matters to the engine; ``claims`` feed userinfo."""

    user_id: str
    username: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass(kw_only=True)
class _Expiring:
    """Mixin for artifacts with a validity window."""

    expires_at: datetime
    issued_at: datetime = field(default_factory=utcnow)
    valid_after: datetime = field(default_factory=utcnow)
    is_revoked: bool = False

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def is_active(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return not self.is_revoked and self.valid_after <= now < self.expires_at


@dataclass
class AuthorizationCode(_Expiring):
    """Single-use code bound to the authorization request that produced it."""

    code: str
    client_id: str
    user_id: str
    redirect_uri: str
    scopes: list[str]
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    nonce: str | None = None
    auth_time: datetime | None = None
    acr: str | None = None
    amr: list[str] | None = None
    session_id: str | None = None
    claims_request: dict[str, Any] | None = None
    used: bool = False


@dataclass
class AccessToken(_Expiring):
    """Opaque access token handle and its metadata."""

    handle: str
    client_id: str | None
    user_id: str | None
    scopes: list[str]
    grant_type: str
    audience: list[str] = field(default_factory=list)
    authorization_code: str | None = None
    token_type: str = "Bearer"
    # Extra userinfo claims asked for with the claims request parameter
    userinfo_claims: list[str] | None = None


@dataclass
class RefreshToken(_Expiring):
    """Refresh token, optionally linked to the access token issued alongside it."""

    handle: str
    client_id: str
    user_id: str | None
    scopes: list[str]
    access_token: str | None = None
    authorization_code: str | None = None
    family_id: str | None = None
    replaced_by: str | None = None


DEVICE_PENDING = None
DEVICE_AUTHORIZED = True
DEVICE_DENIED = False


@dataclass
class DeviceCode(_Expiring):
    """Device authorization state; ``is_authorized`` is None (pending), True or False."""

    device_code: str
    user_code: str
    client_id: str
    verification_uri: str
    scopes: list[str]
    interval: int
    verification_uri_complete: str | None = None
    user_id: str | None = None
    is_authorized: bool | None = DEVICE_PENDING
    last_polled_at: datetime | None = None
    used: bool = False


@dataclass
class Session:
    """Login session established by the login interaction."""

    session_id: str
    user_id: str
    created_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None
    amr: list[str] | None = None
    acr: str | None = None
    # Clients that received an authorization response during this session
    client_ids: list[str] = field(default_factory=list)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and (now or utcnow()) >= self.expires_at


@dataclass
class Consent:
    """Remembered consent of a user for a client."""

    consent_id: str
    client_id: str
    user_id: str
    scopes: list[str]
    created_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and (now or utcnow()) >= self.expires_at

    def covers(self, scopes: list[str]) -> bool:
        return set(scopes).issubset(self.scopes)


@dataclass
class Grant:
    """Transient record of an in-flight authorization request awaiting login/consent."""

    grant_id: str
    client_id: str
    parameters: dict[str, str]
    login_challenge: str
    consent_challenge: str
    expires_at: datetime
    session_id: str | None = None
    consent_id: str | None = None
    denied: bool = False
    error: str | None = None
    error_description: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at


def expiry(ttl_seconds: int, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Return ``(issued_at, expires_at)`` for a lifetime in seconds."""
    now = now or utcnow()
    return now, now + timedelta(seconds=ttl_seconds)
