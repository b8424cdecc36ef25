"""Service protocols consumed by the engine.

Created: 2026-03-03
Defines the persistence contract for clients, users, codes and tokens.

The engine performs no locking of its own. Every state transition that must
happen at most once (redeeming a code, rotating a refresh token, consuming a
device code) is a single call on one of these services, and the backend is
expected to implement it as a conditional update:
- MemoryStore (guardpost.storage): in-process, lock-guarded (default)
- Future: SQL ``UPDATE ... WHERE used = false``, Redis ``SET NX``, etc.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from guardpost.models import (
    AccessToken,
    AuthorizationCode,
    Client,
    Consent,
    DeviceCode,
    Grant,
    RefreshToken,
    Session,
    User,
)


@runtime_checkable
class ClientService(Protocol):
    def find_one(self, client_id: str) -> Client | None:
        """Get a client by its identifier."""
        ...

    def create(self, metadata: dict[str, Any]) -> Client:
        """Register a new client from validated metadata (dynamic registration)."""
        ...

    def update(self, client: Client, metadata: dict[str, Any]) -> Client:
        """Replace the metadata of an existing client."""
        ...

    def delete(self, client: Client) -> None:
        """Remove a client."""
        ...


@runtime_checkable
class UserService(Protocol):
    def find_one(self, user_id: str) -> User | None:
        """Get a user by its identifier."""
        ...

    def authenticate(self, username: str, password: str) -> User | None:
        """Check resource owner credentials. Returns None on failure."""
        ...

    def get_userinfo(self, user: User, scopes: list[str], claims: list[str] | None = None) -> dict[str, Any]:
        """Return the claims of *user* released for *scopes* (without ``sub``).

        *claims* names extra claims asked for with the claims request parameter.
        """
        ...


@runtime_checkable
class AuthorizationCodeService(Protocol):
    def create(
        self,
        parameters: dict[str, str],
        client: Client,
        user: User,
        scopes: list[str],
        session: Session | None = None,
    ) -> AuthorizationCode:
        ...

    def find_one(self, code: str) -> AuthorizationCode | None:
        ...

    def consume(self, code: AuthorizationCode) -> bool:
        """Atomically mark *code* used. True for exactly one caller, False afterwards."""
        ...

    def revoke(self, code: AuthorizationCode) -> None:
        ...


@runtime_checkable
class AccessTokenService(Protocol):
    def create(
        self,
        scopes: list[str],
        client: Client | None,
        user: User | None,
        grant_type: str,
        authorization_code: str | None = None,
        userinfo_claims: list[str] | None = None,
    ) -> AccessToken:
        ...

    def find_one(self, handle: str) -> AccessToken | None:
        ...

    def revoke(self, token: AccessToken) -> None:
        ...

    def revoke_by_authorization_code(self, code: str) -> int:
        """Revoke every access token issued from *code*. Returns how many were revoked."""
        ...


@runtime_checkable
class RefreshTokenService(Protocol):
    def create(
        self,
        scopes: list[str],
        client: Client,
        user: User | None,
        access_token: AccessToken | None,
        authorization_code: str | None = None,
    ) -> RefreshToken:
        ...

    def find_one(self, handle: str) -> RefreshToken | None:
        ...

    def revoke(self, token: RefreshToken) -> None:
        ...

    def rotate(self, token: RefreshToken, access_token: AccessToken | None = None) -> RefreshToken | None:
        """Atomically revoke *token* and issue its successor in the same family.

        Returns None when *token* was already revoked or rotated by another caller.
        """
        ...

    def link(self, token: RefreshToken, access_token: AccessToken) -> bool:
        """Atomically point *token* at *access_token* (refresh without rotation).

        Returns False when *token* was revoked or rotated in the meantime.
        """
        ...

    def revoke_family(self, family_id: str) -> int:
        """Revoke every refresh token of a rotation family (and their access tokens)."""
        ...

    def revoke_by_authorization_code(self, code: str) -> int:
        ...


@runtime_checkable
class DeviceCodeService(Protocol):
    def create(self, scopes: list[str], client: Client) -> DeviceCode:
        ...

    def find_one(self, device_code: str) -> DeviceCode | None:
        ...

    def find_by_user_code(self, user_code: str) -> DeviceCode | None:
        ...

    def poll(self, device_code: DeviceCode, interval: int) -> bool:
        """Record a poll. True when the previous poll was less than *interval* seconds ago."""
        ...

    def decide(self, device_code: DeviceCode, user: User | None, authorized: bool) -> None:
        """Record the end user's decision (done by the interactive verification flow)."""
        ...

    def consume(self, device_code: DeviceCode) -> bool:
        """Atomically mark the device code used. True for exactly one caller."""
        ...


@runtime_checkable
class GrantService(Protocol):
    def create(self, parameters: dict[str, str], client: Client) -> Grant:
        ...

    def find_one(self, grant_id: str) -> Grant | None:
        ...

    def find_by_login_challenge(self, login_challenge: str) -> Grant | None:
        ...

    def find_by_consent_challenge(self, consent_challenge: str) -> Grant | None:
        ...

    def save(self, grant: Grant) -> None:
        ...

    def remove(self, grant: Grant) -> None:
        ...


@runtime_checkable
class SessionService(Protocol):
    def create(self, user: User, amr: list[str] | None = None, acr: str | None = None) -> Session:
        ...

    def find_one(self, session_id: str) -> Session | None:
        ...

    def save(self, session: Session) -> None:
        ...

    def remove(self, session: Session) -> None:
        ...


@runtime_checkable
class ConsentService(Protocol):
    def create(self, client: Client, user: User, scopes: list[str]) -> Consent:
        ...

    def find_one(self, client_id: str, user_id: str) -> Consent | None:
        ...

    def remove(self, consent: Consent) -> None:
        ...


@runtime_checkable
class ReplayCache(Protocol):
    def register(self, issuer: str, jti: str, expires_at: datetime) -> bool:
        """Remember *jti* of *issuer* until *expires_at*. False when it was already seen (replay)."""
        ...
