# In-memory implementations of the service protocols.
# Created: 2026-03-03
#
# One MemoryStore holds every record behind a single re-entrant lock; the
# Memory*Service classes are thin views over it. Issued access/refresh tokens
# can optionally be persisted to a JSON file so they survive restarts.
# Codes, grants, sessions and device codes stay in memory (short-lived).

from __future__ import annotations

import hmac
import json
import logging
import secrets
import threading
from dataclasses import asdict, fields, replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import bcrypt

from guardpost.config import Settings
from guardpost.models import (
    DEVICE_AUTHORIZED,
    DEVICE_DENIED,
    AccessToken,
    AuthorizationCode,
    Client,
    Consent,
    DeviceCode,
    Grant,
    RefreshToken,
    Session,
    User,
    expiry,
    utcnow,
)
from guardpost.scopes import claims_for_scopes

logger = logging.getLogger(__name__)

# Unambiguous alphabet for user codes (RFC 8628 §6.1)
USER_CODE_ALPHABET = "BCDFGHJKLMNPQRSTVWXZ"


BCRYPT_ROUNDS = 12


def _hash_password(password: str) -> str:
    # bcrypt only looks at the first 72 bytes
    return bcrypt.hashpw(password.encode("utf-8")[:72], bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def _verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8")[:72], password_hash.encode("utf-8"))


def _to_json(record: Any) -> dict[str, Any]:
    data = asdict(record)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
    return data


def _from_json(cls: type, data: dict[str, Any]) -> Any:
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        if isinstance(value, str) and f.name in ("issued_at", "valid_after", "expires_at"):
            value = datetime.fromisoformat(value)
        kwargs[f.name] = value
    return cls(**kwargs)


class MemoryStore:
    """Process-local record store.

    Auth codes, device codes, grants and sessions are in-memory only.
    Access and refresh tokens are persisted to *persist_path* when given.
    """

    def __init__(self, persist_path: Path | None = None):
        self.lock = threading.RLock()
        self.clients: dict[str, Client] = {}
        self.users: dict[str, User] = {}
        self.passwords: dict[str, str] = {}  # username → bcrypt hash
        self.codes: dict[str, AuthorizationCode] = {}
        self.access_tokens: dict[str, AccessToken] = {}
        self.refresh_tokens: dict[str, RefreshToken] = {}
        self.device_codes: dict[str, DeviceCode] = {}
        self.grants: dict[str, Grant] = {}
        self.sessions: dict[str, Session] = {}
        self.consents: dict[tuple[str, str], Consent] = {}
        self.seen_jtis: dict[tuple[str, str], datetime] = {}
        self._persist_path = persist_path
        self._load_tokens()

    def _load_tokens(self) -> None:
        """Load tokens from disk on startup."""
        path = self._persist_path
        if path is None or not path.exists():
            return
        try:
            data = json.loads(path.read_text())
            for entry in data.get("access_tokens", []):
                token = _from_json(AccessToken, entry)
                self.access_tokens[token.handle] = token
            for entry in data.get("refresh_tokens", []):
                token = _from_json(RefreshToken, entry)
                self.refresh_tokens[token.handle] = token
            logger.debug(
                "Loaded %d access and %d refresh tokens from %s",
                len(self.access_tokens),
                len(self.refresh_tokens),
                path,
            )
        except (json.JSONDecodeError, OSError, KeyError, TypeError) as exc:
            logger.warning("Failed to load tokens from %s: %s", path, exc)

    def save_tokens(self) -> None:
        """Persist tokens to disk (no-op without a persist path)."""
        path = self._persist_path
        if path is None:
            return
        with self.lock:
            data = {
                "access_tokens": [_to_json(t) for t in self.access_tokens.values()],
                "refresh_tokens": [_to_json(t) for t in self.refresh_tokens.values()],
            }
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2))
        try:
            path.chmod(0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", path)

    def add_client(self, client: Client) -> Client:
        with self.lock:
            self.clients[client.client_id] = client
        return client

    def add_user(self, user: User, password: str | None = None) -> User:
        with self.lock:
            self.users[user.user_id] = user
            if password is not None:
                self.passwords[user.username or user.user_id] = _hash_password(password)
        return user

    def cleanup_expired(self) -> None:
        """Drop expired or used short-lived records."""
        now = utcnow()
        with self.lock:
            for key in [k for k, v in self.codes.items() if v.is_expired(now)]:
                del self.codes[key]
            for key in [k for k, v in self.device_codes.items() if v.is_expired(now) or v.used]:
                del self.device_codes[key]
            for key in [k for k, v in self.grants.items() if v.is_expired(now)]:
                del self.grants[key]
            for key in [k for k, v in self.sessions.items() if v.is_expired(now)]:
                del self.sessions[key]
            for key in [k for k, v in self.seen_jtis.items() if v <= now]:
                del self.seen_jtis[key]
            expired = [k for k, v in self.access_tokens.items() if v.is_expired(now)]
            for key in expired:
                del self.access_tokens[key]
            expired_refresh = [k for k, v in self.refresh_tokens.items() if v.is_expired(now)]
            for key in expired_refresh:
                del self.refresh_tokens[key]
        if expired or expired_refresh:
            self.save_tokens()


class MemoryClientService:
    def __init__(self, store: MemoryStore):
        self.store = store

    def find_one(self, client_id: str) -> Client | None:
        return self.store.clients.get(client_id)

    def create(self, metadata: dict[str, Any]) -> Client:
        now = utcnow()
        client = Client(
            client_id=secrets.token_urlsafe(16),
            registration_access_token=secrets.token_urlsafe(32),
            created_at=now,
            **metadata,
        )
        if client.authentication_method in ("client_secret_basic", "client_secret_post", "client_secret_jwt"):
            client.client_secret = secrets.token_urlsafe(32)
            client.client_secret_issued_at = now
        return self.store.add_client(client)

    def update(self, client: Client, metadata: dict[str, Any]) -> Client:
        updated = replace(client, **metadata)
        if updated.authentication_method == "none":
            updated.client_secret = None
        elif updated.client_secret is None and updated.authentication_method != "private_key_jwt":
            updated.client_secret = secrets.token_urlsafe(32)
            updated.client_secret_issued_at = utcnow()
        return self.store.add_client(updated)

    def delete(self, client: Client) -> None:
        with self.store.lock:
            self.store.clients.pop(client.client_id, None)


class MemoryUserService:
    def __init__(self, store: MemoryStore):
        self.store = store

    def find_one(self, user_id: str) -> User | None:
        return self.store.users.get(user_id)

    def authenticate(self, username: str, password: str) -> User | None:
        expected = self.store.passwords.get(username)
        if expected is None:
            return None
        if not _verify_password(password, expected):
            return None
        for user in self.store.users.values():
            if (user.username or user.user_id) == username:
                return user
        return None

    def get_userinfo(self, user: User, scopes: list[str], claims: list[str] | None = None) -> dict[str, Any]:
        allowed = claims_for_scopes(scopes) | set(claims or ())
        return {k: v for k, v in user.claims.items() if k in allowed}


class MemoryAuthorizationCodeService:
    def __init__(self, store: MemoryStore, settings: Settings):
        self.store = store
        self.settings = settings

    def create(
        self,
        parameters: dict[str, str],
        client: Client,
        user: User,
        scopes: list[str],
        session: Session | None = None,
    ) -> AuthorizationCode:
        issued_at, expires_at = expiry(self.settings.authorization_code_ttl)
        code = AuthorizationCode(
            code=secrets.token_urlsafe(32),
            client_id=client.client_id,
            user_id=user.user_id,
            redirect_uri=parameters["redirect_uri"],
            scopes=list(scopes),
            code_challenge=parameters.get("code_challenge"),
            code_challenge_method=parameters.get("code_challenge_method"),
            nonce=parameters.get("nonce"),
            auth_time=session.created_at if session else None,
            acr=session.acr if session else None,
            amr=session.amr if session else None,
            session_id=session.session_id if session else None,
            claims_request=json.loads(parameters["claims"]) if parameters.get("claims") else None,
            issued_at=issued_at,
            valid_after=issued_at,
            expires_at=expires_at,
        )
        with self.store.lock:
            self.store.codes[code.code] = code
        return code

    def find_one(self, code: str) -> AuthorizationCode | None:
        return self.store.codes.get(code)

    def consume(self, code: AuthorizationCode) -> bool:
        with self.store.lock:
            stored = self.store.codes.get(code.code)
            if stored is None or stored.used or stored.is_revoked:
                return False
            stored.used = True
            stored.is_revoked = True
            code.used = True
            code.is_revoked = True
            return True

    def revoke(self, code: AuthorizationCode) -> None:
        with self.store.lock:
            code.is_revoked = True
            stored = self.store.codes.get(code.code)
            if stored is not None:
                stored.is_revoked = True


class MemoryAccessTokenService:
    def __init__(self, store: MemoryStore, settings: Settings):
        self.store = store
        self.settings = settings

    def create(
        self,
        scopes: list[str],
        client: Client | None,
        user: User | None,
        grant_type: str,
        authorization_code: str | None = None,
        userinfo_claims: list[str] | None = None,
    ) -> AccessToken:
        issued_at, expires_at = expiry(self.settings.access_token_ttl)
        token = AccessToken(
            handle=f"gpat_{secrets.token_urlsafe(32)}",
            client_id=client.client_id if client else None,
            user_id=user.user_id if user else None,
            scopes=list(scopes),
            grant_type=grant_type,
            audience=[client.client_id] if client else [],
            authorization_code=authorization_code,
            userinfo_claims=userinfo_claims,
            issued_at=issued_at,
            valid_after=issued_at,
            expires_at=expires_at,
        )
        with self.store.lock:
            self.store.access_tokens[token.handle] = token
        self.store.save_tokens()
        return token

    def find_one(self, handle: str) -> AccessToken | None:
        return self.store.access_tokens.get(handle)

    def revoke(self, token: AccessToken) -> None:
        with self.store.lock:
            token.is_revoked = True
            stored = self.store.access_tokens.get(token.handle)
            if stored is not None:
                stored.is_revoked = True
        self.store.save_tokens()

    def revoke_by_authorization_code(self, code: str) -> int:
        with self.store.lock:
            revoked = 0
            for token in self.store.access_tokens.values():
                if token.authorization_code == code and not token.is_revoked:
                    token.is_revoked = True
                    revoked += 1
        if revoked:
            self.store.save_tokens()
        return revoked


class MemoryRefreshTokenService:
    def __init__(self, store: MemoryStore, settings: Settings):
        self.store = store
        self.settings = settings

    def create(
        self,
        scopes: list[str],
        client: Client,
        user: User | None,
        access_token: AccessToken | None,
        authorization_code: str | None = None,
    ) -> RefreshToken:
        token = self._new_token(
            scopes=list(scopes),
            client_id=client.client_id,
            user_id=user.user_id if user else None,
            access_token=access_token.handle if access_token else None,
            authorization_code=authorization_code,
            family_id=None,
        )
        with self.store.lock:
            self.store.refresh_tokens[token.handle] = token
        self.store.save_tokens()
        return token

    def _new_token(self, *, family_id: str | None, **kwargs: Any) -> RefreshToken:
        issued_at, expires_at = expiry(self.settings.refresh_token_ttl)
        handle = f"gprt_{secrets.token_urlsafe(32)}"
        return RefreshToken(
            handle=handle,
            family_id=family_id or handle,
            issued_at=issued_at,
            valid_after=issued_at,
            expires_at=expires_at,
            **kwargs,
        )

    def find_one(self, handle: str) -> RefreshToken | None:
        return self.store.refresh_tokens.get(handle)

    def revoke(self, token: RefreshToken) -> None:
        with self.store.lock:
            token.is_revoked = True
            stored = self.store.refresh_tokens.get(token.handle)
            if stored is not None:
                stored.is_revoked = True
        self.store.save_tokens()

    def rotate(self, token: RefreshToken, access_token: AccessToken | None = None) -> RefreshToken | None:
        with self.store.lock:
            stored = self.store.refresh_tokens.get(token.handle)
            if stored is None or stored.is_revoked or stored.replaced_by is not None:
                return None
            successor = self._new_token(
                scopes=list(stored.scopes),
                client_id=stored.client_id,
                user_id=stored.user_id,
                access_token=access_token.handle if access_token else stored.access_token,
                authorization_code=stored.authorization_code,
                family_id=stored.family_id,
            )
            # Rotation keeps the original absolute lifetime of the family
            successor.expires_at = min(successor.expires_at, stored.expires_at)
            stored.is_revoked = True
            stored.replaced_by = successor.handle
            token.is_revoked = True
            token.replaced_by = successor.handle
            self.store.refresh_tokens[successor.handle] = successor
        self.store.save_tokens()
        return successor

    def link(self, token: RefreshToken, access_token: AccessToken) -> bool:
        with self.store.lock:
            stored = self.store.refresh_tokens.get(token.handle)
            if stored is None or stored.is_revoked or stored.replaced_by is not None:
                return False
            stored.access_token = access_token.handle
            token.access_token = access_token.handle
        self.store.save_tokens()
        return True

    def revoke_family(self, family_id: str) -> int:
        with self.store.lock:
            revoked = 0
            for token in self.store.refresh_tokens.values():
                if token.family_id != family_id:
                    continue
                if not token.is_revoked:
                    token.is_revoked = True
                    revoked += 1
                linked = self.store.access_tokens.get(token.access_token or "")
                if linked is not None:
                    linked.is_revoked = True
        self.store.save_tokens()
        return revoked

    def revoke_by_authorization_code(self, code: str) -> int:
        with self.store.lock:
            revoked = 0
            for token in self.store.refresh_tokens.values():
                if token.authorization_code == code and not token.is_revoked:
                    token.is_revoked = True
                    revoked += 1
        if revoked:
            self.store.save_tokens()
        return revoked


class MemoryDeviceCodeService:
    def __init__(self, store: MemoryStore, settings: Settings):
        self.store = store
        self.settings = settings

    def _user_code(self) -> str:
        length = self.settings.user_code_length
        raw = "".join(secrets.choice(USER_CODE_ALPHABET) for _ in range(length))
        half = length // 2
        return f"{raw[:half]}-{raw[half:]}" if length >= 6 else raw

    def create(self, scopes: list[str], client: Client) -> DeviceCode:
        issued_at, expires_at = expiry(self.settings.device_code_ttl)
        verification_uri = self.settings.url_for(self.settings.device_verification_path)
        with self.store.lock:
            user_code = self._user_code()
            while self.find_by_user_code(user_code) is not None:
                user_code = self._user_code()
            device_code = DeviceCode(
                device_code=secrets.token_urlsafe(32),
                user_code=user_code,
                client_id=client.client_id,
                verification_uri=verification_uri,
                verification_uri_complete=f"{verification_uri}?user_code={user_code}",
                scopes=list(scopes),
                interval=self.settings.device_polling_interval,
                issued_at=issued_at,
                valid_after=issued_at,
                expires_at=expires_at,
            )
            self.store.device_codes[device_code.device_code] = device_code
        return device_code

    def find_one(self, device_code: str) -> DeviceCode | None:
        return self.store.device_codes.get(device_code)

    def find_by_user_code(self, user_code: str) -> DeviceCode | None:
        normalized = user_code.replace("-", "").upper()
        for device_code in self.store.device_codes.values():
            if device_code.user_code.replace("-", "") == normalized:
                return device_code
        return None

    def poll(self, device_code: DeviceCode, interval: int) -> bool:
        now = utcnow()
        with self.store.lock:
            last = device_code.last_polled_at
            device_code.last_polled_at = now
            return last is not None and now - last < timedelta(seconds=interval)

    def decide(self, device_code: DeviceCode, user: User | None, authorized: bool) -> None:
        with self.store.lock:
            device_code.user_id = user.user_id if user else None
            device_code.is_authorized = DEVICE_AUTHORIZED if authorized else DEVICE_DENIED

    def consume(self, device_code: DeviceCode) -> bool:
        with self.store.lock:
            if device_code.used:
                return False
            device_code.used = True
            device_code.is_revoked = True
            return True


class MemoryGrantService:
    def __init__(self, store: MemoryStore, settings: Settings):
        self.store = store
        self.settings = settings

    def create(self, parameters: dict[str, str], client: Client) -> Grant:
        _, expires_at = expiry(self.settings.grant_ttl)
        grant = Grant(
            grant_id=secrets.token_urlsafe(16),
            client_id=client.client_id,
            parameters=dict(parameters),
            login_challenge=secrets.token_urlsafe(24),
            consent_challenge=secrets.token_urlsafe(24),
            expires_at=expires_at,
        )
        self.save(grant)
        return grant

    def find_one(self, grant_id: str) -> Grant | None:
        return self.store.grants.get(grant_id)

    def find_by_login_challenge(self, login_challenge: str) -> Grant | None:
        for grant in self.store.grants.values():
            if hmac.compare_digest(grant.login_challenge, login_challenge):
                return grant
        return None

    def find_by_consent_challenge(self, consent_challenge: str) -> Grant | None:
        for grant in self.store.grants.values():
            if hmac.compare_digest(grant.consent_challenge, consent_challenge):
                return grant
        return None

    def save(self, grant: Grant) -> None:
        with self.store.lock:
            self.store.grants[grant.grant_id] = grant

    def remove(self, grant: Grant) -> None:
        with self.store.lock:
            self.store.grants.pop(grant.grant_id, None)


class MemorySessionService:
    def __init__(self, store: MemoryStore, settings: Settings):
        self.store = store
        self.settings = settings

    def create(self, user: User, amr: list[str] | None = None, acr: str | None = None) -> Session:
        created_at, expires_at = expiry(self.settings.session_ttl)
        session = Session(
            session_id=secrets.token_urlsafe(24),
            user_id=user.user_id,
            created_at=created_at,
            expires_at=expires_at,
            amr=amr,
            acr=acr,
        )
        with self.store.lock:
            self.store.sessions[session.session_id] = session
        return session

    def find_one(self, session_id: str) -> Session | None:
        return self.store.sessions.get(session_id)

    def save(self, session: Session) -> None:
        with self.store.lock:
            self.store.sessions[session.session_id] = session

    def remove(self, session: Session) -> None:
        with self.store.lock:
            self.store.sessions.pop(session.session_id, None)


class MemoryConsentService:
    def __init__(self, store: MemoryStore, settings: Settings):
        self.store = store
        self.settings = settings

    def create(self, client: Client, user: User, scopes: list[str]) -> Consent:
        created_at, expires_at = expiry(self.settings.consent_ttl)
        key = (client.client_id, user.user_id)
        with self.store.lock:
            previous = self.store.consents.get(key)
            merged = sorted(set(scopes) | set(previous.scopes if previous else []))
            consent = Consent(
                consent_id=secrets.token_urlsafe(16),
                client_id=client.client_id,
                user_id=user.user_id,
                scopes=merged,
                created_at=created_at,
                expires_at=expires_at,
            )
            self.store.consents[key] = consent
        return consent

    def find_one(self, client_id: str, user_id: str) -> Consent | None:
        return self.store.consents.get((client_id, user_id))

    def remove(self, consent: Consent) -> None:
        with self.store.lock:
            self.store.consents.pop((consent.client_id, consent.user_id), None)


class MemoryReplayCache:
    def __init__(self, store: MemoryStore):
        self.store = store

    def register(self, issuer: str, jti: str, expires_at: datetime) -> bool:
        now = datetime.now(UTC)
        key = (issuer, jti)
        with self.store.lock:
            seen_until = self.store.seen_jtis.get(key)
            if seen_until is not None and seen_until > now:
                return False
            self.store.seen_jtis[key] = expires_at
            return True
