# Explicit wiring passed to every endpoint and strategy.
# Created: 2026-03-04

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from guardpost.audit import AuditLogger
from guardpost.config import Settings
from guardpost.jose import JoseBackend, JwksFetcher, KeySet, PyJWTBackend
from guardpost.protocols import (
    AccessTokenService,
    AuthorizationCodeService,
    ClientService,
    ConsentService,
    DeviceCodeService,
    GrantService,
    RefreshTokenService,
    ReplayCache,
    SessionService,
    UserService,
)
from guardpost.storage import (
    MemoryAccessTokenService,
    MemoryAuthorizationCodeService,
    MemoryClientService,
    MemoryConsentService,
    MemoryDeviceCodeService,
    MemoryGrantService,
    MemoryRefreshTokenService,
    MemoryReplayCache,
    MemorySessionService,
    MemoryStore,
    MemoryUserService,
)


@dataclass
class Services:
    """Persistence collaborators. Optional services disable the features that need them."""

    clients: ClientService
    access_tokens: AccessTokenService
    users: UserService | None = None
    authorization_codes: AuthorizationCodeService | None = None
    refresh_tokens: RefreshTokenService | None = None
    device_codes: DeviceCodeService | None = None
    grants: GrantService | None = None
    sessions: SessionService | None = None
    consents: ConsentService | None = None
    replay_cache: ReplayCache | None = None

    @classmethod
    def in_memory(cls, settings: Settings, store: MemoryStore | None = None) -> Services:
        store = store or MemoryStore()
        return cls(
            clients=MemoryClientService(store),
            access_tokens=MemoryAccessTokenService(store, settings),
            users=MemoryUserService(store),
            authorization_codes=MemoryAuthorizationCodeService(store, settings),
            refresh_tokens=MemoryRefreshTokenService(store, settings),
            device_codes=MemoryDeviceCodeService(store, settings),
            grants=MemoryGrantService(store, settings),
            sessions=MemorySessionService(store, settings),
            consents=MemoryConsentService(store, settings),
            replay_cache=MemoryReplayCache(store),
        )


@dataclass
class ServerContext:
    settings: Settings
    services: Services
    keys: KeySet
    jose: JoseBackend = field(default_factory=PyJWTBackend)
    audit: AuditLogger = field(default_factory=AuditLogger)
    jwks_fetcher: JwksFetcher = field(default_factory=JwksFetcher)

    @classmethod
    def create(
        cls,
        settings: Settings,
        services: Services | None = None,
        keys: KeySet | None = None,
        persist_path: Path | None = None,
    ) -> ServerContext:
        """Build a context, defaulting to in-memory services and the configured keys."""
        if services is None:
            services = Services.in_memory(settings, MemoryStore(persist_path))
        if keys is None:
            algorithms = [alg for alg in settings.id_token_signature_algorithms if not alg.startswith("HS")]
            if settings.jwks_path is not None:
                keys = KeySet.load(settings.jwks_path, algorithms)
            else:
                keys = KeySet.generate(algorithms)
        return cls(
            settings=settings,
            services=services,
            keys=keys,
            audit=AuditLogger(settings.audit_log_path),
        )
