# JWT bearer assertion grant (RFC 7523 §2.1).
# Created: 2026-03-08

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from guardpost.audit import AuditSeverity
from guardpost.context import ServerContext
from guardpost.exceptions import InvalidGrantError
from guardpost.grants.base import GrantType
from guardpost.jose import JoseError, resolve_client_key
from guardpost.models import Client
from guardpost.scopes import get_allowed_scopes
from guardpost.tokens import TokenIssuer

logger = logging.getLogger(__name__)


class JwtBearerGrant(GrantType):
    name = "urn:ietf:params:oauth:grant-type:jwt-bearer"

    def __init__(self, context: ServerContext, issuer: TokenIssuer, audience: Iterable[str] = ()):
        super().__init__(context, issuer)
        self.audience = list(audience) or [context.settings.issuer]

    def handle(self, parameters: dict[str, str], client: Client) -> dict[str, Any]:
        self.check_client(client)
        assertion = self.require(parameters, "assertion")
        scopes = get_allowed_scopes(client, parameters.get("scope"))

        try:
            header, _ = self.context.jose.decode_unverified(assertion)
        except JoseError as exc:
            raise InvalidGrantError("Malformed assertion") from exc
        alg = header.get("alg")
        if not alg or alg == "none" or alg not in self.context.settings.client_authentication_signature_algorithms:
            raise InvalidGrantError(f"Unsupported assertion algorithm: {alg}")

        try:
            key = resolve_client_key(client, alg, header.get("kid"), self.context.jwks_fetcher)
            claims = self.context.jose.verify(
                assertion,
                key,
                [alg],
                audience=self.audience,
                issuer=client.client_id,
                required_claims=("iss", "sub", "aud", "exp", "jti"),
            )
        except JoseError as exc:
            logger.debug("JWT bearer assertion rejected for %s: %s", client.client_id, exc)
            raise InvalidGrantError("Invalid assertion") from exc

        replay_cache = self.context.services.replay_cache
        if replay_cache is None:
            raise InvalidGrantError("Assertions are not supported")
        expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=UTC)
        if not replay_cache.register(client.client_id, str(claims["jti"]), expires_at):
            self.context.audit.log_token_event(
                "assertion_replay",
                client.client_id,
                grant_type=self.name,
                severity=AuditSeverity.ALERT,
                status="blocked",
            )
            raise InvalidGrantError("Assertion has already been used")

        user = self.load_user(str(claims["sub"]))
        return self.issuer.issue(client, user, scopes, self.name, include_refresh_token=False)
