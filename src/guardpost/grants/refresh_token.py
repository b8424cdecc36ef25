# refresh_token grant (RFC 6749 §6).
# Created: 2026-03-07
#
# With rotation enabled every use retires the presented handle. Presenting a
# retired handle again revokes its whole rotation family.

from __future__ import annotations

import logging
from typing import Any

from guardpost.audit import AuditSeverity
from guardpost.exceptions import InvalidGrantError, ServerError
from guardpost.grants.base import GrantType
from guardpost.models import Client, RefreshToken
from guardpost.scopes import check_scope_subset

logger = logging.getLogger(__name__)


class RefreshTokenGrant(GrantType):
    name = "refresh_token"

    def handle(self, parameters: dict[str, str], client: Client) -> dict[str, Any]:
        self.check_client(client)
        service = self.context.services.refresh_tokens
        if service is None:
            raise ServerError("Refresh tokens are not available")

        token = service.find_one(self.require(parameters, "refresh_token"))
        if token is None or token.client_id != client.client_id:
            raise InvalidGrantError("Invalid Refresh Token")
        if token.is_revoked:
            if token.replaced_by is not None:
                self.revoke_family(token, client)
            raise InvalidGrantError("Invalid Refresh Token")
        if not token.is_active():
            raise InvalidGrantError("Expired Refresh Token")

        scopes = check_scope_subset(parameters.get("scope"), token.scopes)
        user = self.load_user(token.user_id) if token.user_id else None

        previous_access = self.context.services.access_tokens.find_one(token.access_token or "")
        access_token = self.issuer.create_access_token(
            client,
            user,
            scopes,
            self.name,
            token.authorization_code,
            userinfo_claims=previous_access.userinfo_claims if previous_access else None,
        )

        refresh_token: RefreshToken | None = token
        if self.context.settings.enable_refresh_token_rotation:
            refresh_token = service.rotate(token, access_token)
            if refresh_token is None:
                # Rotated concurrently: the presented handle is stale
                self.context.services.access_tokens.revoke(access_token)
                self.revoke_family(token, client)
                raise InvalidGrantError("Invalid Refresh Token")
        elif not service.link(token, access_token):
            # Revoked while this request was in flight
            self.context.services.access_tokens.revoke(access_token)
            raise InvalidGrantError("Invalid Refresh Token")
        if previous_access is not None and not previous_access.is_revoked:
            self.context.services.access_tokens.revoke(previous_access)
        return self.issuer.token_response(access_token, refresh_token)

    def revoke_family(self, token: RefreshToken, client: Client) -> None:
        revoked = self.context.services.refresh_tokens.revoke_family(token.family_id or token.handle)
        logger.warning("Refresh token replay by client %s: revoked family (%d tokens)", client.client_id, revoked)
        self.context.audit.log_token_event(
            "refresh_token_reuse",
            client.client_id,
            grant_type=self.name,
            severity=AuditSeverity.ALERT,
            status="revoked",
            revoked_refresh_tokens=revoked,
        )
