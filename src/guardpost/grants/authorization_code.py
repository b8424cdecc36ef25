# authorization_code grant (RFC 6749 §4.1.3, RFC 7636 §4.6).
# Created: 2026-03-07
#
# Validation failures leave the code untouched. Only a successful redemption
# consumes it, through the service's atomic consume(). Presenting a consumed
# or revoked code again is treated as replay: every token issued from it is
# revoked.

from __future__ import annotations

import logging
from typing import Any

from guardpost.audit import AuditSeverity
from guardpost.claims import requested_claims
from guardpost.context import ServerContext
from guardpost.exceptions import InvalidGrantError, ServerError
from guardpost.grants.base import GrantType
from guardpost.models import AuthorizationCode, Client
from guardpost.pkce import build_pkce_registry, check_code_verifier
from guardpost.tokens import IdTokenContext, TokenIssuer

logger = logging.getLogger(__name__)


class AuthorizationCodeGrant(GrantType):
    name = "authorization_code"

    def __init__(self, context: ServerContext, issuer: TokenIssuer):
        super().__init__(context, issuer)
        self.pkce = build_pkce_registry(context.settings.pkce_methods)

    def handle(self, parameters: dict[str, str], client: Client) -> dict[str, Any]:
        self.check_client(client)
        codes = self.context.services.authorization_codes
        if codes is None:
            raise ServerError("Authorization codes are not available")

        value = self.require(parameters, "code")
        redirect_uri = self.require(parameters, "redirect_uri")

        code = codes.find_one(value)
        if code is None:
            raise InvalidGrantError("Invalid Authorization Code")
        if code.used or code.is_revoked:
            self.revoke_issued_tokens(code, client)
            raise InvalidGrantError("Authorization Code already used")
        if not code.is_active():
            raise InvalidGrantError("Expired Authorization Code")
        if code.client_id != client.client_id:
            raise InvalidGrantError("Mismatching Client Identifier")
        if code.redirect_uri != redirect_uri:
            raise InvalidGrantError("Mismatching Redirect URI")
        if code.code_challenge:
            check_code_verifier(
                self.pkce, parameters.get("code_verifier"), code.code_challenge, code.code_challenge_method
            )

        if not codes.consume(code):
            # Lost the race against a concurrent redemption
            self.revoke_issued_tokens(code, client)
            raise InvalidGrantError("Authorization Code already used")

        user = self.load_user(code.user_id)
        id_context = None
        if "openid" in code.scopes:
            id_context = IdTokenContext(
                nonce=code.nonce,
                auth_time=code.auth_time,
                acr=code.acr,
                amr=code.amr,
                session_id=code.session_id,
                claims=requested_claims(code.claims_request, "id_token"),
            )
        return self.issuer.issue(
            client,
            user,
            code.scopes,
            self.name,
            authorization_code=code.code,
            id_context=id_context,
            userinfo_claims=requested_claims(code.claims_request, "userinfo"),
        )

    def revoke_issued_tokens(self, code: AuthorizationCode, client: Client) -> None:
        services = self.context.services
        services.authorization_codes.revoke(code)
        access = services.access_tokens.revoke_by_authorization_code(code.code)
        refresh = 0
        if services.refresh_tokens is not None:
            refresh = services.refresh_tokens.revoke_by_authorization_code(code.code)
        logger.warning(
            "Authorization code reuse by client %s: revoked %d access and %d refresh tokens",
            client.client_id,
            access,
            refresh,
        )
        self.context.audit.log_token_event(
            "code_reuse",
            client.client_id,
            grant_type=self.name,
            severity=AuditSeverity.ALERT,
            status="revoked",
            revoked_access_tokens=access,
            revoked_refresh_tokens=refresh,
        )
