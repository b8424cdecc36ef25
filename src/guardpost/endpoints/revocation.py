# Token revocation endpoint (RFC 7009).
# Created: 2026-03-09

from __future__ import annotations

import logging

from guardpost.client_authentication import ClientAuthenticator
from guardpost.context import ServerContext
from guardpost.endpoints.base import Endpoint, TokenLookup
from guardpost.exceptions import InvalidRequestError, UnsupportedTokenTypeError
from guardpost.http import HttpRequest, HttpResponse
from guardpost.models import RefreshToken

logger = logging.getLogger(__name__)


class RevocationEndpoint(Endpoint):
    name = "revocation"
    path = "/oauth/revoke"
    methods = ("POST",)

    def __init__(self, context: ServerContext, authenticator: ClientAuthenticator, path: str | None = None):
        super().__init__(context, path)
        self.authenticator = authenticator
        self.lookup = TokenLookup(context, context.settings.enable_refresh_token_revocation)

    def handle(self, request: HttpRequest) -> HttpResponse:
        client = self.authenticator.authenticate(request)
        handle = request.form.get("token")
        if not handle:
            raise InvalidRequestError("Missing parameter: token")
        hint = request.form.get("token_type_hint")
        if hint == "refresh_token" and not self.settings.enable_refresh_token_revocation:
            raise UnsupportedTokenTypeError("Refresh tokens cannot be revoked")

        token = self.lookup.find(handle, hint)
        # Unknown tokens and tokens of other clients are answered the same way
        if token is not None and token.client_id == client.client_id and not token.is_revoked:
            self.revoke(token)
        return HttpResponse(status_code=200, headers={"Cache-Control": "no-store"})

    def revoke(self, token) -> None:
        services = self.services
        if isinstance(token, RefreshToken):
            services.refresh_tokens.revoke(token)
            linked = services.access_tokens.find_one(token.access_token or "")
            if linked is not None:
                services.access_tokens.revoke(linked)
            kind = "refresh_token"
        else:
            services.access_tokens.revoke(token)
            kind = "access_token"
        self.context.audit.log_token_event("token_revoked", token.client_id, status="revoked", token_type=kind)
