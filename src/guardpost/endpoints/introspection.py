# Token introspection endpoint (RFC 7662).
# Created: 2026-03-09

from __future__ import annotations

from typing import Any

from guardpost.client_authentication import ClientAuthenticator
from guardpost.context import ServerContext
from guardpost.endpoints.base import Endpoint, TokenLookup
from guardpost.exceptions import InvalidRequestError
from guardpost.http import HttpRequest, HttpResponse
from guardpost.models import AccessToken, RefreshToken, timestamp
from guardpost.scopes import join_scope
from guardpost.tokens import subject_identifier


class IntrospectionEndpoint(Endpoint):
    name = "introspection"
    path = "/oauth/introspect"
    methods = ("POST",)

    def __init__(self, context: ServerContext, authenticator: ClientAuthenticator, path: str | None = None):
        super().__init__(context, path)
        self.authenticator = authenticator
        self.lookup = TokenLookup(context, context.settings.enable_refresh_token_introspection)

    def handle(self, request: HttpRequest) -> HttpResponse:
        client = self.authenticator.authenticate(request)
        handle = request.form.get("token")
        if not handle:
            raise InvalidRequestError("Missing parameter: token")

        token = self.lookup.find(handle, request.form.get("token_type_hint"))
        if token is None or token.client_id != client.client_id or not token.is_active():
            return self.json_response({"active": False})
        return self.json_response(self.describe(token))

    def describe(self, token: AccessToken | RefreshToken) -> dict[str, Any]:
        body: dict[str, Any] = {
            "active": True,
            "scope": join_scope(token.scopes),
            "client_id": token.client_id,
            "token_type": "refresh_token" if isinstance(token, RefreshToken) else token.token_type,
            "exp": timestamp(token.expires_at),
            "iat": timestamp(token.issued_at),
            "nbf": timestamp(token.valid_after),
            "iss": self.settings.issuer,
            "aud": token.audience if isinstance(token, AccessToken) else [token.client_id],
        }
        if token.user_id is not None:
            user = self.services.users.find_one(token.user_id) if self.services.users else None
            client = self.services.clients.find_one(token.client_id) if token.client_id else None
            if user is not None:
                body["username"] = user.username
                if client is not None:
                    body["sub"] = subject_identifier(user, client, self.settings.secret_key)
            else:
                body["sub"] = token.user_id
        return {k: v for k, v in body.items() if v is not None}
