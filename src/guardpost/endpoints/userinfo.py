# Userinfo endpoint (OIDC Core §5.3).
# Created: 2026-03-10

from __future__ import annotations

from datetime import timedelta

from guardpost.client_authorization import bearer_challenge, extract_bearer_token
from guardpost.endpoints.base import NO_STORE, Endpoint
from guardpost.exceptions import InsufficientScopeError, InvalidTokenError, ServerError
from guardpost.http import HttpRequest, HttpResponse
from guardpost.models import timestamp, utcnow
from guardpost.tokens import sign_for_client, subject_identifier


def _invalid_token(description: str) -> InvalidTokenError:
    return InvalidTokenError(
        description, headers={"WWW-Authenticate": bearer_challenge("invalid_token", description)}
    )


class UserinfoEndpoint(Endpoint):
    name = "userinfo"
    path = "/oauth/userinfo"
    methods = ("GET", "POST")

    def handle(self, request: HttpRequest) -> HttpResponse:
        users = self.services.users
        if users is None:
            raise ServerError("User information is not available")

        token = self.services.access_tokens.find_one(extract_bearer_token(request))
        if token is None or not token.is_active():
            raise _invalid_token("Invalid Access Token")
        if "openid" not in token.scopes:
            raise InsufficientScopeError(
                "The access token lacks the openid scope",
                headers={"WWW-Authenticate": bearer_challenge("insufficient_scope", scope="openid")},
            )
        if token.user_id is None or token.client_id is None:
            raise _invalid_token("The access token is not bound to an end user")
        user = users.find_one(token.user_id)
        client = self.services.clients.find_one(token.client_id)
        if user is None or client is None:
            raise _invalid_token("Invalid Access Token")

        claims = users.get_userinfo(user, token.scopes, token.userinfo_claims)
        claims["sub"] = subject_identifier(user, client, self.settings.secret_key)

        if client.userinfo_signed_response_alg:
            now = utcnow()
            claims.update(
                {
                    "iss": self.settings.issuer,
                    "aud": client.client_id,
                    "iat": timestamp(now),
                    "exp": timestamp(now + timedelta(seconds=self.settings.id_token_ttl)),
                }
            )
            signed = sign_for_client(self.context, claims, client, client.userinfo_signed_response_alg)
            return HttpResponse(headers=dict(NO_STORE)).jwt(signed)
        return self.json_response(claims)
