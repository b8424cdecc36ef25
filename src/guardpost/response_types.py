# Response types of the Authorization endpoint.
# Created: 2026-03-06
#
# code, token and id_token are primitives; hybrid response types are
# compositions of them, run in that order so the ID token can hash the code
# and access token issued before it.

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from guardpost.claims import parse_claims_request, requested_claims
from guardpost.context import ServerContext
from guardpost.exceptions import InvalidRequestError, ServerError
from guardpost.models import Client, Session, User
from guardpost.pkce import DEFAULT_METHOD
from guardpost.tokens import IdTokenContext, TokenIssuer

logger = logging.getLogger(__name__)

_ORDER = ("code", "token", "id_token")


def normalize_response_type(value: str | None) -> str:
    return " ".join(sorted((value or "").split()))


def claims_request(parameters: dict[str, str]) -> dict[str, Any] | None:
    value = parameters.get("claims")
    return parse_claims_request(value) if value else None


class ResponsePart(ABC):
    name: str = ""

    def __init__(self, context: ServerContext, issuer: TokenIssuer):
        self.context = context
        self.issuer = issuer

    def validate(self, parameters: dict[str, str], client: Client, scopes: list[str]) -> None:
        """Reject the request before any user interaction happens."""

    @abstractmethod
    def issue(
        self,
        parameters: dict[str, str],
        client: Client,
        user: User,
        scopes: list[str],
        session: Session | None,
        response: dict[str, Any],
    ) -> None:
        ...


class CodePart(ResponsePart):
    name = "code"

    def validate(self, parameters: dict[str, str], client: Client, scopes: list[str]) -> None:
        if self.context.services.authorization_codes is None:
            raise ServerError("Authorization codes are not available")
        if not parameters.get("code_challenge"):
            raise InvalidRequestError("Missing parameter: code_challenge")
        method = parameters.get("code_challenge_method") or DEFAULT_METHOD
        if method not in self.context.settings.pkce_methods:
            raise InvalidRequestError(f"Unsupported code_challenge_method: {method}")

    def issue(self, parameters, client, user, scopes, session, response) -> None:
        code_parameters = dict(parameters)
        code_parameters.setdefault("code_challenge_method", DEFAULT_METHOD)
        code = self.context.services.authorization_codes.create(code_parameters, client, user, scopes, session)
        response["code"] = code.code


class TokenPart(ResponsePart):
    name = "token"

    def issue(self, parameters, client, user, scopes, session, response) -> None:
        token = self.issuer.create_access_token(
            client, user, scopes, "implicit", userinfo_claims=requested_claims(claims_request(parameters), "userinfo")
        )
        response.update(self.issuer.token_response(token))


class IdTokenPart(ResponsePart):
    name = "id_token"

    def validate(self, parameters: dict[str, str], client: Client, scopes: list[str]) -> None:
        if "openid" not in scopes:
            raise InvalidRequestError("The id_token response type requires the openid scope")
        if not parameters.get("nonce"):
            raise InvalidRequestError("Missing parameter: nonce")

    def issue(self, parameters, client, user, scopes, session, response) -> None:
        id_context = IdTokenContext(
            nonce=parameters.get("nonce"),
            auth_time=session.created_at if session else None,
            acr=session.acr if session else None,
            amr=session.amr if session else None,
            access_token=response.get("access_token"),
            code=response.get("code"),
            session_id=session.session_id if session else None,
            claims=requested_claims(claims_request(parameters), "id_token"),
        )
        response["id_token"] = self.issuer.id_tokens.issue(client, user, scopes, id_context)


PARTS: dict[str, type[ResponsePart]] = {cls.name: cls for cls in (CodePart, TokenPart, IdTokenPart)}


class ResponseType:
    """A (possibly hybrid) response type composed of primitive parts."""

    def __init__(self, name: str, parts: list[ResponsePart]):
        self.name = name
        self.parts = parts

    @property
    def default_response_mode(self) -> str:
        return "query" if self.name == "code" else "fragment"

    @property
    def front_channel_tokens(self) -> bool:
        return any(part.name != "code" for part in self.parts)

    def validate(self, parameters: dict[str, str], client: Client, scopes: list[str]) -> None:
        for part in self.parts:
            part.validate(parameters, client, scopes)

    def create_authorization_response(
        self,
        parameters: dict[str, str],
        client: Client,
        user: User,
        scopes: list[str],
        session: Session | None = None,
    ) -> dict[str, Any]:
        response: dict[str, Any] = {}
        for part in self.parts:
            part.issue(parameters, client, user, scopes, session, response)
        response["state"] = parameters.get("state")
        return response


def build_response_types(context: ServerContext, issuer: TokenIssuer) -> dict[str, ResponseType]:
    """Registry of the enabled response types, keyed by normalized name."""
    registry: dict[str, ResponseType] = {}
    for name in context.settings.response_types:
        names = name.split()
        parts = [PARTS[part](context, issuer) for part in _ORDER if part in names]
        registry[normalize_response_type(name)] = ResponseType(normalize_response_type(name), parts)
    return registry
