# Response modes: how authorization response parameters reach the client.
# Created: 2026-03-06
#
# One ResponseMode class, parameterized by a formatter (query / fragment /
# form_post) and a flag for JWT-secured delivery (JARM).

from __future__ import annotations

import html
import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from guardpost.context import ServerContext
from guardpost.exceptions import InvalidRequestError, ServerError
from guardpost.http import HttpResponse, append_to_url
from guardpost.jose import JoseError, resolve_client_key
from guardpost.models import Client, timestamp, utcnow
from guardpost.tokens import sign_for_client

logger = logging.getLogger(__name__)

Formatter = Callable[[str, dict[str, Any]], HttpResponse]

FORM_POST_TEMPLATE = """<!DOCTYPE html>
<html>
<head><title>Submit This Form</title></head>
<body onload="javascript:document.forms[0].submit()">
<form method="post" action="{action}">
{inputs}
<noscript><button type="submit">Continue</button></noscript>
</form>
</body>
</html>
"""


def query_formatter(redirect_uri: str, parameters: dict[str, Any]) -> HttpResponse:
    return HttpResponse().redirect(append_to_url(redirect_uri, parameters))


def fragment_formatter(redirect_uri: str, parameters: dict[str, Any]) -> HttpResponse:
    return HttpResponse().redirect(append_to_url(redirect_uri, parameters, fragment=True))


def form_post_formatter(redirect_uri: str, parameters: dict[str, Any]) -> HttpResponse:
    inputs = "\n".join(
        f'<input type="hidden" name="{html.escape(str(name))}" value="{html.escape(str(value))}"/>'
        for name, value in parameters.items()
    )
    body = FORM_POST_TEMPLATE.format(action=html.escape(redirect_uri), inputs=inputs)
    return HttpResponse(headers={"Cache-Control": "no-store"}).html(body)


FORMATTERS: dict[str, Formatter] = {
    "query": query_formatter,
    "fragment": fragment_formatter,
    "form_post": form_post_formatter,
}


class ResponseMode:
    def __init__(self, context: ServerContext, name: str, formatter: Formatter, secured: bool = False):
        self.context = context
        self.name = name
        self.formatter = formatter
        self.secured = secured

    @property
    def base_mode(self) -> str:
        return self.name.removesuffix(".jwt")

    def create_http_response(
        self, redirect_uri: str, parameters: dict[str, Any], client: Client | None = None
    ) -> HttpResponse:
        parameters = {k: v for k, v in parameters.items() if v is not None}
        if self.secured:
            if client is None:
                raise ServerError("JWT-secured responses need the client")
            parameters = {"response": self._wrap(parameters, client)}
        return self.formatter(redirect_uri, parameters)

    def _wrap(self, parameters: dict[str, Any], client: Client) -> str:
        settings = self.context.settings
        now = utcnow()
        claims = {
            "iss": settings.issuer,
            "aud": [client.client_id],
            "iat": timestamp(now),
            "exp": timestamp(now + timedelta(seconds=settings.authorization_response_ttl)),
            **parameters,
        }
        token = sign_for_client(self.context, claims, client, client.authorization_signed_response_alg or "RS256")
        if client.authorization_encrypted_response_alg:
            enc = client.authorization_encrypted_response_enc or "A128CBC-HS256"
            try:
                key = resolve_client_key(
                    client, client.authorization_encrypted_response_alg, None, self.context.jwks_fetcher
                )
                token = self.context.jose.encrypt(token, key, client.authorization_encrypted_response_alg, enc)
            except JoseError as exc:
                logger.error("Authorization response encryption failed for %s: %s", client.client_id, exc)
                raise ServerError("Could not encrypt the authorization response") from exc
        return token


def build_response_modes(context: ServerContext) -> dict[str, ResponseMode]:
    """Registry of the enabled response modes."""
    registry: dict[str, ResponseMode] = {}
    for name in context.settings.response_modes:
        if name == "jwt":
            # Resolved per request against the response type's default mode
            continue
        base, _, suffix = name.partition(".")
        registry[name] = ResponseMode(context, name, FORMATTERS[base], secured=suffix == "jwt")
    return registry


def resolve_response_mode(
    context: ServerContext,
    registry: dict[str, ResponseMode],
    requested: str | None,
    default_mode: str,
) -> ResponseMode:
    """Pick the response mode for a request (``jwt`` means the secured default mode)."""
    name = requested or default_mode
    if name == "jwt":
        if "jwt" not in context.settings.response_modes:
            raise InvalidRequestError("Unsupported response_mode: jwt")
        name = f"{default_mode}.jwt"
        return registry.get(name) or ResponseMode(context, name, FORMATTERS[default_mode], secured=True)
    mode = registry.get(name)
    if mode is None:
        raise InvalidRequestError(f"Unsupported response_mode: {name}")
    return mode
