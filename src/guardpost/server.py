# Authorization server facade.
# Created: 2026-03-13
#
# build_authorization_server() resolves every enabled strategy into explicit
# registries once; AuthorizationServer only routes requests by endpoint name.

from __future__ import annotations

import logging

from guardpost.client_authentication import build_client_authenticator
from guardpost.context import ServerContext
from guardpost.endpoints import (
    AuthorizationEndpoint,
    DeviceAuthorizationEndpoint,
    DiscoveryEndpoint,
    EndSessionEndpoint,
    Endpoint,
    InteractionEndpoint,
    IntrospectionEndpoint,
    JwksEndpoint,
    RegistrationEndpoint,
    RevocationEndpoint,
    TokenEndpoint,
    UserinfoEndpoint,
)
from guardpost.grants import build_grant_types
from guardpost.http import HttpRequest, HttpResponse
from guardpost.response_modes import build_response_modes
from guardpost.response_types import build_response_types
from guardpost.tokens import TokenIssuer

logger = logging.getLogger(__name__)


class AuthorizationServer:
    """Routes abstract HTTP requests to the registered endpoints."""

    def __init__(self, context: ServerContext, endpoints: dict[str, Endpoint]):
        self.context = context
        self.endpoints = endpoints

    def get_endpoint(self, name: str) -> Endpoint:
        return self.endpoints[name]

    def endpoint(self, name: str, request: HttpRequest) -> HttpResponse:
        """Handle *request* with the endpoint registered as *name*.

        Raises ``KeyError`` for unknown names.
        """
        endpoint = self.endpoints[name]
        if request.method not in endpoint.methods:
            response = HttpResponse(status_code=405, headers={"Allow": ", ".join(endpoint.methods)})
            return response.json({"error": "invalid_request", "error_description": "Method Not Allowed"})
        return endpoint.dispatch(request)


def build_authorization_server(context: ServerContext, paths: dict[str, str] | None = None) -> AuthorizationServer:
    """Wire the endpoints whose services are available.

    *paths* overrides the default path of an endpoint, keyed by endpoint name.
    """
    paths = paths or {}
    settings = context.settings
    services = context.services

    def path(endpoint_cls: type[Endpoint]) -> str:
        return paths.get(endpoint_cls.name, endpoint_cls.path)

    # Client assertions may target the issuer or any endpoint that authenticates clients
    audience = [settings.issuer] + [
        settings.url_for(path(cls))
        for cls in (TokenEndpoint, IntrospectionEndpoint, RevocationEndpoint, DeviceAuthorizationEndpoint)
    ]
    authenticator = build_client_authenticator(context, audience)
    issuer = TokenIssuer(context)

    endpoints: dict[str, Endpoint] = {}
    interactive = (
        services.authorization_codes is not None
        and services.grants is not None
        and services.sessions is not None
        and services.consents is not None
    )
    if interactive:
        endpoints["authorization"] = AuthorizationEndpoint(
            context,
            build_response_types(context, issuer),
            build_response_modes(context),
            path=path(AuthorizationEndpoint),
        )
        endpoints["interaction"] = InteractionEndpoint(
            context, path(AuthorizationEndpoint), path=path(InteractionEndpoint)
        )
        endpoints["end_session"] = EndSessionEndpoint(context, path=path(EndSessionEndpoint))
    endpoints["token"] = TokenEndpoint(
        context, authenticator, build_grant_types(context, issuer, audience), path=path(TokenEndpoint)
    )
    endpoints["introspection"] = IntrospectionEndpoint(context, authenticator, path=path(IntrospectionEndpoint))
    endpoints["revocation"] = RevocationEndpoint(context, authenticator, path=path(RevocationEndpoint))
    if services.users is not None:
        endpoints["userinfo"] = UserinfoEndpoint(context, path=path(UserinfoEndpoint))
    if services.device_codes is not None:
        endpoints["device_authorization"] = DeviceAuthorizationEndpoint(
            context, authenticator, path=path(DeviceAuthorizationEndpoint)
        )
    endpoints["registration"] = RegistrationEndpoint(context, path=path(RegistrationEndpoint))
    endpoints["jwks"] = JwksEndpoint(context, path=path(JwksEndpoint))
    endpoints["discovery"] = DiscoveryEndpoint(context, endpoints, path=path(DiscoveryEndpoint))

    logger.info("Authorization server for %s with endpoints: %s", settings.issuer, ", ".join(endpoints))
    return AuthorizationServer(context, endpoints)
