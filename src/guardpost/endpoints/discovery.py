# Discovery and JWKS endpoints (RFC 8414, OIDC Discovery §3).
# Created: 2026-03-10

from __future__ import annotations

from typing import Any

from guardpost.context import ServerContext
from guardpost.endpoints.base import Endpoint
from guardpost.http import HttpRequest, HttpResponse
from guardpost.scopes import SCOPE_CLAIMS

# Discovery metadata key for each endpoint name
_ENDPOINT_METADATA = {
    "authorization": "authorization_endpoint",
    "token": "token_endpoint",
    "userinfo": "userinfo_endpoint",
    "jwks": "jwks_uri",
    "registration": "registration_endpoint",
    "introspection": "introspection_endpoint",
    "revocation": "revocation_endpoint",
    "device_authorization": "device_authorization_endpoint",
    "end_session": "end_session_endpoint",
}


class JwksEndpoint(Endpoint):
    name = "jwks"
    path = "/oauth/jwks"
    methods = ("GET",)

    def handle(self, request: HttpRequest) -> HttpResponse:
        return HttpResponse(headers={"Cache-Control": "public, max-age=300"}).json(self.context.keys.public_jwks())


class DiscoveryEndpoint(Endpoint):
    name = "discovery"
    path = "/.well-known/openid-configuration"
    methods = ("GET",)

    def __init__(self, context: ServerContext, endpoints: dict[str, Endpoint], path: str | None = None):
        super().__init__(context, path)
        self.endpoints = endpoints

    def metadata(self) -> dict[str, Any]:
        settings = self.settings
        data: dict[str, Any] = {"issuer": settings.issuer}
        for name, key in _ENDPOINT_METADATA.items():
            endpoint = self.endpoints.get(name)
            if endpoint is not None:
                data[key] = endpoint.url
        claims = sorted({"sub", *(claim for scope in settings.scopes for claim in SCOPE_CLAIMS.get(scope, ()))})
        signing_algs = settings.client_authentication_signature_algorithms
        data.update(
            {
                "scopes_supported": settings.scopes,
                "response_types_supported": settings.response_types,
                "response_modes_supported": settings.response_modes,
                "grant_types_supported": settings.grant_types,
                "code_challenge_methods_supported": settings.pkce_methods,
                "token_endpoint_auth_methods_supported": settings.client_authentication_methods,
                "token_endpoint_auth_signing_alg_values_supported": signing_algs,
                "subject_types_supported": ["public", "pairwise"],
                "id_token_signing_alg_values_supported": settings.id_token_signature_algorithms,
                "userinfo_signing_alg_values_supported": settings.id_token_signature_algorithms,
                "authorization_signing_alg_values_supported": settings.id_token_signature_algorithms,
                "claims_supported": claims,
                "authorization_response_iss_parameter_supported": (
                    settings.enable_authorization_response_issuer_identifier
                ),
                "claims_parameter_supported": settings.enable_claims_parameter,
            }
        )
        if "revocation" in self.endpoints:
            data["revocation_endpoint_auth_methods_supported"] = settings.client_authentication_methods
        if "introspection" in self.endpoints:
            data["introspection_endpoint_auth_methods_supported"] = settings.client_authentication_methods
        if "end_session" in self.endpoints:
            data["backchannel_logout_supported"] = True
            data["backchannel_logout_session_supported"] = True
        return data

    def handle(self, request: HttpRequest) -> HttpResponse:
        return self.json_response(self.metadata(), cache=True)
