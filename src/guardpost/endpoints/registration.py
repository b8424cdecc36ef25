# Dynamic client registration endpoint (RFC 7591, RFC 7592).
# Created: 2026-03-11

from __future__ import annotations

import hmac
import logging

from pydantic import ValidationError

from guardpost.audit import AuditSeverity
from guardpost.client_authorization import extract_bearer_token
from guardpost.endpoints.base import Endpoint
from guardpost.exceptions import (
    InvalidClientMetadataError,
    InvalidRedirectUriError,
    InvalidTokenError,
)
from guardpost.http import HttpRequest, HttpResponse, append_to_url
from guardpost.jose import JoseError, key_type_for
from guardpost.models import Client
from guardpost.schemas import ClientMetadata, client_information

logger = logging.getLogger(__name__)


class RegistrationEndpoint(Endpoint):
    name = "registration"
    path = "/oauth/register"
    methods = ("POST", "GET", "PUT", "DELETE")

    def handle(self, request: HttpRequest) -> HttpResponse:
        if request.method == "POST":
            return self.register(request)
        client = self.authorize(request)
        if request.method == "GET":
            return self.json_response(client_information(client, self.client_uri(client)))
        if request.method == "PUT":
            return self.update(request, client)
        self.services.clients.delete(client)
        self.context.audit.log_client_event(
            "client_deleted", client.client_id, "success", severity=AuditSeverity.CRITICAL
        )
        return HttpResponse(status_code=204, headers={"Cache-Control": "no-store"})

    def client_uri(self, client: Client) -> str:
        return append_to_url(self.url, {"client_id": client.client_id})

    def metadata(self, request: HttpRequest) -> ClientMetadata:
        if request.json is None:
            raise InvalidClientMetadataError("Expected a JSON object")
        try:
            metadata = ClientMetadata.model_validate(request.json)
        except ValidationError as exc:
            error = exc.errors()[0]
            description = error["msg"]
            if error["loc"] and error["loc"][0] == "redirect_uris":
                raise InvalidRedirectUriError(description) from None
            raise InvalidClientMetadataError(description) from None
        self.check_supported(metadata)
        return metadata

    def check_supported(self, metadata: ClientMetadata) -> None:
        settings = self.settings
        for name, values, supported in (
            ("grant_types", metadata.grant_types, settings.grant_types),
            ("response_types", metadata.response_types, settings.response_types),
            (
                "token_endpoint_auth_method",
                [metadata.token_endpoint_auth_method],
                settings.client_authentication_methods,
            ),
            ("scope", metadata.scope.split() if metadata.scope else [], settings.scopes),
        ):
            unsupported = [value for value in values if value not in supported]
            if unsupported:
                raise InvalidClientMetadataError(f"Unsupported {name}: {' '.join(unsupported)}")
        for name in (
            "id_token_signed_response_alg",
            "userinfo_signed_response_alg",
            "authorization_signed_response_alg",
        ):
            alg = getattr(metadata, name)
            if alg is not None:
                self.check_signing_alg(name, alg, metadata.token_endpoint_auth_method)

    def check_signing_alg(self, name: str, alg: str, auth_method: str) -> None:
        """The server must be able to sign with *alg* for this client."""
        if alg not in self.settings.id_token_signature_algorithms:
            raise InvalidClientMetadataError(f"Unsupported {name}: {alg}")
        try:
            symmetric = key_type_for(alg) == "oct"
            if not symmetric:
                self.context.keys.signing_key(alg)
        except JoseError:
            raise InvalidClientMetadataError(f"Unsupported {name}: {alg}") from None
        if symmetric and auth_method in ("none", "private_key_jwt"):
            raise InvalidClientMetadataError(f"{name} {alg} requires a client secret")

    def authorize(self, request: HttpRequest) -> Client:
        """Check the registration access token of the client named in the query."""
        presented = extract_bearer_token(request)
        client = self.services.clients.find_one(request.query.get("client_id", ""))
        expected = client.registration_access_token if client else None
        if client is None or not expected or not hmac.compare_digest(expected.encode(), presented.encode()):
            raise InvalidTokenError("Invalid registration access token")
        return client

    def register(self, request: HttpRequest) -> HttpResponse:
        metadata = self.metadata(request)
        client = self.services.clients.create(metadata.to_client_fields(self.settings.scopes))
        logger.info("Registered client %s (%s)", client.client_id, client.client_name or "unnamed")
        self.context.audit.log_client_event(
            "client_registered", client.client_id, "success", severity=AuditSeverity.CRITICAL
        )
        return self.json_response(client_information(client, self.client_uri(client)), status_code=201)

    def update(self, request: HttpRequest, client: Client) -> HttpResponse:
        body = request.json or {}
        if body.get("client_id", client.client_id) != client.client_id:
            raise InvalidClientMetadataError("client_id cannot be changed")
        metadata = self.metadata(request)
        updated = self.services.clients.update(client, metadata.to_client_fields(self.settings.scopes))
        self.context.audit.log_client_event(
            "client_updated", client.client_id, "success", severity=AuditSeverity.CRITICAL
        )
        return self.json_response(client_information(updated, self.client_uri(updated)))
