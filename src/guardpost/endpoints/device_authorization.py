# Device authorization endpoint (RFC 8628 §3.1).
# Created: 2026-03-10

from __future__ import annotations

import logging

from guardpost.client_authentication import ClientAuthenticator
from guardpost.context import ServerContext
from guardpost.endpoints.base import Endpoint
from guardpost.exceptions import UnauthorizedClientError
from guardpost.grants.device_code import DeviceCodeGrant
from guardpost.http import HttpRequest, HttpResponse
from guardpost.models import utcnow
from guardpost.scopes import get_allowed_scopes

logger = logging.getLogger(__name__)


class DeviceAuthorizationEndpoint(Endpoint):
    name = "device_authorization"
    path = "/oauth/device/authorize"
    methods = ("POST",)

    def __init__(self, context: ServerContext, authenticator: ClientAuthenticator, path: str | None = None):
        super().__init__(context, path)
        self.authenticator = authenticator

    def handle(self, request: HttpRequest) -> HttpResponse:
        client = self.authenticator.authenticate(request)
        if DeviceCodeGrant.name not in client.grant_types:
            raise UnauthorizedClientError("Client is not allowed to use the device code grant")
        scopes = get_allowed_scopes(client, request.form.get("scope"))

        device_code = self.services.device_codes.create(scopes, client)
        logger.debug("Issued device code for client %s", client.client_id)
        return self.json_response(
            {
                "device_code": device_code.device_code,
                "user_code": device_code.user_code,
                "verification_uri": device_code.verification_uri,
                "verification_uri_complete": device_code.verification_uri_complete,
                "expires_in": max(0, int((device_code.expires_at - utcnow()).total_seconds())),
                "interval": device_code.interval,
            }
        )
