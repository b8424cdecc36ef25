# Token endpoint (RFC 6749 §3.2).
# Created: 2026-03-09

from __future__ import annotations

import logging

from guardpost.client_authentication import ClientAuthenticator
from guardpost.context import ServerContext
from guardpost.endpoints.base import Endpoint
from guardpost.exceptions import InvalidRequestError, UnsupportedGrantTypeError
from guardpost.grants import GrantType
from guardpost.http import HttpRequest, HttpResponse

logger = logging.getLogger(__name__)


class TokenEndpoint(Endpoint):
    name = "token"
    path = "/oauth/token"
    methods = ("POST",)

    def __init__(
        self,
        context: ServerContext,
        authenticator: ClientAuthenticator,
        grant_types: dict[str, GrantType],
        path: str | None = None,
    ):
        super().__init__(context, path)
        self.authenticator = authenticator
        self.grant_types = grant_types

    def handle(self, request: HttpRequest) -> HttpResponse:
        parameters = request.form
        grant_type = parameters.get("grant_type")
        if not grant_type:
            raise InvalidRequestError("Missing parameter: grant_type")
        grant = self.grant_types.get(grant_type)
        if grant is None:
            raise UnsupportedGrantTypeError(f"Unsupported grant_type: {grant_type}")

        client = self.authenticator.authenticate(request)
        logger.debug("Token request from client %s (grant_type=%s)", client.client_id, grant_type)
        return self.json_response(grant.handle(parameters, client))
