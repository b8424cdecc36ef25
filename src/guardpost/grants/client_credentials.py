# client_credentials grant (RFC 6749 §4.4).
# Created: 2026-03-07

from __future__ import annotations

from typing import Any

from guardpost.exceptions import UnauthorizedClientError
from guardpost.grants.base import GrantType
from guardpost.models import Client
from guardpost.scopes import get_allowed_scopes


class ClientCredentialsGrant(GrantType):
    name = "client_credentials"

    def handle(self, parameters: dict[str, str], client: Client) -> dict[str, Any]:
        self.check_client(client)
        if client.is_public:
            raise UnauthorizedClientError("Public clients cannot use client_credentials")
        scopes = get_allowed_scopes(client, parameters.get("scope"))
        return self.issuer.issue(client, None, scopes, self.name, include_refresh_token=False)
