# Resource owner password credentials grant (RFC 6749 §4.3).
# Created: 2026-03-07

from __future__ import annotations

import logging
from typing import Any

from guardpost.exceptions import InvalidGrantError, UnsupportedGrantTypeError
from guardpost.grants.base import GrantType
from guardpost.models import Client, utcnow
from guardpost.scopes import get_allowed_scopes
from guardpost.tokens import IdTokenContext

logger = logging.getLogger(__name__)


class PasswordGrant(GrantType):
    name = "password"

    def handle(self, parameters: dict[str, str], client: Client) -> dict[str, Any]:
        self.check_client(client)
        username = self.require(parameters, "username")
        password = self.require(parameters, "password")
        scopes = get_allowed_scopes(client, parameters.get("scope"))

        users = self.context.services.users
        if users is None:
            raise UnsupportedGrantTypeError("User authentication is not available")
        user = users.authenticate(username, password)
        if user is None:
            logger.info("Password grant rejected for client %s", client.client_id)
            raise InvalidGrantError("Invalid Credentials")

        id_context = IdTokenContext(auth_time=utcnow(), amr=["pwd"]) if "openid" in scopes else None
        return self.issuer.issue(client, user, scopes, self.name, id_context=id_context)
