# Device code grant (RFC 8628 §3.4).
# Created: 2026-03-08
#
# pending -> authorized | denied | expired. The verification UI flips the
# state through DeviceCodeService.decide(); this grant only polls it.

from __future__ import annotations

from typing import Any

from guardpost.exceptions import (
    AccessDeniedError,
    AuthorizationPendingError,
    ExpiredTokenError,
    InvalidGrantError,
    ServerError,
    SlowDownError,
)
from guardpost.grants.base import GrantType
from guardpost.models import DEVICE_DENIED, DEVICE_PENDING, Client
from guardpost.tokens import IdTokenContext


class DeviceCodeGrant(GrantType):
    name = "urn:ietf:params:oauth:grant-type:device_code"

    def handle(self, parameters: dict[str, str], client: Client) -> dict[str, Any]:
        self.check_client(client)
        service = self.context.services.device_codes
        if service is None:
            raise ServerError("Device codes are not available")

        device_code = service.find_one(self.require(parameters, "device_code"))
        if device_code is None or device_code.client_id != client.client_id or device_code.used:
            raise InvalidGrantError("Invalid Device Code")
        if device_code.is_expired():
            raise ExpiredTokenError("The device code has expired")

        if device_code.is_authorized is DEVICE_PENDING:
            if service.poll(device_code, device_code.interval):
                raise SlowDownError()
            raise AuthorizationPendingError()
        if device_code.is_authorized is DEVICE_DENIED:
            raise AccessDeniedError("The end user denied the authorization request")

        if not service.consume(device_code) or device_code.user_id is None:
            raise InvalidGrantError("Invalid Device Code")
        user = self.load_user(device_code.user_id)
        id_context = IdTokenContext() if "openid" in device_code.scopes else None
        return self.issuer.issue(client, user, device_code.scopes, self.name, id_context=id_context)
