# Grant types of the Token endpoint.
# Created: 2026-03-07

from __future__ import annotations

from collections.abc import Iterable

from guardpost.context import ServerContext
from guardpost.grants.authorization_code import AuthorizationCodeGrant
from guardpost.grants.base import GrantType
from guardpost.grants.client_credentials import ClientCredentialsGrant
from guardpost.grants.device_code import DeviceCodeGrant
from guardpost.grants.jwt_bearer import JwtBearerGrant
from guardpost.grants.password import PasswordGrant
from guardpost.grants.refresh_token import RefreshTokenGrant
from guardpost.tokens import TokenIssuer

GRANT_TYPES: dict[str, type[GrantType]] = {
    cls.name: cls
    for cls in (
        AuthorizationCodeGrant,
        ClientCredentialsGrant,
        PasswordGrant,
        RefreshTokenGrant,
        JwtBearerGrant,
        DeviceCodeGrant,
    )
}


def build_grant_types(
    context: ServerContext, issuer: TokenIssuer, audience: Iterable[str] = ()
) -> dict[str, GrantType]:
    """Registry of the enabled grant types."""
    registry: dict[str, GrantType] = {}
    for name in context.settings.grant_types:
        cls = GRANT_TYPES[name]
        if cls is JwtBearerGrant:
            registry[name] = JwtBearerGrant(context, issuer, audience)
        else:
            registry[name] = cls(context, issuer)
    return registry


__all__ = [
    "GRANT_TYPES",
    "AuthorizationCodeGrant",
    "ClientCredentialsGrant",
    "DeviceCodeGrant",
    "GrantType",
    "JwtBearerGrant",
    "PasswordGrant",
    "RefreshTokenGrant",
    "build_grant_types",
]
