# Scope helpers.
# Created: 2026-03-03

from __future__ import annotations

from collections.abc import Iterable

from guardpost.exceptions import InvalidRequestError, InvalidScopeError
from guardpost.models import Client

# Claims released per OpenID Connect standard scope (OIDC Core §5.4)
SCOPE_CLAIMS: dict[str, tuple[str, ...]] = {
    "profile": (
        "name",
        "family_name",
        "given_name",
        "middle_name",
        "nickname",
        "preferred_username",
        "profile",
        "picture",
        "website",
        "gender",
        "birthdate",
        "zoneinfo",
        "locale",
        "updated_at",
    ),
    "email": ("email", "email_verified"),
    "address": ("address",),
    "phone": ("phone_number", "phone_number_verified"),
}


def split_scope(scope: str | None) -> list[str]:
    """Split a space-delimited scope string, dropping empties and duplicates."""
    result: list[str] = []
    for item in (scope or "").split(" "):
        if item and item not in result:
            result.append(item)
    return result


def join_scope(scopes: Iterable[str]) -> str:
    return " ".join(scopes)


def get_allowed_scopes(client: Client, requested: str | None) -> list[str]:
    """Scopes granted to *client* for a request.

    An empty request falls back to the client's registered scopes.
    """
    scopes = split_scope(requested)
    if not scopes:
        if not client.scopes:
            raise InvalidRequestError("Missing parameter: scope")
        return list(client.scopes)
    for scope in scopes:
        if scope not in client.scopes:
            raise InvalidScopeError(f"Unsupported scope: {scope}")
    return scopes


def check_scope_subset(requested: str | None, granted: list[str]) -> list[str]:
    """Narrow *granted* to *requested*, which must not exceed it."""
    scopes = split_scope(requested)
    if not scopes:
        return list(granted)
    for scope in scopes:
        if scope not in granted:
            raise InvalidScopeError(f"Scope not granted originally: {scope}")
    return scopes


def claims_for_scopes(scopes: Iterable[str]) -> set[str]:
    claims: set[str] = set()
    for scope in scopes:
        claims.update(SCOPE_CLAIMS.get(scope, ()))
    return claims
