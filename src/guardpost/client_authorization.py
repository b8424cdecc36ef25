# Bearer token extraction (RFC 6750 §2).
# Created: 2026-03-05

from __future__ import annotations

from guardpost.exceptions import InvalidRequestError, InvalidTokenError
from guardpost.http import HttpRequest


def bearer_challenge(error: str | None = None, description: str | None = None, scope: str | None = None) -> str:
    """``WWW-Authenticate`` value for a Bearer error."""
    parts = []
    if error:
        parts.append(f'error="{error}"')
    if description:
        parts.append(f'error_description="{description}"')
    if scope:
        parts.append(f'scope="{scope}"')
    return "Bearer " + ", ".join(parts) if parts else "Bearer"


def extract_bearer_token(request: HttpRequest) -> str:
    """Return the access token sent in exactly one of header, form body or query."""
    found: list[str] = []
    header = request.header("authorization")
    if header is not None:
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise InvalidTokenError(
                "Malformed Authorization header",
                headers={"WWW-Authenticate": bearer_challenge("invalid_token")},
            )
        found.append(token.strip())
    if request.method == "POST" and "access_token" in request.form:
        found.append(request.form["access_token"])
    if "access_token" in request.query:
        found.append(request.query["access_token"])

    if not found:
        raise InvalidTokenError("Missing access token", headers={"WWW-Authenticate": bearer_challenge()})
    if len(found) > 1:
        raise InvalidRequestError(
            "Multiple access token methods",
            headers={"WWW-Authenticate": bearer_challenge("invalid_request")},
        )
    return found[0]
