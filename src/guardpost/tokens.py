# Token issuance shared by grant types and response types.
# Created: 2026-03-05

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlparse

from guardpost.context import ServerContext
from guardpost.exceptions import InvalidClientMetadataError, ServerError
from guardpost.jose import JoseError, key_type_for
from guardpost.models import AccessToken, Client, RefreshToken, User, timestamp, utcnow
from guardpost.scopes import join_scope

logger = logging.getLogger(__name__)

_HASHES = {"256": hashlib.sha256, "384": hashlib.sha384, "512": hashlib.sha512}


def subject_identifier(user: User, client: Client, secret_key: str) -> str:
    """``public`` subjects are the user id; ``pairwise`` ones are per sector host."""
    if client.subject_type != "pairwise":
        return user.user_id
    sector = client.sector_identifier or (client.redirect_uris[0] if client.redirect_uris else "")
    host = urlparse(sector).netloc
    if not host:
        raise InvalidClientMetadataError("Pairwise subjects need a sector_identifier_uri or a redirect_uri")
    return hashlib.sha256(f"{host}{user.user_id}{secret_key}".encode()).hexdigest()


def token_hash(value: str, alg: str) -> str:
    """``at_hash`` / ``c_hash``: left half of the hash matching the signing alg."""
    hash_fn = hashlib.sha512 if alg == "EdDSA" else _HASHES.get(alg[-3:], hashlib.sha256)
    digest = hash_fn(value.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest[: len(digest) // 2]).rstrip(b"=").decode("ascii")


def sign_for_client(
    context: ServerContext,
    claims: dict[str, Any],
    client: Client,
    alg: str,
    headers: dict[str, Any] | None = None,
) -> str:
    """Sign *claims* with *alg*: HS* with the client secret, anything else with a server key."""
    headers = dict(headers or {})
    try:
        if key_type_for(alg) == "oct":
            if not client.client_secret:
                raise JoseError("Client has no secret for symmetric signatures")
            return context.jose.sign(claims, client.client_secret, alg, headers=headers or None)
        key = context.keys.signing_key(alg)
        headers["kid"] = key.kid
        return context.jose.sign(claims, key.private_key, alg, headers=headers)
    except JoseError as exc:
        logger.error("Signing for client %s failed: %s", client.client_id, exc)
        raise ServerError("Could not sign the response") from exc


@dataclass
class IdTokenContext:
    """What the ID token needs beyond client and user."""

    nonce: str | None = None
    auth_time: datetime | None = None
    acr: str | None = None
    amr: list[str] | None = None
    access_token: str | None = None
    code: str | None = None
    session_id: str | None = None
    # Extra claims asked for with the claims request parameter
    claims: list[str] | None = None


def verify_id_token_hint(context: ServerContext, id_token: str, client: Client) -> dict[str, Any]:
    """Check that *id_token* was issued by this server to *client*.

    Expired hints are accepted. Raises ``JoseError`` on any mismatch.
    """
    header, _ = context.jose.decode_unverified(id_token)
    alg = header.get("alg", "")
    if alg not in context.settings.id_token_signature_algorithms:
        raise JoseError(f"Unexpected ID token algorithm {alg}")
    if key_type_for(alg) == "oct":
        if not client.client_secret:
            raise JoseError("Client has no secret for symmetric signatures")
        key: Any = client.client_secret
    else:
        signing_key = context.keys.find(header.get("kid", ""))
        if signing_key is None or signing_key.alg != alg:
            raise JoseError("Unknown ID token key")
        key = signing_key.private_key.public_key()
    return context.jose.verify(
        id_token,
        key,
        [alg],
        audience=client.client_id,
        issuer=context.settings.issuer,
        required_claims=("iss", "sub", "aud"),
        verify_expiration=False,
    )


LOGOUT_EVENT = "http://schemas.openid.net/event/backchannel-logout"


def logout_token(context: ServerContext, client: Client, user: User, session_id: str | None) -> str:
    """Logout token for back-channel logout (OIDC Back-Channel Logout §2.4)."""
    settings = context.settings
    now = utcnow()
    claims: dict[str, Any] = {
        "iss": settings.issuer,
        "sub": subject_identifier(user, client, settings.secret_key),
        "aud": [client.client_id],
        "iat": timestamp(now),
        "exp": timestamp(now + timedelta(seconds=settings.logout_token_ttl)),
        "jti": secrets.token_urlsafe(16),
        "events": {LOGOUT_EVENT: {}},
    }
    if session_id is not None:
        claims["sid"] = session_id
    return sign_for_client(
        context, claims, client, client.id_token_signed_response_alg, headers={"typ": "logout+jwt"}
    )


class IdTokenIssuer:
    def __init__(self, context: ServerContext):
        self.context = context

    def issue(self, client: Client, user: User, scopes: list[str], id_context: IdTokenContext) -> str:
        settings = self.context.settings
        alg = client.id_token_signed_response_alg
        now = utcnow()
        claims: dict[str, Any] = {
            "iss": settings.issuer,
            "sub": subject_identifier(user, client, settings.secret_key),
            "aud": client.client_id,
            "iat": timestamp(now),
            "exp": timestamp(now + timedelta(seconds=settings.id_token_ttl)),
            "auth_time": timestamp(id_context.auth_time) if id_context.auth_time else None,
            "nonce": id_context.nonce,
            "acr": id_context.acr,
            "amr": id_context.amr,
            "sid": id_context.session_id,
        }
        if id_context.access_token:
            claims["at_hash"] = token_hash(id_context.access_token, alg)
        if id_context.code:
            claims["c_hash"] = token_hash(id_context.code, alg)
        if self.context.services.users is not None:
            claims.update(self.context.services.users.get_userinfo(user, scopes, id_context.claims))
        claims = {k: v for k, v in claims.items() if v is not None}
        return sign_for_client(self.context, claims, client, alg)


class TokenIssuer:
    """Creates the token response of the Token endpoint (and implicit flows)."""

    def __init__(self, context: ServerContext):
        self.context = context
        self.id_tokens = IdTokenIssuer(context)

    def refresh_eligible(self, client: Client) -> bool:
        return (
            self.context.services.refresh_tokens is not None
            and "refresh_token" in client.grant_types
            and "refresh_token" in self.context.settings.grant_types
        )

    def create_access_token(
        self,
        client: Client | None,
        user: User | None,
        scopes: list[str],
        grant_type: str,
        authorization_code: str | None = None,
        userinfo_claims: list[str] | None = None,
    ) -> AccessToken:
        token = self.context.services.access_tokens.create(
            scopes,
            client,
            user,
            grant_type,
            authorization_code=authorization_code,
            userinfo_claims=userinfo_claims,
        )
        self.context.audit.log_token_event(
            "token_issued",
            client.client_id if client else None,
            grant_type=grant_type,
            user_id=user.user_id if user else None,
            scope=join_scope(scopes),
        )
        return token

    def issue(
        self,
        client: Client,
        user: User | None,
        scopes: list[str],
        grant_type: str,
        *,
        authorization_code: str | None = None,
        include_refresh_token: bool = True,
        id_context: IdTokenContext | None = None,
        userinfo_claims: list[str] | None = None,
    ) -> dict[str, Any]:
        access_token = self.create_access_token(
            client, user, scopes, grant_type, authorization_code, userinfo_claims=userinfo_claims
        )
        refresh_token: RefreshToken | None = None
        if include_refresh_token and self.refresh_eligible(client):
            refresh_token = self.context.services.refresh_tokens.create(
                scopes, client, user, access_token, authorization_code=authorization_code
            )
        id_token = None
        if id_context is not None and user is not None and "openid" in scopes:
            id_context.access_token = access_token.handle
            id_token = self.id_tokens.issue(client, user, scopes, id_context)
        return self.token_response(access_token, refresh_token, id_token)

    def token_response(
        self,
        access_token: AccessToken,
        refresh_token: RefreshToken | None = None,
        id_token: str | None = None,
    ) -> dict[str, Any]:
        expires_in = max(0, int((access_token.expires_at - utcnow()).total_seconds()))
        response: dict[str, Any] = {
            "access_token": access_token.handle,
            "token_type": access_token.token_type,
            "expires_in": expires_in,
            "scope": join_scope(access_token.scopes),
        }
        if refresh_token is not None:
            response["refresh_token"] = refresh_token.handle
        if id_token is not None:
            response["id_token"] = id_token
        return response
