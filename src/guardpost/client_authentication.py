# Client authentication strategies (RFC 6749 §2.3, RFC 7523, OIDC Core §9).
# Created: 2026-03-05
#
# Each strategy detects whether its method was used (matches) and validates the
# credentials (authenticate). ClientAuthenticator requires exactly one match.

from __future__ import annotations

import base64
import binascii
import hmac
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import UTC, datetime
from urllib.parse import unquote

from guardpost.audit import AuditSeverity
from guardpost.context import ServerContext
from guardpost.exceptions import InvalidClientError, OAuth2Error
from guardpost.http import HttpRequest
from guardpost.jose import JoseError, key_type_for, resolve_client_key
from guardpost.models import Client

logger = logging.getLogger(__name__)

JWT_BEARER_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"


class ClientAuthentication(ABC):
    name: str = ""

    def __init__(self, context: ServerContext):
        self.context = context

    @abstractmethod
    def matches(self, request: HttpRequest) -> bool:
        ...

    @abstractmethod
    def authenticate(self, request: HttpRequest) -> Client:
        ...

    def _error(self, description: str) -> InvalidClientError:
        return InvalidClientError(description)

    def _find_client(self, client_id: str | None) -> Client:
        if not client_id:
            raise self._error("Missing client_id")
        client = self.context.services.clients.find_one(client_id)
        if client is None:
            raise self._error("Invalid Client")
        if client.authentication_method != self.name:
            raise self._error(f"Client is not registered for {self.name}")
        return client

    def _check_secret(self, client: Client, secret: str) -> None:
        if not client.client_secret or client.secret_expired():
            raise self._error("Invalid Client")
        if not hmac.compare_digest(client.client_secret.encode(), secret.encode()):
            raise self._error("Invalid Client")


class ClientSecretBasic(ClientAuthentication):
    name = "client_secret_basic"

    def matches(self, request: HttpRequest) -> bool:
        header = request.header("authorization") or ""
        return header[:6].lower() == "basic "

    def _error(self, description: str) -> InvalidClientError:
        return InvalidClientError(description, headers={"WWW-Authenticate": "Basic"})

    def authenticate(self, request: HttpRequest) -> Client:
        token = (request.header("authorization") or "")[6:].strip()
        try:
            decoded = base64.b64decode(token, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            raise self._error("Malformed Basic credentials") from None
        client_id, sep, secret = decoded.partition(":")
        if not sep or not client_id or not secret:
            raise self._error("Malformed Basic credentials")
        client = self._find_client(unquote(client_id))
        self._check_secret(client, unquote(secret))
        return client


class ClientSecretPost(ClientAuthentication):
    name = "client_secret_post"

    def matches(self, request: HttpRequest) -> bool:
        return "client_secret" in request.form

    def authenticate(self, request: HttpRequest) -> Client:
        client = self._find_client(request.form.get("client_id"))
        self._check_secret(client, request.form.get("client_secret", ""))
        return client


class NoneAuthentication(ClientAuthentication):
    """Public clients: a client_id and nothing else."""

    name = "none"

    def matches(self, request: HttpRequest) -> bool:
        form = request.form
        return (
            "client_id" in form
            and "client_secret" not in form
            and "client_assertion" not in form
            and request.header("authorization") is None
        )

    def authenticate(self, request: HttpRequest) -> Client:
        return self._find_client(request.form.get("client_id"))


class _ClientAssertion(ClientAuthentication):
    """``client_assertion`` JWT signed by the client (RFC 7523 §2.2)."""

    def __init__(self, context: ServerContext, audience: Iterable[str] = ()):
        super().__init__(context)
        self.audience = list(audience) or [context.settings.issuer]

    @abstractmethod
    def _accepts_alg(self, alg: str) -> bool:
        ...

    def _assertion(self, request: HttpRequest) -> str | None:
        if request.form.get("client_assertion_type") != JWT_BEARER_ASSERTION_TYPE:
            return None
        return request.form.get("client_assertion") or None

    def matches(self, request: HttpRequest) -> bool:
        assertion = self._assertion(request)
        if assertion is None:
            return False
        try:
            header, _ = self.context.jose.decode_unverified(assertion)
        except JoseError:
            return False
        alg = header.get("alg", "")
        try:
            return self._accepts_alg(alg)
        except JoseError:
            return False

    def authenticate(self, request: HttpRequest) -> Client:
        assertion = self._assertion(request) or ""
        try:
            header, unverified = self.context.jose.decode_unverified(assertion)
        except JoseError as exc:
            raise self._error(str(exc)) from exc
        alg = header.get("alg")
        if not alg or alg == "none" or alg not in self.context.settings.client_authentication_signature_algorithms:
            raise self._error(f"Unsupported assertion algorithm: {alg}")

        client_id = unverified.get("sub")
        if request.form.get("client_id") and request.form["client_id"] != client_id:
            raise self._error("client_id does not match the assertion subject")
        client = self._find_client(client_id)
        if client.authentication_signing_alg and client.authentication_signing_alg != alg:
            raise self._error("Assertion algorithm does not match the registered one")

        try:
            key = resolve_client_key(client, alg, header.get("kid"), self.context.jwks_fetcher)
            claims = self.context.jose.verify(
                assertion,
                key,
                [alg],
                audience=self.audience,
                issuer=client.client_id,
                required_claims=("iss", "sub", "aud", "exp", "jti"),
            )
        except JoseError as exc:
            logger.debug("Client assertion rejected for %s: %s", client.client_id, exc)
            raise self._error("Invalid client assertion") from exc

        if claims.get("sub") != client.client_id:
            raise self._error("Assertion subject must be the client_id")
        replay_cache = self.context.services.replay_cache
        if replay_cache is None:
            raise self._error("Client assertions are not supported")
        expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=UTC)
        if not replay_cache.register(client.client_id, str(claims["jti"]), expires_at):
            self.context.audit.log_client_event(
                "assertion_replay", client.client_id, "blocked", severity=AuditSeverity.ALERT
            )
            raise self._error("Client assertion has already been used")
        return client


class ClientSecretJwt(_ClientAssertion):
    name = "client_secret_jwt"

    def _accepts_alg(self, alg: str) -> bool:
        return key_type_for(alg) == "oct"


class PrivateKeyJwt(_ClientAssertion):
    name = "private_key_jwt"

    def _accepts_alg(self, alg: str) -> bool:
        return key_type_for(alg) in ("RSA", "EC", "OKP")


CLIENT_AUTHENTICATION_METHODS: dict[str, type[ClientAuthentication]] = {
    cls.name: cls
    for cls in (ClientSecretBasic, ClientSecretPost, NoneAuthentication, ClientSecretJwt, PrivateKeyJwt)
}


class ClientAuthenticator:
    """Selects the single matching strategy and runs it."""

    def __init__(self, context: ServerContext, methods: dict[str, ClientAuthentication]):
        self.context = context
        self.methods = methods

    def authenticate(self, request: HttpRequest) -> Client:
        candidates = [method for method in self.methods.values() if method.matches(request)]
        if len(candidates) != 1:
            description = "No client authentication" if not candidates else "Multiple client authentication methods"
            self._audit_failure(request, description)
            raise InvalidClientError(description)
        method = candidates[0]
        try:
            return method.authenticate(request)
        except OAuth2Error as exc:
            self._audit_failure(request, exc.description or exc.error, method=method.name)
            raise

    def _audit_failure(self, request: HttpRequest, reason: str, method: str | None = None) -> None:
        self.context.audit.log_client_event(
            "client_authentication",
            request.form.get("client_id"),
            "failure",
            reason=reason,
            method=method,
        )


def build_client_authenticator(
    context: ServerContext, audience: Iterable[str] = ()
) -> ClientAuthenticator:
    """Resolve the enabled authentication methods into a registry."""
    audience = list(audience)
    methods: dict[str, ClientAuthentication] = {}
    for name in context.settings.client_authentication_methods:
        cls = CLIENT_AUTHENTICATION_METHODS[name]
        if issubclass(cls, _ClientAssertion):
            methods[name] = cls(context, audience)
        else:
            methods[name] = cls(context)
    return ClientAuthenticator(context, methods)
