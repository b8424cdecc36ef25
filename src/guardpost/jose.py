# JOSE collaborator: JWT signing/verification and key management.
# Created: 2026-03-04
#
# The engine talks to a JoseBackend; PyJWTBackend is the default. Server
# signing keys live in a KeySet (private JWKS), client keys are resolved from
# client.jwks or fetched from client.jwks_uri.

from __future__ import annotations

import json
import logging
import secrets
import time
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import httpx
import jwt
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from jwt.algorithms import ECAlgorithm, OKPAlgorithm, RSAAlgorithm

from guardpost.models import Client

logger = logging.getLogger(__name__)

SYMMETRIC_ALGORITHMS = ("HS256", "HS384", "HS512")

_EC_CURVES = {"ES256": ec.SECP256R1, "ES384": ec.SECP384R1, "ES512": ec.SECP521R1}


class JoseError(Exception):
    """Raised when a token cannot be signed, verified, encrypted or decrypted."""


def key_type_for(alg: str) -> str:
    """JWK ``kty`` used by a JWS algorithm."""
    if alg.startswith("HS"):
        return "oct"
    if alg.startswith(("RS", "PS")):
        return "RSA"
    if alg.startswith("ES"):
        return "EC"
    if alg == "EdDSA":
        return "OKP"
    raise JoseError(f"Unsupported algorithm: {alg}")


def _algorithm_class(kty: str) -> Any:
    return {"RSA": RSAAlgorithm, "EC": ECAlgorithm, "OKP": OKPAlgorithm}[kty]


@runtime_checkable
class JoseBackend(Protocol):
    def sign(self, claims: dict[str, Any], key: Any, alg: str, headers: dict[str, Any] | None = None) -> str:
        ...

    def verify(
        self,
        token: str,
        key: Any,
        algorithms: Iterable[str],
        *,
        audience: str | list[str] | None = None,
        issuer: str | None = None,
        required_claims: Iterable[str] = (),
        verify_expiration: bool = True,
    ) -> dict[str, Any]:
        ...

    def decode_unverified(self, token: str) -> tuple[dict[str, Any], dict[str, Any]]:
        """Return ``(header, claims)`` without checking the signature."""
        ...

    def encrypt(self, token: str, key: Any, alg: str, enc: str) -> str:
        ...

    def decrypt(self, token: str, key: Any) -> str:
        ...


class PyJWTBackend:
    """JWS via PyJWT. No JWE: PyJWT does not implement it."""

    def __init__(self, leeway: int = 0):
        self.leeway = leeway

    def sign(self, claims: dict[str, Any], key: Any, alg: str, headers: dict[str, Any] | None = None) -> str:
        if alg == "none":
            raise JoseError("Refusing to create an unsigned token")
        try:
            return jwt.encode(claims, key, algorithm=alg, headers=headers)
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise JoseError(f"Could not sign token: {exc}") from exc

    def verify(
        self,
        token: str,
        key: Any,
        algorithms: Iterable[str],
        *,
        audience: str | list[str] | None = None,
        issuer: str | None = None,
        required_claims: Iterable[str] = (),
        verify_expiration: bool = True,
    ) -> dict[str, Any]:
        algorithms = [alg for alg in algorithms if alg != "none"]
        if not algorithms:
            raise JoseError("No acceptable signature algorithm")
        try:
            return jwt.decode(
                token,
                key,
                algorithms=algorithms,
                audience=audience,
                issuer=issuer,
                leeway=self.leeway,
                options={
                    "require": list(required_claims),
                    "verify_aud": audience is not None,
                    "verify_exp": verify_expiration,
                },
            )
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise JoseError(str(exc)) from exc

    def decode_unverified(self, token: str) -> tuple[dict[str, Any], dict[str, Any]]:
        try:
            header = jwt.get_unverified_header(token)
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise JoseError(f"Malformed token: {exc}") from exc
        return header, claims

    def encrypt(self, token: str, key: Any, alg: str, enc: str) -> str:
        raise JoseError("JWE is not supported by the PyJWT backend")

    def decrypt(self, token: str, key: Any) -> str:
        raise JoseError("JWE is not supported by the PyJWT backend")


@dataclass
class SigningKey:
    """One of the server's private signing keys."""

    kid: str
    alg: str
    private_key: Any

    @property
    def kty(self) -> str:
        return key_type_for(self.alg)

    def _jwk(self, key: Any) -> dict[str, Any]:
        data = json.loads(_algorithm_class(self.kty).to_jwk(key))
        data.update({"kid": self.kid, "alg": self.alg, "use": "sig"})
        return data

    def public_jwk(self) -> dict[str, Any]:
        return self._jwk(self.private_key.public_key())

    def private_jwk(self) -> dict[str, Any]:
        return self._jwk(self.private_key)


def generate_private_key(alg: str) -> Any:
    kty = key_type_for(alg)
    if kty == "RSA":
        return rsa.generate_private_key(public_exponent=65537, key_size=2048)
    if kty == "EC":
        return ec.generate_private_key(_EC_CURVES[alg]())
    if kty == "OKP":
        return ed25519.Ed25519PrivateKey.generate()
    raise JoseError(f"Cannot generate a server key for {alg}")


class KeySet:
    """The server's private JWKS."""

    def __init__(self, keys: list[SigningKey] | None = None):
        self.keys: list[SigningKey] = list(keys or [])

    @classmethod
    def generate(cls, algorithms: Iterable[str] = ("RS256",)) -> KeySet:
        keys = []
        for alg in algorithms:
            if alg in SYMMETRIC_ALGORITHMS:
                continue
            keys.append(SigningKey(kid=secrets.token_hex(8), alg=alg, private_key=generate_private_key(alg)))
        return cls(keys)

    @classmethod
    def from_jwks(cls, jwks: dict[str, Any]) -> KeySet:
        keys = []
        for jwk in jwks.get("keys", []):
            alg = jwk.get("alg")
            if not alg or "kid" not in jwk:
                raise JoseError("Server keys need both 'kid' and 'alg'")
            private_key = _algorithm_class(key_type_for(alg)).from_jwk(jwk)
            keys.append(SigningKey(kid=jwk["kid"], alg=alg, private_key=private_key))
        return cls(keys)

    @classmethod
    def load(cls, path: Path, algorithms: Iterable[str] = ("RS256",)) -> KeySet:
        """Load the private JWKS at *path*, generating and saving one if missing."""
        if path.exists():
            return cls.from_jwks(json.loads(path.read_text()))
        keyset = cls.generate(algorithms)
        keyset.save(path)
        logger.info("Generated %d signing key(s) in %s", len(keyset.keys), path)
        return keyset

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.private_jwks(), indent=2))
        try:
            path.chmod(0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", path)

    def signing_key(self, alg: str) -> SigningKey:
        for key in self.keys:
            if key.alg == alg:
                return key
        raise JoseError(f"No server key for algorithm {alg}")

    def find(self, kid: str) -> SigningKey | None:
        return next((key for key in self.keys if key.kid == kid), None)

    def public_jwks(self) -> dict[str, Any]:
        return {"keys": [key.public_jwk() for key in self.keys]}

    def private_jwks(self) -> dict[str, Any]:
        return {"keys": [key.private_jwk() for key in self.keys]}


class JwksFetcher:
    """Fetches and briefly caches client JWKS documents."""

    def __init__(self, timeout: float = 5.0, cache_ttl: float = 300.0, http: httpx.Client | None = None):
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self._http = http
        self._cache: dict[str, tuple[float, dict[str, Any]]] = {}

    def fetch(self, uri: str) -> dict[str, Any]:
        cached = self._cache.get(uri)
        if cached and time.monotonic() - cached[0] < self.cache_ttl:
            return cached[1]
        try:
            if self._http is not None:
                response = self._http.get(uri, timeout=self.timeout)
            else:
                response = httpx.get(uri, timeout=self.timeout)
            response.raise_for_status()
            jwks = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise JoseError(f"Could not fetch JWKS from {uri}: {exc}") from exc
        self._cache[uri] = (time.monotonic(), jwks)
        return jwks


def resolve_client_key(client: Client, alg: str, kid: str | None, fetcher: JwksFetcher) -> Any:
    """Key that verifies a token signed by *client* with *alg*."""
    kty = key_type_for(alg)
    if kty == "oct":
        if not client.client_secret:
            raise JoseError("Client has no secret for symmetric signatures")
        return client.client_secret
    if client.jwks:
        jwks = client.jwks
    elif client.jwks_uri:
        jwks = fetcher.fetch(client.jwks_uri)
    else:
        raise JoseError("Client has no registered keys")
    try:
        keyset = jwt.PyJWKSet.from_dict(jwks)
    except jwt.PyJWTError as exc:
        raise JoseError(f"Invalid client JWKS: {exc}") from exc
    for jwk in keyset.keys:
        if jwk.key_type != kty:
            continue
        if kid is None or jwk.key_id == kid:
            return jwk.key
    raise JoseError("No matching client key")
