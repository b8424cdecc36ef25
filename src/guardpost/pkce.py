# PKCE verifiers (RFC 7636).
# Created: 2026-03-03

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from collections.abc import Callable, Iterable

from guardpost.exceptions import InvalidGrantError, InvalidRequestError

logger = logging.getLogger(__name__)

DEFAULT_METHOD = "plain"


def s256_challenge(verifier: str) -> str:
    """BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_plain(verifier: str, challenge: str) -> bool:
    return hmac.compare_digest(verifier.encode(), challenge.encode())


def verify_s256(verifier: str, challenge: str) -> bool:
    try:
        computed = s256_challenge(verifier)
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(computed.encode(), challenge.encode())


PKCE_VERIFIERS: dict[str, Callable[[str, str], bool]] = {
    "plain": verify_plain,
    "S256": verify_s256,
}


def build_pkce_registry(methods: Iterable[str]) -> dict[str, Callable[[str, str], bool]]:
    """Resolve the enabled PKCE method names into a verifier registry."""
    registry = {}
    for method in methods:
        if method not in PKCE_VERIFIERS:
            raise ValueError(f"Unsupported PKCE method: {method}")
        registry[method] = PKCE_VERIFIERS[method]
    return registry


def check_code_verifier(
    registry: dict[str, Callable[[str, str], bool]],
    verifier: str | None,
    challenge: str,
    method: str | None,
) -> None:
    """Raise ``invalid_grant`` unless *verifier* matches the stored challenge."""
    if not verifier:
        raise InvalidRequestError("Missing code_verifier")
    verify = registry.get(method or DEFAULT_METHOD)
    if verify is None:
        raise InvalidGrantError(f"Unsupported code_challenge_method: {method}")
    if not verify(verifier, challenge):
        logger.debug("PKCE verification failed (method=%s)", method or DEFAULT_METHOD)
        raise InvalidGrantError("Invalid code_verifier")
