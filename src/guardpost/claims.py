# The claims authorization request parameter (OIDC Core §5.5).
# Created: 2026-03-14

from __future__ import annotations

import json
import logging
from typing import Any

from guardpost.exceptions import InvalidRequestError

logger = logging.getLogger(__name__)


def parse_claims_request(value: str) -> dict[str, Any]:
    """Parse and check the shape of a ``claims`` request parameter.

    Each member is an object of claim names; each claim maps to null or to an
    options object where ``value`` and ``values`` are mutually exclusive and
    ``values`` is an array.
    """
    try:
        claims = json.loads(value)
    except ValueError:
        raise InvalidRequestError("Invalid parameter: claims") from None
    if not isinstance(claims, dict):
        raise InvalidRequestError("The claims parameter is not a JSON object")
    for target, requested in claims.items():
        if not isinstance(requested, dict):
            raise InvalidRequestError(f"The claims member {target} is not a JSON object")
        for name, options in requested.items():
            if options is None:
                continue
            if not isinstance(options, dict):
                raise InvalidRequestError(f"The options of the claim {target}.{name} are not a JSON object")
            if "value" in options and "values" in options:
                raise InvalidRequestError(f"The claim {target}.{name} cannot have both value and values")
            if "values" in options and not isinstance(options["values"], list):
                raise InvalidRequestError(f"The values of the claim {target}.{name} must be an array")
    logger.debug("Claims requested for %s", ", ".join(sorted(claims)) or "nothing")
    return claims


def requested_claims(claims: dict[str, Any] | None, target: str) -> list[str] | None:
    """Names of the claims requested for *target* (``id_token`` or ``userinfo``)."""
    if not claims or not claims.get(target):
        return None
    return list(claims[target])
