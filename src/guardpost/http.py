# Abstract HTTP request/response model.
# Created: 2026-03-02
#
# The engine only speaks these two types. Web framework bindings (see
# guardpost.api) translate to and from them.

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode


def _lower_keys(headers: dict[str, str] | None) -> dict[str, str]:
    return {k.lower(): v for k, v in (headers or {}).items()}


@dataclass
class HttpRequest:
    """An incoming HTTP request, already parsed by the transport binding."""

    method: str = "GET"
    path: str = "/"
    query: dict[str, str] = field(default_factory=dict)
    form: dict[str, str] = field(default_factory=dict)
    json: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.headers = _lower_keys(self.headers)

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    @property
    def parameters(self) -> dict[str, str]:
        """Query parameters for GET requests, form parameters otherwise."""
        return self.query if self.method == "GET" else self.form


@dataclass
class HttpResponse:
    """An outgoing HTTP response.

    ``cookies`` maps a cookie name to its new value; ``None`` deletes the cookie.
    """

    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: str | bytes = b""
    cookies: dict[str, str | None] = field(default_factory=dict)

    def set_status(self, status_code: int) -> HttpResponse:
        self.status_code = status_code
        return self

    def set_headers(self, headers: dict[str, str]) -> HttpResponse:
        self.headers.update(headers)
        return self

    def set_cookie(self, name: str, value: str | None) -> HttpResponse:
        self.cookies[name] = value
        return self

    def set_cookies(self, cookies: dict[str, str | None]) -> HttpResponse:
        self.cookies.update(cookies)
        return self

    def json(self, data: Any) -> HttpResponse:
        self.headers["Content-Type"] = "application/json"
        self.body = json.dumps(data)
        return self

    def html(self, html: str) -> HttpResponse:
        self.headers["Content-Type"] = "text/html; charset=UTF-8"
        self.body = html
        return self

    def jwt(self, token: str) -> HttpResponse:
        self.headers["Content-Type"] = "application/jwt"
        self.body = token
        return self

    def redirect(self, url: str, status_code: int = 303) -> HttpResponse:
        self.status_code = status_code
        self.headers["Location"] = url
        return self

    def json_body(self) -> Any:
        """Decode a JSON body (mostly useful in tests)."""
        raw = self.body.decode() if isinstance(self.body, bytes) else self.body
        return json.loads(raw) if raw else None


def append_to_url(url: str, parameters: dict[str, Any], *, fragment: bool = False) -> str:
    """Append *parameters* to the query (or fragment) of *url*."""
    encoded = urlencode({k: v for k, v in parameters.items() if v is not None})
    if not encoded:
        return url
    if fragment:
        base, _, existing = url.partition("#")
        return f"{base}#{existing + '&' if existing else ''}{encoded}"
    base, hash_sign, frag = url.partition("#")
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{encoded}{hash_sign}{frag}"
