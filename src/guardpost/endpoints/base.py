# Endpoint base class.
# Created: 2026-03-09

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from guardpost.context import ServerContext
from guardpost.exceptions import OAuth2Error, ServerError
from guardpost.http import HttpRequest, HttpResponse, append_to_url
from guardpost.models import AccessToken, RefreshToken

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


class Endpoint(ABC):
    name: str = ""
    path: str = ""
    methods: tuple[str, ...] = ("GET",)

    def __init__(self, context: ServerContext, path: str | None = None):
        self.context = context
        self.settings = context.settings
        self.services = context.services
        if path is not None:
            self.path = path

    @property
    def url(self) -> str:
        return self.settings.url_for(self.path)

    @abstractmethod
    def handle(self, request: HttpRequest) -> HttpResponse:
        ...

    def dispatch(self, request: HttpRequest) -> HttpResponse:
        """Run the endpoint, rendering any failure as an error response."""
        try:
            return self.handle(request)
        except OAuth2Error as exc:
            return self.error_response(exc)
        except Exception:
            logger.exception("Unhandled error in the %s endpoint", self.name)
            return self.error_response(ServerError("An unexpected error occurred."))

    def error_response(self, exc: OAuth2Error) -> HttpResponse:
        response = HttpResponse(status_code=exc.status_code, headers={**NO_STORE, **exc.headers})
        body = exc.to_dict()
        body.pop("state", None)
        return response.json(body)

    def error_page(self, exc: OAuth2Error) -> HttpResponse:
        """Send the browser to the server's error page when it cannot go back to the client."""
        logger.info("%s request refused: %s (%s)", self.name, exc.error, exc.description)
        if self.settings.error_path:
            url = append_to_url(self.settings.url_for(self.settings.error_path), exc.to_dict())
            return HttpResponse().redirect(url)
        return self.error_response(exc).set_status(400)

    def json_response(self, body: Any, status_code: int = 200, cache: bool = False) -> HttpResponse:
        headers = {} if cache else dict(NO_STORE)
        return HttpResponse(status_code=status_code, headers=headers).json(body)


class TokenLookup:
    """Finds a token by handle for introspection and revocation.

    An absent or unrecognized ``token_type_hint`` searches every kind.
    """

    def __init__(self, context: ServerContext, include_refresh_tokens: bool):
        self.context = context
        self.include_refresh_tokens = include_refresh_tokens

    def find(self, handle: str, hint: str | None) -> AccessToken | RefreshToken | None:
        services = self.context.services
        finders = [services.access_tokens.find_one]
        if self.include_refresh_tokens and services.refresh_tokens is not None:
            if hint == "refresh_token":
                finders.insert(0, services.refresh_tokens.find_one)
            else:
                finders.append(services.refresh_tokens.find_one)
        for finder in finders:
            token = finder(handle)
            if token is not None:
                return token
        return None
