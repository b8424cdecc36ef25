"""guardpost: an embeddable OAuth 2.0 / OpenID Connect authorization server engine."""

from guardpost.config import Settings, get_settings
from guardpost.context import ServerContext, Services
from guardpost.exceptions import OAuth2Error
from guardpost.http import HttpRequest, HttpResponse
from guardpost.server import AuthorizationServer, build_authorization_server

__all__ = [
    "AuthorizationServer",
    "HttpRequest",
    "HttpResponse",
    "OAuth2Error",
    "ServerContext",
    "Services",
    "Settings",
    "build_authorization_server",
    "get_settings",
]
