# Engine endpoints.
# Created: 2026-03-09

from guardpost.endpoints.authorization import AuthorizationEndpoint
from guardpost.endpoints.base import Endpoint
from guardpost.endpoints.device_authorization import DeviceAuthorizationEndpoint
from guardpost.endpoints.discovery import DiscoveryEndpoint, JwksEndpoint
from guardpost.endpoints.end_session import EndSessionEndpoint
from guardpost.endpoints.interaction import InteractionEndpoint
from guardpost.endpoints.introspection import IntrospectionEndpoint
from guardpost.endpoints.registration import RegistrationEndpoint
from guardpost.endpoints.revocation import RevocationEndpoint
from guardpost.endpoints.token import TokenEndpoint
from guardpost.endpoints.userinfo import UserinfoEndpoint

__all__ = [
    "AuthorizationEndpoint",
    "DeviceAuthorizationEndpoint",
    "DiscoveryEndpoint",
    "EndSessionEndpoint",
    "Endpoint",
    "InteractionEndpoint",
    "IntrospectionEndpoint",
    "JwksEndpoint",
    "RegistrationEndpoint",
    "RevocationEndpoint",
    "TokenEndpoint",
    "UserinfoEndpoint",
]
