# OAuth2 error taxonomy.
# Created: 2026-03-02
#
# Every protocol failure is an OAuth2Error subclass keyed by its standardized
# error code. Endpoints are the only place that render them.

from __future__ import annotations

from typing import Any


class OAuth2Error(Exception):
    """Base class for all OAuth 2.0 / OpenID Connect protocol errors."""

    error: str = "server_error"
    status_code: int = 400

    def __init__(
        self,
        description: str | None = None,
        *,
        state: str | None = None,
        uri: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(description or self.error)
        self.description = description
        self.state = state
        self.uri = uri
        self.headers: dict[str, str] = dict(headers or {})
        self.parameters: dict[str, Any] = {}

    def with_state(self, state: str | None) -> OAuth2Error:
        if state is not None and self.state is None:
            self.state = state
        return self

    def set_parameter(self, name: str, value: Any) -> OAuth2Error:
        """Attach an extra response parameter (e.g. ``iss``)."""
        self.parameters[name] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Error body / redirect parameters with nullish values dropped."""
        body: dict[str, Any] = {
            "error": self.error,
            "error_description": self.description,
            "error_uri": self.uri,
            "state": self.state,
            **self.parameters,
        }
        return {k: v for k, v in body.items() if v is not None}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(error={self.error!r}, description={self.description!r})"


class InvalidRequestError(OAuth2Error):
    error = "invalid_request"


class InvalidClientError(OAuth2Error):
    error = "invalid_client"
    status_code = 401


class InvalidGrantError(OAuth2Error):
    error = "invalid_grant"


class UnauthorizedClientError(OAuth2Error):
    error = "unauthorized_client"


class UnsupportedGrantTypeError(OAuth2Error):
    error = "unsupported_grant_type"


class InvalidScopeError(OAuth2Error):
    error = "invalid_scope"


class AccessDeniedError(OAuth2Error):
    error = "access_denied"


class UnsupportedResponseTypeError(OAuth2Error):
    error = "unsupported_response_type"


class ServerError(OAuth2Error):
    error = "server_error"
    status_code = 500


class TemporarilyUnavailableError(OAuth2Error):
    error = "temporarily_unavailable"
    status_code = 503


class InvalidTokenError(OAuth2Error):
    error = "invalid_token"
    status_code = 401


class InsufficientScopeError(OAuth2Error):
    error = "insufficient_scope"
    status_code = 403


class SlowDownError(OAuth2Error):
    error = "slow_down"


class AuthorizationPendingError(OAuth2Error):
    error = "authorization_pending"


class ExpiredTokenError(OAuth2Error):
    error = "expired_token"


# OpenID Connect / RFC 7009 / RFC 7591 codes used by the supplemented endpoints.


class LoginRequiredError(OAuth2Error):
    error = "login_required"


class ConsentRequiredError(OAuth2Error):
    error = "consent_required"


class UnsupportedTokenTypeError(OAuth2Error):
    error = "unsupported_token_type"


class InvalidRedirectUriError(OAuth2Error):
    error = "invalid_redirect_uri"


class InvalidClientMetadataError(OAuth2Error):
    error = "invalid_client_metadata"


ERRORS_BY_CODE: dict[str, type[OAuth2Error]] = {
    cls.error: cls
    for cls in (
        InvalidRequestError,
        InvalidClientError,
        InvalidGrantError,
        UnauthorizedClientError,
        UnsupportedGrantTypeError,
        InvalidScopeError,
        AccessDeniedError,
        UnsupportedResponseTypeError,
        ServerError,
        TemporarilyUnavailableError,
        InvalidTokenError,
        InsufficientScopeError,
        SlowDownError,
        AuthorizationPendingError,
        ExpiredTokenError,
        LoginRequiredError,
        ConsentRequiredError,
        UnsupportedTokenTypeError,
        InvalidRedirectUriError,
        InvalidClientMetadataError,
    )
}


def error_from_code(code: str, description: str | None = None, **kwargs: Any) -> OAuth2Error:
    """Instantiate the error class for a standardized code (unknown codes become server_error)."""
    cls = ERRORS_BY_CODE.get(code, ServerError)
    return cls(description, **kwargs)
