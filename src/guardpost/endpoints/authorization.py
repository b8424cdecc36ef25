# Authorization endpoint (RFC 6749 §3.1, OIDC Core §3).
# Created: 2026-03-12
#
# Request flow:
#   1. trust the client and its redirect_uri (errors here never redirect)
#   2. validate response_type / response_mode / scope / prompt
#   3. resolve the end user: session cookie, else the in-flight Grant,
#      then apply max_age and id_token_hint to that session
#   4. hand off to the login / consent pages when needed
#   5. issue the authorization response through the response mode

from __future__ import annotations

import logging
from datetime import timedelta

from guardpost.claims import parse_claims_request
from guardpost.context import ServerContext
from guardpost.endpoints.base import Endpoint
from guardpost.exceptions import (
    ConsentRequiredError,
    InvalidClientError,
    InvalidRequestError,
    LoginRequiredError,
    OAuth2Error,
    ServerError,
    UnauthorizedClientError,
    UnsupportedResponseTypeError,
    error_from_code,
)
from guardpost.http import HttpRequest, HttpResponse, append_to_url
from guardpost.jose import JoseError
from guardpost.models import Client, Grant, Session, User, utcnow
from guardpost.response_modes import FORMATTERS, ResponseMode, resolve_response_mode
from guardpost.response_types import ResponseType, normalize_response_type
from guardpost.scopes import get_allowed_scopes
from guardpost.tokens import subject_identifier, verify_id_token_hint

logger = logging.getLogger(__name__)

SESSION_COOKIE = "guardpost:session"
GRANT_COOKIE = "guardpost:grant"

PROMPT_VALUES = ("none", "login", "consent", "select_account")


class AuthorizationEndpoint(Endpoint):
    name = "authorization"
    path = "/oauth/authorize"
    methods = ("GET", "POST")

    def __init__(
        self,
        context: ServerContext,
        response_types: dict[str, ResponseType],
        response_modes: dict[str, ResponseMode],
        path: str | None = None,
    ):
        super().__init__(context, path)
        self.response_types = response_types
        self.response_modes = response_modes

    def handle(self, request: HttpRequest) -> HttpResponse:
        parameters = dict(request.parameters)
        try:
            client, redirect_uri = self.trusted_client(parameters)
        except OAuth2Error as exc:
            return self.error_page(exc)
        parameters["redirect_uri"] = redirect_uri

        mode: ResponseMode | None = None
        try:
            response_type = self.get_response_type(parameters, client)
            mode = resolve_response_mode(
                self.context,
                self.response_modes,
                parameters.get("response_mode"),
                response_type.default_response_mode,
            )
            if response_type.front_channel_tokens and mode.name == "query":
                raise InvalidRequestError(f"The response type {response_type.name} cannot use the query response mode")
            scopes = get_allowed_scopes(client, parameters.get("scope"))
            response_type.validate(parameters, client, scopes)
            prompts = self.get_prompts(parameters)
            max_age = self.get_max_age(parameters)
            self.check_claims_parameter(parameters)
            return self.authorize(request, parameters, client, response_type, mode, scopes, prompts, max_age)
        except OAuth2Error as exc:
            exc.with_state(parameters.get("state"))
            if self.settings.enable_authorization_response_issuer_identifier:
                exc.set_parameter("iss", self.settings.issuer)
            mode = mode or self.fallback_mode(parameters)
            logger.debug("Authorization request for %s failed: %s", client.client_id, exc.error)
            response = mode.create_http_response(redirect_uri, exc.to_dict(), client)
            return response.set_cookie(GRANT_COOKIE, None)

    # Validation

    def trusted_client(self, parameters: dict[str, str]) -> tuple[Client, str]:
        client_id = parameters.get("client_id")
        if not client_id:
            raise InvalidRequestError("Missing parameter: client_id")
        client = self.services.clients.find_one(client_id)
        if client is None:
            raise InvalidClientError("Invalid Client")

        redirect_uri = parameters.get("redirect_uri")
        if not redirect_uri:
            if len(client.redirect_uris) != 1:
                raise InvalidRequestError("Missing parameter: redirect_uri")
            redirect_uri = client.redirect_uris[0]
        if redirect_uri not in client.redirect_uris:
            raise InvalidRequestError("Invalid Redirect URI")
        return client, redirect_uri

    def get_response_type(self, parameters: dict[str, str], client: Client) -> ResponseType:
        name = normalize_response_type(parameters.get("response_type"))
        if not name:
            raise InvalidRequestError("Missing parameter: response_type")
        response_type = self.response_types.get(name)
        if response_type is None:
            raise UnsupportedResponseTypeError(f"Unsupported response_type: {name}")
        if name not in (normalize_response_type(rt) for rt in client.response_types):
            raise UnauthorizedClientError(f"Client is not allowed to use the response type {name}")
        return response_type

    @staticmethod
    def get_prompts(parameters: dict[str, str]) -> set[str]:
        prompts = set((parameters.get("prompt") or "").split())
        unknown = prompts - set(PROMPT_VALUES)
        if unknown:
            raise InvalidRequestError(f"Unsupported prompt: {' '.join(sorted(unknown))}")
        if "none" in prompts and len(prompts) > 1:
            raise InvalidRequestError("The prompt none must be used alone")
        return prompts

    @staticmethod
    def get_max_age(parameters: dict[str, str]) -> int | None:
        value = parameters.get("max_age")
        if not value:
            return None
        if not value.isdigit():
            raise InvalidRequestError("Invalid parameter: max_age")
        return int(value)

    def check_claims_parameter(self, parameters: dict[str, str]) -> None:
        value = parameters.get("claims")
        if not value:
            return
        if not self.settings.enable_claims_parameter:
            raise InvalidRequestError("The claims parameter is not supported")
        parse_claims_request(value)

    def fallback_mode(self, parameters: dict[str, str]) -> ResponseMode:
        """Response mode for errors raised before one could be resolved."""
        names = set((parameters.get("response_type") or "").split())
        base = "fragment" if names & {"token", "id_token"} else "query"
        return self.response_modes.get(base) or ResponseMode(self.context, base, FORMATTERS[base])

    # User interaction

    def authorize(
        self,
        request: HttpRequest,
        parameters: dict[str, str],
        client: Client,
        response_type: ResponseType,
        mode: ResponseMode,
        scopes: list[str],
        prompts: set[str],
        max_age: int | None = None,
    ) -> HttpResponse:
        services = self.services
        if services.grants is None or services.sessions is None or services.consents is None:
            raise ServerError("Interactive authorization is not available")

        grant = self.find_grant(request, client)
        if grant is not None and grant.denied:
            services.grants.remove(grant)
            raise error_from_code(grant.error or "access_denied", grant.error_description)

        session = self.check_max_age(self.find_session(request, grant, prompts), grant, max_age)
        user = self.find_user(session)
        if session is not None and user is not None and parameters.get("id_token_hint"):
            self.check_id_token_hint(parameters["id_token_hint"], client, session, user)
        if session is None or user is None:
            if "none" in prompts:
                raise LoginRequiredError("The end user is not authenticated")
            return self.interaction_redirect(parameters, client, grant, "login")

        consent = services.consents.find_one(client.client_id, user.user_id)
        consent_given = grant is not None and grant.consent_id is not None
        if "consent" in prompts and not consent_given:
            consent = None
        if consent is None or consent.is_expired() or not consent.covers(scopes):
            if "none" in prompts:
                raise ConsentRequiredError("The end user has not consented to the requested scopes")
            return self.interaction_redirect(parameters, client, grant, "consent", session)

        result = response_type.create_authorization_response(parameters, client, user, scopes, session)
        if self.settings.enable_authorization_response_issuer_identifier:
            result["iss"] = self.settings.issuer
        if grant is not None:
            services.grants.remove(grant)
        if client.client_id not in session.client_ids:
            session.client_ids.append(client.client_id)
            services.sessions.save(session)
        logger.debug("Authorization response issued to %s (%s)", client.client_id, response_type.name)
        response = mode.create_http_response(parameters["redirect_uri"], result, client)
        return response.set_cookies({SESSION_COOKIE: session.session_id, GRANT_COOKIE: None})

    def find_grant(self, request: HttpRequest, client: Client) -> Grant | None:
        grant_id = request.cookies.get(GRANT_COOKIE)
        if not grant_id:
            return None
        grant = self.services.grants.find_one(grant_id)
        if grant is None or grant.client_id != client.client_id:
            return None
        if grant.is_expired():
            self.services.grants.remove(grant)
            return None
        return grant

    def find_session(self, request: HttpRequest, grant: Grant | None, prompts: set[str]) -> Session | None:
        sessions = self.services.sessions
        if grant is not None and grant.session_id is not None:
            return sessions.find_one(grant.session_id)
        if "login" in prompts:
            return None
        session_id = request.cookies.get(SESSION_COOKIE)
        session = sessions.find_one(session_id) if session_id else None
        if session is not None and session.is_expired():
            sessions.remove(session)
            return None
        return session

    def check_max_age(self, session: Session | None, grant: Grant | None, max_age: int | None) -> Session | None:
        """Drop a session older than *max_age* seconds.

        A session established through the grant being resumed was checked
        (or created) during this request's interactions already.
        """
        if session is None or max_age is None:
            return session
        if grant is not None and grant.session_id == session.session_id:
            return session
        if utcnow() >= session.created_at + timedelta(seconds=max_age):
            logger.debug("Session %s is older than max_age=%d", session.session_id, max_age)
            self.services.sessions.remove(session)
            return None
        return session

    def check_id_token_hint(self, hint: str, client: Client, session: Session, user: User) -> None:
        """The hint must name the authenticated end user; otherwise the session ends."""
        try:
            claims = verify_id_token_hint(self.context, hint, client)
        except JoseError as exc:
            logger.debug("Rejected id_token_hint for %s: %s", client.client_id, exc)
            claims = {}
        matches = (
            claims.get("sub") == subject_identifier(user, client, self.settings.secret_key)
            and claims.get("sid", session.session_id) == session.session_id
        )
        if not matches:
            self.services.sessions.remove(session)
            raise LoginRequiredError("The id_token_hint does not match the authenticated end user")

    def find_user(self, session: Session | None) -> User | None:
        if session is None:
            return None
        if self.services.users is None:
            return User(user_id=session.user_id)
        return self.services.users.find_one(session.user_id)

    def interaction_redirect(
        self,
        parameters: dict[str, str],
        client: Client,
        grant: Grant | None,
        interaction: str,
        session: Session | None = None,
    ) -> HttpResponse:
        grants = self.services.grants
        if grant is None:
            grant = grants.create(parameters, client)
        if session is not None and grant.session_id is None:
            grant.session_id = session.session_id
            grants.save(grant)
        if interaction == "login":
            url = append_to_url(
                self.settings.url_for(self.settings.login_path), {"login_challenge": grant.login_challenge}
            )
        else:
            url = append_to_url(
                self.settings.url_for(self.settings.consent_path), {"consent_challenge": grant.consent_challenge}
            )
        return HttpResponse().redirect(url).set_cookie(GRANT_COOKIE, grant.grant_id)
