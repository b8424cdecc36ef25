# End session endpoint (OIDC RP-Initiated Logout 1.0).
# Created: 2026-03-14
#
# The client names the session it wants ended with an id_token_hint issued
# to it. Ending the session notifies the session's other clients over the
# back channel; the browser then goes to the client's registered
# post_logout_redirect_uri, or to the server's own post-logout page.

from __future__ import annotations

import logging
from typing import Any

from guardpost.context import ServerContext
from guardpost.endpoints.authorization import SESSION_COOKIE
from guardpost.endpoints.base import Endpoint
from guardpost.exceptions import InvalidClientError, InvalidRequestError, OAuth2Error
from guardpost.http import HttpRequest, HttpResponse, append_to_url
from guardpost.jose import JoseError
from guardpost.logout import BackchannelLogout
from guardpost.models import Client, Session, User
from guardpost.tokens import subject_identifier, verify_id_token_hint

logger = logging.getLogger(__name__)


class EndSessionEndpoint(Endpoint):
    name = "end_session"
    path = "/oauth/end_session"
    methods = ("GET", "POST")

    def __init__(
        self,
        context: ServerContext,
        backchannel: BackchannelLogout | None = None,
        path: str | None = None,
    ):
        super().__init__(context, path)
        self.backchannel = backchannel or BackchannelLogout(context)

    def handle(self, request: HttpRequest) -> HttpResponse:
        parameters = request.parameters
        state = parameters.get("state")
        try:
            client = self.find_client(parameters)
            redirect_uri = self.post_logout_redirect_uri(parameters, client)
            hint = self.check_id_token_hint(parameters, client)
            session = self.current_session(request)
            if session is not None:
                self.end_session(session, client, hint)
        except OAuth2Error as exc:
            return self.error_page(exc.with_state(state))

        if redirect_uri is None:
            url = self.settings.url_for(self.settings.post_logout_path)
        else:
            url = append_to_url(redirect_uri, {"state": state})
        return HttpResponse().redirect(url).set_cookie(SESSION_COOKIE, None)

    def find_client(self, parameters: dict[str, str]) -> Client:
        client_id = parameters.get("client_id")
        if not client_id:
            raise InvalidRequestError("Missing parameter: client_id")
        client = self.services.clients.find_one(client_id)
        if client is None:
            raise InvalidClientError("Invalid Client")
        return client

    @staticmethod
    def post_logout_redirect_uri(parameters: dict[str, str], client: Client) -> str | None:
        uri = parameters.get("post_logout_redirect_uri")
        if not uri:
            return None
        if uri not in client.post_logout_redirect_uris:
            raise InvalidRequestError("Invalid Post Logout Redirect URI")
        return uri

    def check_id_token_hint(self, parameters: dict[str, str], client: Client) -> dict[str, Any]:
        hint = parameters.get("id_token_hint")
        if not hint:
            raise InvalidRequestError("Missing parameter: id_token_hint")
        try:
            return verify_id_token_hint(self.context, hint, client)
        except JoseError as exc:
            logger.debug("Rejected id_token_hint for %s: %s", client.client_id, exc)
            raise InvalidRequestError("Invalid id_token_hint") from None

    def current_session(self, request: HttpRequest) -> Session | None:
        session_id = request.cookies.get(SESSION_COOKIE)
        session = self.services.sessions.find_one(session_id) if session_id else None
        if session is not None and session.is_expired():
            self.services.sessions.remove(session)
            return None
        return session

    def end_session(self, session: Session, client: Client, hint: dict[str, Any]) -> None:
        users = self.services.users
        user = users.find_one(session.user_id) if users is not None else User(user_id=session.user_id)
        if user is None:
            self.services.sessions.remove(session)
            return
        matches = (
            hint.get("sub") == subject_identifier(user, client, self.settings.secret_key)
            and hint.get("sid", session.session_id) == session.session_id
        )
        if not matches:
            raise InvalidRequestError("The id_token_hint does not match the current session")

        self.services.sessions.remove(session)
        notified = self.backchannel.notify(session, user)
        logger.info("Session of %s ended by %s", user.user_id, client.client_id)
        self.context.audit.log_session_event(
            "session_ended", user.user_id, session.session_id, client_id=client.client_id, notified=notified
        )
