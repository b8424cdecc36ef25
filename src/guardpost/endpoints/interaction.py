# Login / consent / device verification hand-off for the host UI.
# Created: 2026-03-12
#
# The host application renders the login and consent pages. It reads the
# pending request with GET and reports the end user's decision with POST; the
# response tells it where to send the browser next. Challenges are the only
# credential here, so this endpoint belongs behind the host's own access
# control.

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

from pydantic import ValidationError

from guardpost.context import ServerContext
from guardpost.endpoints.base import Endpoint
from guardpost.exceptions import InvalidRequestError, InvalidScopeError, ServerError
from guardpost.http import HttpRequest, HttpResponse
from guardpost.models import DEVICE_PENDING, Client, Grant
from guardpost.schemas import InteractionDecision
from guardpost.scopes import join_scope, split_scope

logger = logging.getLogger(__name__)


class InteractionEndpoint(Endpoint):
    name = "interaction"
    path = "/oauth/interaction"
    methods = ("GET", "POST")

    def __init__(self, context: ServerContext, authorization_path: str, path: str | None = None):
        super().__init__(context, path)
        self.authorization_path = authorization_path

    def handle(self, request: HttpRequest) -> HttpResponse:
        if request.method == "GET":
            return self.json_response(self.describe(request.query))
        payload = request.json if request.json is not None else request.form
        try:
            decision = InteractionDecision.model_validate(payload)
        except ValidationError as exc:
            error = exc.errors()[0]
            raise InvalidRequestError(f"{'.'.join(map(str, error['loc']))}: {error['msg']}") from None
        if decision.interaction_type == "device":
            return self.json_response(self.decide_device(decision))
        grant = self.find_grant(decision.interaction_type, decision.challenge)
        if decision.interaction_type == "login":
            self.decide_login(grant, decision)
        else:
            self.decide_consent(grant, decision)
        self.services.grants.save(grant)
        return self.json_response({"redirect_to": self.authorization_url(grant)})

    def authorization_url(self, grant: Grant) -> str:
        return f"{self.settings.url_for(self.authorization_path)}?{urlencode(grant.parameters)}"

    def find_grant(self, interaction_type: str, challenge: str | None) -> Grant:
        grants = self.services.grants
        if grants is None:
            raise ServerError("Interactive authorization is not available")
        if not challenge:
            raise InvalidRequestError("Missing parameter: challenge")
        if interaction_type == "login":
            grant = grants.find_by_login_challenge(challenge)
        else:
            grant = grants.find_by_consent_challenge(challenge)
        if grant is None or grant.is_expired():
            raise InvalidRequestError("Invalid or expired challenge")
        return grant

    def client_summary(self, client_id: str) -> dict[str, Any]:
        client: Client | None = self.services.clients.find_one(client_id)
        if client is None:
            raise InvalidRequestError("Invalid Client")
        summary = {
            "client_id": client.client_id,
            "client_name": client.client_name,
            "client_uri": client.client_uri,
            "logo_uri": client.logo_uri,
        }
        return {k: v for k, v in summary.items() if v}

    def describe(self, query: dict[str, str]) -> dict[str, Any]:
        interaction_type = query.get("interaction_type", "login")
        if interaction_type == "device":
            device_code = self.find_device_code(query.get("user_code"))
            return {
                "interaction_type": "device",
                "client": self.client_summary(device_code.client_id),
                "requested_scope": device_code.scopes,
                "expires_at": device_code.expires_at.isoformat(),
            }
        if interaction_type not in ("login", "consent"):
            raise InvalidRequestError(f"Unsupported interaction_type: {interaction_type}")
        challenge = query.get(f"{interaction_type}_challenge") or query.get("challenge")
        grant = self.find_grant(interaction_type, challenge)
        if interaction_type == "login":
            skip = grant.session_id is not None
        else:
            skip = grant.consent_id is not None
        return {
            "interaction_type": interaction_type,
            "challenge": challenge,
            "skip": skip,
            "client": self.client_summary(grant.client_id),
            "request_url": self.authorization_url(grant),
            "requested_scope": split_scope(grant.parameters.get("scope")),
            "login_hint": grant.parameters.get("login_hint"),
        }

    def deny(self, grant: Grant, decision: InteractionDecision) -> None:
        grant.denied = True
        grant.error = decision.error or "access_denied"
        grant.error_description = decision.error_description or "The end user denied the request"

    def decide_login(self, grant: Grant, decision: InteractionDecision) -> None:
        if decision.decision == "deny":
            self.deny(grant, decision)
            return
        if not decision.subject:
            raise InvalidRequestError("Missing parameter: subject")
        users = self.services.users
        user = users.find_one(decision.subject) if users is not None else None
        if user is None:
            raise InvalidRequestError("Unknown subject")
        session = self.services.sessions.create(user, amr=decision.amr, acr=decision.acr)
        grant.session_id = session.session_id
        logger.debug("Login accepted for grant %s", grant.grant_id)

    def decide_consent(self, grant: Grant, decision: InteractionDecision) -> None:
        if decision.decision == "deny":
            self.deny(grant, decision)
            return
        session = self.services.sessions.find_one(grant.session_id) if grant.session_id else None
        if session is None:
            raise InvalidRequestError("The login interaction has not been completed")
        user = self.services.users.find_one(session.user_id) if self.services.users else None
        client = self.services.clients.find_one(grant.client_id)
        if user is None or client is None:
            raise InvalidRequestError("Invalid grant state")

        requested = split_scope(grant.parameters.get("scope")) or list(client.scopes)
        granted = split_scope(decision.grant_scope) if decision.grant_scope is not None else requested
        extra = [scope for scope in granted if scope not in requested]
        if extra:
            raise InvalidScopeError(f"Scope was not requested: {extra[0]}")
        consent = self.services.consents.create(client, user, granted)
        grant.consent_id = consent.consent_id
        grant.parameters["scope"] = join_scope(granted)

    def find_device_code(self, user_code: str | None):
        device_codes = self.services.device_codes
        if device_codes is None:
            raise ServerError("Device authorization is not available")
        if not user_code:
            raise InvalidRequestError("Missing parameter: user_code")
        device_code = device_codes.find_by_user_code(user_code)
        if device_code is None or device_code.is_expired() or device_code.is_authorized is not DEVICE_PENDING:
            raise InvalidRequestError("Invalid or expired user code")
        return device_code

    def decide_device(self, decision: InteractionDecision) -> dict[str, Any]:
        device_code = self.find_device_code(decision.challenge)
        user = None
        if decision.decision == "accept":
            if not decision.subject or self.services.users is None:
                raise InvalidRequestError("Missing parameter: subject")
            user = self.services.users.find_one(decision.subject)
            if user is None:
                raise InvalidRequestError("Unknown subject")
        self.services.device_codes.decide(device_code, user, decision.decision == "accept")
        logger.debug("Device decision for %s: %s", device_code.client_id, decision.decision)
        return {"status": "authorized" if user is not None else "denied"}
