# Back-channel logout delivery (OIDC Back-Channel Logout 1.0).
# Created: 2026-03-14
#
# Delivery is best effort: a client that cannot be reached is logged and
# skipped, it never blocks the end user's logout.

from __future__ import annotations

import logging

import httpx

from guardpost.context import ServerContext
from guardpost.exceptions import ServerError
from guardpost.models import Client, Session, User
from guardpost.tokens import logout_token

logger = logging.getLogger(__name__)


class BackchannelLogout:
    """Posts logout tokens to the clients that took part in a session."""

    def __init__(self, context: ServerContext, http: httpx.Client | None = None):
        self.context = context
        self.timeout = context.settings.backchannel_logout_timeout
        self._http = http

    def notify(self, session: Session, user: User) -> list[str]:
        """Send a logout token to every client of *session*. Returns the clients that accepted it."""
        notified = []
        for client_id in session.client_ids:
            client = self.context.services.clients.find_one(client_id)
            if client is None or not client.backchannel_logout_uri:
                continue
            try:
                token = logout_token(self.context, client, user, session.session_id)
            except ServerError:
                continue
            if self.deliver(client, token):
                notified.append(client.client_id)
        return notified

    def deliver(self, client: Client, token: str) -> bool:
        uri = client.backchannel_logout_uri
        data = {"logout_token": token}
        try:
            if self._http is not None:
                response = self._http.post(uri, data=data, timeout=self.timeout)
            else:
                response = httpx.post(uri, data=data, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.warning("Back-channel logout to %s failed: %s", client.client_id, exc)
            return False
        if response.status_code != 200:
            logger.warning("Back-channel logout to %s returned HTTP %d", client.client_id, response.status_code)
            return False
        return True
