# Grant type base class.
# Created: 2026-03-07

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from guardpost.context import ServerContext
from guardpost.exceptions import InvalidGrantError, InvalidRequestError, UnauthorizedClientError
from guardpost.models import Client, User
from guardpost.tokens import TokenIssuer

logger = logging.getLogger(__name__)


class GrantType(ABC):
    """Token endpoint state machine for one ``grant_type``."""

    name: str = ""

    def __init__(self, context: ServerContext, issuer: TokenIssuer):
        self.context = context
        self.issuer = issuer

    def check_client(self, client: Client) -> None:
        if self.name not in client.grant_types:
            raise UnauthorizedClientError(f"Client is not allowed to use the grant type {self.name}")

    @staticmethod
    def require(parameters: dict[str, str], name: str) -> str:
        value = parameters.get(name)
        if not value:
            raise InvalidRequestError(f"Missing parameter: {name}")
        return value

    def load_user(self, user_id: str) -> User:
        users = self.context.services.users
        if users is None:
            return User(user_id=user_id)
        user = users.find_one(user_id)
        if user is None:
            raise InvalidGrantError("Invalid User")
        return user

    @abstractmethod
    def handle(self, parameters: dict[str, str], client: Client) -> dict[str, Any]:
        """Exchange the grant for a token response."""
