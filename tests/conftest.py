# Shared fixtures for the guardpost test suite.
# Created: 2026-03-15

import pytest

from guardpost.config import Settings
from guardpost.context import ServerContext, Services
from guardpost.jose import KeySet
from guardpost.models import Client, User
from guardpost.server import build_authorization_server
from guardpost.storage import MemoryStore

ISSUER = "https://auth.example.com"
REDIRECT_URI = "https://app.example.com/callback"
CLIENT_SECRET = "Zq4w9Lr0Xb2Nc7Vt5Ys1Hu8Jk3Mp6Qa-tS_eRdF0gA"

ALL_GRANTS = [
    "authorization_code",
    "client_credentials",
    "password",
    "refresh_token",
    "urn:ietf:params:oauth:grant-type:jwt-bearer",
    "urn:ietf:params:oauth:grant-type:device_code",
]


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    monkeypatch.setattr("guardpost.storage.BCRYPT_ROUNDS", 4)


@pytest.fixture(scope="session")
def keys():
    # RSA key generation is slow; one key set for the whole run
    return KeySet.generate(["RS256"])


@pytest.fixture
def settings():
    return Settings(issuer=ISSUER, secret_key="pairwise-test-salt", _env_file=None)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def context(settings, store, keys):
    return ServerContext(settings=settings, services=Services.in_memory(settings, store), keys=keys)


@pytest.fixture
def server(context):
    return build_authorization_server(context)


@pytest.fixture
def client(store):
    """Confidential client allowed to use every grant and response type."""
    return store.add_client(
        Client(
            client_id="web-app",
            client_name="Web App",
            client_secret=CLIENT_SECRET,
            redirect_uris=[REDIRECT_URI],
            grant_types=list(ALL_GRANTS),
            response_types=[
                "code",
                "id_token",
                "token",
                "code id_token",
                "code token",
                "id_token token",
                "code id_token token",
            ],
            scopes=["openid", "profile", "email", "offline_access", "foo", "bar", "baz"],
        )
    )


@pytest.fixture
def public_client(store):
    return store.add_client(
        Client(
            client_id="spa",
            client_name="Single Page App",
            redirect_uris=[REDIRECT_URI],
            grant_types=["authorization_code", "refresh_token", "client_credentials"],
            response_types=["code"],
            scopes=["openid", "profile"],
            authentication_method="none",
        )
    )


@pytest.fixture
def other_client(store):
    return store.add_client(
        Client(
            client_id="other-app",
            client_secret=CLIENT_SECRET,
            redirect_uris=["https://other.example.com/cb"],
            grant_types=["client_credentials"],
            response_types=[],
            scopes=["foo"],
        )
    )


@pytest.fixture
def user(store):
    return store.add_user(
        User(
            user_id="alice",
            username="alice",
            claims={
                "name": "Alice Liddell",
                "email": "alice@example.com",
                "email_verified": True,
                "phone_number": "+15550100",
            },
        ),
        password="wonderland",
    )
