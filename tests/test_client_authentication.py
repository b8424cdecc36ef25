# Tests for client authentication at the Token endpoint.
# Created: 2026-03-16

import base64
import time
import uuid
from urllib.parse import quote

import jwt
import pytest

from conftest import CLIENT_SECRET, ISSUER
from guardpost.client_authentication import JWT_BEARER_ASSERTION_TYPE, build_client_authenticator
from guardpost.exceptions import InvalidClientError
from guardpost.http import HttpRequest
from guardpost.jose import SigningKey, generate_private_key
from guardpost.models import Client

TOKEN_URL = f"{ISSUER}/oauth/token"

# ===== helpers =====


def _basic_auth(client_id: str, secret: str) -> str:
    raw = f"{quote(client_id, safe='')}:{quote(secret, safe='')}"
    return "Basic " + base64.b64encode(raw.encode()).decode()


def _token_request(form: dict, headers: dict | None = None) -> HttpRequest:
    return HttpRequest(method="POST", path="/oauth/token", form=form, headers=headers or {})


def _assertion(client_id: str, key, alg: str, **overrides) -> str:
    now = int(time.time())
    claims = {
        "iss": client_id,
        "sub": client_id,
        "aud": TOKEN_URL,
        "iat": now,
        "exp": now + 60,
        "jti": str(uuid.uuid4()),
    }
    claims.update(overrides)
    return jwt.encode(claims, key, algorithm=alg)


def _assertion_form(assertion: str, **extra) -> dict:
    form = {
        "grant_type": "client_credentials",
        "client_assertion_type": JWT_BEARER_ASSERTION_TYPE,
        "client_assertion": assertion,
    }
    form.update(extra)
    return form


@pytest.fixture
def authenticator(context):
    return build_client_authenticator(context, [ISSUER, TOKEN_URL])


@pytest.fixture
def post_client(store):
    return store.add_client(
        Client(
            client_id="post-app",
            client_secret=CLIENT_SECRET,
            grant_types=["client_credentials"],
            scopes=["foo"],
            authentication_method="client_secret_post",
        )
    )


@pytest.fixture
def jwt_client(store):
    return store.add_client(
        Client(
            client_id="jwt-app",
            client_secret=CLIENT_SECRET,
            grant_types=["client_credentials"],
            scopes=["foo"],
            authentication_method="client_secret_jwt",
        )
    )


@pytest.fixture(scope="module")
def client_key():
    return SigningKey(kid="client-key-1", alg="RS256", private_key=generate_private_key("RS256"))


@pytest.fixture
def key_client(store, client_key):
    return store.add_client(
        Client(
            client_id="key-app",
            grant_types=["client_credentials"],
            scopes=["foo"],
            authentication_method="private_key_jwt",
            jwks={"keys": [client_key.public_jwk()]},
        )
    )


# ===== secret based =====


class TestClientSecretBasic:
    def test_valid(self, authenticator, client):
        request = _token_request({}, {"Authorization": _basic_auth("web-app", CLIENT_SECRET)})
        assert authenticator.authenticate(request) is client

    def test_wrong_secret_sets_challenge(self, authenticator, client):
        request = _token_request({}, {"Authorization": _basic_auth("web-app", "wrong")})
        with pytest.raises(InvalidClientError) as exc_info:
            authenticator.authenticate(request)
        assert exc_info.value.headers["WWW-Authenticate"] == "Basic"

    def test_malformed_header(self, authenticator, client):
        request = _token_request({}, {"Authorization": "Basic !!!not-base64"})
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(request)

    def test_wrong_method_for_client(self, authenticator, post_client):
        request = _token_request({}, {"Authorization": _basic_auth("post-app", CLIENT_SECRET)})
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(request)

    def test_through_token_endpoint(self, server, client):
        request = _token_request(
            {"grant_type": "client_credentials", "scope": "foo"},
            {"Authorization": _basic_auth("web-app", "wrong")},
        )
        response = server.endpoint("token", request)
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Basic"
        assert response.json_body()["error"] == "invalid_client"


class TestClientSecretPost:
    def test_valid(self, authenticator, post_client):
        request = _token_request({"client_id": "post-app", "client_secret": CLIENT_SECRET})
        assert authenticator.authenticate(request) is post_client

    def test_wrong_secret(self, authenticator, post_client):
        request = _token_request({"client_id": "post-app", "client_secret": "nope"})
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(request)


class TestNone:
    def test_public_client(self, authenticator, public_client):
        assert authenticator.authenticate(_token_request({"client_id": "spa"})) is public_client

    def test_confidential_client_cannot_skip_its_secret(self, authenticator, client):
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request({"client_id": "web-app"}))


class TestSelection:
    def test_no_credentials(self, authenticator):
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request({"grant_type": "client_credentials"}))

    def test_multiple_methods_rejected(self, authenticator, client):
        request = _token_request(
            {"client_id": "web-app", "client_secret": CLIENT_SECRET},
            {"Authorization": _basic_auth("web-app", CLIENT_SECRET)},
        )
        with pytest.raises(InvalidClientError) as exc_info:
            authenticator.authenticate(request)
        assert "Multiple" in exc_info.value.description

    def test_disabled_method(self, context, client):
        context.settings.client_authentication_methods = ["client_secret_post"]
        authenticator = build_client_authenticator(context, [TOKEN_URL])
        request = _token_request({}, {"Authorization": _basic_auth("web-app", CLIENT_SECRET)})
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(request)

    def test_failures_are_audited(self, context, authenticator, client):
        events = []
        context.audit.on_log(events.append)
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request({}, {"Authorization": _basic_auth("web-app", "x")}))
        assert events[-1]["action"] == "client_authentication"
        assert events[-1]["status"] == "failure"


# ===== assertion based =====


class TestClientSecretJwt:
    def test_valid_assertion(self, authenticator, jwt_client):
        request = _token_request(_assertion_form(_assertion("jwt-app", CLIENT_SECRET, "HS256")))
        assert authenticator.authenticate(request) is jwt_client

    def test_issuer_audience_is_accepted(self, authenticator, jwt_client):
        assertion = _assertion("jwt-app", CLIENT_SECRET, "HS256", aud=ISSUER)
        assert authenticator.authenticate(_token_request(_assertion_form(assertion))) is jwt_client

    def test_replayed_jti_rejected(self, context, authenticator, jwt_client):
        events = []
        context.audit.on_log(events.append)
        assertion = _assertion("jwt-app", CLIENT_SECRET, "HS256")
        authenticator.authenticate(_token_request(_assertion_form(assertion)))
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request(_assertion_form(assertion)))
        assert any(e["action"] == "assertion_replay" and e["severity"] == "alert" for e in events)

    def test_jti_of_another_client_is_not_a_replay(self, authenticator, jwt_client, store):
        store.add_client(
            Client(
                client_id="jwt-app-2",
                client_secret=CLIENT_SECRET,
                grant_types=["client_credentials"],
                scopes=["foo"],
                authentication_method="client_secret_jwt",
            )
        )
        first = _assertion("jwt-app", CLIENT_SECRET, "HS256", jti="shared-jti")
        second = _assertion("jwt-app-2", CLIENT_SECRET, "HS256", jti="shared-jti")
        assert authenticator.authenticate(_token_request(_assertion_form(first))) is jwt_client
        assert authenticator.authenticate(_token_request(_assertion_form(second))).client_id == "jwt-app-2"

    def test_wrong_audience(self, authenticator, jwt_client):
        assertion = _assertion("jwt-app", CLIENT_SECRET, "HS256", aud="https://elsewhere.example.com")
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request(_assertion_form(assertion)))

    def test_expired(self, authenticator, jwt_client):
        assertion = _assertion("jwt-app", CLIENT_SECRET, "HS256", exp=int(time.time()) - 10)
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request(_assertion_form(assertion)))

    def test_missing_jti(self, authenticator, jwt_client):
        now = int(time.time())
        claims = {"iss": "jwt-app", "sub": "jwt-app", "aud": TOKEN_URL, "exp": now + 60}
        assertion = jwt.encode(claims, CLIENT_SECRET, algorithm="HS256")
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request(_assertion_form(assertion)))

    def test_client_id_mismatch(self, authenticator, jwt_client):
        form = _assertion_form(_assertion("jwt-app", CLIENT_SECRET, "HS256"), client_id="other")
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request(form))

    def test_unsigned_assertion_never_matches(self, authenticator, jwt_client):
        now = int(time.time())
        claims = {"iss": "jwt-app", "sub": "jwt-app", "aud": TOKEN_URL, "exp": now + 60, "jti": "x"}
        assertion = jwt.encode(claims, None, algorithm="none")
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request(_assertion_form(assertion)))


class TestPrivateKeyJwt:
    def test_valid_assertion(self, authenticator, key_client, client_key):
        assertion = jwt.encode(
            {
                "iss": "key-app",
                "sub": "key-app",
                "aud": TOKEN_URL,
                "exp": int(time.time()) + 60,
                "jti": str(uuid.uuid4()),
            },
            client_key.private_key,
            algorithm="RS256",
            headers={"kid": client_key.kid},
        )
        assert authenticator.authenticate(_token_request(_assertion_form(assertion))) is key_client

    def test_signed_with_another_key(self, authenticator, key_client):
        stranger = generate_private_key("RS256")
        assertion = _assertion("key-app", stranger, "RS256")
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request(_assertion_form(assertion)))

    def test_hmac_assertion_for_key_client(self, authenticator, key_client):
        assertion = _assertion("key-app", CLIENT_SECRET, "HS256")
        with pytest.raises(InvalidClientError):
            authenticator.authenticate(_token_request(_assertion_form(assertion)))

    def test_issues_token(self, server, key_client, client_key):
        assertion = jwt.encode(
            {
                "iss": "key-app",
                "sub": "key-app",
                "aud": TOKEN_URL,
                "exp": int(time.time()) + 60,
                "jti": str(uuid.uuid4()),
            },
            client_key.private_key,
            algorithm="RS256",
        )
        response = server.endpoint("token", _token_request(_assertion_form(assertion, scope="foo")))
        assert response.status_code == 200
        assert response.json_body()["scope"] == "foo"


class TestAssertionBase:
    def test_algorithm_filter_is_abstract(self, context):
        from guardpost.client_authentication import _ClientAssertion

        class Incomplete(_ClientAssertion):
            name = "incomplete"

        with pytest.raises(TypeError):
            Incomplete(context)
