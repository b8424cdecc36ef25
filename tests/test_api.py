# Tests for the FastAPI binding and the development server.
# Created: 2026-03-20

import json
import sys
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from conftest import CLIENT_SECRET, ISSUER, REDIRECT_URI
from guardpost.api.router import to_http_request, to_response
from guardpost.api.serve import DEMO_CLIENT_ID, DEMO_USER, create_app, seed_demo
from guardpost.http import HttpResponse
from guardpost.models import utcnow
from guardpost.pkce import s256_challenge


@pytest.fixture
def http(server):
    return TestClient(create_app(server), base_url=ISSUER)


class TestRoutes:
    def test_discovery(self, http):
        response = http.get("/.well-known/openid-configuration")
        assert response.status_code == 200
        assert response.json()["issuer"] == ISSUER

    def test_jwks(self, http):
        assert http.get("/oauth/jwks").json()["keys"]

    def test_client_credentials(self, http, client):
        response = http.post(
            "/oauth/token",
            data={"grant_type": "client_credentials", "scope": "foo"},
            auth=("web-app", CLIENT_SECRET),
        )
        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-store"
        assert response.json()["scope"] == "foo"

    def test_invalid_client(self, http, client):
        response = http.post("/oauth/token", data={"grant_type": "client_credentials"}, auth=("web-app", "nope"))
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Basic"

    def test_authorize_redirects_to_login(self, http, client):
        response = http.get(
            "/oauth/authorize",
            params={
                "response_type": "code",
                "client_id": "web-app",
                "redirect_uri": REDIRECT_URI,
                "scope": "openid",
                "code_challenge": s256_challenge("verifier123"),
                "code_challenge_method": "S256",
            },
            follow_redirects=False,
        )
        assert response.status_code == 303
        assert response.headers["location"].startswith(f"{ISSUER}/login?login_challenge=")
        assert "guardpost:grant=" in response.headers["set-cookie"]

    def test_registration_json(self, http):
        response = http.post("/oauth/register", json={"redirect_uris": ["https://new.example.com/cb"]})
        assert response.status_code == 201
        assert response.json()["client_id"]

    def test_unregistered_method(self, http):
        assert http.delete("/oauth/token").status_code == 405


def _starlette_request(method, path, body=b"", headers=(), query_string=b""):
    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query_string,
        "headers": list(headers),
    }
    return Request(scope, receive)


class TestToHttpRequest:
    async def test_json_body_and_cookies(self):
        request = _starlette_request(
            "POST",
            "/oauth/register",
            body=json.dumps({"client_name": "x"}).encode(),
            headers=[(b"content-type", b"application/json"), (b"cookie", b"guardpost:session=abc")],
            query_string=b"client_id=c1",
        )
        http_request = await to_http_request(request)
        assert http_request.method == "POST"
        assert http_request.path == "/oauth/register"
        assert http_request.json == {"client_name": "x"}
        assert http_request.query == {"client_id": "c1"}
        assert http_request.cookies == {"guardpost:session": "abc"}
        assert http_request.header("Content-Type") == "application/json"

    async def test_non_object_json_is_ignored(self):
        request = _starlette_request(
            "POST", "/oauth/register", body=b"[1, 2]", headers=[(b"content-type", b"application/json")]
        )
        assert (await to_http_request(request)).json is None

    async def test_form_body(self):
        request = _starlette_request(
            "POST",
            "/oauth/token",
            body=b"grant_type=client_credentials&scope=foo+bar",
            headers=[(b"content-type", b"application/x-www-form-urlencoded")],
        )
        assert (await to_http_request(request)).form == {"grant_type": "client_credentials", "scope": "foo bar"}


class TestToResponse:
    def test_cookies(self):
        response = to_response(HttpResponse().set_cookies({"keep": "1", "drop": None}), secure_cookies=True)
        cookies = response.headers.getlist("set-cookie")
        assert any(c.startswith("keep=1") and "HttpOnly" in c and "Secure" in c for c in cookies)
        assert any(c.startswith("drop=") and "Max-Age=0" in c for c in cookies)


class TestDemo:
    def test_seed_demo(self, store, settings):
        seed_demo(store, settings)
        assert store.clients[DEMO_CLIENT_ID].redirect_uris == [f"{ISSUER}/callback"]
        assert DEMO_USER in store.users

    def test_demo_password_grant(self, context, store, settings):
        from guardpost.server import build_authorization_server

        seed_demo(store, settings)
        http = TestClient(create_app(build_authorization_server(context)), base_url=ISSUER)
        response = http.post(
            "/oauth/token",
            data={"grant_type": "password", "username": "demo", "password": "demo", "scope": "openid"},
            auth=(DEMO_CLIENT_ID, "demo-secret"),
        )
        assert response.status_code == 200
        assert "id_token" in response.json()


class TestStoreCleanup:
    def test_expired_records_purged_at_startup(self, server, context, store, client):
        token = context.services.access_tokens.create(["foo"], client, None, "client_credentials")
        token.expires_at = utcnow() - timedelta(seconds=1)
        context.services.replay_cache.register("web-app", "jti-1", utcnow() - timedelta(seconds=1))

        with TestClient(create_app(server, store=store), base_url=ISSUER):
            assert token.handle not in store.access_tokens
            assert store.seen_jtis == {}

    def test_no_cleanup_without_store(self, server, context, client):
        token = context.services.access_tokens.create(["foo"], client, None, "client_credentials")
        token.expires_at = utcnow() - timedelta(seconds=1)
        with TestClient(create_app(server), base_url=ISSUER):
            assert context.services.access_tokens.find_one(token.handle) is token


class TestCli:
    def test_version(self, monkeypatch, capsys):
        from guardpost.__main__ import main

        monkeypatch.setattr(sys, "argv", ["guardpost", "--version"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("guardpost")

    def test_serve_arguments(self, monkeypatch):
        import guardpost.api.serve as serve_module
        from guardpost.__main__ import main

        calls = []
        monkeypatch.setattr(serve_module, "run_server", lambda **kwargs: calls.append(kwargs))
        monkeypatch.setattr("guardpost.__main__.setup_logging", lambda level: None)
        monkeypatch.setattr(sys, "argv", ["guardpost", "serve", "--port", "9000", "--demo"])
        main()
        assert calls == [{"host": "127.0.0.1", "port": 9000, "dev": False, "demo": True}]
