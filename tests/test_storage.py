# Tests for the in-memory services.
# Created: 2026-03-16

import json
from datetime import timedelta

import pytest

from guardpost.models import DEVICE_AUTHORIZED, DEVICE_DENIED, Client, User, utcnow
from guardpost.storage import (
    USER_CODE_ALPHABET,
    MemoryAccessTokenService,
    MemoryAuthorizationCodeService,
    MemoryConsentService,
    MemoryDeviceCodeService,
    MemoryRefreshTokenService,
    MemoryReplayCache,
    MemorySessionService,
    MemoryStore,
    MemoryUserService,
)

# ===== helpers =====


def _code_parameters(**overrides):
    parameters = {
        "redirect_uri": "https://app.example.com/callback",
        "code_challenge": "challenge",
        "code_challenge_method": "plain",
    }
    parameters.update(overrides)
    return parameters


@pytest.fixture
def alice(store):
    return store.add_user(User(user_id="alice", username="alice", claims={"email": "a@x.io", "name": "A"}), "pw")


@pytest.fixture
def app(store):
    return store.add_client(Client(client_id="app", client_secret="s" * 40, scopes=["openid", "email"]))


# ===== users =====


class TestUsers:
    def test_authenticate(self, store, alice):
        users = MemoryUserService(store)
        assert users.authenticate("alice", "pw") is alice
        assert users.authenticate("alice", "nope") is None
        assert users.authenticate("bob", "pw") is None

    def test_passwords_are_salted_bcrypt_hashes(self, store, alice):
        bob = store.add_user(User(user_id="bob", username="bob"), "pw")
        alice_hash, bob_hash = store.passwords["alice"], store.passwords["bob"]
        assert alice_hash.startswith("$2b$")
        assert alice_hash != bob_hash
        assert MemoryUserService(store).authenticate("bob", "pw") is bob

    def test_userinfo_filtered_by_scope(self, store, alice):
        users = MemoryUserService(store)
        assert users.get_userinfo(alice, ["openid", "email"]) == {"email": "a@x.io"}
        assert users.get_userinfo(alice, ["openid"]) == {}

    def test_userinfo_with_requested_claims(self, store, alice):
        users = MemoryUserService(store)
        assert users.get_userinfo(alice, ["openid"], ["name", "missing"]) == {"name": "A"}


# ===== authorization codes =====


class TestAuthorizationCodes:
    def test_consume_only_once(self, store, settings, app, alice):
        codes = MemoryAuthorizationCodeService(store, settings)
        code = codes.create(_code_parameters(), app, alice, ["openid"])
        assert codes.consume(code) is True
        assert codes.consume(code) is False
        assert codes.find_one(code.code).used is True

    def test_code_lifetime(self, store, settings, app, alice):
        codes = MemoryAuthorizationCodeService(store, settings)
        code = codes.create(_code_parameters(), app, alice, ["openid"])
        assert code.expires_at - code.issued_at == timedelta(seconds=settings.authorization_code_ttl)
        assert code.is_active()

    def test_revoke(self, store, settings, app, alice):
        codes = MemoryAuthorizationCodeService(store, settings)
        code = codes.create(_code_parameters(), app, alice, ["openid"])
        codes.revoke(code)
        assert not codes.find_one(code.code).is_active()
        assert codes.consume(code) is False

    def test_code_remembers_session_and_claims(self, store, settings, app, alice):
        session = MemorySessionService(store, settings).create(alice)
        codes = MemoryAuthorizationCodeService(store, settings)
        parameters = _code_parameters(claims='{"id_token": {"email": null}}')
        code = codes.create(parameters, app, alice, ["openid"], session)
        assert code.session_id == session.session_id
        assert code.claims_request == {"id_token": {"email": None}}


# ===== tokens =====


class TestTokens:
    def test_revoke_by_authorization_code(self, store, settings, app, alice):
        access = MemoryAccessTokenService(store, settings)
        refresh = MemoryRefreshTokenService(store, settings)
        token = access.create(["openid"], app, alice, "authorization_code", authorization_code="c1")
        other = access.create(["openid"], app, alice, "authorization_code", authorization_code="c2")
        refresh.create(["openid"], app, alice, token, authorization_code="c1")

        assert access.revoke_by_authorization_code("c1") == 1
        assert refresh.revoke_by_authorization_code("c1") == 1
        assert token.is_revoked
        assert not other.is_revoked

    def test_rotate_once(self, store, settings, app, alice):
        refresh = MemoryRefreshTokenService(store, settings)
        original = refresh.create(["openid"], app, alice, None)
        successor = refresh.rotate(original)

        assert successor is not None
        assert successor.family_id == original.family_id
        assert successor.expires_at <= original.expires_at
        assert original.replaced_by == successor.handle
        assert refresh.rotate(original) is None

    def test_revoke_family_revokes_linked_access_tokens(self, store, settings, app, alice):
        access = MemoryAccessTokenService(store, settings)
        refresh = MemoryRefreshTokenService(store, settings)
        first_access = access.create(["openid"], app, alice, "password")
        original = refresh.create(["openid"], app, alice, first_access)
        second_access = access.create(["openid"], app, alice, "refresh_token")
        successor = refresh.rotate(original, second_access)

        assert refresh.revoke_family(original.family_id) == 1
        assert successor.is_revoked
        assert first_access.is_revoked
        assert second_access.is_revoked

    def test_link_moves_access_token(self, store, settings, app, alice):
        access = MemoryAccessTokenService(store, settings)
        refresh = MemoryRefreshTokenService(store, settings)
        first_access = access.create(["openid"], app, alice, "password")
        token = refresh.create(["openid"], app, alice, first_access)
        second_access = access.create(["openid"], app, alice, "refresh_token")

        assert refresh.link(token, second_access) is True
        assert refresh.find_one(token.handle).access_token == second_access.handle
        refresh.revoke_family(token.family_id)
        assert second_access.is_revoked

    def test_link_refused_after_revocation(self, store, settings, app, alice):
        access = MemoryAccessTokenService(store, settings)
        refresh = MemoryRefreshTokenService(store, settings)
        token = refresh.create(["openid"], app, alice, None)
        refresh.revoke(token)
        assert refresh.link(token, access.create(["openid"], app, alice, "refresh_token")) is False
        assert token.access_token is None

    def test_handles_are_prefixed(self, store, settings, app, alice):
        assert MemoryAccessTokenService(store, settings).create([], app, alice, "password").handle.startswith("gpat_")
        assert MemoryRefreshTokenService(store, settings).create([], app, alice, None).handle.startswith("gprt_")


# ===== device codes =====


class TestDeviceCodes:
    def test_user_code_format(self, store, settings, app):
        device_code = MemoryDeviceCodeService(store, settings).create(["openid"], app)
        left, _, right = device_code.user_code.partition("-")
        assert len(left) == len(right) == 4
        assert set(left + right) <= set(USER_CODE_ALPHABET)
        assert device_code.verification_uri == "https://auth.example.com/device"
        assert device_code.verification_uri_complete.endswith(f"?user_code={device_code.user_code}")

    def test_find_by_user_code_is_lenient(self, store, settings, app):
        service = MemoryDeviceCodeService(store, settings)
        device_code = service.create(["openid"], app)
        assert service.find_by_user_code(device_code.user_code.replace("-", "").lower()) is device_code

    def test_poll_detects_fast_polling(self, store, settings, app):
        service = MemoryDeviceCodeService(store, settings)
        device_code = service.create(["openid"], app)
        assert service.poll(device_code, 5) is False
        assert service.poll(device_code, 5) is True

    def test_poll_after_interval(self, store, settings, app):
        service = MemoryDeviceCodeService(store, settings)
        device_code = service.create(["openid"], app)
        device_code.last_polled_at = utcnow() - timedelta(seconds=10)
        assert service.poll(device_code, 5) is False

    def test_decide_and_consume(self, store, settings, app, alice):
        service = MemoryDeviceCodeService(store, settings)
        device_code = service.create(["openid"], app)
        service.decide(device_code, alice, True)
        assert device_code.is_authorized is DEVICE_AUTHORIZED
        assert device_code.user_id == "alice"
        assert service.consume(device_code) is True
        assert service.consume(device_code) is False

    def test_deny(self, store, settings, app):
        service = MemoryDeviceCodeService(store, settings)
        device_code = service.create(["openid"], app)
        service.decide(device_code, None, False)
        assert device_code.is_authorized is DEVICE_DENIED


# ===== sessions / consents / replay =====


class TestSessions:
    def test_save_records_clients(self, store, settings, alice):
        sessions = MemorySessionService(store, settings)
        session = sessions.create(alice, amr=["pwd"])
        session.client_ids.append("app")
        sessions.save(session)
        assert sessions.find_one(session.session_id).client_ids == ["app"]

    def test_cleanup_drops_expired_sessions(self, store, settings, alice):
        sessions = MemorySessionService(store, settings)
        session = sessions.create(alice)
        session.expires_at = utcnow() - timedelta(seconds=1)
        store.cleanup_expired()
        assert sessions.find_one(session.session_id) is None


class TestConsents:
    def test_scopes_accumulate(self, store, settings, app, alice):
        consents = MemoryConsentService(store, settings)
        consents.create(app, alice, ["openid"])
        consent = consents.create(app, alice, ["email"])
        assert consent.covers(["openid", "email"])
        assert consents.find_one("app", "alice") is consent


class TestReplayCache:
    def test_register_once(self, store):
        cache = MemoryReplayCache(store)
        expires_at = utcnow() + timedelta(minutes=5)
        assert cache.register("app", "jti-1", expires_at) is True
        assert cache.register("app", "jti-1", expires_at) is False
        assert cache.register("app", "jti-2", expires_at) is True

    def test_jti_is_scoped_to_issuer(self, store):
        cache = MemoryReplayCache(store)
        expires_at = utcnow() + timedelta(minutes=5)
        assert cache.register("app", "shared", expires_at) is True
        assert cache.register("other-app", "shared", expires_at) is True
        assert cache.register("other-app", "shared", expires_at) is False

    def test_expired_entries_can_be_reused(self, store):
        cache = MemoryReplayCache(store)
        cache.register("app", "jti-1", utcnow() - timedelta(seconds=1))
        assert cache.register("app", "jti-1", utcnow() + timedelta(minutes=5)) is True


# ===== persistence =====


class TestPersistence:
    def test_tokens_survive_restart(self, tmp_path, settings):
        path = tmp_path / "tokens.json"
        store = MemoryStore(path)
        app = store.add_client(Client(client_id="app", client_secret="s" * 40))
        token = MemoryAccessTokenService(store, settings).create(["foo"], app, None, "client_credentials")

        reloaded = MemoryStore(path)
        restored = reloaded.access_tokens[token.handle]
        assert restored.scopes == ["foo"]
        assert restored.expires_at == token.expires_at

    def test_file_permissions(self, tmp_path, settings):
        path = tmp_path / "tokens.json"
        store = MemoryStore(path)
        app = store.add_client(Client(client_id="app"))
        MemoryAccessTokenService(store, settings).create([], app, None, "client_credentials")
        assert path.stat().st_mode & 0o777 == 0o600

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.write_text("{not json")
        assert MemoryStore(path).access_tokens == {}

    def test_cleanup_expired(self, tmp_path, settings):
        path = tmp_path / "tokens.json"
        store = MemoryStore(path)
        app = store.add_client(Client(client_id="app"))
        token = MemoryAccessTokenService(store, settings).create([], app, None, "client_credentials")
        token.expires_at = utcnow() - timedelta(seconds=1)
        store.cleanup_expired()
        assert store.access_tokens == {}
        assert json.loads(path.read_text())["access_tokens"] == []
