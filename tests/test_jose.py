# Tests for the JOSE backend, server keys and client key resolution.
# Created: 2026-03-21

import time

import httpx
import jwt
import pytest

from guardpost.jose import JoseError, JwksFetcher, KeySet, PyJWTBackend, key_type_for, resolve_client_key
from guardpost.models import Client

SECRET = "k" * 48


class TestPyJWTBackend:
    def test_sign_and_verify(self):
        backend = PyJWTBackend()
        token = backend.sign({"sub": "alice", "aud": "app", "exp": int(time.time()) + 60}, SECRET, "HS256")
        claims = backend.verify(token, SECRET, ["HS256"], audience="app", required_claims=("sub", "exp"))
        assert claims["sub"] == "alice"

    def test_refuses_to_sign_none(self):
        with pytest.raises(JoseError):
            PyJWTBackend().sign({"sub": "alice"}, None, "none")

    def test_none_is_never_accepted(self):
        token = jwt.encode({"sub": "alice"}, None, algorithm="none")
        with pytest.raises(JoseError):
            PyJWTBackend().verify(token, None, ["none"])

    def test_expired(self):
        backend = PyJWTBackend()
        token = backend.sign({"exp": int(time.time()) - 30}, SECRET, "HS256")
        with pytest.raises(JoseError):
            backend.verify(token, SECRET, ["HS256"])

    def test_leeway(self):
        backend = PyJWTBackend(leeway=60)
        token = backend.sign({"exp": int(time.time()) - 30}, SECRET, "HS256")
        assert backend.verify(token, SECRET, ["HS256"])["exp"]

    def test_missing_required_claim(self):
        backend = PyJWTBackend()
        token = backend.sign({"sub": "alice"}, SECRET, "HS256")
        with pytest.raises(JoseError):
            backend.verify(token, SECRET, ["HS256"], required_claims=("jti",))

    def test_decode_unverified(self):
        token = jwt.encode({"sub": "alice"}, SECRET, algorithm="HS256", headers={"kid": "k1"})
        header, claims = PyJWTBackend().decode_unverified(token)
        assert header["kid"] == "k1"
        assert claims == {"sub": "alice"}

    def test_decode_garbage(self):
        with pytest.raises(JoseError):
            PyJWTBackend().decode_unverified("garbage")

    def test_no_jwe(self):
        with pytest.raises(JoseError):
            PyJWTBackend().encrypt("token", SECRET, "RSA-OAEP", "A128GCM")


class TestKeySet:
    def test_generate_skips_symmetric(self):
        keyset = KeySet.generate(["RS256", "ES256", "EdDSA", "HS256"])
        assert [key.alg for key in keyset.keys] == ["RS256", "ES256", "EdDSA"]
        assert [jwk["kty"] for jwk in keyset.public_jwks()["keys"]] == ["RSA", "EC", "OKP"]

    def test_public_jwks_verify_signatures(self):
        keyset = KeySet.generate(["ES256"])
        key = keyset.signing_key("ES256")
        token = PyJWTBackend().sign({"sub": "x"}, key.private_key, "ES256", headers={"kid": key.kid})
        public = jwt.PyJWKSet.from_dict(keyset.public_jwks())
        assert jwt.decode(token, public[key.kid].key, algorithms=["ES256"])["sub"] == "x"

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "jwks.json"
        generated = KeySet.load(path, ["ES256"])
        loaded = KeySet.load(path)
        assert [key.kid for key in loaded.keys] == [key.kid for key in generated.keys]
        assert path.stat().st_mode & 0o777 == 0o600

    def test_missing_algorithm(self):
        with pytest.raises(JoseError):
            KeySet().signing_key("RS256")

    def test_find(self):
        keyset = KeySet.generate(["ES256"])
        assert keyset.find(keyset.keys[0].kid) is keyset.keys[0]
        assert keyset.find("nope") is None

    def test_key_type_for(self):
        assert key_type_for("PS256") == "RSA"
        assert key_type_for("HS512") == "oct"
        with pytest.raises(JoseError):
            key_type_for("XX999")


# ===== client keys =====


@pytest.fixture(scope="module")
def client_keys():
    return KeySet.generate(["ES256"])


class TestResolveClientKey:
    def test_symmetric_uses_secret(self):
        client = Client(client_id="c", client_secret=SECRET)
        assert resolve_client_key(client, "HS256", None, JwksFetcher()) == SECRET

    def test_inline_jwks(self, client_keys):
        client = Client(client_id="c", jwks=client_keys.public_jwks())
        key = resolve_client_key(client, "ES256", client_keys.keys[0].kid, JwksFetcher())
        assert key.public_numbers() == client_keys.keys[0].private_key.public_key().public_numbers()

    def test_unknown_kid(self, client_keys):
        client = Client(client_id="c", jwks=client_keys.public_jwks())
        with pytest.raises(JoseError):
            resolve_client_key(client, "ES256", "other-kid", JwksFetcher())

    def test_no_keys(self):
        with pytest.raises(JoseError):
            resolve_client_key(Client(client_id="c"), "RS256", None, JwksFetcher())

    def test_jwks_uri(self, client_keys):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return httpx.Response(200, json=client_keys.public_jwks())

        fetcher = JwksFetcher(http=httpx.Client(transport=httpx.MockTransport(handler)))
        client = Client(client_id="c", jwks_uri="https://client.example.com/jwks")
        resolve_client_key(client, "ES256", None, fetcher)
        resolve_client_key(client, "ES256", None, fetcher)
        assert calls == ["https://client.example.com/jwks"]

    def test_jwks_uri_failure(self):
        fetcher = JwksFetcher(http=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500))))
        client = Client(client_id="c", jwks_uri="https://client.example.com/jwks")
        with pytest.raises(JoseError):
            resolve_client_key(client, "ES256", None, fetcher)
