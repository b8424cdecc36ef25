# Tests for token issuance helpers.
# Created: 2026-03-21

import base64
import hashlib

import jwt
import pytest

from conftest import CLIENT_SECRET, ISSUER
from guardpost.exceptions import InvalidClientMetadataError, ServerError
from guardpost.models import Client, User
from guardpost.tokens import IdTokenContext, TokenIssuer, sign_for_client, subject_identifier, token_hash


class TestSubjectIdentifier:
    def test_public(self):
        assert subject_identifier(User("alice"), Client("c"), "salt") == "alice"

    def test_pairwise_is_stable_per_sector(self):
        first = Client("a", subject_type="pairwise", redirect_uris=["https://app.example.com/a"])
        second = Client("b", subject_type="pairwise", redirect_uris=["https://app.example.com/b"])
        other = Client("c", subject_type="pairwise", redirect_uris=["https://other.example.com/cb"])
        user = User("alice")
        assert subject_identifier(user, first, "salt") == subject_identifier(user, second, "salt")
        assert subject_identifier(user, first, "salt") != subject_identifier(user, other, "salt")

    def test_sector_identifier_wins(self):
        client = Client(
            "a",
            subject_type="pairwise",
            sector_identifier="https://sector.example.com/uris.json",
            redirect_uris=["https://app.example.com/cb"],
        )
        expected = hashlib.sha256(b"sector.example.comalicesalt").hexdigest()
        assert subject_identifier(User("alice"), client, "salt") == expected

    def test_pairwise_without_host(self):
        with pytest.raises(InvalidClientMetadataError):
            subject_identifier(User("alice"), Client("a", subject_type="pairwise"), "salt")


class TestTokenHash:
    def test_left_half_of_sha256(self):
        digest = hashlib.sha256(b"token").digest()
        expected = base64.urlsafe_b64encode(digest[:16]).rstrip(b"=").decode()
        assert token_hash("token", "RS256") == expected

    def test_sha512_for_eddsa_and_512(self):
        assert len(token_hash("token", "EdDSA")) == len(token_hash("token", "RS512")) == 43


class TestSigning:
    def test_hmac_uses_client_secret(self, context, client):
        token = sign_for_client(context, {"sub": "alice"}, client, "HS256")
        assert jwt.decode(token, CLIENT_SECRET, algorithms=["HS256"]) == {"sub": "alice"}

    def test_asymmetric_sets_kid(self, context, client):
        token = sign_for_client(context, {"sub": "alice"}, client, "RS256")
        assert jwt.get_unverified_header(token)["kid"] == context.keys.keys[0].kid

    def test_missing_server_key(self, context, client):
        with pytest.raises(ServerError):
            sign_for_client(context, {"sub": "alice"}, client, "ES256")

    def test_hmac_without_secret(self, context, public_client):
        with pytest.raises(ServerError):
            sign_for_client(context, {"sub": "alice"}, public_client, "HS256")


class TestTokenIssuer:
    def test_issue_with_id_token(self, context, client, user):
        response = TokenIssuer(context).issue(
            client, user, ["openid", "email"], "password", id_context=IdTokenContext(nonce="n")
        )
        public_key = context.keys.signing_key("RS256").private_key.public_key()
        claims = jwt.decode(response["id_token"], public_key, algorithms=["RS256"], audience="web-app", issuer=ISSUER)
        assert claims["email"] == "alice@example.com"
        assert "name" not in claims
        assert claims["nonce"] == "n"

    def test_hmac_id_token(self, context, client, user):
        client.id_token_signed_response_alg = "HS256"
        response = TokenIssuer(context).issue(client, user, ["openid"], "password", id_context=IdTokenContext())
        claims = jwt.decode(response["id_token"], CLIENT_SECRET, algorithms=["HS256"], audience="web-app")
        assert claims["sub"] == "alice"

    def test_no_refresh_token_when_grant_disabled(self, context, client, user):
        context.settings.grant_types = ["password"]
        response = TokenIssuer(context).issue(client, user, ["foo"], "password")
        assert "refresh_token" not in response

    def test_issuance_is_audited(self, context, client, user):
        events = []
        context.audit.on_log(events.append)
        TokenIssuer(context).issue(client, user, ["foo"], "password")
        assert events[0]["action"] == "token_issued"
        assert events[0]["context"] == {"user_id": "alice", "scope": "foo"}
