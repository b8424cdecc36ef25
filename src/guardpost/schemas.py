# Request/response schemas validated with pydantic.
# Created: 2026-03-10

from __future__ import annotations

from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from guardpost.models import Client, timestamp
from guardpost.scopes import join_scope, split_scope


class ClientMetadata(BaseModel):
    """Dynamic client registration metadata (RFC 7591 §2)."""

    model_config = ConfigDict(extra="ignore")

    redirect_uris: list[str] = Field(default_factory=list)
    token_endpoint_auth_method: str = "client_secret_basic"
    token_endpoint_auth_signing_alg: str | None = None
    grant_types: list[str] = Field(default_factory=lambda: ["authorization_code"])
    response_types: list[str] | None = None
    client_name: str = ""
    client_uri: str | None = None
    logo_uri: str | None = None
    scope: str | None = None
    contacts: list[str] = Field(default_factory=list)
    jwks_uri: str | None = None
    jwks: dict[str, Any] | None = None
    subject_type: Literal["public", "pairwise"] = "public"
    sector_identifier_uri: str | None = None
    id_token_signed_response_alg: str = "RS256"
    userinfo_signed_response_alg: str | None = None
    authorization_signed_response_alg: str | None = None
    authorization_encrypted_response_alg: str | None = None
    authorization_encrypted_response_enc: str | None = None
    application_type: Literal["web", "native"] = "web"
    post_logout_redirect_uris: list[str] = Field(default_factory=list)
    backchannel_logout_uri: str | None = None
    backchannel_logout_session_required: bool = False

    @field_validator("redirect_uris", "post_logout_redirect_uris")
    @classmethod
    def _check_redirect_uris(cls, value: list[str]) -> list[str]:
        for uri in value:
            parsed = urlparse(uri)
            if not parsed.scheme or not (parsed.netloc or parsed.path):
                raise ValueError(f"redirect_uri must be absolute: {uri}")
            if parsed.fragment:
                raise ValueError(f"redirect_uri must not contain a fragment: {uri}")
        return value

    @field_validator("backchannel_logout_uri")
    @classmethod
    def _check_backchannel_logout_uri(cls, value: str | None) -> str | None:
        if value is None:
            return None
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc or parsed.fragment:
            raise ValueError(f"backchannel_logout_uri must be an absolute http(s) URL without fragment: {value}")
        return value

    @field_validator("response_types")
    @classmethod
    def _normalize_response_types(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [" ".join(sorted(rt.split())) for rt in value]

    @model_validator(mode="after")
    def _check_consistency(self) -> ClientMetadata:
        if self.response_types is None:
            self.response_types = ["code"] if "authorization_code" in self.grant_types else []
        if self.jwks is not None and self.jwks_uri is not None:
            raise ValueError("jwks and jwks_uri are mutually exclusive")
        if self.token_endpoint_auth_method == "private_key_jwt" and not (self.jwks or self.jwks_uri):
            raise ValueError("private_key_jwt requires jwks or jwks_uri")
        if any("code" in rt.split() for rt in self.response_types) and "authorization_code" not in self.grant_types:
            raise ValueError("The code response type requires the authorization_code grant type")
        if self.response_types and not self.redirect_uris:
            raise ValueError("redirect_uris is required for redirect-based flows")
        return self

    def to_client_fields(self, default_scopes: list[str]) -> dict[str, Any]:
        """Keyword arguments for ``Client`` / ``ClientService.create``."""
        return {
            "client_name": self.client_name,
            "redirect_uris": list(self.redirect_uris),
            "grant_types": list(self.grant_types),
            "response_types": list(self.response_types),
            "scopes": split_scope(self.scope) or list(default_scopes),
            "authentication_method": self.token_endpoint_auth_method,
            "authentication_signing_alg": self.token_endpoint_auth_signing_alg,
            "jwks": self.jwks,
            "jwks_uri": self.jwks_uri,
            "subject_type": self.subject_type,
            "sector_identifier": self.sector_identifier_uri,
            "id_token_signed_response_alg": self.id_token_signed_response_alg,
            "userinfo_signed_response_alg": self.userinfo_signed_response_alg,
            "authorization_signed_response_alg": self.authorization_signed_response_alg,
            "authorization_encrypted_response_alg": self.authorization_encrypted_response_alg,
            "authorization_encrypted_response_enc": self.authorization_encrypted_response_enc,
            "application_type": self.application_type,
            "contacts": list(self.contacts),
            "client_uri": self.client_uri,
            "logo_uri": self.logo_uri,
            "post_logout_redirect_uris": list(self.post_logout_redirect_uris),
            "backchannel_logout_uri": self.backchannel_logout_uri,
            "backchannel_logout_session_required": self.backchannel_logout_session_required,
        }


def client_information(client: Client, registration_client_uri: str | None = None) -> dict[str, Any]:
    """Client information response (RFC 7591 §3.2.1, RFC 7592 §3)."""
    body: dict[str, Any] = {
        "client_id": client.client_id,
        "client_id_issued_at": timestamp(client.created_at),
        "client_secret": client.client_secret,
        "client_secret_expires_at": (
            timestamp(client.client_secret_expires_at) if client.client_secret_expires_at else 0
        ),
        "registration_access_token": client.registration_access_token,
        "registration_client_uri": registration_client_uri,
        "client_name": client.client_name,
        "redirect_uris": client.redirect_uris,
        "grant_types": client.grant_types,
        "response_types": client.response_types,
        "scope": join_scope(client.scopes),
        "token_endpoint_auth_method": client.authentication_method,
        "token_endpoint_auth_signing_alg": client.authentication_signing_alg,
        "jwks": client.jwks,
        "jwks_uri": client.jwks_uri,
        "subject_type": client.subject_type,
        "sector_identifier_uri": client.sector_identifier,
        "id_token_signed_response_alg": client.id_token_signed_response_alg,
        "userinfo_signed_response_alg": client.userinfo_signed_response_alg,
        "authorization_signed_response_alg": client.authorization_signed_response_alg,
        "authorization_encrypted_response_alg": client.authorization_encrypted_response_alg,
        "authorization_encrypted_response_enc": client.authorization_encrypted_response_enc,
        "application_type": client.application_type,
        "contacts": client.contacts or None,
        "client_uri": client.client_uri,
        "logo_uri": client.logo_uri,
        "post_logout_redirect_uris": client.post_logout_redirect_uris or None,
        "backchannel_logout_uri": client.backchannel_logout_uri,
        "backchannel_logout_session_required": client.backchannel_logout_session_required or None,
    }
    if client.client_secret is None:
        body.pop("client_secret_expires_at")
    return {k: v for k, v in body.items() if v is not None}


class InteractionDecision(BaseModel):
    """Login, consent or device decision posted by the host UI."""

    model_config = ConfigDict(extra="ignore")

    interaction_type: Literal["login", "consent", "device"]
    challenge: str = Field(..., min_length=1)
    decision: Literal["accept", "deny"]
    subject: str | None = None
    grant_scope: str | None = None
    amr: list[str] | None = None
    acr: str | None = None
    error: str | None = None
    error_description: str | None = None

    @field_validator("amr", mode="before")
    @classmethod
    def _split_amr(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.split()
        return value
