"""OAuth wire models.

Request and response documents exchanged with authorization servers.

References:
- RFC 8414: OAuth 2.0 Authorization Server Metadata
- RFC 9728: OAuth 2.0 Protected Resource Metadata
- RFC 7591: OAuth 2.0 Dynamic Client Registration Protocol
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AuthServerMetadata(BaseModel):
    """OAuth 2.0 Authorization Server Metadata (RFC 8414).

    Endpoints are optional here so that an incomplete document still parses;
    callers check the endpoint they need.
    """

    model_config = ConfigDict(extra="allow")

    issuer: str | None = None
    authorization_endpoint: str | None = None
    token_endpoint: str | None = None
    registration_endpoint: str | None = None
    response_types_supported: list[str] = Field(default_factory=lambda: ["code"])
    grant_types_supported: list[str] | None = None
    token_endpoint_auth_methods_supported: list[str] | None = None
    code_challenge_methods_supported: list[str] | None = None
    scopes_supported: list[str] | None = None

    @classmethod
    def from_endpoints(
        cls,
        issuer: str,
        authorization_endpoint: str,
        token_endpoint: str,
        registration_endpoint: str | None = None,
    ) -> "AuthServerMetadata":
        """Build metadata for a public PKCE client from known endpoints."""
        return cls(
            issuer=issuer,
            authorization_endpoint=authorization_endpoint,
            token_endpoint=token_endpoint,
            registration_endpoint=registration_endpoint,
            grant_types_supported=["authorization_code", "refresh_token"],
            response_types_supported=["code"],
            token_endpoint_auth_methods_supported=["none"],
            code_challenge_methods_supported=["S256", "plain"],
        )


class ProtectedResourceMetadata(BaseModel):
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""

    model_config = ConfigDict(extra="allow")

    resource: str | None = None
    authorization_servers: list[str] = Field(default_factory=list)
    scopes_supported: list[str] | None = None


class ClientRegistrationRequest(BaseModel):
    """OAuth 2.0 Dynamic Client Registration Request (RFC 7591)."""

    client_name: str
    redirect_uris: list[str]
    grant_types: list[Literal["authorization_code", "refresh_token"]] = [
        "authorization_code",
        "refresh_token",
    ]
    response_types: list[str] = ["code"]
    # Public client: PKCE replaces the client secret
    token_endpoint_auth_method: Literal["none", "client_secret_basic", "client_secret_post"] = "none"
    scope: str | None = None


class ClientInformation(BaseModel):
    """OAuth client credentials used at the authorization and token endpoints."""

    model_config = ConfigDict(extra="allow")

    client_id: str
    client_secret: str | None = None
    client_id_issued_at: int | None = None
    client_secret_expires_at: int | None = None


class OAuthTokens(BaseModel):
    """OAuth 2.0 token endpoint response.

    ``expires_in`` stays None when the provider omits it.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(min_length=1)
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str | None = None


class AuthorizationStart(BaseModel):
    """Result of starting an authorization flow.

    The caller carries ``code_verifier`` across the redirect (e.g. in a
    short-lived signed cookie) and presents it at callback time.
    """

    authorization_url: str
    code_verifier: str
