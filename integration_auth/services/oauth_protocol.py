"""OAuth protocol client.

Wire-level requests to authorization servers over a shared httpx client:

- RFC 9728 protected resource metadata
- RFC 8414 authorization server metadata (with OpenID Connect discovery)
- RFC 7591 dynamic client registration
- RFC 6749 authorization code and refresh token grants with PKCE (RFC 7636)
  and resource indicators (RFC 8707)

This layer knows nothing about integrations or persistence. Every failure
is raised as OAuthProtocolError and mapped to the package error taxonomy by
the calling service.
"""

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from integration_auth.core.pkce import CODE_CHALLENGE_METHOD, generate_pkce_pair
from integration_auth.models.oauth import (
    AuthServerMetadata,
    ClientInformation,
    ClientRegistrationRequest,
    OAuthTokens,
    ProtectedResourceMetadata,
)

logger = structlog.get_logger()

MCP_PROTOCOL_VERSION_HEADER = "MCP-Protocol-Version"
MCP_PROTOCOL_VERSION = "2025-06-18"

PROTECTED_RESOURCE_WELL_KNOWN = "/.well-known/oauth-protected-resource"
AUTH_SERVER_WELL_KNOWN = "/.well-known/oauth-authorization-server"
OPENID_WELL_KNOWN = "/.well-known/openid-configuration"


class OAuthProtocolError(Exception):
    """Request to an authorization server failed.

    Carries the RFC 6749 ``error``/``error_description`` pair and the HTTP
    status when the server responded.
    """

    def __init__(
        self,
        message: str,
        *,
        error: str | None = None,
        error_description: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code


def _origin(url: httpx.URL) -> str:
    # netloc keeps IPv6 brackets and drops default ports
    return f"{url.scheme}://{url.netloc.decode('ascii')}"


def _path(url: httpx.URL) -> str:
    return url.path.rstrip("/")


def protected_resource_metadata_urls(server_url: str) -> list[str]:
    """Candidate RFC 9728 metadata URLs, path-aware first."""
    url = httpx.URL(server_url)
    origin = _origin(url)
    path = _path(url)

    urls = []
    if path:
        urls.append(f"{origin}{PROTECTED_RESOURCE_WELL_KNOWN}{path}")
    urls.append(f"{origin}{PROTECTED_RESOURCE_WELL_KNOWN}")
    return urls


def authorization_server_metadata_urls(auth_server_url: str) -> list[str]:
    """Candidate metadata URLs in discovery order.

    RFC 8414 path-aware and root locations come first, then the OpenID
    Connect Discovery variants.
    """
    url = httpx.URL(auth_server_url)
    origin = _origin(url)
    path = _path(url)

    if not path:
        return [
            f"{origin}{AUTH_SERVER_WELL_KNOWN}",
            f"{origin}{OPENID_WELL_KNOWN}",
        ]
    return [
        f"{origin}{AUTH_SERVER_WELL_KNOWN}{path}",
        f"{origin}{AUTH_SERVER_WELL_KNOWN}",
        f"{origin}{OPENID_WELL_KNOWN}{path}",
        f"{origin}{path}{OPENID_WELL_KNOWN}",
    ]


def _error_fields(response: httpx.Response) -> tuple[str | None, str | None]:
    """Extract the OAuth error pair from an error response body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    error = body.get("error")
    description = body.get("error_description")
    return (
        str(error) if error is not None else None,
        str(description) if description is not None else None,
    )


class OAuthProtocolClient:
    """Authorization server requests over one shared httpx.AsyncClient.

    Example usage:
        async with httpx.AsyncClient() as http_client:
            protocol = OAuthProtocolClient(http_client, timeout=30.0)
            metadata = await protocol.discover_authorization_server_metadata(
                "https://mcp.example.com"
            )
    """

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 30.0) -> None:
        """Initialize protocol client.

        Args:
            http_client: Shared HTTP client, owned by the caller
            timeout: Per-request timeout in seconds
        """
        self._http = http_client
        self._timeout = timeout

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {
            "Accept": "application/json",
            MCP_PROTOCOL_VERSION_HEADER: MCP_PROTOCOL_VERSION,
            **kwargs.pop("headers", {}),
        }
        try:
            return await self._http.request(
                method,
                url,
                headers=headers,
                timeout=self._timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise OAuthProtocolError(
                f"Request to {url} timed out after {self._timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise OAuthProtocolError(f"Request to {url} failed: {e}") from e

    async def _get_metadata(self, urls: list[str], kind: str) -> dict[str, Any] | None:
        """GET the first metadata document found among urls.

        Client errors move on to the next candidate. Server errors abort.
        """
        for url in urls:
            response = await self._request("GET", url)

            if 400 <= response.status_code < 500:
                logger.debug(
                    "oauth_metadata_not_found",
                    kind=kind,
                    url=url,
                    status_code=response.status_code,
                )
                continue

            if response.status_code != 200:
                raise OAuthProtocolError(
                    f"HTTP {response.status_code} loading {kind} metadata from {url}",
                    status_code=response.status_code,
                )

            try:
                data = response.json()
            except ValueError as e:
                raise OAuthProtocolError(
                    f"Invalid JSON in {kind} metadata from {url}"
                ) from e
            if not isinstance(data, dict):
                raise OAuthProtocolError(f"Invalid {kind} metadata document at {url}")

            logger.debug("oauth_metadata_found", kind=kind, url=url)
            return data

        return None

    async def discover_protected_resource_metadata(
        self,
        server_url: str,
    ) -> ProtectedResourceMetadata | None:
        """Discover protected resource metadata (RFC 9728).

        Returns:
            Metadata, or None when the server publishes none
        """
        data = await self._get_metadata(
            protected_resource_metadata_urls(server_url),
            "protected_resource",
        )
        if data is None:
            return None
        try:
            return ProtectedResourceMetadata.model_validate(data)
        except ValidationError as e:
            raise OAuthProtocolError(
                f"Invalid protected resource metadata for {server_url}"
            ) from e

    async def discover_authorization_server_metadata(
        self,
        auth_server_url: str,
    ) -> AuthServerMetadata | None:
        """Discover authorization server metadata (RFC 8414 / OIDC).

        Returns:
            Metadata, or None when no location serves a document
        """
        data = await self._get_metadata(
            authorization_server_metadata_urls(auth_server_url),
            "authorization_server",
        )
        if data is None:
            return None
        try:
            return AuthServerMetadata.model_validate(data)
        except ValidationError as e:
            raise OAuthProtocolError(
                f"Invalid authorization server metadata for {auth_server_url}"
            ) from e

    async def register_client(
        self,
        registration_endpoint: str,
        request: ClientRegistrationRequest,
    ) -> ClientInformation:
        """Register a client dynamically (RFC 7591)."""
        response = await self._request(
            "POST",
            registration_endpoint,
            json=request.model_dump(exclude_none=True),
        )

        if response.status_code not in (200, 201):
            error, description = _error_fields(response)
            raise OAuthProtocolError(
                f"Client registration failed with HTTP {response.status_code}",
                error=error,
                error_description=description,
                status_code=response.status_code,
            )

        try:
            return ClientInformation.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise OAuthProtocolError(
                "Client registration returned an invalid response",
                status_code=response.status_code,
            ) from e

    def build_authorization_url(
        self,
        authorization_endpoint: str,
        *,
        client: ClientInformation,
        redirect_uri: str,
        state: str,
        resource: str,
        scope: str | None = None,
    ) -> tuple[str, str]:
        """Build the authorization URL for the code flow with PKCE.

        Query parameters already present on the endpoint are preserved.

        Returns:
            (authorization_url, code_verifier)
        """
        code_verifier, code_challenge = generate_pkce_pair()

        params: dict[str, str] = {
            "response_type": "code",
            "client_id": client.client_id,
            "redirect_uri": redirect_uri,
            "code_challenge": code_challenge,
            "code_challenge_method": CODE_CHALLENGE_METHOD,
            "state": state,
            "resource": resource,
        }
        if scope:
            params["scope"] = scope

        url = httpx.URL(authorization_endpoint).copy_merge_params(params)
        return str(url), code_verifier

    async def exchange_authorization(
        self,
        token_endpoint: str,
        *,
        client: ClientInformation,
        code: str,
        code_verifier: str,
        redirect_uri: str,
        resource: str,
    ) -> OAuthTokens:
        """Exchange an authorization code for tokens."""
        return await self._token_request(
            token_endpoint,
            client,
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier,
                "redirect_uri": redirect_uri,
                "resource": resource,
            },
        )

    async def refresh_authorization(
        self,
        token_endpoint: str,
        *,
        client: ClientInformation,
        refresh_token: str,
        resource: str,
    ) -> OAuthTokens:
        """Exchange a refresh token for new tokens."""
        return await self._token_request(
            token_endpoint,
            client,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "resource": resource,
            },
        )

    async def _token_request(
        self,
        token_endpoint: str,
        client: ClientInformation,
        form: dict[str, str],
    ) -> OAuthTokens:
        form = {**form, "client_id": client.client_id}
        if client.client_secret:
            form["client_secret"] = client.client_secret

        response = await self._request("POST", token_endpoint, data=form)

        if response.status_code != 200:
            error, description = _error_fields(response)
            raise OAuthProtocolError(
                f"Token request failed with HTTP {response.status_code}",
                error=error,
                error_description=description,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise OAuthProtocolError(
                "Token endpoint returned invalid JSON",
                status_code=response.status_code,
            ) from e

        # Some providers answer 200 with an error body
        if isinstance(data, dict) and "error" in data:
            raise OAuthProtocolError(
                f"Token request rejected: {data.get('error')}",
                error=str(data.get("error")),
                error_description=data.get("error_description"),
                status_code=response.status_code,
            )

        try:
            return OAuthTokens.model_validate(data)
        except ValidationError as e:
            raise OAuthProtocolError(
                "Token endpoint returned an invalid token response",
                status_code=response.status_code,
            ) from e
