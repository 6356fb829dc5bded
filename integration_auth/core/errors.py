"""Error taxonomy for integration authorization.

Every failure surfaced by this package derives from IntegrationAuthError.
Callers should map errors with ``requires_reconnect`` to a "reconnect
integration" action and treat all others as a generic failure.
"""


class IntegrationAuthError(Exception):
    """Base error for integration authorization."""

    requires_reconnect = False

    def __init__(self, message: str, *, integration: str | None = None) -> None:
        super().__init__(message)
        self.integration = integration


class ConfigurationError(IntegrationAuthError):
    """Missing server URL, redirect URI or unknown integration."""

    pass


class IntegrationNotFoundError(ConfigurationError):
    """Integration key is not in the catalog."""

    pass


class DiscoveryError(IntegrationAuthError):
    """Authorization server metadata unobtainable and no fallback configured."""

    def __init__(
        self,
        message: str,
        *,
        integration: str | None = None,
        cause: str | None = None,
        has_fallback: bool = False,
    ) -> None:
        super().__init__(message, integration=integration)
        self.cause = cause
        self.has_fallback = has_fallback


class ProviderError(IntegrationAuthError):
    """Authorization server rejected a request.

    Carries the RFC 6749 error code and description when the server sent them.
    """

    def __init__(
        self,
        message: str,
        *,
        integration: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, integration=integration)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code


class RegistrationError(ProviderError):
    """Client credentials cannot be obtained for an integration."""

    pass


class TokenExchangeError(ProviderError):
    """Authorization code exchange failed."""

    pass


class TokenRefreshError(ProviderError):
    """Refresh token exchange failed."""

    pass


class NotConnectedError(IntegrationAuthError):
    """No connection or access token - the authorization flow must run first."""

    requires_reconnect = True


class ReconnectRequiredError(IntegrationAuthError):
    """Connection lapsed: token expired and no refresh token is available."""

    requires_reconnect = True


class ConcurrencyConflictError(IntegrationAuthError):
    """Stored record changed since it was read."""

    def __init__(
        self,
        message: str,
        *,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ) -> None:
        super().__init__(message)
        self.expected_version = expected_version
        self.actual_version = actual_version
