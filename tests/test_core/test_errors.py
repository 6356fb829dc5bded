"""Tests for the error taxonomy."""

import pytest

from integration_auth.core.errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    DiscoveryError,
    IntegrationAuthError,
    IntegrationNotFoundError,
    NotConnectedError,
    ProviderError,
    ReconnectRequiredError,
    RegistrationError,
    TokenExchangeError,
    TokenRefreshError,
)


class TestErrorTaxonomy:
    @pytest.mark.parametrize(
        "error_class",
        [
            ConfigurationError,
            IntegrationNotFoundError,
            DiscoveryError,
            RegistrationError,
            TokenExchangeError,
            TokenRefreshError,
            NotConnectedError,
            ReconnectRequiredError,
            ConcurrencyConflictError,
        ],
    )
    def test_all_errors_share_base(self, error_class):
        assert issubclass(error_class, IntegrationAuthError)

    def test_unknown_integration_is_configuration_error(self):
        assert issubclass(IntegrationNotFoundError, ConfigurationError)

    def test_reconnect_errors(self):
        assert NotConnectedError("x").requires_reconnect
        assert ReconnectRequiredError("x").requires_reconnect
        assert not TokenRefreshError("x").requires_reconnect
        assert not DiscoveryError("x").requires_reconnect

    def test_provider_error_fields(self):
        error = TokenExchangeError(
            "Token exchange failed",
            integration="acme",
            error="invalid_grant",
            error_description="Code expired",
            status_code=400,
        )

        assert isinstance(error, ProviderError)
        assert error.integration == "acme"
        assert error.error == "invalid_grant"
        assert error.error_description == "Code expired"
        assert error.status_code == 400

    def test_discovery_error_context(self):
        error = DiscoveryError("no metadata", integration="acme", cause="HTTP 500")

        assert error.cause == "HTTP 500"
        assert error.has_fallback is False
        assert str(error) == "no metadata"

    def test_conflict_versions(self):
        error = ConcurrencyConflictError("conflict", expected_version=2, actual_version=3)

        assert error.expected_version == 2
        assert error.actual_version == 3
