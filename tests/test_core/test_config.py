"""Tests for settings."""

import pytest
from pydantic import SecretStr, ValidationError

from integration_auth.config import Settings


class TestSettings:
    def test_defaults(self, test_settings: Settings):
        assert test_settings.oauth_client_name == "Inbox Zero"
        assert test_settings.default_token_expiry_seconds == 3600
        assert test_settings.oauth_http_timeout > 0

    def test_requires_async_driver(self, test_settings: Settings):
        with pytest.raises(ValidationError):
            Settings(
                database_url="postgresql://localhost/db",
                encryption_key=test_settings.encryption_key.get_secret_value(),
            )

    def test_get_static_client(self, test_settings: Settings):
        settings = test_settings.model_copy(
            update={
                "linear_client_id": "lin-id",
                "linear_client_secret": SecretStr("lin-secret"),
            }
        )

        assert settings.get_static_client("linear") == ("lin-id", "lin-secret")
        assert settings.get_static_client("unknown") == (None, None)

    def test_masked_key_hides_secret(self, test_settings: Settings):
        masked = test_settings.get_masked_key("encryption_key")

        assert masked.endswith("...")
        assert test_settings.encryption_key.get_secret_value() not in masked
        assert test_settings.get_masked_key("stripe_client_secret") == "<not set>"
