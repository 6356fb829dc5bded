"""Fernet encryption for secrets stored in the integration tables.

Client secrets, access tokens, refresh tokens and API keys are written as a
single Fernet token holding a JSON object; they are never logged in clear.
"""

import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
import structlog

logger = structlog.get_logger()


class EncryptionError(Exception):
    """Secret could not be encrypted or decrypted."""


class EncryptionKeyError(EncryptionError):
    pass


class DecryptionError(EncryptionError):
    pass


class CredentialEncryption:
    """Encrypts secret dicts for the record stores.

    Holds no state besides the key, so one instance serves every store.
    """

    def __init__(self, key: str) -> None:
        try:
            self._fernet = Fernet(key.encode())
        except Exception as e:
            logger.error("encryption_key_invalid", error=str(e))
            raise EncryptionKeyError(
                "ENCRYPTION_KEY is not a valid Fernet key; "
                "create one with CredentialEncryption.generate_key()"
            ) from e

    def encrypt(self, data: dict[str, Any]) -> str:
        """Serialize secrets to compact JSON and encrypt them."""
        try:
            json_bytes = json.dumps(data, separators=(",", ":")).encode("utf-8")
            return self._fernet.encrypt(json_bytes).decode("utf-8")
        except Exception as e:
            logger.error("encryption_failed", error_type=type(e).__name__)
            raise EncryptionError("Could not encrypt secrets") from e

    def decrypt(self, encrypted_data: str) -> dict[str, Any]:
        """Decrypt a stored token back into its secrets.

        Raises:
            DecryptionError: Wrong key, tampered token or non-JSON payload
        """
        try:
            decrypted_bytes = self._fernet.decrypt(encrypted_data.encode("utf-8"))
            return json.loads(decrypted_bytes.decode("utf-8"))
        except InvalidToken as e:
            logger.warning("decryption_invalid_token")
            raise DecryptionError(
                "Stored secrets do not match ENCRYPTION_KEY or were modified"
            ) from e
        except json.JSONDecodeError as e:
            logger.error("decryption_invalid_json")
            raise DecryptionError("Stored secrets are not a JSON object") from e

    def encrypt_optional(self, data: dict[str, Any]) -> str | None:
        """Encrypt only the non-empty values; None when nothing is left."""
        present = {k: v for k, v in data.items() if v is not None}
        if not present:
            return None
        return self.encrypt(present)

    def decrypt_optional(self, encrypted_data: str | None) -> dict[str, Any]:
        """Decrypt a nullable column; an empty dict for None."""
        if not encrypted_data:
            return {}
        return self.decrypt(encrypted_data)

    @staticmethod
    def generate_key() -> str:
        """Create a fresh key for ENCRYPTION_KEY."""
        return Fernet.generate_key().decode("utf-8")


def mask_credential_value(value: str | None, visible_chars: int = 4) -> str:
    """Keep the first ``visible_chars`` characters and star out at most 8 more.

    Values no longer than ``visible_chars`` are fully starred.
    """
    if not value:
        return "<none>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * min(8, len(value) - visible_chars)
