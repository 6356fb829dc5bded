"""PKCE (Proof Key for Code Exchange) utilities.

Implements RFC 7636 with the S256 challenge method.
"""

import base64
import hashlib
import secrets

CODE_CHALLENGE_METHOD = "S256"


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge pair.

    Per RFC 7636:
    - code_verifier: 43-128 characters of unreserved URI characters
    - code_challenge: BASE64URL(SHA256(code_verifier))

    Returns:
        tuple[str, str]: (code_verifier, code_challenge)
    """
    # 32 random bytes encode to 43 base64url characters
    code_verifier = secrets.token_urlsafe(32)
    return code_verifier, compute_challenge(code_verifier)


def compute_challenge(code_verifier: str) -> str:
    """Compute the S256 code_challenge from a code_verifier."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_state() -> str:
    """Generate a secure random state parameter for CSRF protection."""
    return secrets.token_urlsafe(32)
