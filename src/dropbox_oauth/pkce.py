"""
PKCE (Proof Key for Code Exchange) helpers.

RFC 7636: https://www.rfc-editor.org/rfc/rfc7636

The code verifier stays inside the client; only its S256 challenge travels
with the authorization request. An intercepted authorization code is
useless without the verifier.
"""

import base64
import hashlib
import secrets
from typing import Tuple

# 96 random bytes -> 128 base64url characters, the RFC 7636 maximum
VERIFIER_BYTES = 96
STATE_BYTES = 32


def compute_code_challenge(code_verifier: str) -> str:
    """
    Compute the S256 code challenge for a verifier.

    Args:
        code_verifier: PKCE code verifier

    Returns:
        base64url(SHA-256(verifier)) without padding
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> Tuple[str, str]:
    """
    Generate a PKCE code verifier and its challenge.

    The verifier uses only unreserved URI characters (A-Z, a-z, 0-9, "-", "_").

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    code_verifier = secrets.token_urlsafe(VERIFIER_BYTES)
    return code_verifier, compute_code_challenge(code_verifier)


def generate_state() -> str:
    """Random state nonce echoed through the flow for CSRF protection."""
    return secrets.token_urlsafe(STATE_BYTES)
