"""Cluster join token generation and validation."""

import logging
import secrets
import string
from typing import Tuple

logger = logging.getLogger("k3s.token")

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 32

# Used only when the system random source is unavailable.
FALLBACK_TOKEN = "defaulttokendefaulttokendefaultto"


def generate_token(length: int = TOKEN_LENGTH) -> Tuple[str, bool]:
    """Generate a random alphanumeric token for cluster authentication.

    Args:
        length: Length of the token to generate (at least 32)

    Returns:
        tuple: (token, insecure). ``insecure`` is True when the fixed
        placeholder had to be used because no secure random source exists.
    """
    length = max(length, TOKEN_LENGTH)
    try:
        return ''.join(secrets.choice(TOKEN_ALPHABET) for _ in range(length)), False
    except NotImplementedError as e:
        logger.warning(
            "⚠️  No secure random source available (%s); using a fixed placeholder token. "
            "This token is INSECURE, replace it before production use.", e
        )
        return FALLBACK_TOKEN, True


def validate_format(token) -> bool:
    """Reject empty and whitespace-only tokens."""
    return isinstance(token, str) and bool(token.strip())
