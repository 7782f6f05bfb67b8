"""Logging helpers for the k3sctl package."""
from typing import Dict

from .config import Config


def redact_env(env: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of an environment mapping with secret values masked.

    Args:
        env: Environment variables about to be logged

    Returns:
        Copy of ``env`` where any key containing one of ``Config.REDACT_KEYS``
        has its value replaced by ``[REDACTED]``
    """
    return {
        k: "[REDACTED]" if any(key in k.lower() for key in Config.REDACT_KEYS) else v
        for k, v in env.items()
    }
