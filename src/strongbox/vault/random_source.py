"""Cryptographically secure random bytes for salts, IVs and generated passwords.

All randomness in Strongbox comes through this module. If the OS CSPRNG
cannot be used the call fails with ``RandomSourceUnavailable``; there is no
fallback to a non-cryptographic generator.
"""

import logging
import secrets

from .errors import RandomSourceUnavailable

logger = logging.getLogger(__name__)

SALT_LENGTH = 32  # 256-bit salt
IV_LENGTH = 16  # AES block size


def generate_random_bytes(n: int) -> bytes:
    """Return ``n`` bytes from the OS secure random source.

    Raises:
        ValueError: If ``n`` is negative or not an int.
        RandomSourceUnavailable: If the OS source fails.
    """
    if not isinstance(n, int) or isinstance(n, bool) or n < 0:
        raise ValueError(f"Byte count must be a non-negative integer, got {n!r}")
    try:
        return secrets.token_bytes(n)
    except (OSError, NotImplementedError) as exc:
        logger.critical("Secure random source failed: %s", type(exc).__name__)
        raise RandomSourceUnavailable() from exc


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Generate a cryptographically random salt."""
    return generate_random_bytes(length)


def generate_iv() -> bytes:
    """Generate a fresh 128-bit IV for AES-CBC."""
    return generate_random_bytes(IV_LENGTH)


def secure_choice(alphabet: str) -> str:
    """Pick one character from ``alphabet`` using the secure source."""
    if not alphabet:
        raise ValueError("Cannot choose from an empty alphabet")
    try:
        return secrets.choice(alphabet)
    except (OSError, NotImplementedError) as exc:
        logger.critical("Secure random source failed: %s", type(exc).__name__)
        raise RandomSourceUnavailable() from exc


def secure_shuffle(items: list) -> None:
    """Shuffle ``items`` in place using the OS secure source."""
    try:
        secrets.SystemRandom().shuffle(items)
    except (OSError, NotImplementedError) as exc:
        logger.critical("Secure random source failed: %s", type(exc).__name__)
        raise RandomSourceUnavailable() from exc
