# Strongbox - Master Secret Verifier
#
# One-way hash of the master secret for local "is this the right password"
# checks (the device gate and the unlock corroboration). Never a vault key.
#
# Stored format:  pbkdf2_sha256$<iterations>$<b64 salt>$<b64 digest>
#
# The verifier salt is generated independently of the vault-key salt and is
# prefixed with a fixed label before derivation, so the verifier digest and
# the vault key are never the output of the same PBKDF2 computation.

import base64
import binascii
import hmac
import logging
from typing import Optional, Tuple

from ..core.config import DEFAULT_PBKDF2_ITERATIONS, MASTER_HASH_SALT_LENGTH
from .encryption import EncryptionService
from .random_source import generate_salt

logger = logging.getLogger(__name__)

HASH_SCHEME = "pbkdf2_sha256"
DIGEST_LENGTH = 32
_VERIFIER_LABEL = b"strongbox:verifier:v1:"


def check_master_secret_policy(secret: str, min_length: int = 8) -> Tuple[bool, str]:
    """
    Verify a new master secret meets the minimum requirements.

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(secret, str) or not secret.strip():
        return False, "Master password cannot be empty"
    if len(secret) < min_length:
        return False, f"Master password must be at least {min_length} characters long"
    return True, ""


class MasterSecretVerifier:
    """
    Hashes and verifies master secrets.

    A verifier instance is bound to one salt, so ``hash()`` is deterministic
    for that instance. ``verify()`` reads the salt and iteration count from
    the stored hash and works with any instance.
    """

    def __init__(
        self,
        salt: Optional[bytes] = None,
        iterations: int = DEFAULT_PBKDF2_ITERATIONS,
        salt_length: int = MASTER_HASH_SALT_LENGTH,
    ):
        self.salt = salt if salt is not None else generate_salt(salt_length)
        self.iterations = iterations

    def hash(self, secret: str) -> str:
        """Return the encoded hash of ``secret`` under this verifier's salt."""
        digest = _digest(secret, self.salt, self.iterations)
        return "$".join((
            HASH_SCHEME,
            str(self.iterations),
            base64.b64encode(self.salt).decode("ascii"),
            base64.b64encode(digest).decode("ascii"),
        ))

    @staticmethod
    def verify(secret: str, stored_hash: str) -> bool:
        """Recompute and compare in constant time. Malformed hashes never verify."""
        parsed = _parse(stored_hash)
        if parsed is None:
            return False
        iterations, salt, expected = parsed
        if not isinstance(secret, str):
            return False
        actual = _digest(secret, salt, iterations)
        return hmac.compare_digest(actual, expected)


def hash_master_secret(
    secret: str,
    salt: Optional[bytes] = None,
    iterations: int = DEFAULT_PBKDF2_ITERATIONS,
) -> str:
    """Hash a master secret; pass ``salt`` for a reproducible result."""
    return MasterSecretVerifier(salt=salt, iterations=iterations).hash(secret)


def verify_master_secret(secret: str, stored_hash: str) -> bool:
    """Check ``secret`` against a hash from :func:`hash_master_secret`."""
    return MasterSecretVerifier.verify(secret, stored_hash)


def _digest(secret: str, salt: bytes, iterations: int) -> bytes:
    return EncryptionService.derive_key(
        secret, _VERIFIER_LABEL + bytes(salt), iterations, DIGEST_LENGTH,
    )


def _parse(stored_hash: str) -> Optional[Tuple[int, bytes, bytes]]:
    if not isinstance(stored_hash, str):
        return None
    parts = stored_hash.split("$")
    if len(parts) != 4 or parts[0] != HASH_SCHEME:
        return None
    try:
        iterations = int(parts[1])
        salt = base64.b64decode(parts[2], validate=True)
        digest = base64.b64decode(parts[3], validate=True)
    except (ValueError, binascii.Error):
        logger.debug("Unparseable master secret hash")
        return None
    if iterations < 1 or not salt or len(digest) != DIGEST_LENGTH:
        return None
    return iterations, salt, digest
