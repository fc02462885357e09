# Strongbox - Vault Encryption Service
#
# Master secret -> vault key (PBKDF2-HMAC-SHA256)
# Credential encryption (AES-256-CBC + PKCS7, random IV per record)
# Encrypt-then-MAC: HMAC-SHA256 over IV || ciphertext
# Self-contained storage blobs: base64(IV || ciphertext || tag)
#
# The vault key is never used directly by AES or HMAC: HKDF splits it into
# a cipher subkey and a MAC subkey.

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
from typing import Tuple, Union

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core.config import DEFAULT_PBKDF2_ITERATIONS, KEY_LENGTH
from .errors import DecryptionFailed, DecryptionFailureReason
from .random_source import IV_LENGTH, SALT_LENGTH, generate_iv, generate_salt

logger = logging.getLogger(__name__)

KeyBytes = Union[bytes, bytearray, memoryview]

BLOCK_SIZE = 16  # AES block size in bytes
TAG_LENGTH = 32  # HMAC-SHA256
_PADDING_BITS = BLOCK_SIZE * 8
_SUBKEY_CONTEXT = b"strongbox-record-v1"


class EncryptionService:
    """
    Handles key derivation and encryption/decryption for vault records.

    Flow:
    1. User enters master secret
    2. PBKDF2 derives a 256-bit vault key from secret + per-user salt
    3. AES-256-CBC encrypts each credential with its own random IV
    4. HMAC-SHA256 authenticates IV + ciphertext
    5. IV, ciphertext and tag travel together as one base64 string
    """

    PBKDF2_ITERATIONS = DEFAULT_PBKDF2_ITERATIONS
    KEY_LENGTH = KEY_LENGTH  # 256 bits for AES-256
    SALT_LENGTH = SALT_LENGTH  # 256-bit salt
    IV_LENGTH = IV_LENGTH  # 128-bit IV for CBC

    @staticmethod
    def derive_key(
        master_secret: str,
        salt: bytes,
        iterations: int = DEFAULT_PBKDF2_ITERATIONS,
        length: int = KEY_LENGTH,
    ) -> bytes:
        """
        Derive a vault key from a master secret using PBKDF2.

        Deterministic: the same (secret, salt, iterations) always yields the
        same key, which is what makes unlocking after a lock possible.

        Args:
            master_secret: User's master secret (never logged or retained)
            salt: Per-user salt (stored with the account record)
            iterations: PBKDF2 round count
            length: Output key length in bytes

        Returns:
            ``length``-byte key
        """
        if not isinstance(master_secret, str):
            raise TypeError("master_secret must be a str")
        if not salt:
            raise ValueError("salt must be non-empty bytes")
        if iterations < 1:
            raise ValueError("iterations must be positive")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=length,
            salt=bytes(salt),
            iterations=iterations,
        )
        return kdf.derive(master_secret.encode('utf-8'))

    @staticmethod
    def generate_salt() -> bytes:
        """Generate cryptographically random salt."""
        return generate_salt(EncryptionService.SALT_LENGTH)

    @staticmethod
    def encrypt(plaintext: str, key: KeyBytes) -> str:
        """
        Encrypt plaintext under the vault key.

        A fresh IV is drawn for every call, so encrypting the same plaintext
        twice under the same key never produces the same blob.

        Args:
            plaintext: Password or secret to encrypt
            key: 256-bit vault key

        Returns:
            base64(IV || ciphertext || tag)
        """
        if not isinstance(plaintext, str):
            raise TypeError("plaintext must be a str")
        key_bytes = _check_key(key)
        return EncryptionService.encode_for_storage(_seal(plaintext, key_bytes))

    @staticmethod
    def decrypt(blob: str, key: KeyBytes) -> str:
        """
        Decrypt a blob produced by :meth:`encrypt`.

        Raises:
            DecryptionFailed: Blob malformed, or the key does not match
                (tag mismatch). The message never says which.
        """
        key_bytes = _check_key(key, for_decrypt=True)
        return _open(_decode_blob(blob), key_bytes)

    @staticmethod
    def encrypt_with_secret(
        plaintext: str,
        master_secret: str,
        iterations: int = DEFAULT_PBKDF2_ITERATIONS,
    ) -> str:
        """
        Encrypt with a key derived from ``master_secret`` and a per-record salt.

        Returns:
            base64(salt || IV || ciphertext || tag)
        """
        salt = EncryptionService.generate_salt()
        key = EncryptionService.derive_key(master_secret, salt, iterations)
        return EncryptionService.encode_for_storage(salt + _seal(plaintext, key))

    @staticmethod
    def decrypt_with_secret(
        blob: str,
        master_secret: str,
        iterations: int = DEFAULT_PBKDF2_ITERATIONS,
    ) -> str:
        """Decrypt a per-record-salt blob from :meth:`encrypt_with_secret`."""
        raw = _decode_blob(blob)
        if len(raw) <= SALT_LENGTH:
            raise DecryptionFailed(DecryptionFailureReason.MALFORMED)
        salt, sealed = raw[:SALT_LENGTH], raw[SALT_LENGTH:]
        _check_layout(sealed)
        key = EncryptionService.derive_key(master_secret, salt, iterations)
        return _open(sealed, key)

    @staticmethod
    def is_vault_key_format(blob: str) -> bool:
        """True when ``blob`` has the shape of an :meth:`encrypt` result."""
        try:
            _check_layout(_decode_blob(blob))
        except DecryptionFailed:
            return False
        return True

    @staticmethod
    def generate_hmac(key: KeyBytes, data: str) -> str:
        """HMAC-SHA256 tamper tag for ``data``, base64-encoded."""
        digest = hmac.new(bytes(key), data.encode('utf-8'), hashlib.sha256).digest()
        return EncryptionService.encode_for_storage(digest)

    @staticmethod
    def verify_hmac(key: KeyBytes, data: str, expected_tag: str) -> bool:
        """Verify a tag from :meth:`generate_hmac` in constant time."""
        actual = EncryptionService.generate_hmac(key, data)
        return secrets.compare_digest(actual, expected_tag)

    @staticmethod
    def encode_for_storage(data: bytes) -> str:
        """Encode binary data as base64 text for storage."""
        return base64.b64encode(data).decode('ascii')

    @staticmethod
    def decode_from_storage(data: str) -> bytes:
        """Decode base64 text from storage."""
        return base64.b64decode(data.encode('ascii'), validate=True)


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------

def _check_key(key: KeyBytes, for_decrypt: bool = False) -> bytes:
    key_bytes = bytes(key)
    if len(key_bytes) != KEY_LENGTH:
        if for_decrypt:
            raise DecryptionFailed(DecryptionFailureReason.INVALID_KEY)
        raise ValueError(f"Vault key must be {KEY_LENGTH} bytes")
    return key_bytes


def _split_key(key: bytes) -> Tuple[bytes, bytes]:
    """HKDF the vault key into (cipher_key, mac_key)."""
    material = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH * 2,
        salt=None,
        info=_SUBKEY_CONTEXT,
    ).derive(key)
    return material[:KEY_LENGTH], material[KEY_LENGTH:]


def _decode_blob(blob: str) -> bytes:
    if not isinstance(blob, str) or not blob:
        raise DecryptionFailed(DecryptionFailureReason.MALFORMED)
    try:
        return EncryptionService.decode_from_storage(blob)
    except (binascii.Error, ValueError, UnicodeEncodeError):
        raise DecryptionFailed(DecryptionFailureReason.MALFORMED) from None


def _check_layout(raw: bytes) -> None:
    body = len(raw) - IV_LENGTH - TAG_LENGTH
    if body < BLOCK_SIZE or body % BLOCK_SIZE:
        raise DecryptionFailed(DecryptionFailureReason.MALFORMED)


def _seal(plaintext: str, key: bytes) -> bytes:
    cipher_key, mac_key = _split_key(key)
    iv = generate_iv()

    padder = padding.PKCS7(_PADDING_BITS).padder()
    padded = padder.update(plaintext.encode('utf-8')) + padder.finalize()
    encryptor = Cipher(algorithms.AES(cipher_key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    tag = hmac.new(mac_key, iv + ciphertext, hashlib.sha256).digest()
    return iv + ciphertext + tag


def _open(raw: bytes, key: bytes) -> str:
    _check_layout(raw)
    cipher_key, mac_key = _split_key(key)
    iv = raw[:IV_LENGTH]
    ciphertext = raw[IV_LENGTH:-TAG_LENGTH]
    tag = raw[-TAG_LENGTH:]

    expected = hmac.new(mac_key, iv + ciphertext, hashlib.sha256).digest()
    if not hmac.compare_digest(expected, tag):
        raise DecryptionFailed(DecryptionFailureReason.AUTHENTICATION)

    decryptor = Cipher(algorithms.AES(cipher_key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(_PADDING_BITS).unpadder()
    try:
        data = unpadder.update(padded) + unpadder.finalize()
    except ValueError:
        raise DecryptionFailed(DecryptionFailureReason.BAD_PADDING) from None

    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        raise DecryptionFailed(DecryptionFailureReason.BAD_ENCODING) from None
