# Tests for the master secret verifier
#
# Coverage:
#   - Hash format and determinism per salt
#   - Verification (match, mismatch, malformed stored hashes)
#   - Independence from the vault key derivation
#   - Minimum policy for new master secrets

import base64

import pytest

from strongbox.vault.encryption import EncryptionService
from strongbox.vault.master_secret import (
    HASH_SCHEME,
    MasterSecretVerifier,
    check_master_secret_policy,
    hash_master_secret,
    verify_master_secret,
)

FAST = 1000


class TestHashFormat:

    def test_format(self):
        stored = hash_master_secret("Secret123!", iterations=FAST)
        scheme, iterations, salt_b64, digest_b64 = stored.split("$")
        assert scheme == HASH_SCHEME
        assert int(iterations) == FAST
        assert len(base64.b64decode(salt_b64)) == 16
        assert len(base64.b64decode(digest_b64)) == 32

    def test_default_iterations(self):
        stored = hash_master_secret("Secret123!")
        assert stored.split("$")[1] == "100000"

    def test_deterministic_for_a_salt(self):
        verifier = MasterSecretVerifier(salt=b"\x01" * 16, iterations=FAST)
        assert verifier.hash("Secret123!") == verifier.hash("Secret123!")
        assert hash_master_secret("Secret123!", salt=b"\x01" * 16, iterations=FAST) == verifier.hash("Secret123!")

    def test_random_salt_per_verifier(self):
        a = hash_master_secret("Secret123!", iterations=FAST)
        b = hash_master_secret("Secret123!", iterations=FAST)
        assert a != b

    def test_hash_does_not_contain_secret(self):
        assert "Secret123!" not in hash_master_secret("Secret123!", iterations=FAST)

    def test_digest_is_not_the_vault_key(self):
        salt = b"\x04" * 32
        verifier = MasterSecretVerifier(salt=salt, iterations=FAST)
        digest = base64.b64decode(verifier.hash("Secret123!").split("$")[3])
        assert digest != EncryptionService.derive_key("Secret123!", salt, FAST)


class TestVerify:

    def test_correct_secret(self):
        stored = hash_master_secret("Secret123!", iterations=FAST)
        assert verify_master_secret("Secret123!", stored)

    def test_wrong_secret(self):
        stored = hash_master_secret("Secret123!", iterations=FAST)
        assert not verify_master_secret("WrongPass", stored)

    def test_verify_reads_iterations_from_hash(self):
        stored = MasterSecretVerifier(iterations=2000).hash("Secret123!")
        assert MasterSecretVerifier.verify("Secret123!", stored)

    @pytest.mark.parametrize("stored", [
        "",
        "garbage",
        "md5$1000$abc$def",
        "pbkdf2_sha256$notanint$AAAA$AAAA",
        "pbkdf2_sha256$0$AAAAAAAAAAAAAAAAAAAAAA==$" + "A" * 44,
        "pbkdf2_sha256$1000$!!!$" + "A" * 44,
        "pbkdf2_sha256$1000$AAAAAAAAAAAAAAAAAAAAAA==$AAAA",
        None,
    ])
    def test_malformed_hash_never_verifies(self, stored):
        assert not verify_master_secret("Secret123!", stored)

    def test_non_str_secret(self):
        stored = hash_master_secret("Secret123!", iterations=FAST)
        assert not verify_master_secret(None, stored)


class TestPolicy:

    def test_accepts_reasonable_secret(self):
        assert check_master_secret_policy("Secret123!") == (True, "")

    @pytest.mark.parametrize("secret", ["", "   ", None])
    def test_rejects_blank(self, secret):
        ok, message = check_master_secret_policy(secret)
        assert not ok
        assert "empty" in message

    def test_rejects_short(self):
        ok, message = check_master_secret_policy("short")
        assert not ok
        assert "8" in message

    def test_custom_minimum(self):
        assert check_master_secret_policy("abcd", min_length=4)[0]
