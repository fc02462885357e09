# Tests for the secure random source
#
# Coverage:
#   - Requested lengths, uniqueness
#   - Argument validation
#   - OS source failure -> RandomSourceUnavailable (no weak fallback)

import pytest

from strongbox.vault import random_source
from strongbox.vault.errors import ErrorKind, RandomSourceUnavailable
from strongbox.vault.random_source import (
    IV_LENGTH,
    SALT_LENGTH,
    generate_iv,
    generate_random_bytes,
    generate_salt,
    secure_choice,
    secure_shuffle,
)


class TestGenerateRandomBytes:

    @pytest.mark.parametrize("n", [0, 1, 16, 32, 64])
    def test_returns_requested_length(self, n):
        assert len(generate_random_bytes(n)) == n

    def test_two_draws_differ(self):
        assert generate_random_bytes(32) != generate_random_bytes(32)

    @pytest.mark.parametrize("bad", [-1, 1.5, "16", None, True])
    def test_rejects_invalid_count(self, bad):
        with pytest.raises(ValueError):
            generate_random_bytes(bad)

    def test_os_failure_raises_random_source_unavailable(self, monkeypatch):
        def broken(n):
            raise OSError("no entropy")

        monkeypatch.setattr(random_source.secrets, "token_bytes", broken)
        with pytest.raises(RandomSourceUnavailable) as exc_info:
            generate_random_bytes(16)
        assert exc_info.value.kind is ErrorKind.RANDOM_SOURCE_UNAVAILABLE


class TestSaltAndIv:

    def test_salt_is_32_bytes(self):
        assert SALT_LENGTH == 32
        assert len(generate_salt()) == 32

    def test_custom_salt_length(self):
        assert len(generate_salt(16)) == 16

    def test_iv_is_block_sized(self):
        assert IV_LENGTH == 16
        assert len(generate_iv()) == 16

    def test_ivs_are_unique(self):
        ivs = {generate_iv() for _ in range(50)}
        assert len(ivs) == 50

    def test_salt_failure_propagates(self, monkeypatch):
        monkeypatch.setattr(
            random_source.secrets, "token_bytes",
            lambda n: (_ for _ in ()).throw(NotImplementedError()),
        )
        with pytest.raises(RandomSourceUnavailable):
            generate_salt()


class TestChoiceAndShuffle:

    def test_choice_from_alphabet(self):
        for _ in range(20):
            assert secure_choice("abc") in "abc"

    def test_choice_empty_alphabet(self):
        with pytest.raises(ValueError):
            secure_choice("")

    def test_shuffle_keeps_items(self):
        items = list(range(20))
        secure_shuffle(items)
        assert sorted(items) == list(range(20))

    def test_choice_failure(self, monkeypatch):
        def broken(seq):
            raise OSError("no entropy")

        monkeypatch.setattr(random_source.secrets, "choice", broken)
        with pytest.raises(RandomSourceUnavailable):
            secure_choice("abc")
