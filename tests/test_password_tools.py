# Tests for password strength scoring and generation
#
# Coverage:
#   - Exact scores for reference passwords
#   - Monotonicity, clamping, determinism
#   - Penalties (common substrings, triple runs)
#   - Generator: length, class coverage, similar-char exclusion, uniqueness

import pytest

from strongbox.vault.password_tools import (
    DIGITS,
    LOWERCASE,
    SIMILAR_CHARS,
    SYMBOLS,
    UPPERCASE,
    calculate_strength,
    generate_secure_password,
    is_strong,
    strength_description,
)


# ── Strength Scoring ────────────────────────────────────────────────


class TestCalculateStrength:

    @pytest.mark.parametrize("password,expected", [
        ("", 0),
        ("123", 0),
        ("abcdefgh", 10),          # 8 chars +10, lower +10, "abc" -10
        ("Password123", 20),       # 10 + 10+10+10 + 10 - 20 - 10
        ("MySecurePassword123!@#", 100),
        ("Tr0ub4dor&3", 75),       # 10 + 45 + 20
        ("aaa", 0),
    ])
    def test_reference_scores(self, password, expected):
        assert calculate_strength(password) == expected

    def test_monotonic_reference_passwords(self):
        assert (
            calculate_strength("123")
            < calculate_strength("Password123")
            < calculate_strength("MySecurePassword123!@#")
        )

    def test_deterministic(self):
        assert calculate_strength("Xy7!Xy7!Xy7!") == calculate_strength("Xy7!Xy7!Xy7!")

    def test_clamped_to_range(self):
        for password in ["", "password", "passwordpassword123abc", "Aa1!" * 10]:
            assert 0 <= calculate_strength(password) <= 100

    def test_common_substring_penalty_is_case_insensitive(self):
        assert calculate_strength("XyzPASSWORD!9") < calculate_strength("XyzQWERTYUI!9")

    def test_triple_run_penalty(self):
        assert calculate_strength("Kq7!mmmZr2") == calculate_strength("Kq7!mnmZr2") - 10

    def test_length_milestones(self):
        # lowercase only, no penalties: class credit 10 + length credit
        assert calculate_strength("qwertyu") == 10
        assert calculate_strength("qwertyui") == 20
        assert calculate_strength("qwertyuiopas") == 35
        assert calculate_strength("qwertyuiopasdfgh") == 55
        assert calculate_strength("qwertyuiopasdfghjklz") == 80


class TestStrengthDescription:

    @pytest.mark.parametrize("score,label", [
        (100, "Very Strong"),
        (80, "Very Strong"),
        (79, "Strong"),
        (60, "Strong"),
        (40, "Good"),
        (20, "Weak"),
        (19, "Very Weak"),
        (0, "Very Weak"),
    ])
    def test_labels(self, score, label):
        assert strength_description(score) == label

    def test_is_strong(self):
        assert is_strong("MySecurePassword123!@#")
        assert not is_strong("Password123")


# ── Generation ──────────────────────────────────────────────────────


class TestGenerateSecurePassword:

    def test_default_length_and_strength(self):
        password = generate_secure_password(16)
        assert len(password) == 16
        assert calculate_strength(password) > 60

    def test_full_score_at_16(self):
        for _ in range(20):
            assert calculate_strength(generate_secure_password(16)) == 100

    def test_passwords_are_unique(self):
        assert generate_secure_password(16) != generate_secure_password(16)

    def test_every_class_present(self):
        for _ in range(50):
            password = generate_secure_password(8)
            assert any(c in UPPERCASE for c in password)
            assert any(c in LOWERCASE for c in password)
            assert any(c in DIGITS for c in password)
            assert any(c in SYMBOLS for c in password)

    def test_excludes_similar_by_default(self):
        for _ in range(30):
            assert not set(generate_secure_password(64)) & set(SIMILAR_CHARS)

    def test_can_allow_similar(self):
        password = generate_secure_password(
            200, include_symbols=False, exclude_similar=False
        )
        assert len(password) == 200

    def test_digits_only(self):
        password = generate_secure_password(
            12,
            include_uppercase=False,
            include_lowercase=False,
            include_symbols=False,
        )
        assert len(password) == 12
        assert set(password) <= set(DIGITS) - set(SIMILAR_CHARS)

    def test_no_symbols(self):
        password = generate_secure_password(32, include_symbols=False)
        assert not set(password) & set(SYMBOLS)

    def test_minimum_length_is_class_count(self):
        assert len(generate_secure_password(4)) == 4
        with pytest.raises(ValueError):
            generate_secure_password(3)

    def test_no_classes(self):
        with pytest.raises(ValueError):
            generate_secure_password(
                16,
                include_uppercase=False,
                include_lowercase=False,
                include_numbers=False,
                include_symbols=False,
            )
