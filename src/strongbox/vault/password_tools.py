"""Password strength scoring and secure password generation.

``calculate_strength`` is a pure function: the same password always gets the
same score. ``generate_secure_password`` draws every character from the OS
secure random source.
"""

import re
from typing import List

from .random_source import secure_choice, secure_shuffle

UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
DIGITS = "0123456789"
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
SIMILAR_CHARS = "il1Lo0O"

STRONG_THRESHOLD = 60
_MAX_GENERATION_ATTEMPTS = 100

_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"[0-9]")
_SYMBOL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{}|;:,.<>?]")
_TRIPLE_RE = re.compile(r"(.)\1{2,}")

# (minimum length, credit)
_LENGTH_MILESTONES = ((8, 10), (12, 15), (16, 20), (20, 25))
_CLASS_CREDITS = {"upper": 10, "lower": 10, "digit": 10, "symbol": 15}
_COMMON_PATTERNS = (("password", 20), ("123", 10), ("abc", 10))


def _length_credit(length: int) -> int:
    return sum(credit for minimum, credit in _LENGTH_MILESTONES if length >= minimum)


def _variety_credit(class_count: int) -> int:
    score = 0
    if class_count >= 3:
        score += 10
    if class_count == 4:
        score += 10
    return score


def calculate_strength(password: str) -> int:
    """
    Score a password from 0 to 100.

    Length milestones and character-class diversity add credit; common
    substrings ("password", "123", "abc") and runs of three identical
    characters subtract it.
    """
    classes = {
        "upper": bool(_UPPER_RE.search(password)),
        "lower": bool(_LOWER_RE.search(password)),
        "digit": bool(_DIGIT_RE.search(password)),
        "symbol": bool(_SYMBOL_RE.search(password)),
    }

    score = _length_credit(len(password))
    score += sum(_CLASS_CREDITS[name] for name, present in classes.items() if present)
    score += _variety_credit(sum(classes.values()))

    lowered = password.lower()
    for pattern, penalty in _COMMON_PATTERNS:
        if pattern in lowered:
            score -= penalty
    if _TRIPLE_RE.search(password):
        score -= 10

    return max(0, min(100, score))


def strength_description(score: int) -> str:
    """Human label for a strength score."""
    if score >= 80:
        return "Very Strong"
    if score >= 60:
        return "Strong"
    if score >= 40:
        return "Good"
    if score >= 20:
        return "Weak"
    return "Very Weak"


def is_strong(password: str) -> bool:
    return calculate_strength(password) > STRONG_THRESHOLD


def generate_secure_password(
    length: int = 16,
    include_uppercase: bool = True,
    include_lowercase: bool = True,
    include_numbers: bool = True,
    include_symbols: bool = True,
    exclude_similar: bool = True,
) -> str:
    """
    Generate a cryptographically random password.

    Every enabled character class appears at least once, and candidates
    that trip a strength penalty (common substrings, triple runs) are
    redrawn, so the result scores as high as its length allows.

    Raises:
        ValueError: No class enabled, or ``length`` shorter than the number
            of enabled classes.
    """
    pools: List[str] = []
    if include_uppercase:
        pools.append(UPPERCASE)
    if include_lowercase:
        pools.append(LOWERCASE)
    if include_numbers:
        pools.append(DIGITS)
    if include_symbols:
        pools.append(SYMBOLS)

    if exclude_similar:
        pools = ["".join(c for c in pool if c not in SIMILAR_CHARS) for pool in pools]

    if not pools:
        raise ValueError("At least one character type must be included")
    if length < len(pools):
        raise ValueError(
            f"Password length must be at least {len(pools)} to include every selected character type"
        )

    alphabet = "".join(pools)
    best, best_score = "", -1
    for _ in range(_MAX_GENERATION_ATTEMPTS):
        chars = [secure_choice(pool) for pool in pools]
        chars.extend(secure_choice(alphabet) for _ in range(length - len(chars)))
        secure_shuffle(chars)
        candidate = "".join(chars)

        if not _has_penalty(candidate):
            return candidate
        score = calculate_strength(candidate)
        if score > best_score:
            best, best_score = candidate, score
    return best


def _has_penalty(password: str) -> bool:
    lowered = password.lower()
    if any(pattern in lowered for pattern, _ in _COMMON_PATTERNS):
        return True
    return bool(_TRIPLE_RE.search(password))
