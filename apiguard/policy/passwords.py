"""Password policy: ordered validation rules plus an informational strength score.

Validation short-circuits at the first failing rule:

1. length within ``[min_length, max_length]``
2. character-class coverage (all missing classes reported together)
3. blocklist of common passwords (case-insensitive)
4. sequential runs of four characters from a reference sequence
5. a single character repeated four or more times

The strength score is computed independently and never gates anything.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from apiguard.errors import (
    PasswordCommon,
    PasswordMissingComplexity,
    PasswordPolicyError,
    PasswordRepeated,
    PasswordSequential,
    PasswordTooLong,
    PasswordTooShort,
)

SYMBOLS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

UPPER = re.compile(r"[A-Z]")
LOWER = re.compile(r"[a-z]")
DIGIT = re.compile(r"[0-9]")
SYMBOL = re.compile("[" + re.escape(SYMBOLS) + "]")
REPEATED = re.compile(r"(.)\1{3,}", re.DOTALL)

RUN_LENGTH = 4

REFERENCE_SEQUENCES: tuple[str, ...] = (
    "0123456789",
    "abcdefghijklmnopqrstuvwxyz",
    "qwertyuiop",
    "asdfghjkl",
    "zxcvbnm",
)

# Stored lowercase; membership is checked against the lowercased candidate.
COMMON_PASSWORDS: frozenset[str] = frozenset({
    "password", "123456", "123456789", "12345678", "12345", "1234567",
    "password1", "password123", "qwerty", "abc123", "monkey", "letmein",
    "trustno1", "dragon", "baseball", "iloveyou", "master", "sunshine",
    "ashley", "bailey", "passw0rd", "shadow", "superman", "qazwsx",
    "michael", "football", "welcome", "jesus", "ninja", "mustang",
    "admin", "administrator", "root", "toor", "pass", "1234",
    "test", "guest", "info", "adm", "mysql", "user", "oracle",
    "ftp", "pi", "puppet", "ansible", "ec2-user", "vagrant",
    "azureuser", "default", "changeme", "password1!", "passw0rd!",
})

# (threshold, label): first threshold the score falls under wins
STRENGTH_LABELS: tuple[tuple[int, str], ...] = (
    (30, "very weak"),
    (50, "weak"),
    (70, "acceptable"),
    (90, "strong"),
)
STRONGEST_LABEL = "very strong"


def _build_runs(sequences: tuple[str, ...], length: int) -> frozenset[str]:
    runs: set[str] = set()
    for seq in sequences:
        for i in range(len(seq) - length + 1):
            window = seq[i:i + length]
            runs.add(window)
            runs.add(window[::-1])
    return frozenset(runs)


@dataclass(frozen=True)
class PasswordAssessment:
    """Validation outcome and strength feedback for one candidate."""

    valid: bool
    score: int
    label: str
    violation: PasswordPolicyError | None = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "score": self.score,
            "label": self.label,
            "violation": self.violation.rule if self.violation else None,
            "message": self.violation.message if self.violation else None,
        }


@dataclass
class PasswordPolicy:
    min_length: int = 12
    max_length: int = 128
    common_passwords: frozenset[str] = COMMON_PASSWORDS
    sequences: tuple[str, ...] = REFERENCE_SEQUENCES
    _runs: frozenset[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._runs = _build_runs(self.sequences, RUN_LENGTH)

    # ── rule checks ──

    @staticmethod
    def missing_classes(candidate: str) -> list[str]:
        missing: list[str] = []
        if not UPPER.search(candidate):
            missing.append("one uppercase letter")
        if not LOWER.search(candidate):
            missing.append("one lowercase letter")
        if not DIGIT.search(candidate):
            missing.append("one number")
        if not SYMBOL.search(candidate):
            missing.append("one special character (!@#$%^&*...)")
        return missing

    def is_common(self, candidate: str) -> bool:
        return candidate.lower() in self.common_passwords

    def has_sequential_run(self, candidate: str) -> bool:
        lowered = candidate.lower()
        return any(
            lowered[i:i + RUN_LENGTH] in self._runs
            for i in range(len(lowered) - RUN_LENGTH + 1)
        )

    @staticmethod
    def has_repeated_run(candidate: str) -> bool:
        return REPEATED.search(candidate) is not None

    # ── public API ──

    def validate(self, candidate: str) -> None:
        """Raise the first failing ``PasswordPolicyError``; return None if valid."""
        if not candidate or len(candidate) < self.min_length:
            raise PasswordTooShort(self.min_length)
        if len(candidate) > self.max_length:
            raise PasswordTooLong(self.max_length)

        missing = self.missing_classes(candidate)
        if missing:
            raise PasswordMissingComplexity(missing)

        if self.is_common(candidate):
            raise PasswordCommon()
        if self.has_sequential_run(candidate):
            raise PasswordSequential()
        if self.has_repeated_run(candidate):
            raise PasswordRepeated()

    def check(self, candidate: str) -> PasswordPolicyError | None:
        """Like ``validate`` but return the violation instead of raising it."""
        try:
            self.validate(candidate)
        except PasswordPolicyError as exc:
            return exc
        return None

    def strength_score(self, candidate: str) -> int:
        if not candidate:
            return 0

        score = min(len(candidate) * 2, 40)
        score += 10 * (4 - len(self.missing_classes(candidate)))
        score += min(len(set(candidate)) * 2, 20)

        if self.is_common(candidate):
            score -= 50
        if self.has_sequential_run(candidate):
            score -= 20
        if self.has_repeated_run(candidate):
            score -= 20

        return max(0, min(100, score))

    def assess(self, candidate: str) -> PasswordAssessment:
        violation = self.check(candidate)
        score = self.strength_score(candidate)
        return PasswordAssessment(
            valid=violation is None,
            score=score,
            label=strength_label(score),
            violation=violation,
        )


def strength_label(score: int) -> str:
    for threshold, label in STRENGTH_LABELS:
        if score < threshold:
            return label
    return STRONGEST_LABEL


_default_policy = PasswordPolicy()


def validate_password(candidate: str, policy: PasswordPolicy | None = None) -> None:
    (policy if policy is not None else _default_policy).validate(candidate)


def password_strength(candidate: str, policy: PasswordPolicy | None = None) -> tuple[int, str]:
    score = (policy if policy is not None else _default_policy).strength_score(candidate)
    return score, strength_label(score)


__all__ = [
    "PasswordAssessment",
    "PasswordPolicy",
    "password_strength",
    "strength_label",
    "validate_password",
]
