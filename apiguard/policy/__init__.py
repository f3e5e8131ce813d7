"""Request-independent security policies."""

from apiguard.policy.passwords import (
    PasswordAssessment,
    PasswordPolicy,
    password_strength,
    strength_label,
    validate_password,
)

__all__ = [
    "PasswordAssessment",
    "PasswordPolicy",
    "password_strength",
    "strength_label",
    "validate_password",
]
