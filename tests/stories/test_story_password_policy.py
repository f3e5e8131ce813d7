"""Password policy for registration and password changes.

Acceptance Criteria:
  AC1: Rules run in a fixed order and only the first failure is reported.
  AC2: Length must be between 12 and 128 characters.
  AC3: Missing character classes are all named in one message.
  AC4: Strength feedback is available without enforcing anything.
"""

from __future__ import annotations

import pytest

from apiguard.errors import PasswordMissingComplexity, PasswordTooShort
from apiguard.policy import password_strength, validate_password


class TestAC1AC2Scenario:
    def test_short_fails_long_passes(self):
        with pytest.raises(PasswordTooShort):
            validate_password("Password1!")
        validate_password("Tr0ub4dor&3XYZ")

    def test_only_first_failure(self):
        # short, missing classes and a sequence: only length is reported
        with pytest.raises(PasswordTooShort) as exc:
            validate_password("abcd")
        assert "12" in exc.value.message


class TestAC3Complexity:
    def test_actionable_message(self):
        with pytest.raises(PasswordMissingComplexity) as exc:
            validate_password("alllowercaseletters")
        assert exc.value.message.startswith("Password must contain at least:")
        assert exc.value.missing == [
            "one uppercase letter",
            "one number",
            "one special character (!@#$%^&*...)",
        ]


class TestAC4Feedback:
    def test_repeated_is_very_weak(self):
        assert password_strength("aaaaaaaaaaaa")[1] == "very weak"

    def test_over_http(self, client):
        resp = client.post("/password/strength", json={"password": "aaaaaaaaaaaa"})
        assert resp.json()["label"] == "very weak"
        assert resp.json()["violation"] == "missing_complexity"
