"""
Webhook Authorization Tests
===========================

Tests for ``verify_authorization``.
"""

from unittest.mock import patch

import pytest

from app.core.security import strip_bearer, verify_authorization

SECRET = "rc_secret_value"


class TestVerifyAuthorization:
    """Token comparison rules."""

    @pytest.mark.parametrize(
        "header,expected",
        [
            (SECRET, SECRET),
            (f"Bearer {SECRET}", SECRET),
            (SECRET, f"Bearer {SECRET}"),
            (f"Bearer {SECRET}", f"Bearer {SECRET}"),
        ],
    )
    def test_accepts_matching_tokens_with_or_without_bearer(self, header, expected):
        assert verify_authorization(header, expected) is True

    @pytest.mark.parametrize("header", [None, ""])
    def test_rejects_missing_header(self, header):
        assert verify_authorization(header, SECRET) is False

    @pytest.mark.parametrize("expected", [None, ""])
    def test_rejects_missing_secret(self, expected):
        assert verify_authorization(SECRET, expected) is False

    def test_rejects_same_length_mismatch(self):
        wrong = "x" * len(SECRET)
        assert verify_authorization(wrong, SECRET) is False

    def test_is_case_sensitive(self):
        assert verify_authorization(SECRET.upper(), SECRET) is False

    def test_length_mismatch_skips_byte_comparison(self):
        """Different lengths return before the constant-time compare runs."""
        with patch("app.core.security.hmac.compare_digest") as compare:
            assert verify_authorization("short", SECRET) is False
        compare.assert_not_called()

    def test_only_exact_bearer_prefix_is_stripped(self):
        """Lowercase 'bearer ' is part of the token, not a prefix."""
        assert verify_authorization(f"bearer {SECRET}", SECRET) is False

    def test_comparison_failure_returns_false(self):
        with patch(
            "app.core.security.hmac.compare_digest",
            side_effect=TypeError("boom"),
        ):
            assert verify_authorization(SECRET, SECRET) is False

    def test_non_ascii_tokens_compare_as_utf8(self):
        assert verify_authorization("tökén", "Bearer tökén") is True
        assert verify_authorization("tökén", "tokén") is False


def test_strip_bearer():
    assert strip_bearer("Bearer abc") == "abc"
    assert strip_bearer("abc") == "abc"
    assert strip_bearer("Bearer ") == ""
