"""Tests for the freshness gate.

The window boundary is exclusive: a result completed exactly window-ago is
stale. Plagiarism-style reuse also needs the stored hash to match.
"""

from datetime import UTC, datetime, timedelta

import pytest

from app.services.analysis_freshness import (
    as_utc,
    content_hash,
    freshness_window,
    is_fresh,
    should_reuse,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)
WINDOW = timedelta(days=7)


class TestContentHash:
    def test_sha256_hex(self) -> None:
        assert content_hash("") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_stable_and_sensitive_to_changes(self) -> None:
        assert content_hash("lesson body") == content_hash("lesson body")
        assert content_hash("lesson body") != content_hash("lesson body.")


class TestIsFresh:
    @pytest.mark.parametrize(
        ("age", "expected"),
        [
            (timedelta(0), True),
            (timedelta(days=6, hours=23), True),
            (timedelta(days=7), False),
            (timedelta(days=8), False),
        ],
    )
    def test_window_boundary(self, age: timedelta, expected: bool) -> None:
        assert is_fresh(NOW - age, WINDOW, NOW) is expected

    def test_missing_timestamp_is_stale(self) -> None:
        assert is_fresh(None, WINDOW, NOW) is False

    def test_naive_timestamp_treated_as_utc(self) -> None:
        naive = (NOW - timedelta(days=1)).replace(tzinfo=None)

        assert as_utc(naive).tzinfo is UTC
        assert is_fresh(naive, WINDOW, NOW) is True

    def test_default_window_from_settings(self) -> None:
        assert freshness_window() == timedelta(days=7)


class TestShouldReuse:
    def test_fresh_completed_result_is_reused(self) -> None:
        assert should_reuse(True, NOW - timedelta(days=1), window=WINDOW, now=NOW)

    def test_force_bypasses_reuse(self) -> None:
        assert not should_reuse(
            True, NOW - timedelta(days=1), force=True, window=WINDOW, now=NOW
        )

    def test_incomplete_result_is_not_reused(self) -> None:
        assert not should_reuse(False, NOW, window=WINDOW, now=NOW)

    def test_hash_mismatch_blocks_reuse(self) -> None:
        assert not should_reuse(
            True,
            NOW,
            window=WINDOW,
            stored_hash=content_hash("old text"),
            current_hash=content_hash("new text"),
            now=NOW,
        )

    def test_matching_hash_allows_reuse(self) -> None:
        digest = content_hash("same text")

        assert should_reuse(
            True, NOW, window=WINDOW, stored_hash=digest, current_hash=digest, now=NOW
        )
