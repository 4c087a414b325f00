"""Freshness gate for stored analysis results.

Decides whether an earlier result can be returned instead of calling the AI
service again. A result is reusable when it is completed and its completion
timestamp falls inside the freshness window; plagiarism results also need a
matching content hash.
"""

import hashlib
from datetime import UTC, datetime, timedelta

from app.core.config import get_settings


def content_hash(text: str) -> str:
    """SHA-256 of the UTF-8 text, lowercase hex."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def freshness_window() -> timedelta:
    return timedelta(days=get_settings().analysis_freshness_days)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def window_start(window: timedelta | None = None, now: datetime | None = None) -> datetime:
    return (now or datetime.now(UTC)) - (window or freshness_window())


def is_fresh(
    completed_at: datetime | None,
    window: timedelta | None = None,
    now: datetime | None = None,
) -> bool:
    if completed_at is None:
        return False
    return as_utc(completed_at) > window_start(window, now)


def should_reuse(
    completed: bool,
    completed_at: datetime | None,
    force: bool = False,
    window: timedelta | None = None,
    stored_hash: str | None = None,
    current_hash: str | None = None,
    now: datetime | None = None,
) -> bool:
    """Return True when a stored result may be returned as-is.

    Args:
        completed: Whether the stored record reached its completed state
        completed_at: Completion timestamp of the stored record
        force: Caller asked for a fresh analysis
        window: Freshness window. Defaults to ANALYSIS_FRESHNESS_DAYS.
        stored_hash: Content hash recorded with the result, if hash-gated
        current_hash: Hash of the current content, if hash-gated
        now: Reference time (tests)
    """
    if force or not completed:
        return False
    if current_hash is not None and stored_hash != current_hash:
        return False
    return is_fresh(completed_at, window, now)
