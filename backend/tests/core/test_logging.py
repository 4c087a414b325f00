"""Tests for logging helpers.

- Secrets are masked before they reach a record
- The task context filter stamps request and job ids
- Component loggers drop None fields and round durations
"""

import logging

import pytest

from app.core.logging import (
    ComponentLogger,
    TaskContextFilter,
    job_id_var,
    mask_api_key,
    mask_connection_string,
    request_id_var,
    truncate,
)


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "message", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestMasking:
    def test_connection_string_password(self) -> None:
        assert (
            mask_connection_string("postgresql://app:s3cret@db:5432/analysis")
            == "postgresql://app:****@db:5432/analysis"
        )
        assert mask_connection_string("redis://localhost:6379/0") == (
            "redis://localhost:6379/0"
        )

    @pytest.mark.parametrize(
        ("key", "masked"),
        [(None, None), ("", None), ("short", "****"), ("sk-live-abcdef123456", "****3456")],
    )
    def test_api_key(self, key: str | None, masked: str | None) -> None:
        assert mask_api_key(key) == masked

    def test_truncate(self) -> None:
        assert truncate("abc", 5) == "abc"
        assert truncate("abcdefgh", 5) == "abcde... (truncated, 8 chars)"


class TestTaskContextFilter:
    def test_stamps_current_ids(self) -> None:
        request_token = request_id_var.set("req-1")
        job_token = job_id_var.set("job-1")
        try:
            record = make_record()
            assert TaskContextFilter().filter(record) is True
        finally:
            request_id_var.reset(request_token)
            job_id_var.reset(job_token)

        assert record.request_id == "req-1"
        assert record.job_id == "job-1"

    def test_explicit_extra_wins(self) -> None:
        token = request_id_var.set("req-ambient")
        try:
            record = make_record(request_id="req-explicit")
            TaskContextFilter().filter(record)
        finally:
            request_id_var.reset(token)

        assert record.request_id == "req-explicit"

    def test_no_context_leaves_record_alone(self) -> None:
        record = make_record()
        TaskContextFilter().filter(record)

        assert not hasattr(record, "request_id")
        assert not hasattr(record, "job_id")


def test_component_logger_cleans_fields(caplog: pytest.LogCaptureFixture) -> None:
    class SampleLogger(ComponentLogger):
        channel = "sample"

    with caplog.at_level(logging.INFO, logger="sample"):
        SampleLogger()._emit(logging.INFO, "sample", duration_ms=12.3456, table=None)

    record = caplog.records[-1]
    assert record.duration_ms == 12.35
    assert not hasattr(record, "table")
