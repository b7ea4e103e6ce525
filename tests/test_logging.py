"""Tests for structured log formatting."""

import logging

from rigger.core.logging import StructuredFormatter, get_logger, log_with_context


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("rigger.test", logging.WARNING, __file__, 10, "dispatch failed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_context_fields_precede_message():
    line = StructuredFormatter().format(_record(task_id="t-1", slot="main", extra_data={"timed_out": True}))

    assert "level=WARNING logger=rigger.test task_id=t-1 slot=main" in line
    assert line.index("slot=main") < line.index("message=")
    assert line.endswith("timed_out=True")


def test_values_with_spaces_are_quoted():
    line = StructuredFormatter().format(_record())

    assert 'message="dispatch failed"' in line


def test_log_with_context_splits_context_and_extra(caplog):
    logger = get_logger("rigger.test.context")

    with caplog.at_level(logging.INFO, logger="rigger.test.context"):
        log_with_context(logger, logging.INFO, "moved", task_id="t-2", provider="ollama", reason="retry")

    record = caplog.records[-1]
    assert record.task_id == "t-2"
    assert record.provider == "ollama"
    assert record.extra_data == {"reason": "retry"}
