"""Tests for logging setup and formatters."""

import json
import logging

from discord_presence.core.logging import (
    TRACE,
    ColorFormatter,
    StructuredFormatter,
    setup_logging,
)


def _record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord("discord_presence.test", level, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_trace_level_registered():
    assert logging.getLevelName(TRACE) == "TRACE"


def test_structured_formatter_includes_extra_fields():
    line = StructuredFormatter().format(_record(user="alice", tier="listenbrainz-mbid"))
    entry = json.loads(line)
    assert entry["msg"] == "hello"
    assert entry["level"] == "INFO"
    assert entry["user"] == "alice"
    assert entry["tier"] == "listenbrainz-mbid"
    assert "cache_key" not in entry


def test_color_formatter_restores_record():
    record = _record()
    out = ColorFormatter(use_color=True).format(record)
    assert "\033[" in out
    assert record.levelname == "INFO"


def test_setup_logging_from_env(monkeypatch):
    monkeypatch.setenv("PRESENCE_LOG_LEVEL", "TRACE")
    monkeypatch.setenv("PRESENCE_LOG_FORMAT", "json")
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging()
        assert root.level == TRACE
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
