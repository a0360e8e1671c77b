"""Tests for the log formatters (OTI/block context from request timing)."""

import json
import logging

from app.middleware.logging_config import JSONFormatter, ReadableFormatter


def _record(**extra):
    record = logging.LogRecord(
        "app.services.workflow_engine", logging.INFO, __file__, 10,
        "Block %s moved", (2,), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_block_context():
    entry = json.loads(JSONFormatter().format(_record(oti_id="OTI-1", sequence=2, status=200)))
    assert entry["message"] == "Block 2 moved"
    assert entry["level"] == "INFO"
    assert entry["oti_id"] == "OTI-1"
    assert entry["sequence"] == 2
    assert entry["status"] == 200
    assert "duration_ms" not in entry


def test_readable_formatter_appends_context():
    line = ReadableFormatter().format(_record(oti_id="OTI-1", sequence=2, duration_ms=12.4))
    assert "Block 2 moved" in line
    assert line.endswith("[12ms] oti=OTI-1#2")


def test_readable_formatter_without_context():
    line = ReadableFormatter().format(_record())
    assert line.endswith("app.services.workflow_engine: Block 2 moved")
