from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from tf_diagram.logging import JsonFormatter, LogConfig, PlainFormatter, add_run_log_file, setup_logging
from tf_diagram.util.events import StepTimers, log_event
from tf_diagram.util.serialization import REDACTED_VALUE, sanitize_for_json, stable_json_dumps


def test_sanitize_for_json_redacts_sensitive_plan_attributes() -> None:
    payload = {
        "password": "hunter2",
        "user_data": "#!/bin/bash",
        "nested": {"auth_token": "abc", "safe": 1, "secret_string": None},
        "items": [{"private_key": "----"}],
    }

    sanitized = sanitize_for_json(payload)

    assert sanitized["password"] == REDACTED_VALUE
    assert sanitized["user_data"] == REDACTED_VALUE
    assert sanitized["nested"]["auth_token"] == REDACTED_VALUE
    assert sanitized["nested"]["safe"] == 1
    assert sanitized["nested"]["secret_string"] is None
    assert sanitized["items"][0]["private_key"] == REDACTED_VALUE


def test_sanitize_for_json_handles_datetime_bytes_and_sets() -> None:
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
    sanitized = sanitize_for_json({"when": ts, "blob": b"bytes", "ids": frozenset({"a"})})

    assert sanitized["when"] == "2024-01-01T00:00:00+00:00"
    assert sanitized["blob"] == "bytes"
    assert sanitized["ids"] == ["a"]


def test_stable_json_dumps_sorts_keys() -> None:
    assert stable_json_dumps({"b": 1, "a": 2}) == '{"a":2,"b":1}'
    assert stable_json_dumps({"b": 1, "a": 2}, indent=2).startswith('{\n  "a": 2')


def test_json_formatter_skips_non_serializable_extras() -> None:
    formatter = JsonFormatter()
    record = logging.LogRecord(
        name="unit",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )
    record.good = {"a": 1, "b": [1, 2]}
    record.bad = {"obj": object()}

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "hello"
    assert payload["good"] == {"a": 1, "b": [1, 2]}
    assert "bad" not in payload


def test_plain_formatter_shows_step_and_duration() -> None:
    record = logging.LogRecord(
        name="unit",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Grouping complete",
        args=(),
        exc_info=None,
    )
    record.step = "grouping"
    record.phase = "complete"
    record.duration_ms = 12

    line = PlainFormatter().format(record)

    assert "[grouping:complete] Grouping complete (duration_ms=12)" in line


def test_log_event_records_duration(caplog) -> None:
    logger = logging.getLogger("unit.events")
    timers = StepTimers()

    with caplog.at_level(logging.INFO, logger="unit.events"):
        log_event(logger, logging.INFO, "start", step="export", phase="start", timers=timers)
        log_event(logger, logging.INFO, "done", step="export", phase="complete", timers=timers, groups=2)

    done = caplog.records[-1]
    assert done.event == "export.complete"
    assert done.groups == 2
    assert isinstance(done.duration_ms, int)
    assert not hasattr(caplog.records[0], "duration_ms")


def test_add_run_log_file_writes(tmp_path) -> None:
    if getattr(setup_logging, "_configured", False):
        setattr(setup_logging, "_configured", False)
    setup_logging(LogConfig(level="INFO", json_logs=False))

    log_path = tmp_path / "debug.log"
    add_run_log_file(log_path)

    logger = logging.getLogger("unit.test")
    logger.info("file log test")

    content = log_path.read_text(encoding="utf-8")
    assert "file log test" in content
