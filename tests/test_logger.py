"""
Tests for the JSON log format and credential masking.
"""

import io
import json
import logging
import uuid

from medclinic.logger import REDACTED, StructuredLogger, redact


def make_logger(stream, level=logging.DEBUG):
    return StructuredLogger(
        name=f"test.log.{uuid.uuid4().hex[:8]}",
        level=level,
        stream=stream,
        log_file="",
    )


def last_entry(stream):
    return json.loads(stream.getvalue().strip().splitlines()[-1])


def test_records_are_json_lines():
    stream = io.StringIO()
    log = make_logger(stream)

    log.info("GET %s -> %s", "patients", 200, extra={"request_id": "r1", "duration_ms": 12})

    entry = last_entry(stream)
    assert entry["level"] == "INFO"
    assert entry["logger_name"] == log.name
    assert entry["message"] == "GET patients -> 200"
    assert entry["extra"] == {"request_id": "r1", "duration_ms": 12}
    assert "timestamp" in entry


def test_credentials_are_masked():
    stream = io.StringIO()
    log = make_logger(stream)

    log.debug(
        "Sending request",
        extra={
            "token": "eyJ.secret",
            "headers": {"Authorization": "Bearer eyJ.secret", "Accept": "application/json"},
        },
    )

    raw = stream.getvalue()
    assert "eyJ.secret" not in raw
    entry = last_entry(stream)
    assert entry["extra"]["token"] == REDACTED
    assert entry["extra"]["headers"] == {"Authorization": REDACTED, "Accept": "application/json"}


def test_exceptions_are_included():
    stream = io.StringIO()
    log = make_logger(stream)

    try:
        raise RuntimeError("boom")
    except RuntimeError:
        log.exception("Listener failed")

    assert "RuntimeError: boom" in last_entry(stream)["exception"]


def test_level_filters_records():
    stream = io.StringIO()
    log = make_logger(stream, level=logging.WARNING)

    log.info("hidden")
    log.warning("shown")

    lines = stream.getvalue().strip().splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["message"] == "shown"


def test_same_name_shares_handlers():
    stream = io.StringIO()
    first = make_logger(stream)
    second = StructuredLogger(name=first.name, stream=io.StringIO(), log_file="")

    second.info("once")

    assert len(first.logger.handlers) == 1
    assert last_entry(stream)["message"] == "once"


def test_redact_handles_nested_values():
    assert redact({"user": {"password": "x", "email": "a@b.com"}, "ids": (1, 2)}) == {
        "user": {"password": REDACTED, "email": "a@b.com"},
        "ids": [1, 2],
    }
    assert redact(object(), "note").startswith("<object")
