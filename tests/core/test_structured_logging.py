"""Tests for structured (JSON) logging output.

A failed generation is traced in production by filtering JSON log lines
on ledger_id or job_id.  These tests pin the keys those filters rely on.
"""

from __future__ import annotations

import json
import logging
import sys

from app.core.logging import ContextFilter, _JsonFormatter, job_id_var, request_id_var


def _record(msg: str = "Generation failed", level: int = logging.WARNING, **extra):
    record = logging.LogRecord(
        name="app.services.quiz_generation",
        level=level,
        pathname="quiz_generation.py",
        lineno=7,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_produces_valid_json() -> None:
    parsed = json.loads(_JsonFormatter().format(_record()))
    assert parsed["level"] == "WARNING"
    assert parsed["logger"] == "app.services.quiz_generation"
    assert parsed["message"] == "Generation failed"
    assert "timestamp" in parsed


def test_worker_context_fields_become_top_level_keys() -> None:
    record = _record(job_id="task-1", queue="quiz_generation", ledger_id="L-9")
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["job_id"] == "task-1"
    assert parsed["queue"] == "quiz_generation"
    assert parsed["ledger_id"] == "L-9"


def test_placeholder_ids_are_dropped() -> None:
    record = _record(request_id="-", job_id="-")
    parsed = json.loads(_JsonFormatter().format(record))
    assert "request_id" not in parsed
    assert "job_id" not in parsed


def test_context_filter_copies_current_ids() -> None:
    token = job_id_var.set("task-42")
    try:
        record = _record()
        ContextFilter().filter(record)
    finally:
        job_id_var.reset(token)
    assert record.job_id == "task-42"  # type: ignore[attr-defined]
    assert record.request_id == request_id_var.get()  # type: ignore[attr-defined]


def test_context_filter_keeps_explicit_extra() -> None:
    record = _record(request_id="from-extra")
    ContextFilter().filter(record)
    assert record.request_id == "from-extra"  # type: ignore[attr-defined]


def test_json_formatter_includes_exception_info() -> None:
    try:
        raise ValueError("model said no")
    except ValueError:
        record = _record(level=logging.ERROR)
        record.exc_info = sys.exc_info()
        output = _JsonFormatter().format(record)

    parsed = json.loads(output)
    assert "ValueError: model said no" in parsed["exception"]
