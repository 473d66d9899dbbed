"""Log formatting tests.

The JSON formatter feeds the log pipeline; a field silently dropped
there cannot be filtered on, so the enrollment fields are pinned here.
"""

from __future__ import annotations

import json
import logging
import sys

import pytest

from app.core.logging import (
    SERVICE_NAME,
    _ContainerFormatter,
    _JsonFormatter,
    _RequestIdFilter,
    request_id_var,
    setup_logging,
)


def _record(
    level: int = logging.INFO,
    msg: str = "hello",
    args: tuple = (),
    *,
    name: str = "app.services.enrollment_service",
    pathname: str = "enrollment_service.py",
    lineno: int = 1,
    exc_info=None,
    **extra: object,
) -> logging.LogRecord:
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname=pathname,
        lineno=lineno,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ---- setup_logging ----


@pytest.mark.parametrize(
    "name,level",
    [("debug", logging.DEBUG), ("warning", logging.WARNING), ("bogus", logging.INFO)],
)
def test_setup_logging_sets_root_level(name: str, level: int) -> None:
    setup_logging(name)
    assert logging.getLogger().level == level


@pytest.mark.parametrize("noisy", ["uvicorn", "httpx", "sqlalchemy.engine"])
def test_setup_logging_quiets_libraries_below_warning(noisy: str) -> None:
    setup_logging("debug")
    assert logging.getLogger(noisy).level == logging.WARNING

    setup_logging("error")
    assert logging.getLogger(noisy).level == logging.ERROR


def test_setup_logging_selects_formatter() -> None:
    setup_logging("info", json_format=True)
    (handler,) = logging.getLogger().handlers
    assert isinstance(handler.formatter, _JsonFormatter)

    setup_logging("info")
    (handler,) = logging.getLogger().handlers
    assert isinstance(handler.formatter, _ContainerFormatter)


# ---- container format ----


def test_container_format_is_plain_text() -> None:
    output = _ContainerFormatter().format(_record(msg="enrollment created"))
    assert "INFO" in output
    assert "app.services.enrollment_service" in output
    assert "enrollment created" in output
    assert "[enrollment_service.py:" not in output
    with pytest.raises(json.JSONDecodeError):
        json.loads(output)


@pytest.mark.parametrize("level", [logging.WARNING, logging.ERROR])
def test_container_format_adds_location_from_warning(level: int) -> None:
    output = _ContainerFormatter().format(
        _record(level, "sweep failed", pathname="worker.py", lineno=42)
    )
    assert "[worker.py:42]" in output


# ---- JSON format ----


def test_json_format_core_keys() -> None:
    parsed = json.loads(_JsonFormatter().format(_record(msg="Hello %s", args=("x",))))
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "app.services.enrollment_service"
    assert parsed["message"] == "Hello x"
    assert "timestamp" in parsed


def test_json_format_lifts_request_and_enrollment_fields() -> None:
    record = _record(
        request_id="abc-123",
        method="PATCH",
        path="/v1/enrollments/e1/suspend",
        status_code=200,
        duration_ms=12.5,
        enrollment_id="e1",
        course_id="c1",
        transition="suspend",
    )
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["request_id"] == "abc-123"
    assert parsed["status_code"] == 200
    assert parsed["duration_ms"] == 12.5
    assert parsed["enrollment_id"] == "e1"
    assert parsed["course_id"] == "c1"
    assert parsed["transition"] == "suspend"


def test_json_format_omits_absent_fields() -> None:
    parsed = json.loads(_JsonFormatter().format(_record()))
    assert "enrollment_id" not in parsed
    assert "request_id" not in parsed


def test_json_format_includes_exception() -> None:
    try:
        raise ValueError("notification payload missing course_id")
    except ValueError:
        record = _record(logging.ERROR, "Task failed", exc_info=sys.exc_info())
        output = _JsonFormatter().format(record)

    parsed = json.loads(output)
    assert "ValueError: notification payload missing course_id" in parsed["exception"]


def test_json_format_names_the_service() -> None:
    parsed = json.loads(_JsonFormatter().format(_record()))
    assert parsed["service"] == SERVICE_NAME


# ---- request id propagation ----


def test_container_format_appends_request_id() -> None:
    output = _ContainerFormatter().format(_record(request_id="req-7"))
    assert output.endswith("rid=req-7")
    assert "rid=" not in _ContainerFormatter().format(_record())


def test_filter_stamps_current_request_id() -> None:
    record = _record()
    token = request_id_var.set("req-9")
    try:
        assert _RequestIdFilter().filter(record) is True
    finally:
        request_id_var.reset(token)
    assert record.request_id == "req-9"


def test_filter_keeps_explicit_request_id() -> None:
    record = _record(request_id="explicit")
    token = request_id_var.set("ambient")
    try:
        _RequestIdFilter().filter(record)
    finally:
        request_id_var.reset(token)
    assert record.request_id == "explicit"


def test_filter_is_a_no_op_outside_requests() -> None:
    record = _record()
    _RequestIdFilter().filter(record)
    assert not hasattr(record, "request_id")


def test_setup_logging_installs_request_filter_on_handler() -> None:
    setup_logging("info")
    (handler,) = logging.getLogger().handlers
    assert any(isinstance(f, _RequestIdFilter) for f in handler.filters)
