"""Tests for the Loki record formatter."""

from __future__ import annotations

import io
import json
import logging
import socket
from datetime import datetime, timezone
from typing import Any

import pytest

from loki_push.errors import InvalidRecordError
from loki_push.formatters.loki_formatter import LokiFormatter, stringify, timestamp_ns
from loki_push.records import Level, LogRecord


pytestmark = pytest.mark.unit_formatter

MOMENT = datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)


class Bar:
    def __str__(self) -> str:
        return "bar"


def _record(**overrides: Any) -> LogRecord:
    fields: dict[str, Any] = {
        "datetime": MOMENT,
        "message": "foo",
        "level": Level.WARNING,
        "channel": "log",
        "context": {},
        "extra": {},
    }
    fields.update(overrides)
    return LogRecord(**fields)


def _body(entry: dict[str, Any]) -> dict[str, Any]:
    return json.loads(entry["values"][0][1])


def _assert_base_structure(entry: dict[str, Any], record: LogRecord) -> None:
    assert set(entry) == {"stream", "values"}
    assert len(entry["values"]) == 1
    assert len(entry["values"][0]) == 2

    labels = entry["stream"]
    assert labels["host"] == "test"
    assert labels["level_name"] == record.level_name
    assert labels["channel"] == record.channel

    body = _body(entry)
    assert body["level_name"] == record.level_name
    assert body["channel"] == record.channel
    assert body["message"] == record.message
    assert body["datetime"] == "2024-01-02T03:04:05+00:00"


@pytest.fixture
def formatter() -> LokiFormatter:
    return LokiFormatter({}, {}, "test")


def test_simple_message(formatter: LokiFormatter) -> None:
    record = _record()
    entry = formatter.format_entry(record)

    _assert_base_structure(entry, record)
    assert entry["stream"] == {"host": "test", "channel": "log", "level_name": "WARNING"}
    assert entry["values"][0][0] == "1704164645123456000"


def test_extra_fields_use_extra_prefix(formatter: LokiFormatter) -> None:
    entry = formatter.format_entry(_record(extra={"ip": "127.0.0.1"}))
    assert _body(entry)["ip"] == "127.0.0.1"

    prefixed = LokiFormatter({}, {}, "test", extra_prefix="x_")
    body = _body(prefixed.format_entry(_record(extra={"ip": "1.1.1.1", "file": "a.py", "line": 3})))
    assert body["x_ip"] == "1.1.1.1"
    assert body["file"] == "a.py"
    assert body["line"] == "3"
    assert "x_file" not in body
    assert "x_line" not in body


def test_context_fields_use_context_prefix(formatter: LokiFormatter) -> None:
    record = _record(context={"ip": "127.0.0.1"})
    entry = formatter.format_entry(record)

    _assert_base_structure(entry, record)
    assert _body(entry)["ctxt_ip"] == "127.0.0.1"

    custom = LokiFormatter({}, {}, "test", context_prefix="c.")
    assert _body(custom.format_entry(record))["c.ip"] == "127.0.0.1"


def test_global_context_merged_under_record_context() -> None:
    formatter = LokiFormatter({}, {"app": "myapp", "ip": "0.0.0.0"}, "test")
    body = _body(formatter.format_entry(_record(context={"ip": "127.0.0.1"})))

    assert body["ctxt_app"] == "myapp"
    assert body["ctxt_ip"] == "127.0.0.1"


def test_scalar_stringification(formatter: LokiFormatter) -> None:
    body = _body(
        formatter.format_entry(
            _record(context={"yes": True, "no": False, "none": None, "count": 34, "ratio": 0.5})
        )
    )
    assert body["ctxt_yes"] == "1"
    assert body["ctxt_no"] == ""
    assert body["ctxt_none"] == ""
    assert body["ctxt_count"] == "34"
    assert body["ctxt_ratio"] == "0.5"


def test_non_scalar_extra_values_are_json(formatter: LokiFormatter) -> None:
    stream = io.BytesIO()
    record = _record(extra={"bar": Bar(), "baz": [], "res": stream, "map": {"k": [1, "/x"]}})
    entry = formatter.format_entry(record)
    stream.close()

    body = _body(entry)
    _assert_base_structure(entry, record)
    assert json.loads(body["bar"]) == {f"{Bar.__module__}.Bar": "bar"}
    assert body["baz"] == "[]"
    assert body["res"] == "[resource(stream)]"
    assert body["map"] == '{"k":[1,"/x"]}'


def test_global_labels() -> None:
    formatter = LokiFormatter({"app": "myapp"}, {}, "test")
    entry = formatter.format_entry(_record())
    assert entry["stream"]["app"] == "myapp"


def test_record_context_labels_become_stream_labels(formatter: LokiFormatter) -> None:
    record = _record(context={"ip": "127.0.0.1", "labels": {"app": "myapp", "shard": 3}})
    entry = formatter.format_entry(record)

    _assert_base_structure(entry, record)
    assert entry["stream"]["app"] == "myapp"
    assert entry["stream"]["shard"] == "3"
    body = _body(entry)
    assert body["ctxt_ip"] == "127.0.0.1"
    assert "labels" not in body
    assert "ctxt_labels" not in body


def test_host_label_cannot_be_overridden(formatter: LokiFormatter) -> None:
    entry = formatter.format_entry(_record(context={"labels": {"host": "spoofed"}}))
    assert entry["stream"]["host"] == "test"


def test_host_defaults_to_hostname() -> None:
    entry = LokiFormatter().format_entry(_record())
    assert entry["stream"]["host"] == socket.gethostname()


def test_level_label_can_be_disabled() -> None:
    formatter = LokiFormatter({}, {}, "test", level_label=False)
    entry = formatter.format_entry(_record())

    assert entry["stream"] == {"host": "test", "channel": "log"}
    assert _body(entry)["level_name"] == "WARNING"


def test_context_exception(formatter: LokiFormatter) -> None:
    try:
        raise RuntimeError("Foo")
    except RuntimeError as exc:
        record = _record(context={"exception": exc})
    entry = formatter.format_entry(record)

    _assert_base_structure(entry, record)
    body = _body(entry)
    exception = json.loads(body["ctxt_exception"])
    assert exception["trace"]
    assert exception["class"] == "RuntimeError"
    assert exception["message"] == "Foo"
    assert "previous" not in exception
    assert body["file"] == exception["file"].rsplit(":", 1)[0]
    assert body["line"] == exception["file"].rsplit(":", 1)[1]


def test_context_exception_with_previous(formatter: LokiFormatter) -> None:
    try:
        try:
            raise LookupError("Wut?")
        except LookupError as inner:
            raise RuntimeError("Foo") from inner
    except RuntimeError as exc:
        record = _record(context={"exception": exc})

    exception = json.loads(_body(formatter.format_entry(record))["ctxt_exception"])
    assert exception["previous"]["class"] == "LookupError"
    assert exception["previous"]["message"] == "Wut?"


def test_exception_file_does_not_override_extra_file(formatter: LokiFormatter) -> None:
    try:
        raise RuntimeError("Foo")
    except RuntimeError as exc:
        record = _record(context={"exception": exc}, extra={"file": "/srv/app.py", "line": 9})

    body = _body(formatter.format_entry(record))
    assert body["file"] == "/srv/app.py"
    assert body["line"] == "9"


def test_format_batch_preserves_order(formatter: LokiFormatter) -> None:
    first = _record()
    second = _record(level=Level.INFO, message="bar")
    entries = formatter.format_batch([first, second])

    assert len(entries) == 2
    _assert_base_structure(entries[0], first)
    _assert_base_structure(entries[1], second)


def test_line_breaks_and_unicode_are_kept(formatter: LokiFormatter) -> None:
    entry = formatter.format_entry(_record(message="foo\nbär /baz"))
    assert _body(entry)["message"] == "foo\nbär /baz"
    assert "bär /baz" in entry["values"][0][1]


def test_mapping_records_are_validated(formatter: LokiFormatter) -> None:
    with pytest.raises(InvalidRecordError):
        formatter.format_entry({"message": "foo", "channel": "log"})

    entry = formatter.format_entry(
        {"datetime": MOMENT, "message": "foo", "level_name": "WARNING", "channel": "log"}
    )
    assert entry["stream"]["level_name"] == "WARNING"


def test_stdlib_record_through_format(formatter: LokiFormatter) -> None:
    record = logging.LogRecord(
        name="log",
        level=logging.WARNING,
        pathname="/srv/app.py",
        lineno=12,
        msg="foo",
        args=(),
        exc_info=None,
    )
    record.context = {"ip": "127.0.0.1"}

    entry = json.loads(formatter.format(record))

    assert entry["stream"] == {"host": "test", "channel": "log", "level_name": "WARNING"}
    body = json.loads(entry["values"][0][1])
    assert body["ctxt_ip"] == "127.0.0.1"
    assert body["file"] == "/srv/app.py"
    assert body["line"] == "12"


def test_timestamp_ns_precision() -> None:
    assert timestamp_ns(datetime(1970, 1, 1, 0, 0, 1, 5, tzinfo=timezone.utc)) == "1000005000"


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, ""), (True, "1"), (False, ""), (7, "7"), ("x", "x"), ([1], "[1]")],
)
def test_stringify(value: Any, expected: str) -> None:
    assert stringify(value) == expected
