"""Typed log records consumed by the Loki formatter."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from types import MappingProxyType
from typing import Any, Mapping

from loki_push.errors import InvalidRecordError

# Keys structlog leaves in an event dict that are not caller context.
_STRUCTLOG_INTERNAL_KEYS = frozenset(
    {
        "event",
        "level",
        "timestamp",
        "logger",
        "exc_info",
        "stack_info",
        "_record",
        "_from_structlog",
    }
)


class Level(IntEnum):
    """Severity levels, numbered to line up with the stdlib ``logging`` module."""

    DEBUG = 10
    INFO = 20
    NOTICE = 25
    WARNING = 30
    ERROR = 40
    CRITICAL = 50
    ALERT = 55
    EMERGENCY = 60

    @classmethod
    def coerce(cls, value: "Level | int | str") -> "Level":
        """Return the Level for a Level, a stdlib level number or a level name.

        Numbers between two known levels resolve to the lower one; numbers
        below DEBUG resolve to DEBUG.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip().upper()
            if name == "WARN":
                name = "WARNING"
            try:
                return cls[name]
            except KeyError:
                raise InvalidRecordError(
                    f"Unknown log level name: {value!r}",
                    context={"level": value},
                ) from None
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidRecordError(
                f"Unsupported log level: {value!r}", context={"level": repr(value)}
            )
        resolved = cls.DEBUG
        for level in cls:
            if level <= value:
                resolved = level
        return resolved


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class LogRecord:
    """Immutable log record handed to the formatter.

    ``context`` holds caller supplied data for a single log call, ``extra``
    holds data attached by processors (file, line, function...).
    """

    datetime: datetime
    message: str
    level: Level
    channel: str = "app"
    context: Mapping[str, Any] = field(default_factory=dict)
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "level", Level.coerce(self.level))
        object.__setattr__(self, "context", _frozen(self.context))
        object.__setattr__(self, "extra", _frozen(self.extra))

    @property
    def level_name(self) -> str:
        return self.level.name

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LogRecord":
        """Build a record from a plain mapping.

        The mapping must carry ``datetime``, ``message`` and either ``level``
        or ``level_name``; a string datetime is parsed as ISO-8601.
        """
        level = data.get("level", data.get("level_name"))
        if data.get("datetime") is None or data.get("message") is None or level is None:
            raise InvalidRecordError(
                "The record should at least contain datetime, message and level keys",
                context={"keys": sorted(str(key) for key in data)},
            )
        moment = data["datetime"]
        if isinstance(moment, str):
            try:
                moment = datetime.fromisoformat(moment)
            except ValueError as exc:
                raise InvalidRecordError(
                    f"Invalid record datetime: {moment!r}", cause=exc
                ) from exc
        if not isinstance(moment, datetime):
            raise InvalidRecordError(
                f"Invalid record datetime: {moment!r}",
                context={"datetime": repr(moment)},
            )
        context = data.get("context") or {}
        extra = data.get("extra") or {}
        if not isinstance(context, Mapping) or not isinstance(extra, Mapping):
            raise InvalidRecordError("Record context and extra must be mappings")
        return cls(
            datetime=moment,
            message=str(data["message"]),
            level=Level.coerce(level),
            channel=str(data.get("channel") or "app"),
            context=context,
            extra=extra,
        )

    @classmethod
    def from_stdlib(
        cls, record: logging.LogRecord, *, introspection: bool = True
    ) -> "LogRecord":
        """Convert a stdlib ``logging.LogRecord``.

        Context comes from a ``context`` attribute (``extra={"context": ...}``)
        or from a structlog event dict; the active exception, if any, is
        stored as ``context["exception"]``.
        """
        context: dict[str, Any] = {}
        if isinstance(record.msg, dict):
            event = dict(record.msg)
            message = str(event.get("event", ""))
            context.update(
                (key, value)
                for key, value in event.items()
                if key not in _STRUCTLOG_INTERNAL_KEYS
            )
        else:
            message = record.getMessage()

        record_context = getattr(record, "context", None)
        if isinstance(record_context, Mapping):
            context.update(record_context)
        if record.exc_info and record.exc_info[1] is not None:
            context.setdefault("exception", record.exc_info[1])

        extra: dict[str, Any] = {}
        if introspection:
            extra["file"] = record.pathname
            extra["line"] = record.lineno
            extra["function"] = record.funcName
        record_extra = getattr(record, "extra", None)
        if isinstance(record_extra, Mapping):
            extra.update(record_extra)

        return cls(
            datetime=datetime.fromtimestamp(record.created, tz=timezone.utc),
            message=message,
            level=Level.coerce(record.levelno),
            channel=record.name,
            context=context,
            extra=extra,
        )


def ensure_record(record: "LogRecord | logging.LogRecord | Mapping[str, Any]") -> LogRecord:
    """Return a typed LogRecord for any supported record shape."""
    if isinstance(record, LogRecord):
        return record
    if isinstance(record, logging.LogRecord):
        return LogRecord.from_stdlib(record)
    if isinstance(record, Mapping):
        return LogRecord.from_mapping(record)
    raise InvalidRecordError(
        f"Unsupported record type: {type(record).__name__}",
        context={"type": type(record).__name__},
    )
