"""Formatter turning log records into Loki push entries."""

from __future__ import annotations

import logging
import re
import socket
from datetime import datetime
from typing import Any, Iterable, Mapping

from loki_push.formatters.normalizer import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_ITEMS,
    Normalizer,
    to_json,
)
from loki_push.loki_types import FormattedEntry
from loki_push.records import LogRecord, ensure_record

DEFAULT_CONTEXT_PREFIX = "ctxt_"
UNPREFIXED_EXTRA_FIELDS = ("file", "line")

_FILE_LINE_PATTERN = re.compile(r"^(.+):(\d+)$")


def timestamp_ns(moment: datetime) -> str:
    """Return nanoseconds since the epoch, with microsecond precision."""
    seconds = int(moment.replace(microsecond=0).timestamp())
    return str(seconds * 1_000_000_000 + moment.microsecond * 1_000)


def stringify(value: Any) -> str:
    """Render an already normalized value as a flat body field."""
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return to_json(value)


class LokiFormatter(logging.Formatter):
    """Format records as Loki streams.

    Context fields land in the JSON line with ``context_prefix``; extra fields
    with ``extra_prefix`` except ``file`` and ``line``. ``channel`` (and
    ``level_name`` unless ``level_label`` is False) are also copied to the
    stream labels, next to the global labels, the per-record
    ``context["labels"]`` and the ``host`` label.
    """

    def __init__(
        self,
        labels: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
        system_name: str | None = None,
        extra_prefix: str = "",
        context_prefix: str = DEFAULT_CONTEXT_PREFIX,
        *,
        level_label: bool = True,
        date_format: str | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_items: int = DEFAULT_MAX_ITEMS,
    ) -> None:
        super().__init__()
        self.labels = {str(key): str(value) for key, value in (labels or {}).items()}
        self.context = dict(context or {})
        self.system_name = system_name or socket.gethostname()
        self.extra_prefix = extra_prefix
        self.context_prefix = context_prefix
        self.level_label = level_label
        self.normalizer = Normalizer(
            date_format=date_format, max_depth=max_depth, max_items=max_items
        )

    def format(self, record: logging.LogRecord) -> str:
        return to_json(self.format_entry(record))

    def format_batch(self, records: Iterable[Any]) -> list[FormattedEntry]:
        return [self.format_entry(record) for record in records]

    def format_entry(self, record: Any) -> FormattedEntry:
        """Build the Loki stream for a typed, stdlib or mapping record."""
        typed = ensure_record(record)
        context = dict(typed.context)
        custom_labels = context.pop("labels", None)
        context = {**self.context, **context}

        body = self.prepare_body(typed, context)
        return {
            "stream": self._build_labels(body, custom_labels),
            "values": [[timestamp_ns(typed.datetime), to_json(body)]],
        }

    def prepare_body(self, record: LogRecord, context: Mapping[str, Any]) -> dict[str, Any]:
        body: dict[str, Any] = {
            "message": record.message,
            "level": int(record.level),
            "level_name": record.level_name,
            "channel": record.channel,
            "datetime": self.normalizer.format_date(record.datetime),
        }
        normalized_context = self.normalizer.normalize(context)
        body.update(self._flatten(normalized_context, self.context_prefix))
        body.update(
            self._flatten(
                self.normalizer.normalize(record.extra),
                self.extra_prefix,
                UNPREFIXED_EXTRA_FIELDS,
            )
        )

        exception = normalized_context.get("exception")
        if "file" not in body and isinstance(exception, Mapping):
            match = _FILE_LINE_PATTERN.match(str(exception.get("file", "")))
            if match:
                body["file"] = match.group(1)
                body["line"] = match.group(2)
        return body

    @staticmethod
    def _flatten(
        values: Mapping[str, Any], prefix: str, unprefixed: Iterable[str] = ()
    ) -> dict[str, str]:
        keep = set(unprefixed)
        return {
            (key if key in keep else f"{prefix}{key}"): stringify(value)
            for key, value in values.items()
        }

    def _build_labels(self, body: Mapping[str, Any], custom_labels: Any) -> dict[str, str]:
        labels = dict(self.labels)
        if isinstance(custom_labels, Mapping):
            labels.update(
                (str(key), stringify(self.normalizer.normalize(value)))
                for key, value in custom_labels.items()
            )
        labels["channel"] = str(body["channel"])
        if self.level_label:
            labels["level_name"] = str(body["level_name"])
        labels["host"] = self.system_name
        return labels
