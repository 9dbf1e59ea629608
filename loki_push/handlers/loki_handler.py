"""Loki push handler for best-effort, synchronous log shipping."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from loki_push.config.settings import LokiHandlerConfig, resolve_config
from loki_push.errors import LokiPushError, error_to_payload
from loki_push.formatters.loki_formatter import LokiFormatter
from loki_push.handlers.transport import LokiTransport
from loki_push.loki_types import FormattedEntry, PushResult
from loki_push.records import LogRecord, ensure_record

_logger = logging.getLogger(__name__)

# Records from this logger namespace are never shipped, so push diagnostics cannot loop.
_INTERNAL_LOGGER = "loki_push"


def _is_internal_logger(name: str) -> bool:
    return name == _INTERNAL_LOGGER or name.startswith(f"{_INTERNAL_LOGGER}.")


class LokiHandler(logging.Handler):
    """Logging handler that pushes formatted records to Loki.

    Each ``emit`` sends one packet; ``handle_batch`` sends one packet for a
    whole sequence of records. A push is attempted once and bounded by the
    transport timeouts (100ms connect, 200ms read by default). When
    ``is_sending_enabled`` is False the handler handles no record at all.
    """

    def __init__(
        self,
        api_config: LokiHandlerConfig | Mapping[str, Any],
        level: int | str = logging.DEBUG,
        *,
        formatter: LokiFormatter | None = None,
        transport: LokiTransport | None = None,
    ) -> None:
        super().__init__(level)
        self.config = resolve_config(api_config)
        self._sending_enabled = self.config.is_sending_enabled
        self.transport = transport or LokiTransport(
            self.config.entrypoint,
            basic_auth=self.config.basic_auth,
            tenant_id=self.config.tenant_id,
            transport_options=self._transport_options(),
        )
        self.setFormatter(formatter or self.get_default_formatter())

    def _transport_options(self) -> dict[str, Any]:
        """Millisecond timeouts from the config, overridden by explicit options."""
        return {
            "connect_timeout": self.config.connect_timeout_ms / 1000.0,
            "timeout": self.config.timeout_ms / 1000.0,
            **self.config.transport_options,
        }

    @property
    def sending_enabled(self) -> bool:
        return self._sending_enabled

    def get_default_formatter(self) -> LokiFormatter:
        return LokiFormatter(
            self.config.labels,
            self.config.context,
            self.config.client_name,
            self.config.extra_prefix,
            self.config.context_prefix,
            level_label=self.config.level_label,
        )

    @property
    def loki_formatter(self) -> LokiFormatter:
        if not isinstance(self.formatter, LokiFormatter):
            raise TypeError(
                f"LokiHandler requires a LokiFormatter, got {type(self.formatter).__name__}"
            )
        return self.formatter

    def is_handling(self, record: LogRecord | logging.LogRecord) -> bool:
        """Return True when ``record`` would be formatted and pushed."""
        if not self._sending_enabled:
            return False
        if isinstance(record, logging.LogRecord):
            if _is_internal_logger(record.name):
                return False
            return record.levelno >= self.level
        return int(record.level) >= self.level

    def filter(self, record: logging.LogRecord) -> bool | logging.LogRecord:
        if not self.is_handling(record):
            return False
        return super().filter(record)

    def emit(self, record: logging.LogRecord) -> None:
        """Format a single record and push it as a one-stream packet."""
        try:
            self.send_entries([self.loki_formatter.format_entry(record)])
        except LokiPushError as exc:
            _logger.debug("Loki handler failure: %s", error_to_payload(exc))
            raise
        except Exception:
            self.handleError(record)

    def handle_batch(
        self, records: Iterable[LogRecord | logging.LogRecord | Mapping[str, Any]]
    ) -> PushResult | None:
        """Push every handled record of ``records`` in a single packet.

        Returns None without any network call when no record is handled.
        """
        if not self._sending_enabled:
            return None
        entries: list[FormattedEntry] = []
        for record in records:
            candidate = (
                record if isinstance(record, logging.LogRecord) else ensure_record(record)
            )
            if not self.is_handling(candidate):
                continue
            if isinstance(candidate, logging.LogRecord) and not super().filter(candidate):
                continue
            entries.append(self.loki_formatter.format_entry(candidate))
        if not entries:
            return None
        self.acquire()
        try:
            return self.send_entries(entries)
        finally:
            self.release()

    def send_entries(self, entries: list[FormattedEntry]) -> PushResult:
        return self.transport.send(entries)

    def close(self) -> None:
        """Close the HTTP session and detach the handler."""
        try:
            self.transport.close()
        finally:
            super().close()
