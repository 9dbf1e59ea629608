"""Public API surface for loki_push."""

from loki_push.config.settings import LokiHandlerConfig
from loki_push.errors import (
    ConfigurationError,
    ConnectionSetupError,
    InvalidRecordError,
    LokiPushError,
    PacketEncodingError,
)
from loki_push.formatters.loki_formatter import LokiFormatter
from loki_push.handlers.loki_handler import LokiHandler
from loki_push.handlers.transport import LokiTransport
from loki_push.logs.core import attach_loki_handler, build_loki_handler, configure_logging
from loki_push.loki_types import FormattedEntry, PushResult
from loki_push.records import Level, LogRecord

__all__ = [
    "ConfigurationError",
    "ConnectionSetupError",
    "FormattedEntry",
    "InvalidRecordError",
    "Level",
    "LogRecord",
    "LokiFormatter",
    "LokiHandler",
    "LokiHandlerConfig",
    "LokiPushError",
    "LokiTransport",
    "PacketEncodingError",
    "PushResult",
    "attach_loki_handler",
    "build_loki_handler",
    "configure_logging",
]
