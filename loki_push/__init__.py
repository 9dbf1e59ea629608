"""Ship Python log records to Grafana Loki."""

from loki_push.api import (
    Level,
    LogRecord,
    LokiFormatter,
    LokiHandler,
    LokiHandlerConfig,
    configure_logging,
)

__all__ = [
    "configure_logging",
    "Level",
    "LogRecord",
    "LokiFormatter",
    "LokiHandler",
    "LokiHandlerConfig",
]
