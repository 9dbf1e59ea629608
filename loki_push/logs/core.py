"""Logging bootstrap: Loki handler factory and structlog configuration."""

from __future__ import annotations

import logging
import sys
from typing import Any, Mapping

import structlog

from loki_push.config.env import (
    parse_bool_env,
    parse_int_env,
    parse_labels_env,
    parse_str_env,
    read_env,
)
from loki_push.config.settings import LokiHandlerConfig
from loki_push.handlers.loki_handler import LokiHandler

DEFAULT_ENDPOINT = "http://localhost:3100"


def _resolve_level(value: str | int | None, debug: bool) -> int:
    if debug:
        return logging.DEBUG
    if value is None:
        return logging.WARNING
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    return logging.getLevelNamesMapping().get(value.upper(), logging.INFO)


def build_loki_handler(
    *,
    enabled: bool | None = None,
    endpoint: str | None = None,
    labels: Mapping[str, Any] | None = None,
    context: Mapping[str, Any] | None = None,
    client_name: str | None = None,
    tenant_id: str | None = None,
    username: str | None = None,
    password: str | None = None,
    timeout_ms: int | None = None,
    connect_timeout_ms: int | None = None,
    transport_options: Mapping[str, Any] | None = None,
    sending_enabled: bool | None = None,
    level: int | str = logging.DEBUG,
) -> LokiHandler | None:
    """Create a Loki handler.

    Priority: explicit parameters > environment variables > defaults.
    Returns None when the handler is disabled.
    """
    resolved_enabled = _coalesce(enabled, read_env("ENABLED", parse_bool_env))
    if not _coalesce(resolved_enabled, False):
        return None

    options = dict(transport_options or {})
    resolved_timeout = _coalesce(timeout_ms, read_env("TIMEOUT_MS", parse_int_env))
    resolved_connect = _coalesce(
        connect_timeout_ms, read_env("CONNECT_TIMEOUT_MS", parse_int_env)
    )

    config: dict[str, Any] = {
        "entrypoint": _coalesce(endpoint, read_env("ENDPOINT", parse_str_env))
        or DEFAULT_ENDPOINT,
        "labels": _resolve_labels(labels),
        "context": dict(context or {}),
        "client_name": _coalesce(client_name, read_env("CLIENT_NAME", parse_str_env)),
        "tenant_id": _coalesce(tenant_id, read_env("TENANT_ID", parse_str_env)),
        "transport_options": options,
        "is_sending_enabled": _coalesce(
            _coalesce(sending_enabled, read_env("SENDING_ENABLED", parse_bool_env)),
            True,
        ),
    }
    if resolved_timeout is not None:
        config["timeout_ms"] = resolved_timeout
    if resolved_connect is not None:
        config["connect_timeout_ms"] = resolved_connect
    credentials = _resolve_credentials(username, password)
    if credentials:
        config["auth"] = {"basic": credentials}
    return LokiHandler(LokiHandlerConfig.from_mapping(config), level)


def attach_loki_handler(
    logger: logging.Logger, **options: Any
) -> logging.Handler | None:
    """Attach a Loki handler built from ``options`` to the provided logger."""
    handler = build_loki_handler(**options)
    if handler:
        logger.addHandler(handler)
    return handler


def configure_logging(
    *,
    level: str | int | None = None,
    debug: bool = False,
    log_file: str | None = None,
    json: bool | None = None,
    loki_handler: logging.Handler | None = None,
    force: bool = False,
) -> None:
    """Configure stdlib logging and structlog with a shared formatter."""
    env_level, env_json, env_log_file = _read_logging_env()
    resolved_level = _resolve_level(level or env_level, debug)
    resolved_json = env_json if json is None else json
    resolved_log_file = env_log_file if log_file is None else log_file

    formatter = _make_structlog_formatter(resolved_json)
    root_logger = logging.getLogger()
    if _reuse_existing_handlers(root_logger, force):
        _configure_structlog()
        return

    handlers = _build_handlers(formatter, resolved_log_file, loki_handler)
    if force:
        root_logger.handlers.clear()

    root_logger.setLevel(resolved_level)
    for handler in handlers:
        root_logger.addHandler(handler)
    _configure_structlog()


def _resolve_labels(labels: Mapping[str, Any] | None) -> dict[str, Any]:
    resolved_labels = dict(read_env("LABELS", parse_labels_env))
    if labels:
        resolved_labels.update(labels)  # Explicit labels override env labels
    return resolved_labels


def _resolve_credentials(
    username: str | None, password: str | None
) -> tuple[str, str] | None:
    user = _coalesce(username, read_env("USERNAME", parse_str_env))
    secret = _coalesce(password, read_env("PASSWORD", parse_str_env))
    if user is None or secret is None:
        return None
    return (user, secret)


def _coalesce(value: Any, default: Any) -> Any:
    return default if value is None else value


def _read_logging_env() -> tuple[str | None, bool | None, str | None]:
    return (
        read_env("LOG_LEVEL", parse_str_env),
        read_env("LOG_JSON", parse_bool_env),
        read_env("LOG_FILE", parse_str_env),
    )


def _make_structlog_formatter(
    resolved_json: bool | None,
) -> structlog.stdlib.ProcessorFormatter:
    renderer: structlog.types.Processor
    if resolved_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=pre_chain,
    )


def _reuse_existing_handlers(root_logger: logging.Logger, force: bool) -> bool:
    return bool(root_logger.handlers) and not force


def _build_handlers(
    formatter: structlog.stdlib.ProcessorFormatter,
    log_file: str | None,
    loki_handler: logging.Handler | None,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    if loki_handler:
        handlers.append(loki_handler)
    return handlers


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
