"""Configuration helpers for loki_push."""

from .env import (
    env_key,
    parse_bool_env,
    parse_int_env,
    parse_labels_env,
    parse_str_env,
    read_env,
)
from .settings import AuthConfig, LokiHandlerConfig, resolve_config

__all__ = [
    "AuthConfig",
    "LokiHandlerConfig",
    "env_key",
    "parse_bool_env",
    "parse_int_env",
    "parse_labels_env",
    "parse_str_env",
    "read_env",
    "resolve_config",
]
