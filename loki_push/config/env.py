"""Environment variable parsing for loki-push settings."""

from __future__ import annotations

import os
from typing import Callable, Mapping, TypeVar

ENV_PREFIX = "LOKI_PUSH_"

_TRUTHY = {"1", "true", "yes", "on"}

T = TypeVar("T")


def env_key(name: str) -> str:
    """Return the prefixed environment variable name for a setting."""
    return f"{ENV_PREFIX}{name.upper()}"


def read_env(
    name: str,
    parser: Callable[[str | None], T],
    environ: Mapping[str, str] | None = None,
) -> T:
    """Read the ``LOKI_PUSH_<NAME>`` variable through ``parser``."""
    source = os.environ if environ is None else environ
    return parser(source.get(env_key(name)))


def parse_str_env(value: str | None) -> str | None:
    """Return a stripped string, or None for unset/blank values."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_bool_env(value: str | None) -> bool | None:
    """Parse "1"/"true"/"yes"/"on" (any case) as True, anything else as False.

    Returns None if value is None.
    """
    if value is None:
        return None
    return value.strip().lower() in _TRUTHY


def parse_int_env(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_labels_env(value: str | None) -> dict[str, str]:
    """Parse a comma-separated key=value string into a label dict.

    Example: "app=billing,env=prod" -> {"app": "billing", "env": "prod"}
    Tokens without "=" or with an empty key are skipped.
    """
    labels: dict[str, str] = {}
    if not value:
        return labels
    for token in value.split(","):
        key, sep, raw_value = token.strip().partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        labels[key] = raw_value.strip()
    return labels
