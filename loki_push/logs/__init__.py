"""Logging bootstrap helpers."""

from .core import attach_loki_handler, build_loki_handler, configure_logging

__all__ = ["attach_loki_handler", "build_loki_handler", "configure_logging"]
