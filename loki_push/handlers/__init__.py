"""Logging handler and HTTP transport for Loki pushes."""

from .loki_handler import LokiHandler
from .transport import (
    LokiTransport,
    build_push_url,
    encode_packet,
    filter_transport_options,
    normalize_entrypoint,
)

__all__ = [
    "LokiHandler",
    "LokiTransport",
    "build_push_url",
    "encode_packet",
    "filter_transport_options",
    "normalize_entrypoint",
]
