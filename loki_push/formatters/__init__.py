"""Record normalization for the Loki push format."""

from .loki_formatter import LokiFormatter, stringify, timestamp_ns
from .normalizer import Normalizer, qualified_name, to_json

__all__ = [
    "LokiFormatter",
    "Normalizer",
    "qualified_name",
    "stringify",
    "timestamp_ns",
    "to_json",
]
