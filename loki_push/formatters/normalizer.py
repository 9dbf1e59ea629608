"""Recursive normalization of arbitrary values into JSON-safe data."""

from __future__ import annotations

import dataclasses
import io
import json
import math
import socket
import traceback
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel

from loki_push.errors import PacketEncodingError

DEFAULT_MAX_DEPTH = 9
DEFAULT_MAX_ITEMS = 1000

# Attribute names exposed by SOAP fault style exceptions, mapped to output keys.
_FAULT_ATTRIBUTES = (
    ("faultcode", ("faultcode", "code")),
    ("faultactor", ("faultactor", "actor")),
    ("detail", ("detail",)),
)


def qualified_name(value: Any) -> str:
    cls = value if isinstance(value, type) else type(value)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def to_json(value: Any) -> str:
    """Encode normalized data as compact JSON, keeping Unicode and slashes as-is."""
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise PacketEncodingError(
            f"Unable to encode data as JSON: {exc}", cause=exc
        ) from exc


class Normalizer:
    """Turn records, exceptions and objects into plain JSON-compatible values."""

    def __init__(
        self,
        *,
        date_format: str | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_items: int = DEFAULT_MAX_ITEMS,
    ) -> None:
        self.date_format = date_format
        self.max_depth = max(1, max_depth)
        self.max_items = max(1, max_items)

    def format_date(self, value: date) -> str:
        if self.date_format:
            return value.strftime(self.date_format)
        if isinstance(value, datetime):
            return value.isoformat(timespec="seconds")
        return value.isoformat()

    def normalize(self, value: Any, depth: int = 0) -> Any:
        if depth > self.max_depth:
            return f"Over {self.max_depth} levels deep, aborting normalization"

        if value is None or isinstance(value, (bool, int, str)):
            return value
        if isinstance(value, float):
            return _normalize_float(value)
        if isinstance(value, Enum):
            return self.normalize(value.value, depth)
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode("utf-8", errors="replace")
        if isinstance(value, Mapping):
            return self._normalize_items(value.items(), depth)
        if isinstance(value, (list, tuple, set, frozenset)):
            return self._normalize_sequence(value, depth)
        if isinstance(value, date):
            return self.format_date(value)
        if isinstance(value, BaseException):
            return self.normalize_exception(value, depth)
        if isinstance(value, (io.IOBase, socket.socket)):
            return f"[resource({_resource_type(value)})]"
        return self._normalize_object(value, depth)

    def normalize_exception(self, exc: BaseException, depth: int = 0) -> dict[str, Any]:
        """Describe an exception and its cause chain.

        ``previous`` holds the normalized cause and is absent at the root
        cause of the chain.
        """
        data: dict[str, Any] = {
            "class": qualified_name(exc),
            "message": _exception_message(exc),
        }
        if isinstance(exc, OSError) and exc.errno is not None:
            data["code"] = exc.errno

        frames = traceback.extract_tb(exc.__traceback__) if exc.__traceback__ else []
        if frames:
            last = frames[-1]
            data["file"] = f"{last.filename}:{last.lineno}"
            data["trace"] = [f"{frame.filename}:{frame.lineno}" for frame in frames]

        if _is_fault(exc):
            data.update(self._fault_fields(exc, depth))

        previous = _previous_exception(exc)
        if previous is not None:
            data["previous"] = self.normalize(previous, depth + 1)
        return data

    def _fault_fields(self, exc: BaseException, depth: int) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for key, attributes in _FAULT_ATTRIBUTES:
            for attribute in attributes:
                value = getattr(exc, attribute, None)
                if value is not None:
                    fields[key] = self.normalize(value, depth + 1)
                    break
        return fields

    def _normalize_items(self, items: Any, depth: int) -> dict[str, Any]:
        normalized: dict[str, Any] = {}
        for count, (key, item) in enumerate(items):
            if count >= self.max_items:
                normalized["..."] = f"Over {self.max_items} items, aborting normalization"
                break
            normalized[str(key)] = self.normalize(item, depth + 1)
        return normalized

    def _normalize_sequence(self, values: Any, depth: int) -> list[Any]:
        normalized: list[Any] = []
        for count, item in enumerate(values):
            if count >= self.max_items:
                normalized.append(f"Over {self.max_items} items, aborting normalization")
                break
            normalized.append(self.normalize(item, depth + 1))
        return normalized

    def _normalize_object(self, value: Any, depth: int) -> dict[str, Any]:
        name = qualified_name(value)
        if isinstance(value, BaseModel):
            return {name: self.normalize(value.model_dump(mode="json"), depth + 1)}
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
            return {name: self._normalize_items(fields.items(), depth + 1)}
        if type(value).__str__ is not object.__str__:
            return {name: str(value)}
        public = {
            key: item
            for key, item in getattr(value, "__dict__", {}).items()
            if not key.startswith("_")
        }
        return {name: self._normalize_items(public.items(), depth + 1)}


def _normalize_float(value: float) -> float | str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "INF" if value > 0 else "-INF"
    return value


def _resource_type(value: Any) -> str:
    if isinstance(value, socket.socket):
        return "socket"
    if getattr(value, "closed", False):
        return "closed stream"
    return "stream"


def _exception_message(exc: BaseException) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror
    if isinstance(exc, KeyError) and len(exc.args) == 1:
        return str(exc.args[0])
    return str(exc)


def _is_fault(exc: BaseException) -> bool:
    return hasattr(exc, "faultcode") or (
        type(exc).__name__ == "Fault" and hasattr(exc, "code")
    )


def _previous_exception(exc: BaseException) -> BaseException | None:
    if exc.__cause__ is not None:
        return exc.__cause__
    if exc.__context__ is not None and not exc.__suppress_context__:
        return exc.__context__
    return None
