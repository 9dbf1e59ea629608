"""Shared types for Loki formatting and transport."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict


class FormattedEntry(TypedDict):
    """One Loki stream holding a single ``[timestamp_ns, line]`` value."""

    stream: dict[str, str]
    values: list[list[str]]


class PushPacket(TypedDict):
    streams: list[FormattedEntry]


@dataclass(frozen=True)
class PushResult:
    """Outcome of a single push attempt."""

    sent: bool
    entries: int
    status_code: int | None = None
    error: str | None = None
