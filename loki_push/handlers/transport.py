"""Single-attempt HTTP transport for Loki push packets."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Iterable, Mapping
from urllib.parse import urlparse

import requests

from loki_push.errors import (
    ConfigurationError,
    ConnectionSetupError,
    PacketEncodingError,
)
from loki_push.loki_types import FormattedEntry, PushPacket, PushResult

_logger = logging.getLogger(__name__)

PUSH_PATH = "/loki/api/v1/push"
DEFAULT_CONNECT_TIMEOUT = 0.1
DEFAULT_TIMEOUT = 0.2

# Request options that carry the packet itself; callers never override them.
RESERVED_OPTIONS = frozenset({"method", "stream", "data", "headers"})
OVERRIDABLE_OPTIONS = frozenset(
    {"connect_timeout", "timeout", "verify", "cert", "proxies", "allow_redirects"}
)
TIMEOUT_OPTIONS = frozenset({"connect_timeout", "timeout"})


def normalize_entrypoint(entrypoint: str) -> str:
    """Strip trailing slashes from the Loki base URL."""
    return entrypoint.rstrip("/")


def build_push_url(entrypoint: str) -> str:
    """Return the Loki push URL (``<entrypoint>/loki/api/v1/push``)."""
    return f"{normalize_entrypoint(entrypoint)}{PUSH_PATH}"


def encode_packet(entries: Iterable[FormattedEntry]) -> bytes:
    """Wrap entries as ``{"streams": [...]}`` and encode them as UTF-8 JSON."""
    packet: PushPacket = {"streams": list(entries)}
    try:
        payload = json.dumps(
            packet, ensure_ascii=False, separators=(",", ":"), allow_nan=False
        )
    except (TypeError, ValueError) as exc:
        raise PacketEncodingError(
            f"Unable to encode Loki push packet: {exc}",
            context={"streams": len(packet["streams"])},
            cause=exc,
        ) from exc
    return payload.encode("utf-8")


def filter_transport_options(options: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop reserved and unknown request options, logging what was dropped.

    Raises ConfigurationError when a timeout is not a positive number.
    """
    accepted: dict[str, Any] = {}
    for key, value in (options or {}).items():
        if key in RESERVED_OPTIONS:
            _logger.debug("Ignoring reserved Loki transport option %r", key)
            continue
        if key not in OVERRIDABLE_OPTIONS:
            _logger.debug("Ignoring unknown Loki transport option %r", key)
            continue
        if key in TIMEOUT_OPTIONS:
            _check_timeout(key, value)
        accepted[key] = value
    return accepted


def _check_timeout(key: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(
            f"Loki transport option {key!r} must be a positive number of seconds",
            context={"option": key, "value": value},
        )


class LokiTransport:
    """Send push packets to Loki with one attempt and short timeouts.

    One ``requests.Session`` is created on the first send and reused until
    ``close()``. Network failures are logged and reported through the
    returned ``PushResult``; only encoding and connection setup failures
    raise.
    """

    def __init__(
        self,
        entrypoint: str,
        *,
        basic_auth: tuple[str, str] | None = None,
        tenant_id: str | None = None,
        transport_options: Mapping[str, Any] | None = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.entrypoint = normalize_entrypoint(entrypoint)
        self.push_url = build_push_url(self.entrypoint)
        self.basic_auth = basic_auth
        self.tenant_id = tenant_id
        self.options = {
            "connect_timeout": DEFAULT_CONNECT_TIMEOUT,
            "timeout": DEFAULT_TIMEOUT,
            **filter_transport_options(transport_options),
        }
        self._session_factory = session_factory
        self._session: requests.Session | None = None
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._session is not None

    def send(self, entries: Iterable[FormattedEntry]) -> PushResult:
        """Push ``entries`` as a single packet; never retries."""
        entries = list(entries)
        payload = encode_packet(entries)
        session = self._acquire_session()
        try:
            response = session.request(**self._request_options(payload))
        except requests.RequestException as exc:
            _logger.debug("Loki push error: %s, dropping %d entries", exc, len(entries))
            return PushResult(sent=False, entries=len(entries), error=str(exc))

        if 200 <= response.status_code < 300:
            return PushResult(
                sent=True, entries=len(entries), status_code=response.status_code
            )
        _logger.debug(
            "Loki push rejected (HTTP %d), dropping %d entries",
            response.status_code,
            len(entries),
        )
        return PushResult(
            sent=False,
            entries=len(entries),
            status_code=response.status_code,
            error=response.text[:200],
        )

    def close(self) -> None:
        with self._lock:
            if self._session is not None:
                self._session.close()
                self._session = None

    def _acquire_session(self) -> requests.Session:
        with self._lock:
            if self._session is None:
                self._session = self._open_session()
            return self._session

    def _open_session(self) -> requests.Session:
        parsed = urlparse(self.push_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ConnectionSetupError(
                f"Unable to connect to {self.push_url}",
                context={"url": self.push_url},
            )
        try:
            return self._session_factory()
        except Exception as exc:
            raise ConnectionSetupError(
                f"Unable to connect to {self.push_url}",
                context={"url": self.push_url},
                cause=exc,
            ) from exc

    def _request_options(self, payload: bytes) -> dict[str, Any]:
        options = dict(self.options)
        connect_timeout = options.pop("connect_timeout")
        timeout = options.pop("timeout")
        headers = {
            "Content-Type": "application/json",
            "Content-Length": str(len(payload)),
        }
        if self.tenant_id:
            headers["X-Scope-OrgID"] = self.tenant_id
        request: dict[str, Any] = {
            **options,
            "url": self.push_url,
            "timeout": (connect_timeout, timeout),
            "method": "POST",
            "stream": False,
            "data": payload,
            "headers": headers,
        }
        if self.basic_auth:
            request["auth"] = self.basic_auth
        return request
