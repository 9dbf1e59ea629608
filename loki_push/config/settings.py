"""Handler configuration model."""

from __future__ import annotations

import socket
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from loki_push.errors import ConfigurationError
from loki_push.formatters.loki_formatter import DEFAULT_CONTEXT_PREFIX


class AuthConfig(BaseModel):
    """Authentication options; ``basic`` must be a (user, password) pair."""

    basic: tuple[str, str] | None = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("basic", mode="before")
    @classmethod
    def _ignore_malformed_pair(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            return None
        return tuple(str(item) for item in value)


class LokiHandlerConfig(BaseModel):
    """Immutable configuration of a Loki handler."""

    entrypoint: str = Field(...)
    labels: dict[str, str] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)
    client_name: str = Field(default_factory=socket.gethostname)
    extra_prefix: str = ""
    context_prefix: str = DEFAULT_CONTEXT_PREFIX
    auth: AuthConfig = Field(default_factory=AuthConfig)
    tenant_id: str | None = None
    transport_options: dict[str, Any] = Field(
        default_factory=dict, alias="curl_options"
    )
    is_sending_enabled: bool = True
    level_label: bool = True
    timeout_ms: int = Field(default=200, gt=0)
    connect_timeout_ms: int = Field(default=100, gt=0)

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @field_validator("entrypoint")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("entrypoint must not be empty")
        return value

    @field_validator("labels", mode="before")
    @classmethod
    def _stringify_labels(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {str(key): str(item) for key, item in value.items()}
        return value

    @field_validator("client_name", mode="before")
    @classmethod
    def _default_client_name(cls, value: Any) -> Any:
        return value or socket.gethostname()

    @property
    def basic_auth(self) -> tuple[str, str] | None:
        return self.auth.basic

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LokiHandlerConfig":
        """Validate a plain mapping, raising ConfigurationError on failure."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise ConfigurationError(
                "Invalid Loki handler configuration",
                context={"errors": [error["msg"] for error in exc.errors()]},
                cause=exc,
            ) from exc


def resolve_config(
    config: "LokiHandlerConfig | Mapping[str, Any]",
) -> LokiHandlerConfig:
    if isinstance(config, LokiHandlerConfig):
        return config
    return LokiHandlerConfig.from_mapping(config)
