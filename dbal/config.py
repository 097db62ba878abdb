"""Connection configuration models and TOML loading helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import tomllib

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "dbal" / "config.toml"


class ConnectionConfig(BaseModel):
    """Key/value bag describing one connection.

    Keys the drivers do not recognise are preserved in ``model_extra`` so that
    collaborators layered on top of the driver can read them.
    """

    model_config = ConfigDict(
        extra="allow",
        frozen=True,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    driver: str = "mysql"
    host: str | None = None
    port: int | None = None
    socket: str | None = None
    username: str | None = Field(default=None, validation_alias=AliasChoices("username", "user"))
    password: str | None = Field(default=None, validation_alias=AliasChoices("password", "pass"))
    database: str | None = None
    options: Mapping[str, Any] | int | str | None = None
    flags: int | None = None
    charset: str | None = None
    persistent: bool = False
    unbuffered: bool = False
    sqlmode: str | None = None
    timezone: str | None = None
    search_path: str | None = Field(default=None, validation_alias=AliasChoices("search_path", "schema"))
    resource: Any = None

    @classmethod
    def coerce(cls, config: ConnectionConfig | Mapping[str, Any] | None) -> ConnectionConfig:
        """Accept either a model or a plain mapping."""

        if isinstance(config, ConnectionConfig):
            return config
        return cls.model_validate(dict(config or {}))

    def is_set(self, name: str) -> bool:
        """Whether ``name`` was supplied, even if it was supplied as ``None``."""

        return name in self.model_fields_set

    def with_defaults(self, **defaults: Any) -> ConnectionConfig:
        """Return a copy where absent fields take the given defaults."""

        missing = {key: value for key, value in defaults.items() if not self.is_set(key)}
        if not missing:
            return self
        return self.model_copy(update=missing)


class DbalConfig(BaseModel):
    """Shape of the configuration file: named connections plus a default."""

    default: str | None = None
    connections: dict[str, ConnectionConfig] = Field(default_factory=dict)

    def default_name(self) -> str | None:
        """Name of the connection that should become active."""

        if self.default and self.default in self.connections:
            return self.default
        return next(iter(self.connections), None)


def load_config(path: Path | None = None) -> DbalConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file(path or CONFIG_FILE)
    except FileNotFoundError:
        return DbalConfig()
    except (tomllib.TOMLDecodeError, OSError):
        LOG.warning("Ignoring unreadable config file", extra={"path": str(path or CONFIG_FILE)})
        return DbalConfig()

    connections: dict[str, ConnectionConfig] = {}
    raw_connections = data.get("connections")
    if isinstance(raw_connections, dict):
        for name, entry in raw_connections.items():
            if not isinstance(entry, dict):
                continue
            try:
                connections[str(name)] = ConnectionConfig.model_validate(entry)
            except ValidationError as exc:
                LOG.warning("Skipping invalid connection entry", extra={"connection": name})
                LOG.debug(str(exc))

    default = data.get("default")
    return DbalConfig(
        default=default if isinstance(default, str) else None,
        connections=connections,
    )


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    return raw if isinstance(raw, dict) else {}


__all__ = ["CONFIG_FILE", "ConnectionConfig", "DbalConfig", "load_config"]
