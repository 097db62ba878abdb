"""Session context: connection registry plus dispatch to the active driver."""

from __future__ import annotations

import logging
import warnings
from typing import Any, Mapping

from .config import ConnectionConfig, DbalConfig
from .drivers.base import Driver, ResultDriver
from .drivers.loader import DriverLoader
from .exceptions import NotConnectedError, NotSupportedException
from .registry import DEFAULT_NAME, ConnectionRegistry

LOG = logging.getLogger(__name__)


class Session:
    """Explicit replacement for a process-global "current connection".

    Create one per application (or per thread) and pass it to the code that
    issues SQL. Unqualified operations such as :meth:`query` run against the
    active connection.
    """

    def __init__(
        self,
        registry: ConnectionRegistry | None = None,
        *,
        loader: DriverLoader | None = None,
    ) -> None:
        self._registry = registry or ConnectionRegistry()
        self._loader = loader or DriverLoader()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect_all()

    # -- Connections -------------------------------------------------------------

    def connect(
        self,
        config: ConnectionConfig | Mapping[str, Any] | None = None,
        name: str = DEFAULT_NAME,
    ) -> Driver:
        """Create a driver for ``config``, connect it and make it active."""

        resolved = ConnectionConfig.coerce(config)
        driver = self._loader.create(resolved.driver)
        driver.connect(resolved)
        self._registry.register(name, driver, activate=True)
        LOG.debug("Registered connection", extra={"connection": name, "driver": resolved.driver})
        return driver

    def connect_all(self, config: DbalConfig) -> Driver | None:
        """Connect every configured connection; the default one ends up active."""

        for name, entry in config.connections.items():
            self.connect(entry, name)
        default = config.default_name()
        if default is None:
            return None
        return self.set_connection(self._registry.get(default))

    def is_connected(self) -> bool:
        active = self._registry.active
        return active is not None and active.is_connected()

    def get_connection(self, name: str | None = None) -> Driver:
        """Return the active connection, or the one registered as ``name``."""

        if name is None:
            active = self._registry.active
            if active is None:
                raise NotConnectedError("Not connected to a database.")
            return active
        return self._registry.get(name)

    def set_connection(self, driver: Driver) -> Driver:
        """Make ``driver`` active without registering it."""

        self._registry.set_active(driver)
        return driver

    def activate(self, name: str) -> None:
        warnings.warn("Session.activate() is deprecated, use set_connection().", DeprecationWarning, stacklevel=2)
        self.set_connection(self.get_connection(name))

    def disconnect_all(self) -> None:
        for name in self._registry.names():
            driver = self._registry.remove(name)
            if driver is not None:
                driver.disconnect()

    # -- Operations forwarded to the active connection ----------------------------

    def disconnect(self) -> None:
        self.get_connection().disconnect()

    def query(self, sql: str) -> ResultDriver | None:
        return self.get_connection().query(sql)

    def get_affected_rows(self) -> int | None:
        return self.get_connection().get_affected_rows()

    def get_insert_id(self, sequence: str | None = None) -> int | None:
        return self.get_connection().get_insert_id(sequence)

    def begin(self, savepoint: str | None = None) -> None:
        self.get_connection().begin(savepoint)

    def commit(self, savepoint: str | None = None) -> None:
        self.get_connection().commit(savepoint)

    def rollback(self, savepoint: str | None = None) -> None:
        self.get_connection().rollback(savepoint)

    def escape_text(self, value: str) -> str:
        return self.get_connection().escape_text(value)

    def escape_binary(self, value: bytes | str) -> str:
        return self.get_connection().escape_binary(value)

    def escape_identifier(self, value: str) -> str:
        return self.get_connection().escape_identifier(value)

    def escape_bool(self, value: bool) -> str:
        return self.get_connection().escape_bool(value)

    def escape_date(self, value: object) -> str:
        return self.get_connection().escape_date(value)

    def escape_datetime(self, value: object) -> str:
        return self.get_connection().escape_datetime(value)

    def escape_like(self, value: str, pos: int) -> str:
        return self.get_connection().escape_like(value, pos)

    def unescape_binary(self, value: bytes) -> bytes:
        return self.get_connection().unescape_binary(value)

    def apply_limit(self, sql: str, limit: int | None, offset: int | None) -> str:
        return self.get_connection().apply_limit(sql, limit, offset)

    def get_resource(self) -> Any:
        return self.get_connection().get_resource()

    def get_info(self) -> dict[str, int]:
        """Counters for the last statement; only engines that report them support this."""

        driver = self.get_connection()
        get_info = getattr(driver, "get_info", None)
        if get_info is None:
            raise NotSupportedException(f"{type(driver).__name__} does not report statement info.")
        return get_info()

    def affected_rows(self) -> int | None:
        warnings.warn(
            "Session.affected_rows() is deprecated, use get_affected_rows().",
            DeprecationWarning,
            stacklevel=2,
        )
        return self.get_affected_rows()

    def insert_id(self, sequence: str | None = None) -> int | None:
        warnings.warn("Session.insert_id() is deprecated, use get_insert_id().", DeprecationWarning, stacklevel=2)
        return self.get_insert_id(sequence)


__all__ = ["Session"]
