"""Named connection registry with an active-connection slot."""

from __future__ import annotations

import logging
import threading
import weakref

from .drivers.base import Driver
from .exceptions import ConnectionNotFoundError

LOG = logging.getLogger(__name__)

DEFAULT_NAME = "0"


class ConnectionRegistry:
    """Thread-safe map of connection names to drivers.

    The registry owns the drivers it stores. The active slot only holds a
    weak reference, so a driver made active through :meth:`set_active` must be
    kept alive by the caller.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._connections: dict[str, Driver] = {}
        self._active: weakref.ReferenceType[Driver] | None = None

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._connections

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def register(self, name: str, driver: Driver, *, activate: bool = True) -> Driver:
        """Store ``driver`` under ``name``; a replaced driver is disconnected."""

        with self._lock:
            previous = self._connections.get(name)
            self._connections[name] = driver
            if previous is driver:
                previous = None
            if activate:
                self._active = weakref.ref(driver)
            elif previous is not None and self.active is previous:
                self._active = None
        if previous is not None:
            LOG.debug("Disconnecting replaced connection", extra={"connection": name})
            previous.disconnect()
        return driver

    def get(self, name: str) -> Driver:
        with self._lock:
            try:
                return self._connections[name]
            except KeyError:
                raise ConnectionNotFoundError(f"There is no connection named '{name}'.") from None

    def remove(self, name: str) -> Driver | None:
        """Drop the entry for ``name``; clears the active slot if it pointed there."""

        with self._lock:
            driver = self._connections.pop(name, None)
            if driver is not None and self.active is driver:
                self._active = None
            return driver

    def names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._connections)

    def drivers(self) -> tuple[Driver, ...]:
        with self._lock:
            return tuple(self._connections.values())

    @property
    def active(self) -> Driver | None:
        """The active driver, or ``None`` when unset or already collected."""

        with self._lock:
            return self._active() if self._active is not None else None

    def set_active(self, driver: Driver | None) -> Driver | None:
        with self._lock:
            self._active = weakref.ref(driver) if driver is not None else None
        return driver


__all__ = ["ConnectionRegistry", "DEFAULT_NAME"]
