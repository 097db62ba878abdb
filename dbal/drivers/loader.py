"""Driver discovery: built-in engines plus entry-point contributions."""

from __future__ import annotations

import importlib.metadata as metadata
import inspect
import logging
from dataclasses import dataclass
from typing import Mapping

from ..exceptions import DbalError
from .base import Driver

LOG = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "dbal.drivers"

BUILTIN_DRIVERS: Mapping[str, str] = {
    "mysql": "dbal.drivers.mysql:MySqlDriver",
    "mysqli": "dbal.drivers.mysql:MySqlDriver",
    "postgres": "dbal.drivers.postgres:PostgresDriver",
    "postgre": "dbal.drivers.postgres:PostgresDriver",
    "postgresql": "dbal.drivers.postgres:PostgresDriver",
}


@dataclass(slots=True, frozen=True)
class DiscoveredDriver:
    """A driver name and the entry point that provides it."""

    name: str
    entry_point: metadata.EntryPoint
    builtin: bool = False


class DriverLoader:
    """Resolves driver names (``config.driver``) to driver classes."""

    def __init__(
        self,
        *,
        entry_point_group: str = ENTRY_POINT_GROUP,
        builtin_drivers: Mapping[str, str] | None = None,
    ) -> None:
        self._entry_point_group = entry_point_group
        self._builtin_drivers = dict(BUILTIN_DRIVERS if builtin_drivers is None else builtin_drivers)
        self._discovered: dict[str, DiscoveredDriver] | None = None
        self._classes: dict[str, type[Driver]] = {}

    def discover(self) -> list[DiscoveredDriver]:
        """Enumerate drivers from entry points, then fill in the built-ins."""

        return list(self._scan().values())

    def _scan(self) -> dict[str, DiscoveredDriver]:
        eps = metadata.entry_points()
        group = eps.select(group=self._entry_point_group)
        discovered: dict[str, DiscoveredDriver] = {}
        for entry_point in sorted(group, key=lambda ep: ep.name):
            discovered[entry_point.name.lower()] = DiscoveredDriver(name=entry_point.name.lower(), entry_point=entry_point)
        for name, value in self._builtin_drivers.items():
            entry_point = metadata.EntryPoint(name=name, value=value, group=self._entry_point_group)
            discovered.setdefault(name, DiscoveredDriver(name=name, entry_point=entry_point, builtin=True))
        self._discovered = discovered
        return discovered

    def _known(self) -> dict[str, DiscoveredDriver]:
        if self._discovered is None:
            return self._scan()
        return self._discovered

    @property
    def names(self) -> tuple[str, ...]:
        """Driver names that can be resolved."""

        return tuple(sorted(self._known()))

    def resolve(self, name: str) -> type[Driver]:
        """Return the driver class registered under ``name``."""

        key = name.lower()
        if key in self._classes:
            return self._classes[key]
        found = self._known().get(key)
        if found is None:
            raise DbalError(f"Unknown driver '{name}'; available: {', '.join(self.names)}.")
        try:
            obj = found.entry_point.load()
        except (ImportError, AttributeError) as exc:
            LOG.exception("Driver import failed", extra={"driver": name})
            raise DbalError(f"Unable to load driver '{name}'.") from exc
        if not inspect.isclass(obj):
            raise DbalError(f"Driver '{name}' does not point at a class.")
        self._classes[key] = obj
        return obj

    def create(self, name: str) -> Driver:
        """Instantiate the driver registered under ``name``."""

        driver = self.resolve(name)()
        if not isinstance(driver, Driver):
            raise DbalError(f"Driver '{name}' does not implement the driver contract.")
        return driver


__all__ = ["BUILTIN_DRIVERS", "DiscoveredDriver", "DriverLoader", "ENTRY_POINT_GROUP"]
