"""Engine drivers and the contracts they implement."""

from .base import BaseDriver, Driver, ResultCursor, ResultDriver
from .loader import DriverLoader
from .mysql import MySqlDriver, MySqlResult
from .postgres import PostgresDriver, PostgresResult

__all__ = [
    "BaseDriver",
    "Driver",
    "DriverLoader",
    "MySqlDriver",
    "MySqlResult",
    "PostgresDriver",
    "PostgresResult",
    "ResultCursor",
    "ResultDriver",
]
