"""Database engine abstraction layer."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import ConnectionConfig, DbalConfig, load_config
from .exceptions import (
    ConnectionNotFoundError,
    ConstraintViolationException,
    DbalError,
    DriverException,
    ForeignKeyConstraintViolationException,
    NotConnectedError,
    NotNullConstraintViolationException,
    NotSupportedException,
    UniqueConstraintViolationException,
)
from .registry import ConnectionRegistry
from .session import Session
from .types import ColumnInfo, Type

__all__ = [
    "ColumnInfo",
    "ConnectionConfig",
    "ConnectionNotFoundError",
    "ConnectionRegistry",
    "ConstraintViolationException",
    "DbalConfig",
    "DbalError",
    "DriverException",
    "ForeignKeyConstraintViolationException",
    "NotConnectedError",
    "NotNullConstraintViolationException",
    "NotSupportedException",
    "Session",
    "Type",
    "UniqueConstraintViolationException",
    "__version__",
    "load_config",
]
