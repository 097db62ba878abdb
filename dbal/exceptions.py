"""Exception taxonomy shared by drivers, the registry and the session."""

from __future__ import annotations


class DbalError(RuntimeError):
    """Base error for everything raised by dbal."""


class DriverException(DbalError):
    """Raised when the native engine reports a failure.

    Carries the native error code (an ``int`` for MySQL, a SQLSTATE string for
    PostgreSQL) and the SQL that triggered it, when there was one.
    """

    def __init__(self, message: str, code: int | str | None = None, sql: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.sql = sql

    def __str__(self) -> str:
        if self.sql:
            return f"{self.message}\n## {self.sql}"
        return self.message


class ConstraintViolationException(DriverException):
    """Base class for integrity constraint violations."""


class ForeignKeyConstraintViolationException(ConstraintViolationException):
    """A foreign key constraint was violated."""


class NotNullConstraintViolationException(ConstraintViolationException):
    """A NOT NULL column received a null value."""


class UniqueConstraintViolationException(ConstraintViolationException):
    """A unique index or primary key received a duplicate value."""


class NotSupportedException(DbalError):
    """Raised when an operation is not available in the current mode."""


class ConnectionNotFoundError(DbalError):
    """Raised when the registry has no connection under the requested name."""


class NotConnectedError(ConnectionNotFoundError):
    """Raised when no connection has been made active yet."""


__all__ = [
    "ConnectionNotFoundError",
    "ConstraintViolationException",
    "DbalError",
    "DriverException",
    "ForeignKeyConstraintViolationException",
    "NotConnectedError",
    "NotNullConstraintViolationException",
    "NotSupportedException",
    "UniqueConstraintViolationException",
]
