"""PostgreSQL driver that runs asyncpg behind a blocking interface.

asyncpg is coroutine based, so every driver owns a private event loop running
on a daemon thread and blocks the caller until each coroutine finishes.
Statements are prepared before execution, which means one statement per
:meth:`PostgresDriver.query` call.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Coroutine, Mapping, Sequence

import asyncpg

from ..config import ConnectionConfig
from ..exceptions import (
    DriverException,
    ForeignKeyConstraintViolationException,
    NotNullConstraintViolationException,
    NotSupportedException,
    UniqueConstraintViolationException,
)
from ..helpers import env_default, env_int
from ..types import ColumnInfo, Type
from .base import BaseDriver, ResultCursor, Row

LOG = logging.getLogger(__name__)

SQLSTATE_NOT_NULL = "23502"
SQLSTATE_FOREIGN_KEY = "23503"
SQLSTATE_UNIQUE = "23505"
SQLSTATE_FEATURE_NOT_SUPPORTED = "0A000"

# Command tags whose trailing number counts affected rows.
_COUNTED_COMMANDS = frozenset({"INSERT", "UPDATE", "DELETE", "MERGE", "COPY", "MOVE", "FETCH"})

_UTF8_NAMES = frozenset({"utf8", "utf-8", "unicode"})


def error_kind(code: str | None, message: str = "") -> type[DriverException]:
    """Map a SQLSTATE onto the exception class that describes it."""

    if code == SQLSTATE_FEATURE_NOT_SUPPORTED and "truncate" in message.lower():
        # TRUNCATE of a table referenced by a foreign key.
        return ForeignKeyConstraintViolationException
    if code == SQLSTATE_NOT_NULL:
        return NotNullConstraintViolationException
    if code == SQLSTATE_FOREIGN_KEY:
        return ForeignKeyConstraintViolationException
    if code == SQLSTATE_UNIQUE:
        return UniqueConstraintViolationException
    return DriverException


def create_exception(message: str, code: str | None, sql: str | None = None) -> DriverException:
    return error_kind(code, message)(message, code, sql)


class PostgresDriver(BaseDriver):
    """Driver for PostgreSQL servers via asyncpg."""

    name = "postgres"

    def __init__(self, *, connect_timeout: float = 10.0) -> None:
        super().__init__()
        self._connect_timeout = connect_timeout
        self._connection: Any = None
        self._last_status: str | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """Event loop the driver runs asyncpg on (adopted connections must belong to it)."""

        if self._loop is None:
            self._loop = asyncio.new_event_loop()
            self._loop_thread = threading.Thread(
                target=self._loop.run_forever,
                name="dbal-asyncpg-driver",
                daemon=True,
            )
            self._loop_thread.start()
        return self._loop

    # -- Connection management -----------------------------------------------

    def connect(self, config: ConnectionConfig | Mapping[str, Any]) -> None:
        resolved = ConnectionConfig.coerce(config)
        try:
            if resolved.resource is not None:
                self._connection = resolved.resource
            else:
                resolved = self._normalize_options(self._apply_defaults(resolved))
                self._connection = self._run(self._open(resolved))
            self._configure_session(resolved)
        except BaseException:
            # Also stops the loop thread when the connection never opened.
            self.disconnect()
            raise

        self._buffered = not resolved.unbuffered
        self.config = resolved
        LOG.debug(
            "Connected to PostgreSQL",
            extra={"host": resolved.host, "database": resolved.database, "buffered": self._buffered},
        )

    def _configure_session(self, config: ConnectionConfig) -> None:
        if config.charset is not None:
            if config.charset.lower() not in _UTF8_NAMES:
                raise NotSupportedException("asyncpg only supports the UTF8 client encoding.")
            self.query("SET NAMES 'UTF8'")
        if config.timezone is not None:
            self.query(f"SET TIME ZONE '{config.timezone}'")
        if config.search_path is not None:
            schemas = ", ".join(self.escape_identifier(part.strip()) for part in config.search_path.split(","))
            self.query(f"SET search_path TO {schemas}")

    def disconnect(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            try:
                self._run(connection.close())
            except Exception:
                LOG.debug("Ignoring error while closing PostgreSQL connection")
        self._shutdown()

    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed()

    def get_resource(self) -> Any:
        """Return the native connection while it is alive."""

        return self._connection if self.is_connected() else None

    def __del__(self) -> None:  # pragma: no cover - best effort cleanup
        try:
            self._shutdown()
        except Exception:
            pass

    def _shutdown(self) -> None:
        loop, self._loop = self._loop, None
        thread, self._loop_thread = self._loop_thread, None
        if loop is None:
            return
        if loop.is_running():
            loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=1)
        if not loop.is_running():
            loop.close()

    def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result()

    def _apply_defaults(self, config: ConnectionConfig) -> ConnectionConfig:
        return config.with_defaults(
            host=env_default("PGHOST"),
            port=env_int("PGPORT"),
            username=env_default("PGUSER"),
            password=env_default("PGPASSWORD"),
        )

    async def _open(self, config: ConnectionConfig) -> Any:
        kwargs: dict[str, Any] = dict(config.options) if isinstance(config.options, Mapping) else {}
        kwargs["host"] = config.socket or config.host
        if config.port is not None:
            kwargs["port"] = config.port
        if config.username:
            kwargs["user"] = config.username
        if config.password:
            kwargs["password"] = config.password
        if config.database:
            kwargs["database"] = config.database
        kwargs.setdefault("timeout", self._connect_timeout)
        try:
            return await asyncpg.connect(**kwargs)
        except Exception as exc:
            raise DriverException(str(exc), getattr(exc, "sqlstate", None)) from exc

    def _handle(self) -> Any:
        if self._connection is None:
            raise DriverException("Not connected to a database.")
        return self._connection

    # -- Queries ---------------------------------------------------------------

    def query(self, sql: str) -> PostgresResult | None:
        """Execute ``sql`` and wrap a tabular result in a cursor."""

        connection = self._handle()
        LOG.debug("Executing query", extra={"sql": sql, "buffered": self._buffered})
        try:
            rows, attributes, status = self._run(self._execute(connection, sql))
        except asyncpg.PostgresError as exc:
            raise create_exception(str(exc), getattr(exc, "sqlstate", None), sql) from exc
        except asyncpg.InterfaceError as exc:
            raise DriverException(str(exc), None, sql) from exc
        self._last_status = status
        if not attributes:
            return None
        return PostgresResult(list(rows), tuple(attributes), buffered=self._buffered)

    @staticmethod
    async def _execute(connection: Any, sql: str) -> tuple[Sequence[Any], Sequence[Any], str | None]:
        statement = await connection.prepare(sql)
        rows = await statement.fetch()
        return rows, statement.get_attributes(), statement.get_statusmsg()

    def get_affected_rows(self) -> int | None:
        parts = (self._last_status or "").split()
        if parts and parts[0] in _COUNTED_COMMANDS and parts[-1].isdigit():
            return int(parts[-1])
        return None

    def get_insert_id(self, sequence: str | None = None) -> int | None:
        if sequence is None:
            sql = "SELECT LASTVAL()"
        else:
            sql = f"SELECT CURRVAL({self.escape_text(sequence)})"
        result = self.query(sql)
        if result is None:
            return None
        with result:
            row = result.fetch(False)
        return int(row[0]) if row else None

    # -- SQL literals ------------------------------------------------------------

    def _standard_strings(self) -> bool:
        settings = self._handle().get_settings()
        return getattr(settings, "standard_conforming_strings", "on") == "on"

    def escape_text(self, value: str) -> str:
        if "\x00" in value:
            raise ValueError("PostgreSQL text values cannot contain NUL characters.")
        escaped = value.replace("'", "''")
        if not self._standard_strings():
            escaped = escaped.replace("\\", "\\\\")
        return f"'{escaped}'"

    def escape_binary(self, value: bytes | str) -> str:
        if isinstance(value, str):
            value = value.encode("utf-8")
        return f"decode('{value.hex()}', 'hex')"

    def escape_identifier(self, value: str) -> str:
        return '"' + value.replace('"', '""') + '"'

    def escape_bool(self, value: bool) -> str:
        return "TRUE" if value else "FALSE"

    def escape_like(self, value: str, pos: int) -> str:
        escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_").replace("'", "''")
        if not self._standard_strings():
            escaped = escaped.replace("\\", "\\\\")
        return ("'%" if pos <= 0 else "'") + escaped + ("%'" if pos >= 0 else "'")

    def apply_limit(self, sql: str, limit: int | None, offset: int | None) -> str:
        self._check_limit(limit, offset)
        if limit is not None:
            sql += f" LIMIT {limit}"
        if offset:
            sql += f" OFFSET {offset}"
        return sql


class PostgresResult(ResultCursor):
    """Cursor over rows fetched from a prepared statement.

    asyncpg only exposes server-side cursors inside a transaction, so rows are
    always received up front; an unbuffered result still refuses to seek or
    count.
    """

    def __init__(self, rows: list[Any], attributes: tuple[Any, ...], *, buffered: bool) -> None:
        super().__init__(rows, buffered=buffered)
        self._attributes = attributes
        self._position = 0

    def _fetch_row(self, assoc: bool) -> Row | None:
        if self._position >= len(self._native):
            return None
        record = self._native[self._position]
        self._position += 1
        if assoc:
            return dict(record.items())
        return tuple(record.values())

    def _seek_row(self, row: int) -> bool:
        if row >= len(self._native):
            return False
        self._position = row
        return True

    def _count_rows(self) -> int:
        return len(self._native)

    def _describe(self) -> list[ColumnInfo]:
        columns: list[ColumnInfo] = []
        for attribute in self._attributes:
            native = attribute.type
            columns.append(
                ColumnInfo(
                    name=attribute.name,
                    table=None,
                    fullname=attribute.name,
                    nativetype=native.name.upper(),
                    type=Type.TIME_INTERVAL if native.name == "interval" else None,
                    vendor={
                        "name": attribute.name,
                        "type_name": native.name,
                        "type_oid": native.oid,
                        "type_kind": native.kind,
                        "type_schema": native.schema,
                    },
                )
            )
        return columns

    def _release(self, native: Any) -> None:
        self._position = 0


__all__ = [
    "PostgresDriver",
    "PostgresResult",
    "SQLSTATE_FOREIGN_KEY",
    "SQLSTATE_NOT_NULL",
    "SQLSTATE_UNIQUE",
    "create_exception",
    "error_kind",
]
