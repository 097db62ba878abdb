"""MySQL / MariaDB driver built on PyMySQL.

Recognised configuration keys:

- ``host``, ``port``, ``socket``: where to connect
- ``username`` (or ``user``), ``password`` (or ``pass``), ``database``
- ``options``: mapping of PyMySQL connect keywords (``connect_timeout``,
  ``ssl``, ``read_timeout``, ...) passed through untouched
- ``flags``: client flag bitmask (``pymysql.constants.CLIENT``)
- ``charset``: character set applied after connecting (default ``utf8``)
- ``persistent``: reuse an open link to the same server for this process
- ``unbuffered``: stream results instead of materialising them
- ``sqlmode``, ``timezone``: session variables set after connecting
- ``resource``: an existing ``pymysql`` connection to adopt
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Any, Mapping

import pymysql
from pymysql.constants import FIELD_TYPE
from pymysql.cursors import Cursor, SSCursor

from ..config import ConnectionConfig
from ..exceptions import (
    DriverException,
    ForeignKeyConstraintViolationException,
    NotNullConstraintViolationException,
    UniqueConstraintViolationException,
)
from ..helpers import env_default, env_int, local_utc_offset
from ..types import ColumnInfo, Type
from .base import BaseDriver, ResultCursor, Row

LOG = logging.getLogger(__name__)

ERROR_ACCESS_DENIED = 1045
ERROR_DUPLICATE_ENTRY = 1062
ERROR_DATA_TRUNCATED = 1265

FOREIGN_KEY_ERRORS = frozenset({1216, 1217, 1451, 1452, 1701})
UNIQUE_ERRORS = frozenset({1062, 1557, 1569, 1586})
NOT_NULL_ERRORS = frozenset({1048, 1121, 1138, 1171, 1252, 1263, 1566})

# Largest value MySQL accepts in LIMIT; stands in for "no limit" when only an
# offset is requested.
MAX_LIMIT = "18446744073709551615"

# affected_rows() reports one of these when the count does not apply.
_NOT_APPLICABLE = frozenset({-1, 18446744073709551615})

_INFO_PATTERN = re.compile(r"(.+?): +(\d+) *")

_LIKE_ESCAPES = str.maketrans(
    {
        "\\": "\\\\\\\\",
        "\x00": "\\0",
        "\n": "\\n",
        "\r": "\\r",
        "'": "\\'",
        "%": "\\%",
        "_": "\\_",
    }
)

_FIELD_ATTRIBUTES = (
    "catalog",
    "db",
    "table_name",
    "org_table",
    "name",
    "org_name",
    "charsetnr",
    "length",
    "type_code",
    "flags",
    "scale",
)

_PERSISTENT_LINKS: dict[tuple[Any, ...], Any] = {}
_PERSISTENT_LOCK = threading.Lock()


def _native_type_names() -> dict[int, str]:
    names: dict[int, str] = {}
    for key, value in vars(FIELD_TYPE).items():
        # CHAR and INTERVAL alias TINY and ENUM.
        if key.isupper() and isinstance(value, int) and key not in ("CHAR", "INTERVAL"):
            names.setdefault(value, key)
    names[FIELD_TYPE.TINY] = names[FIELD_TYPE.SHORT] = names[FIELD_TYPE.LONG] = "INT"
    return names


_NATIVE_TYPES = _native_type_names()


def error_kind(code: int | None) -> type[DriverException]:
    """Map a MySQL error number onto the exception class that describes it."""

    if code in FOREIGN_KEY_ERRORS:
        return ForeignKeyConstraintViolationException
    if code in UNIQUE_ERRORS:
        return UniqueConstraintViolationException
    if code in NOT_NULL_ERRORS:
        return NotNullConstraintViolationException
    return DriverException


def create_exception(message: str, code: int | None, sql: str | None = None) -> DriverException:
    return error_kind(code)(message, code, sql)


def _error_parts(exc: pymysql.MySQLError) -> tuple[str, int | None]:
    args = exc.args
    if len(args) >= 2 and isinstance(args[0], int):
        return str(args[1]), args[0]
    message = str(args[0]) if args else ""
    return message or type(exc).__name__, None


class MySqlDriver(BaseDriver):
    """Driver for MySQL and MariaDB servers."""

    name = "mysql"

    def __init__(self) -> None:
        super().__init__()
        self._connection: Any = None
        self._persistent = False

    # -- Connection management -----------------------------------------------

    def connect(self, config: ConnectionConfig | Mapping[str, Any]) -> None:
        resolved = ConnectionConfig.coerce(config)
        self._persistent = False
        if resolved.resource is not None:
            self._connection = resolved.resource
        else:
            resolved = self._normalize_options(self._apply_defaults(resolved))
            self._connection = self._open(resolved)

        try:
            if resolved.charset is not None:
                self._apply_charset(resolved.charset)
            if resolved.sqlmode is not None:
                self.query(f"SET sql_mode='{resolved.sqlmode}'")
            if resolved.timezone is not None:
                self.query(f"SET time_zone='{resolved.timezone}'")
        except BaseException:
            self.disconnect()
            raise

        self._buffered = not resolved.unbuffered
        self.config = resolved
        LOG.debug(
            "Connected to MySQL",
            extra={"host": resolved.host, "database": resolved.database, "buffered": self._buffered},
        )

    def disconnect(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None or self._persistent:
            return
        try:
            connection.close()
        except pymysql.MySQLError:
            LOG.debug("Ignoring error while closing MySQL connection")

    def is_connected(self) -> bool:
        return self._connection is not None and bool(getattr(self._connection, "open", False))

    def get_resource(self) -> Any:
        """Return the native connection while it is alive."""

        return self._connection if self.is_connected() else None

    def _apply_defaults(self, config: ConnectionConfig) -> ConnectionConfig:
        config = config.with_defaults(
            charset="utf8",
            timezone=local_utc_offset(),
            username=env_default("USER"),
            password=env_default("MYSQL_PWD"),
            socket=env_default("MYSQL_UNIX_PORT"),
        )
        if config.host is None:
            host = env_default("MYSQL_HOST")
            if host is not None:
                update: dict[str, Any] = {"host": host}
                if config.port is None:
                    update["port"] = env_int("MYSQL_TCP_PORT")
                config = config.model_copy(update=update)
        return config

    def _open(self, config: ConnectionConfig) -> Any:
        key = (config.host, config.port, config.socket, config.username, config.database)
        if config.persistent:
            with _PERSISTENT_LOCK:
                link = _PERSISTENT_LINKS.get(key)
            if link is not None and getattr(link, "open", False):
                LOG.debug("Reusing persistent MySQL link", extra={"host": config.host})
                self._persistent = True
                return link

        kwargs: dict[str, Any] = dict(config.options) if isinstance(config.options, Mapping) else {}
        kwargs.update(
            host=config.host,
            port=config.port or 0,
            unix_socket=config.socket,
            user=config.username,
            password=config.password or "",
            database=config.database,
            client_flag=config.flags or 0,
            cursorclass=Cursor,
        )
        try:
            connection = pymysql.connect(**kwargs)
        except pymysql.MySQLError as exc:
            message, code = _error_parts(exc)
            raise DriverException(message, code) from exc

        if config.persistent:
            with _PERSISTENT_LOCK:
                _PERSISTENT_LINKS[key] = connection
            self._persistent = True
        return connection

    def _apply_charset(self, charset: str) -> None:
        try:
            self._handle().set_character_set(charset)
        except (pymysql.MySQLError, LookupError, AttributeError):
            # PyMySQL does not know every server charset name.
            LOG.debug("Falling back to SET NAMES", extra={"charset": charset})
            self.query(f"SET NAMES '{charset}'")

    def _handle(self) -> Any:
        if self._connection is None:
            raise DriverException("Not connected to a database.")
        return self._connection

    # -- Queries ---------------------------------------------------------------

    def query(self, sql: str) -> MySqlResult | None:
        """Execute ``sql`` and wrap a tabular result in a cursor."""

        connection = self._handle()
        cursor = connection.cursor(Cursor if self._buffered else SSCursor)
        LOG.debug("Executing query", extra={"sql": sql, "buffered": self._buffered})
        try:
            cursor.execute(sql)
        except pymysql.MySQLError as exc:
            message, code = _error_parts(exc)
            raise create_exception(message, code, sql) from exc
        if cursor.description is None:
            cursor.close()
            return None
        return MySqlResult(cursor, buffered=self._buffered)

    def get_info(self) -> dict[str, int]:
        """Counters reported for the last statement, e.g. ``{"Records": 3}``."""

        result = getattr(self._handle(), "_result", None)
        message = getattr(result, "message", None) or b""
        if isinstance(message, bytes):
            message = message.decode("utf-8", "replace")
        return {match.group(1): int(match.group(2)) for match in _INFO_PATTERN.finditer(message)}

    def get_affected_rows(self) -> int | None:
        rows = self._handle().affected_rows()
        return None if rows in _NOT_APPLICABLE else rows

    def get_insert_id(self, sequence: str | None = None) -> int | None:
        return self._handle().insert_id()

    # -- SQL literals ------------------------------------------------------------

    def escape_text(self, value: str) -> str:
        return "'" + self._handle().escape_string(value) + "'"

    def escape_binary(self, value: bytes | str) -> str:
        if isinstance(value, bytes):
            value = value.decode("ascii", "surrogateescape")
        return "_binary'" + self._handle().escape_string(value) + "'"

    def escape_identifier(self, value: str) -> str:
        return "`" + value.replace("`", "``") + "`"

    def escape_bool(self, value: bool) -> str:
        return "1" if value else "0"

    def escape_like(self, value: str, pos: int) -> str:
        value = value.translate(_LIKE_ESCAPES)
        return ("'%" if pos <= 0 else "'") + value + ("%'" if pos >= 0 else "'")

    def apply_limit(self, sql: str, limit: int | None, offset: int | None) -> str:
        self._check_limit(limit, offset)
        if limit is not None or offset:
            sql += " LIMIT " + (MAX_LIMIT if limit is None else str(limit))
            if offset:
                sql += f" OFFSET {offset}"
        return sql


class MySqlResult(ResultCursor):
    """Cursor over a PyMySQL result; buffered results use the plain cursor."""

    def __init__(self, cursor: Any, *, buffered: bool) -> None:
        super().__init__(cursor, buffered=buffered)
        self._names = tuple(column[0] for column in cursor.description or ())

    def _fetch_row(self, assoc: bool) -> Row | None:
        row = self._native.fetchone()
        if row is None:
            return None
        if assoc:
            return dict(zip(self._names, row))
        return tuple(row)

    def _seek_row(self, row: int) -> bool:
        try:
            self._native.scroll(row, mode="absolute")
        except IndexError:
            return False
        return True

    def _count_rows(self) -> int:
        return self._native.rowcount

    def _describe(self) -> list[ColumnInfo]:
        result = getattr(self._native, "_result", None)
        columns: list[ColumnInfo] = []
        for field in getattr(result, "fields", None) or ():
            alias = field.table_name
            columns.append(
                ColumnInfo(
                    name=field.name,
                    table=field.org_table or None,
                    fullname=f"{alias}.{field.name}" if alias else field.name,
                    nativetype=_NATIVE_TYPES.get(field.type_code, str(field.type_code)),
                    type=Type.TIME_INTERVAL if field.type_code == FIELD_TYPE.TIME else None,
                    vendor={key: getattr(field, key, None) for key in _FIELD_ATTRIBUTES},
                )
            )
        return columns

    def _release(self, native: Any) -> None:
        try:
            native.close()
        except pymysql.MySQLError:
            LOG.debug("Ignoring error while releasing MySQL result")


__all__ = [
    "ERROR_ACCESS_DENIED",
    "ERROR_DATA_TRUNCATED",
    "ERROR_DUPLICATE_ENTRY",
    "MAX_LIMIT",
    "MySqlDriver",
    "MySqlResult",
    "create_exception",
    "error_kind",
]
