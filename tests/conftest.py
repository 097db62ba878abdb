"""Shared fakes standing in for the native PyMySQL and asyncpg connections."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pymysql
import pytest
from pymysql.constants import FIELD_TYPE
from pymysql.cursors import SSCursor

UNSIGNED_MINUS_ONE = 18446744073709551615


class FakeField:
    def __init__(self, name: str, type_code: int, *, table: str = "", org_table: str = "") -> None:
        self.catalog = "def"
        self.db = "app"
        self.table_name = table
        self.org_table = org_table
        self.name = name
        self.org_name = name
        self.charsetnr = 63
        self.length = 11
        self.type_code = type_code
        self.flags = 0
        self.scale = 0


class FakeResult:
    def __init__(self, fields: list[FakeField], message: bytes = b"") -> None:
        self.fields = fields
        self.message = message


class FakeCursor:
    def __init__(self, connection: FakeMySqlConnection, *, unbuffered: bool) -> None:
        self.connection = connection
        self.unbuffered = unbuffered
        self.description: tuple[tuple[Any, ...], ...] | None = None
        self.rowcount = -1
        self.rownumber = 0
        self.closed = False
        self._rows: list[tuple[Any, ...]] = []
        self._result: FakeResult | None = None

    def execute(self, sql: str) -> int:
        self.connection.executed.append(sql)
        outcome = self.connection.outcomes.get(sql)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            return 0
        fields, rows = outcome
        self.description = tuple((field.name, field.type_code, None, None, None, None, True) for field in fields)
        self._result = FakeResult(fields)
        self._rows = list(rows)
        self.rowcount = UNSIGNED_MINUS_ONE if self.unbuffered else len(self._rows)
        self.connection.affected = self.rowcount
        return len(self._rows)

    def fetchone(self) -> tuple[Any, ...] | None:
        if self.rownumber >= len(self._rows):
            return None
        row = self._rows[self.rownumber]
        self.rownumber += 1
        return row

    def scroll(self, value: int, mode: str = "relative") -> None:
        assert mode == "absolute"
        if not 0 <= value < len(self._rows):
            raise IndexError("out of range")
        self.rownumber = value

    def close(self) -> None:
        self.closed = True
        self.connection.closed_cursors += 1


class FakeMySqlConnection:
    def __init__(self, outcomes: dict[str, Any] | None = None) -> None:
        self.outcomes: dict[str, Any] = outcomes or {}
        self.executed: list[str] = []
        self.charsets: list[str] = []
        self.charset_error: BaseException | None = None
        self.open = True
        self.close_calls = 0
        self.closed_cursors = 0
        self.affected = 0
        self.last_insert_id = 0
        self._result: FakeResult | None = None

    def cursor(self, cursor_class: type) -> FakeCursor:
        return FakeCursor(self, unbuffered=cursor_class is SSCursor)

    def set_character_set(self, charset: str, collation: str | None = None) -> None:
        self.charsets.append(charset)
        if self.charset_error is not None:
            raise self.charset_error

    def escape_string(self, value: str) -> str:
        return pymysql.converters.escape_string(value)

    def affected_rows(self) -> int:
        return self.affected

    def insert_id(self) -> int:
        return self.last_insert_id

    def close(self) -> None:
        self.close_calls += 1
        if not self.open:
            raise pymysql.err.Error("Already closed")
        self.open = False


class FakeMySql:
    """Handle returned by the ``fake_mysql`` fixture."""

    def __init__(self) -> None:
        self.connection = FakeMySqlConnection()
        self.connect_calls: list[dict[str, Any]] = []
        self.connect_error: BaseException | None = None

    field = FakeField
    result = FakeResult

    def connect(self, **kwargs: Any) -> FakeMySqlConnection:
        self.connect_calls.append(kwargs)
        if self.connect_error is not None:
            raise self.connect_error
        return self.connection

    def next_connection(self) -> FakeMySqlConnection:
        """Hand out a fresh link on the next connect; returns the previous one."""

        previous, self.connection = self.connection, FakeMySqlConnection(dict(self.connection.outcomes))
        return previous

    def returns(self, sql: str, fields: list[FakeField], rows: list[tuple[Any, ...]]) -> None:
        self.connection.outcomes[sql] = (fields, rows)

    def fails(self, sql: str, error: BaseException) -> None:
        self.connection.outcomes[sql] = error

    def select_one(self) -> None:
        self.returns("SELECT 1", [FakeField("1", FIELD_TYPE.LONGLONG)], [(1,)])


@pytest.fixture(autouse=True)
def clean_engine_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep engine defaults independent of the developer's shell."""

    for name in (
        "USER",
        "MYSQL_PWD",
        "MYSQL_HOST",
        "MYSQL_TCP_PORT",
        "MYSQL_UNIX_PORT",
        "PGHOST",
        "PGPORT",
        "PGUSER",
        "PGPASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_mysql(monkeypatch: pytest.MonkeyPatch) -> FakeMySql:
    fake = FakeMySql()
    monkeypatch.setattr("dbal.drivers.mysql.pymysql.connect", fake.connect)
    monkeypatch.setattr("dbal.drivers.mysql._PERSISTENT_LINKS", {})
    return fake


class FakePgType:
    def __init__(self, name: str, oid: int) -> None:
        self.name = name
        self.oid = oid
        self.kind = "scalar"
        self.schema = "pg_catalog"


class FakePgAttribute:
    def __init__(self, name: str, type_name: str = "int4", oid: int = 23) -> None:
        self.name = name
        self.type = FakePgType(type_name, oid)


class FakePgStatement:
    def __init__(self, rows: list[dict[str, Any]], attributes: tuple[FakePgAttribute, ...], status: str) -> None:
        self._rows = rows
        self._attributes = attributes
        self._status = status

    async def fetch(self) -> list[dict[str, Any]]:
        return self._rows

    def get_attributes(self) -> tuple[FakePgAttribute, ...]:
        return self._attributes

    def get_statusmsg(self) -> str:
        return self._status


class FakePgConnection:
    def __init__(self) -> None:
        self.outcomes: dict[str, Any] = {}
        self.prepared: list[str] = []
        self.closed = False
        self.settings = SimpleNamespace(standard_conforming_strings="on")

    async def prepare(self, sql: str) -> FakePgStatement:
        self.prepared.append(sql)
        outcome = self.outcomes.get(sql, ([], (), "SET"))
        if isinstance(outcome, BaseException):
            raise outcome
        return FakePgStatement(*outcome)

    async def close(self) -> None:
        self.closed = True

    def is_closed(self) -> bool:
        return self.closed

    def get_settings(self) -> SimpleNamespace:
        return self.settings


class FakePostgres:
    """Handle returned by the ``fake_postgres`` fixture."""

    attribute = FakePgAttribute

    def __init__(self) -> None:
        self.connection = FakePgConnection()
        self.connect_calls: list[dict[str, Any]] = []
        self.connect_error: BaseException | None = None

    async def connect(self, **kwargs: Any) -> FakePgConnection:
        self.connect_calls.append(kwargs)
        if self.connect_error is not None:
            raise self.connect_error
        return self.connection

    def returns(
        self,
        sql: str,
        attributes: tuple[FakePgAttribute, ...],
        rows: list[dict[str, Any]],
        status: str | None = None,
    ) -> None:
        self.connection.outcomes[sql] = (rows, attributes, status or f"SELECT {len(rows)}")

    def status(self, sql: str, status: str) -> None:
        self.connection.outcomes[sql] = ([], (), status)

    def fails(self, sql: str, error: BaseException) -> None:
        self.connection.outcomes[sql] = error


@pytest.fixture
def fake_postgres(monkeypatch: pytest.MonkeyPatch) -> FakePostgres:
    fake = FakePostgres()
    monkeypatch.setattr("dbal.drivers.postgres.asyncpg.connect", fake.connect)
    return fake
