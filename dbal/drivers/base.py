"""Driver contracts and the result cursor state machine shared by engines."""

from __future__ import annotations

import logging
import warnings
from typing import Any, ClassVar, Iterator, Mapping, Protocol, runtime_checkable

from ..config import ConnectionConfig
from ..exceptions import NotSupportedException
from ..helpers import to_datetime
from ..types import ColumnInfo

LOG = logging.getLogger(__name__)

Row = dict[str, Any] | tuple[Any, ...]


@runtime_checkable
class ResultDriver(Protocol):
    """Protocol implemented by result cursors."""

    @property
    def buffered(self) -> bool:
        """Whether the rows were materialised client-side."""

    @property
    def freed(self) -> bool:
        """Whether the native result has been released."""

    def fetch(self, assoc: bool = True) -> Row | None:
        """Return the next row, or ``None`` past the last one."""

    def seek(self, row: int) -> bool:
        """Move to ``row`` without fetching it (buffered results only)."""

    def get_row_count(self) -> int:
        """Number of rows in the result (buffered results only)."""

    def get_columns(self) -> list[ColumnInfo]:
        """Metadata for every column of the result."""

    def free(self) -> None:
        """Release the native result; safe to call repeatedly."""

    def detach(self) -> Any:
        """Hand the raw native result to the caller and stop releasing it."""


@runtime_checkable
class Driver(Protocol):
    """Protocol implemented by engine drivers."""

    config: ConnectionConfig | None

    def connect(self, config: ConnectionConfig | Mapping[str, Any]) -> None:
        """Open (or adopt) the native connection described by ``config``."""

    def disconnect(self) -> None:
        """Close the native connection; never raises."""

    def is_connected(self) -> bool:
        """Whether the native connection is open."""

    def query(self, sql: str) -> ResultDriver | None:
        """Execute ``sql``; return a cursor for tabular results, else ``None``."""

    def get_affected_rows(self) -> int | None:
        """Rows changed by the last statement, ``None`` when not applicable."""

    def get_insert_id(self, sequence: str | None = None) -> int | None:
        """Identifier generated by the last insert."""

    def begin(self, savepoint: str | None = None) -> None: ...

    def commit(self, savepoint: str | None = None) -> None: ...

    def rollback(self, savepoint: str | None = None) -> None: ...

    def get_resource(self) -> Any:
        """The live native connection, or ``None``."""

    def escape_text(self, value: str) -> str: ...

    def escape_binary(self, value: bytes | str) -> str: ...

    def escape_identifier(self, value: str) -> str: ...

    def escape_bool(self, value: bool) -> str: ...

    def escape_date(self, value: object) -> str: ...

    def escape_datetime(self, value: object) -> str: ...

    def escape_like(self, value: str, pos: int) -> str: ...

    def unescape_binary(self, value: bytes) -> bytes: ...

    def apply_limit(self, sql: str, limit: int | None, offset: int | None) -> str: ...


class ResultCursor:
    """Cursor over one native result handle.

    The cursor borrows the driver's connection; it never owns it. Engines
    subclass it and fill in the ``_fetch_row``/``_seek_row``/``_count_rows``/
    ``_describe``/``_release`` hooks, while this class enforces the shared
    rules: streaming results cannot seek or count, and a freed result cannot
    be used at all.
    """

    def __init__(self, native: Any, *, buffered: bool) -> None:
        self._native = native
        self._buffered = buffered
        self._auto_free = True
        self._columns: tuple[ColumnInfo, ...] | None = None

    @property
    def buffered(self) -> bool:
        return self._buffered

    @property
    def freed(self) -> bool:
        return self._native is None

    def __enter__(self) -> ResultCursor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._auto_free:
            self.free()

    def __iter__(self) -> Iterator[dict[str, Any]]:
        while True:
            row = self.fetch(True)
            if row is None:
                return
            yield row  # type: ignore[misc]

    def fetch(self, assoc: bool = True) -> Row | None:
        self._ensure_active()
        return self._fetch_row(assoc)

    def seek(self, row: int) -> bool:
        if not self._buffered:
            raise NotSupportedException("Cannot seek an unbuffered result set.")
        self._ensure_active()
        if row < 0:
            return False
        return self._seek_row(row)

    def get_row_count(self) -> int:
        if not self._buffered:
            raise NotSupportedException("Row count is not available for unbuffered queries.")
        self._ensure_active()
        return self._count_rows()

    def get_columns(self) -> list[ColumnInfo]:
        self._ensure_active()
        if self._columns is None:
            self._columns = tuple(self._describe())
        return list(self._columns)

    def free(self) -> None:
        native, self._native = self._native, None
        if native is not None:
            self._release(native)

    def detach(self) -> Any:
        self._auto_free = False
        return self._native

    def _ensure_active(self) -> None:
        if self._native is None:
            raise NotSupportedException("Result set has already been freed.")

    def _fetch_row(self, assoc: bool) -> Row | None:
        raise NotImplementedError

    def _seek_row(self, row: int) -> bool:
        raise NotImplementedError

    def _count_rows(self) -> int:
        raise NotImplementedError

    def _describe(self) -> list[ColumnInfo]:
        raise NotImplementedError

    def _release(self, native: Any) -> None:
        raise NotImplementedError


class BaseDriver:
    """Behaviour every engine driver shares.

    Transaction control is a thin pass-through to :meth:`query`; nesting rules
    are left to the engine.
    """

    name: ClassVar[str] = ""

    def __init__(self) -> None:
        self.config: ConnectionConfig | None = None
        self._buffered = True

    @property
    def buffered(self) -> bool:
        """Buffering mode applied to every result this driver produces."""

        return self._buffered

    def __enter__(self) -> BaseDriver:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect()

    def query(self, sql: str) -> ResultCursor | None:
        raise NotImplementedError

    def disconnect(self) -> None:
        raise NotImplementedError

    def begin(self, savepoint: str | None = None) -> None:
        self.query(f"SAVEPOINT {savepoint}" if savepoint else "START TRANSACTION")

    def commit(self, savepoint: str | None = None) -> None:
        self.query(f"RELEASE SAVEPOINT {savepoint}" if savepoint else "COMMIT")

    def rollback(self, savepoint: str | None = None) -> None:
        self.query(f"ROLLBACK TO SAVEPOINT {savepoint}" if savepoint else "ROLLBACK")

    def escape_date(self, value: object) -> str:
        return f"'{to_datetime(value).date().isoformat()}'"

    def escape_datetime(self, value: object) -> str:
        moment = to_datetime(value).replace(tzinfo=None)
        return f"'{moment.isoformat(sep=' ', timespec='microseconds')}'"

    def unescape_binary(self, value: bytes) -> bytes:
        return value

    @staticmethod
    def _check_limit(limit: int | None, offset: int | None) -> None:
        if (limit is not None and limit < 0) or (offset is not None and offset < 0):
            raise NotSupportedException("Negative offset or limit.")

    def _normalize_options(self, config: ConnectionConfig) -> ConnectionConfig:
        """Remap a scalar ``options`` value to ``flags`` (legacy configs)."""

        options = config.options
        if options is None or isinstance(options, Mapping):
            return config
        warnings.warn(
            f"{type(self).__name__}: configuration item 'options' must be a mapping; "
            "for client flags use 'flags'.",
            DeprecationWarning,
            stacklevel=3,
        )
        return config.model_copy(update={"flags": int(options)})


__all__ = ["BaseDriver", "Driver", "ResultCursor", "ResultDriver", "Row"]
