"""Column type tags and metadata records produced by result cursors."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class Type(str, Enum):
    """Semantic column types understood by downstream hydration."""

    TEXT = "s"
    BINARY = "bin"
    JSON = "json"
    BOOL = "b"
    INTEGER = "i"
    FLOAT = "f"
    DATE = "d"
    DATETIME = "dt"
    TIME = "t"
    TIME_INTERVAL = "ti"


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    """Metadata for one column of a result set."""

    name: str
    table: str | None
    fullname: str
    nativetype: str | None
    type: Type | None = None
    vendor: Mapping[str, Any] = field(default_factory=dict)


__all__ = ["ColumnInfo", "Type"]
