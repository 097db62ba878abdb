"""Small helpers shared by the engine drivers."""

from __future__ import annotations

import os
import re
from datetime import date, datetime, time, timezone

_NUMERIC = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)")


def to_datetime(value: object) -> datetime:
    """Coerce ``value`` into a :class:`datetime`.

    Accepts datetimes, dates, numeric unix timestamps and ISO 8601 strings.
    """

    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to a date/time value.")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value)
    if isinstance(value, str):
        text = value.strip()
        if _NUMERIC.fullmatch(text):
            return datetime.fromtimestamp(float(text))
        try:
            return datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Cannot convert '{value}' to a date/time value.") from exc
    raise ValueError(f"Cannot convert {value!r} to a date/time value.")


def local_utc_offset(now: datetime | None = None) -> str:
    """Return the process-local UTC offset formatted as ``+HH:MM``."""

    moment = (now or datetime.now(tz=timezone.utc)).astimezone()
    offset = moment.utcoffset()
    seconds = int(offset.total_seconds()) if offset is not None else 0
    sign = "-" if seconds < 0 else "+"
    hours, minutes = divmod(abs(seconds) // 60, 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def env_default(name: str) -> str | None:
    """Read an engine default from the environment; blank values count as unset."""

    value = os.environ.get(name)
    return value or None


def env_int(name: str) -> int | None:
    value = env_default(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


__all__ = ["env_default", "env_int", "local_utc_offset", "to_datetime"]
