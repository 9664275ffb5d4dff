"""Time value parsing and reformatting.

Supported shapes (case insensitive):

- year:    ``1990``
- quarter: ``1990q1``
- month:   ``199001`` or ``1990-01``
- week:    ``1990w1`` .. ``1990w53`` (ISO weeks)
- date:    ``19900101``

A parsed value gets a canonical key: the UTC epoch milliseconds of the period
start. Keys compare across granularities, so ``1990``, ``1990q1`` and
``199001`` share one key; a query mixing granularities should pin `time_type`.

`TimeCodec` owns two caches that live as long as the codec (normally as long
as the engine that created it): raw string -> descriptor, and per time column
(time type, canonical key) -> first raw string seen. Both only grow.
"""

from __future__ import annotations

import calendar
import re
import threading
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from ddf_query.core.enums import TimeType
from .models import TimeDescriptor

_YEAR_RE = re.compile(r"^(\d{4})$")
_QUARTER_RE = re.compile(r"^(\d{4})q([1-4])$", re.IGNORECASE)
_MONTH_RE = re.compile(r"^(\d{4})-?(0[1-9]|1[0-2])$")
_WEEK_RE = re.compile(r"^(\d{4})w(0?[1-9]|[1-4][0-9]|5[0-3])$", re.IGNORECASE)
_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")


def _epoch_ms(d: date) -> int:
    return calendar.timegm(d.timetuple()) * 1000


def parse_time(raw: object) -> Optional[TimeDescriptor]:
    """Parse a raw time cell without caching.

    Returns None when the value matches no supported shape or names an
    impossible calendar date (``19900231``, ``0000``, ``2021w53``).

    Examples:
        >>> parse_time("1990")
        TimeDescriptor(type=<TimeType.YEAR: 'year'>, time=631152000000)
        >>> parse_time("1990q2").type
        <TimeType.QUARTER: 'quarter'>
        >>> parse_time("n/a") is None
        True
    """
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip()
    try:
        m = _YEAR_RE.match(text)
        if m:
            return TimeDescriptor(TimeType.YEAR, _epoch_ms(date(int(m.group(1)), 1, 1)))
        m = _QUARTER_RE.match(text)
        if m:
            month = (int(m.group(2)) - 1) * 3 + 1
            return TimeDescriptor(TimeType.QUARTER, _epoch_ms(date(int(m.group(1)), month, 1)))
        m = _MONTH_RE.match(text)
        if m:
            return TimeDescriptor(
                TimeType.MONTH, _epoch_ms(date(int(m.group(1)), int(m.group(2)), 1))
            )
        m = _WEEK_RE.match(text)
        if m:
            monday = date.fromisocalendar(int(m.group(1)), int(m.group(2)), 1)
            return TimeDescriptor(TimeType.WEEK, _epoch_ms(monday))
        m = _DATE_RE.match(text)
        if m:
            d = date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
            return TimeDescriptor(TimeType.DATE, _epoch_ms(d))
    except ValueError:
        return None
    return None


class TimeValueCache:
    """Per time column: (time type, canonical key) -> original raw string.

    The first raw string recorded for a (column, type, key) triple is kept;
    later spellings of the same value do not replace it. Keeping the type in
    the lookup key stops ``2000`` and ``2000q1``, which share a canonical
    key, from overwriting each other.
    """

    def __init__(self) -> None:
        self._values: Dict[str, Dict[Tuple[TimeType, int], str]] = {}
        self._lock = threading.Lock()

    def remember(self, column: str, descriptor: TimeDescriptor, raw: str) -> None:
        with self._lock:
            self._values.setdefault(column, {}).setdefault(
                (descriptor.type, descriptor.time), raw
            )

    def lookup(
        self, column: str, key: int, time_types: Optional[Iterable[TimeType]] = None
    ) -> Optional[str]:
        """Original spelling of `key` in `column`.

        `time_types` narrows the candidate granularities; they are tried from
        the coarsest (year) to the finest (date).
        """
        allowed = set(time_types) if time_types is not None else set(TimeType)
        with self._lock:
            column_values = self._values.get(column, {})
            for time_type in TimeType:
                if time_type in allowed and (time_type, key) in column_values:
                    return column_values[(time_type, key)]
        return None

    def columns(self) -> List[str]:
        with self._lock:
            return list(self._values)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._values.values())


class TimeCodec:
    """Cached time parser plus the reverse lookup used when formatting results.

    Attributes:
        values: Reverse lookup cache, shared with whoever formats results.
        parse_count: Number of parses that missed the cache.
    """

    def __init__(self, values: Optional[TimeValueCache] = None) -> None:
        self.values = values if values is not None else TimeValueCache()
        self.parse_count = 0
        self._descriptors: Dict[str, Optional[TimeDescriptor]] = {}
        self._lock = threading.Lock()

    def parse(self, raw: str, column: Optional[str] = None) -> Optional[TimeDescriptor]:
        """Parse `raw`, returning the same descriptor instance for the same string.

        When `column` is given and the value parses, the mapping
        (type, canonical key) -> `raw` is recorded for that column.
        """
        with self._lock:
            if raw in self._descriptors:
                descriptor = self._descriptors[raw]
            else:
                descriptor = parse_time(raw)
                self._descriptors[raw] = descriptor
                self.parse_count += 1
        if descriptor is not None and column is not None:
            self.values.remember(column, descriptor, raw)
        return descriptor

    def format(
        self, column: str, key: int, time_types: Optional[Iterable[TimeType]] = None
    ) -> Optional[str]:
        """Original spelling of a canonical key in `column`, if one was recorded."""
        return self.values.lookup(column, key, time_types)


__all__ = ["parse_time", "TimeValueCache", "TimeCodec"]
