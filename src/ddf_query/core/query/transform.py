"""Per-query row coercion applied between reading and joining.

The transformer converts requested measure cells to numbers and time cells
to `TimeDescriptor`s, in place. A descriptor carries both the canonical key
and the granularity, so `2000` and `2000q1` stay distinct rows in the join.
Rows whose time value does not parse, or parses to a granularity other than
the query's required one, are dropped (`__call__` returns None) before they
reach the join.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional, Union

from ddf_query.core.concepts import ConceptCatalog
from ddf_query.core.enums import TimeType
from .models import Query, ResourceFileResult, Row
from .timecodec import TimeCodec

logger = logging.getLogger(__name__)

Number = Union[int, float]

_INT_RE = re.compile(r"^[+-]?\d+$", re.ASCII)
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$", re.ASCII)


def to_number(raw: Any) -> Optional[Number]:
    """Convert a raw measure cell to int when integral, float otherwise.

    Returns None for text that is not a plain ASCII decimal number (digit
    separators such as `1_000`, non-ASCII digits, `inf` and `nan` included).

    Examples:
        >>> to_number("280000000")
        280000000
        >>> to_number("1.5e3")
        1500.0
        >>> to_number("n/a") is None
        True
        >>> to_number("1_000") is None
        True
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return raw
    text = str(raw).strip()
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    return None


class RecordTransformer:
    """Row transform built once per query.

    Attributes:
        measures: Measure columns that are coerced (measures requested in select.value).
        times: Time columns that are parsed.
        time_type: Required granularity, or None.
        dropped: Number of rows rejected so far.
    """

    def __init__(
        self,
        query: Query,
        catalog: ConceptCatalog,
        codec: TimeCodec,
        time_type: Optional[TimeType] = None,
    ) -> None:
        requested = set(query.select_value)
        self.measures: List[str] = [m for m in catalog.measures if m in requested]
        self.times: List[str] = catalog.times
        self.time_type = time_type
        self.codec = codec
        self.dropped = 0

    def __call__(self, row: Row) -> Optional[Row]:
        for measure in self.measures:
            if row.get(measure):
                value = to_number(row[measure])
                if value is None:
                    logger.debug("Non-numeric %s value %r read as null", measure, row[measure])
                row[measure] = value

        parsed = {}
        for column in self.times:
            raw = row.get(column)
            if raw is None:
                continue
            descriptor = self.codec.parse(raw, column=column)
            if descriptor is None or (
                self.time_type is not None and descriptor.type != self.time_type
            ):
                self.dropped += 1
                return None
            parsed[column] = descriptor

        row.update(parsed)
        return row

    def apply(self, result: ResourceFileResult) -> ResourceFileResult:
        """Transform every row of a file result, keeping the rows that survive."""
        before = self.dropped
        rows = [r for r in (self(row) for row in result.rows) if r is not None]
        if self.dropped > before:
            logger.debug("Dropped %d row(s) of %s", self.dropped - before, result.path)
        return ResourceFileResult(path=result.path, rows=rows, schema=result.schema)


def build_record_transformer(
    query: Query,
    catalog: ConceptCatalog,
    codec: TimeCodec,
    time_type: Optional[TimeType] = None,
) -> RecordTransformer:
    return RecordTransformer(query, catalog, codec, time_type=time_type)


__all__ = ["to_number", "RecordTransformer", "build_record_transformer"]
