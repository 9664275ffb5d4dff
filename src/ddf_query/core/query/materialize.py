from __future__ import annotations

import json
import logging
from typing import Iterable, List, Optional, Sequence

import polars as pl

from ddf_query.core.concepts import ConceptCatalog
from .models import Row, TimeDescriptor
from .timecodec import TimeCodec

logger = logging.getLogger(__name__)


def project_rows(
    rows: Iterable[Row],
    projection: Sequence[str],
    catalog: ConceptCatalog,
    codec: TimeCodec,
) -> List[Row]:
    """Keep exactly the `projection` columns and restore original time spellings.

    Time columns are scanned in projection order and only the first one
    holding a time descriptor is reformatted, in the spelling first seen for
    its granularity and key. Later descriptor columns keep their canonical
    key; rows with more than one are counted and reported.
    """
    time_columns = [c for c in projection if catalog.is_time(c)]
    out: List[Row] = []
    multi_time = 0
    for row in rows:
        record = {col: row.get(col) for col in projection}
        formatted = extra = False
        for col in time_columns:
            value = record[col]
            if not isinstance(value, TimeDescriptor):
                continue
            if formatted:
                record[col] = value.time
                extra = True
                continue
            raw = codec.format(col, value.time, (value.type,))
            record[col] = raw if raw is not None else value.time
            formatted = True
        out.append(record)
        multi_time += extra
    if multi_time:
        logger.warning(
            "%d row(s) have more than one time column (%s); only the first was reformatted",
            multi_time,
            ", ".join(time_columns),
        )
    return out


def render_result(
    rows: List[Row],
    columns: Sequence[str],
    *,
    format: str = "json",
    limit: Optional[int] = None,
) -> str:
    """Serialize a result set as a JSON array or as csv text.

    Raises:
        ValueError: On an unsupported format.
    """
    if limit:
        rows = rows[:limit]
    if format == "json":
        return json.dumps(rows, ensure_ascii=False, indent=2)
    elif format == "csv":
        data = {
            col: [None if r.get(col) is None else str(r.get(col)) for r in rows]
            for col in columns
        }
        df = pl.DataFrame(data, schema={col: pl.String for col in columns})
        return df.write_csv()
    else:
        raise ValueError(f"Unsupported format: {format}")


__all__ = ["project_rows", "render_result"]
