from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence

import polars as pl

from ddf_query.config import CSV_ENCODING, DEFAULT_MAX_CONCURRENT_READS
from ddf_query.core.concepts import ConceptCatalog
from .models import ResourceFileResult, ResourceSchema

logger = logging.getLogger(__name__)


def discover_schema(columns: Sequence[str], catalog: ConceptCatalog) -> ResourceSchema:
    """Classify the columns of a resource file.

    Entity fields and measure fields keep file order; the first time column
    and the first measure column are the file's time and measure fields.
    """
    entity_fields = tuple(c for c in columns if catalog.is_domain_related(c))
    time_field: Optional[str] = next((c for c in columns if catalog.is_time(c)), None)
    measure_fields = tuple(c for c in columns if catalog.is_measure(c))
    return ResourceSchema(
        entity_fields=entity_fields,
        time_field=time_field,
        measure_field=measure_fields[0] if measure_fields else None,
        measure_fields=measure_fields,
    )


def read_resource(
    path: Path, catalog: ConceptCatalog, *, encoding: str = CSV_ENCODING
) -> ResourceFileResult:
    """Read one resource file with every cell as a raw string (or None when blank).

    A missing, unreadable or empty file yields an empty result instead of an
    error, so one bad resource cannot abort a multi-file query.
    """
    try:
        df = pl.read_csv(path, infer_schema_length=0, encoding=encoding)
    except (OSError, pl.exceptions.PolarsError) as e:
        logger.warning("Skipping unreadable resource %s: %s", path, e)
        return ResourceFileResult.empty(path)
    if df.height == 0:
        logger.warning("Skipping empty resource %s", path)
        return ResourceFileResult.empty(path)
    return ResourceFileResult(
        path=path, rows=df.to_dicts(), schema=discover_schema(df.columns, catalog)
    )


async def read_resources(
    paths: Sequence[Path],
    catalog: ConceptCatalog,
    *,
    max_concurrent_reads: int = DEFAULT_MAX_CONCURRENT_READS,
    encoding: str = CSV_ENCODING,
) -> List[ResourceFileResult]:
    """Read resources concurrently; results follow the order of `paths`.

    Returns only once every file has been read or degraded to empty.
    """
    semaphore = asyncio.Semaphore(max_concurrent_reads)

    async def _read(path: Path) -> ResourceFileResult:
        async with semaphore:
            return await asyncio.to_thread(read_resource, path, catalog, encoding=encoding)

    results = await asyncio.gather(*(_read(p) for p in paths))
    logger.debug(
        "Read %d resource(s), %d row(s)", len(results), sum(len(r.rows) for r in results)
    )
    return list(results)


__all__ = ["discover_schema", "read_resource", "read_resources"]
