"""Query engine over one DDF dataset directory.

`DdfQueryEngine` loads the concept catalog and the resource manifest once and
owns the time caches for its whole lifetime; creating a new engine is the
only way to start from empty caches. Each query gets its own join table.

Datapoint pipeline:
    resource selection -> concurrent file reads (barrier) -> record transform
    -> join -> where filter -> order -> projection with time reformatting
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from ddf_query.config import ReaderConfig
from .concepts import ConceptCatalog
from .enums import QueryFrom
from .query.catalog import (
    ResourceEntry,
    load_manifest,
    select_datapoint_resources,
    select_entity_resources,
)
from .query.join import join_datapoints
from .query.materialize import project_rows
from .query.models import Query, Row
from .query.plan import filter_rows, infer_time_type, order_rows
from .query.scan import read_resources
from .query.timecodec import TimeCodec
from .query.transform import build_record_transformer

logger = logging.getLogger(__name__)

QueryLike = Union[Query, Mapping[str, Any]]

_TRUE_FLAGS = {"true", "1", "yes"}


def _as_query(query: QueryLike) -> Query:
    return query if isinstance(query, Query) else Query.from_dict(query)


class DdfQueryEngine:
    """Read-only query engine for one dataset.

    Args:
        dataset_path: Dataset directory; falls back to `config.dataset_path`.
        config: Reader settings (concurrency, encoding).
        catalog: Pre-loaded concept catalog (loaded from the dataset when omitted).
        codec: Time codec to share between engines (a fresh one when omitted).

    Raises:
        ValueError: If no dataset path is given.
        FileNotFoundError: If the dataset or its concepts file is missing.

    Examples:
        >>> engine = DdfQueryEngine("data/ddf--gapminder--systema_globalis")
        >>> engine.read({
        ...     "select": {"key": ["geo", "time"], "value": ["population_total"]},
        ...     "from": "datapoints",
        ...     "where": {"time": {"$gte": "2000"}},
        ... })
    """

    def __init__(
        self,
        dataset_path: Optional[Union[str, Path]] = None,
        *,
        config: Optional[ReaderConfig] = None,
        catalog: Optional[ConceptCatalog] = None,
        codec: Optional[TimeCodec] = None,
    ) -> None:
        self.config = config or ReaderConfig()
        path = dataset_path if dataset_path is not None else self.config.dataset_path
        if path is None:
            raise ValueError("A dataset path is required")
        self.dataset_path = Path(path)
        if not self.dataset_path.is_dir():
            raise FileNotFoundError(f"Dataset directory not found: {self.dataset_path}")
        self.catalog = catalog or ConceptCatalog.load(
            self.dataset_path, encoding=self.config.encoding
        )
        self.manifest: List[ResourceEntry] = load_manifest(
            self.dataset_path, encoding=self.config.encoding
        )
        self.codec = codec or TimeCodec()

    def read(self, query: QueryLike) -> List[Row]:
        """Run a query synchronously. Must not be called from a running event loop."""
        return asyncio.run(self.aread(query))

    async def aread(self, query: QueryLike) -> List[Row]:
        """Run a query against the table kind named by its `from`."""
        q = _as_query(query)
        if q.from_ == QueryFrom.DATAPOINTS:
            return await self.resolve_datapoints(q)
        if q.from_ == QueryFrom.ENTITIES:
            return await self.read_entities(q)
        return self.read_concepts(q)

    async def _read(self, entries: List[ResourceEntry]):
        return await read_resources(
            [e.path for e in entries],
            self.catalog,
            max_concurrent_reads=self.config.max_concurrent_reads,
            encoding=self.config.encoding,
        )

    async def resolve_datapoints(self, query: QueryLike) -> List[Row]:
        """Join every relevant datapoint file into flat records of `select.key ∪ select.value`.

        Always returns a list (possibly empty); per-file and per-row failures
        are absorbed along the way.
        """
        q = _as_query(query)
        entries = select_datapoint_resources(q, self.manifest, self.catalog)
        if not entries:
            logger.info("No datapoint resources match key %s", q.select_key)
            return []

        time_type = q.time_type or infer_time_type(q.where, self.catalog.times, self.codec)
        results = await self._read(entries)

        transformer = build_record_transformer(q, self.catalog, self.codec, time_type)
        transformed = [transformer.apply(r) for r in results]
        if transformer.dropped:
            logger.debug("Dropped %d row(s) by time value or type", transformer.dropped)

        rows = join_datapoints(transformed, q, self.catalog, self.codec)
        logger.info(
            "Datapoints %s by %s: %d file(s), %d record(s)",
            ",".join(q.select_value),
            ",".join(q.select_key),
            len(entries),
            len(rows),
        )
        return rows

    async def read_entities(self, query: QueryLike) -> List[Row]:
        """Entities of `select.key[0]`, merged across domain and entity-set files."""
        q = _as_query(query)
        key = q.select_key[0]
        entries = select_entity_resources(q, self.manifest, self.catalog)
        results = await self._read(entries)
        set_flag = f"is--{key}" if self.catalog.is_entity_set(key) else None

        merged: Dict[Any, Row] = {}
        for entry, result in zip(entries, results):
            file_key = entry.primary_key[0]
            for row in result.rows:
                if set_flag and file_key != key:
                    if str(row.get(set_flag) or "").strip().lower() not in _TRUE_FLAGS:
                        continue
                ident = row.get(file_key)
                if ident is None:
                    continue
                record = merged.get(ident)
                if record is None:
                    record = merged[ident] = {key: ident}
                for col, value in row.items():
                    if value is not None or col not in record:
                        record[col] = value
                record[key] = ident

        rows = order_rows(filter_rows(merged.values(), q.where), q.order_by)
        return project_rows(rows, q.projection, self.catalog, self.codec)

    def read_concepts(self, query: QueryLike) -> List[Row]:
        q = _as_query(query)
        rows = order_rows(filter_rows(self.catalog.records, q.where), q.order_by)
        return project_rows(rows, q.projection, self.catalog, self.codec)


__all__ = ["DdfQueryEngine"]
