"""Datapoint join engine.

Rows from every relevant resource file are merged into one table keyed by
`JoinKey` (entity identifiers in descriptor order, then the time descriptor,
which holds both granularity and canonical key, so a year and the first
quarter of that year never share a row). The table is built in two
phases:

1. allocate: walk every row of every file in caller order; the first row
   seen for a key creates the joined row, seeding its time column, its entity
   columns and a None slot for every requested value column. Later rows with
   the same key leave the seed untouched.
2. fill: walk the same rows again in the same order and write each file's
   own measure columns into the joined row, so a later file overwrites only
   the measure slots it carries.

Filtering runs on the joined rows only: a `where` clause may mention
measures that come from different files.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ddf_query.core.concepts import ConceptCatalog
from .entities import resolve_entity_descriptors
from .materialize import project_rows
from .models import EntityDescriptor, JoinKey, Query, ResourceFileResult, Row
from .plan import filter_rows, normalize_where, order_rows
from .timecodec import TimeCodec

logger = logging.getLogger(__name__)


def join_key(
    row: Row, descriptors: Sequence[EntityDescriptor], time_field: Optional[str]
) -> JoinKey:
    entities = tuple(row.get(d.column) for d in descriptors)
    return JoinKey(entities=entities, time=row.get(time_field) if time_field else None)


def seed_row(
    row: Row, descriptors: Sequence[EntityDescriptor], time_field: Optional[str]
) -> Row:
    """Key columns of a joined row, taken from the first source row of its key.

    An entity-set column is exposed under both its own name and its domain.
    """
    seed: Row = {}
    if time_field:
        seed[time_field] = row.get(time_field)
    for d in descriptors:
        value = row.get(d.column)
        if d.is_entity_set:
            seed[d.entity] = value
        seed[d.domain] = value
    return seed


class JoinTable:
    """Joined datapoint rows, in order of first allocation."""

    def __init__(self, value_columns: Sequence[str]) -> None:
        self.value_columns = list(value_columns)
        self._rows: Dict[JoinKey, Row] = {}

    def allocate(self, key: JoinKey, seed: Row) -> bool:
        """Create the row for `key` from `seed`; returns False when it already exists."""
        if key in self._rows:
            return False
        row = dict(seed)
        for column in self.value_columns:
            row[column] = None
        self._rows[key] = row
        return True

    def fill(self, key: JoinKey, column: str, value: Any) -> None:
        """Set one value slot of an allocated row.

        Raises:
            KeyError: If `key` was never allocated.
        """
        if key not in self._rows:
            raise KeyError(f"Cannot fill unallocated join row {key!r}")
        self._rows[key][column] = value

    def __len__(self) -> int:
        return len(self._rows)

    def rows(self) -> List[Row]:
        return list(self._rows.values())


def build_join_table(
    results: Sequence[ResourceFileResult],
    value_columns: Sequence[str],
    catalog: ConceptCatalog,
) -> JoinTable:
    """Merge transformed file results, processed in the given order."""
    table = JoinTable(value_columns)
    requested = set(value_columns)
    pending: List[Tuple[JoinKey, List[str], Row]] = []

    for result in results:
        if not result.rows:
            continue
        descriptors = resolve_entity_descriptors(result.entity_fields, catalog)
        measures = [m for m in result.schema.measure_fields if m in requested]
        if result.measure_field and result.measure_field not in measures:
            measures.insert(0, result.measure_field)
        created = 0
        for row in result.rows:
            key = join_key(row, descriptors, result.time_field)
            if table.allocate(key, seed_row(row, descriptors, result.time_field)):
                created += 1
            pending.append((key, measures, row))
        logger.debug(
            "%s: %d row(s), %d new join key(s)", result.path.name, len(result.rows), created
        )

    for key, measures, row in pending:
        for measure in measures:
            table.fill(key, measure, row.get(measure))
    return table


def join_datapoints(
    results: Sequence[ResourceFileResult],
    query: Query,
    catalog: ConceptCatalog,
    codec: TimeCodec,
) -> List[Row]:
    """Join, filter, order and project datapoint rows for one query."""
    table = build_join_table(results, query.select_value, catalog)
    where = normalize_where(query.where, catalog.times, codec)
    matched = filter_rows(table.rows(), where)
    ordered = order_rows(matched, query.order_by)
    logger.debug("Joined %d row(s), %d matched the filter", len(table), len(matched))
    return project_rows(ordered, query.projection, catalog, codec)


__all__ = ["join_key", "seed_row", "JoinTable", "build_join_table", "join_datapoints"]
