"""Data structures shared by the query core.

- Query: validated request shape (select/from/where/order_by/time_type)
- TimeDescriptor: parsed time value (type tag + canonical key)
- EntityDescriptor: how an entity column of a file maps onto its domain
- ResourceSchema: per-file schema facts discovered from the header
- ResourceFileResult: rows and schema of one read resource file
- JoinKey: composite identity of a joined datapoint row
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple

from ddf_query.core.enums import QueryFrom, TimeType

Row = Dict[str, Any]


@dataclass
class Query:
    """A read request against one table kind.

    Attributes:
        select_key: Key columns (entity/time grouping).
        select_value: Value columns (measures for datapoints, properties otherwise).
        from_: Table kind to read from.
        where: Mongo-style predicate tree; empty matches everything.
        order_by: Column names or {column: "asc"|"desc"} mappings.
        time_type: Required time granularity; rows of another granularity are dropped.

    Examples:
        >>> q = Query.from_dict({
        ...     "select": {"key": ["country", "year"], "value": ["population"]},
        ...     "from": "datapoints",
        ... })
        >>> q.projection
        ['country', 'year', 'population']
    """

    select_key: List[str]
    select_value: List[str] = field(default_factory=list)
    from_: QueryFrom = QueryFrom.DATAPOINTS
    where: Dict[str, Any] = field(default_factory=dict)
    order_by: List[Any] = field(default_factory=list)
    time_type: Optional[TimeType] = None

    @property
    def projection(self) -> List[str]:
        """select.key followed by select.value, without duplicates."""
        return list(dict.fromkeys([*self.select_key, *self.select_value]))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Query":
        """Build a Query from its JSON shape.

        Only structural checks are made here; referential checks (do the
        concepts exist) belong to request validation.

        Raises:
            ValueError: If `from`, `select.key`, `select.value`, `where`,
                `order_by` or `time_type` is malformed.
        """
        if not isinstance(data, Mapping):
            raise ValueError("Query must be a mapping")

        raw_from = data.get("from")
        if not raw_from:
            raise ValueError("Query is missing 'from'")
        try:
            from_ = QueryFrom(str(raw_from))
        except ValueError as e:
            valid = [m.value for m in QueryFrom]
            raise ValueError(f"Unsupported 'from': {raw_from!r}. Valid: {valid}") from e

        select = data.get("select") or {}
        if not isinstance(select, Mapping):
            raise ValueError("'select' must be a mapping with 'key' and 'value'")
        key = _string_list(select.get("key"), "select.key")
        if not key:
            raise ValueError("'select.key' must contain at least one column")
        value = _string_list(select.get("value") or [], "select.value")

        where = data.get("where") or {}
        if not isinstance(where, Mapping):
            raise ValueError("'where' must be a mapping")

        order_by = data.get("order_by") or []
        if isinstance(order_by, str):
            order_by = [order_by]
        if not isinstance(order_by, list):
            raise ValueError("'order_by' must be a list")

        raw_time_type = data.get("time_type")
        time_type = None
        if raw_time_type:
            try:
                time_type = TimeType(str(raw_time_type).lower())
            except ValueError as e:
                valid = [m.value for m in TimeType]
                raise ValueError(
                    f"Unsupported time_type: {raw_time_type!r}. Valid: {valid}"
                ) from e

        return cls(
            select_key=key,
            select_value=value,
            from_=from_,
            where=dict(where),
            order_by=list(order_by),
            time_type=time_type,
        )


def _string_list(value: Any, name: str) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"'{name}' must be a list of column names")
    return list(value)


@dataclass(frozen=True)
class TimeDescriptor:
    """Parsed time value.

    `time` is the UTC epoch milliseconds of the period start; it is totally
    ordered across granularities.
    """

    type: TimeType
    time: int


@dataclass(frozen=True)
class EntityDescriptor:
    """Mapping of one entity column of a resource file onto its domain.

    Exactly one of two shapes holds: a plain domain column (`entity` is None)
    or an entity-set column (`entity` is the set name, `domain` its owner).
    """

    domain: str
    entity: Optional[str] = None

    @property
    def is_entity_set(self) -> bool:
        return self.entity is not None

    @property
    def column(self) -> str:
        """Column of the source row holding this descriptor's identifier."""
        return self.entity if self.entity is not None else self.domain


@dataclass(frozen=True)
class ResourceSchema:
    """Schema facts of one resource file, discovered from its header.

    Attributes:
        entity_fields: Domain-related columns (entity domains and entity sets), in file order.
        time_field: First time column, if any.
        measure_field: First measure column, if any.
        measure_fields: Every measure column, in file order.
    """

    entity_fields: Tuple[str, ...] = ()
    time_field: Optional[str] = None
    measure_field: Optional[str] = None
    measure_fields: Tuple[str, ...] = ()


@dataclass
class ResourceFileResult:
    """Outcome of reading one resource file.

    Unreadable or empty files are represented with no rows and an empty schema.
    """

    path: Path
    rows: List[Row] = field(default_factory=list)
    schema: ResourceSchema = field(default_factory=ResourceSchema)

    @classmethod
    def empty(cls, path: Path) -> "ResourceFileResult":
        return cls(path=path)

    @property
    def entity_fields(self) -> Tuple[str, ...]:
        return self.schema.entity_fields

    @property
    def time_field(self) -> Optional[str]:
        return self.schema.time_field

    @property
    def measure_field(self) -> Optional[str]:
        return self.schema.measure_field


class JoinKey(NamedTuple):
    """Composite identity of a joined datapoint row.

    `entities` holds one identifier per entity descriptor, in descriptor order.
    `time` is the row's `TimeDescriptor` (or None), so rows of different
    granularities with the same canonical key stay apart. Being a tuple, no
    separator character can make two distinct rows collide.
    """

    entities: Tuple[Any, ...]
    time: Any


__all__ = [
    "Row",
    "Query",
    "TimeDescriptor",
    "EntityDescriptor",
    "ResourceSchema",
    "ResourceFileResult",
    "JoinKey",
]
