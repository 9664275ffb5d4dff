"""Query core public API.

Exposes the building blocks of datapoint resolution: schema discovery and
concurrent reads of resource files, time parsing, row coercion, the join
table, the where-clause evaluator and result projection.
"""

from .catalog import ResourceEntry, load_manifest, select_datapoint_resources, select_entity_resources
from .entities import resolve_entity_descriptors
from .join import JoinTable, build_join_table, join_datapoints
from .materialize import project_rows, render_result
from .models import (
    EntityDescriptor,
    JoinKey,
    Query,
    ResourceFileResult,
    ResourceSchema,
    TimeDescriptor,
)
from .plan import filter_rows, infer_time_type, matches, normalize_where, order_rows
from .scan import discover_schema, read_resource, read_resources
from .timecodec import TimeCodec, TimeValueCache, parse_time
from .transform import RecordTransformer, build_record_transformer, to_number

__all__ = [
    "ResourceEntry",
    "load_manifest",
    "select_datapoint_resources",
    "select_entity_resources",
    "resolve_entity_descriptors",
    "JoinTable",
    "build_join_table",
    "join_datapoints",
    "project_rows",
    "render_result",
    "EntityDescriptor",
    "JoinKey",
    "Query",
    "ResourceFileResult",
    "ResourceSchema",
    "TimeDescriptor",
    "filter_rows",
    "infer_time_type",
    "matches",
    "normalize_where",
    "order_rows",
    "discover_schema",
    "read_resource",
    "read_resources",
    "TimeCodec",
    "TimeValueCache",
    "parse_time",
    "RecordTransformer",
    "build_record_transformer",
    "to_number",
]
