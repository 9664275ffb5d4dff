"""Core enumerations used across the package."""

from __future__ import annotations

from enum import Enum


class ConceptType(str, Enum):
    """Concept types declared in the `concept_type` column of a DDF concepts table.

    Values are strings to ease serialization and comparison with raw csv cells.
    """

    ENTITY_DOMAIN = "entity_domain"
    ENTITY_SET = "entity_set"
    TIME = "time"
    MEASURE = "measure"
    STRING = "string"
    BOOLEAN = "boolean"
    INTERVAL = "interval"
    ROLE = "role"
    CUSTOM_TYPE = "custom_type"

    @classmethod
    def parse(cls, raw: str | None) -> "ConceptType":
        """Map a raw `concept_type` cell to a member; unknown types read as STRING."""
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return cls.STRING


class TimeType(str, Enum):
    """Granularity of a parsed time value."""

    YEAR = "year"
    QUARTER = "quarter"
    MONTH = "month"
    WEEK = "week"
    DATE = "date"


class QueryFrom(str, Enum):
    """Table kinds a query can read from."""

    CONCEPTS = "concepts"
    ENTITIES = "entities"
    DATAPOINTS = "datapoints"


__all__ = ["ConceptType", "TimeType", "QueryFrom"]
