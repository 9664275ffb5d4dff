"""Concept metadata of a DDF dataset.

`ConceptCatalog` answers the classification questions the query core asks
about a column name: is it a measure, a time, an entity domain or an entity
set, and which domain owns a given entity set. It is loaded once per engine
and is read-only afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import polars as pl

from ddf_query.config import CONCEPTS_GLOB, CSV_ENCODING
from .enums import ConceptType

logger = logging.getLogger(__name__)

Record = Dict[str, Optional[str]]


@dataclass
class ConceptCatalog:
    """Classification of every concept declared by a dataset.

    Attributes:
        records: Raw concept rows in file order (served to `from: concepts` queries).
        concept_types: concept name -> ConceptType.
        domains: entity set name -> owning entity domain name.
    """

    records: List[Record] = field(default_factory=list)
    concept_types: Dict[str, ConceptType] = field(default_factory=dict)
    domains: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_records(cls, records: Iterable[Record]) -> "ConceptCatalog":
        """Build a catalog from concept rows; the first row for a concept wins."""
        catalog = cls()
        for record in records:
            name = (record.get("concept") or "").strip()
            if not name or name in catalog.concept_types:
                continue
            concept_type = ConceptType.parse(record.get("concept_type"))
            catalog.records.append(dict(record))
            catalog.concept_types[name] = concept_type
            domain = (record.get("domain") or "").strip()
            if concept_type == ConceptType.ENTITY_SET and domain:
                catalog.domains[name] = domain
        return catalog

    @classmethod
    def load(cls, dataset_path: Path, *, encoding: str = CSV_ENCODING) -> "ConceptCatalog":
        """Read every `ddf--concepts*.csv` file of a dataset.

        Raises:
            FileNotFoundError: If the dataset has no concepts file.
            ValueError: If a concepts file cannot be parsed.
        """
        files = sorted(Path(dataset_path).glob(CONCEPTS_GLOB))
        if not files:
            raise FileNotFoundError(
                f"No concepts file found in {dataset_path} (expected {CONCEPTS_GLOB})"
            )
        records: List[Record] = []
        for path in files:
            try:
                df = pl.read_csv(path, infer_schema_length=0, encoding=encoding)
            except (OSError, pl.exceptions.PolarsError) as e:
                raise ValueError(f"Failed to read concepts file {path}: {e}") from e
            records.extend(df.to_dicts())
        catalog = cls.from_records(records)
        logger.info("Loaded %d concepts from %d file(s)", len(catalog.concept_types), len(files))
        return catalog

    def classify(self, name: str) -> Optional[ConceptType]:
        """Return the type of a concept, or None for names the dataset does not declare."""
        return self.concept_types.get(name)

    def domain_of(self, entity_set: str) -> Optional[str]:
        return self.domains.get(entity_set)

    def is_measure(self, name: str) -> bool:
        return self.classify(name) == ConceptType.MEASURE

    def is_time(self, name: str) -> bool:
        return self.classify(name) == ConceptType.TIME

    def is_entity_set(self, name: str) -> bool:
        return self.classify(name) == ConceptType.ENTITY_SET

    def is_domain_related(self, name: str) -> bool:
        return self.classify(name) in (ConceptType.ENTITY_DOMAIN, ConceptType.ENTITY_SET)

    @property
    def measures(self) -> List[str]:
        return self._names_of(ConceptType.MEASURE)

    @property
    def times(self) -> List[str]:
        return self._names_of(ConceptType.TIME)

    def _names_of(self, concept_type: ConceptType) -> List[str]:
        return [name for name, ct in self.concept_types.items() if ct == concept_type]


__all__ = ["ConceptCatalog"]
