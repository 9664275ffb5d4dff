from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import polars as pl

from ddf_query.config import CONCEPTS_GLOB, CSV_ENCODING, DATAPACKAGE_FILENAME, RESOURCES_GLOB
from ddf_query.core.concepts import ConceptCatalog
from ddf_query.core.enums import QueryFrom
from .models import Query

logger = logging.getLogger(__name__)


@dataclass
class ResourceEntry:
    """One csv resource of a dataset manifest."""

    path: Path
    name: str
    kind: QueryFrom
    fields: List[str] = field(default_factory=list)
    primary_key: List[str] = field(default_factory=list)


def _infer_kind(name: str, primary_key: Sequence[str]) -> QueryFrom:
    lowered = name.lower()
    if "--datapoints--" in lowered:
        return QueryFrom.DATAPOINTS
    if "--entities--" in lowered:
        return QueryFrom.ENTITIES
    if "--concepts" in lowered or list(primary_key) == ["concept"]:
        return QueryFrom.CONCEPTS
    return QueryFrom.ENTITIES if len(primary_key) == 1 else QueryFrom.DATAPOINTS


def _primary_key_from_filename(stem: str) -> List[str]:
    """Key columns encoded in a DDF filename.

    ``ddf--datapoints--gdp--by--country--year`` -> [country, year];
    ``ddf--entities--geo--country`` -> [country];
    split files such as ``...--by--country-usa--year`` keep the concept part.
    """
    parts = stem.split("--")
    if len(parts) < 2 or parts[0] != "ddf":
        return []
    if parts[1] == "datapoints" and "by" in parts:
        keys = parts[parts.index("by") + 1 :]
        return [k.split("-", 1)[0] for k in keys if k]
    if parts[1] == "entities" and len(parts) > 2:
        return [parts[-1].split("-", 1)[0]]
    if parts[1] == "concepts":
        return ["concept"]
    return []


def _read_header(path: Path, encoding: str) -> List[str]:
    try:
        lf = pl.scan_csv(path, infer_schema_length=0, encoding=encoding)
        return lf.collect_schema().names()
    except (OSError, pl.exceptions.PolarsError) as e:
        logger.warning("Could not read header of %s: %s", path, e)
        return []


def _entries_from_datapackage(dataset_path: Path, package: Dict[str, Any]) -> List[ResourceEntry]:
    out: List[ResourceEntry] = []
    for res in package.get("resources", []) or []:
        rel = res.get("path")
        if not rel:
            continue
        schema = res.get("schema") or {}
        fields = [f.get("name") for f in schema.get("fields", []) or [] if f.get("name")]
        pk = schema.get("primaryKey") or []
        primary_key = [pk] if isinstance(pk, str) else list(pk)
        name = res.get("name") or Path(rel).stem
        out.append(
            ResourceEntry(
                path=dataset_path / rel,
                name=name,
                kind=_infer_kind(str(rel), primary_key),
                fields=fields,
                primary_key=primary_key,
            )
        )
    return out


def load_manifest(dataset_path: Path, *, encoding: str = CSV_ENCODING) -> List[ResourceEntry]:
    """List the csv resources of a dataset, in authoritative order.

    Uses `datapackage.json` when present; otherwise scans `ddf--*.csv` files
    sorted by name, deriving primary keys from filenames and fields from headers.

    Raises:
        FileNotFoundError: If the dataset directory does not exist.
        ValueError: If `datapackage.json` is not valid JSON.
    """
    dataset_path = Path(dataset_path)
    if not dataset_path.is_dir():
        raise FileNotFoundError(f"Dataset directory not found: {dataset_path}")

    package_path = dataset_path / DATAPACKAGE_FILENAME
    if package_path.exists():
        try:
            package = json.loads(package_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Failed to read {package_path}: {e}") from e
        entries = _entries_from_datapackage(dataset_path, package)
        logger.debug("Manifest from %s: %d resources", package_path, len(entries))
        return entries

    concept_files = {p.name for p in dataset_path.glob(CONCEPTS_GLOB)}
    entries = []
    for f in sorted(dataset_path.glob(RESOURCES_GLOB)):
        primary_key = _primary_key_from_filename(f.stem)
        if not primary_key and f.name not in concept_files:
            logger.debug("Skipping file with unrecognized name: %s", f.name)
            continue
        entries.append(
            ResourceEntry(
                path=f,
                name=f.stem,
                kind=_infer_kind(f.name, primary_key),
                fields=_read_header(f, encoding),
                primary_key=primary_key,
            )
        )
    logger.debug("Manifest from filenames in %s: %d resources", dataset_path, len(entries))
    return entries


def _to_domains(columns: Sequence[str], catalog: ConceptCatalog) -> set:
    return {catalog.domain_of(c) or c for c in columns}


def select_datapoint_resources(
    query: Query, manifest: Sequence[ResourceEntry], catalog: ConceptCatalog
) -> List[ResourceEntry]:
    """Datapoint resources relevant to a query, in manifest order.

    A resource is relevant when it carries at least one requested value column
    and its primary key equals `select.key`, either as is or once every entity
    set in the primary key is replaced by its domain.
    """
    wanted_key = set(query.select_key)
    wanted_values = set(query.select_value)
    out: List[ResourceEntry] = []
    for entry in manifest:
        if entry.kind != QueryFrom.DATAPOINTS:
            continue
        if not wanted_values.intersection(entry.fields):
            continue
        pk = set(entry.primary_key)
        if pk == wanted_key or _to_domains(entry.primary_key, catalog) == wanted_key:
            out.append(entry)
    return out


def select_entity_resources(
    query: Query, manifest: Sequence[ResourceEntry], catalog: ConceptCatalog
) -> List[ResourceEntry]:
    """Entity resources for `select.key[0]`, in manifest order.

    A domain key selects the domain file and the files of all its entity sets;
    an entity-set key selects its own files and the files of its domain (rows
    of the latter are later narrowed with the `is--<set>` flag).
    """
    key = query.select_key[0]
    domain: Optional[str] = catalog.domain_of(key)
    out: List[ResourceEntry] = []
    for entry in manifest:
        if entry.kind != QueryFrom.ENTITIES or len(entry.primary_key) != 1:
            continue
        file_key = entry.primary_key[0]
        if file_key == key:
            out.append(entry)
        elif domain is None and catalog.domain_of(file_key) == key:
            out.append(entry)
        elif domain is not None and file_key == domain:
            out.append(entry)
    return out


__all__ = [
    "ResourceEntry",
    "load_manifest",
    "select_datapoint_resources",
    "select_entity_resources",
]
