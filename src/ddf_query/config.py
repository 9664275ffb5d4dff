"""Reader configuration constants.

This module centralizes the tunables of the query engine. Adjust these
constants to change defaults; per-deployment values can be supplied through a
YAML file loaded with `load_reader_config()`.

YAML keys:
    - dataset_path: Directory holding the DDF csv files
    - max_concurrent_reads: Upper bound of resource files read at once
    - encoding: Encoding passed to the csv reader
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

# ============================================================================
# DATASET LAYOUT
# ============================================================================

DATAPACKAGE_FILENAME = "datapackage.json"
CONCEPTS_GLOB = "ddf--concepts*.csv"
RESOURCES_GLOB = "ddf--*.csv"

# ============================================================================
# READER TUNABLES
# ============================================================================

DEFAULT_MAX_CONCURRENT_READS = 8
CSV_ENCODING = "utf8"

_ENCODINGS = {"utf8", "utf8-lossy"}


@dataclass(frozen=True)
class ReaderConfig:
    """Settings for one `DdfQueryEngine` instance.

    Attributes:
        dataset_path: Directory of the dataset (None when given elsewhere, e.g. on the CLI).
        max_concurrent_reads: Semaphore size of the file-read fan-out.
        encoding: Encoding understood by `polars.read_csv`.
    """

    dataset_path: Optional[Path] = None
    max_concurrent_reads: int = DEFAULT_MAX_CONCURRENT_READS
    encoding: str = CSV_ENCODING

    def __post_init__(self) -> None:
        if self.max_concurrent_reads < 1:
            raise ValueError(
                f"max_concurrent_reads must be >= 1, got {self.max_concurrent_reads}"
            )
        if self.encoding not in _ENCODINGS:
            raise ValueError(
                f"Unsupported encoding: {self.encoding}. Valid: {sorted(_ENCODINGS)}"
            )


def load_reader_config(path: Union[str, Path]) -> ReaderConfig:
    """Load a `ReaderConfig` from a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        ReaderConfig with defaults for every key the file omits.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML is malformed or a value has the wrong type.

    Examples:
        >>> cfg = load_reader_config("config/reader.yaml")
        >>> cfg.max_concurrent_reads
        8
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Reader config not found: {cfg_path}")
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            data: Dict[str, Any] = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse reader config {cfg_path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Reader config {cfg_path} must be a mapping")

    dataset_path = data.get("dataset_path")
    max_reads = data.get("max_concurrent_reads", DEFAULT_MAX_CONCURRENT_READS)
    if isinstance(max_reads, bool) or not isinstance(max_reads, int):
        raise ValueError(f"max_concurrent_reads must be an integer, got {max_reads!r}")

    return ReaderConfig(
        dataset_path=Path(dataset_path) if dataset_path else None,
        max_concurrent_reads=max_reads,
        encoding=str(data.get("encoding", CSV_ENCODING)),
    )


__all__ = [
    "DATAPACKAGE_FILENAME",
    "CONCEPTS_GLOB",
    "RESOURCES_GLOB",
    "DEFAULT_MAX_CONCURRENT_READS",
    "CSV_ENCODING",
    "ReaderConfig",
    "load_reader_config",
]
