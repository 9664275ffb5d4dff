import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import colorlog
import yaml

from ddf_query.config import ReaderConfig, load_reader_config
from ddf_query.core.engine import DdfQueryEngine
from ddf_query.core.query.materialize import render_result
from ddf_query.core.query.models import Query

try:
    from ddf_query import __version__ as _PACKAGE_VERSION
except ImportError:  # pragma: no cover
    _PACKAGE_VERSION = "unknown"  # type: ignore[assignment]


def setup_logging(
    verbose: bool = False, warnings_only: bool = False, errors_only: bool = False
) -> None:
    logger = logging.getLogger()
    for h in list(logger.handlers):
        logger.removeHandler(h)
    log_format = (
        "%(asctime)s:%(levelname)s:%(name)s in %(filename)s:%(funcName)s:%(lineno)d: %(message)s"
    )
    log_colors = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold_red",
    }
    stream_handler = colorlog.StreamHandler()
    formatter = colorlog.ColoredFormatter(f"%(log_color)s{log_format}", log_colors=log_colors)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    if errors_only:
        logger.setLevel(logging.ERROR)
    elif warnings_only:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _load_query(args: argparse.Namespace) -> Dict[str, Any]:
    """Query mapping from --query (inline JSON) or --query-file (JSON or YAML)."""
    if getattr(args, "query", None):
        return json.loads(args.query)
    path = Path(args.query_file)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        return yaml.safe_load(text) or {}
    return json.loads(text)


def _build_engine(args: argparse.Namespace) -> DdfQueryEngine:
    config = ReaderConfig()
    if getattr(args, "config", None):
        config = load_reader_config(args.config)
    dataset = getattr(args, "dataset", None) or config.dataset_path
    return DdfQueryEngine(dataset, config=config)


def cmd_query(args: argparse.Namespace) -> int:
    """Run one query and write its records as JSON (or csv) to stdout or --output."""
    if not getattr(args, "query", None) and not getattr(args, "query_file", None):
        logging.error("One of --query or --query-file is required")
        return 2
    try:
        query = Query.from_dict(_load_query(args))
    except (OSError, json.JSONDecodeError, yaml.YAMLError, ValueError) as e:
        logging.error("Invalid query: %s", e)
        return 2

    try:
        engine = _build_engine(args)
    except (FileNotFoundError, ValueError) as e:
        logging.error("Cannot open dataset: %s", e)
        return 2

    try:
        rows = engine.read(query)
    except ValueError as e:
        logging.error("Query failed: %s", e)
        return 2

    text = render_result(rows, query.projection, format=args.format, limit=args.limit)
    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        logging.info("Saved %d record(s) to %s", len(rows), out_path)
    else:
        print(text)
    if not rows:
        logging.warning("Query returned no records.")
        return 1
    return 0


def cmd_concepts(args: argparse.Namespace) -> int:
    """List the concepts of a dataset with their types."""
    try:
        engine = _build_engine(args)
    except (FileNotFoundError, ValueError) as e:
        logging.error("Cannot open dataset: %s", e)
        return 2
    for name, concept_type in engine.catalog.concept_types.items():
        domain = engine.catalog.domain_of(name)
        suffix = f" (domain: {domain})" if domain else ""
        print(f"{name}\t{concept_type.value}{suffix}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ddf-query",
        description=f"DDF query tools (v{_PACKAGE_VERSION})",
    )
    p.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    p.add_argument(
        "--warnings-only",
        action="store_true",
        help="Show only warnings and errors (overrides --verbose)",
    )
    p.add_argument(
        "--errors-only",
        action="store_true",
        help="Show only errors (overrides --warnings-only and --verbose)",
    )

    sub = p.add_subparsers(dest="command", required=True)

    p_query = sub.add_parser("query", help="Run a query against a DDF dataset")
    p_query.add_argument(
        "--dataset",
        default=None,
        help="Dataset directory (defaults to dataset_path from --config)",
    )
    p_query.add_argument("--query", default=None, help="Query as an inline JSON string")
    p_query.add_argument(
        "--query-file", default=None, help="Path to a query file (.json, .yaml or .yml)"
    )
    p_query.add_argument("--config", default=None, help="Path to a reader config YAML")
    p_query.add_argument(
        "--format", choices=["json", "csv"], default="json", help="Output format (default json)"
    )
    p_query.add_argument("--limit", type=int, default=None, help="Write at most N records")
    p_query.add_argument("--output", default=None, help="Write the result to this file")
    p_query.set_defaults(func=cmd_query)

    p_concepts = sub.add_parser("concepts", help="List the concepts of a DDF dataset")
    p_concepts.add_argument("--dataset", default=None, help="Dataset directory")
    p_concepts.add_argument("--config", default=None, help="Path to a reader config YAML")
    p_concepts.set_defaults(func=cmd_concepts)

    return p


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(
        verbose=bool(args.verbose),
        warnings_only=bool(getattr(args, "warnings_only", False)),
        errors_only=bool(getattr(args, "errors_only", False)),
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
