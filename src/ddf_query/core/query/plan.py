"""Filter and ordering plan over flat result rows.

`where` trees are compiled to a single polars expression and `order_by` to a
frame sort. The frame is built only to decide which rows survive and in what
order; the rows handed back are the caller's own dicts, so values such as
Python ints and time descriptors pass through unchanged.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import polars as pl

from ddf_query.core.enums import TimeType
from .models import Row, TimeDescriptor
from .timecodec import TimeCodec

_ROW_INDEX = "__row__"
_LOGICAL = {"$and", "$or", "$nor"}
_ORDERINGS = {"$gt", "$gte", "$lt", "$lte"}
_TIME_LITERAL_OPS = {"$eq", "$ne", "$gt", "$gte", "$lt", "$lte"}
_INT64_LIMIT = 2**63

# Column and literal kinds; only equal kinds are compared.
_NULL, _BOOL, _NUM, _STR, _MIXED, _OTHER = "null", "bool", "num", "str", "mixed", "other"


def _kind(value: Any) -> str:
    if value is None:
        return _NULL
    if isinstance(value, bool):
        return _BOOL
    if isinstance(value, (int, float)):
        return _NUM
    if isinstance(value, str):
        return _STR
    return _OTHER


def _cell(value: Any) -> Any:
    return value.time if isinstance(value, TimeDescriptor) else value


def _series(name: str, values: List[Any]) -> Tuple[pl.Series, str]:
    kinds = {_kind(v) for v in values} - {_NULL}
    if not kinds:
        return pl.Series(name, values, dtype=pl.String), _NULL
    if kinds == {_BOOL}:
        return pl.Series(name, values, dtype=pl.Boolean), _BOOL
    if kinds == {_NUM}:
        ints = [v for v in values if v is not None]
        if all(isinstance(v, int) and -_INT64_LIMIT <= v < _INT64_LIMIT for v in ints):
            return pl.Series(name, values, dtype=pl.Int64), _NUM
        floats = [None if v is None else float(v) for v in values]
        return pl.Series(name, floats, dtype=pl.Float64), _NUM
    if kinds == {_STR}:
        return pl.Series(name, values, dtype=pl.String), _STR
    as_text = [None if v is None else str(v) for v in values]
    return pl.Series(name, as_text, dtype=pl.String), _MIXED


def _sort_series(name: str, values: List[Any]) -> List[pl.Series]:
    s, kind = _series(name, values)
    if kind != _MIXED:
        return [s]
    # numbers first, then text; each part ordered within itself
    rank = [None if v is None else 0 if _kind(v) == _NUM else 1 for v in values]
    nums = [float(v) if _kind(v) == _NUM else None for v in values]
    return [
        pl.Series(f"{name}.rank", rank, dtype=pl.Int64),
        pl.Series(f"{name}.num", nums, dtype=pl.Float64),
        s.alias(f"{name}.text"),
    ]


def _frame(rows: List[Row], columns: Iterable[str]) -> Tuple[pl.DataFrame, Dict[str, str]]:
    series = [pl.Series(_ROW_INDEX, list(range(len(rows))), dtype=pl.Int64)]
    kinds: Dict[str, str] = {}
    for col in dict.fromkeys(columns):
        s, kinds[col] = _series(col, [_cell(r.get(col)) for r in rows])
        series.append(s)
    return pl.DataFrame(series), kinds


def _is_operator_map(cond: Any) -> bool:
    return isinstance(cond, Mapping) and bool(cond) and all(
        isinstance(k, str) and k.startswith("$") for k in cond
    )


def _as_list(arg: Any) -> List[Any]:
    return list(arg) if isinstance(arg, (list, tuple, set)) else [arg]


def _comparable(col_kind: str, value: Any) -> bool:
    return col_kind not in (_NULL, _MIXED) and _kind(value) == col_kind


def _literal(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool) and not (
        -_INT64_LIMIT <= value < _INT64_LIMIT
    ):
        return float(value)
    return value


def _equals(c: pl.Expr, col_kind: str, value: Any) -> pl.Expr:
    if value is None:
        return c.is_null()
    if not _comparable(col_kind, value):
        return pl.lit(False)
    return (c == _literal(value)).fill_null(False)


def _is_in(c: pl.Expr, col_kind: str, values: List[Any]) -> pl.Expr:
    expr = c.is_null() if any(v is None for v in values) else pl.lit(False)
    candidates = [v for v in values if v is not None and _comparable(col_kind, v)]
    if not candidates:
        return expr
    if col_kind == _NUM:
        member = c.cast(pl.Float64).is_in([float(v) for v in candidates])
    else:
        member = c.is_in(candidates)
    return expr | member.fill_null(False)


def _ordered(c: pl.Expr, col_kind: str, op: str, value: Any) -> pl.Expr:
    if value is None or not _comparable(col_kind, value):
        return pl.lit(False)
    value = _literal(value)
    if op == "$gt":
        expr = c > value
    elif op == "$gte":
        expr = c >= value
    elif op == "$lt":
        expr = c < value
    else:
        expr = c <= value
    return expr.fill_null(False)


def _op_expr(col: str, col_kind: str, op: str, arg: Any) -> pl.Expr:
    c = pl.col(col)
    if op == "$eq":
        return _equals(c, col_kind, arg)
    elif op == "$ne":
        return ~_equals(c, col_kind, arg)
    elif op in _ORDERINGS:
        return _ordered(c, col_kind, op, arg)
    elif op == "$in":
        return _is_in(c, col_kind, _as_list(arg))
    elif op == "$nin":
        return ~_is_in(c, col_kind, _as_list(arg))
    elif op == "$exists":
        return c.is_not_null() if arg else c.is_null()
    elif op == "$regex":
        if col_kind != _STR:
            return pl.lit(False)
        return c.str.contains(str(arg), literal=False).fill_null(False)
    elif op == "$not":
        return ~_field_expr(col, col_kind, arg)
    raise ValueError(f"Unsupported where operator: {op}")


def _field_expr(col: str, col_kind: str, cond: Any) -> pl.Expr:
    if _is_operator_map(cond):
        return pl.all_horizontal([_op_expr(col, col_kind, op, arg) for op, arg in cond.items()])
    return _equals(pl.col(col), col_kind, cond)


def _where_expr(where: Mapping[str, Any], kinds: Mapping[str, str]) -> pl.Expr:
    exprs: List[pl.Expr] = []
    for key, cond in where.items():
        if key in _LOGICAL:
            if not isinstance(cond, list) or not all(isinstance(s, Mapping) for s in cond):
                raise ValueError(f"'{key}' expects a list of conditions")
            subs = [_where_expr(sub, kinds) for sub in cond]
            if key == "$and":
                exprs.append(pl.all_horizontal(subs) if subs else pl.lit(True))
            elif key == "$or":
                exprs.append(pl.any_horizontal(subs) if subs else pl.lit(False))
            else:
                exprs.append(~pl.any_horizontal(subs) if subs else pl.lit(True))
        elif key.startswith("$"):
            raise ValueError(f"Unsupported top-level where operator: {key}")
        else:
            exprs.append(_field_expr(key, kinds[key], cond))
    return pl.all_horizontal(exprs) if exprs else pl.lit(True)


def _where_columns(where: Mapping[str, Any]) -> List[str]:
    out: List[str] = []
    for key, cond in where.items():
        if key in _LOGICAL and isinstance(cond, list):
            for sub in cond:
                if isinstance(sub, Mapping):
                    out.extend(_where_columns(sub))
        elif not key.startswith("$"):
            out.append(key)
    return out


def compile_where(where: Mapping[str, Any], kinds: Mapping[str, str]) -> pl.Expr:
    """Compile a Mongo-style predicate tree to one boolean polars expression.

    Supports implicit equality, `$eq $ne $gt $gte $lt $lte $in $nin $exists
    $regex $not` on fields and `$and $or $nor` over sub-trees. `kinds` gives
    the value kind of every referenced column; a comparison between different
    kinds, or against a missing value, is false rather than an error.

    Raises:
        ValueError: On an unknown operator or a malformed logical clause.
    """
    return _where_expr(where, kinds)


def filter_rows(rows: Iterable[Row], where: Optional[Mapping[str, Any]]) -> List[Row]:
    """Rows matching `where`, in input order; an empty clause keeps everything.

    Examples:
        >>> filter_rows([{"population": 280000000}], {"population": {"$gt": 300000000}})
        []
    """
    rows = list(rows)
    if not where:
        return rows
    df, kinds = _frame(rows, _where_columns(where))
    expr = compile_where(where, kinds)
    if not rows:
        return []
    kept = df.filter(expr).get_column(_ROW_INDEX).to_list()
    return [rows[i] for i in kept]


def matches(record: Mapping[str, Any], where: Mapping[str, Any]) -> bool:
    """Evaluate `where` against a single record.

    Examples:
        >>> matches({"country": "usa"}, {"$or": [{"country": "usa"}, {"country": "swe"}]})
        True
    """
    return bool(filter_rows([dict(record)], where))


def _normalize_time_literal(value: Any, codec: TimeCodec, seen: Set[TimeType]) -> Any:
    if value is None or isinstance(value, bool):
        return value
    descriptor = codec.parse(str(value))
    if descriptor is None:
        return value
    seen.add(descriptor.type)
    return descriptor.time


def _normalize_condition(cond: Any, codec: TimeCodec, seen: Set[TimeType]) -> Any:
    if not _is_operator_map(cond):
        return _normalize_time_literal(cond, codec, seen)
    out = {}
    for op, arg in cond.items():
        if op in _TIME_LITERAL_OPS:
            out[op] = _normalize_time_literal(arg, codec, seen)
        elif op in ("$in", "$nin"):
            out[op] = [_normalize_time_literal(a, codec, seen) for a in _as_list(arg)]
        elif op == "$not":
            out[op] = _normalize_condition(arg, codec, seen)
        else:
            out[op] = arg
    return out


def _normalize(
    where: Mapping[str, Any], time_columns: Set[str], codec: TimeCodec, seen: Set[TimeType]
) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, cond in where.items():
        if key in _LOGICAL and isinstance(cond, list):
            out[key] = [_normalize(sub, time_columns, codec, seen) for sub in cond]
        elif key in time_columns:
            out[key] = _normalize_condition(cond, codec, seen)
        else:
            out[key] = cond
    return out


def time_literals(
    where: Mapping[str, Any], time_columns: Sequence[str], codec: TimeCodec
) -> Tuple[Dict[str, Any], Set[TimeType]]:
    """Rewrite time literals of `where` to canonical keys.

    Returns the rewritten clause and the set of granularities the literals
    parsed to. Literals that do not parse are left as they are.
    """
    seen: Set[TimeType] = set()
    return _normalize(where or {}, set(time_columns), codec, seen), seen


def normalize_where(
    where: Mapping[str, Any], time_columns: Sequence[str], codec: TimeCodec
) -> Dict[str, Any]:
    """`where` with time literals replaced by canonical keys, so it can run on joined rows."""
    return time_literals(where, time_columns, codec)[0]


def infer_time_type(
    where: Mapping[str, Any], time_columns: Sequence[str], codec: TimeCodec
) -> Optional[TimeType]:
    """The single granularity of every time literal in `where`, if there is exactly one."""
    _, seen = time_literals(where, time_columns, codec)
    return next(iter(seen)) if len(seen) == 1 else None


def _parse_order_by(order_by: Sequence[Any]) -> List[Tuple[str, bool]]:
    keys: List[Tuple[str, bool]] = []
    for item in order_by or []:
        if isinstance(item, str):
            keys.append((item, False))
        elif isinstance(item, Mapping):
            for col, direction in item.items():
                d = str(direction).lower()
                if d in ("asc", "1"):
                    keys.append((col, False))
                elif d in ("desc", "-1"):
                    keys.append((col, True))
                else:
                    raise ValueError(f"Invalid order_by direction for {col}: {direction!r}")
        else:
            raise ValueError(f"Invalid order_by item: {item!r}")
    return keys


def order_rows(rows: Iterable[Row], order_by: Sequence[Any]) -> List[Row]:
    """Stable multi-key sort; None sorts first ascending and last descending.

    Time descriptors sort by their canonical key. In a column mixing numbers
    and text, numbers sort before strings.
    """
    keys = _parse_order_by(order_by)
    rows = list(rows)
    if not keys or len(rows) < 2:
        return rows
    series = [pl.Series(_ROW_INDEX, list(range(len(rows))), dtype=pl.Int64)]
    by_cols: List[str] = []
    descending: List[bool] = []
    for i, (col, desc) in enumerate(keys):
        for s in _sort_series(f"{i}:{col}", [_cell(r.get(col)) for r in rows]):
            series.append(s)
            by_cols.append(s.name)
            descending.append(desc)
    ordered = pl.DataFrame(series).sort(
        by_cols, descending=descending, nulls_last=descending, maintain_order=True
    )
    return [rows[i] for i in ordered.get_column(_ROW_INDEX).to_list()]


__all__ = [
    "compile_where",
    "matches",
    "filter_rows",
    "time_literals",
    "normalize_where",
    "infer_time_type",
    "order_rows",
]
