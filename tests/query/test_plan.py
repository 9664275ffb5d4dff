"""Tests for the where-clause evaluator and ordering."""

from __future__ import annotations

import pytest

import polars as pl

from ddf_query.core.enums import TimeType
from ddf_query.core.query.plan import (
    compile_where,
    filter_rows,
    infer_time_type,
    matches,
    normalize_where,
    order_rows,
    time_literals,
)
from ddf_query.core.query.timecodec import TimeCodec, parse_time

RECORD = {"geo": "usa", "population": 280000000, "flag": True, "gdp": None}


class TestMatches:
    @pytest.mark.parametrize(
        "where, expected",
        [
            ({}, True),
            ({"geo": "usa"}, True),
            ({"geo": "swe"}, False),
            ({"geo": {"$eq": "usa"}}, True),
            ({"geo": {"$ne": "usa"}}, False),
            ({"population": {"$gt": 300000000}}, False),
            ({"population": {"$gte": 280000000}}, True),
            ({"population": {"$lt": 300000000, "$gt": 1}}, True),
            ({"population": {"$lte": 1}}, False),
            ({"geo": {"$in": ["usa", "swe"]}}, True),
            ({"geo": {"$nin": ["usa", "swe"]}}, False),
            ({"gdp": {"$exists": True}}, False),
            ({"gdp": {"$exists": False}}, True),
            ({"missing": {"$exists": False}}, True),
            ({"geo": {"$regex": "^us"}}, True),
            ({"population": {"$regex": "^2"}}, False),
            ({"population": {"$not": {"$gt": 300000000}}}, True),
            ({"flag": True}, True),
            ({"flag": 1}, False),
            ({"gdp": None}, True),
            ({"missing": None}, True),
        ],
    )
    def test_field_operators(self, where, expected):
        assert matches(RECORD, where) is expected

    def test_missing_field_and_incomparable_types_are_false(self):
        assert not matches(RECORD, {"missing": {"$gt": 1}})
        assert not matches(RECORD, {"gdp": {"$lt": 1}})
        assert not matches(RECORD, {"geo": {"$gt": 1}})

    def test_logical_operators(self):
        assert matches(RECORD, {"$or": [{"geo": "swe"}, {"geo": "usa"}]})
        assert not matches(RECORD, {"$and": [{"geo": "usa"}, {"population": 1}]})
        assert matches(RECORD, {"$nor": [{"geo": "swe"}, {"population": 1}]})
        assert matches(RECORD, {"$and": [{"$or": [{"geo": "usa"}]}, {"flag": True}]})

    def test_logical_operator_requires_list(self):
        with pytest.raises(ValueError, match="expects a list"):
            matches(RECORD, {"$or": {"geo": "usa"}})

    def test_unknown_operators_raise(self):
        with pytest.raises(ValueError, match="Unsupported where operator"):
            matches(RECORD, {"geo": {"$like": "us%"}})
        with pytest.raises(ValueError, match="Unsupported top-level"):
            matches(RECORD, {"$where": "1"})

    def test_filter_rows(self):
        rows = [{"geo": "usa"}, {"geo": "swe"}]
        assert filter_rows(rows, {"geo": "swe"}) == [{"geo": "swe"}]
        assert filter_rows(rows, None) == rows

    def test_filter_returns_original_rows(self):
        rows = [{"geo": "usa", "gdp": 10}, {"geo": "swe", "gdp": 2.5}]
        [kept] = filter_rows(rows, {"gdp": {"$gt": 3}})
        assert kept is rows[0]
        assert isinstance(kept["gdp"], int)

    def test_ne_and_nin_match_missing_values(self):
        rows = [{"gdp": 1}, {"gdp": None}, {}]
        assert filter_rows(rows, {"gdp": {"$ne": 1}}) == [{"gdp": None}, {}]
        assert filter_rows(rows, {"gdp": {"$nin": [1]}}) == [{"gdp": None}, {}]
        assert filter_rows(rows, {"gdp": {"$in": [None]}}) == [{"gdp": None}, {}]

    def test_numbers_compare_across_int_and_float(self):
        rows = [{"v": 1}, {"v": 2.5}, {"v": 4}]
        assert filter_rows(rows, {"v": {"$in": [1.0, 4]}}) == [{"v": 1}, {"v": 4}]
        assert filter_rows(rows, {"v": 2.5}) == [{"v": 2.5}]

    def test_integers_beyond_int64(self):
        rows = [{"v": 2**70}, {"v": 1}]
        assert filter_rows(rows, {"v": {"$gt": 2**64}}) == [{"v": 2**70}]
        assert filter_rows([{"v": 1}], {"v": {"$lt": 2**64}}) == [{"v": 1}]

    def test_time_descriptors_filter_by_key(self):
        codec = TimeCodec()
        rows = [{"year": codec.parse("1999")}, {"year": codec.parse("2001")}]
        where = normalize_where({"year": {"$gte": "2000"}}, ["year"], codec)
        assert filter_rows(rows, where) == [rows[1]]

    def test_empty_logical_lists(self):
        assert matches(RECORD, {"$and": []})
        assert not matches(RECORD, {"$or": []})
        assert matches(RECORD, {"$nor": []})

    def test_logical_operator_requires_mappings(self):
        with pytest.raises(ValueError, match="expects a list"):
            matches(RECORD, {"$and": [{"geo": "usa"}, "geo"]})

    def test_unknown_operator_raises_on_empty_rows(self):
        with pytest.raises(ValueError, match="Unsupported where operator"):
            filter_rows([], {"geo": {"$near": 1}})


class TestCompileWhere:
    def test_expression_filters_a_frame(self):
        df = pl.DataFrame({"geo": ["usa", "swe", None], "gdp": [10, None, 3]})
        expr = compile_where(
            {"$or": [{"geo": {"$regex": "^sw"}}, {"gdp": {"$lt": 5}}]},
            {"geo": "str", "gdp": "num"},
        )
        assert df.filter(expr).to_dicts() == [
            {"geo": "swe", "gdp": None},
            {"geo": None, "gdp": 3},
        ]

    def test_mismatched_kind_is_false(self):
        df = pl.DataFrame({"geo": ["usa"]})
        assert df.filter(compile_where({"geo": 1}, {"geo": "str"})).height == 0
        assert df.filter(compile_where({"geo": {"$ne": 1}}, {"geo": "str"})).height == 1


class TestTimeLiterals:
    def test_literals_rewritten_to_keys(self):
        codec = TimeCodec()
        where = {
            "year": {"$gte": "2000", "$in": ["2001", "junk"]},
            "geo": "2000",
            "$or": [{"year": "2002"}],
        }
        normalized = normalize_where(where, ["year"], codec)
        assert normalized["year"]["$gte"] == parse_time("2000").time
        assert normalized["year"]["$in"] == [parse_time("2001").time, "junk"]
        # Non-time columns are left alone
        assert normalized["geo"] == "2000"
        assert normalized["$or"] == [{"year": parse_time("2002").time}]

    def test_literals_do_not_record_spellings(self):
        codec = TimeCodec()
        normalize_where({"year": "2000"}, ["year"], codec)
        assert len(codec.values) == 0

    def test_seen_types(self):
        _, seen = time_literals({"time": {"$gte": "2000q1"}}, ["time"], TimeCodec())
        assert seen == {TimeType.QUARTER}

    def test_infer_single_type(self):
        codec = TimeCodec()
        assert infer_time_type({"year": {"$gte": "1999", "$lt": "2005"}}, ["year"], codec) == TimeType.YEAR
        assert infer_time_type({"year": {"$gte": "1999", "$lt": "2005q1"}}, ["year"], codec) is None
        assert infer_time_type({}, ["year"], codec) is None


class TestOrderRows:
    def test_multi_key_stable_sort(self):
        rows = [
            {"geo": "usa", "year": 2},
            {"geo": "swe", "year": 1},
            {"geo": "usa", "year": 1},
            {"geo": "swe", "year": 2},
        ]
        ordered = order_rows(rows, ["geo", {"year": "desc"}])
        assert ordered == [
            {"geo": "swe", "year": 2},
            {"geo": "swe", "year": 1},
            {"geo": "usa", "year": 2},
            {"geo": "usa", "year": 1},
        ]

    def test_mixed_types_and_none(self):
        rows = [{"v": "b"}, {"v": 3}, {"v": None}, {"v": 1.5}]
        assert [r["v"] for r in order_rows(rows, ["v"])] == [None, 1.5, 3, "b"]
        assert [r["v"] for r in order_rows(rows, [{"v": -1}])] == ["b", 3, 1.5, None]

    def test_no_order_keeps_input(self):
        rows = [{"v": 2}, {"v": 1}]
        assert order_rows(rows, []) == rows

    def test_invalid_direction(self):
        with pytest.raises(ValueError, match="Invalid order_by direction"):
            order_rows([{"v": 1}], [{"v": "up"}])

    def test_numbers_sort_numerically_in_mixed_column(self):
        rows = [{"v": 10}, {"v": "a"}, {"v": 9}]
        assert [r["v"] for r in order_rows(rows, ["v"])] == [9, 10, "a"]

    def test_time_descriptors_sort_by_key(self):
        codec = TimeCodec()
        rows = [{"t": codec.parse("2001")}, {"t": codec.parse("1999q4")}, {"t": codec.parse("2000")}]
        ordered = order_rows(rows, ["t"])
        assert [r["t"].time for r in ordered] == sorted(r["t"].time for r in rows)
        assert ordered[0] is rows[1]
