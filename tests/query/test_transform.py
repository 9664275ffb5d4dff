"""Tests for per-query record coercion."""

from __future__ import annotations

from pathlib import Path

import pytest

from ddf_query.core.enums import TimeType
from ddf_query.core.query.models import Query, ResourceFileResult
from ddf_query.core.query.timecodec import TimeCodec, parse_time
from ddf_query.core.query.transform import build_record_transformer, to_number


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("280000000", 280000000),
        ("-3", -3),
        ("76.8", 76.8),
        ("1e3", 1000.0),
        (" 12 ", 12),
        (5, 5),
        ("n/a", None),
        ("", None),
        ("1_000", None),
        ("١٢", None),
        ("inf", None),
        ("nan", None),
        (".5", 0.5),
    ],
)
def test_to_number(raw, expected):
    assert to_number(raw) == expected


def _transformer(catalog, value, time_type=None, codec=None):
    query = Query.from_dict(
        {"select": {"key": ["geo", "year"], "value": value}, "from": "datapoints"}
    )
    return build_record_transformer(query, catalog, codec or TimeCodec(), time_type)


class TestRecordTransformer:
    def test_requested_measures_become_numbers(self, geo_catalog):
        t = _transformer(geo_catalog, ["population"])
        row = t({"geo": "usa", "year": "2000", "population": "280000000", "gdp": "10"})
        assert row["population"] == 280000000
        # Not requested: left as read
        assert row["gdp"] == "10"

    def test_falsy_measure_cells_untouched(self, geo_catalog):
        t = _transformer(geo_catalog, ["population"])
        assert t({"geo": "usa", "population": None})["population"] is None
        assert t({"geo": "usa", "population": ""})["population"] == ""

    def test_non_numeric_measure_becomes_none(self, geo_catalog):
        t = _transformer(geo_catalog, ["population"])
        assert t({"geo": "usa", "population": "lots"})["population"] is None

    def test_time_replaced_by_descriptor(self, geo_catalog):
        codec = TimeCodec()
        t = _transformer(geo_catalog, ["population"], codec=codec)
        row = t({"geo": "usa", "year": "2000", "population": "1"})
        assert row["year"] is codec.parse("2000")
        assert row["year"].type == TimeType.YEAR
        assert row["year"].time == parse_time("2000").time
        assert codec.format("year", row["year"].time) == "2000"

    def test_year_and_quarter_descriptors_differ(self, geo_catalog):
        t = _transformer(geo_catalog, ["life_expectancy"])
        year = t({"geo": "usa", "time": "2000", "life_expectancy": "76.8"})["time"]
        quarter = t({"geo": "usa", "time": "2000q1", "life_expectancy": "76.5"})["time"]
        assert year.time == quarter.time
        assert year != quarter

    def test_unparseable_time_drops_row(self, geo_catalog):
        t = _transformer(geo_catalog, ["population"])
        assert t({"geo": "usa", "year": "sometime", "population": "1"}) is None
        assert t.dropped == 1

    def test_other_granularity_dropped_when_time_type_required(self, geo_catalog):
        t = _transformer(geo_catalog, ["life_expectancy"], time_type=TimeType.YEAR)
        assert t({"geo": "usa", "time": "2000q1", "life_expectancy": "76.5"}) is None
        kept = t({"geo": "usa", "time": "2000", "life_expectancy": "76.8"})
        assert kept["life_expectancy"] == 76.8

    def test_row_without_time_column_kept(self, geo_catalog):
        t = _transformer(geo_catalog, ["gdp"], time_type=TimeType.YEAR)
        assert t({"geo": "usa", "gdp": "3"}) == {"geo": "usa", "gdp": 3}

    def test_apply_keeps_surviving_rows(self, geo_catalog):
        t = _transformer(geo_catalog, ["gdp"])
        result = ResourceFileResult(
            path=Path("gdp.csv"),
            rows=[
                {"geo": "usa", "year": "2000", "gdp": "1"},
                {"geo": "usa", "year": "bad", "gdp": "2"},
                {"geo": "swe", "year": "2001", "gdp": "3"},
            ],
        )
        out = t.apply(result)
        assert [r["gdp"] for r in out.rows] == [1, 3]
        assert out.path == result.path
        assert t.dropped == 1
