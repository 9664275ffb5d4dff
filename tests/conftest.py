"""Shared pytest fixtures: small DDF datasets written under tmp_path."""

import textwrap
from pathlib import Path
from typing import Callable, Dict

import pytest

from ddf_query.core.concepts import ConceptCatalog

COUNTRY_CONCEPTS = """\
concept,concept_type,domain,name
country,entity_domain,,Country
year,time,,Year
population,measure,,Population
gdp,measure,,GDP
name,string,,Name
"""

GEO_CONCEPTS = """\
concept,concept_type,domain,name
geo,entity_domain,,Geography
country,entity_set,geo,Country
region,entity_set,geo,Region
time,time,,Time
year,time,,Year
population,measure,,Population
gdp,measure,,GDP
life_expectancy,measure,,Life expectancy
name,string,,Name
capital,string,,Capital
"""


def _dedent(content: str) -> str:
    return textwrap.dedent(content).lstrip("\n")


@pytest.fixture
def write_dataset(tmp_path: Path) -> Callable[..., Path]:
    """Return a helper writing {filename: csv text} into a fresh dataset directory."""

    def _write(files: Dict[str, str], name: str = "dataset") -> Path:
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        for filename, content in files.items():
            (root / filename).write_text(_dedent(content), encoding="utf-8")
        return root

    return _write


@pytest.fixture
def population_gdp_dataset(write_dataset) -> Path:
    """Two datapoint files covering the same (country, year) coordinate."""
    return write_dataset(
        {
            "ddf--concepts.csv": COUNTRY_CONCEPTS,
            "ddf--datapoints--population--by--country--year.csv": """\
                country,year,population
                usa,2000,280000000
            """,
            "ddf--datapoints--gdp--by--country--year.csv": """\
                country,year,gdp
                usa,2000,10000000000000
            """,
        }
    )


@pytest.fixture
def geo_dataset(write_dataset) -> Path:
    """Domain `geo` with entity sets `country` and `region`, mixed time granularities."""
    return write_dataset(
        {
            "ddf--concepts.csv": GEO_CONCEPTS,
            "ddf--entities--geo.csv": """\
                geo,name,is--country,is--region
                usa,United States,TRUE,FALSE
                europe,Europe,FALSE,TRUE
            """,
            "ddf--entities--geo--country.csv": """\
                country,name,capital
                swe,Sweden,Stockholm
            """,
            "ddf--datapoints--population--by--region--year.csv": """\
                region,year,population
                europe,2000,700000000
                europe,2001,701000000
            """,
            "ddf--datapoints--gdp--by--geo--year.csv": """\
                geo,year,gdp
                europe,2000,9000
                usa,2000,10000
            """,
            "ddf--datapoints--life_expectancy--by--geo--time.csv": """\
                geo,time,life_expectancy
                usa,2000,76.8
                usa,2000q1,76.5
                usa,2001,77.0
            """,
        }
    )


@pytest.fixture
def geo_catalog() -> ConceptCatalog:
    import csv
    import io

    return ConceptCatalog.from_records(csv.DictReader(io.StringIO(GEO_CONCEPTS)))


@pytest.fixture
def country_concepts() -> str:
    return COUNTRY_CONCEPTS
