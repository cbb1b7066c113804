"""Tests for the ACS and CSV attribute sources."""

import httpx
import polars as pl
import pytest

from countymap.s02_fetch_attributes import fetch_acs_table, parse_acs_response, read_attribute_csv
from countymap.utils.exceptions import DataSourceError

ACS_ROWS = [
    ["NAME", "B19013_001E", "state", "county"],
    ["Fulton County, Georgia", "86711", "13", "121"],
    ["Autauga County, Alabama", "68315", "01", "001"],
    ["Loving County, Texas", "-666666666", "48", "301"],
]


class TestParseAcsResponse:
    def test_builds_geoid_and_sorts(self):
        df = parse_acs_response(ACS_ROWS, ["B19013_001E"])

        assert df.columns == ["GEOID", "NAME", "B19013_001E"]
        assert df["GEOID"].to_list() == ["01001", "13121", "48301"]
        assert df["B19013_001E"].dtype == pl.Float64

    def test_sentinel_becomes_null(self):
        df = parse_acs_response(ACS_ROWS, ["B19013_001E"])

        loving = df.filter(pl.col("GEOID") == "48301")
        assert loving["B19013_001E"][0] is None
        assert df["B19013_001E"].null_count() == 1

    def test_missing_variable_column(self):
        with pytest.raises(DataSourceError, match="missing columns"):
            parse_acs_response(ACS_ROWS, ["B01003_001E"])

    def test_unexpected_shape(self):
        with pytest.raises(DataSourceError, match="Unexpected ACS response"):
            parse_acs_response({"error": "bad"}, ["B19013_001E"])


class TestFetchAcsTable:
    def test_queries_all_counties(self):
        seen = {}

        def handler(request):
            seen.update(dict(request.url.params))
            return httpx.Response(200, json=ACS_ROWS)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        df = fetch_acs_table(["B19013_001E"], 2022, api_key="k", client=client)

        assert seen == {"get": "NAME,B19013_001E", "for": "county:*", "in": "state:*", "key": "k"}
        assert len(df) == 3

    def test_non_json_body(self):
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="error: unknown variable"))
        )
        with pytest.raises(DataSourceError, match="non-JSON"):
            fetch_acs_table(["B99999_001E"], 2022, client=client)

    def test_http_error(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        with pytest.raises(DataSourceError, match="ACS request failed"):
            fetch_acs_table(["B19013_001E"], 2022, client=client)


class TestReadAttributeCsv:
    def test_zero_pads_key(self, tmp_path):
        path = tmp_path / "svi.csv"
        path.write_text("FIPS,RPL_THEMES,OTHER\n1001,0.41,x\n13121,0.63,y\n")

        df = read_attribute_csv(path, "FIPS", ["RPL_THEMES"])

        assert df.columns == ["GEOID", "RPL_THEMES"]
        assert df["GEOID"].to_list() == ["01001", "13121"]

    def test_keeps_leading_zeros_already_present(self, tmp_path):
        path = tmp_path / "t.csv"
        path.write_text("FIPS,v\n01001,1\n")

        assert read_attribute_csv(path, "FIPS", ["v"])["GEOID"].to_list() == ["01001"]

    def test_missing_column(self, tmp_path):
        path = tmp_path / "t.csv"
        path.write_text("FIPS,v\n01001,1\n")

        with pytest.raises(DataSourceError, match="missing columns"):
            read_attribute_csv(path, "FIPS", ["w"])

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataSourceError, match="Could not read"):
            read_attribute_csv(tmp_path / "nope.csv", "FIPS", ["v"])
