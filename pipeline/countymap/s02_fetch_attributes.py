"""
02 - Fetch county attribute table.

Purpose: Get one or more county-level variables keyed by 5-digit GEOID
Input (one of):
  - Census ACS 5-year API, county level, e.g. B19013_001E (median income)
  - A local CSV export keyed by county FIPS (e.g. CDC/ATSDR SVI, RPL_THEMES)
Output:
  - data/interim/attributes.parquet

Decision log:
  - httpx for the API call, polars for the table
  - ACS rows are keyed by separate state/county columns, concatenated here
  - ACS annotation sentinels (-666666666 etc.) become nulls, not values
  - CSV keys are read as strings and zero padded so "1001" joins "01001"
Date: 2025-01-14
"""

import sys
from pathlib import Path
from typing import Optional, Sequence

import click
import httpx
import polars as pl

from .utils.config import config, get_acs_url, get_interim_path
from .utils.exceptions import CountyMapError, DataSourceError

KEY = "GEOID"

# ACS uses large negative numbers to flag missing or suppressed estimates
ACS_SENTINEL_CEILING = -100_000_000


def parse_acs_response(rows: list, variables: Sequence[str]) -> pl.DataFrame:
    """
    Convert the ACS array-of-rows JSON payload into a keyed table.

    Args:
        rows: Header row followed by data rows
        variables: Requested variable codes (cast to Float64)

    Returns:
        DataFrame with GEOID, NAME and one column per variable
    """
    if not isinstance(rows, list) or len(rows) < 1 or not isinstance(rows[0], list):
        raise DataSourceError("Unexpected ACS response shape")

    header, data = rows[0], rows[1:]
    missing = [c for c in ("state", "county", *variables) if c not in header]
    if missing:
        raise DataSourceError(f"ACS response is missing columns: {missing}")

    df = pl.DataFrame(data, schema={name: pl.Utf8 for name in header}, orient="row")

    value_exprs = []
    for var in variables:
        value = pl.col(var).cast(pl.Float64, strict=False)
        value_exprs.append(
            pl.when(value <= ACS_SENTINEL_CEILING).then(None).otherwise(value).alias(var)
        )

    keep = [c for c in ("NAME",) if c in header]
    return (
        df.with_columns(pl.concat_str([pl.col("state"), pl.col("county")]).alias(KEY))
        .with_columns(value_exprs)
        .select([KEY, *keep, *variables])
        .sort(KEY)
    )


def fetch_acs_table(
    variables: Sequence[str],
    year: int,
    api_key: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> pl.DataFrame:
    """Query the ACS 5-year API for all counties in all states."""
    params = {
        "get": ",".join(["NAME", *variables]),
        "for": "county:*",
        "in": "state:*",
    }
    if api_key:
        params["key"] = api_key

    url = get_acs_url(year)
    own_client = client is None
    client = client or httpx.Client(timeout=config.HTTP_TIMEOUT, follow_redirects=True)

    try:
        response = client.get(url, params=params)
        response.raise_for_status()
        rows = response.json()
    except httpx.HTTPError as e:
        raise DataSourceError(f"ACS request failed: {e}") from e
    except ValueError as e:
        # The API answers invalid variables with an HTML/text body
        raise DataSourceError(f"ACS returned a non-JSON body: {e}") from e
    finally:
        if own_client:
            client.close()

    return parse_acs_response(rows, variables)


def read_attribute_csv(
    path: Path,
    key_column: str,
    value_columns: Sequence[str],
) -> pl.DataFrame:
    """
    Read a local attribute table and normalise its key to GEOID.

    Args:
        path: CSV file
        key_column: Column holding the county FIPS code
        value_columns: Columns to keep (numeric where parseable)
    """
    try:
        df = pl.read_csv(path, schema_overrides={key_column: pl.Utf8}, infer_schema_length=10000)
    except (OSError, pl.exceptions.PolarsError) as e:
        raise DataSourceError(f"Could not read {path}: {e}") from e

    missing = [c for c in (key_column, *value_columns) if c not in df.columns]
    if missing:
        raise DataSourceError(f"{path} is missing columns: {missing}")

    return (
        df.select([key_column, *value_columns])
        .with_columns(pl.col(key_column).str.strip_chars().str.zfill(5).alias(KEY))
        .select([KEY, *[c for c in value_columns if c != KEY]])
    )


@click.command()
@click.option("--variable", "variables", multiple=True, help="ACS variable code(s)")
@click.option("--year", type=int, default=None, help="ACS 5-year vintage")
@click.option("--csv", "csv_path", type=click.Path(exists=True, path_type=Path), help="Read a local CSV instead of the ACS API")
@click.option("--key-column", default="FIPS", help="Key column in the CSV")
@click.option("--value-column", "value_columns", multiple=True, help="Value column(s) in the CSV")
def main(
    variables: tuple,
    year: int | None,
    csv_path: Path | None,
    key_column: str,
    value_columns: tuple,
):
    """Fetch the county attribute table."""
    print("=" * 60)
    print("County Attribute Fetch")
    print("=" * 60)

    try:
        if csv_path:
            if not value_columns:
                raise DataSourceError("--value-column is required with --csv")
            print(f"Reading {csv_path}...")
            df = read_attribute_csv(csv_path, key_column, value_columns)
        else:
            variables = list(variables) or config.ACS_VARIABLES
            year = year or config.ACS_YEAR
            print(f"Querying ACS {year} for {', '.join(variables)}...")
            df = fetch_acs_table(variables, year, api_key=config.CENSUS_API_KEY)
    except CountyMapError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    output_path = get_interim_path() / "attributes.parquet"
    df.write_parquet(output_path)
    print(f"  {len(df):,} rows, {df[KEY].n_unique():,} distinct keys")
    print(f"  Saved to {output_path}")


if __name__ == "__main__":
    main()
