"""
03 - Join attribute table onto county geometries.

Purpose: Attach county-level variables to the boundary feature collection
Input:
  - data/interim/counties.parquet
  - data/interim/attributes.parquet
Output:
  - data/interim/counties_joined.parquet

Decision log:
  - Join policy is explicit (inner / left / outer), inner by default
  - Unmatched keys are counted and reported, never dropped silently
  - Duplicate attribute keys fail the join unless first/last is chosen
  - Keys compared as strings; attribute columns clashing with geometry
    columns get an "_attr" suffix
Date: 2025-01-14
"""

import sys
from dataclasses import dataclass, field

import click
import geopandas as gpd
import pandas as pd
import polars as pl

from .utils.config import DuplicatePolicy, JoinHow, config, get_interim_path
from .utils.exceptions import CountyMapError, JoinError

JOIN_POLICIES = ("inner", "left", "outer")
DUPLICATE_POLICIES = ("error", "first", "last")


@dataclass
class JoinResult:
    """Joined feature collection plus an account of what did not match."""

    counties: gpd.GeoDataFrame
    how: str
    matched: int
    geometry_only: list[str] = field(default_factory=list)
    attribute_only: list[str] = field(default_factory=list)
    duplicate_keys: int = 0

    @property
    def dropped_geometry_rows(self) -> int:
        """County polygons left out of the output."""
        return len(self.geometry_only) if self.how == "inner" else 0

    @property
    def dropped_attribute_rows(self) -> int:
        """Attribute rows left out of the output."""
        return len(self.attribute_only) if self.how in ("inner", "left") else 0

    def summary(self) -> dict:
        return {
            "how": self.how,
            "rows": len(self.counties),
            "matched": self.matched,
            "geometry_only": len(self.geometry_only),
            "attribute_only": len(self.attribute_only),
            "dropped_geometry_rows": self.dropped_geometry_rows,
            "dropped_attribute_rows": self.dropped_attribute_rows,
            "duplicate_keys": self.duplicate_keys,
        }


def _to_pandas(attributes: pl.DataFrame | pd.DataFrame) -> pd.DataFrame:
    if isinstance(attributes, pl.DataFrame):
        return attributes.to_pandas()
    return attributes.copy()


def resolve_duplicates(
    attributes: pd.DataFrame,
    key: str,
    on_duplicate: DuplicatePolicy,
) -> tuple[pd.DataFrame, int]:
    """
    Apply the duplicate-key policy to the attribute table.

    Returns:
        Tuple of (deduplicated table, number of keys that repeated)
    """
    repeated = attributes.loc[attributes[key].duplicated(keep=False), key]
    duplicate_keys = int(repeated.nunique())
    if duplicate_keys == 0:
        return attributes, 0

    if on_duplicate == "error":
        sample = sorted(repeated.unique().tolist())[:5]
        raise JoinError(
            f"{duplicate_keys} duplicate {key} value(s) in attribute table, e.g. {sample}"
        )
    return attributes.drop_duplicates(subset=key, keep=on_duplicate), duplicate_keys


def join_attributes(
    counties: gpd.GeoDataFrame,
    attributes: pl.DataFrame | pd.DataFrame,
    key: str = "GEOID",
    how: JoinHow = "inner",
    on_duplicate: DuplicatePolicy = "error",
) -> JoinResult:
    """
    Join an attribute table onto the county feature collection by key.

    Args:
        counties: Feature collection with a unique key column
        attributes: Table keyed by the same identifier
        key: Shared key column
        how: "inner" keeps keys present on both sides, "left" keeps every
            county, "outer" keeps every key from either side
        on_duplicate: "error", or which repeated attribute row to keep

    Returns:
        JoinResult with the joined collection sorted by key
    """
    if how not in JOIN_POLICIES:
        raise JoinError(f"Unknown join policy '{how}', expected one of {JOIN_POLICIES}")
    if on_duplicate not in DUPLICATE_POLICIES:
        raise JoinError(f"Unknown duplicate policy '{on_duplicate}', expected one of {DUPLICATE_POLICIES}")

    table = _to_pandas(attributes)
    if key not in counties.columns:
        raise JoinError(f"Geometry collection has no '{key}' column")
    if key not in table.columns:
        raise JoinError(f"Attribute table has no '{key}' column")

    geo = counties.copy()
    geo[key] = geo[key].astype(str)
    table[key] = table[key].astype(str)

    if geo[key].duplicated().any():
        raise JoinError(f"Geometry collection has duplicate '{key}' values")

    table, duplicate_keys = resolve_duplicates(table, key, on_duplicate)

    geo_keys = set(geo[key])
    attr_keys = set(table[key])
    matched = len(geo_keys & attr_keys)

    merged = geo.merge(table, on=key, how=how, suffixes=("", "_attr"))
    joined = gpd.GeoDataFrame(merged, geometry="geometry", crs=counties.crs)
    joined = joined.sort_values(key).reset_index(drop=True)

    result = JoinResult(
        counties=joined,
        how=how,
        matched=matched,
        geometry_only=sorted(geo_keys - attr_keys),
        attribute_only=sorted(attr_keys - geo_keys),
        duplicate_keys=duplicate_keys,
    )

    if result.dropped_geometry_rows:
        print(
            f"  WARNING: {result.dropped_geometry_rows} county polygon(s) have no attribute row "
            f"and were dropped (e.g. {result.geometry_only[:5]})"
        )
    if result.dropped_attribute_rows:
        print(
            f"  WARNING: {result.dropped_attribute_rows} attribute row(s) have no county polygon "
            f"and were dropped (e.g. {result.attribute_only[:5]})"
        )
    if duplicate_keys:
        print(f"  WARNING: {duplicate_keys} repeated key(s), kept the {on_duplicate} row of each")

    return result


@click.command()
@click.option("--how", type=click.Choice(JOIN_POLICIES), default=None, help="Join policy")
@click.option("--on-duplicate", type=click.Choice(DUPLICATE_POLICIES), default=None, help="Duplicate key policy")
def main(how: str | None, on_duplicate: str | None):
    """Join attributes onto county geometries."""
    print("=" * 60)
    print("Attribute Join")
    print("=" * 60)

    counties_path = get_interim_path() / "counties.parquet"
    attributes_path = get_interim_path() / "attributes.parquet"
    for path in (counties_path, attributes_path):
        if not path.exists():
            print(f"ERROR: Input not found: {path}")
            sys.exit(1)

    counties = gpd.read_parquet(counties_path)
    attributes = pl.read_parquet(attributes_path)
    print(f"Loaded {len(counties):,} counties and {len(attributes):,} attribute rows")

    try:
        result = join_attributes(
            counties,
            attributes,
            key=config.JOIN_KEY,
            how=how or config.JOIN_HOW,
            on_duplicate=on_duplicate or config.JOIN_ON_DUPLICATE,
        )
    except CountyMapError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    output_path = get_interim_path() / "counties_joined.parquet"
    result.counties.to_parquet(output_path)

    print("\nJoin summary:")
    for name, value in result.summary().items():
        print(f"  {name}: {value}")
    print(f"  Saved to {output_path}")


if __name__ == "__main__":
    main()
