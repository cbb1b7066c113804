"""Shared fixtures: a small synthetic county grid and matching attribute tables."""

import geopandas as gpd
import pandas as pd
import polars as pl
import pytest
import shapely
from shapely.geometry import box

STATE_NAMES = {"13": "Georgia", "01": "Alabama"}


def make_counties(n_cols: int = 4, n_rows: int = 3, size: float = 0.1, densify: float | None = 0.01):
    """
    Grid of square "counties" in WGS84 south of Atlanta.

    Rows alternate between two states so state filters have something to do.
    Edges are densified so simplification has vertices to remove.
    """
    records = []
    for row in range(n_rows):
        statefp = "13" if row % 2 == 0 else "01"
        for col in range(n_cols):
            minx = -84.5 + col * size
            miny = 32.0 + row * size
            geom = box(minx, miny, minx + size, miny + size)
            if densify:
                geom = shapely.segmentize(geom, densify)
            countyfp = f"{row * n_cols + col + 1:03d}"
            records.append(
                {
                    "GEOID": statefp + countyfp,
                    "STATEFP": statefp,
                    "NAME": f"County {countyfp}",
                    "STATE_NAME": STATE_NAMES[statefp],
                    "geometry": geom,
                }
            )
    return gpd.GeoDataFrame(records, geometry="geometry", crs="EPSG:4326")


@pytest.fixture
def counties() -> gpd.GeoDataFrame:
    """12 adjacent square counties."""
    return make_counties()


@pytest.fixture
def attributes(counties) -> pl.DataFrame:
    """One numeric value per county, 1000 apart."""
    return pl.DataFrame(
        {
            "GEOID": counties["GEOID"].tolist(),
            "value": [float(1000 * (i + 1)) for i in range(len(counties))],
        }
    )


@pytest.fixture
def joined(counties, attributes) -> gpd.GeoDataFrame:
    """Counties with the attribute column attached."""
    gdf = counties.merge(attributes.to_pandas(), on="GEOID")
    return gpd.GeoDataFrame(gdf, geometry="geometry", crs=counties.crs)


@pytest.fixture
def empty_counties(counties) -> gpd.GeoDataFrame:
    return counties.iloc[0:0].assign(value=pd.Series(dtype="float64"))


@pytest.fixture
def county_grid():
    """Factory for custom grids."""
    return make_counties
