"""
Geometry and projection utilities.

Purpose: Handle coordinate transformations, repair and vertex accounting
Decision log:
  - Census boundaries ship in NAD83 (EPSG:4269), web output is WGS84
  - Simplification tolerances are metres, so simplify in CONUS Albers
    (EPSG:5070) rather than in degrees
  - Shapely 2 vectorized functions for counting and repair
Date: 2025-01-14
"""

import geopandas as gpd
import pyproj
import shapely

from .exceptions import EmptyFeatureCollectionError

# Standard CRS definitions
WGS84 = pyproj.CRS("EPSG:4326")
CONUS_ALBERS = pyproj.CRS("EPSG:5070")  # NAD83 / Conus Albers, metres


def to_wgs84(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Reproject to WGS84, assuming WGS84 when no CRS is set."""
    if gdf.crs is None:
        return gdf.set_crs(WGS84)
    if pyproj.CRS(gdf.crs) == WGS84:
        return gdf
    return gdf.to_crs(WGS84)


def fix_invalid_geometries(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Repair invalid geometries in place of the buffer(0) trick."""
    invalid = ~gdf.geometry.is_valid
    if invalid.any():
        gdf = gdf.copy()
        gdf.loc[invalid, "geometry"] = shapely.make_valid(gdf.geometry[invalid].values)
    return gdf


def count_vertices(gdf: gpd.GeoDataFrame) -> int:
    """Total number of coordinates across all geometries."""
    if len(gdf) == 0:
        return 0
    return int(shapely.get_num_coordinates(gdf.geometry.values).sum())


def ensure_not_empty(gdf: gpd.GeoDataFrame, stage: str) -> None:
    """Raise if there is nothing to publish or render."""
    if gdf is None or len(gdf) == 0:
        raise EmptyFeatureCollectionError(stage)


def get_bounding_box(gdf: gpd.GeoDataFrame) -> tuple[float, float, float, float]:
    """Get bounding box as (minx, miny, maxx, maxy)."""
    minx, miny, maxx, maxy = gdf.total_bounds
    return (float(minx), float(miny), float(maxx), float(maxy))


def compute_center(gdf: gpd.GeoDataFrame) -> tuple[float, float]:
    """Get bounding-box center as (lat, lon) for a WGS84 collection."""
    minx, miny, maxx, maxy = get_bounding_box(gdf)
    return ((miny + maxy) / 2, (minx + maxx) / 2)  # (lat, lon)
