"""
04 - Simplify county geometries for web output.

Purpose: Reduce vertex density of the joined collection so the GeoJSON,
         tile archive and browser render stay small
Input:
  - data/interim/counties_joined.parquet
Output:
  - data/processed/counties_simplified.parquet

Decision log:
  - Tolerance in metres, applied in CONUS Albers (EPSG:5070); Alaska and
    Hawaii are distorted there but the tolerance stays meaningful
  - Default method simplifies the coverage as a whole (shapely
    coverage_simplify) so shared county borders stay shared
  - Douglas-Peucker with preserve_topology as the per-polygon alternative
  - A geometry that collapses to empty keeps its original shape
  - Attributes, row order and row count are never changed
Date: 2025-01-14
"""

import sys
from dataclasses import dataclass

import click
import geopandas as gpd
import numpy as np
import shapely

from .utils.config import SimplifyMethod, config, get_interim_path, get_processed_path
from .utils.geometry_utils import CONUS_ALBERS, WGS84, count_vertices

SIMPLIFY_METHODS = ("coverage", "douglas-peucker")


@dataclass
class SimplifyResult:
    """Simplified collection and vertex accounting."""

    counties: gpd.GeoDataFrame
    tolerance_m: float
    method: str
    vertices_before: int
    vertices_after: int

    @property
    def reduction(self) -> float:
        """Fraction of vertices removed (0-1)."""
        if self.vertices_before == 0:
            return 0.0
        return 1 - self.vertices_after / self.vertices_before


def _simplify_array(geoms: np.ndarray, tolerance_m: float, method: str) -> np.ndarray:
    if method == "coverage":
        return shapely.coverage_simplify(geoms, tolerance_m)
    return shapely.simplify(geoms, tolerance_m, preserve_topology=True)


def simplify_counties(
    gdf: gpd.GeoDataFrame,
    tolerance_m: float | None = None,
    method: SimplifyMethod | None = None,
) -> SimplifyResult:
    """
    Simplify county polygons at a fixed tolerance.

    Args:
        gdf: Feature collection (any CRS; WGS84 assumed when unset)
        tolerance_m: Simplification tolerance in metres (config default)
        method: "coverage" or "douglas-peucker" (config default)

    Returns:
        SimplifyResult whose collection is in the input CRS
    """
    tolerance_m = config.SIMPLIFY_TOLERANCE_M if tolerance_m is None else tolerance_m
    method = method or config.SIMPLIFY_METHOD
    if method not in SIMPLIFY_METHODS:
        raise ValueError(f"Unknown simplification method '{method}'")
    if tolerance_m < 0:
        raise ValueError("Simplification tolerance must be non-negative")

    vertices_before = count_vertices(gdf)
    if len(gdf) == 0 or tolerance_m == 0:
        return SimplifyResult(gdf.copy(), tolerance_m, method, vertices_before, vertices_before)

    source_crs = gdf.crs or WGS84
    projected = gdf.set_crs(WGS84) if gdf.crs is None else gdf
    projected = projected.to_crs(CONUS_ALBERS)

    geoms = np.asarray(projected.geometry.values, dtype=object)
    present = ~(shapely.is_missing(geoms) | shapely.is_empty(geoms))

    simplified = geoms.copy()
    if present.any():
        original = geoms[present]
        reduced = _simplify_array(original, tolerance_m, method)
        collapsed = shapely.is_empty(reduced)
        reduced[collapsed] = original[collapsed]
        simplified[present] = reduced

    projected = projected.copy()
    projected[projected.geometry.name] = gpd.GeoSeries(
        simplified, index=projected.index, crs=CONUS_ALBERS
    )
    output = projected.to_crs(source_crs)

    return SimplifyResult(
        counties=output,
        tolerance_m=tolerance_m,
        method=method,
        vertices_before=vertices_before,
        vertices_after=count_vertices(output),
    )


@click.command()
@click.option("--tolerance", type=float, default=None, help="Tolerance in metres")
@click.option("--method", type=click.Choice(SIMPLIFY_METHODS), default=None, help="Simplification method")
def main(tolerance: float | None, method: str | None):
    """Simplify joined county geometries."""
    print("=" * 60)
    print("Geometry Simplification")
    print("=" * 60)

    input_path = get_interim_path() / "counties_joined.parquet"
    if not input_path.exists():
        print(f"ERROR: Joined collection not found: {input_path}")
        sys.exit(1)

    gdf = gpd.read_parquet(input_path)
    result = simplify_counties(gdf, tolerance, method)

    print(f"  Method: {result.method}, tolerance {result.tolerance_m:g} m")
    print(
        f"  Vertices: {result.vertices_before:,} -> {result.vertices_after:,} "
        f"({result.reduction:.0%} removed)"
    )

    output_path = get_processed_path() / "counties_simplified.parquet"
    result.counties.to_parquet(output_path)
    print(f"  Saved to {output_path}")


if __name__ == "__main__":
    main()
