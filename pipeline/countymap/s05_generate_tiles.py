"""
05 - Package simplified counties as a vector tile archive.

Purpose: Convert the simplified county collection to a multi-zoom tile
         archive. Uses tippecanoe for zoom-level dropping and coalescing.

Usage:
  uv run python -m countymap.s05_generate_tiles                       # MBTiles for upload
  uv run python -m countymap.s05_generate_tiles --format pmtiles      # PMTiles for static hosting

Requirements:
  - tippecanoe >= 2.17 installed (brew install tippecanoe)

Decision log:
  - Packer sits behind a narrow interface (input, output, layer) so another
    packer can be dropped in
  - GeoJSON written sorted by GEOID with string keys so identical input
    produces an identical archive
  - Output format follows the output suffix (.mbtiles / .pmtiles)
  - A failed run removes its partial archive
Date: 2025-01-14
"""

import json
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

import click
import geopandas as gpd

from .s07_render_map import LABEL_FIELD, build_labels
from .utils.config import config, get_processed_path
from .utils.exceptions import CountyMapError, EmptyFeatureCollectionError, TilePackagingError
from .utils.geometry_utils import ensure_not_empty, to_wgs84

ARCHIVE_SUFFIXES = (".mbtiles", ".pmtiles")


@dataclass
class TileArchive:
    """A packaged tile archive on disk."""

    path: Path
    layer: str
    feature_count: int

    @property
    def size_bytes(self) -> int:
        return self.path.stat().st_size


def write_geojson(
    gdf: gpd.GeoDataFrame,
    output_path: Path,
    columns: Sequence[str] | None = None,
    key: str = "GEOID",
) -> Path:
    """Write a deterministic WGS84 GeoJSON for the tile packer."""
    ensure_not_empty(gdf, "GeoJSON export")

    keep = [c for c in (columns or gdf.columns) if c in gdf.columns and c != gdf.geometry.name]
    if key not in keep:
        keep.insert(0, key)

    export = to_wgs84(gdf)[keep + [gdf.geometry.name]].copy()
    export = export[export.geometry.notna() & ~export.geometry.is_empty]
    export[key] = export[key].astype(str)
    export = export.sort_values(key).reset_index(drop=True)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(export.to_json(drop_id=True))
    file_size = output_path.stat().st_size / 1e6
    print(f"  Wrote {output_path} ({len(export):,} features, {file_size:.1f} MB)")
    return output_path


def count_features(geojson_path: Path) -> int:
    """Number of features in a GeoJSON FeatureCollection."""
    data = json.loads(geojson_path.read_text())
    return len(data.get("features", []))


class TilePackager(ABC):
    """Turns a feature collection file into a tile archive."""

    @abstractmethod
    def package(self, input_path: Path, output_path: Path, layer: str) -> TileArchive:
        """Package input_path into output_path under the given layer name."""


@dataclass
class TippecanoePackager(TilePackager):
    """Tile packager backed by the tippecanoe command-line tool."""

    min_zoom: int = 0
    max_zoom: int = 10
    extra_args: list[str] = field(
        default_factory=lambda: [
            "--detect-shared-borders",  # Better polygon simplification
            "--coalesce-densest-as-needed",  # Handle dense areas
            "--extend-zooms-if-still-dropping",  # Ensure all features visible
        ]
    )
    executable: str = "tippecanoe"

    def build_command(self, input_path: Path, output_path: Path, layer: str) -> list[str]:
        return [
            self.executable,
            "-o", str(output_path),
            "--force",  # Overwrite existing
            f"--layer={layer}",
            f"--minimum-zoom={self.min_zoom}",
            f"--maximum-zoom={self.max_zoom}",
            "--quiet",
            *self.extra_args,
            str(input_path),
        ]

    def package(self, input_path: Path, output_path: Path, layer: str) -> TileArchive:
        """Run tippecanoe to generate the archive."""
        if output_path.suffix not in ARCHIVE_SUFFIXES:
            raise TilePackagingError(
                f"Unsupported archive type '{output_path.suffix}', expected one of {ARCHIVE_SUFFIXES}"
            )

        feature_count = count_features(input_path)
        if feature_count == 0:
            raise EmptyFeatureCollectionError("Tile packaging")
        if shutil.which(self.executable) is None:
            raise TilePackagingError(f"{self.executable} not found on PATH")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(input_path, output_path, layer)

        print("Running tippecanoe...")
        print(f"  Command: {' '.join(cmd)}")
        result = subprocess.run(cmd, capture_output=True, text=True)

        if result.returncode != 0:
            print(f"  stderr: {result.stderr}")
            output_path.unlink(missing_ok=True)
            raise TilePackagingError(f"tippecanoe failed: {result.stderr.strip()}")

        archive = TileArchive(path=output_path, layer=layer, feature_count=feature_count)
        print(f"  Generated {output_path} ({archive.size_bytes / 1e6:.1f} MB)")
        return archive


def package_counties(
    gdf: gpd.GeoDataFrame,
    output_path: Path,
    layer: str,
    value_column: str | None = None,
    packager: TilePackager | None = None,
) -> TileArchive:
    """
    Write the GeoJSON next to the archive and package it.

    With a value column, features carry only the key, names, the value and
    a pre-formatted hover label; otherwise every attribute is kept.
    """
    packager = packager or TippecanoePackager(config.TILE_MIN_ZOOM, config.TILE_MAX_ZOOM)

    columns = None
    if value_column:
        gdf = gdf.copy()
        gdf[LABEL_FIELD] = build_labels(gdf, value_column, config.TOOLTIP_TEMPLATE)
        columns = [config.JOIN_KEY, "NAME", "STATE_NAME", value_column, LABEL_FIELD]

    geojson_path = output_path.with_suffix(".geojson")
    write_geojson(gdf, geojson_path, columns, key=config.JOIN_KEY)
    return packager.package(geojson_path, output_path, layer)


@click.command()
@click.option("--format", "fmt", type=click.Choice(["mbtiles", "pmtiles"]), default="mbtiles", help="Archive format")
@click.option("--layer", default=None, help="Vector layer name")
@click.option("--value-column", default=None, help="Mapped attribute (adds hover labels)")
def main(fmt: str, layer: str | None, value_column: str | None):
    """Generate the county tile archive."""
    print("=" * 60)
    print("County Tile Archive Generator")
    print("=" * 60)

    input_path = get_processed_path() / "counties_simplified.parquet"
    if not input_path.exists():
        print(f"ERROR: Simplified collection not found: {input_path}")
        sys.exit(1)

    gdf = gpd.read_parquet(input_path)
    print(f"Loaded {len(gdf):,} counties from {input_path}")

    output_path = get_processed_path("tiles") / f"counties.{fmt}"
    try:
        package_counties(
            gdf,
            output_path,
            layer or config.TILE_LAYER,
            value_column=value_column or config.VALUE_COLUMN,
        )
    except CountyMapError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print("\nDone!")


if __name__ == "__main__":
    main()
