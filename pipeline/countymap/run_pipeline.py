"""
Run the county choropleth pipeline end to end.

Purpose: Execute every stage in order in one process:
         boundaries -> attributes -> join -> validate -> simplify ->
         (tiles -> hosted upload -> page) or (direct render)

Usage:
  uv run python -m countymap.run_pipeline --variant direct
  uv run python -m countymap.run_pipeline --variant hosted
  uv run python -m countymap.run_pipeline --variant hosted --local   # Package only, no upload
  uv run python -m countymap.run_pipeline --csv svi.csv --key-column FIPS --value-column RPL_THEMES

Decision log:
  - Strictly linear, each stage finishes before the next starts
  - No checkpoints: any error ends the run, re-running starts over
  - Mapbox settings are loaded and checked by main before stage 1, then
    passed to run and on to the publisher; run never reads the environment
  - Outer joins keep attribute-only keys in the joined parquet; rows without
    geometry are reported and left out of the map
  - Legend range is computed before the upload so a null column fails first
Date: 2025-01-14
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, Sequence

import click

from .s01_download_counties import download_boundaries, load_counties
from .s02_fetch_attributes import fetch_acs_table, read_attribute_csv
from .s03_join_attributes import DUPLICATE_POLICIES, JOIN_POLICIES, JoinResult, join_attributes
from .s03b_validate_joined import ValidationResult, validate_joined, write_report
from .s04_simplify_geometries import SimplifyResult, simplify_counties
from .s05_generate_tiles import TileArchive, package_counties
from .s06_publish_tileset import MapboxPublisher, PublishResult
from .s07_render_map import render_choropleth, save_map
from .s08_build_web_page import build_hosted_map_html, value_range
from .utils.config import config, get_interim_path, get_processed_path, get_raw_path
from .utils.exceptions import ConfigurationError, CountyMapError, DataSourceError
from .utils.mapbox_config import MapboxSettings, load_mapbox_settings

Variant = Literal["hosted", "direct"]


@dataclass
class PipelineRun:
    """Everything a run produced."""

    variant: str
    join: JoinResult
    validation: ValidationResult
    simplify: SimplifyResult
    archive: Optional[TileArchive] = None
    publish: Optional[PublishResult] = None
    map_path: Optional[Path] = None
    unmapped: int = 0


def run(
    variant: Variant = "direct",
    value_column: Optional[str] = None,
    states: Sequence[str] = (),
    csv_path: Optional[Path] = None,
    key_column: str = "FIPS",
    how: Optional[str] = None,
    on_duplicate: Optional[str] = None,
    tolerance_m: Optional[float] = None,
    local_only: bool = False,
    settings: Optional[MapboxSettings] = None,
) -> PipelineRun:
    """
    Run every stage once, in order.

    The hosted variant needs settings unless local_only is set; they are
    checked here, before any stage runs.
    """
    value_column = value_column or config.VALUE_COLUMN
    how = how or config.JOIN_HOW

    if variant == "hosted" and not local_only:
        if settings is None:
            raise ConfigurationError("Hosted publish needs Mapbox settings (or use --local)")
        settings.validate_credentials()
        settings.tileset_id()

    print("\n[1/6] Loading county boundaries...")
    archive_path = download_boundaries(
        config.BOUNDARY_YEAR, config.BOUNDARY_RESOLUTION, get_raw_path("census")
    )
    counties = load_counties(archive_path, states=states, include_territories=config.INCLUDE_TERRITORIES)
    print(f"  {len(counties):,} counties")

    print("\n[2/6] Loading attribute table...")
    if csv_path:
        attributes = read_attribute_csv(csv_path, key_column, [value_column])
    else:
        variables = list(dict.fromkeys([*config.ACS_VARIABLES, value_column]))
        attributes = fetch_acs_table(variables, config.ACS_YEAR, api_key=config.CENSUS_API_KEY)
    print(f"  {len(attributes):,} rows")

    print("\n[3/6] Joining...")
    join = join_attributes(
        counties,
        attributes,
        key=config.JOIN_KEY,
        how=how,
        on_duplicate=on_duplicate or config.JOIN_ON_DUPLICATE,
    )
    join.counties.to_parquet(get_interim_path() / "counties_joined.parquet")
    print(f"  {len(join.counties):,} joined rows ({join.matched:,} matched)")

    print("\n[4/6] Validating...")
    validation = validate_joined(join.counties, value_column, allow_missing_geometry=how == "outer")
    write_report(validation, get_processed_path() / "validation_report.json")
    for warn in validation.warnings:
        print(f"  WARN: {warn}")
    if not validation.passed:
        raise DataSourceError("Joined collection failed validation: " + "; ".join(validation.errors))

    mappable = join.counties[join.counties.geometry.notna()]
    unmapped = len(join.counties) - len(mappable)
    if unmapped:
        print(f"  WARNING: {unmapped:,} attribute-only row(s) have no geometry and will not be mapped")

    print("\n[5/6] Simplifying...")
    simplified = simplify_counties(mappable, tolerance_m)
    simplified.counties.to_parquet(get_processed_path() / "counties_simplified.parquet")
    print(f"  Vertices: {simplified.vertices_before:,} -> {simplified.vertices_after:,}")

    result = PipelineRun(
        variant=variant, join=join, validation=validation, simplify=simplified, unmapped=unmapped
    )

    if variant == "direct":
        print("\n[6/6] Rendering map...")
        m = render_choropleth(simplified.counties, value_column)
        result.map_path = save_map(m, get_processed_path("web") / "counties_map.html")
        return result

    print("\n[6/6] Packaging and publishing tiles...")
    result.archive = package_counties(
        simplified.counties,
        get_processed_path("tiles") / "counties.mbtiles",
        config.TILE_LAYER,
        value_column=value_column,
    )
    if local_only:
        print("  Local only mode - skipping upload")
        return result

    vmin, vmax = value_range(simplified.counties, value_column)
    result.publish = MapboxPublisher(settings).publish(result.archive)

    page = build_hosted_map_html(
        style_url=settings.MAPBOX_STYLE_URL,
        access_token=settings.page_token,
        tileset=result.publish.tileset_id,
        layer=config.TILE_LAYER,
        value_column=value_column,
        vmin=vmin,
        vmax=vmax,
    )
    result.map_path = get_processed_path("web") / "counties_hosted.html"
    result.map_path.write_text(page)
    print(f"  Saved {result.map_path}")
    return result


@click.command()
@click.option("--variant", type=click.Choice(["hosted", "direct"]), default="direct", help="Publishing variant")
@click.option("--value-column", default=None, help="Attribute to map")
@click.option("--state", "states", multiple=True, help="Keep only these state FIPS codes")
@click.option("--csv", "csv_path", type=click.Path(exists=True, path_type=Path), help="Local attribute CSV")
@click.option("--key-column", default="FIPS", help="Key column in the CSV")
@click.option("--how", type=click.Choice(JOIN_POLICIES), default=None, help="Join policy")
@click.option("--on-duplicate", type=click.Choice(DUPLICATE_POLICIES), default=None, help="Duplicate key policy")
@click.option("--tolerance", type=float, default=None, help="Simplification tolerance in metres")
@click.option("--local", "local_only", is_flag=True, help="Skip the Mapbox upload")
@click.option("--env-file", default=".env", help="File holding MAPBOX_* settings")
def main(
    variant: str,
    value_column: str | None,
    states: tuple,
    csv_path: Path | None,
    key_column: str,
    how: str | None,
    on_duplicate: str | None,
    tolerance: float | None,
    local_only: bool,
    env_file: str,
):
    """Run the full county choropleth pipeline."""
    print("=" * 60)
    print(f"County Choropleth Pipeline ({variant})")
    print("=" * 60)

    try:
        settings = None
        if variant == "hosted" and not local_only:
            settings = load_mapbox_settings(env_file)
            settings.validate_credentials()
        result = run(
            variant=variant,
            value_column=value_column,
            states=states,
            csv_path=csv_path,
            key_column=key_column,
            how=how,
            on_duplicate=on_duplicate,
            tolerance_m=tolerance,
            local_only=local_only,
            settings=settings,
        )
    except (CountyMapError, ValueError) as e:
        print(f"\nERROR: {e}")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("Summary")
    print("=" * 60)
    for name, value in result.join.summary().items():
        print(f"  {name}: {value}")
    if result.unmapped:
        print(f"  Unmapped rows (no geometry): {result.unmapped}")
    if result.archive:
        print(f"  Archive: {result.archive.path}")
    if result.publish:
        print(f"  Tileset: {result.publish.tileset_url}")
    if result.map_path:
        print(f"  Map: {result.map_path}")
    print("\nDone!")


if __name__ == "__main__":
    main()
