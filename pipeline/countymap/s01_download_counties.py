"""
01 - Download US county boundaries.

Purpose: Fetch Census cartographic boundary polygons for all US counties and
         store them as a keyed GeoParquet feature collection
Input:
  - https://www2.census.gov/geo/tiger/GENZ{year}/shp/cb_{year}_us_county_{resolution}.zip
Output:
  - data/raw/census/cb_{year}_us_county_{resolution}.zip
  - data/interim/counties.parquet

Decision log:
  - Use httpx for downloads with a tqdm progress bar
  - No retry: a failed download fails the run
  - Resolution (500k / 5m / 20m) is the detail parameter, 20m is default
  - GEOID (state FIPS + county FIPS, 5 digits) is the join key
  - Territories dropped by default so the 50 states + DC give 3,143 counties
Date: 2025-01-14
"""

import sys
from pathlib import Path
from typing import Iterable, Optional

import click
import geopandas as gpd
import httpx
from tqdm import tqdm

from .utils.config import config, get_boundary_url, get_interim_path, get_raw_path
from .utils.exceptions import CountyMapError, DataSourceError
from .utils.geometry_utils import fix_invalid_geometries, to_wgs84

KEEP_COLUMNS = ["GEOID", "STATEFP", "NAME", "STATE_NAME", "STUSPS"]


def download_file(
    url: str,
    output_path: Path,
    client: Optional[httpx.Client] = None,
    timeout: int = 600,
) -> Path:
    """
    Download file with a progress bar.

    Raises:
        DataSourceError: on any HTTP or network failure
    """
    own_client = client is None
    client = client or httpx.Client(timeout=timeout, follow_redirects=True)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    partial_path = output_path.with_suffix(output_path.suffix + ".part")

    try:
        with client.stream("GET", url) as response:
            if response.status_code == 404:
                raise DataSourceError(f"File not found: {url}")
            response.raise_for_status()

            total = int(response.headers.get("content-length", 0))
            with open(partial_path, "wb") as f:
                with tqdm(
                    total=total,
                    unit="B",
                    unit_scale=True,
                    desc=output_path.name,
                    leave=False,
                ) as pbar:
                    for chunk in response.iter_bytes(chunk_size=8192):
                        f.write(chunk)
                        pbar.update(len(chunk))
    except httpx.HTTPError as e:
        partial_path.unlink(missing_ok=True)
        raise DataSourceError(f"Download failed for {url}: {e}") from e
    finally:
        if own_client:
            client.close()

    partial_path.rename(output_path)
    return output_path


def download_boundaries(
    year: int,
    resolution: str,
    output_dir: Path,
    client: Optional[httpx.Client] = None,
) -> Path:
    """Download the county boundary archive, reusing an existing copy."""
    url = get_boundary_url(year, resolution)
    archive_path = output_dir / Path(url).name

    if archive_path.exists():
        print(f"Boundaries already downloaded: {archive_path.name}")
        return archive_path

    print(f"Downloading county boundaries from {url}")
    download_file(url, archive_path, client=client, timeout=config.HTTP_TIMEOUT)
    size_mb = archive_path.stat().st_size / 1e6
    print(f"  Saved {archive_path.name} ({size_mb:.1f} MB)")
    return archive_path


def load_counties(
    source: Path,
    states: Optional[Iterable[str]] = None,
    include_territories: bool = False,
) -> gpd.GeoDataFrame:
    """
    Read county polygons into a keyed WGS84 feature collection.

    Args:
        source: Boundary archive (.zip) or any file geopandas can read
        states: Optional state FIPS codes to keep (e.g. ["13", "01"])
        include_territories: Keep PR, GU, VI, AS, MP

    Returns:
        GeoDataFrame sorted by GEOID
    """
    try:
        gdf = gpd.read_file(source)
    except Exception as e:
        raise DataSourceError(f"Could not read boundaries from {source}: {e}") from e

    if "GEOID" not in gdf.columns:
        raise DataSourceError(f"{source} has no GEOID column (found: {list(gdf.columns)})")

    gdf["GEOID"] = gdf["GEOID"].astype(str).str.zfill(5)
    if "STATEFP" not in gdf.columns:
        gdf["STATEFP"] = gdf["GEOID"].str[:2]

    duplicated = gdf["GEOID"][gdf["GEOID"].duplicated()].unique().tolist()
    if duplicated:
        raise DataSourceError(f"Duplicate GEOIDs in boundary file: {duplicated[:5]}")

    if not include_territories:
        gdf = gdf[~gdf["STATEFP"].isin(config.TERRITORY_FIPS)]
    if states:
        wanted = [str(s).zfill(2) for s in states]
        gdf = gdf[gdf["STATEFP"].isin(wanted)]

    columns = [c for c in KEEP_COLUMNS if c in gdf.columns]
    gdf = gdf[columns + ["geometry"]]
    gdf = fix_invalid_geometries(to_wgs84(gdf))
    return gdf.sort_values("GEOID").reset_index(drop=True)


@click.command()
@click.option("--year", type=int, default=None, help="Boundary vintage (default from config)")
@click.option(
    "--resolution",
    type=click.Choice(["500k", "5m", "20m"]),
    default=None,
    help="Boundary detail level",
)
@click.option("--state", "states", multiple=True, help="Keep only these state FIPS codes")
@click.option("--include-territories", is_flag=True, help="Keep Puerto Rico and island areas")
def main(year: int | None, resolution: str | None, states: tuple, include_territories: bool):
    """Download US county boundaries."""
    print("=" * 60)
    print("County Boundary Download")
    print("=" * 60)

    year = year or config.BOUNDARY_YEAR
    resolution = resolution or config.BOUNDARY_RESOLUTION

    try:
        archive_path = download_boundaries(year, resolution, get_raw_path("census"))
        gdf = load_counties(
            archive_path,
            states=states,
            include_territories=include_territories or config.INCLUDE_TERRITORIES,
        )
    except CountyMapError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    output_path = get_interim_path() / "counties.parquet"
    gdf.to_parquet(output_path)
    print(f"\nLoaded {len(gdf):,} counties")
    print(f"  Saved to {output_path}")


if __name__ == "__main__":
    main()
