"""
Pipeline configuration and constants.

Purpose: Central configuration for all pipeline stages
Decision log:
  - Using pydantic-settings for type-safe config with env var support
  - Paths are relative to project root for portability
  - Census cartographic boundary files (cb_*) are already generalized for
    web display, 20m is enough for a national map
  - Simplification tolerance is in metres, applied in CONUS Albers (EPSG:5070)
  - Duplicate attribute keys are an error unless a policy is chosen
Date: 2025-01-14
"""

from pathlib import Path
from typing import ClassVar, Literal

from pydantic_settings import BaseSettings

JoinHow = Literal["inner", "left", "outer"]
DuplicatePolicy = Literal["error", "first", "last"]
SimplifyMethod = Literal["coverage", "douglas-peucker"]


class PipelineConfig(BaseSettings):
    """Configuration loaded from environment or defaults."""

    # Paths (computed from project root)
    PROJECT_ROOT: ClassVar[Path] = Path(__file__).parent.parent.parent
    DATA_DIR: ClassVar[Path] = PROJECT_ROOT / "data"
    RAW_DIR: ClassVar[Path] = DATA_DIR / "raw"
    INTERIM_DIR: ClassVar[Path] = DATA_DIR / "interim"
    PROCESSED_DIR: ClassVar[Path] = DATA_DIR / "processed"

    # Census cartographic boundary files
    BOUNDARY_YEAR: int = 2022
    BOUNDARY_RESOLUTION: Literal["500k", "5m", "20m"] = "20m"
    BOUNDARY_URL_TEMPLATE: str = "https://www2.census.gov/geo/tiger/GENZ{year}/shp/cb_{year}_us_county_{resolution}.zip"

    # Territories (PR, GU, VI, AS, MP) are not part of the 3,143 county set
    INCLUDE_TERRITORIES: bool = False
    TERRITORY_FIPS: ClassVar[tuple[str, ...]] = ("60", "66", "69", "72", "78")

    # ACS 5-year county table
    ACS_YEAR: int = 2022
    ACS_URL_TEMPLATE: str = "https://api.census.gov/data/{year}/acs/acs5"
    ACS_VARIABLES: list[str] = ["B19013_001E"]  # Median household income
    CENSUS_API_KEY: str | None = None

    # Join policy
    JOIN_KEY: str = "GEOID"
    JOIN_HOW: JoinHow = "inner"
    JOIN_ON_DUPLICATE: DuplicatePolicy = "error"

    # Simplification
    SIMPLIFY_TOLERANCE_M: float = 500.0
    SIMPLIFY_METHOD: SimplifyMethod = "coverage"

    # Tile packaging
    TILE_LAYER: str = "counties"
    TILE_MIN_ZOOM: int = 0
    TILE_MAX_ZOOM: int = 10

    # Map styling
    VALUE_COLUMN: str = "B19013_001E"
    LEGEND_CAPTION: str = "Median household income ($)"
    TOOLTIP_TEMPLATE: str = "{NAME}, {STATE_NAME}: ${value:,.0f}"
    PALETTE: list[str] = ["#f7fcf5", "#c7e9c0", "#74c476", "#238b45", "#00441b"]
    NO_DATA_COLOR: str = "#d9d9d9"

    # Network settings
    HTTP_TIMEOUT: int = 120  # seconds
    UPLOAD_POLL_INTERVAL: float = 5.0  # seconds
    UPLOAD_MAX_WAIT: float = 1800.0  # seconds

    class Config:
        env_prefix = "COUNTYMAP_"
        case_sensitive = False


# Global config instance
config = PipelineConfig()


# Convenience path accessors
def get_raw_path(subdir: str = "") -> Path:
    """Get path in raw data directory."""
    path = config.RAW_DIR / subdir if subdir else config.RAW_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_interim_path(subdir: str = "") -> Path:
    """Get path in interim data directory."""
    path = config.INTERIM_DIR / subdir if subdir else config.INTERIM_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_processed_path(subdir: str = "") -> Path:
    """Get path in processed data directory."""
    path = config.PROCESSED_DIR / subdir if subdir else config.PROCESSED_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path


# Census URL builders
def get_boundary_url(year: int, resolution: str) -> str:
    """Build Census cartographic boundary download URL."""
    return config.BOUNDARY_URL_TEMPLATE.format(year=year, resolution=resolution)


def get_acs_url(year: int) -> str:
    """Build ACS 5-year API endpoint URL."""
    return config.ACS_URL_TEMPLATE.format(year=year)
