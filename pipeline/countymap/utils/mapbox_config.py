"""
Mapbox Configuration

Configuration for uploads to the Mapbox tileset service. Credentials are loaded
from environment variables at the command-line edge and handed to the
publisher explicitly. Create a .env file based on .env.example.

Environment variables:
    MAPBOX_USERNAME      - Mapbox account name (owner of the tileset)
    MAPBOX_ACCESS_TOKEN  - Secret token with uploads:write scope
    MAPBOX_TILESET       - Tileset name without account prefix (default: us_counties)
    MAPBOX_STYLE_URL     - Hosted style used by the web page (mapbox://styles/...)
    MAPBOX_PUBLIC_TOKEN  - Public token embedded in the web page

Decision log:
  - Using pydantic-settings for consistency with config.py
  - Credentials validated lazily (at use time, not import time)
  - No module-level instance: the publisher receives settings at construction
  - Multipart settings sized for county-level archives (tens of MB)
Date: 2025-01-14
"""

from functools import cached_property
from pathlib import Path
from typing import ClassVar, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError


class MapboxSettings(BaseSettings):
    """Mapbox configuration loaded from environment variables."""

    # Required credentials (validated at access time)
    MAPBOX_USERNAME: Optional[str] = None
    MAPBOX_ACCESS_TOKEN: Optional[str] = None

    # Optional settings with defaults
    MAPBOX_TILESET: str = "us_counties"
    MAPBOX_STYLE_URL: str = "mapbox://styles/mapbox/light-v11"
    MAPBOX_PUBLIC_TOKEN: Optional[str] = None
    MAPBOX_API_URL: str = "https://api.mapbox.com"

    # Tileset names are limited to 32 characters after the account prefix
    MAX_TILESET_NAME: ClassVar[int] = 32

    # Multipart upload settings for the staging bucket
    MULTIPART_THRESHOLD: ClassVar[int] = 25 * 1024 * 1024  # 25 MB
    MULTIPART_CHUNKSIZE: ClassVar[int] = 25 * 1024 * 1024  # 25 MB per part
    MULTIPART_MAX_CONCURRENCY: ClassVar[int] = 4  # Concurrent upload threads

    # Progress display threshold
    PROGRESS_THRESHOLD: ClassVar[int] = 10 * 1024 * 1024  # Show progress for files > 10 MB

    class Config:
        env_prefix = ""  # MAPBOX_ prefix is part of variable names
        case_sensitive = True

    @cached_property
    def uploads_url(self) -> str:
        """Get the Uploads API base URL for the account."""
        self.validate_credentials()
        return f"{self.MAPBOX_API_URL}/uploads/v1/{self.MAPBOX_USERNAME}"

    @property
    def page_token(self) -> Optional[str]:
        """Token to embed in browser pages (public token preferred)."""
        return self.MAPBOX_PUBLIC_TOKEN or self.MAPBOX_ACCESS_TOKEN

    def validate_credentials(self) -> None:
        """Validate that required credentials are set."""
        missing = []
        if not self.MAPBOX_USERNAME:
            missing.append("MAPBOX_USERNAME")
        if not self.MAPBOX_ACCESS_TOKEN:
            missing.append("MAPBOX_ACCESS_TOKEN")

        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

    def tileset_id(self, tileset: Optional[str] = None) -> str:
        """Get the fully qualified tileset id (<account>.<tileset>)."""
        name = tileset or self.MAPBOX_TILESET
        if "." in name:
            account, _, name = name.partition(".")
            if account != self.MAPBOX_USERNAME:
                raise ConfigurationError(
                    f"Tileset {account}.{name} does not belong to account {self.MAPBOX_USERNAME}"
                )
        if len(name) > self.MAX_TILESET_NAME:
            raise ConfigurationError(
                f"Tileset name '{name}' exceeds {self.MAX_TILESET_NAME} characters"
            )
        return f"{self.MAPBOX_USERNAME}.{name}"


def load_mapbox_settings(env_file: Path | str = ".env") -> MapboxSettings:
    """Load .env into the process environment and build settings from it."""
    load_dotenv(env_file)
    return MapboxSettings()
