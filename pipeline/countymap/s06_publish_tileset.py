"""
06 - Publish the tile archive to Mapbox.

Purpose: Upload the county MBTiles archive as a hosted tileset
         (<account>.<tileset>). Styling happens out-of-band in the hosted
         style editor; the style is only referenced by id afterwards.
Input:
  - data/processed/tiles/counties.mbtiles
Output:
  - Tileset created or replaced on the Mapbox account

Features:
  - Temporary staging credentials from the Uploads API
  - Multipart upload to the staging bucket for large archives
  - Progress display for large uploads
  - Polls the upload until it completes or fails

Decision log:
  - Using boto3 for the staging-bucket upload (Mapbox stages on S3)
  - httpx for the Uploads API calls
  - Settings (including the token) are passed in at construction, never
    read from the environment inside the publisher
  - No retry: a failed step fails the run
Date: 2025-01-14
"""

import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import boto3
import click
import httpx
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError
from tqdm import tqdm

from .s05_generate_tiles import TileArchive, count_features
from .utils.config import config, get_processed_path
from .utils.exceptions import CountyMapError, EmptyFeatureCollectionError, PublishError
from .utils.mapbox_config import MapboxSettings, load_mapbox_settings

UPLOADABLE_SUFFIXES = (".mbtiles", ".geojson")


class UploadProgress:
    """Callback for tracking upload progress."""

    def __init__(self, filename: str, total_size: int):
        self.filename = filename
        self.total_size = total_size
        self.uploaded = 0
        self.pbar = tqdm(
            total=total_size,
            unit="B",
            unit_scale=True,
            desc=f"  {Path(filename).name}",
            leave=False,
        )

    def __call__(self, bytes_transferred: int):
        self.uploaded += bytes_transferred
        self.pbar.update(bytes_transferred)

    def close(self):
        self.pbar.close()


@dataclass
class StagingCredentials:
    """Temporary S3 credentials returned by the Uploads API."""

    bucket: str
    key: str
    url: str
    access_key_id: str
    secret_access_key: str
    session_token: str

    @classmethod
    def from_response(cls, payload: dict) -> "StagingCredentials":
        try:
            return cls(
                bucket=payload["bucket"],
                key=payload["key"],
                url=payload["url"],
                access_key_id=payload["accessKeyId"],
                secret_access_key=payload["secretAccessKey"],
                session_token=payload["sessionToken"],
            )
        except KeyError as e:
            raise PublishError(f"Staging credentials response is missing {e}") from e


@dataclass
class PublishResult:
    """Outcome of a tileset upload."""

    tileset_id: str
    upload_id: str
    complete: bool

    @property
    def tileset_url(self) -> str:
        return f"mapbox://{self.tileset_id}"


def default_s3_factory(credentials: StagingCredentials):
    """Create boto3 S3 client for the Mapbox staging bucket."""
    return boto3.client(
        "s3",
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key,
        aws_session_token=credentials.session_token,
        region_name="us-east-1",
    )


class MapboxPublisher:
    """
    Publish a tile archive as a Mapbox tileset.

    Usage:
        settings = load_mapbox_settings()
        publisher = MapboxPublisher(settings)
        result = publisher.publish(archive, tileset="us_counties_income")
    """

    def __init__(
        self,
        settings: MapboxSettings,
        client: Optional[httpx.Client] = None,
        s3_factory: Callable[[StagingCredentials], object] = default_s3_factory,
        poll_interval: float | None = None,
        max_wait: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings.validate_credentials()
        self.settings = settings
        self.client = client or httpx.Client(timeout=config.HTTP_TIMEOUT)
        self.s3_factory = s3_factory
        self.poll_interval = config.UPLOAD_POLL_INTERVAL if poll_interval is None else poll_interval
        self.max_wait = config.UPLOAD_MAX_WAIT if max_wait is None else max_wait
        self.sleep = sleep

    @property
    def _auth(self) -> dict:
        return {"access_token": self.settings.MAPBOX_ACCESS_TOKEN}

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = self.client.request(method, url, params=self._auth, **kwargs)
        except httpx.HTTPError as e:
            raise PublishError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise PublishError(f"Mapbox API error {response.status_code}: {message}")
        return response.json()

    def request_credentials(self) -> StagingCredentials:
        """Get temporary credentials for the staging bucket."""
        payload = self._request("POST", f"{self.settings.uploads_url}/credentials")
        return StagingCredentials.from_response(payload)

    def stage_file(self, local_path: Path, credentials: StagingCredentials) -> None:
        """Upload the archive to the staging bucket."""
        file_size = local_path.stat().st_size
        s3 = self.s3_factory(credentials)

        # Configure transfer for large files
        transfer_config = TransferConfig(
            multipart_threshold=MapboxSettings.MULTIPART_THRESHOLD,
            multipart_chunksize=MapboxSettings.MULTIPART_CHUNKSIZE,
            max_concurrency=MapboxSettings.MULTIPART_MAX_CONCURRENCY,
            use_threads=True,
        )

        size_mb = file_size / (1024 * 1024)
        print(f"  Staging {local_path.name} ({size_mb:.1f} MB)")

        progress = None
        if file_size > MapboxSettings.PROGRESS_THRESHOLD:
            progress = UploadProgress(str(local_path), file_size)
        try:
            s3.upload_file(
                str(local_path),
                credentials.bucket,
                credentials.key,
                Config=transfer_config,
                Callback=progress,
            )
        except (BotoCoreError, ClientError) as e:
            raise PublishError(f"Staging upload failed: {e}") from e
        finally:
            if progress:
                progress.close()

    def create_upload(self, credentials: StagingCredentials, tileset_id: str, name: str) -> dict:
        """Ask Mapbox to turn the staged file into a tileset."""
        return self._request(
            "POST",
            self.settings.uploads_url,
            json={"url": credentials.url, "tileset": tileset_id, "name": name},
        )

    def get_upload(self, upload_id: str) -> dict:
        return self._request("GET", f"{self.settings.uploads_url}/{upload_id}")

    def wait_for_upload(self, upload: dict) -> dict:
        """Poll an upload until it completes, fails or max_wait elapses."""
        waited = 0.0
        while not upload.get("complete") and not upload.get("error"):
            if waited >= self.max_wait:
                raise PublishError(
                    f"Upload {upload.get('id')} still processing after {self.max_wait:.0f}s"
                )
            self.sleep(self.poll_interval)
            waited += self.poll_interval
            upload = self.get_upload(upload["id"])
            print(f"  Processing: {float(upload.get('progress') or 0):.0%}")
        return upload

    def publish(
        self,
        archive: TileArchive,
        tileset: Optional[str] = None,
        name: Optional[str] = None,
    ) -> PublishResult:
        """
        Upload an archive and wait for the tileset to be ready.

        Args:
            archive: Packaged tiles (MBTiles) with a non-zero feature count
            tileset: Tileset name or <account>.<name> (settings default)
            name: Human-readable tileset name

        Returns:
            PublishResult for the finished upload
        """
        if archive.feature_count == 0:
            raise EmptyFeatureCollectionError("Hosted publish")
        if archive.path.suffix not in UPLOADABLE_SUFFIXES:
            raise PublishError(
                f"Mapbox uploads accept {UPLOADABLE_SUFFIXES}, got '{archive.path.suffix}'"
            )

        tileset_id = self.settings.tileset_id(tileset)
        name = name or archive.layer

        print("[1/3] Requesting staging credentials...")
        credentials = self.request_credentials()

        print("[2/3] Uploading archive...")
        self.stage_file(archive.path, credentials)

        print(f"[3/3] Creating tileset {tileset_id}...")
        upload = self.wait_for_upload(self.create_upload(credentials, tileset_id, name))

        if upload.get("error"):
            raise PublishError(f"Upload {upload.get('id')} failed: {upload['error']}")

        print(f"  Tileset ready: mapbox://{tileset_id}")
        return PublishResult(
            tileset_id=tileset_id,
            upload_id=upload["id"],
            complete=bool(upload.get("complete")),
        )


@click.command()
@click.option("--tileset", default=None, help="Tileset name (default MAPBOX_TILESET)")
@click.option("--name", default=None, help="Human-readable tileset name")
@click.option("--env-file", default=".env", help="File holding MAPBOX_* credentials")
def main(tileset: str | None, name: str | None, env_file: str):
    """Upload the county tile archive to Mapbox."""
    print("=" * 60)
    print("PUBLISH TILESET")
    print("=" * 60)

    archive_path = get_processed_path("tiles") / "counties.mbtiles"
    geojson_path = archive_path.with_suffix(".geojson")
    if not archive_path.exists() or not geojson_path.exists():
        print(f"Error: Tile archive not found: {archive_path}")
        print("Run 's05_generate_tiles' first.")
        sys.exit(1)

    archive = TileArchive(
        path=archive_path,
        layer=config.TILE_LAYER,
        feature_count=count_features(geojson_path),
    )

    try:
        publisher = MapboxPublisher(load_mapbox_settings(env_file))
        result = publisher.publish(archive, tileset=tileset, name=name)
    except CountyMapError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print()
    print(f"  Upload id: {result.upload_id}")
    print(f"  Tileset: {result.tileset_url}")
    print("Done.")


if __name__ == "__main__":
    main()
