"""
Tests for the hosted tileset publisher.

The Uploads API is replaced with an httpx.MockTransport and the staging
bucket with a MagicMock S3 client, so nothing leaves the process.
"""

import json
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError

from countymap.s05_generate_tiles import TileArchive
from countymap.s06_publish_tileset import MapboxPublisher, StagingCredentials
from countymap.utils.exceptions import ConfigurationError, EmptyFeatureCollectionError, PublishError
from countymap.utils.mapbox_config import MapboxSettings

CREDENTIALS = {
    "accessKeyId": "AKIA",
    "secretAccessKey": "secret",
    "sessionToken": "session",
    "bucket": "tilestream-tilesets-production",
    "key": "_pending/acme/abc123",
    "url": "https://tilestream-tilesets-production.s3.amazonaws.com/_pending/acme/abc123",
}


class FakeUploadsApi:
    """Minimal in-memory Uploads API."""

    def __init__(self, polls_until_complete: int = 2, error: str | None = None, status: int = 200):
        self.polls_until_complete = polls_until_complete
        self.error = error
        self.status = status
        self.requests: list[httpx.Request] = []
        self.polls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if self.status != 200:
            return httpx.Response(self.status, json={"message": "Not Authorized - Invalid Token"})
        if request.method == "POST" and path.endswith("/credentials"):
            return httpx.Response(200, json=CREDENTIALS)
        if request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(
                201,
                json={"id": "upl1", "tileset": body["tileset"], "complete": False, "error": None, "progress": 0},
            )

        self.polls += 1
        done = self.polls >= self.polls_until_complete
        return httpx.Response(
            200,
            json={
                "id": "upl1",
                "complete": done and not self.error,
                "error": self.error if done else None,
                "progress": 1 if done else 0.5,
            },
        )


@pytest.fixture
def settings() -> MapboxSettings:
    return MapboxSettings(MAPBOX_USERNAME="acme", MAPBOX_ACCESS_TOKEN="sk.test-token")


@pytest.fixture
def archive(tmp_path) -> TileArchive:
    path = tmp_path / "counties.mbtiles"
    path.write_bytes(b"\x00" * 1024)
    return TileArchive(path=path, layer="counties", feature_count=3143)


def make_publisher(settings, api, s3=None, max_wait=60.0):
    s3 = s3 or MagicMock()
    publisher = MapboxPublisher(
        settings,
        client=httpx.Client(transport=httpx.MockTransport(api)),
        s3_factory=lambda credentials: s3,
        poll_interval=1.0,
        max_wait=max_wait,
        sleep=lambda seconds: None,
    )
    return publisher, s3


class TestPublish:
    def test_full_flow(self, settings, archive):
        api = FakeUploadsApi()
        publisher, s3 = make_publisher(settings, api)

        result = publisher.publish(archive, tileset="us_counties_income")

        assert result.tileset_id == "acme.us_counties_income"
        assert result.tileset_url == "mapbox://acme.us_counties_income"
        assert result.upload_id == "upl1"
        assert result.complete

        s3.upload_file.assert_called_once()
        args, kwargs = s3.upload_file.call_args
        assert args == (str(archive.path), CREDENTIALS["bucket"], CREDENTIALS["key"])
        assert "Config" in kwargs

        create = api.requests[1]
        assert create.url.path == "/uploads/v1/acme"
        assert json.loads(create.content) == {
            "url": CREDENTIALS["url"],
            "tileset": "acme.us_counties_income",
            "name": "counties",
        }
        assert all(r.url.params["access_token"] == "sk.test-token" for r in api.requests)

    def test_upload_error_reported(self, settings, archive):
        publisher, _ = make_publisher(settings, FakeUploadsApi(error="Invalid MBTiles"))

        with pytest.raises(PublishError, match="Invalid MBTiles"):
            publisher.publish(archive)

    def test_rejected_token(self, settings, archive):
        publisher, s3 = make_publisher(settings, FakeUploadsApi(status=401))

        with pytest.raises(PublishError, match="401.*Invalid Token"):
            publisher.publish(archive)
        s3.upload_file.assert_not_called()

    def test_gives_up_after_max_wait(self, settings, archive):
        publisher, _ = make_publisher(settings, FakeUploadsApi(polls_until_complete=100), max_wait=3.0)

        with pytest.raises(PublishError, match="still processing"):
            publisher.publish(archive)

    def test_staging_failure(self, settings, archive):
        s3 = MagicMock()
        s3.upload_file.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
        publisher, _ = make_publisher(settings, FakeUploadsApi(), s3=s3)

        with pytest.raises(PublishError, match="Staging upload failed"):
            publisher.publish(archive)

    def test_empty_archive_fails_fast(self, settings, archive):
        api = FakeUploadsApi()
        publisher, _ = make_publisher(settings, api)
        archive.feature_count = 0

        with pytest.raises(EmptyFeatureCollectionError):
            publisher.publish(archive)
        assert api.requests == []

    def test_rejects_pmtiles(self, settings, tmp_path):
        path = tmp_path / "counties.pmtiles"
        path.write_bytes(b"PMTiles")
        publisher, _ = make_publisher(settings, FakeUploadsApi())

        with pytest.raises(PublishError, match="accept"):
            publisher.publish(TileArchive(path=path, layer="counties", feature_count=10))


def test_missing_credentials_rejected_at_construction():
    with pytest.raises(ConfigurationError, match="MAPBOX_ACCESS_TOKEN"):
        MapboxPublisher(MapboxSettings(MAPBOX_USERNAME="acme", MAPBOX_ACCESS_TOKEN=None))


def test_staging_credentials_missing_field():
    payload = dict(CREDENTIALS)
    del payload["sessionToken"]

    with pytest.raises(PublishError, match="sessionToken"):
        StagingCredentials.from_response(payload)
