"""Tests for Mapbox settings."""

import pytest

from countymap.utils.exceptions import ConfigurationError
from countymap.utils.mapbox_config import MapboxSettings, load_mapbox_settings


@pytest.fixture
def settings():
    return MapboxSettings(MAPBOX_USERNAME="acme", MAPBOX_ACCESS_TOKEN="sk.secret")


class TestTilesetId:
    def test_uses_default_name(self, settings):
        assert settings.tileset_id() == "acme.us_counties"

    def test_accepts_qualified_name(self, settings):
        assert settings.tileset_id("acme.income") == "acme.income"

    def test_rejects_other_account(self, settings):
        with pytest.raises(ConfigurationError, match="does not belong"):
            settings.tileset_id("other.income")

    def test_rejects_long_name(self, settings):
        with pytest.raises(ConfigurationError, match="exceeds 32"):
            settings.tileset_id("x" * 33)


class TestCredentials:
    def test_missing_listed(self):
        settings = MapboxSettings(MAPBOX_USERNAME=None, MAPBOX_ACCESS_TOKEN=None)

        with pytest.raises(ConfigurationError, match="MAPBOX_USERNAME, MAPBOX_ACCESS_TOKEN"):
            settings.validate_credentials()

    def test_uploads_url(self, settings):
        assert settings.uploads_url == "https://api.mapbox.com/uploads/v1/acme"

    def test_page_token_prefers_public(self, settings):
        assert settings.page_token == "sk.secret"
        public = MapboxSettings(MAPBOX_USERNAME="acme", MAPBOX_ACCESS_TOKEN="sk.secret", MAPBOX_PUBLIC_TOKEN="pk.public")
        assert public.page_token == "pk.public"


def test_load_from_env_file(tmp_path, monkeypatch):
    for name in ("MAPBOX_USERNAME", "MAPBOX_ACCESS_TOKEN", "MAPBOX_TILESET"):
        monkeypatch.delenv(name, raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("MAPBOX_USERNAME=acme\nMAPBOX_ACCESS_TOKEN=sk.file\nMAPBOX_TILESET=income\n")

    settings = load_mapbox_settings(env_file)

    assert settings.tileset_id() == "acme.income"
    assert settings.MAPBOX_ACCESS_TOKEN == "sk.file"
