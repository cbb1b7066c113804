"""Tests for the colour scale and the direct (folium) render."""

import folium
import numpy as np
import pytest

from countymap.s07_render_map import (
    LABEL_FIELD,
    build_labels,
    format_label,
    render_choropleth,
    save_map,
)
from countymap.utils.color_scale import build_colormap, color_for
from countymap.utils.exceptions import CountyMapError, EmptyFeatureCollectionError

PALETTE = ["#f7fcf5", "#c7e9c0", "#74c476", "#238b45", "#00441b"]


def _rgb(hex_color: str) -> tuple[int, int, int]:
    return tuple(int(hex_color[i : i + 2], 16) for i in (1, 3, 5))


class TestColorScale:
    def test_min_and_max_hit_palette_ends(self):
        cmap = build_colormap([12.0, 40.0, 95.0], PALETTE)

        assert cmap(12.0)[:7].lower() == PALETTE[0]
        assert cmap(95.0)[:7].lower() == PALETTE[-1]

    def test_monotonic_between_ends(self):
        values = np.linspace(0, 1000, 50)
        cmap = build_colormap(values, PALETTE)

        reds = [_rgb(cmap(v))[0] for v in values]
        greens = [_rgb(cmap(v))[1] for v in values]
        assert reds == sorted(reds, reverse=True)
        assert greens == sorted(greens, reverse=True)

    def test_nulls_ignored_for_range(self):
        cmap = build_colormap([None, 5.0, float("nan"), 10.0], PALETTE)
        assert (cmap.vmin, cmap.vmax) == (5.0, 10.0)

    def test_constant_column_widened(self):
        cmap = build_colormap([7.0, 7.0], PALETTE)
        assert cmap.vmax == 8.0

    def test_no_values_rejected(self):
        with pytest.raises(ValueError, match="non-null"):
            build_colormap([None, None], PALETTE)

    def test_single_colour_palette_rejected(self):
        with pytest.raises(ValueError, match="two colours"):
            build_colormap([1.0, 2.0], ["#000000"])

    def test_color_for_null_uses_no_data(self):
        cmap = build_colormap([1.0, 2.0], PALETTE)

        assert color_for(cmap, None, "#d9d9d9") == "#d9d9d9"
        assert color_for(cmap, float("nan"), "#d9d9d9") == "#d9d9d9"
        assert color_for(cmap, 1.0, "#d9d9d9")[:7].lower() == PALETTE[0]


class TestLabels:
    def test_format_label_with_value(self):
        label = format_label(
            {"NAME": "Fulton", "STATE_NAME": "Georgia"},
            86711.0,
            "{NAME}, {STATE_NAME}: ${value:,.0f}",
        )
        assert label == "Fulton, Georgia: $86,711"

    def test_format_label_null_value(self):
        label = format_label({"NAME": "Fulton", "STATE_NAME": "Georgia"}, None, "{value}")
        assert label == "Fulton, Georgia: no data"

    def test_missing_fields_render_blank(self):
        assert format_label({}, 3.0, "{NAME}|{value:.1f}") == "|3.0"

    def test_build_labels_aligned_to_index(self, joined):
        labels = build_labels(joined, "value", "{NAME}: {value:,.0f}")

        assert labels.index.equals(joined.index)
        assert labels.iloc[0] == f"{joined['NAME'].iloc[0]}: 1,000"


class TestRenderChoropleth:
    def test_renders_map_with_tooltips(self, joined):
        m = render_choropleth(joined, "value", tooltip_template="{NAME}: {value:,.0f}")

        assert isinstance(m, folium.Map)
        html = m.get_root().render()
        assert LABEL_FIELD in html
        assert "County 001: 1,000" in html

    def test_null_values_still_drawn(self, joined):
        gdf = joined.copy()
        gdf.loc[0, "value"] = None

        html = render_choropleth(gdf, "value").get_root().render()

        assert "no data" in html

    def test_empty_collection_fails_fast(self, empty_counties):
        with pytest.raises(EmptyFeatureCollectionError, match="refusing to publish a blank map"):
            render_choropleth(empty_counties, "value")

    def test_missing_value_column(self, joined):
        with pytest.raises(CountyMapError, match="not in feature collection"):
            render_choropleth(joined, "population")

    def test_save_map_writes_html(self, joined, tmp_path):
        path = save_map(render_choropleth(joined, "value"), tmp_path / "web" / "map.html")

        assert path.exists()
        assert "<html>" in path.read_text().lower() or "<!doctype html>" in path.read_text().lower()
