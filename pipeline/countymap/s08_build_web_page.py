"""
08 - Build the served page for the hosted tileset.

Purpose: Produce a standalone HTML page that loads the hosted style in
         Mapbox GL JS, adds the county tileset with a data-driven fill,
         a legend and a hover label
Input:
  - data/processed/counties_simplified.parquet (value range for the legend)
  - MAPBOX_* settings (style id, tileset, public token)
Output:
  - data/processed/web/counties_hosted.html

Decision log:
  - The hosted style is referenced by id only, never edited
  - Fill colours use the same palette and min/max as the direct render
  - Hover text comes from the pre-formatted _label property in the tiles
  - string.Template keeps the page dependency-free; every value is
    JSON-encoded before substitution
Date: 2025-01-14
"""

import json
import sys
from html import escape
from string import Template
from typing import Sequence

import click
import geopandas as gpd
import pandas as pd

from .s07_render_map import LABEL_FIELD
from .utils.config import config, get_processed_path
from .utils.exceptions import CountyMapError
from .utils.geometry_utils import ensure_not_empty
from .utils.mapbox_config import load_mapbox_settings

MAPBOX_GL_VERSION = "3.4.0"

PAGE_TEMPLATE = Template(
    """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>$title</title>
<meta name="viewport" content="initial-scale=1,maximum-scale=1,user-scalable=no">
<script src="https://api.mapbox.com/mapbox-gl-js/v$gl_version/mapbox-gl.js"></script>
<link href="https://api.mapbox.com/mapbox-gl-js/v$gl_version/mapbox-gl.css" rel="stylesheet">
<style>
  body { margin: 0; padding: 0; font-family: sans-serif; }
  #map { position: absolute; top: 0; bottom: 0; width: 100%; }
  #legend { position: absolute; bottom: 30px; right: 10px; background: #fff; padding: 8px 10px; border-radius: 4px; font-size: 12px; box-shadow: 0 1px 2px rgba(0,0,0,0.2); }
  #legend .bar { height: 10px; width: 200px; margin: 4px 0; background: linear-gradient(to right, $gradient); }
  #legend .ticks { display: flex; justify-content: space-between; }
</style>
</head>
<body>
<div id="map"></div>
<div id="legend">
  <div>$caption</div>
  <div class="bar"></div>
  <div class="ticks"><span>$vmin_label</span><span>$vmax_label</span></div>
</div>
<script>
mapboxgl.accessToken = $token;
const map = new mapboxgl.Map({
  container: "map",
  style: $style_url,
  center: [-98.5, 39.8],
  zoom: 3,
  projection: $projection
});
map.on("load", function () {
  map.addSource("counties", { type: "vector", url: $tileset_url });
  map.addLayer({
    id: "counties-fill",
    type: "fill",
    source: "counties",
    "source-layer": $layer,
    paint: { "fill-color": $fill_color, "fill-opacity": 0.85 }
  });
  map.addLayer({
    id: "counties-line",
    type: "line",
    source: "counties",
    "source-layer": $layer,
    paint: { "line-color": "#ffffff", "line-width": 0.3 }
  });
  map.addLayer({
    id: "counties-hover",
    type: "line",
    source: "counties",
    "source-layer": $layer,
    paint: { "line-color": "#222222", "line-width": 1.5 },
    filter: ["==", ["get", $key], ""]
  });
  const popup = new mapboxgl.Popup({ closeButton: false, closeOnClick: false });
  map.on("mousemove", "counties-fill", function (e) {
    const props = e.features[0].properties;
    map.getCanvas().style.cursor = "pointer";
    map.setFilter("counties-hover", ["==", ["get", $key], props[$key]]);
    popup.setLngLat(e.lngLat).setText(props[$label_field] || props[$key]).addTo(map);
  });
  map.on("mouseleave", "counties-fill", function () {
    map.getCanvas().style.cursor = "";
    map.setFilter("counties-hover", ["==", ["get", $key], ""]);
    popup.remove();
  });
});
</script>
</body>
</html>
"""
)


def build_fill_expression(
    value_column: str,
    vmin: float,
    vmax: float,
    palette: Sequence[str],
    no_data_color: str,
) -> list:
    """
    Mapbox GL style expression interpolating the palette from vmin to vmax.

    Stops are spaced evenly, so vmin gets palette[0] and vmax palette[-1].
    Features whose value is not a number get the no-data colour.
    """
    if len(palette) < 2:
        raise ValueError("Palette needs at least two colours")
    if vmax <= vmin:
        vmax = vmin + 1.0

    step = (vmax - vmin) / (len(palette) - 1)
    stops: list = []
    for i, color in enumerate(palette):
        stops.extend([vmin + i * step, color])

    return [
        "case",
        ["==", ["typeof", ["get", value_column]], "number"],
        ["interpolate", ["linear"], ["get", value_column], *stops],
        no_data_color,
    ]


def build_hosted_map_html(
    style_url: str,
    access_token: str,
    tileset: str,
    layer: str,
    value_column: str,
    vmin: float,
    vmax: float,
    palette: Sequence[str] | None = None,
    caption: str | None = None,
    title: str = "US county map",
    projection: str = "albers",
    key: str = "GEOID",
) -> str:
    """Render the hosted-tileset page as an HTML string."""
    palette = list(palette or config.PALETTE)
    caption = caption or config.LEGEND_CAPTION
    tileset_url = tileset if tileset.startswith("mapbox://") else f"mapbox://{tileset}"
    fill = build_fill_expression(value_column, vmin, vmax, palette, config.NO_DATA_COLOR)

    return PAGE_TEMPLATE.substitute(
        title=escape(title),
        gl_version=MAPBOX_GL_VERSION,
        gradient=", ".join(palette),
        caption=escape(caption),
        vmin_label=f"{vmin:,.0f}",
        vmax_label=f"{vmax:,.0f}",
        token=json.dumps(access_token),
        style_url=json.dumps(style_url),
        projection=json.dumps(projection),
        tileset_url=json.dumps(tileset_url),
        layer=json.dumps(layer),
        fill_color=json.dumps(fill),
        key=json.dumps(key),
        label_field=json.dumps(LABEL_FIELD),
    )


def value_range(gdf: gpd.GeoDataFrame, value_column: str) -> tuple[float, float]:
    """Observed (min, max) of the mapped column, ignoring nulls."""
    ensure_not_empty(gdf, "Hosted page")
    values = pd.to_numeric(gdf[value_column], errors="coerce").dropna()
    if values.empty:
        raise CountyMapError(f"'{value_column}' has no numeric values to build a legend from")
    return float(values.min()), float(values.max())


@click.command()
@click.option("--value-column", default=None, help="Attribute driving the fill colour")
@click.option("--env-file", default=".env", help="File holding MAPBOX_* settings")
def main(value_column: str | None, env_file: str):
    """Build the hosted-tileset web page."""
    print("=" * 60)
    print("Hosted Map Page")
    print("=" * 60)

    value_column = value_column or config.VALUE_COLUMN
    input_path = get_processed_path() / "counties_simplified.parquet"
    if not input_path.exists():
        print(f"ERROR: Simplified collection not found: {input_path}")
        sys.exit(1)

    try:
        settings = load_mapbox_settings(env_file)
        settings.validate_credentials()
        vmin, vmax = value_range(gpd.read_parquet(input_path), value_column)
        html = build_hosted_map_html(
            style_url=settings.MAPBOX_STYLE_URL,
            access_token=settings.page_token,
            tileset=settings.tileset_id(),
            layer=config.TILE_LAYER,
            value_column=value_column,
            vmin=vmin,
            vmax=vmax,
        )
    except CountyMapError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    output_path = get_processed_path("web") / "counties_hosted.html"
    output_path.write_text(html)
    print(f"  Saved {output_path}")


if __name__ == "__main__":
    main()
