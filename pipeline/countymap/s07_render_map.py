"""
07 - Render the choropleth directly in the browser widget.

Purpose: Skip tiling and hand the simplified county polygons straight to a
         Leaflet map (folium) with inline styling
Input:
  - data/processed/counties_simplified.parquet
Output:
  - data/processed/web/counties_map.html

Decision log:
  - Linear colour scale over one attribute, shared with the legend
  - Fixed thin white stroke, darker outline on hover
  - Tooltip text is built per feature from a format template before the
    GeoJSON is handed to the widget, so number formatting stays in Python
  - Empty collections fail instead of producing a blank map
Date: 2025-01-14
"""

import sys
from pathlib import Path
from typing import Sequence

import click
import folium
import geopandas as gpd
import pandas as pd

from .utils.color_scale import build_colormap, color_for
from .utils.config import config, get_processed_path
from .utils.exceptions import CountyMapError
from .utils.geometry_utils import compute_center, ensure_not_empty, get_bounding_box, to_wgs84

LABEL_FIELD = "_label"
NO_DATA_TEMPLATE = "{NAME}, {STATE_NAME}: no data"

STROKE_STYLE = {"color": "#ffffff", "weight": 0.3, "fillOpacity": 0.85}
HIGHLIGHT_STYLE = {"color": "#222222", "weight": 1.5, "fillOpacity": 0.95}


class _BlankMissing(dict):
    """format_map mapping that renders unknown fields as empty strings."""

    def __missing__(self, key):
        return ""


def format_label(properties: dict, value, template: str, no_data_template: str = NO_DATA_TEMPLATE) -> str:
    """Interpolate one feature's tooltip label."""
    fields = _BlankMissing({k: v for k, v in properties.items() if not _is_null(v)})
    if _is_null(value):
        return no_data_template.format_map(fields)
    fields["value"] = value
    return template.format_map(fields)


def _is_null(value) -> bool:
    return value is None or (not isinstance(value, (list, dict)) and pd.isna(value))


def build_labels(
    gdf: gpd.GeoDataFrame,
    value_column: str,
    template: str,
    no_data_template: str = NO_DATA_TEMPLATE,
) -> pd.Series:
    """Tooltip label for every feature, aligned to the frame index."""
    properties = pd.DataFrame(gdf.drop(columns=gdf.geometry.name))
    return pd.Series(
        [
            format_label(row, row.get(value_column), template, no_data_template)
            for row in properties.to_dict(orient="records")
        ],
        index=gdf.index,
        dtype="object",
    )


def render_choropleth(
    gdf: gpd.GeoDataFrame,
    value_column: str,
    palette: Sequence[str] | None = None,
    caption: str | None = None,
    tooltip_template: str | None = None,
    no_data_template: str = NO_DATA_TEMPLATE,
    projection: str = "EPSG3857",
    tiles: str | None = "cartodbpositron",
) -> folium.Map:
    """
    Build a folium choropleth of one attribute.

    Args:
        gdf: County collection with the value column
        value_column: Attribute driving the fill colour
        palette: Low-to-high hex colours (config default)
        caption: Legend title (config default)
        tooltip_template: str.format template; "{value}" is the mapped
            attribute, other fields are feature properties
        no_data_template: Label used when the value is null
        projection: Leaflet CRS name ("EPSG3857", "EPSG4326", "Simple")
        tiles: Basemap tiles, or None for no basemap

    Returns:
        folium.Map ready to save or embed
    """
    ensure_not_empty(gdf, "Direct render")
    if value_column not in gdf.columns:
        raise CountyMapError(f"Value column '{value_column}' not in feature collection")

    gdf = to_wgs84(gdf)
    gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
    ensure_not_empty(gdf, "Direct render")

    palette = list(palette or config.PALETTE)
    colormap = build_colormap(gdf[value_column], palette, caption or config.LEGEND_CAPTION)

    export = gdf.copy()
    export[LABEL_FIELD] = build_labels(
        gdf, value_column, tooltip_template or config.TOOLTIP_TEMPLATE, no_data_template
    )
    keep = [c for c in (config.JOIN_KEY, value_column, LABEL_FIELD) if c in export.columns]
    export = export[keep + [export.geometry.name]]

    minx, miny, maxx, maxy = get_bounding_box(export)
    m = folium.Map(
        location=list(compute_center(export)),
        zoom_start=4,
        tiles=tiles,
        crs=projection,
    )

    def style_function(feature):
        value = feature["properties"].get(value_column)
        return {"fillColor": color_for(colormap, value, config.NO_DATA_COLOR), **STROKE_STYLE}

    folium.GeoJson(
        export.to_json(drop_id=True),
        name=caption or config.LEGEND_CAPTION,
        style_function=style_function,
        highlight_function=lambda feature: HIGHLIGHT_STYLE,
        tooltip=folium.GeoJsonTooltip(fields=[LABEL_FIELD], labels=False, sticky=True),
    ).add_to(m)

    colormap.add_to(m)
    m.fit_bounds([[miny, minx], [maxy, maxx]])
    return m


def save_map(m: folium.Map, output_path: Path) -> Path:
    """Write the map as a standalone HTML page."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    m.save(str(output_path))
    print(f"  Saved {output_path} ({output_path.stat().st_size / 1e6:.1f} MB)")
    return output_path


@click.command()
@click.option("--value-column", default=None, help="Attribute driving the fill colour")
@click.option("--caption", default=None, help="Legend title")
@click.option("--projection", type=click.Choice(["EPSG3857", "EPSG4326"]), default="EPSG3857")
def main(value_column: str | None, caption: str | None, projection: str):
    """Render the county choropleth as a standalone HTML map."""
    print("=" * 60)
    print("Direct Choropleth Render")
    print("=" * 60)

    input_path = get_processed_path() / "counties_simplified.parquet"
    if not input_path.exists():
        print(f"ERROR: Simplified collection not found: {input_path}")
        sys.exit(1)

    gdf = gpd.read_parquet(input_path)
    try:
        m = render_choropleth(
            gdf,
            value_column or config.VALUE_COLUMN,
            caption=caption,
            projection=projection,
        )
    except (CountyMapError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    save_map(m, get_processed_path("web") / "counties_map.html")


if __name__ == "__main__":
    main()
