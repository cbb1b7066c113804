"""
Linear colour scale for choropleth fills.

Purpose: Map one numeric attribute onto a palette so the minimum sits on the
         first palette colour and the maximum on the last
Decision log:
  - branca LinearColormap, the same object folium renders as a legend
  - Nulls get a fixed "no data" colour instead of an interpolated one
  - A constant column is widened by one unit so the scale stays valid
Date: 2025-01-14
"""

from typing import Iterable, Sequence

import pandas as pd
from branca.colormap import LinearColormap


def build_colormap(
    values: Iterable[float],
    palette: Sequence[str],
    caption: str = "",
) -> LinearColormap:
    """
    Build a linear colormap spanning the observed value range.

    Args:
        values: Attribute values (nulls ignored)
        palette: Ordered hex colours, low to high
        caption: Legend title

    Returns:
        LinearColormap with vmin/vmax set to the data range
    """
    series = pd.to_numeric(pd.Series(list(values), dtype="float64"), errors="coerce").dropna()
    if series.empty:
        raise ValueError("Cannot build a colour scale without any non-null values")
    if len(palette) < 2:
        raise ValueError("Palette needs at least two colours")

    vmin = float(series.min())
    vmax = float(series.max())
    if vmin == vmax:
        vmax = vmin + 1.0

    return LinearColormap(list(palette), vmin=vmin, vmax=vmax, caption=caption)


def color_for(colormap: LinearColormap, value, no_data_color: str) -> str:
    """Hex colour for a single value, or the no-data colour for nulls."""
    if value is None or pd.isna(value):
        return no_data_color
    return colormap(float(value))
