"""
County Map Explorer - Streamlit app for browsing the choropleth and its data.

Usage:
    uv run streamlit run countymap/app_explore.py

Features:
    - Map tab: Direct folium render of the simplified counties
    - Hosted tiles tab: Mapbox GL page over the published tileset
    - Data tab: Filterable county table with CSV download
    - Validation tab: Result of the last validation run
"""

import json

import duckdb
import geopandas as gpd
import streamlit as st
import streamlit.components.v1 as components

from countymap.s07_render_map import render_choropleth
from countymap.s08_build_web_page import build_hosted_map_html, value_range
from countymap.utils.config import config
from countymap.utils.exceptions import CountyMapError
from countymap.utils.mapbox_config import load_mapbox_settings

SIMPLIFIED_PATH = config.PROCESSED_DIR / "counties_simplified.parquet"
VALIDATION_REPORT = config.PROCESSED_DIR / "validation_report.json"


@st.cache_data
def load_counties_table():
    """Load the county attributes (no geometry) using DuckDB."""
    if not SIMPLIFIED_PATH.exists():
        return None
    return duckdb.query(f"SELECT * EXCLUDE (geometry) FROM '{SIMPLIFIED_PATH}'").df()


@st.cache_resource
def load_counties():
    if not SIMPLIFIED_PATH.exists():
        return None
    return gpd.read_parquet(SIMPLIFIED_PATH)


@st.cache_data
def load_validation_report():
    """Load the most recent validation report JSON."""
    if not VALIDATION_REPORT.exists():
        return None
    return json.loads(VALIDATION_REPORT.read_text())


def numeric_columns(df) -> list[str]:
    return [c for c in df.columns if df[c].dtype.kind in "fi"]


def render_direct_map(value_column: str):
    """Render the Map tab."""
    st.header("Direct render")

    gdf = load_counties()
    if gdf is None:
        st.error("counties_simplified.parquet not found")
        return

    try:
        m = render_choropleth(gdf, value_column)
    except (CountyMapError, ValueError) as e:
        st.error(str(e))
        return
    components.html(m.get_root().render(), height=650)


def render_hosted_map(value_column: str):
    """Render the Hosted tiles tab."""
    st.header("Hosted tileset")

    gdf = load_counties()
    if gdf is None:
        st.error("counties_simplified.parquet not found")
        return

    settings = load_mapbox_settings()
    if not settings.page_token or not settings.MAPBOX_USERNAME:
        st.info("Set MAPBOX_USERNAME and MAPBOX_PUBLIC_TOKEN in .env to view the hosted tileset.")
        return

    try:
        vmin, vmax = value_range(gdf, value_column)
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
        st.error(str(e))
        return
    components.html(html, height=650)


def render_data():
    """Render the Data browser tab."""
    st.header("County table")

    counties = load_counties_table()
    if counties is None:
        st.error("counties_simplified.parquet not found")
        return

    col1, col2 = st.columns(2)

    with col1:
        state_column = "STATE_NAME" if "STATE_NAME" in counties.columns else "STATEFP"
        states = ["All"] + sorted(counties[state_column].dropna().unique().tolist())
        selected_state = st.selectbox("State", states)

    with col2:
        search = st.text_input("Search by name")

    filtered = counties.copy()
    if selected_state != "All":
        filtered = filtered[filtered[state_column] == selected_state]
    if search and "NAME" in filtered.columns:
        filtered = filtered[filtered["NAME"].str.contains(search, case=False, na=False)]

    st.write(f"Showing {len(filtered):,} of {len(counties):,} counties")
    st.dataframe(filtered.sort_values(config.JOIN_KEY), use_container_width=True, height=500)
    st.download_button(
        "Download CSV",
        filtered.to_csv(index=False).encode("utf-8"),
        file_name="counties.csv",
        mime="text/csv",
    )


def render_validation():
    """Render the Validation tab."""
    st.header("Validation")

    report = load_validation_report()
    if not report:
        st.info(
            "No validation report found. Run: "
            "`uv run python -m countymap.s03b_validate_joined -o data/processed/validation_report.json`"
        )
        return

    cols = st.columns(3)
    cols[0].metric("Errors", report["summary"]["total_errors"])
    cols[1].metric("Warnings", report["summary"]["total_warnings"])
    cols[2].metric("Passed", "Yes" if report["summary"]["passed"] else "No")
    st.caption(f"Report timestamp: {report['timestamp']}")

    details = report.get("schema_validation", {})
    for err in details.get("errors", []):
        st.error(err)
    for warn in details.get("warnings", []):
        st.warning(warn)


def main():
    st.set_page_config(
        page_title="County Map Explorer",
        layout="wide",
    )

    st.title("County Map Explorer")

    table = load_counties_table()
    columns = numeric_columns(table) if table is not None else []
    if config.VALUE_COLUMN in columns:
        columns.remove(config.VALUE_COLUMN)
        columns.insert(0, config.VALUE_COLUMN)
    value_column = st.sidebar.selectbox("Mapped attribute", columns or [config.VALUE_COLUMN])

    tab1, tab2, tab3, tab4 = st.tabs(["Map", "Hosted tiles", "Data", "Validation"])

    with tab1:
        render_direct_map(value_column)

    with tab2:
        render_hosted_map(value_column)

    with tab3:
        render_data()

    with tab4:
        render_validation()


if __name__ == "__main__":
    main()
