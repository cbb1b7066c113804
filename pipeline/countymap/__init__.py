"""US county choropleth pipeline."""
