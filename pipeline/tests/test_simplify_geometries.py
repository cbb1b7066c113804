"""Tests for county geometry simplification."""

import pytest
import shapely

from countymap.s04_simplify_geometries import simplify_counties
from countymap.utils.geometry_utils import count_vertices

requires_coverage = pytest.mark.skipif(
    shapely.geos_version < (3, 12, 0),
    reason="coverage_simplify needs GEOS >= 3.12",
)


class TestDouglasPeucker:
    def test_removes_vertices(self, counties):
        result = simplify_counties(counties, 500, method="douglas-peucker")

        assert result.vertices_after < result.vertices_before
        assert 0 < result.reduction < 1
        assert len(result.counties) == len(counties)

    def test_idempotent_at_same_tolerance(self, counties):
        once = simplify_counties(counties, 500, method="douglas-peucker")
        twice = simplify_counties(once.counties, 500, method="douglas-peucker")

        assert twice.vertices_after == once.vertices_after
        for a, b in zip(once.counties.geometry, twice.counties.geometry):
            assert a.equals_exact(b, tolerance=1e-6)

    def test_keeps_crs_attributes_and_order(self, counties):
        result = simplify_counties(counties, 500, method="douglas-peucker")

        assert result.counties.crs == counties.crs
        assert result.counties["GEOID"].tolist() == counties["GEOID"].tolist()
        assert result.counties["NAME"].tolist() == counties["NAME"].tolist()

    def test_does_not_mutate_input(self, counties):
        before = count_vertices(counties)
        simplify_counties(counties, 500, method="douglas-peucker")
        assert count_vertices(counties) == before


@requires_coverage
class TestCoverage:
    def test_neighbours_stay_adjacent_without_overlap(self, counties):
        result = simplify_counties(counties, 500, method="coverage")
        geoms = list(result.counties.geometry)

        assert result.vertices_after < result.vertices_before
        assert geoms[0].intersects(geoms[1])
        assert geoms[0].intersection(geoms[1]).area == pytest.approx(0, abs=1e-12)
        union = shapely.union_all(geoms)
        assert union.area == pytest.approx(sum(g.area for g in geoms), rel=1e-7)

    def test_idempotent_at_same_tolerance(self, counties):
        once = simplify_counties(counties, 500, method="coverage")
        twice = simplify_counties(once.counties, 500, method="coverage")

        assert twice.vertices_after == once.vertices_after


class TestEdgeCases:
    def test_zero_tolerance_returns_copy(self, counties):
        result = simplify_counties(counties, 0, method="douglas-peucker")

        assert result.vertices_after == result.vertices_before
        assert result.counties is not counties

    def test_empty_collection(self, empty_counties):
        result = simplify_counties(empty_counties, 500, method="douglas-peucker")

        assert len(result.counties) == 0
        assert result.reduction == 0.0

    def test_collapsed_polygon_keeps_original(self, county_grid):
        tiny = county_grid(n_cols=1, n_rows=1, size=0.0001, densify=None)

        result = simplify_counties(tiny, 50_000, method="douglas-peucker")

        assert not result.counties.geometry.iloc[0].is_empty

    def test_null_geometry_passes_through(self, counties):
        with_gap = counties.copy()
        with_gap.loc[0, "geometry"] = None

        result = simplify_counties(with_gap, 500, method="douglas-peucker")

        assert result.counties.geometry.iloc[0] is None
        assert len(result.counties) == len(counties)

    def test_rejects_negative_tolerance(self, counties):
        with pytest.raises(ValueError, match="non-negative"):
            simplify_counties(counties, -1, method="douglas-peucker")

    def test_rejects_unknown_method(self, counties):
        with pytest.raises(ValueError, match="Unknown simplification method"):
            simplify_counties(counties, 500, method="visvalingam")
