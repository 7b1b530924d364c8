"""
Tests for county and state aggregation in aggregate.py.

Aggregation must sum counts first and normalize second, so regional values
are population-weighted rather than averages of tract averages.

Run: uv run pytest tests/test_aggregate.py -v
"""

import polars as pl
import pytest

from census_clusters.aggregate import aggregate, normalize_by_population, sum_by

# ── Fixtures ─────────────────────────────────────────────────────────────────


def _clean() -> pl.DataFrame:
    """Already-cleaned tracts: counts and population-weighted income."""
    return pl.DataFrame({
        "CensusTract": [1, 2, 3, 4],
        "State": ["Kansas", "Kansas", "Kansas", "Iowa"],
        "County": ["Allen", "Allen", "Butler", "Allen"],
        "county_key": ["Kansas|Allen", "Kansas|Allen", "Kansas|Butler", "Iowa|Allen"],
        "TotalPop": [100, 300, 100, 50],
        "Poverty": [10, 60, 30, 5],
        "Income": [5e6, 18e6, 4e6, 2e6],
    })


class TestSumBy:
    """Summing count and weighted fields within a grouping key."""

    def test_sums_within_groups(self):
        out = sum_by(_clean(), ["State"])
        assert out["State"].to_list() == ["Iowa", "Kansas"]
        assert out["TotalPop"].to_list() == [50, 500]
        assert out["Poverty"].to_list() == [5, 100]

    def test_tract_id_not_summed(self):
        """Tract identifiers are meaningless once summed."""
        assert "CensusTract" not in sum_by(_clean(), ["State"]).columns


class TestNormalize:
    """Dividing summed fields by the group population."""

    def test_divides_by_population(self):
        df = pl.DataFrame({"State": ["A"], "TotalPop": [200], "Poverty": [50]})
        out = normalize_by_population(df)
        assert out["Poverty"].item() == pytest.approx(0.25)
        assert out["TotalPop"].item() == 200


class TestAggregate:
    """County and state roll-ups of clean tracts."""

    def test_state_level(self):
        out = aggregate(_clean(), "state")
        kansas = out.filter(pl.col("State") == "Kansas").row(0, named=True)
        assert kansas["TotalPop"] == 500
        assert kansas["Poverty"] == pytest.approx(0.2)
        # Weighted: 27e6 / 500, not the mean of tract incomes
        assert kansas["Income"] == pytest.approx(54000.0)

    def test_county_level_keeps_same_name_counties_apart(self):
        """Two states each with an Allen county stay two rows."""
        out = aggregate(_clean(), "county")
        assert out.height == 3
        assert set(out["county_key"].to_list()) == {
            "Kansas|Allen", "Kansas|Butler", "Iowa|Allen",
        }
        allen = out.filter(pl.col("county_key") == "Kansas|Allen").row(0, named=True)
        assert allen["State"] == "Kansas"
        assert allen["County"] == "Allen"
        assert allen["TotalPop"] == 400
        assert allen["Poverty"] == pytest.approx(70 / 400)

    def test_state_population_is_sum_of_counties(self):
        """Summing counties then states matches summing tracts directly."""
        counties = aggregate(_clean(), "county")
        states = aggregate(_clean(), "state")
        by_state = counties.group_by("State").agg(pl.col("TotalPop").sum()).sort("State")
        assert by_state["TotalPop"].to_list() == states["TotalPop"].to_list()

    def test_unknown_level_raises(self):
        with pytest.raises(ValueError, match="Unknown aggregation level"):
            aggregate(_clean(), "tract")
