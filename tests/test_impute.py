"""
Tests for hierarchical mean imputation in impute.py.

Covers the county-then-state fallback order, NaN handling, the per-resolver
fill report, and MissingDataError when every fallback is exhausted.

Run: uv run pytest tests/test_impute.py -v
"""

import polars as pl
import pytest

from census_clusters.errors import MissingDataError
from census_clusters.impute import GroupMeanResolver, impute_missing, null_counts

# ── Fixtures ─────────────────────────────────────────────────────────────────


def _frame(values: list, states: list[str] | None = None, counties: list[str] | None = None):
    n = len(values)
    states = states or ["S1"] * n
    counties = counties or ["X"] * n
    return pl.DataFrame({
        "State": states,
        "County": counties,
        "county_key": [f"{s}|{c}" for s, c in zip(states, counties)],
        "Poverty": values,
    })


# ── null_counts() ────────────────────────────────────────────────────────────


class TestNullCounts:
    """Per-column null counts used by the fill report."""

    def test_only_columns_with_nulls(self):
        df = pl.DataFrame({"a": [1, None, None], "b": [1, 2, 3]})
        assert null_counts(df, ["a", "b"]) == {"a": 2}

    def test_no_nulls(self):
        df = pl.DataFrame({"a": [1.0, 2.0]})
        assert null_counts(df, ["a"]) == {}


# ── GroupMeanResolver ────────────────────────────────────────────────────────


class TestGroupMeanResolver:
    """One resolver pass: fill from the mean over a grouping key."""

    def test_fills_with_group_mean(self):
        df = pl.DataFrame({
            "g": ["a", "a", "a", "b", "b"],
            "v": [1.0, 3.0, None, 10.0, None],
        })
        out = GroupMeanResolver(key="g", label="group").resolve(df, ["v"])
        assert out["v"].to_list() == [1.0, 3.0, 2.0, 10.0, 10.0]

    def test_group_without_values_stays_null(self):
        """A group with no values has no mean to offer."""
        df = pl.DataFrame({"g": ["a", "b"], "v": [1.0, None]})
        out = GroupMeanResolver(key="g", label="group").resolve(df, ["v"])
        assert out["v"].to_list() == [1.0, None]

    def test_null_key_rows_are_not_a_group(self):
        """Rows with no key must not share a mean with each other."""
        df = pl.DataFrame({"g": [None, None, "a"], "v": [None, 1000.0, 4.0]})
        out = GroupMeanResolver(key="g", label="group").resolve(df, ["v"])
        assert out["v"].to_list() == [None, 1000.0, 4.0]


# ── impute_missing() ─────────────────────────────────────────────────────────


class TestImputeMissing:
    """Ordered county-then-state fallback and the fill report."""

    def test_no_missing_values_unchanged(self):
        df = _frame([10.0, 20.0])
        out, filled = impute_missing(df, ["Poverty"])
        assert out["Poverty"].to_list() == [10.0, 20.0]
        assert filled == {}

    def test_county_mean_used_first(self):
        """The county mean wins even when the state mean differs."""
        df = _frame([10, None, 30, 90], counties=["X", "X", "X", "Y"])
        out, filled = impute_missing(df, ["Poverty"])
        assert out["Poverty"][1] == pytest.approx(20.0)
        assert filled == {"county mean": {"Poverty": 1}}

    def test_state_mean_when_county_has_no_values(self):
        """A county whose only tract is missing falls back to the state mean."""
        df = _frame([10.0, None, 30.0, None], counties=["X", "X", "X", "Y"])
        out, filled = impute_missing(df, ["Poverty"])
        assert out["Poverty"].to_list() == pytest.approx([10.0, 20.0, 30.0, 20.0])
        assert filled == {"county mean": {"Poverty": 1}, "state mean": {"Poverty": 1}}

    def test_other_states_do_not_leak(self):
        """A same-named county in another state is a different county."""
        df = _frame(
            [None, 50.0, 5.0],
            states=["S1", "S1", "S2"],
            counties=["X", "Y", "X"],
        )
        out, _ = impute_missing(df, ["Poverty"])
        assert out["Poverty"][0] == pytest.approx(50.0)

    def test_unknown_county_uses_own_state_mean(self):
        """Tracts with no county in different states must not pool together."""
        df = pl.DataFrame({
            "State": ["A", "A", "B", "B"],
            "County": [None, "x", None, "y"],
            "county_key": [None, "A|x", None, "B|y"],
            "Poverty": [None, 10.0, 1000.0, 5.0],
        })
        out, filled = impute_missing(df, ["Poverty"])
        assert out["Poverty"][0] == pytest.approx(10.0)
        assert filled == {"state mean": {"Poverty": 1}}

    def test_nan_treated_as_missing(self):
        df = _frame([10.0, float("nan"), 30.0])
        out, filled = impute_missing(df, ["Poverty"])
        assert out["Poverty"][1] == pytest.approx(20.0)
        assert filled["county mean"] == {"Poverty": 1}

    def test_integer_column_comes_back_float(self):
        df = _frame([10, None, 30])
        out, _ = impute_missing(df, ["Poverty"])
        assert out.schema["Poverty"] == pl.Float64

    def test_unresolvable_raises(self):
        df = _frame([None, None], states=["S1", "S1"], counties=["X", "Y"])
        with pytest.raises(MissingDataError) as exc_info:
            impute_missing(df, ["Poverty"])
        assert exc_info.value.columns == {"Poverty": 2}
        assert "Poverty" in str(exc_info.value)

    def test_custom_resolvers(self):
        """With only the county resolver, a county-wide gap is unresolvable."""
        df = _frame([10.0, None], counties=["X", "Y"])
        resolvers = (GroupMeanResolver(key="county_key", label="county mean"),)
        with pytest.raises(MissingDataError):
            impute_missing(df, ["Poverty"], resolvers)
