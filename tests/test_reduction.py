"""
Tests for standardization and PCA in reduction.py.

Covers the component selection rules, full-rank reconstruction, PC1
orientation, and the frame helpers.

Run: uv run pytest tests/test_reduction.py -v
"""

import numpy as np
import polars as pl
import pytest

from census_clusters.reduction import (
    explained_variance_frame,
    fit_reduction,
    loadings_frame,
    orient_pc1,
    reconstruct,
    scores_frame,
    select_n_components,
    standardize,
)

# ── Fixtures ─────────────────────────────────────────────────────────────────


def _features(n: int = 10, p: int = 4, seed: int = 0) -> tuple[pl.DataFrame, list[str]]:
    rng = np.random.default_rng(seed)
    latent = rng.normal(size=(n, 1))
    X = latent @ rng.normal(size=(1, p)) + rng.normal(scale=0.5, size=(n, p))
    columns = [f"f{i}" for i in range(p)]
    df = pl.DataFrame({"State": [f"S{i:02d}" for i in range(n)]}).with_columns(
        pl.Series(c, X[:, i]) for i, c in enumerate(columns)
    )
    return df, columns


# ── standardize() ────────────────────────────────────────────────────────────


class TestStandardize:
    """Column scaling before PCA."""

    def test_zero_mean_unit_variance(self):
        X = np.array([[1.0, 10.0], [2.0, 20.0], [3.0, 60.0]])
        Z, _ = standardize(X)
        np.testing.assert_allclose(Z.mean(axis=0), 0.0, atol=1e-12)
        np.testing.assert_allclose(Z.std(axis=0), 1.0)


# ── select_n_components() ────────────────────────────────────────────────────


class TestSelectNComponents:
    """Variance-floor and cumulative-target component rules."""

    def test_leading_run_above_floor(self):
        assert select_n_components(np.array([0.6, 0.3, 0.06, 0.04])) == 3

    def test_stops_at_first_small_component(self):
        """A later component above the floor does not extend the run."""
        assert select_n_components(np.array([0.7, 0.03, 0.2, 0.07])) == 1

    def test_floor_is_inclusive(self):
        """A component explaining exactly the floor is kept."""
        assert select_n_components(np.array([0.9, 0.05, 0.05]), variance_floor=0.05) == 3

    def test_at_least_one(self):
        """Even when PC1 is below the floor it is kept."""
        assert select_n_components(np.array([0.04] * 25)) == 1

    def test_cumulative_target(self):
        """Smallest prefix reaching the target share."""
        ratios = np.array([0.6, 0.3, 0.06, 0.04])
        assert select_n_components(ratios, cumulative_target=0.9) == 2
        assert select_n_components(ratios, cumulative_target=0.5) == 1
        assert select_n_components(ratios, cumulative_target=0.99) == 4

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            select_n_components(np.array([]))


# ── fit_reduction() ──────────────────────────────────────────────────────────


class TestFitReduction:
    """Full-rank PCA fit and the retained components."""

    def test_shapes(self):
        df, columns = _features()
        reduction = fit_reduction(df, columns)
        assert reduction.labels == tuple(df["State"].to_list())
        assert reduction.features == tuple(columns)
        assert reduction.full_scores.shape == (10, 4)
        assert reduction.scores.shape == (10, reduction.n_components)
        assert reduction.loadings.shape == (reduction.n_components, 4)

    def test_ratios_sum_to_one(self):
        df, columns = _features()
        reduction = fit_reduction(df, columns)
        assert reduction.explained_variance_ratio.sum() == pytest.approx(1.0)
        assert np.all(np.diff(reduction.explained_variance_ratio) <= 1e-12)

    def test_full_rank_reconstruction(self):
        """All components kept, so the standardized matrix is recovered."""
        df, columns = _features()
        reduction = fit_reduction(df, columns)
        np.testing.assert_allclose(reconstruct(reduction), reduction.standardized, atol=1e-10)

    def test_truncated_reconstruction_is_approximate(self):
        """Dropping components loses some variance but stays close."""
        df, columns = _features()
        reduction = fit_reduction(df, columns, cumulative_target=0.5)
        error = np.abs(reconstruct(reduction, reduction.n_components) - reduction.standardized)
        assert error.max() > 1e-6

    def test_rule_recorded(self):
        df, columns = _features()
        assert "5%" in fit_reduction(df, columns).rule
        assert "80%" in fit_reduction(df, columns, cumulative_target=0.8).rule

    def test_scale_invariant(self):
        """Standardizing first makes unit changes irrelevant."""
        df, columns = _features()
        scaled = df.with_columns(pl.col("f0") * 1000)
        a = fit_reduction(df, columns)
        b = fit_reduction(scaled, columns)
        np.testing.assert_allclose(a.explained_variance_ratio, b.explained_variance_ratio)


# ── orient_pc1() ─────────────────────────────────────────────────────────────


class TestOrientPC1:
    """PC1 sign follows the leading candidate."""

    def test_flagged_rows_positive(self):
        df, columns = _features()
        reduction = fit_reduction(df, columns)
        pc1 = reduction.full_scores[:, 0]
        mask = pc1 < np.median(pc1)  # deliberately the low side
        oriented = orient_pc1(reduction, mask)
        new = oriented.full_scores[:, 0]
        assert new[mask].mean() > new[~mask].mean()
        np.testing.assert_allclose(new, -pc1)

    def test_flip_preserves_reconstruction(self):
        """Flipping a score and its loading together cancels out."""
        df, columns = _features()
        reduction = fit_reduction(df, columns)
        pc1 = reduction.full_scores[:, 0]
        oriented = orient_pc1(reduction, pc1 < 0)
        np.testing.assert_allclose(reconstruct(oriented), reduction.standardized, atol=1e-10)

    def test_already_oriented_unchanged(self):
        df, columns = _features()
        reduction = fit_reduction(df, columns)
        mask = reduction.full_scores[:, 0] > 0
        assert orient_pc1(reduction, mask) is reduction

    def test_uniform_mask_unchanged(self):
        """With every state on one side there is nothing to orient by."""
        df, columns = _features()
        reduction = fit_reduction(df, columns)
        assert orient_pc1(reduction, np.ones(10, dtype=bool)) is reduction
        assert orient_pc1(reduction, np.zeros(10, dtype=bool)) is reduction


# ── Frames ───────────────────────────────────────────────────────────────────


class TestFrames:
    """Scores, loadings and variance tables."""

    def test_scores_frame(self):
        df, columns = _features()
        reduction = fit_reduction(df, columns)
        frame = scores_frame(reduction)
        expected = ["State", *[f"PC{i+1}" for i in range(reduction.n_components)]]
        assert frame.columns == expected
        assert frame.height == 10

    def test_loadings_frame(self):
        df, columns = _features()
        reduction = fit_reduction(df, columns)
        frame = loadings_frame(reduction)
        assert frame["feature"].to_list() == columns

    def test_explained_variance_frame(self):
        df, columns = _features()
        reduction = fit_reduction(df, columns)
        frame = explained_variance_frame(reduction)
        assert frame.height == 4
        assert frame["selected"].sum() == reduction.n_components
        assert frame["cumulative"][-1] == pytest.approx(1.0)
