"""
Tests for the Arellano-Bond difference GMM solver.

Layout tests pin down the instrument count of the difference GMM system;
fit tests check the solver on synthetic panels with a known treatment effect.
"""

import warnings

import numpy as np
import pytest

from abcalib.exceptions import EstimationFailure
from abcalib.gmm import (
    ArellanoBondGMM,
    ModelSpec,
    _first_difference_matrix,
    _instrument_layout,
    _moment_covariance,
    _weighting_matrix,
)
from abcalib.resampling import exponential_weight_bootstrap
from abcalib.warnings_categories import NumericalWarning

from conftest import TRUE_BETA


class TestInstrumentLayout:
    """Instrument counts for 8 periods and 4 lags (equations at t = 5, 6, 7)."""

    def test_full_layout(self):
        layout, n_cols = _instrument_layout(8, 4, 99, collapse=False)
        assert len(layout) == 3
        # (t - 1) outcome lags plus t democracy lags per equation
        assert [len(entries) for entries in layout] == [9, 11, 13]
        assert n_cols == 33

    def test_collapsed_layout(self):
        _, n_cols = _instrument_layout(8, 4, 99, collapse=True)
        # outcome lags 2..7 and democracy lags 1..7
        assert n_cols == 13

    def test_max_lag(self):
        layout, n_cols = _instrument_layout(8, 4, 2, collapse=False)
        assert n_cols == 9
        for t, entries in zip(range(5, 8), layout):
            assert sorted(s for series, s, _ in entries if series == 'y') == [t - 2]
            assert sorted(s for series, s, _ in entries if series == 'd') == [t - 2, t - 1]

    def test_columns_unique_without_collapse(self):
        layout, n_cols = _instrument_layout(10, 4, 99, collapse=False)
        cols = [col for entries in layout for _, _, col in entries]
        assert sorted(cols) == list(range(n_cols))


class TestHelpers:

    def test_first_difference_matrix(self):
        H = _first_difference_matrix(3)
        np.testing.assert_array_equal(
            H, [[2, -1, 0], [-1, 2, -1], [0, -1, 2]]
        )

    def test_moment_covariance_squares_weights(self):
        """sum_i w_i**2 g_i g_i' for the weighted moment sum_i w_i g_i."""
        g = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
        w = np.array([2.0, 1.0, 0.5])
        expected = sum(wi ** 2 * np.outer(gi, gi) for wi, gi in zip(w, g))
        np.testing.assert_allclose(_moment_covariance(g, g, w), expected)

    def test_moment_covariance_unit_weights(self):
        g = np.random.default_rng(0).normal(size=(6, 3))
        np.testing.assert_allclose(_moment_covariance(g, g, np.ones(6)), g.T @ g)

    def test_weighting_matrix_full_rank(self):
        W, deficient = _weighting_matrix(np.diag([2.0, 4.0]))
        np.testing.assert_allclose(W, np.diag([0.5, 0.25]))
        assert not deficient

    def test_weighting_matrix_pseudo_inverse(self):
        W, deficient = _weighting_matrix(np.ones((2, 2)))
        np.testing.assert_allclose(W, np.full((2, 2), 0.25))
        assert deficient

    def test_weighting_matrix_non_finite(self):
        with pytest.raises(EstimationFailure, match='non-finite'):
            _weighting_matrix(np.array([[np.nan, 0.0], [0.0, 1.0]]))


class TestBuildArrays:

    def test_shapes(self, panel):
        dy, X, Z, w, names = ArellanoBondGMM().build_arrays(panel, ModelSpec())
        _, n_gmm = _instrument_layout(12, 4, 99, collapse=False)
        assert dy.shape == (30, 7)
        assert X.shape == (30, 7, 5 + 7)
        assert Z.shape == (30, 7, n_gmm + 7)
        assert names[:5] == ['dem', 'l1lgdp', 'l2lgdp', 'l3lgdp', 'l4lgdp']
        assert names[5:] == [f'year_{year}' for year in range(1995, 2002)]
        np.testing.assert_array_equal(w, np.ones(30))

    def test_no_time_effects(self, panel):
        _, X, _, _, names = ArellanoBondGMM().build_arrays(
            panel, ModelSpec(time_effects=False)
        )
        assert X.shape[2] == 5
        assert len(names) == 5

    def test_differenced_outcome(self, panel):
        dy, X, _, _, _ = ArellanoBondGMM().build_arrays(panel, ModelSpec())
        y = panel.loc[panel['id'] == 101, 'lgdp'].to_numpy()
        np.testing.assert_allclose(dy[0], np.diff(y)[4:])
        # first lag of the differenced outcome is the previous difference
        np.testing.assert_allclose(X[0, :, 1], np.diff(y)[3:-1])

    def test_weights_normalized_to_mean_one(self, panel):
        weighted = exponential_weight_bootstrap(panel, np.random.default_rng(0))
        _, _, _, w, _ = ArellanoBondGMM().build_arrays(
            weighted, ModelSpec(use_weights=True)
        )
        assert w.mean() == pytest.approx(1.0)
        assert not np.allclose(w, 1.0)


class TestFit:

    def test_recovers_treatment_effect(self, large_panel):
        solution = ArellanoBondGMM().fit(large_panel, ModelSpec())
        assert abs(solution.params['dem'] - TRUE_BETA) < 0.5
        assert solution.n_units == 200
        assert solution.n_obs == 200 * 5

    def test_covariance_symmetric_positive(self, large_panel):
        solution = ArellanoBondGMM().fit(large_panel, ModelSpec())
        vcov = solution.vcov.to_numpy()
        np.testing.assert_array_equal(vcov, vcov.T)
        assert np.all(np.diag(vcov) > 0)
        assert list(solution.vcov.index) == list(solution.params.index)

    def test_collapsed_fit(self, large_panel):
        solution = ArellanoBondGMM().fit(large_panel, ModelSpec(collapse=True))
        # outcome lags 2..9, democracy lags 1..9 and five time dummies
        assert solution.n_instruments == 8 + 9 + 5
        assert np.all(np.isfinite(solution.params))

    def test_deterministic(self, large_panel):
        a = ArellanoBondGMM().fit(large_panel, ModelSpec())
        b = ArellanoBondGMM().fit(large_panel, ModelSpec())
        assert a.params.equals(b.params)

    def test_no_treatment_variation_fails(self, large_panel):
        flat = large_panel.assign(dem=0.0)
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', NumericalWarning)
            with pytest.raises(EstimationFailure):
                ArellanoBondGMM().fit(flat, ModelSpec())

    def test_too_few_periods(self, large_panel):
        with pytest.raises(EstimationFailure, match='no differenced equation'):
            ArellanoBondGMM().fit(large_panel, ModelSpec(n_lags=9))

    def test_rank_deficient_warns(self, panel_factory):
        """36 instruments for 30 units leave the moment covariance singular."""
        small = panel_factory(n_units=30, n_periods=8)
        with pytest.warns(NumericalWarning, match='rank deficient'):
            try:
                ArellanoBondGMM().fit(small, ModelSpec())
            except EstimationFailure:
                pass

    def test_weights_ignored_by_default(self, large_panel):
        weighted = exponential_weight_bootstrap(large_panel, np.random.default_rng(1))
        plain = ArellanoBondGMM().fit(large_panel, ModelSpec())
        ignored = ArellanoBondGMM().fit(weighted, ModelSpec())
        np.testing.assert_array_equal(plain.params, ignored.params)

    def test_weights_change_estimate(self, large_panel):
        weighted = exponential_weight_bootstrap(large_panel, np.random.default_rng(1))
        plain = ArellanoBondGMM().fit(large_panel, ModelSpec())
        reweighted = ArellanoBondGMM().fit(weighted, ModelSpec(use_weights=True))
        assert not np.allclose(plain.params, reweighted.params)
