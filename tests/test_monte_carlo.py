"""
Monte Carlo driver tests.

End-to-end runs use the stub solver on a 10-unit panel with 8 simulated
periods after the initial lags; the real solver is only exercised in the
slow parallel test.
"""

import warnings

import numpy as np
import pytest

from abcalib.aggregation import TABLE_COLUMNS, summarize
from abcalib.calibration import calibrate
from abcalib.config import SimulationConfig
from abcalib.exceptions import InvalidParameterError
from abcalib.gmm import ArellanoBondGMM, ModelSpec
from abcalib.monte_carlo import TRIAL_COLUMNS, TrialMatrix, run_monte_carlo, run_trial
from abcalib.rng import RandomStream
from abcalib.warnings_categories import BootstrapFailureWarning, SimulationWarning


@pytest.fixture
def calibrated(small_panel):
    return calibrate(small_panel)


def _config(**kwargs):
    defaults = dict(n_trials=50, bootstrap_reps=20, n_jobs=1)
    defaults.update(kwargs)
    return SimulationConfig(**defaults)


class TestTrialColumns:

    def test_layout(self):
        assert len(TRIAL_COLUMNS) == 23
        assert TRIAL_COLUMNS[:5] == ('dem', 'l1lgdp', 'l2lgdp', 'l3lgdp', 'l4lgdp')
        assert TRIAL_COLUMNS[10:12] == ('lr', 'cse_lr')
        assert TRIAL_COLUMNS[12] == 'bse_dem'
        assert TRIAL_COLUMNS[22] == 'bse_lr'


class TestTrialMatrix:

    def test_read_only(self):
        trials = TrialMatrix(np.zeros((3, 23)))
        with pytest.raises(ValueError):
            trials.values[0, 0] = 1.0

    def test_copies_input(self):
        values = np.zeros((3, 23))
        trials = TrialMatrix(values)
        values[0, 0] = 1.0
        assert trials.values[0, 0] == 0.0

    def test_bad_shape(self):
        with pytest.raises(InvalidParameterError, match='23 columns'):
            TrialMatrix(np.zeros((3, 12)))

    def test_failed_mask(self):
        values = np.zeros((3, 23))
        values[1, 4] = np.nan
        values[2, 15] = np.nan
        trials = TrialMatrix(values)
        np.testing.assert_array_equal(trials.failed, [False, True, False])
        assert trials.n_failed == 1

    def test_frame(self):
        frame = TrialMatrix(np.zeros((2, 23))).to_frame()
        assert frame.shape == (2, 23)
        assert frame.index.name == 'trial'
        assert list(frame.columns) == list(TRIAL_COLUMNS)


class TestRunMonteCarlo:

    def test_end_to_end_shapes(self, calibrated, stub_solver):
        trials = run_monte_carlo(calibrated, _config(), solver=stub_solver)
        assert trials.values.shape == (50, 23)
        assert trials.n_failed == 0
        tables = summarize(trials, calibrated)
        assert list(tables) == ['dem', 'l1lgdp', 'l2lgdp', 'l3lgdp', 'l4lgdp', 'lr']
        for name, table in tables.items():
            assert table.shape == (1, 9)
            assert list(table.columns) == TABLE_COLUMNS
            assert table.attrs['n_used'] == 50

    def test_reproducible(self, calibrated, stub_solver):
        config = _config(n_trials=5, bootstrap_reps=5)
        a = run_monte_carlo(calibrated, config, solver=stub_solver)
        b = run_monte_carlo(calibrated, config, solver=stub_solver)
        np.testing.assert_array_equal(a.values, b.values)

    def test_seed_changes_trials(self, calibrated, stub_solver):
        a = run_monte_carlo(calibrated, _config(n_trials=5, bootstrap_reps=5),
                            solver=stub_solver)
        b = run_monte_carlo(calibrated, _config(n_trials=5, bootstrap_reps=5, seed=89),
                            solver=stub_solver)
        assert not np.array_equal(a.values, b.values)

    def test_trials_use_own_substreams(self, calibrated, stub_solver):
        """Trial i does not depend on how many trials run."""
        a = run_monte_carlo(calibrated, _config(n_trials=3, bootstrap_reps=5),
                            solver=stub_solver)
        b = run_monte_carlo(calibrated, _config(n_trials=6, bootstrap_reps=5),
                            solver=stub_solver)
        np.testing.assert_array_equal(a.values, b.values[:3])

    def test_run_trial_matches_matrix_row(self, calibrated, stub_solver):
        config = _config(n_trials=3, bootstrap_reps=5)
        trials = run_monte_carlo(calibrated, config, solver=stub_solver)
        row = run_trial(2, calibrated, config, RandomStream(config.seed),
                        solver=stub_solver)
        np.testing.assert_array_equal(row, trials.values[2])

    def test_global_state_untouched(self, calibrated, stub_solver):
        np.random.seed(5)
        expected = np.random.random(2)
        np.random.seed(5)
        run_monte_carlo(calibrated, _config(n_trials=2, bootstrap_reps=3),
                        solver=stub_solver)
        np.testing.assert_array_equal(np.random.random(2), expected)

    def test_failed_trials_are_nan(self, calibrated, failing_solver):
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', BootstrapFailureWarning)
            with pytest.warns(SimulationWarning, match='4/4'):
                trials = run_monte_carlo(
                    calibrated, _config(n_trials=4, bootstrap_reps=3),
                    solver=failing_solver,
                )
        assert trials.n_failed == 4
        assert np.all(np.isnan(trials.values))
        tables = summarize(trials, calibrated)
        assert tables['lr'].attrs['n_skipped'] == 4


@pytest.mark.slow
class TestParallelMonteCarlo:

    def test_parallel_matches_sequential(self, large_panel):
        calibrated = calibrate(large_panel)
        spec = ModelSpec(collapse=True)
        solver = ArellanoBondGMM()
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            sequential = run_monte_carlo(
                calibrated, _config(n_trials=4, bootstrap_reps=4), spec, solver
            )
            parallel = run_monte_carlo(
                calibrated, _config(n_trials=4, bootstrap_reps=4, n_jobs=2), spec, solver
            )
        np.testing.assert_array_equal(sequential.values, parallel.values)
