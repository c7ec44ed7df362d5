"""
Monte Carlo Module

Drives the calibration study: draws synthetic panels from the calibrated
DGP, estimates the Arellano-Bond model on each, bootstraps its standard
errors, and collects one 23-column trial record per replication.

Trial ``i`` simulates from sub-stream ``i`` of the outer seed; every trial's
bootstrap uses the same bootstrap seed. Results are stored by trial index,
so the trial matrix is identical for any number of workers.
"""

import logging
import warnings
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .bootstrap import BOOTSTRAP_NAMES, bootstrap_se
from .calibration import CalibratedParameters
from .config import SimulationConfig, resolve_n_jobs
from .dgp import simulate_panel
from .estimation import DEFAULT_SPEC, ESTIMATE_NAMES, N_ESTIMATES, estimate, failed_estimate
from .exceptions import EstimationFailure, InvalidParameterError
from .gmm import GMMSolver, ModelSpec
from .rng import RandomStream, isolated_seed
from .warnings_categories import SimulationWarning

logger = logging.getLogger(__name__)

TRIAL_COLUMNS: Tuple[str, ...] = ESTIMATE_NAMES + tuple(f'bse_{name}' for name in BOOTSTRAP_NAMES)
N_TRIAL_COLUMNS = len(TRIAL_COLUMNS)


@dataclass(frozen=True, eq=False)
class TrialMatrix:
    """
    Results of all Monte Carlo trials.

    Attributes
    ----------
    values : np.ndarray
        Read-only array of shape ``(n_trials, 23)``; row ``i`` is trial ``i``.
        Columns follow ``TRIAL_COLUMNS``. Failed fits are NaN.
    columns : tuple of str
        Column names.
    """
    values: np.ndarray
    columns: Tuple[str, ...] = TRIAL_COLUMNS

    def __post_init__(self):
        values = np.array(self.values, dtype=float)
        if values.ndim != 2 or values.shape[1] != len(self.columns):
            raise InvalidParameterError(
                f"Trial matrix must have {len(self.columns)} columns, "
                f"got shape {values.shape}"
            )
        values.setflags(write=False)
        object.__setattr__(self, 'values', values)

    @property
    def n_trials(self) -> int:
        return self.values.shape[0]

    @property
    def failed(self) -> np.ndarray:
        """Boolean mask of trials whose point estimates are missing."""
        return np.isnan(self.values[:, :N_ESTIMATES]).any(axis=1)

    @property
    def n_failed(self) -> int:
        return int(self.failed.sum())

    def column(self, name: str) -> np.ndarray:
        return self.values[:, self.columns.index(name)]

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(self.values, columns=list(self.columns))
        frame.index.name = 'trial'
        return frame


def run_trial(
    index: int,
    calibrated: CalibratedParameters,
    config: SimulationConfig,
    stream: RandomStream,
    spec: ModelSpec = DEFAULT_SPEC,
    solver: Optional[GMMSolver] = None,
) -> np.ndarray:
    """
    One Monte Carlo replication.

    Simulates a panel from sub-stream ``index`` of ``stream``, estimates the
    model on it and bootstraps its standard errors.

    Returns
    -------
    np.ndarray
        Trial record of length 23.
    """
    panel = simulate_panel(calibrated, stream.substream(index))
    try:
        point = estimate(panel, spec, solver)
    except EstimationFailure as e:
        logger.debug('Trial %d: estimation failed: %s', index, e)
        point = failed_estimate()
    se = bootstrap_se(
        panel,
        spec=spec,
        solver=solver,
        resampler=config.resampler,
        reps=config.bootstrap_reps,
        n_jobs=config.inner_jobs,
        seed=config.bootstrap_seed,
        algorithm=config.algorithm,
    )
    return np.concatenate([point, se])


def run_monte_carlo(
    calibrated: CalibratedParameters,
    config: Optional[SimulationConfig] = None,
    spec: ModelSpec = DEFAULT_SPEC,
    solver: Optional[GMMSolver] = None,
) -> TrialMatrix:
    """
    Run the Monte Carlo study.

    Parameters
    ----------
    calibrated : CalibratedParameters
        DGP parameters from :func:`abcalib.calibration.calibrate`.
    config : SimulationConfig, optional
        Trial and replication counts, parallelism, seeds and resampler.
        Defaults to the reference run.
    spec : ModelSpec
        Model specification.
    solver : GMMSolver, optional
        GMM solver; defaults to :class:`abcalib.gmm.ArellanoBondGMM`.

    Returns
    -------
    TrialMatrix
        One row per trial, in trial order.
    """
    config = SimulationConfig() if config is None else config
    n_trials = config.n_trials
    n_jobs = resolve_n_jobs(config.n_jobs)

    logger.info(
        'Running %d Monte Carlo trials with %d bootstrap replications each '
        '(%s resampling, %d outer / %d inner workers)',
        n_trials, config.bootstrap_reps, config.resampler, n_jobs, config.inner_jobs,
    )

    values = np.full((n_trials, N_TRIAL_COLUMNS), np.nan)
    with isolated_seed(config.seed, config.algorithm) as stream:
        task = dict(calibrated=calibrated, config=config, stream=stream,
                    spec=spec, solver=solver)
        if n_jobs == 1:
            for i in range(n_trials):
                values[i] = run_trial(i, **task)
                _log_progress(i + 1, n_trials, config.progress_every)
        else:
            with ProcessPoolExecutor(max_workers=min(n_jobs, n_trials)) as executor:
                futures = {executor.submit(run_trial, i, **task): i for i in range(n_trials)}
                for completed, future in enumerate(as_completed(futures), start=1):
                    values[futures[future]] = future.result()
                    _log_progress(completed, n_trials, config.progress_every)

    trials = TrialMatrix(values)
    if trials.n_failed:
        warnings.warn(
            f"Monte Carlo: {trials.n_failed}/{n_trials} trials failed to produce "
            f"point estimates and will be skipped in the summary tables.",
            SimulationWarning,
            stacklevel=2,
        )
    logger.info('Monte Carlo finished: %d/%d trials succeeded',
                n_trials - trials.n_failed, n_trials)
    return trials


def _log_progress(completed: int, total: int, every: int) -> None:
    if completed % every == 0 or completed == total:
        logger.debug('Completed %d/%d trials', completed, total)
