"""
Configuration Module

Named constants of the reference calibration run and the
``SimulationConfig`` container that gathers them.
"""

import os
from dataclasses import dataclass
from typing import Optional

from .exceptions import InvalidParameterError

# Panel columns
ID_COL = 'id'
TIME_COL = 'year'
OUTCOME_COL = 'lgdp'
TREATMENT_COL = 'dem'
WEIGHT_COL = 'weights'

# Autoregressive order of the democracy model
N_LAGS = 4
LAG_COLS = tuple(f'l{k}{OUTCOME_COL}' for k in range(1, N_LAGS + 1))

# Reference run
N_TRIALS = 500
BOOTSTRAP_REPS = 200
N_JOBS = 28
CALIBRATION_SEED = 88
BOOTSTRAP_SEED = 13
STREAM_ALGORITHM = 'PCG64'
RESAMPLER = 'block'

# Quantities tracked in the summary tables
COEF_NAMES = (TREATMENT_COL,) + LAG_COLS
TRACKED = COEF_NAMES + ('lr',)


def resolve_n_jobs(n_jobs: int) -> int:
    """Translate ``-1`` into the CPU count and cap requests at that count."""
    n_cpus = os.cpu_count() or 1
    if n_jobs == -1:
        return n_cpus
    if n_jobs < 1:
        raise InvalidParameterError(
            f"n_jobs must be a positive integer or -1, got {n_jobs}"
        )
    return min(int(n_jobs), n_cpus)


def effective_inner_jobs(outer_jobs: int, inner_jobs: int) -> int:
    """
    Parallelism degree for bootstrap replications nested in a trial.

    Inner work runs sequentially whenever the outer Monte Carlo loop is
    already parallel, so the two levels never oversubscribe the CPUs.
    """
    if resolve_n_jobs(outer_jobs) > 1:
        return 1
    return resolve_n_jobs(inner_jobs)


@dataclass(frozen=True)
class SimulationConfig:
    """
    Settings for one calibration study.

    Attributes
    ----------
    n_trials : int
        Number of Monte Carlo replications.
    bootstrap_reps : int
        Bootstrap replications per Monte Carlo trial.
    n_jobs : int
        Worker processes for the Monte Carlo loop (-1 for all CPUs).
    bootstrap_jobs : int, optional
        Worker processes for the bootstrap loop. Defaults to ``n_jobs`` and is
        capped to 1 whenever the outer loop runs in parallel.
    seed : int
        Seed of the outer (calibration) stream.
    bootstrap_seed : int
        Seed of the inner (bootstrap) stream.
    algorithm : str
        Bit generator used for every stream.
    resampler : {'block', 'wild'}
        Bootstrap resampling strategy.
    progress_every : int
        Log progress every this many completed trials.
    """
    n_trials: int = N_TRIALS
    bootstrap_reps: int = BOOTSTRAP_REPS
    n_jobs: int = N_JOBS
    bootstrap_jobs: Optional[int] = None
    seed: int = CALIBRATION_SEED
    bootstrap_seed: int = BOOTSTRAP_SEED
    algorithm: str = STREAM_ALGORITHM
    resampler: str = RESAMPLER
    progress_every: int = 50

    def __post_init__(self):
        if self.n_trials <= 0:
            raise InvalidParameterError(
                f"n_trials must be positive, got {self.n_trials}"
            )
        if self.bootstrap_reps <= 0:
            raise InvalidParameterError(
                f"bootstrap_reps must be positive, got {self.bootstrap_reps}"
            )
        resolve_n_jobs(self.n_jobs)
        if self.bootstrap_jobs is not None:
            resolve_n_jobs(self.bootstrap_jobs)
        if self.resampler not in ('block', 'wild'):
            raise InvalidParameterError(
                f"resampler must be 'block' or 'wild', got '{self.resampler}'"
            )
        if self.progress_every <= 0:
            raise InvalidParameterError('progress_every must be positive')

    @property
    def inner_jobs(self) -> int:
        inner = self.n_jobs if self.bootstrap_jobs is None else self.bootstrap_jobs
        return effective_inner_jobs(self.n_jobs, inner)
