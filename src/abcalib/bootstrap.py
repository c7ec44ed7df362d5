"""
Bootstrap Module

Bootstrap standard errors for the Arellano-Bond estimate vector.

Each replication resamples the panel with the chosen strategy and re-runs the
estimator. Replication ``r`` draws from sub-stream ``r`` of the bootstrap
seed, so the bootstrap distribution does not depend on the number of worker
processes. Failed replications are kept as NaN rows and ignored by the
interquartile-range scale estimate

    se = (Q75 - Q25) / (z_0.75 - z_0.25)

which is robust to the heavy tails produced by near-singular resamples.
"""

import logging
import warnings
from concurrent.futures import ProcessPoolExecutor
from functools import partial
from typing import Optional

import numpy as np
import pandas as pd
from scipy import stats

from .config import resolve_n_jobs
from .estimation import (
    DEFAULT_SPEC,
    ESTIMATE_NAMES,
    estimate,
    failed_estimate,
)
from .exceptions import EstimationFailure, InvalidParameterError
from .gmm import GMMSolver, ModelSpec
from .resampling import get_resampler
from .rng import RandomStream, with_isolated_seed
from .warnings_categories import BootstrapFailureWarning

logger = logging.getLogger(__name__)

IQR_SCALE = stats.norm.ppf(0.75) - stats.norm.ppf(0.25)

# Components with a bootstrap standard error: everything but cse_lr
BOOTSTRAP_NAMES = ESTIMATE_NAMES[:-1]
N_BOOTSTRAP_SE = len(BOOTSTRAP_NAMES)


def robust_spread(draws: np.ndarray) -> np.ndarray:
    """
    Interquartile-range estimate of the standard deviation, column by column.

    NaN entries are ignored; a column with no finite entry gives NaN.
    """
    draws = np.asarray(draws, dtype=float)
    if draws.ndim == 1:
        draws = draws[:, None]
    out = np.full(draws.shape[1], np.nan)
    for j in range(draws.shape[1]):
        column = draws[:, j]
        column = column[np.isfinite(column)]
        if len(column):
            q75, q25 = np.percentile(column, [75, 25])
            out[j] = (q75 - q25) / IQR_SCALE
    return out


def _bootstrap_replication(
    rep: int,
    panel: pd.DataFrame,
    spec: ModelSpec,
    solver: Optional[GMMSolver],
    resampler: str,
    stream: RandomStream,
) -> np.ndarray:
    rng = stream.substream(rep)
    resample = get_resampler(resampler)(panel, rng)
    try:
        return estimate(resample, spec, solver)
    except EstimationFailure as e:
        logger.debug('Bootstrap replication %d failed: %s', rep, e)
        return failed_estimate()


def bootstrap_draws(
    panel: pd.DataFrame,
    spec: ModelSpec = DEFAULT_SPEC,
    solver: Optional[GMMSolver] = None,
    resampler: str = 'block',
    reps: int = 200,
    n_jobs: int = 1,
    seed: int = 13,
    algorithm: str = 'PCG64',
) -> np.ndarray:
    """
    Bootstrap distribution of the estimate vector.

    Parameters
    ----------
    panel : pd.DataFrame
        Canonical panel to resample.
    spec : ModelSpec
        Model specification passed to the estimator.
    solver : GMMSolver, optional
        GMM solver; defaults to :class:`abcalib.gmm.ArellanoBondGMM`.
    resampler : {'block', 'wild'}, default 'block'
        Resampling strategy.
    reps : int, default 200
        Number of bootstrap replications R.
    n_jobs : int, default 1
        Worker processes (-1 for all CPUs).
    seed : int, default 13
        Seed of the isolated bootstrap stream.
    algorithm : str, default 'PCG64'
        Bit generator of the stream.

    Returns
    -------
    np.ndarray
        Shape ``(reps, 12)``; row ``r`` is replication ``r``, NaN if it failed.

    Raises
    ------
    InvalidParameterError
        If ``reps`` is not positive or ``resampler`` is unknown.
    RandomStreamError
        If ``seed`` or ``algorithm`` is invalid.
    """
    if reps is None or reps <= 0:
        raise InvalidParameterError(f'reps must be positive, got {reps}')
    get_resampler(resampler)
    n_jobs = resolve_n_jobs(n_jobs)

    def body(stream: RandomStream) -> np.ndarray:
        run = partial(
            _bootstrap_replication,
            panel=panel, spec=spec, solver=solver,
            resampler=resampler, stream=stream,
        )
        draws = np.empty((reps, len(ESTIMATE_NAMES)))
        if n_jobs == 1:
            for rep in range(reps):
                draws[rep] = run(rep)
            return draws
        with ProcessPoolExecutor(max_workers=min(n_jobs, reps)) as executor:
            futures = {executor.submit(run, rep): rep for rep in range(reps)}
            for future, rep in futures.items():
                draws[rep] = future.result()
        return draws

    draws = with_isolated_seed(seed, body, algorithm)

    n_failed = int(np.isnan(draws).any(axis=1).sum())
    if n_failed and n_failed / reps > 0.05:
        warnings.warn(
            f"Bootstrap: {n_failed}/{reps} replications failed "
            f"({n_failed / reps:.1%}). Standard errors use the "
            f"{reps - n_failed} successful replications.",
            BootstrapFailureWarning,
            stacklevel=2,
        )
    return draws


def bootstrap_se(
    panel: pd.DataFrame,
    spec: ModelSpec = DEFAULT_SPEC,
    solver: Optional[GMMSolver] = None,
    resampler: str = 'block',
    reps: int = 200,
    n_jobs: int = 1,
    seed: int = 13,
    algorithm: str = 'PCG64',
) -> np.ndarray:
    """
    Bootstrap standard errors of the estimate vector.

    Runs :func:`bootstrap_draws` and reduces each tracked component with
    :func:`robust_spread`.

    Returns
    -------
    np.ndarray
        Length-11 vector ordered as ``BOOTSTRAP_NAMES``.
    """
    draws = bootstrap_draws(
        panel, spec=spec, solver=solver, resampler=resampler, reps=reps,
        n_jobs=n_jobs, seed=seed, algorithm=algorithm,
    )
    return robust_spread(draws[:, :N_BOOTSTRAP_SE])
