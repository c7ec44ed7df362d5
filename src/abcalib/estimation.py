"""
Estimation Module

Runs the Arellano-Bond fit on one panel and reduces it to the estimate vector
tracked by the calibration study: the treatment and four lag coefficients,
their clustered standard errors, the long-run effect of democracy and its
delta-method standard error.
"""

from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import COEF_NAMES, N_LAGS
from .exceptions import EstimationFailure, InvalidParameterError
from .gmm import ArellanoBondGMM, GMMSolver, ModelSpec

# Order of the estimate vector
ESTIMATE_NAMES: Tuple[str, ...] = (
    COEF_NAMES
    + tuple(f'cse_{name}' for name in COEF_NAMES)
    + ('lr', 'cse_lr')
)
N_ESTIMATES = len(ESTIMATE_NAMES)

DEFAULT_SPEC = ModelSpec()
DEFAULT_SOLVER = ArellanoBondGMM()


def long_run_effect(coefs: Sequence[float]) -> float:
    """
    Long-run effect of the treatment implied by an AR(p) model.

    ``coefs`` holds the treatment coefficient followed by the lag
    coefficients: ``lr = coefs[0] / (1 - sum(coefs[1:]))``.
    """
    coefs = np.asarray(coefs, dtype=float)
    return float(coefs[0] / (1.0 - coefs[1:].sum()))


def long_run_se(coefs: Sequence[float], vcov: np.ndarray) -> float:
    """
    Delta-method standard error of :func:`long_run_effect`.

    The gradient of ``b / (1 - sum(rho))`` with respect to ``(b, rho_1, ...,
    rho_p)`` is ``[1, lr, ..., lr] / (1 - sum(rho))``; the variance is
    ``g' V g`` with ``V`` the covariance block of the same coefficients.
    """
    coefs = np.asarray(coefs, dtype=float)
    vcov = np.asarray(vcov, dtype=float)
    denom = 1.0 - coefs[1:].sum()
    lr = coefs[0] / denom
    grad = np.concatenate([[1.0], np.full(len(coefs) - 1, lr)]) / denom
    return float(np.sqrt(grad @ vcov @ grad))


def estimate(
    panel: pd.DataFrame,
    spec: ModelSpec = DEFAULT_SPEC,
    solver: Optional[GMMSolver] = None,
) -> np.ndarray:
    """
    Estimate the democracy model on one panel.

    Parameters
    ----------
    panel : pd.DataFrame
        Canonical panel. A ``weights`` column is only used when
        ``spec.use_weights`` is set.
    spec : ModelSpec
        Model specification.
    solver : GMMSolver, optional
        GMM solver. Defaults to :class:`ArellanoBondGMM`.

    Returns
    -------
    np.ndarray
        Estimate vector of length 12 ordered as ``ESTIMATE_NAMES``.

    Raises
    ------
    InvalidParameterError
        If ``spec`` does not have four lags.
    EstimationFailure
        If the solver fails or the long-run transform is not finite.
    """
    if spec.n_lags != N_LAGS:
        raise InvalidParameterError(
            f"The estimate vector layout requires n_lags={N_LAGS}, got {spec.n_lags}"
        )
    solver = DEFAULT_SOLVER if solver is None else solver
    solution = solver.fit(panel, spec)

    n_coef = 1 + spec.n_lags
    params = np.asarray(solution.params, dtype=float)[:n_coef]
    vcov = np.asarray(solution.vcov, dtype=float)[:n_coef, :n_coef]
    with np.errstate(invalid='ignore', divide='ignore'):
        cse = np.sqrt(np.diag(vcov))
        lr = long_run_effect(params)
        cse_lr = long_run_se(params, vcov)

    out = np.concatenate([params, cse, [lr, cse_lr]])
    if not np.all(np.isfinite(out)):
        raise EstimationFailure('Estimate vector contains non-finite values')
    return out


def failed_estimate() -> np.ndarray:
    """Estimate vector recorded for a failed fit."""
    return np.full(N_ESTIMATES, np.nan)
