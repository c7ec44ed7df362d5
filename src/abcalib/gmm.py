"""
Arellano-Bond difference GMM for the democracy model.

Implements the two-step difference GMM estimator of

    lgdp_it = beta * dem_it + sum_k rho_k * lgdp_i,t-k + alpha_i + lambda_t + e_it

with unit effects removed by first differencing and time effects entering as
one dummy per differenced equation. Lagged levels of the outcome (lags
2..max_lag) and of democracy (lags 1..max_lag) serve as GMM-style
instruments, and the time dummies as standard instruments.

The covariance matrix is the cluster-robust two-step covariance with the
Windmeijer (2005) finite-sample correction.

The rest of the package only depends on the narrow :class:`GMMSolver`
interface (``fit(panel, spec) -> GMMSolution``), so any other solver, or a
stub in tests, can be swapped in.

References
----------
Arellano, M. & Bond, S. (1991). Some Tests of Specification for Panel Data.
    Review of Economic Studies, 58(2), 277--297.
Windmeijer, F. (2005). A finite sample correction for the variance of linear
    efficient two-step GMM estimators. Journal of Econometrics, 126, 25--51.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import List, Protocol, Tuple

import numpy as np
import pandas as pd

from .config import N_LAGS, OUTCOME_COL, TIME_COL, TREATMENT_COL, WEIGHT_COL
from .exceptions import EstimationFailure
from .panel import outcome_matrix, panel_dims
from .warnings_categories import NumericalWarning

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    """
    Dynamic-panel specification.

    Attributes
    ----------
    n_lags : int
        Autoregressive order. The democracy model uses 4.
    max_lag : int
        Deepest level lag used as instrument (99 means all available).
    collapse : bool
        Collapse GMM-style instruments to one column per lag distance.
    time_effects : bool
        Include time effects (``effect='twoways'``).
    use_weights : bool
        Scale each unit's moment contributions by the ``weights`` column when
        present. When False the column is ignored.
    """
    n_lags: int = N_LAGS
    max_lag: int = 99
    collapse: bool = False
    time_effects: bool = True
    use_weights: bool = False


@dataclass(frozen=True)
class GMMSolution:
    """
    Output of a GMM fit.

    Attributes
    ----------
    params : pd.Series
        Coefficients, treatment and lags first, time effects after.
    vcov : pd.DataFrame
        Cluster-robust covariance matrix of ``params``.
    n_units : int
        Number of clusters.
    n_obs : int
        Number of differenced observations.
    n_instruments : int
        Number of instrument columns.
    rank_deficient : bool
        Whether a pseudo-inverse was needed for a weighting matrix.
    """
    params: pd.Series
    vcov: pd.DataFrame
    n_units: int
    n_obs: int
    n_instruments: int
    rank_deficient: bool = False


class GMMSolver(Protocol):
    """Anything that maps a panel and a specification to a GMM solution."""

    def fit(self, panel: pd.DataFrame, spec: ModelSpec) -> GMMSolution:
        ...


def _first_difference_matrix(n_eq: int) -> np.ndarray:
    """Covariance structure of first-differenced i.i.d. errors."""
    H = 2.0 * np.eye(n_eq)
    idx = np.arange(n_eq - 1)
    H[idx, idx + 1] = -1.0
    H[idx + 1, idx] = -1.0
    return H


def _instrument_layout(
    n_periods: int, n_lags: int, max_lag: int, collapse: bool
) -> Tuple[List[List[Tuple[str, int, int]]], int]:
    """
    Instrument columns of every differenced equation.

    Returns, for each equation period ``t`` (0-based, from ``n_lags + 1``),
    a list of ``(series, level_period, column)`` triples, plus the total
    number of GMM-style columns. ``series`` is ``'y'`` or ``'d'``.
    """
    layout = []
    n_cols = 0
    col_of_lag = {}
    for t in range(n_lags + 1, n_periods):
        entries = []
        for series, first_lag in (('y', 2), ('d', 1)):
            for lag in range(first_lag, max_lag + 1):
                s = t - lag
                if s < 0:
                    break
                if collapse:
                    key = (series, lag)
                    if key not in col_of_lag:
                        col_of_lag[key] = n_cols
                        n_cols += 1
                    entries.append((series, s, col_of_lag[key]))
                else:
                    entries.append((series, s, n_cols))
                    n_cols += 1
        layout.append(entries)
    return layout, n_cols


def _invert(matrix: np.ndarray, what: str) -> np.ndarray:
    if not np.all(np.isfinite(matrix)):
        raise EstimationFailure(f"{what} contains non-finite values")
    if np.linalg.matrix_rank(matrix) < matrix.shape[0]:
        raise EstimationFailure(f"{what} is singular")
    try:
        return np.linalg.inv(matrix)
    except np.linalg.LinAlgError as e:
        raise EstimationFailure(f"{what} could not be inverted: {e}") from e


def _moment_covariance(a: np.ndarray, b: np.ndarray, w: np.ndarray) -> np.ndarray:
    """
    Cross-product ``sum_i w_i**2 a_i b_i'`` of per-unit moment contributions.

    The weighted moment ``sum_i w_i g_i`` has covariance
    ``sum_i w_i**2 g_i g_i'``; with unit weights this is the usual
    cluster-robust moment covariance.
    """
    return (a * (w ** 2)[:, None]).T @ b


def _weighting_matrix(moment_cov: np.ndarray) -> Tuple[np.ndarray, bool]:
    """Inverse of a moment covariance, falling back to the pseudo-inverse."""
    if not np.all(np.isfinite(moment_cov)):
        raise EstimationFailure('Moment covariance contains non-finite values')
    if np.linalg.matrix_rank(moment_cov) < moment_cov.shape[0]:
        return np.linalg.pinv(moment_cov, hermitian=True), True
    return np.linalg.inv(moment_cov), False


@dataclass(frozen=True)
class ArellanoBondGMM:
    """
    Two-step Arellano-Bond difference GMM with Windmeijer-corrected
    cluster-robust covariance.
    """

    def build_arrays(self, panel: pd.DataFrame, spec: ModelSpec):
        """
        Stack the differenced system unit by unit.

        Returns
        -------
        tuple
            ``(dy, X, Z, w, names)`` with shapes ``(N, m)``, ``(N, m, K)``,
            ``(N, m, L)`` and ``(N,)``, where ``m`` is the number of
            differenced equations per unit.
        """
        n_units, n_periods = panel_dims(panel)
        p = spec.n_lags
        if n_periods <= p + 1:
            raise EstimationFailure(
                f"{n_periods} periods leave no differenced equation with {p} lags"
            )
        y = outcome_matrix(panel)
        dem = outcome_matrix(panel, TREATMENT_COL)
        eq_periods = np.arange(p + 1, n_periods)
        n_eq = len(eq_periods)

        dy = y[:, eq_periods] - y[:, eq_periods - 1]
        regressors = [dem[:, eq_periods] - dem[:, eq_periods - 1]]
        for k in range(1, p + 1):
            regressors.append(y[:, eq_periods - k] - y[:, eq_periods - k - 1])
        X = np.stack(regressors, axis=2)
        names = [TREATMENT_COL] + [f"l{k}{OUTCOME_COL}" for k in range(1, p + 1)]

        layout, n_gmm = _instrument_layout(n_periods, p, spec.max_lag, spec.collapse)
        Z = np.zeros((n_units, n_eq, n_gmm))
        for j, entries in enumerate(layout):
            for series, s, col in entries:
                Z[:, j, col] = y[:, s] if series == 'y' else dem[:, s]

        if spec.time_effects:
            periods = panel[TIME_COL].to_numpy()[:n_periods]
            dummies = np.broadcast_to(np.eye(n_eq), (n_units, n_eq, n_eq))
            X = np.concatenate([X, dummies], axis=2)
            Z = np.concatenate([Z, dummies], axis=2)
            names += [f'{TIME_COL}_{periods[t]}' for t in eq_periods]

        w = np.ones(n_units)
        if spec.use_weights and WEIGHT_COL in panel.columns:
            w = outcome_matrix(panel, WEIGHT_COL)[:, 0]
            w = w * n_units / w.sum()
        return dy, X, Z, w, names

    def fit(self, panel: pd.DataFrame, spec: ModelSpec) -> GMMSolution:
        """
        Fit the two-step estimator.

        Raises
        ------
        EstimationFailure
            If a required matrix is singular or the result is not finite.
        """
        dy, X, Z, w, names = self.build_arrays(panel, spec)
        n_units, n_eq, n_coef = X.shape
        H = _first_difference_matrix(n_eq)

        Zw = Z * w[:, None, None]
        ZX = np.einsum('iml,imk->lk', Zw, X)
        Zy = np.einsum('iml,im->l', Zw, dy)
        ZHZ = np.einsum('iml,mn,inq->lq', Zw, H, Z)

        # one-step
        W1, deficient1 = _weighting_matrix(ZHZ)
        A1 = _invert(ZX.T @ W1 @ ZX, 'One-step GMM Hessian')
        beta1 = A1 @ ZX.T @ W1 @ Zy
        u1 = dy - X @ beta1
        zu1 = np.einsum('iml,im->il', Z, u1)
        omega = _moment_covariance(zu1, zu1, w)

        # two-step
        W2, deficient2 = _weighting_matrix(omega)
        rank_deficient = deficient1 or deficient2
        if rank_deficient:
            warnings.warn(
                'GMM moment covariance is rank deficient (more instruments than '
                'units); using the pseudo-inverse as weighting matrix.',
                NumericalWarning,
                stacklevel=2,
            )
        A2 = _invert(ZX.T @ W2 @ ZX, 'Two-step GMM Hessian')
        beta2 = A2 @ ZX.T @ W2 @ Zy
        u2 = dy - X @ beta2
        Zu2 = np.einsum('iml,im->l', Zw, u2)

        # Windmeijer correction
        V1 = A1 @ ZX.T @ W1 @ omega @ W1 @ ZX @ A1
        D = np.empty((n_coef, n_coef))
        for k in range(n_coef):
            zx_k = np.einsum('iml,im->il', Z, X[:, :, k])
            d_omega = _moment_covariance(zx_k, zu1, w) + _moment_covariance(zu1, zx_k, w)
            D[:, k] = A2 @ ZX.T @ W2 @ d_omega @ W2 @ Zu2
        vcov = A2 + D @ A2 + A2 @ D.T + D @ V1 @ D.T
        vcov = (vcov + vcov.T) / 2.0

        if not (np.all(np.isfinite(beta2)) and np.all(np.isfinite(vcov))):
            raise EstimationFailure('GMM solution is not finite')
        if np.any(np.diag(vcov) <= 0):
            raise EstimationFailure('GMM covariance has non-positive variances')

        logger.debug(
            'GMM fit: %d units, %d equations, %d instruments, rank deficient=%s',
            n_units, n_eq, Z.shape[2], rank_deficient,
        )

        return GMMSolution(
            params=pd.Series(beta2, index=names),
            vcov=pd.DataFrame(vcov, index=names, columns=names),
            n_units=n_units,
            n_obs=n_units * n_eq,
            n_instruments=Z.shape[2],
            rank_deficient=rank_deficient,
        )
