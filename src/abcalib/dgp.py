"""
DGP Module

Simulates synthetic democracy/GDP panels from calibrated parameters.

Each unit starts from its first four observed log-GDP values; later periods
follow the calibrated AR(4) recursion around the fixed-effect index with
fresh normal shocks. Democracy paths are taken from the calibration panel.
"""

import numpy as np
import pandas as pd

from .calibration import CalibratedParameters
from .config import ID_COL, LAG_COLS, N_LAGS, OUTCOME_COL, TIME_COL, TREATMENT_COL
from .panel import add_lags, outcome_matrix


def simulate_outcomes(
    initial: np.ndarray,
    index: np.ndarray,
    lag_coefs: np.ndarray,
    sigma: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """
    Run the AR recursion for all units.

    Parameters
    ----------
    initial : np.ndarray
        Shape ``(p, N)``: the first ``p`` outcomes of every unit.
    index : np.ndarray
        Shape ``(T, N)``: fixed-effect index of every simulated period.
    lag_coefs : np.ndarray
        Length ``p`` autoregressive coefficients.
    sigma : float
        Standard deviation of the shocks.
    rng : np.random.Generator
        Source of the shocks, drawn period by period for all N units.

    Returns
    -------
    np.ndarray
        Shape ``(p + T, N)`` outcome paths.
    """
    p = len(lag_coefs)
    n_sim, n_units = index.shape
    y = np.zeros((p + n_sim, n_units))
    y[:p] = initial
    for t in range(p, p + n_sim):
        value = index[t - p].copy()
        for k in range(1, p + 1):
            value += lag_coefs[k - 1] * y[t - k]
        y[t] = value + rng.normal(0.0, sigma, size=n_units)
    return y


def simulate_panel(
    calibrated: CalibratedParameters, rng: np.random.Generator
) -> pd.DataFrame:
    """
    Draw one synthetic panel with the calibration panel's shape.

    Unit ids are a random permutation of 1..N so that the simulated units
    carry no ordering of their own; periods are labeled 1..T+4.
    """
    n_units = calibrated.n_units
    n_total = calibrated.n_periods + N_LAGS
    base = calibrated.panel

    initial = outcome_matrix(base)[:, :N_LAGS].T
    lag_coefs = calibrated.coefs[list(LAG_COLS)].to_numpy(dtype=float)
    y = simulate_outcomes(initial, calibrated.index, lag_coefs, calibrated.sigma, rng)

    ids = rng.permutation(n_units) + 1
    panel = pd.DataFrame({
        ID_COL: np.repeat(ids, n_total),
        TIME_COL: np.tile(np.arange(1, n_total + 1), n_units),
        OUTCOME_COL: y.T.ravel(),
        TREATMENT_COL: base[TREATMENT_COL].to_numpy(dtype=float),
    })
    panel = panel.sort_values([ID_COL, TIME_COL], kind='mergesort')
    return add_lags(panel.reset_index(drop=True))
