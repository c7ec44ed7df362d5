"""
Calibration Module

Fits the baseline two-way fixed-effects autoregressive model to the real
panel. Its coefficients, residual scale and fixed-effect index define the
"true" data-generating process of the simulation study.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf

from .config import COEF_NAMES, ID_COL, LAG_COLS, OUTCOME_COL, TIME_COL
from .estimation import long_run_effect
from .panel import panel_dims

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class CalibratedParameters:
    """
    Parameters of the simulation DGP.

    Attributes
    ----------
    coefs : pd.Series
        Treatment and lag coefficients (``dem``, ``l1lgdp``..``l4lgdp``).
    params : pd.Series
        All coefficients of the fixed-effects fit, dummies included.
    index : np.ndarray
        Fitted value net of the lag contributions, shape ``(T, N)``: row ``t``
        is period ``t + 5`` of the calibration panel, column ``i`` its
        ``i``-th unit in sorted order.
    sigma : float
        Residual standard deviation, ``sqrt(RSS / df_resid)``.
    long_run : float
        Long-run effect implied by ``coefs``.
    n_units : int
        Number of units N.
    n_periods : int
        Number of periods T after dropping the four initial lags.
    panel : pd.DataFrame
        The calibration panel the DGP draws initial conditions and
        democracy paths from.
    """
    coefs: pd.Series
    params: pd.Series
    index: np.ndarray
    sigma: float
    long_run: float
    n_units: int
    n_periods: int
    panel: pd.DataFrame


def fixed_effects_formula() -> str:
    rhs = ' + '.join(COEF_NAMES)
    return f'{OUTCOME_COL} ~ {rhs} + C({TIME_COL}) + C({ID_COL})'


def calibrate(panel: pd.DataFrame) -> CalibratedParameters:
    """
    Fit the two-way fixed-effects AR(4) model by OLS.

    Parameters
    ----------
    panel : pd.DataFrame
        Canonical panel from :func:`abcalib.panel.prepare_panel`.

    Returns
    -------
    CalibratedParameters
        Read-only calibrated parameters.
    """
    n_units, n_total = panel_dims(panel)
    n_periods = n_total - len(LAG_COLS)
    sample = panel.dropna(subset=list(LAG_COLS))

    fit = smf.ols(fixed_effects_formula(), data=sample).fit()
    params = fit.params
    coefs = params[list(COEF_NAMES)]

    # Fixed-effect part of the fitted value: drop the lag contributions
    index = fit.fittedvalues.to_numpy(dtype=float).copy()
    for col in LAG_COLS:
        index -= params[col] * sample[col].to_numpy(dtype=float)
    index = index.reshape(n_units, n_periods).T.copy()
    index.setflags(write=False)

    sigma = float(np.sqrt(fit.ssr / fit.df_resid))
    long_run = long_run_effect(coefs.to_numpy())

    logger.info(
        'Calibrated FE model on %d units x %d periods: dem=%.4f, sum of lags=%.4f, '
        'sigma=%.4f, long-run effect=%.4f',
        n_units, n_periods, coefs[COEF_NAMES[0]], coefs[list(LAG_COLS)].sum(),
        sigma, long_run,
    )

    return CalibratedParameters(
        coefs=coefs.copy(),
        params=params.copy(),
        index=index,
        sigma=sigma,
        long_run=long_run,
        n_units=n_units,
        n_periods=n_periods,
        panel=panel,
    )
