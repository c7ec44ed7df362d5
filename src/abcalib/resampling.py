"""
Resampling Module

Panel resampling strategies for the bootstrap.

- ``block``: nonparametric panel bootstrap. Units are drawn with replacement
  and each drawn unit keeps its full time series.
- ``wild``: exponential-weight bootstrap. Rows are left in place and each unit
  receives an Exponential(1) weight, normalized over units.

Both take ``(panel, rng)`` and return a new canonical panel with the same
number of units and periods and freshly computed lag columns.
"""

from typing import Callable, Dict

import numpy as np
import pandas as pd

from .config import WEIGHT_COL
from .exceptions import InvalidParameterError
from .panel import add_lags, panel_dims, relabel

Resampler = Callable[[pd.DataFrame, np.random.Generator], pd.DataFrame]


def block_bootstrap(panel: pd.DataFrame, rng: np.random.Generator) -> pd.DataFrame:
    """
    Draw N units with replacement, keeping each unit's T rows intact.

    Drawn units are relabeled 1..N in draw order and periods 1..T, so a unit
    drawn twice appears as two distinct units.
    """
    n_units, n_periods = panel_dims(panel)
    draws = rng.integers(0, n_units, size=n_units)
    rows = (draws[:, None] * n_periods + np.arange(n_periods)[None, :]).ravel()
    resampled = panel.iloc[rows].reset_index(drop=True)
    if WEIGHT_COL in resampled.columns:
        resampled = resampled.drop(columns=WEIGHT_COL)
    return add_lags(relabel(resampled, n_periods=n_periods))


def exponential_weight_bootstrap(panel: pd.DataFrame, rng: np.random.Generator) -> pd.DataFrame:
    """
    Attach Exponential(1) unit weights normalized to sum to one over units.

    Every row of a unit carries the unit's weight, so the column sums to
    ``T`` over rows and to one over units.
    """
    n_units, n_periods = panel_dims(panel)
    multipliers = rng.exponential(1.0, size=n_units)
    weighted = panel.copy()
    weighted[WEIGHT_COL] = np.repeat(multipliers / multipliers.sum(), n_periods)
    return add_lags(weighted)


RESAMPLERS: Dict[str, Resampler] = {
    'block': block_bootstrap,
    'wild': exponential_weight_bootstrap,
}


def get_resampler(name: str) -> Resampler:
    """Look up a resampling strategy by name."""
    try:
        return RESAMPLERS[name]
    except KeyError:
        raise InvalidParameterError(
            f"Unknown resampler '{name}'. Must be one of: {sorted(RESAMPLERS)}"
        ) from None
