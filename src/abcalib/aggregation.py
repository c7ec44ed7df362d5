"""
Aggregation Module

Reduces the Monte Carlo trial matrix to summary tables: bias, dispersion and
RMSE relative to the true value, the ratio of bootstrap and asymptotic
standard errors to the simulation standard deviation, 95% coverage and
average interval length.
"""

from typing import Dict

import numpy as np
import pandas as pd
from scipy import stats

from .calibration import CalibratedParameters
from .config import COEF_NAMES, TRACKED
from .monte_carlo import TrialMatrix

TABLE_COLUMNS = [
    'Bias', 'Std Dev', 'RMSE', 'BSE/SD', 'ASE/SD',
    'p.95 (BSE)', 'p.95 (ASE)', 'Length (BSE)', 'Length (ASE)',
]


def table_simulation(
    est: np.ndarray,
    bse: np.ndarray,
    ase: np.ndarray,
    est0: float,
    alpha: float = 0.05,
    name: str = 'estimate',
) -> pd.DataFrame:
    """
    Summary statistics of one simulated estimator.

    Parameters
    ----------
    est : np.ndarray
        Estimates across trials.
    bse : np.ndarray
        Bootstrap standard errors across trials.
    ase : np.ndarray
        Asymptotic (clustered) standard errors across trials.
    est0 : float
        True value.
    alpha : float, default 0.05
        One minus the nominal coverage of the intervals.
    name : str
        Row label.

    Returns
    -------
    pd.DataFrame
        One row, columns ``TABLE_COLUMNS``. Bias, Std Dev and RMSE are in
        percent of ``est0``; lengths are relative to ``|est0|``. Trials with a
        missing ``est``, ``bse`` or ``ase`` are skipped; ``attrs`` records
        ``n_used`` and ``n_skipped``.
    """
    est = np.asarray(est, dtype=float)
    bse = np.asarray(bse, dtype=float)
    ase = np.asarray(ase, dtype=float)
    keep = np.isfinite(est) & np.isfinite(bse) & np.isfinite(ase)
    est, bse, ase = est[keep], bse[keep], ase[keep]

    row = np.full(len(TABLE_COLUMNS), np.nan)
    if len(est):
        z = stats.norm.ppf(1 - alpha / 2)
        sd = np.std(est, ddof=1) if len(est) > 1 else np.nan
        row[0] = 100 * (np.mean(est) / est0 - 1)
        row[1] = 100 * np.std(est / est0, ddof=1) if len(est) > 1 else np.nan
        row[2] = 100 * np.sqrt(np.mean((est / est0 - 1) ** 2))
        row[3] = np.mean(bse) / sd
        row[4] = np.mean(ase) / sd
        row[5] = np.mean((est - z * bse <= est0) & (est + z * bse >= est0))
        row[6] = np.mean((est - z * ase <= est0) & (est + z * ase >= est0))
        row[7] = 2 * z * np.mean(bse) / abs(est0)
        row[8] = 2 * z * np.mean(ase) / abs(est0)

    table = pd.DataFrame([row], columns=TABLE_COLUMNS, index=[name])
    table.attrs['n_used'] = int(keep.sum())
    table.attrs['n_skipped'] = int((~keep).sum())
    return table


def summarize(
    trials: TrialMatrix,
    calibrated: CalibratedParameters,
    alpha: float = 0.05,
) -> Dict[str, pd.DataFrame]:
    """
    Build one 1x9 summary table per tracked quantity.

    The treatment and lag coefficients are compared with the calibrated
    coefficients, the long-run effect with the calibrated long-run effect.
    The asymptotic standard error of each quantity is its clustered SE column.
    """
    truth = {name: float(calibrated.coefs[name]) for name in COEF_NAMES}
    truth['lr'] = float(calibrated.long_run)

    tables = {}
    for name in TRACKED:
        tables[name] = table_simulation(
            est=trials.column(name),
            bse=trials.column(f'bse_{name}'),
            ase=trials.column(f'cse_{name}'),
            est0=truth[name],
            alpha=alpha,
            name=name,
        )
    return tables


def combine_tables(tables: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    """
    Stack summary tables into one frame, one row per quantity.

    ``n_used`` and ``n_skipped`` count the trials each row was computed from
    and the trials it excluded for a missing estimate or standard error.
    """
    combined = pd.concat(list(tables.values()))
    combined['n_used'] = [t.attrs['n_used'] for t in tables.values()]
    combined['n_skipped'] = [t.attrs['n_skipped'] for t in tables.values()]
    return combined
