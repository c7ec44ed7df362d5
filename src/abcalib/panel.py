"""
Panel Module

Validation, ordering and lag construction for the balanced democracy/GDP
panel.

A panel is a ``pd.DataFrame`` with one row per (unit, period), sorted by unit
and then period, with a fresh ``RangeIndex``. Every unit is observed over the
same contiguous run of periods. Lag columns are never aligned implicitly by
index: they are rebuilt by :func:`add_lags` from the sorted row order after
every resample or simulation step.
"""

from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .config import ID_COL, LAG_COLS, N_LAGS, OUTCOME_COL, TIME_COL, TREATMENT_COL
from .exceptions import DataShapeError, MissingRequiredColumnError


def prepare_panel(
    data: pd.DataFrame,
    ivar: str = ID_COL,
    tvar: str = TIME_COL,
    y: str = OUTCOME_COL,
    d: str = TREATMENT_COL,
) -> pd.DataFrame:
    """
    Validate raw panel data and return it in canonical form.

    Parameters
    ----------
    data : pd.DataFrame
        Long-format panel with unit id, time period, log GDP and democracy.
    ivar, tvar, y, d : str
        Column names in ``data``. They are renamed to the canonical
        ``id``, ``year``, ``lgdp`` and ``dem``.

    Returns
    -------
    pd.DataFrame
        Sorted panel with columns ``id, year, lgdp, dem, l1lgdp..l4lgdp``.

    Raises
    ------
    TypeError
        If ``data`` is not a DataFrame.
    MissingRequiredColumnError
        If a required column is absent.
    DataShapeError
        If the panel is empty, has missing values, is unbalanced, has
        duplicate keys or non-consecutive periods, or is too short for four
        lags.
    """
    if not isinstance(data, pd.DataFrame):
        raise TypeError('data must be a pandas DataFrame')

    for col in (ivar, tvar, y, d):
        if col not in data.columns:
            raise MissingRequiredColumnError(
                f"Required column '{col}' not found in data"
            )

    panel = data[[ivar, tvar, y, d]].rename(columns={
        ivar: ID_COL, tvar: TIME_COL, y: OUTCOME_COL, d: TREATMENT_COL,
    })
    if panel.empty:
        raise DataShapeError('Panel has no rows')
    missing = [
        name for name, col in zip((ivar, tvar, y, d), panel.columns)
        if panel[col].isna().any()
    ]
    if missing:
        raise DataShapeError(
            f"Columns {missing} must not contain missing values"
        )
    panel[OUTCOME_COL] = panel[OUTCOME_COL].astype(float)
    panel[TREATMENT_COL] = panel[TREATMENT_COL].astype(float)

    panel = panel.sort_values([ID_COL, TIME_COL], kind='mergesort')
    panel = panel.reset_index(drop=True)
    check_balanced(panel)
    return add_lags(panel)


def check_balanced(panel: pd.DataFrame) -> Tuple[int, int]:
    """
    Check that a sorted panel is balanced with contiguous periods.

    Periods must be consecutive integers (step 1).

    Returns
    -------
    tuple of int
        ``(n_units, n_periods)``.
    """
    if panel.empty:
        raise DataShapeError('Panel has no rows')
    if panel[[ID_COL, TIME_COL]].isna().any().any():
        raise DataShapeError('Unit and time columns must not contain missing values')
    if panel.duplicated([ID_COL, TIME_COL]).any():
        raise DataShapeError('Duplicate (unit, time) pairs found in panel')

    periods_per_unit = [
        tuple(periods) for _, periods in panel.groupby(ID_COL, sort=False)[TIME_COL]
    ]
    reference = periods_per_unit[0]
    if any(periods != reference for periods in periods_per_unit):
        raise DataShapeError(
            'Panel is not balanced: units are observed over different periods'
        )

    steps = np.diff(np.asarray(reference, dtype=float))
    if np.any(steps != 1):
        raise DataShapeError(
            f"Time index has gaps: periods {list(reference)} are not consecutive"
        )

    n_units = len(periods_per_unit)
    n_periods = len(reference)
    if n_periods <= N_LAGS + 1:
        raise DataShapeError(
            f"Panel needs more than {N_LAGS + 1} periods to build {N_LAGS} lags "
            f"and a differenced equation, found {n_periods}"
        )
    return n_units, n_periods


def panel_dims(panel: pd.DataFrame) -> Tuple[int, int]:
    """Number of units and periods of a canonical panel."""
    n_units = panel[ID_COL].nunique()
    return n_units, len(panel) // n_units


def outcome_matrix(panel: pd.DataFrame, column: str = OUTCOME_COL) -> np.ndarray:
    """Reshape a canonical panel column into an (n_units, n_periods) array."""
    n_units, n_periods = panel_dims(panel)
    return panel[column].to_numpy(dtype=float).reshape(n_units, n_periods)


def add_lags(panel: pd.DataFrame, n_lags: int = N_LAGS) -> pd.DataFrame:
    """
    Recompute the lagged-outcome columns from row order.

    The panel must be sorted by unit and period. Lag ``k`` of row ``t`` is the
    outcome at row ``t - k`` of the same unit; the first ``k`` periods of every
    unit get NaN.
    """
    y = outcome_matrix(panel)
    panel = panel.copy()
    for k in range(1, n_lags + 1):
        lagged = np.full_like(y, np.nan)
        lagged[:, k:] = y[:, :-k]
        panel[LAG_COLS[k - 1]] = lagged.ravel()
    return panel


def relabel(
    panel: pd.DataFrame,
    unit_ids: Optional[np.ndarray] = None,
    n_periods: Optional[int] = None,
) -> pd.DataFrame:
    """
    Assign unit ids and periods 1..N and 1..T following row order.

    Rows are read as consecutive blocks of ``n_periods`` rows, one block per
    unit. Pass ``n_periods`` whenever the current ids may repeat across
    blocks (a unit drawn twice by a resampler); otherwise it is inferred
    from the ids.

    When ``unit_ids`` is given, unit ``i`` (in current row order) receives
    ``unit_ids[i]`` and the panel is re-sorted by the new ids.
    """
    if n_periods is None:
        n_units, n_periods = panel_dims(panel)
    else:
        n_units = len(panel) // n_periods
        if n_units * n_periods != len(panel):
            raise DataShapeError(
                f"{len(panel)} rows do not split into blocks of {n_periods} periods"
            )
    panel = panel.copy()
    if unit_ids is None:
        unit_ids = np.arange(1, n_units + 1)
    panel[ID_COL] = np.repeat(np.asarray(unit_ids), n_periods)
    panel[TIME_COL] = np.tile(np.arange(1, n_periods + 1), n_units)
    panel = panel.sort_values([ID_COL, TIME_COL], kind='mergesort')
    return panel.reset_index(drop=True)
