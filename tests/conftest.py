"""
Pytest configuration file providing shared fixtures.

Synthetic balanced democracy/GDP panels follow an AR(4) process with unit and
period effects; democracy switches on at a unit-specific date (or never).
Stub solvers stand in for the GMM solver where the numerical details of the
Arellano-Bond fit are irrelevant to the property under test.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
import pytest

from abcalib.exceptions import EstimationFailure
from abcalib.gmm import GMMSolution
from abcalib.panel import prepare_panel

TRUE_BETA = 0.8
TRUE_RHO = (0.5, 0.15, 0.1, 0.05)


def make_democracy_panel(n_units=30, n_periods=12, seed=0, sigma=0.5):
    """
    Simulate a balanced panel with columns ``country, t, y, democracy``.

    Column names differ from the canonical ones on purpose so that tests go
    through :func:`abcalib.panel.prepare_panel`.
    """
    rng = np.random.default_rng(seed)
    alpha = rng.normal(0.0, 1.0, n_units)
    lam = np.linspace(0.0, 0.5, n_periods)
    switch = rng.integers(0, n_periods + 4, n_units)
    dem = (np.arange(n_periods)[None, :] >= switch[:, None]).astype(float)

    y = np.zeros((n_units, n_periods))
    y[:, :4] = alpha[:, None] / (1 - sum(TRUE_RHO)) + rng.normal(0, sigma, (n_units, 4))
    for t in range(4, n_periods):
        y[:, t] = alpha + lam[t] + TRUE_BETA * dem[:, t] + rng.normal(0, sigma, n_units)
        for k, rho in enumerate(TRUE_RHO, start=1):
            y[:, t] += rho * y[:, t - k]

    return pd.DataFrame({
        'country': np.repeat(np.arange(101, 101 + n_units), n_periods),
        't': np.tile(np.arange(1990, 1990 + n_periods), n_units),
        'y': y.ravel(),
        'democracy': dem.ravel(),
    })


def to_canonical(raw):
    return prepare_panel(raw, ivar='country', tvar='t', y='y', d='democracy')


@dataclass(frozen=True)
class StubSolver:
    """
    Deterministic solver returning fixed coefficients shifted by the panel's
    mean outcome, with a scaled identity covariance.
    """
    base: tuple = (0.1, 0.2, 0.2, 0.2, 0.2)
    scale: float = 0.01

    def fit(self, panel, spec):
        shift = 1e-3 * float(panel['lgdp'].mean())
        params = np.asarray(self.base, dtype=float) + shift
        names = ['dem', 'l1lgdp', 'l2lgdp', 'l3lgdp', 'l4lgdp']
        return GMMSolution(
            params=pd.Series(params, index=names),
            vcov=pd.DataFrame(self.scale * np.eye(5), index=names, columns=names),
            n_units=panel['id'].nunique(),
            n_obs=len(panel),
            n_instruments=5,
        )


@dataclass(frozen=True)
class FailingSolver:
    """Solver that never converges."""

    def fit(self, panel, spec):
        raise EstimationFailure('stub solver failure')


@pytest.fixture
def raw_panel():
    """Raw synthetic panel: 30 units x 12 periods."""
    return make_democracy_panel()


@pytest.fixture
def panel(raw_panel):
    """Canonical synthetic panel: 30 units x 12 periods."""
    return to_canonical(raw_panel)


@pytest.fixture
def small_panel():
    """Canonical synthetic panel: 10 units x (8 + 4) periods."""
    return to_canonical(make_democracy_panel(n_units=10, n_periods=12, seed=1))


@pytest.fixture
def large_panel():
    """Canonical synthetic panel for the real GMM solver: 200 units x 10 periods."""
    return to_canonical(make_democracy_panel(n_units=200, n_periods=10, seed=2))


@pytest.fixture
def panel_factory():
    """Factory building canonical panels of arbitrary size."""
    def factory(n_units=30, n_periods=12, seed=0, sigma=0.5):
        return to_canonical(make_democracy_panel(n_units, n_periods, seed, sigma))
    return factory


@pytest.fixture
def stub_solver():
    return StubSolver()


@pytest.fixture
def failing_solver():
    return FailingSolver()
