"""
Warning category hierarchy for the abcalib package.

All warning classes inherit from :class:`ABCalibWarning`, which itself
inherits from :class:`UserWarning`, so they can be filtered selectively
with ``warnings.filterwarnings()``.

Examples
--------
Silence rank-deficiency notices from the GMM solver during a long run:

>>> import warnings
>>> from abcalib import NumericalWarning
>>> warnings.filterwarnings('ignore', category=NumericalWarning)
"""


class ABCalibWarning(UserWarning):
    """Base warning class for all abcalib package warnings."""
    pass


class NumericalWarning(ABCalibWarning):
    """
    Warning raised when numerical instability is detected.

    Triggered when the GMM moment covariance matrix is rank deficient and a
    Moore-Penrose pseudo-inverse is used as the weighting matrix. This is
    routine when the instrument count exceeds the number of units.
    """
    pass


class BootstrapFailureWarning(ABCalibWarning):
    """
    Warning raised when a noticeable share of bootstrap replications fail.

    The bootstrap spread is still computed from the successful
    replications.
    """
    pass


class SimulationWarning(ABCalibWarning):
    """
    Warning raised when Monte Carlo trials fail to produce point estimates.

    Failed trials are kept in the trial matrix as missing rows and skipped
    by the summary tables.
    """
    pass
