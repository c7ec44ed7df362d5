"""
Exception Classes Module

Defines the exception hierarchy for the abcalib package.
"""


class ABCalibError(Exception):
    """
    Base exception class for all abcalib package errors.

    All custom exceptions in the abcalib package inherit from this class,
    allowing callers to catch any package-specific error with:

        try:
            study = run_calibration_study(data)
        except ABCalibError as e:
            print(f"abcalib error: {e}")
    """
    pass


class InvalidParameterError(ABCalibError):
    """
    Exception raised when a configuration or call parameter is invalid.

    Common triggers include:

    - Non-positive trial or bootstrap replication counts
    - Unknown resampling strategy name
    - Invalid parallelism degree

    See Also
    --------
    MissingRequiredColumnError : For absent panel columns.
    """
    pass


class MissingRequiredColumnError(InvalidParameterError):
    """
    Exception raised when the input DataFrame lacks a required column.

    Required columns are the unit id, time period, log-GDP outcome and
    democracy indicator (``id``, ``year``, ``lgdp``, ``dem`` by default).

    Examples
    --------
    >>> prepare_panel(data.drop(columns='dem'))  # doctest: +SKIP
    MissingRequiredColumnError: Required column 'dem' not found in data
    """
    pass


class DataShapeError(ABCalibError):
    """
    Exception raised when the panel does not have the required shape.

    Trigger conditions:

    - Duplicate (unit, time) pairs
    - Unbalanced panel (units observed over different sets of periods)
    - Gaps in the time index
    - Too few periods to build four lags of the outcome

    This error is fatal: it is raised while preparing the panel, before
    any parallel work starts.

    See Also
    --------
    abcalib.panel.prepare_panel : Function that performs these checks.
    """
    pass


class EstimationFailure(ABCalibError):
    """
    Exception raised when the GMM solver cannot produce an estimate.

    Trigger conditions include a singular (or numerically non-finite)
    weighting or covariance matrix and non-finite coefficients. The
    Bootstrap Engine and Monte Carlo Driver catch this exception and record
    the affected trial or replication as missing (NaN) instead of aborting.

    See Also
    --------
    abcalib.estimation.estimate : Estimator that propagates this error.
    """
    pass


class RandomStreamError(ABCalibError):
    """
    Exception raised for an invalid seed or unsupported stream algorithm.

    Seeds must be non-negative integers; algorithms must be one of the
    jump-capable numpy bit generators listed in
    ``abcalib.rng.SUPPORTED_ALGORITHMS``.
    """
    pass
