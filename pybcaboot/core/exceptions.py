"""
Exception hierarchy for pybcaboot.

All exceptions inherit from PyBCaBootError to allow catching any
library-specific error.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Structural problems (bad shapes, too few replicates) raise immediately;
      per-replicate and per-alpha problems are recorded as diagnostics instead
"""


class PyBCaBootError(Exception):
    """Base exception for all pybcaboot errors."""
    pass


class ValidationError(PyBCaBootError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions or
    when multiple arrays have inconsistent shapes (e.g. a count matrix
    whose row count differs from the replicate vector length).
    """
    pass


class InvalidParameterError(ValidationError):
    """
    A scalar tuning parameter is out of range.

    Raised for B < 2, n < 2, alpha outside (0, 1), bad group counts,
    unknown option strings and similar.

    Attributes:
        name: Parameter name
        value: The rejected value
    """

    def __init__(self, message: str, name: str | None = None, value=None):
        super().__init__(message)
        self.name = name
        self.value = value


class NumericalError(PyBCaBootError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class EstimatorFailureError(PyBCaBootError):
    """
    Too many estimator evaluations failed.

    Individual failures (exceptions, non-finite values, timeouts) are
    tolerated by excluding the replicate. Once the failed fraction exceeds
    the configured threshold the analysis cannot be trusted and this is
    raised.

    Attributes:
        n_failed: Number of failed evaluations
        n_total: Number of attempted evaluations
        threshold: Maximum tolerated failure fraction
        stage: Which evaluation stage failed ('replicates' or 'jackknife')
    """

    def __init__(
        self,
        message: str,
        n_failed: int,
        n_total: int,
        threshold: float | None = None,
        stage: str | None = None,
    ):
        super().__init__(message)
        self.n_failed = n_failed
        self.n_total = n_total
        self.threshold = threshold
        self.stage = stage
