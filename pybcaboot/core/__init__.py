"""
Core infrastructure for pybcaboot.

Key components:
    protocols: DataSource, Backend protocols
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing utilities
"""

from pybcaboot.core.protocols import DataSource, Backend
from pybcaboot.core.result import Result
from pybcaboot.core.exceptions import (
    PyBCaBootError,
    ValidationError,
    DimensionError,
    InvalidParameterError,
    NumericalError,
    EstimatorFailureError,
)

__all__ = [
    # Protocols
    "DataSource",
    "Backend",
    # Result
    "Result",
    # Exceptions
    "PyBCaBootError",
    "ValidationError",
    "DimensionError",
    "InvalidParameterError",
    "NumericalError",
    "EstimatorFailureError",
]
