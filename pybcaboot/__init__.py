"""
pybcaboot: bias-corrected and accelerated bootstrap confidence limits.

Computes BCa limits, their internal (Monte Carlo) standard errors and the
supporting statistics z0, a and the jackknife standard error, following
Efron and Narasimhan's bcaboot.

Submodules:
    bca: bcajack, bcajack2, bcapar
    core: result envelope, exceptions, validation
"""

__version__ = "0.1.0"
__author__ = "Hai-Shuo"
__email__ = "contact@sgcx.org"

from pybcaboot import bca
from pybcaboot.bca import bcajack, bcajack2, bcapar

__all__ = [
    "__version__",
    "bca",
    "bcajack",
    "bcajack2",
    "bcapar",
]
