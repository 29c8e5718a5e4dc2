"""
pybcaboot BCa confidence limits.

Bias-corrected and accelerated bootstrap limits (matching R's bcaboot
package) for nonparametric and parametric bootstrap analyses.

Usage:
    from pybcaboot.bca import bcajack, bcajack2, bcapar

    # Nonparametric, jackknife acceleration
    result = bcajack(x, B=2000, func=np.mean, seed=42)
    print(result.summary())

    # Nonparametric, regression acceleration from precomputed resamples
    result = bcajack2(counts=Y, tt=tt, t0=t0)

    # Parametric, from replicates and sufficient statistics
    result = bcapar(t0, tt, bb)
"""

from pybcaboot.bca._common import (
    BCaStats,
    Diagnostic,
    LimitsTable,
    ResampleCounts,
    SufficientStatistics,
)
from pybcaboot.bca.design import BCaDesign
from pybcaboot.bca.solution import BCaSolution
from pybcaboot.bca.solvers import bcajack, bcajack2, bcapar

__all__ = [
    "bcajack",
    "bcajack2",
    "bcapar",
    "BCaDesign",
    "BCaSolution",
    "BCaStats",
    "LimitsTable",
    "Diagnostic",
    "ResampleCounts",
    "SufficientStatistics",
]
