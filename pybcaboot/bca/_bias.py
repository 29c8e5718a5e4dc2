"""
Bias-correction constant z0.

z0 = Phi^{-1}(proportion of replicates strictly below t0). When t0 lies
outside the replicate range the proportion is 0 or 1 and the raw z0 would
be infinite; the proportion is then moved in by ``correction / B``.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import stats as sp_stats

from pybcaboot.bca._common import Diagnostic, BOUNDARY_EXCEEDED


def bias_correction(
    tt: NDArray[np.floating[Any]],
    t0: float,
    correction: float = 0.5,
) -> tuple[float, float, tuple[Diagnostic, ...]]:
    """
    Estimate the bias-correction constant.

    Args:
        tt: Replicate statistics, shape (B,).
        t0: Point estimate.
        correction: Boundary proportions 0 and 1 are replaced with
            correction / B and 1 - correction / B. The default 0.5 gives
            the usual 1 / (2B).

    Returns:
        (z0, p, diagnostics) where p is the (possibly corrected) proportion.
    """
    B = tt.shape[0]
    p = float(np.mean(tt < t0))
    diagnostics: tuple[Diagnostic, ...] = ()

    if p <= 0.0 or p >= 1.0:
        raw = p
        p = correction / B if raw <= 0.0 else 1.0 - correction / B
        diagnostics = (Diagnostic(
            code=BOUNDARY_EXCEEDED,
            message=(
                f"point estimate lies {'at or below' if raw <= 0.0 else 'above'} "
                f"every replicate; proportion {raw:g} replaced with {p:.6g}"
            ),
        ),)

    z0 = float(sp_stats.norm.ppf(p))
    return z0, p, diagnostics
