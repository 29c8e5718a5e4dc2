"""
BCa and standard confidence limits.

For each level alpha:
    w        = z0 + z_alpha
    z_adj    = z0 + w / (1 - a * w)
    pct      = Phi(z_adj)
    bca      = quantile(tt, pct)
    standard = t0 + sdboot * z_alpha

A level whose denominator 1 - a * w is not positive has no meaningful
BCa limit; it is flagged degenerate and left as NaN.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import stats as sp_stats

from pybcaboot.bca._common import Diagnostic, DEGENERATE_LIMIT


@dataclass(frozen=True)
class BCaLimits:
    bca: NDArray[np.floating[Any]]
    pct: NDArray[np.floating[Any]]
    z_adj: NDArray[np.floating[Any]]
    denom: NDArray[np.floating[Any]]
    degenerate: NDArray[np.bool_]
    diagnostics: tuple[Diagnostic, ...]


def adjusted_z(
    z0: float,
    a: float,
    alpha: NDArray[np.floating[Any]],
) -> tuple[NDArray, NDArray, NDArray]:
    """
    BCa-adjusted normal quantiles.

    Returns:
        (z_adj, w, denom); z_adj is NaN wherever denom <= 0.
    """
    w = z0 + sp_stats.norm.ppf(alpha)
    denom = 1.0 - a * w
    z_adj = np.full_like(w, np.nan)
    ok = denom > 0.0
    z_adj[ok] = z0 + w[ok] / denom[ok]
    return z_adj, w, denom


def bca_limits(
    tt: NDArray[np.floating[Any]],
    z0: float,
    a: float,
    alpha: NDArray[np.floating[Any]],
    interpolation: str = "linear",
) -> BCaLimits:
    """
    BCa limits read off the replicate distribution.

    Args:
        tt: Replicate statistics, shape (B,).
        z0: Bias-correction constant.
        a: Acceleration constant.
        alpha: Levels in (0, 1), ascending.
        interpolation: numpy.quantile method used between order statistics.

    Returns:
        BCaLimits with one entry per alpha.
    """
    alpha = np.asarray(alpha, dtype=np.float64)
    z_adj, _, denom = adjusted_z(z0, a, alpha)
    degenerate = ~(denom > 0.0)

    pct = np.full_like(alpha, np.nan)
    bca = np.full_like(alpha, np.nan)
    ok = ~degenerate
    if np.any(ok):
        pct[ok] = sp_stats.norm.cdf(z_adj[ok])
        bca[ok] = np.quantile(tt, pct[ok], method=interpolation)

    diagnostics = tuple(
        Diagnostic(
            code=DEGENERATE_LIMIT,
            message=(
                f"1 - a*(z0 + z_alpha) = {denom[j]:.4g} <= 0 at alpha={alpha[j]:g}; "
                f"no BCa limit"
            ),
            alpha=float(alpha[j]),
        )
        for j in np.flatnonzero(degenerate)
    )

    return BCaLimits(
        bca=bca,
        pct=pct,
        z_adj=z_adj,
        denom=denom,
        degenerate=degenerate,
        diagnostics=diagnostics,
    )


def standard_limits(
    t0: float,
    sdboot: float,
    alpha: NDArray[np.floating[Any]],
) -> NDArray[np.floating[Any]]:
    """Normal-theory limits t0 + sdboot * z_alpha."""
    return t0 + sdboot * sp_stats.norm.ppf(np.asarray(alpha, dtype=np.float64))
