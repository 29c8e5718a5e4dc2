"""
Common data structures for BCa analyses.

BCaParams is the parameter payload wrapped by Result[P] and exposed
through BCaSolution. BCaStats and LimitsTable mirror the two tables of
R's bcaboot output: the per-analysis statistics with their internal
standard errors, and the per-alpha limits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

import numpy as np
from numpy.typing import NDArray


# Diagnostic codes
ESTIMATOR_FAILURE = 'estimator_failure'
BOUNDARY_EXCEEDED = 'boundary_exceeded'
DEGENERATE_LIMIT = 'degenerate_limit'
NUMERICAL_INSTABILITY = 'numerical_instability'
ZERO_VARIANCE_JACKKNIFE = 'zero_variance_jackknife'
ZERO_BOOTSTRAP_VARIANCE = 'zero_bootstrap_variance'

DEFAULT_ALPHA = (0.025, 0.05, 0.1, 0.16, 0.5, 0.84, 0.9, 0.95, 0.975)

STAT_NAMES = ('theta', 'sdboot', 'z0', 'a', 'sdjack')


@dataclass(frozen=True)
class Diagnostic:
    """
    A non-fatal condition raised during an analysis.

    alpha is set for per-level conditions (degenerate limits, clamped
    limit variances) and None otherwise.
    """
    code: str
    message: str
    alpha: float | None = None


@dataclass(frozen=True)
class ResampleCounts:
    """
    Nonparametric resampling payload.

    counts[b, i] is how many times observation i appears in bootstrap
    sample b; replicates[b] is the statistic for that sample.
    """
    counts: NDArray[np.int64]                  # shape (B, n)
    replicates: NDArray[np.floating[Any]]      # shape (B,)

    @property
    def B(self) -> int:
        return self.replicates.shape[0]

    @property
    def n(self) -> int:
        return self.counts.shape[1]


@dataclass(frozen=True)
class SufficientStatistics:
    """
    Parametric resampling payload.

    stats[b] is the sufficient-statistic vector of parametric resample b;
    replicates[b] is the statistic recomputed from it.
    """
    stats: NDArray[np.floating[Any]]           # shape (B, p)
    replicates: NDArray[np.floating[Any]]      # shape (B,)

    @property
    def B(self) -> int:
        return self.replicates.shape[0]

    @property
    def p(self) -> int:
        return self.stats.shape[1]


@dataclass(frozen=True)
class BCaStats:
    """
    Per-analysis statistics.

    - theta: point estimate t0
    - sdboot: bootstrap standard deviation of the replicates
    - z0: bias-correction constant
    - a: acceleration constant
    - sdjack: jackknife (or regression) standard error of theta
    - jsd: internal (resampling) standard error of each field above
    """
    theta: float
    sdboot: float
    z0: float
    a: float
    sdjack: float
    jsd: dict[str, float] = field(default_factory=dict)

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in STAT_NAMES}


@dataclass(frozen=True)
class LimitsTable:
    """
    BCa and standard limits, one row per alpha level (ascending).

    - bca: BCa limit, NaN where the row is degenerate
    - standard: t0 + sdboot * z_alpha
    - internal_se: Monte Carlo standard error of the BCa limit (never NaN)
    - pct: percentile of the replicate distribution the BCa limit was read at
    - degenerate: True where 1 - a * (z0 + z_alpha) <= 0
    """
    alpha: NDArray[np.floating[Any]]
    bca: NDArray[np.floating[Any]]
    standard: NDArray[np.floating[Any]]
    internal_se: NDArray[np.floating[Any]]
    pct: NDArray[np.floating[Any]]
    degenerate: NDArray[np.bool_]

    def __len__(self) -> int:
        return len(self.alpha)

    def rows(self) -> Iterator[dict[str, Any]]:
        """Iterate over rows as plain dicts."""
        for j in range(len(self)):
            yield {
                'alpha': float(self.alpha[j]),
                'bca': float(self.bca[j]),
                'standard': float(self.standard[j]),
                'internal_se': float(self.internal_se[j]),
                'pct': float(self.pct[j]),
                'degenerate': bool(self.degenerate[j]),
            }

    def at(self, alpha: float) -> dict[str, Any]:
        """Row for a given alpha level."""
        idx = np.flatnonzero(np.isclose(self.alpha, alpha, rtol=0.0, atol=1e-12))
        if idx.size == 0:
            raise KeyError(f"alpha={alpha} not in limits table {self.alpha.tolist()}")
        return list(self.rows())[int(idx[0])]


@dataclass(frozen=True)
class BCaParams:
    """
    Parameter payload for BCa results.

    - stats: BCaStats (estimates plus internal SEs)
    - limits: LimitsTable
    - B_mean: (number of replicates used, mean of the replicates)
    - ustats: (2 * t0 - mean(tt), its smoothed standard deviation)
    - abc_stats: regression diagnostics, None in jackknife mode
    - diagnostics: every non-fatal condition raised; empty on clean runs
    - n_missing: replicates excluded for estimator failure
    - mode: 'jackknife', 'regression' or 'parametric'
    """
    stats: BCaStats
    limits: LimitsTable
    B_mean: tuple[int, float]
    ustats: dict[str, float]
    abc_stats: dict[str, float] | None
    diagnostics: tuple[Diagnostic, ...]
    n_missing: int
    mode: str
