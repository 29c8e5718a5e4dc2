"""
Solution wrapper for BCa results.

BCaSolution wraps Result[BCaParams] and provides read-only accessors and
a bcaboot-style text summary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from pybcaboot.core.result import Result
from pybcaboot.bca._common import (
    BCaParams,
    BCaStats,
    Diagnostic,
    LimitsTable,
    STAT_NAMES,
)

if TYPE_CHECKING:
    from pybcaboot.bca.design import BCaDesign


_MODE_TITLES = {
    'jackknife': 'NONPARAMETRIC BCa BOOTSTRAP (jackknife acceleration)',
    'regression': 'NONPARAMETRIC BCa BOOTSTRAP (regression acceleration)',
    'parametric': 'PARAMETRIC BCa BOOTSTRAP',
}


@dataclass
class BCaSolution:
    """
    User-facing BCa results.

    Mirrors the output of R's bcajack/bcapar: a limits table, a stats
    table with internal standard errors, B.mean, ustats and the regression
    diagnostics, plus the diagnostics raised along the way.
    """
    _result: Result[BCaParams]
    _design: 'BCaDesign'

    # --- Core fields ---

    @property
    def point_estimate(self) -> float:
        """Estimator on the original data (t0)."""
        return self._result.params.stats.theta

    @property
    def bootstrap_se(self) -> float:
        """Standard deviation of the replicates."""
        return self._result.params.stats.sdboot

    @property
    def z0(self) -> float:
        """Bias-correction constant."""
        return self._result.params.stats.z0

    @property
    def a(self) -> float:
        """Acceleration constant."""
        return self._result.params.stats.a

    @property
    def jackknife_se(self) -> float:
        """Jackknife (or regression) standard error of the point estimate."""
        return self._result.params.stats.sdjack

    @property
    def stats(self) -> BCaStats:
        return self._result.params.stats

    @property
    def limits(self) -> LimitsTable:
        return self._result.params.limits

    @property
    def B_mean(self) -> tuple[int, float]:
        """(replicates used, mean of replicates)."""
        return self._result.params.B_mean

    @property
    def ustats(self) -> dict[str, float]:
        """Bias-corrected estimate 2*t0 - mean(tt) and its standard deviation."""
        return self._result.params.ustats

    @property
    def abc_stats(self) -> dict[str, float] | None:
        """Regression diagnostics (a, sd_linear, r_squared); None in jackknife mode."""
        return self._result.params.abc_stats

    @property
    def diagnostics(self) -> tuple[Diagnostic, ...]:
        return self._result.params.diagnostics

    def has_diagnostic(self, code: str) -> bool:
        """True if any diagnostic with this code was raised."""
        return any(d.code == code for d in self.diagnostics)

    @property
    def n_missing(self) -> int:
        """Replicates excluded because the estimator failed."""
        return self._result.params.n_missing

    @property
    def mode(self) -> str:
        return self._result.params.mode

    # --- Metadata ---

    @property
    def alpha(self):
        return self._design.alpha

    @property
    def seed(self) -> int | None:
        return self._design.seed

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    # --- Display ---

    def summary(self) -> str:
        """
        bcaboot-style printout.

        Produces:
            NONPARAMETRIC BCa BOOTSTRAP (jackknife acceleration)

            Limits :
               alpha          bca      jacksd       pct     standard
               0.025      4.12345     0.01234     0.021      4.10000
               ...

            Stats :
                     theta    sdboot        z0         a    sdjack
               est  ...
               jsd  ...
        """
        lines = [f"\n{_MODE_TITLES.get(self.mode, 'BCa BOOTSTRAP')}\n"]

        lines.append("Limits :")
        lines.append(
            f"{'alpha':>8s} {'bca':>12s} {'jacksd':>10s} {'pct':>8s} {'standard':>12s}"
        )
        for row in self.limits.rows():
            bca = "degenerate" if row['degenerate'] else f"{row['bca']:.5f}"
            pct = "" if row['degenerate'] else f"{row['pct']:.3f}"
            lines.append(
                f"{row['alpha']:8.3f} {bca:>12s} {row['internal_se']:10.5f} "
                f"{pct:>8s} {row['standard']:12.5f}"
            )

        lines.append("")
        lines.append("Stats :")
        lines.append(f"{'':>5s}" + "".join(f"{name:>12s}" for name in STAT_NAMES))
        est = self.stats.as_dict()
        lines.append(f"{'est':>5s}" + "".join(f"{est[name]:12.5f}" for name in STAT_NAMES))
        lines.append(
            f"{'jsd':>5s}"
            + "".join(f"{self.stats.jsd.get(name, 0.0):12.5f}" for name in STAT_NAMES)
        )

        lines.append("")
        B_used, mean_tt = self.B_mean
        lines.append(f"B.mean : {B_used}  {mean_tt:.5f}")
        lines.append(
            f"ustats : ustat={self.ustats['ustat']:.5f}  sdu={self.ustats['sdu']:.5f}"
        )
        if self.abc_stats is not None:
            lines.append(
                "abc    : "
                + "  ".join(f"{k}={v:.5f}" for k, v in self.abc_stats.items())
            )

        if self.diagnostics:
            lines.append("")
            lines.append("Diagnostics :")
            for d in self.diagnostics:
                lines.append(f"  [{d.code}] {d.message}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"BCaSolution(mode={self.mode!r}, theta={self.point_estimate:.4g}, "
            f"z0={self.z0:.4g}, a={self.a:.4g}, B={self.B_mean[0]})"
        )
