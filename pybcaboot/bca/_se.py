"""
Internal standard errors.

"Internal" means Monte Carlo error: how much z0, a, sdboot and the BCa
limits would move under a fresh set of B replicates. Two estimators:

- Delta method (default). Each replicate contributes an influence row
  (phi_z0, phi_a, phi_sigma); Cov = Phi' Phi / B^2. A BCa limit is the
  replicate quantile at pct(z0, a); its gradient with respect to (z0, a),
  scaled by the local spread of the replicates, is combined with the
  influence rows together with the quantile's own sampling error.

- Grouped jackknife over replicates. The B replicates are split K times
  into J random groups; each group is left out in turn and z0, sdboot and
  the limits recomputed with a held fixed.

Variances that come out negative or NaN are clamped to zero and flagged.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy import stats as sp_stats

from pybcaboot.bca._common import Diagnostic, NUMERICAL_INSTABILITY
from pybcaboot.bca._bias import bias_correction
from pybcaboot.bca._limits import BCaLimits, bca_limits
from pybcaboot.bca._resample import random_groups

if TYPE_CHECKING:
    from pybcaboot.bca._influence import RegressionFit

# Column order of the influence matrix and covariance
IDX_Z0, IDX_A, IDX_SIGMA = 0, 1, 2


def jackknife_se(u: NDArray[np.floating[Any]]) -> float:
    """sqrt((g-1)/g * sum((u - mean(u))^2)) for g jackknife estimates."""
    g = u.shape[0]
    return float(np.sqrt((g - 1) / g * np.sum((u - np.mean(u)) ** 2)))


def clamp_variance(
    var: float,
    what: str,
    alpha: float | None = None,
) -> tuple[float, Diagnostic | None]:
    """
    Turn a variance into a standard error, clamping bad values to zero.

    Returns:
        (se, diagnostic) where diagnostic is None unless clamping happened.
    """
    if np.isfinite(var) and var >= 0.0:
        return float(np.sqrt(var)), None
    return 0.0, Diagnostic(
        code=NUMERICAL_INSTABILITY,
        message=f"variance of {what} was {var:.4g}; internal SE clamped to 0",
        alpha=alpha,
    )


def replicate_influence(
    tt: NDArray[np.floating[Any]],
    t0: float,
    z0: float,
    sdboot: float,
    fit: RegressionFit | None = None,
) -> NDArray[np.floating[Any]]:
    """
    Per-replicate influence rows for (z0, a, sdboot), shape (B, 3).

    phi_a is zero unless a regression fit supplies it; jackknife-based a
    does not depend on the replicates.
    """
    B = tt.shape[0]
    phi = np.zeros((B, 3), dtype=np.float64)

    below = (tt < t0).astype(np.float64)
    phi[:, IDX_Z0] = (below - below.mean()) / sp_stats.norm.pdf(z0)

    if sdboot > 0.0:
        dev2 = (tt - tt.mean()) ** 2
        phi[:, IDX_SIGMA] = (dev2 - sdboot ** 2) / (2.0 * sdboot)

    if fit is not None:
        direction = fit.Xc @ (fit.xtx_pinv @ fit.grad_beta)
        phi[:, IDX_A] = (
            B * direction * fit.residuals
            + fit.da_dsigma * phi[:, IDX_SIGMA]
            + fit.direct
        )

    return phi - phi.mean(axis=0)


def delta_covariance(
    phi: NDArray[np.floating[Any]],
    extra_var_a: float = 0.0,
) -> NDArray[np.floating[Any]]:
    """Covariance of (z0, a, sdboot) from influence rows."""
    B = phi.shape[0]
    cov = phi.T @ phi / B ** 2
    cov[IDX_A, IDX_A] += extra_var_a
    return cov


def delta_limit_se(
    tt: NDArray[np.floating[Any]],
    z0: float,
    alpha: NDArray[np.floating[Any]],
    limits: BCaLimits,
    phi: NDArray[np.floating[Any]],
    extra_var_a: float = 0.0,
) -> tuple[NDArray[np.floating[Any]], tuple[Diagnostic, ...]]:
    """
    Delta-method standard errors of the BCa limits.

    A limit is L = Q(pct(z0, a)), Q the empirical quantile function of the
    replicates. Linearised, replicate b contributes

        phi_L = s * (pdf(z_adj) * (dz_adj/dz0 * phi_z0 + dz_adj/da * phi_a)
                     - (I(tt_b <= L) - pct))

    where s = 1/f(L) is the local scale of the replicate distribution, read
    off the spacing of neighbouring quantiles. For normal replicates
    s * pdf(z_adj) = sdboot and the indicator term carries the sampling
    error of mean(tt) and sdboot.

    Degenerate rows (denom <= 0) get 0.
    """
    B = tt.shape[0]
    se = np.zeros_like(alpha, dtype=np.float64)
    diagnostics: list[Diagnostic] = []
    w = z0 + sp_stats.norm.ppf(alpha)

    for j in np.flatnonzero(limits.denom > 0.0):
        p = float(limits.pct[j])
        h = min(B ** -0.5, 0.5 * min(p, 1.0 - p))
        lo, hi = np.quantile(tt, [p - h, p + h])
        scale = (hi - lo) / (2.0 * h)

        d2 = limits.denom[j] ** 2
        dz0 = 1.0 + 1.0 / d2
        da = w[j] ** 2 / d2
        g = sp_stats.norm.pdf(limits.z_adj[j]) * scale

        below = (tt <= limits.bca[j]).astype(np.float64)
        phi_l = (
            g * (dz0 * phi[:, IDX_Z0] + da * phi[:, IDX_A])
            - scale * (below - below.mean())
        )
        var = float(phi_l @ phi_l) / B ** 2 + (g * da) ** 2 * extra_var_a
        se[j], diag = clamp_variance(var, "BCa limit", float(alpha[j]))
        if diag is not None:
            diagnostics.append(diag)

    return se, tuple(diagnostics)


def grouped_jackknife_se(
    tt: NDArray[np.floating[Any]],
    t0: float,
    a: float,
    alpha: NDArray[np.floating[Any]],
    J: int,
    K: int,
    rng: np.random.Generator,
    correction: float = 0.5,
    interpolation: str = "linear",
) -> tuple[dict[str, float], NDArray[np.floating[Any]], tuple[Diagnostic, ...]]:
    """
    Internal SEs from K repetitions of a J-group jackknife over replicates.

    Returns:
        ({'z0': se, 'sdboot': se}, limit_se, diagnostics). Per-repetition
        SEs are combined by root mean square.
    """
    B = tt.shape[0]
    sq_z0 = np.zeros(K)
    sq_sd = np.zeros(K)
    sq_lim = np.zeros((K, len(alpha)))
    diagnostics: list[Diagnostic] = []

    for k in range(K):
        labels = random_groups(B, J, rng)
        z0s = np.empty(J)
        sds = np.empty(J)
        lims = np.empty((J, len(alpha)))
        for j in range(J):
            keep = tt[labels != j]
            z0s[j], _, _ = bias_correction(keep, t0, correction)
            sds[j] = np.std(keep, ddof=1)
            lims[j] = bca_limits(keep, z0s[j], a, alpha, interpolation).bca
        sq_z0[k] = jackknife_se(z0s) ** 2
        sq_sd[k] = jackknife_se(sds) ** 2
        for c in range(len(alpha)):
            col = lims[:, c]
            sq_lim[k, c] = jackknife_se(col) ** 2 if np.all(np.isfinite(col)) else np.nan

    stat_se = {
        'z0': float(np.sqrt(np.mean(sq_z0))),
        'sdboot': float(np.sqrt(np.mean(sq_sd))),
    }
    lim_se = np.zeros(len(alpha))
    for c in range(len(alpha)):
        if np.all(np.isfinite(sq_lim[:, c])):
            lim_se[c] = np.sqrt(np.mean(sq_lim[:, c]))
        else:
            diagnostics.append(Diagnostic(
                code=NUMERICAL_INSTABILITY,
                message=(
                    f"leave-group-out BCa limit undefined at alpha={alpha[c]:g}; "
                    f"internal SE clamped to 0"
                ),
                alpha=float(alpha[c]),
            ))

    return stat_se, lim_se, tuple(diagnostics)
