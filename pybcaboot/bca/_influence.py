"""
Influence values and the BCa acceleration constant.

Two estimators of the acceleration a:

- Jackknife: from leave-one-out (or leave-one-group-out) estimates u,
      L_i = (g-1) * (mean(u) - u_i)
      a   = sum(L^3) / (6 * sum(L^2)^1.5)

- Regression: the centred replicates are regressed on the centred
  resampling counts (nonparametric) or sufficient statistics (parametric).
  The coefficients play the role of influence values; for parametric
  resampling a is the third moment of the fitted linear predictor scaled
  by the bootstrap standard deviation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import linalg as sp_linalg

from pybcaboot.core.exceptions import NumericalError
from pybcaboot.bca._common import (
    Diagnostic,
    NUMERICAL_INSTABILITY,
    ZERO_VARIANCE_JACKKNIFE,
)
from pybcaboot.bca._se import jackknife_se

_TINY = 1e-300


@dataclass(frozen=True)
class JackknifeFit:
    a: float
    sdjack: float
    influence: NDArray[np.floating[Any]]
    diagnostics: tuple[Diagnostic, ...]


@dataclass(frozen=True)
class RegressionFit:
    """
    Regression-based acceleration.

    Besides a and sdjack, carries what the delta-method standard errors
    need: the centred design Xc, the residuals, (Xc'Xc)^+, the gradient of
    a with respect to beta, da/dsigma, and the direct per-replicate term of
    a at fixed beta (the last two nonzero only for parametric).
    """
    a: float
    sdjack: float
    sd_linear: float
    r_squared: float
    beta: NDArray[np.floating[Any]]
    Xc: NDArray[np.floating[Any]]
    residuals: NDArray[np.floating[Any]]
    xtx_pinv: NDArray[np.floating[Any]]
    grad_beta: NDArray[np.floating[Any]]
    da_dsigma: float
    direct: NDArray[np.floating[Any]]
    diagnostics: tuple[Diagnostic, ...]


def jackknife_influence(u: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
    """
    Jackknife influence values.

        L_i = (g-1) * (mean(u) - u_i)

    where u holds the g delete-one (or delete-one-group) estimates.
    """
    g = u.shape[0]
    return (g - 1) * (np.mean(u) - u)


def _skew_ratio(L: NDArray) -> float:
    """sum(L^3) / (6 * sum(L^2)^1.5), assuming sum(L^2) > 0."""
    return float(np.sum(L ** 3) / (6.0 * np.sum(L ** 2) ** 1.5))


def jackknife_acceleration(u: NDArray[np.floating[Any]]) -> JackknifeFit:
    """
    Acceleration and jackknife standard error from jackknife estimates.

    All-equal estimates give a = 0 and a zero_variance_jackknife flag.
    """
    L = jackknife_influence(u)
    sdjack = jackknife_se(u)

    if np.sum(L ** 2) <= _TINY:
        return JackknifeFit(
            a=0.0,
            sdjack=0.0,
            influence=L,
            diagnostics=(Diagnostic(
                code=ZERO_VARIANCE_JACKKNIFE,
                message="all jackknife estimates are identical; acceleration set to 0",
            ),),
        )

    return JackknifeFit(a=_skew_ratio(L), sdjack=sdjack, influence=L, diagnostics=())


def regression_acceleration(
    X: NDArray[np.floating[Any]],
    tt: NDArray[np.floating[Any]],
    kind: str,
    sdboot: float,
) -> RegressionFit:
    """
    Acceleration from a linear regression of replicates on resampling structure.

    Args:
        X: Count matrix (B, n) for kind="counts", sufficient statistics
            (B, p) for kind="parametric".
        tt: Replicates, shape (B,).
        kind: "counts" or "parametric".
        sdboot: Bootstrap standard deviation of tt.

    Returns:
        RegressionFit.

    Raises:
        NumericalError: If the least-squares solve fails.
    """
    X = np.asarray(X, dtype=np.float64)
    B = X.shape[0]
    Xc = X - X.mean(axis=0)
    tc = tt - tt.mean()

    try:
        beta, _, _, _ = sp_linalg.lstsq(Xc, tc)
        xtx_pinv = np.linalg.pinv(Xc.T @ Xc)
    except (np.linalg.LinAlgError, ValueError) as e:
        raise NumericalError(f"regression of replicates on {kind} failed: {e}") from e

    fitted = Xc @ beta
    residuals = tc - fitted
    ss_tot = float(tc @ tc)
    r_squared = 1.0 - float(residuals @ residuals) / ss_tot if ss_tot > 0 else 0.0
    sd_linear = float(np.std(fitted, ddof=1))

    diagnostics: tuple[Diagnostic, ...] = ()
    a = 0.0
    da_dsigma = 0.0
    grad_beta = np.zeros_like(beta)
    direct = np.zeros(B)

    if kind == "counts":
        n = X.shape[1]
        c = beta - beta.mean()
        L = n * c
        S = float(np.sum(c ** 2))
        sdjack = float(np.sqrt(np.sum(L ** 2)) / n)
        if S <= _TINY:
            diagnostics = (Diagnostic(
                code=NUMERICAL_INSTABILITY,
                message="regression influence values are all zero; acceleration set to 0",
            ),)
        else:
            a = _skew_ratio(c)
            g = c ** 2 / (2.0 * S ** 1.5) - np.sum(c ** 3) * c / (2.0 * S ** 2.5)
            grad_beta = g - g.mean()
    elif kind == "parametric":
        sdjack = sd_linear
        if sdboot <= 0.0 or not np.any(fitted):
            diagnostics = (Diagnostic(
                code=NUMERICAL_INSTABILITY,
                message="linear predictor or bootstrap sd is zero; acceleration set to 0",
            ),)
        else:
            a = float(np.mean(fitted ** 3) / (6.0 * sdboot ** 3))
            grad_beta = Xc.T @ (fitted ** 2) / (2.0 * B * sdboot ** 3)
            da_dsigma = -3.0 * a / sdboot
            # a is a mean over replicates of fitted^3, and fitted depends on the
            # column means of X; both move with each replicate at fixed beta
            s3 = sdboot ** 3
            direct = (
                (fitted ** 3 - np.mean(fitted ** 3)) / (6.0 * s3)
                - np.mean(fitted ** 2) * fitted / (2.0 * s3)
            )
    else:
        raise ValueError(f"Unknown regression kind: {kind!r}")

    return RegressionFit(
        a=a,
        sdjack=sdjack,
        sd_linear=sd_linear,
        r_squared=r_squared,
        beta=beta,
        Xc=Xc,
        residuals=residuals,
        xtx_pinv=xtx_pinv,
        grad_beta=grad_beta,
        da_dsigma=da_dsigma,
        direct=direct,
        diagnostics=diagnostics,
    )
