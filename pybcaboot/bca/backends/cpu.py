"""
CPU backend for BCa confidence limits.

CPUBCaBackend runs the whole analysis for any BCaDesign:

    resample counts -> replicates (+ jackknife) -> z0, a
        -> BCa / standard limits -> internal SEs -> BCaParams

Per-replicate failures and per-alpha degeneracies are collected as
diagnostics; structural problems raise.
"""

from __future__ import annotations

import logging
import warnings

import numpy as np
from numpy.typing import NDArray

from pybcaboot.core.exceptions import EstimatorFailureError, InvalidParameterError
from pybcaboot.core.result import Result
from pybcaboot.core.compute.timing import Timer
from pybcaboot.bca._bias import bias_correction
from pybcaboot.bca._common import (
    BCaParams,
    BCaStats,
    Diagnostic,
    LimitsTable,
    ZERO_BOOTSTRAP_VARIANCE,
)
from pybcaboot.bca._evaluate import (
    check_missing,
    evaluate_frequencies,
    evaluate_point,
    jackknife_frequencies,
)
from pybcaboot.bca._influence import (
    RegressionFit,
    jackknife_acceleration,
    regression_acceleration,
)
from pybcaboot.bca._limits import BCaLimits, bca_limits, standard_limits
from pybcaboot.bca._resample import random_groups, resample_counts
from pybcaboot.bca._se import (
    IDX_A,
    IDX_SIGMA,
    IDX_Z0,
    clamp_variance,
    delta_covariance,
    delta_limit_se,
    grouped_jackknife_se,
    replicate_influence,
)
from pybcaboot.bca.design import BCaDesign

logger = logging.getLogger(__name__)


class CPUBCaBackend:
    """
    CPU backend for BCa analyses.

    Handles all three modes: jackknife (nonparametric, leave-one-out
    acceleration), regression (nonparametric, acceleration from counts)
    and parametric (acceleration from sufficient statistics).
    """

    @property
    def name(self) -> str:
        return 'cpu_bca'

    def solve(self, design: BCaDesign) -> Result[BCaParams]:
        """Run the analysis and return Result[BCaParams]."""
        timer = Timer()
        timer.start()

        rng = design.make_rng()
        diagnostics: list[Diagnostic] = []

        if design.func is not None:
            with timer.section('point_estimate'):
                t0 = evaluate_point(design.data, design.func, design.stype)
        else:
            t0 = design.t0

        # Replicates and their resampling structure
        counts, stats, tt = self._replicates(design, rng, timer)

        ok = np.isfinite(tt)
        n_failed = int(design.B - ok.sum())
        diag = check_missing(n_failed, design.B, design.max_missing_frac, 'replicates')
        if diag is not None:
            diagnostics.append(diag)
            tt = tt[ok]
            counts = None if counts is None else counts[ok]
            stats = None if stats is None else stats[ok]

        B_used = tt.shape[0]
        if B_used < 2:
            raise InvalidParameterError(
                f"need at least 2 usable replicates, got {B_used}",
                name='B', value=B_used,
            )
        if stats is not None and B_used <= stats.shape[1] + 1:
            raise InvalidParameterError(
                f"only {B_used} usable replicates for {stats.shape[1]} "
                f"sufficient statistics",
                name='B', value=B_used,
            )

        with timer.section('bias_correction'):
            sdboot = float(np.std(tt, ddof=1))
            if sdboot == 0.0:
                diagnostics.append(Diagnostic(
                    code=ZERO_BOOTSTRAP_VARIANCE,
                    message="all replicates are identical; bootstrap sd is 0",
                ))
            z0, _, diags = bias_correction(tt, t0, design.boundary_correction)
            diagnostics.extend(diags)

        fit: RegressionFit | None = None
        var_a = 0.0
        var_sdjack = 0.0
        with timer.section('acceleration'):
            if design.mode == 'jackknife':
                a, sdjack, var_a, var_sdjack, diags = self._jackknife(design, rng, timer)
            else:
                X = stats if design.mode == 'parametric' else counts
                kind = 'parametric' if design.mode == 'parametric' else 'counts'
                fit = regression_acceleration(X, tt, kind, sdboot)
                a, sdjack, diags = fit.a, fit.sdjack, fit.diagnostics
            diagnostics.extend(diags)

        alpha = design.alpha
        with timer.section('limits'):
            lims = bca_limits(tt, z0, a, alpha, design.interpolation)
            standard = standard_limits(t0, sdboot, alpha)
            diagnostics.extend(lims.diagnostics)
            for d in lims.diagnostics:
                warnings.warn(d.message, RuntimeWarning, stacklevel=2)

        with timer.section('internal_se'):
            phi = replicate_influence(tt, t0, z0, sdboot, fit)
            cov = delta_covariance(phi, extra_var_a=var_a)
            se = {}
            for key, idx in (('z0', IDX_Z0), ('a', IDX_A), ('sdboot', IDX_SIGMA)):
                se[key], diag = clamp_variance(float(cov[idx, idx]), key)
                if diag is not None:
                    diagnostics.append(diag)

            if design.internal_se == 'jackknife':
                stat_se, limit_se, diags = grouped_jackknife_se(
                    tt, t0, a, alpha, design.J, design.K, rng,
                    design.boundary_correction, design.interpolation,
                )
                se.update(stat_se)
                degenerate_alphas = set(alpha[lims.degenerate].tolist())
                diags = tuple(d for d in diags if d.alpha not in degenerate_alphas)
                limit_se[lims.degenerate] = 0.0
            else:
                limit_se, diags = delta_limit_se(
                    tt, z0, alpha, lims, phi, extra_var_a=var_a,
                )
            diagnostics.extend(diags)
            se_sdjack, diag = clamp_variance(var_sdjack, 'sdjack')
            if diag is not None:
                diagnostics.append(diag)

        timer.stop()

        params = self._assemble(
            design, t0, tt, counts, fit, sdboot, z0, a, sdjack, se, se_sdjack,
            lims, standard, limit_se, diagnostics, n_failed,
        )
        logger.debug(
            "BCa %s: t0=%.6g z0=%.4g a=%.4g sdboot=%.4g B_used=%d diagnostics=%d",
            design.mode, t0, z0, a, sdboot, B_used, len(params.diagnostics),
        )

        return Result(
            params=params,
            info={
                'mode': design.mode,
                'n': design.n_observations,
                'B': design.B,
                'B_used': B_used,
                'n_missing': n_failed,
                'stype': design.stype,
                'm': design.m,
                'internal_se': design.internal_se,
            },
            timing=timer.result(),
            backend_name=self.name,
            warnings=tuple(d.message for d in params.diagnostics),
        )

    def _replicates(
        self,
        design: BCaDesign,
        rng: np.random.Generator,
        timer: Timer,
    ) -> tuple[NDArray | None, NDArray | None, NDArray]:
        """Return (counts, sufficient stats, replicates) for the design's mode."""
        payload = design.resampling
        if design.mode == 'parametric':
            return None, payload.stats, payload.replicates.copy()
        if payload is not None:
            return payload.counts, None, payload.replicates.copy()
        if design.replicates is not None:
            return None, None, design.replicates.copy()

        n = design.data.shape[0]
        with timer.section('resample_counts'):
            counts = resample_counts(n, design.B, rng)
        logger.debug("evaluating %d bootstrap replicates (n=%d)", design.B, n)
        with timer.section('replicates'):
            tt, _ = evaluate_frequencies(
                design.data, design.func, counts.astype(np.float64), design.stype,
                n_workers=design.n_workers,
                executor=design.executor,
                timeout=design.timeout,
            )
        return counts, None, tt

    def _jackknife(
        self,
        design: BCaDesign,
        rng: np.random.Generator,
        timer: Timer,
    ) -> tuple[float, float, float, float, tuple[Diagnostic, ...]]:
        """
        Jackknife acceleration, averaged over mr random groupings when m < n.

        Returns:
            (a, sdjack, var_a, var_sdjack, diagnostics); the variances are
            the Monte Carlo spread of the grouping, zero without grouping.
        """
        data = design.data
        n = data.shape[0]
        grouped = design.m < n
        reps = design.mr if grouped else 1
        a_vals = np.empty(reps)
        sd_vals = np.empty(reps)
        diagnostics: list[Diagnostic] = []

        for r in range(reps):
            groups = random_groups(n, design.m, rng) if grouped else None
            freqs = jackknife_frequencies(n, groups)
            with timer.section('jackknife'):
                u, ok = evaluate_frequencies(
                    data, design.func, freqs, design.stype,
                    n_workers=design.n_workers,
                    executor=design.executor,
                    timeout=design.timeout,
                )
            g = freqs.shape[0]
            diag = check_missing(
                int(g - ok.sum()), g, design.max_missing_frac, 'jackknife estimates',
            )
            if diag is not None:
                diagnostics.append(diag)
            u = u[ok]
            if u.shape[0] < 2:
                raise EstimatorFailureError(
                    f"only {u.shape[0]} usable jackknife estimates",
                    n_failed=int(g - u.shape[0]), n_total=g, stage='jackknife',
                )
            jfit = jackknife_acceleration(u)
            a_vals[r] = jfit.a
            sd_vals[r] = jfit.sdjack
            diagnostics.extend(jfit.diagnostics)

        if reps > 1:
            var_a = float(np.var(a_vals, ddof=1) / reps)
            var_sdjack = float(np.var(sd_vals, ddof=1) / reps)
        else:
            var_a = var_sdjack = 0.0

        return (
            float(np.mean(a_vals)),
            float(np.mean(sd_vals)),
            var_a,
            var_sdjack,
            tuple(dict.fromkeys(diagnostics)),
        )

    @staticmethod
    def _assemble(
        design: BCaDesign,
        t0: float,
        tt: NDArray,
        counts: NDArray | None,
        fit: RegressionFit | None,
        sdboot: float,
        z0: float,
        a: float,
        sdjack: float,
        se: dict[str, float],
        se_sdjack: float,
        lims: BCaLimits,
        standard: NDArray,
        limit_se: NDArray,
        diagnostics: list[Diagnostic],
        n_missing: int,
    ) -> BCaParams:
        """Package everything into the BCaParams payload. No computation beyond summaries."""
        stats = BCaStats(
            theta=float(t0),
            sdboot=sdboot,
            z0=z0,
            a=a,
            sdjack=sdjack,
            jsd={
                'theta': 0.0,
                'sdboot': se['sdboot'],
                'z0': se['z0'],
                'a': se['a'],
                'sdjack': se_sdjack,
            },
        )

        limits = LimitsTable(
            alpha=design.alpha.copy(),
            bca=lims.bca,
            standard=standard,
            internal_se=np.nan_to_num(limit_se, nan=0.0),
            pct=lims.pct,
            degenerate=lims.degenerate,
        )

        if counts is not None:
            cov_n = _column_covariance(counts.astype(np.float64), tt)
            sdu = float(np.sqrt(np.sum(cov_n ** 2)))
        elif fit is not None:
            sdu = fit.sd_linear
        else:
            sdu = 0.0
        ustats = {'ustat': float(2.0 * t0 - np.mean(tt)), 'sdu': sdu}

        abc_stats = None
        if fit is not None:
            abc_stats = {
                'a': fit.a,
                'sd_linear': fit.sd_linear,
                'r_squared': fit.r_squared,
            }

        return BCaParams(
            stats=stats,
            limits=limits,
            B_mean=(int(tt.shape[0]), float(np.mean(tt))),
            ustats=ustats,
            abc_stats=abc_stats,
            diagnostics=tuple(dict.fromkeys(diagnostics)),
            n_missing=n_missing,
            mode=design.mode,
        )


def _column_covariance(X: NDArray, y: NDArray) -> NDArray:
    """Covariance of every column of X with y (ddof=1)."""
    B = X.shape[0]
    return (X - X.mean(axis=0)).T @ (y - y.mean()) / (B - 1)
