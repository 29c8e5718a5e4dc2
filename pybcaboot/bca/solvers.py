"""
Solver dispatch for BCa confidence limits.

Provides R-named functions matching the bcaboot package:
bcajack() (jackknife acceleration), bcajack2() (regression acceleration
from resampling counts) and bcapar() (parametric, from sufficient
statistics).
"""

from __future__ import annotations

from typing import Callable, Literal

import numpy as np
from numpy.typing import ArrayLike

from pybcaboot.core.exceptions import ValidationError
from pybcaboot.bca._common import DEFAULT_ALPHA
from pybcaboot.bca.backends.cpu import CPUBCaBackend
from pybcaboot.bca.design import BCaDesign
from pybcaboot.bca.solution import BCaSolution


BackendChoice = Literal['cpu', 'auto']
InternalSE = Literal['delta', 'jackknife']


def _get_backend(backend: str = 'cpu'):
    """
    Select backend for BCa analyses.

    All work is scalar numerics around a user Python callable, so CPU is
    the only backend; 'auto' resolves to it.
    """
    if backend in ('cpu', 'auto'):
        return CPUBCaBackend()
    raise ValidationError(f"Unknown backend: {backend!r}. Use 'cpu'.")


def bcajack(
    x: ArrayLike,
    B: int | ArrayLike,
    func: Callable,
    *,
    m: int | None = None,
    mr: int = 5,
    stype: Literal["rows", "weights"] = "rows",
    alpha: ArrayLike = DEFAULT_ALPHA,
    internal_se: InternalSE = "delta",
    J: int = 10,
    K: int = 2,
    boundary_correction: float = 0.5,
    interpolation: str = "linear",
    max_missing_frac: float = 0.5,
    n_workers: int = 1,
    executor: Literal["thread", "process"] = "thread",
    timeout: float | None = None,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
    backend: BackendChoice = 'cpu',
) -> BCaSolution:
    """
    Nonparametric BCa limits with jackknife acceleration. Matches R bcajack().

    Parameters
    ----------
    x : array-like
        Observation set, shape (n,) or (n, p). Rows are observations.
    B : int or array-like
        Number of bootstrap replicates to draw, or a vector of replicates
        the caller already computed from resamples of x.
    func : callable
        Estimator. With stype="rows", func(x_subset) -> float. With
        stype="weights", func(x, w) -> float where w sums to one.
    m : int or None
        Collect the n rows into m random groups for the jackknife
        (speeds up large n). Default n: ordinary delete-one jackknife.
    mr : int
        Number of random groupings averaged when m < n.
    alpha : array-like
        Coverage levels in (0, 1). Default
        (0.025, 0.05, 0.1, 0.16, 0.5, 0.84, 0.9, 0.95, 0.975).
    internal_se : str
        "delta" (default) or "jackknife" (K repetitions of a J-group
        jackknife over the replicates).
    boundary_correction : float
        When t0 lies outside the replicate range the proportion used for
        z0 is moved in by boundary_correction / B.
    interpolation : str
        numpy.quantile method used to read limits between order statistics.
    max_missing_frac : float
        Largest fraction of failed estimator evaluations tolerated.
    n_workers, executor, timeout
        Parallel replicate evaluation. timeout is seconds per resample,
        counted from when a worker starts a block, and needs n_workers > 1.
        executor="process" needs a picklable func.
    seed, rng
        Seed, or a caller-owned numpy Generator (takes precedence).

    Returns
    -------
    BCaSolution

    Raises
    ------
    InvalidParameterError
        If B < 2, n < 2 or an option is out of range.
    EstimatorFailureError
        If the estimator fails on t0 or on too many resamples.
    """
    design = BCaDesign.for_jackknife(
        x, func, B,
        m=m,
        mr=mr,
        stype=stype,
        alpha=alpha,
        internal_se=internal_se,
        J=J,
        K=K,
        boundary_correction=boundary_correction,
        interpolation=interpolation,
        max_missing_frac=max_missing_frac,
        n_workers=n_workers,
        executor=executor,
        timeout=timeout,
        seed=seed,
        rng=rng,
    )
    result = _get_backend(backend).solve(design)
    return BCaSolution(_result=result, _design=design)


def bcajack2(
    x: ArrayLike | None = None,
    B: int = 2000,
    func: Callable | None = None,
    *,
    counts: ArrayLike | None = None,
    tt: ArrayLike | None = None,
    t0: float | None = None,
    stype: Literal["rows", "weights"] = "rows",
    alpha: ArrayLike = DEFAULT_ALPHA,
    internal_se: InternalSE = "delta",
    J: int = 10,
    K: int = 2,
    boundary_correction: float = 0.5,
    interpolation: str = "linear",
    max_missing_frac: float = 0.5,
    n_workers: int = 1,
    executor: Literal["thread", "process"] = "thread",
    timeout: float | None = None,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
    backend: BackendChoice = 'cpu',
) -> BCaSolution:
    """
    Nonparametric BCa limits with regression acceleration. Matches R bcajack2().

    The acceleration comes from regressing the replicates on the B x n
    resampling counts, so no leave-one-out evaluations are needed. Give
    either x, B and func (resamples are drawn here) or counts, tt and t0
    (resamples drawn by the caller; counts[b, i] is the number of times
    observation i appears in resample b).

    Returns
    -------
    BCaSolution
        abc_stats carries the regression acceleration, the sd of the linear
        predictor and the regression R^2.
    """
    design = BCaDesign.for_regression(
        x, B, func,
        counts=counts,
        tt=tt,
        t0=t0,
        stype=stype,
        alpha=alpha,
        internal_se=internal_se,
        J=J,
        K=K,
        boundary_correction=boundary_correction,
        interpolation=interpolation,
        max_missing_frac=max_missing_frac,
        n_workers=n_workers,
        executor=executor,
        timeout=timeout,
        seed=seed,
        rng=rng,
    )
    result = _get_backend(backend).solve(design)
    return BCaSolution(_result=result, _design=design)


def bcapar(
    t0: float,
    tt: ArrayLike,
    bb: ArrayLike,
    *,
    alpha: ArrayLike = DEFAULT_ALPHA,
    internal_se: InternalSE = "delta",
    J: int = 10,
    K: int = 2,
    boundary_correction: float = 0.5,
    interpolation: str = "linear",
    max_missing_frac: float = 0.5,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
    backend: BackendChoice = 'cpu',
) -> BCaSolution:
    """
    Parametric BCa limits. Matches R bcapar().

    Parameters
    ----------
    t0 : float
        Estimate from the original data.
    tt : array-like
        Replicates from B parametric resamples.
    bb : array-like
        B x p sufficient statistics of the resamples, row-aligned with tt.
        Non-finite replicates (failed refits) are excluded together with
        their bb rows, up to max_missing_frac.

    Returns
    -------
    BCaSolution
    """
    design = BCaDesign.for_parametric(
        t0, tt, bb,
        alpha=alpha,
        internal_se=internal_se,
        J=J,
        K=K,
        boundary_correction=boundary_correction,
        interpolation=interpolation,
        max_missing_frac=max_missing_frac,
        seed=seed,
        rng=rng,
    )
    result = _get_backend(backend).solve(design)
    return BCaSolution(_result=result, _design=design)
