"""
Design class for BCa analyses.

BCaDesign encapsulates all inputs needed by a backend: the observation
set and estimator (nonparametric), or the precomputed replicates and
their resampling payload (ResampleCounts / SufficientStatistics), plus
every tuning option. Immutable, validated at construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
from numpy.typing import NDArray

from pybcaboot.core.exceptions import DimensionError, InvalidParameterError, ValidationError
from pybcaboot.core.validation import (
    check_1d,
    check_2d,
    check_alpha,
    check_array,
    check_consistent_length,
    check_finite,
    check_min_samples,
    check_positive_int,
)
from pybcaboot.bca._common import DEFAULT_ALPHA, ResampleCounts, SufficientStatistics

_QUANTILE_METHODS = frozenset({
    'inverted_cdf', 'averaged_inverted_cdf', 'closest_observation',
    'interpolated_inverted_cdf', 'hazen', 'weibull', 'linear',
    'median_unbiased', 'normal_unbiased', 'lower', 'higher', 'midpoint',
    'nearest',
})


@dataclass(frozen=True)
class BCaDesign:
    """
    Frozen design for a BCa analysis.

    Attributes:
        mode: "jackknife", "regression" or "parametric".
        data: Observation set, shape (n,) or (n, p); None when the caller
            supplies replicates only.
        func: Estimator. stype="rows": func(data_subset) -> float.
            stype="weights": func(data, weights) -> float.
        stype: How a resample is passed to func ("rows" or "weights").
        B: Number of bootstrap replicates (generated or supplied).
        replicates: Precomputed replicates for bcajack when B was given
            as a vector; None otherwise.
        resampling: ResampleCounts or SufficientStatistics when the caller
            supplied them; None when the backend generates the resamples.
        t0: Point estimate when supplied by the caller.
        alpha: Sorted unique levels in (0, 1).
        m: Number of jackknife groups (m == n means ordinary jackknife).
        mr: Repetitions of the grouped jackknife, averaged.
        internal_se: "delta" or "jackknife".
        J, K: Groups and repetitions of the replicate jackknife used when
            internal_se="jackknife".
        boundary_correction: Proportion shift c/B applied when t0 lies
            outside the replicate range.
        interpolation: numpy.quantile method for reading BCa limits.
        max_missing_frac: Largest tolerated fraction of failed evaluations.
        n_workers, executor, timeout: Parallel evaluation settings.
        seed, rng: Randomness; rng wins when both are given.
    """
    mode: str
    data: NDArray[np.floating[Any]] | None
    func: Callable | None
    stype: str
    B: int
    replicates: NDArray[np.floating[Any]] | None
    resampling: ResampleCounts | SufficientStatistics | None
    t0: float | None
    alpha: NDArray[np.floating[Any]]
    m: int
    mr: int
    internal_se: str
    J: int
    K: int
    boundary_correction: float
    interpolation: str
    max_missing_frac: float
    n_workers: int
    executor: str
    timeout: float | None
    seed: int | None
    rng: np.random.Generator | None

    # --- DataSource protocol ---

    @property
    def n_observations(self) -> int:
        if self.data is not None:
            return self.data.shape[0]
        if isinstance(self.resampling, ResampleCounts):
            return self.resampling.n
        return 0

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            'mode': self.mode,
            'n': self.n_observations,
            'B': self.B,
            'stype': self.stype,
            'n_alpha': len(self.alpha),
        }

    def supports(self, capability: str) -> bool:
        if capability == 'estimator':
            return self.func is not None
        if capability == 'resample_counts':
            if self.mode == 'regression':
                return True
            return self.mode == 'jackknife' and self.replicates is None
        if capability == 'sufficient_stats':
            return self.mode == 'parametric'
        if capability == 'jackknife':
            return self.mode == 'jackknife'
        return False

    def make_rng(self) -> np.random.Generator:
        """The caller's generator, or a fresh one seeded from ``seed``."""
        if self.rng is not None:
            return self.rng
        return np.random.default_rng(self.seed)

    # --- Constructors ---

    @classmethod
    def for_jackknife(
        cls,
        x,
        func: Callable,
        B=2000,
        *,
        m: int | None = None,
        mr: int = 5,
        stype: str = "rows",
        alpha=DEFAULT_ALPHA,
        internal_se: str = "delta",
        J: int = 10,
        K: int = 2,
        boundary_correction: float = 0.5,
        interpolation: str = "linear",
        max_missing_frac: float = 0.5,
        n_workers: int = 1,
        executor: str = "thread",
        timeout: float | None = None,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
    ) -> BCaDesign:
        """
        Design for nonparametric BCa with jackknife acceleration.

        Args:
            x: Observation set, 1D or 2D (rows are observations).
            func: Estimator (see BCaDesign.func).
            B: Number of replicates to generate (>= 2), or a vector of
                precomputed replicates computed from resamples of x.
            m: Collect the rows into m random groups for the jackknife.
                Defaults to n (ordinary delete-one jackknife).
            mr: Repetitions of the grouped jackknife when m < n.

        Raises:
            InvalidParameterError: If B, n, m or an option is out of range.
            DimensionError: If x is not 1D or 2D.
        """
        data = _check_data(x)
        n = data.shape[0]
        replicates = None
        if np.ndim(B) == 0:
            B_int = check_positive_int(B, 2, 'B')
        else:
            replicates = _check_replicates(B, 'B')
            B_int = replicates.shape[0]

        m_int = n if m is None else check_positive_int(m, 2, 'm')
        if m_int > n:
            raise InvalidParameterError(
                f"m must be <= n ({n}), got {m_int}", name='m', value=m_int,
            )

        return cls(
            mode='jackknife',
            data=data,
            func=_check_func(func),
            stype=_check_stype(stype),
            B=B_int,
            replicates=replicates,
            resampling=None,
            t0=None,
            m=m_int,
            mr=check_positive_int(mr, 1, 'mr'),
            **_options(
                B_int, alpha, internal_se, J, K, boundary_correction,
                interpolation, max_missing_frac, n_workers, executor,
                timeout, seed, rng,
            ),
        )

    @classmethod
    def for_regression(
        cls,
        x=None,
        B: int = 2000,
        func: Callable | None = None,
        *,
        counts=None,
        tt=None,
        t0: float | None = None,
        stype: str = "rows",
        alpha=DEFAULT_ALPHA,
        internal_se: str = "delta",
        J: int = 10,
        K: int = 2,
        boundary_correction: float = 0.5,
        interpolation: str = "linear",
        max_missing_frac: float = 0.5,
        n_workers: int = 1,
        executor: str = "thread",
        timeout: float | None = None,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
    ) -> BCaDesign:
        """
        Design for nonparametric BCa with regression acceleration.

        Either x and func are given (the backend draws B resamples), or
        counts, tt and t0 are given (the caller already resampled).

        Raises:
            ValidationError: If neither or both input forms are given, or
                counts are not finite non-negative integers.
            DimensionError: If counts and tt disagree in shape.
            InvalidParameterError: If B < 2, n < 2 or an option is out of range.
        """
        supplied = counts is not None or tt is not None
        if supplied and (x is not None or func is not None):
            raise ValidationError(
                "give either x and func, or counts, tt and t0, not both"
            )

        if supplied:
            if counts is None or tt is None or t0 is None:
                raise ValidationError("counts, tt and t0 must all be given together")
            counts_arr = check_array(counts, 'counts')
            check_2d(counts_arr, 'counts')
            check_finite(counts_arr, 'counts')
            if np.any(counts_arr < 0) or np.any(counts_arr != np.round(counts_arr)):
                raise ValidationError("counts: entries must be non-negative integers")
            tt_arr = _check_replicates(tt, 'tt')
            check_consistent_length(counts_arr, tt_arr, names=('counts', 'tt'))
            if counts_arr.shape[1] < 2:
                raise InvalidParameterError(
                    f"n must be >= 2, got {counts_arr.shape[1]}",
                    name='n', value=counts_arr.shape[1],
                )
            payload = ResampleCounts(
                counts=counts_arr.astype(np.int64),
                replicates=tt_arr,
            )
            return cls(
                mode='regression',
                data=None,
                func=None,
                stype=_check_stype(stype),
                B=payload.B,
                replicates=None,
                resampling=payload,
                t0=_check_t0(t0),
                m=payload.n,
                mr=1,
                **_options(
                    payload.B, alpha, internal_se, J, K, boundary_correction,
                    interpolation, max_missing_frac, n_workers, executor,
                    timeout, seed, rng,
                ),
            )

        if x is None or func is None:
            raise ValidationError("x and func are required when counts/tt are not given")
        data = _check_data(x)
        B_int = check_positive_int(B, 2, 'B')
        return cls(
            mode='regression',
            data=data,
            func=_check_func(func),
            stype=_check_stype(stype),
            B=B_int,
            replicates=None,
            resampling=None,
            t0=None,
            m=data.shape[0],
            mr=1,
            **_options(
                B_int, alpha, internal_se, J, K, boundary_correction,
                interpolation, max_missing_frac, n_workers, executor,
                timeout, seed, rng,
            ),
        )

    @classmethod
    def for_parametric(
        cls,
        t0: float,
        tt,
        bb,
        *,
        alpha=DEFAULT_ALPHA,
        internal_se: str = "delta",
        J: int = 10,
        K: int = 2,
        boundary_correction: float = 0.5,
        interpolation: str = "linear",
        max_missing_frac: float = 0.5,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
    ) -> BCaDesign:
        """
        Design for parametric BCa.

        Args:
            t0: Point estimate from the original data.
            tt: Replicates, shape (B,).
            bb: Sufficient statistics of each parametric resample, (B, p).

        Raises:
            DimensionError: If tt and bb disagree in length.
            ValidationError: If bb has non-finite entries where tt is finite.
            InvalidParameterError: If B does not exceed p + 1.
        """
        tt_arr = _check_replicates(tt, 'tt')
        bb_arr = check_array(bb, 'bb')
        if bb_arr.ndim == 1:
            bb_arr = bb_arr.reshape(-1, 1)
        check_2d(bb_arr, 'bb')
        check_consistent_length(bb_arr, tt_arr, names=('bb', 'tt'))
        # rows whose refit failed are dropped later, together with their tt
        check_finite(bb_arr[np.isfinite(tt_arr)], 'bb')
        B, p = bb_arr.shape
        if B <= p + 1:
            raise InvalidParameterError(
                f"B ({B}) must exceed p + 1 ({p + 1}) to regress tt on bb",
                name='B', value=B,
            )
        payload = SufficientStatistics(stats=bb_arr.copy(), replicates=tt_arr)
        return cls(
            mode='parametric',
            data=None,
            func=None,
            stype='rows',
            B=B,
            replicates=None,
            resampling=payload,
            t0=_check_t0(t0),
            m=0,
            mr=1,
            **_options(
                B, alpha, internal_se, J, K, boundary_correction,
                interpolation, max_missing_frac, 1, 'thread', None, seed, rng,
            ),
        )


def _check_data(x) -> NDArray[np.floating[Any]]:
    data = check_array(x, 'x')
    if data.ndim not in (1, 2):
        raise DimensionError(f"x: expected 1D or 2D array, got {data.ndim}D")
    check_min_samples(data, 2, 'x')
    return data.copy()


def _check_replicates(tt, name: str) -> NDArray[np.floating[Any]]:
    arr = check_array(tt, name)
    check_1d(arr, name)
    check_min_samples(arr, 2, name)
    return arr.copy()


def _check_t0(t0) -> float:
    try:
        value = float(t0)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"t0: expected a real number, got {t0!r}") from e
    if not np.isfinite(value):
        raise ValidationError(f"t0: must be finite, got {value}")
    return value


def _check_func(func) -> Callable:
    if not callable(func):
        raise ValidationError(f"func must be callable, got {type(func).__name__}")
    return func


def _check_stype(stype: str) -> str:
    if stype not in ("rows", "weights"):
        raise InvalidParameterError(
            f"stype must be 'rows' or 'weights', got {stype!r}",
            name='stype', value=stype,
        )
    return stype


def _options(
    B: int,
    alpha,
    internal_se: str,
    J: int,
    K: int,
    boundary_correction: float,
    interpolation: str,
    max_missing_frac: float,
    n_workers: int,
    executor: str,
    timeout: float | None,
    seed: int | None,
    rng: np.random.Generator | None,
) -> dict[str, Any]:
    """Validate the options shared by every design constructor."""
    if internal_se not in ("delta", "jackknife"):
        raise InvalidParameterError(
            f"internal_se must be 'delta' or 'jackknife', got {internal_se!r}",
            name='internal_se', value=internal_se,
        )
    J = check_positive_int(J, 2, 'J')
    K = check_positive_int(K, 1, 'K')
    if internal_se == "jackknife" and B < 2 * J:
        raise InvalidParameterError(
            f"B ({B}) must be at least 2*J ({2 * J}) for the replicate jackknife",
            name='J', value=J,
        )
    if not 0.0 < boundary_correction <= 1.0:
        raise InvalidParameterError(
            f"boundary_correction must be in (0, 1], got {boundary_correction}",
            name='boundary_correction', value=boundary_correction,
        )
    if interpolation not in _QUANTILE_METHODS:
        raise InvalidParameterError(
            f"interpolation must be a numpy.quantile method, got {interpolation!r}",
            name='interpolation', value=interpolation,
        )
    if not 0.0 <= max_missing_frac < 1.0:
        raise InvalidParameterError(
            f"max_missing_frac must be in [0, 1), got {max_missing_frac}",
            name='max_missing_frac', value=max_missing_frac,
        )
    if executor not in ("thread", "process"):
        raise InvalidParameterError(
            f"executor must be 'thread' or 'process', got {executor!r}",
            name='executor', value=executor,
        )
    if timeout is not None and not timeout > 0:
        raise InvalidParameterError(
            f"timeout must be positive, got {timeout}", name='timeout', value=timeout,
        )
    n_workers = check_positive_int(n_workers, 1, 'n_workers')
    if timeout is not None and n_workers == 1:
        raise InvalidParameterError(
            "timeout needs n_workers > 1: an estimator call running inline "
            "cannot be interrupted",
            name='timeout', value=timeout,
        )
    if rng is not None and not isinstance(rng, np.random.Generator):
        raise ValidationError(
            f"rng must be a numpy.random.Generator, got {type(rng).__name__}"
        )

    return {
        'alpha': check_alpha(alpha),
        'internal_se': internal_se,
        'J': J,
        'K': K,
        'boundary_correction': float(boundary_correction),
        'interpolation': interpolation,
        'max_missing_frac': float(max_missing_frac),
        'n_workers': n_workers,
        'executor': executor,
        'timeout': timeout,
        'seed': seed,
        'rng': rng,
    }
