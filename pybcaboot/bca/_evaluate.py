"""
Replicate evaluation.

Applies the user estimator to the original data, to every bootstrap
resample and to every leave-one-out (or leave-one-group-out) subset.

Every resample is described by a frequency vector f of length n:
    - stype="rows":    func(data[idx]) where idx repeats row i f[i] times
    - stype="weights": func(data, f / sum(f))

Failures on individual evaluations (exceptions, non-scalar or non-finite
output, timeouts) are recorded in a boolean mask instead of aborting;
check_missing() decides whether the failure rate is tolerable.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import pickle
import time
import warnings
from concurrent.futures import (
    FIRST_COMPLETED,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from concurrent.futures.process import BrokenProcessPool
from typing import Any, Callable

import numpy as np
from numpy.typing import NDArray

from pybcaboot.core.exceptions import EstimatorFailureError, ValidationError
from pybcaboot.bca._common import Diagnostic, ESTIMATOR_FAILURE
from pybcaboot.bca._resample import counts_to_indices

logger = logging.getLogger(__name__)

_CHUNKS_PER_WORKER = 8
_MAX_POLL = 0.05
_PICKLE_HINT = (
    "executor='process' could not run the estimator in a worker process ({exc}); "
    "the estimator must be picklable, e.g. a module-level function"
)


def _to_scalar(value: Any) -> float:
    arr = np.asarray(value, dtype=np.float64)
    if arr.size != 1:
        raise ValueError(f"estimator must return a scalar, got shape {arr.shape}")
    return float(arr.reshape(()))


def _apply(func: Callable, data: NDArray, stype: str, freq: NDArray) -> float:
    """Evaluate func on the resample described by frequency vector freq."""
    if stype == "rows":
        idx = counts_to_indices(freq.astype(np.int64))
        return _to_scalar(func(data[idx]))
    weights = freq / freq.sum()
    return _to_scalar(func(data, weights))


def _evaluate_block(
    func: Callable,
    data: NDArray,
    stype: str,
    freqs: NDArray,
) -> tuple[NDArray, NDArray]:
    """Evaluate a block of resamples; module-level so processes can pickle it."""
    k = freqs.shape[0]
    values = np.full(k, np.nan)
    ok = np.zeros(k, dtype=bool)
    for b in range(k):
        try:
            val = _apply(func, data, stype, freqs[b])
        except Exception as exc:
            logger.debug("estimator failed on resample %d: %s", b, exc)
            continue
        if np.isfinite(val):
            values[b] = val
            ok[b] = True
    return values, ok


def evaluate_point(data: NDArray, func: Callable, stype: str) -> float:
    """
    Evaluate the estimator on the original observation set.

    Raises:
        EstimatorFailureError: If the estimator fails or is non-finite on
            the original data; no analysis is possible without t0.
    """
    n = data.shape[0]
    try:
        t0 = _apply(func, data, stype, np.ones(n))
    except Exception as exc:
        raise EstimatorFailureError(
            f"estimator failed on the original data: {exc}",
            n_failed=1, n_total=1, stage='point',
        ) from exc
    if not np.isfinite(t0):
        raise EstimatorFailureError(
            f"estimator returned non-finite value {t0} on the original data",
            n_failed=1, n_total=1, stage='point',
        )
    return t0


def _check_picklable(func: Callable) -> None:
    try:
        pickle.dumps(func)
    except (pickle.PicklingError, AttributeError, TypeError) as exc:
        raise ValidationError(_PICKLE_HINT.format(exc=exc)) from exc


def _block_result(fut: Future, executor: str) -> tuple[NDArray, NDArray]:
    """Result of a finished block; transport failures of a process pool become ValidationError."""
    if executor != "process":
        return fut.result()
    try:
        return fut.result()
    except (BrokenProcessPool, pickle.PicklingError, AttributeError) as exc:
        raise ValidationError(_PICKLE_HINT.format(exc=exc)) from exc


def evaluate_frequencies(
    data: NDArray,
    func: Callable,
    freqs: NDArray,
    stype: str,
    *,
    n_workers: int = 1,
    executor: str = "thread",
    timeout: float | None = None,
) -> tuple[NDArray[np.floating[Any]], NDArray[np.bool_]]:
    """
    Evaluate the estimator on every row of a frequency matrix.

    Args:
        data: Observation set, shape (n,) or (n, p).
        func: Estimator.
        freqs: Frequency matrix, shape (k, n).
        stype: "rows" or "weights".
        n_workers: Number of parallel workers; 1 evaluates inline.
        executor: "thread" or "process" (process needs a picklable func).
        timeout: Seconds allowed per resample in the parallel path. A block
            gets timeout * len(block) seconds from the moment a worker picks
            it up; past that it is abandoned and its resamples marked
            failed. Blocks still queued behind it are unaffected.

    Returns:
        (values, ok) where values[b] is NaN wherever ok[b] is False.
        Order always matches the rows of freqs.

    Raises:
        ValidationError: If executor="process" and the estimator cannot be
            shipped to a worker process.
    """
    k = freqs.shape[0]
    if n_workers <= 1 or k == 1:
        return _evaluate_block(func, data, stype, freqs)

    block = max(1, k // (n_workers * _CHUNKS_PER_WORKER))
    bounds = [(i, min(i + block, k)) for i in range(0, k, block)]
    values = np.full(k, np.nan)
    ok = np.zeros(k, dtype=bool)

    if executor == "process":
        _check_picklable(func)
        pool = ProcessPoolExecutor(
            max_workers=min(n_workers, len(bounds)),
            mp_context=mp.get_context("spawn"),
        )
    else:
        pool = ThreadPoolExecutor(max_workers=min(n_workers, len(bounds)))

    logger.debug(
        "evaluating %d resamples in %d blocks on %d %s workers",
        k, len(bounds), n_workers, executor,
    )
    try:
        pending = {
            pool.submit(_evaluate_block, func, data, stype, freqs[i:j]): (i, j)
            for i, j in bounds
        }
        poll = None if timeout is None else min(_MAX_POLL, timeout * block / 4.0)
        started: dict[Future, float] = {}
        while pending:
            done, _ = wait(pending, timeout=poll, return_when=FIRST_COMPLETED)
            for fut in done:
                i, j = pending.pop(fut)
                values[i:j], ok[i:j] = _block_result(fut, executor)
            if timeout is None:
                continue
            now = time.monotonic()
            for fut, (i, j) in list(pending.items()):
                if not fut.running():
                    continue
                budget = timeout * (j - i)
                if now - started.setdefault(fut, now) > budget:
                    logger.warning("resamples %d..%d timed out after %.3gs", i, j - 1, budget)
                    del pending[fut]
    finally:
        pool.shutdown(wait=False, cancel_futures=True)

    return values, ok


def jackknife_frequencies(n: int, groups: NDArray | None = None) -> NDArray[np.floating[Any]]:
    """
    Frequency matrix for the delete-one (or delete-one-group) jackknife.

    Row g has zero frequency for every observation in group g and one
    elsewhere. Without groups each observation is its own group.
    """
    if groups is None:
        return 1.0 - np.eye(n)
    m = int(groups.max()) + 1
    return (groups[None, :] != np.arange(m)[:, None]).astype(np.float64)


def check_missing(
    n_failed: int,
    n_total: int,
    max_missing_frac: float,
    stage: str,
) -> Diagnostic | None:
    """
    Decide whether excluded evaluations are tolerable.

    Returns:
        A Diagnostic when some evaluations failed, None when none did.

    Raises:
        EstimatorFailureError: If the failed fraction exceeds max_missing_frac
            or nothing succeeded.
    """
    if n_failed == 0:
        return None
    frac = n_failed / n_total
    if frac > max_missing_frac or n_failed == n_total:
        raise EstimatorFailureError(
            f"estimator failed on {n_failed} of {n_total} {stage} "
            f"({frac:.1%}), exceeding the {max_missing_frac:.1%} threshold",
            n_failed=n_failed,
            n_total=n_total,
            threshold=max_missing_frac,
            stage=stage,
        )
    message = (
        f"excluded {n_failed} of {n_total} {stage} where the estimator "
        f"failed or returned a non-finite value"
    )
    warnings.warn(message, RuntimeWarning, stacklevel=3)
    return Diagnostic(code=ESTIMATOR_FAILURE, message=message)
