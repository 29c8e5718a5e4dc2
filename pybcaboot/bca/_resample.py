"""
Bootstrap resampling counts.

Each bootstrap sample is represented by how often each observation was
drawn, i.e. a multinomial(n, 1/n) count vector summing to n.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from pybcaboot.core.exceptions import InvalidParameterError


def resample_counts(n: int, B: int, rng: np.random.Generator) -> NDArray[np.int64]:
    """
    Draw a B x n matrix of bootstrap resampling counts.

    Args:
        n: Sample size. Must be >= 2.
        B: Number of bootstrap samples. Must be >= 1.
        rng: Caller-owned random generator.

    Returns:
        Integer array of shape (B, n); every row sums to n.

    Raises:
        InvalidParameterError: If n <= 1 or B <= 0.
    """
    if n <= 1:
        raise InvalidParameterError(f"n must be >= 2, got {n}", name='n', value=n)
    if B <= 0:
        raise InvalidParameterError(f"B must be >= 1, got {B}", name='B', value=B)

    pvals = np.full(n, 1.0 / n)
    return rng.multinomial(n, pvals, size=B).astype(np.int64)


def counts_to_indices(counts: NDArray[np.int64]) -> NDArray[np.intp]:
    """Expand one count vector into the row indices it selects."""
    return np.repeat(np.arange(counts.shape[0]), counts)


def random_groups(n: int, m: int, rng: np.random.Generator) -> NDArray[np.intp]:
    """
    Randomly assign n observations to m groups of near-equal size.

    Returns:
        Group label (0..m-1) for every observation.
    """
    labels = np.arange(n) % m
    rng.shuffle(labels)
    return labels
