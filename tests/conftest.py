"""
pytest configuration and shared fixtures.
"""

import pytest
import numpy as np


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def normal_sample(rng):
    """Moderate-size symmetric sample."""
    return rng.standard_normal(40)


@pytest.fixture
def skewed_sample(rng):
    """Right-skewed sample; the mean has positive acceleration."""
    return rng.exponential(scale=1.0, size=40)


@pytest.fixture
def paired_sample(rng):
    """Two correlated columns for matrix-valued estimators."""
    x = rng.standard_normal(30)
    y = 0.6 * x + 0.8 * rng.standard_normal(30)
    return np.column_stack([x, y])
