"""
End-to-end tests for bcajack2 (nonparametric, regression acceleration).
"""

import time

import numpy as np
import pytest

from pybcaboot import bcajack, bcajack2
from pybcaboot.core.exceptions import DimensionError, ValidationError


def _skew_ratio(x):
    xc = x - x.mean()
    return np.sum(xc ** 3) / (6 * np.sum(xc ** 2) ** 1.5)


class TestFromEstimator:

    @pytest.fixture
    def result(self, skewed_sample):
        return bcajack2(skewed_sample, 1000, np.mean, seed=6)

    def test_mode(self, result):
        assert result.mode == 'regression'
        assert result.info['B'] == 1000

    def test_mean_acceleration_exact(self, result, skewed_sample):
        # The mean is linear in the counts, so the regression is exact
        assert result.a == pytest.approx(_skew_ratio(skewed_sample), rel=1e-6)
        assert result.abc_stats['r_squared'] == pytest.approx(1.0, abs=1e-8)

    def test_agrees_with_jackknife(self, result, skewed_sample):
        jack = bcajack(skewed_sample, 1000, np.mean, seed=6)
        assert result.a == pytest.approx(jack.a, rel=1e-6)
        np.testing.assert_allclose(result.limits.bca, jack.limits.bca, rtol=1e-6)

    def test_abc_stats(self, result):
        assert set(result.abc_stats) == {'a', 'sd_linear', 'r_squared'}
        assert result.abc_stats['a'] == result.a
        assert result.abc_stats['sd_linear'] == pytest.approx(result.bootstrap_se, rel=1e-6)

    def test_internal_se_of_a(self, result):
        assert result.stats.jsd['a'] >= 0.0
        assert np.all(result.limits.internal_se >= 0.0)

    def test_summary_mentions_regression(self, result):
        text = result.summary()
        assert "regression acceleration" in text
        assert "abc" in text


class TestFromCounts:

    @pytest.fixture
    def resamples(self, rng):
        x = rng.exponential(size=20)
        counts = rng.multinomial(20, np.full(20, 0.05), size=500)
        return x, counts, counts @ x / 20

    def test_counts_form(self, resamples):
        x, counts, tt = resamples
        result = bcajack2(counts=counts, tt=tt, t0=x.mean())
        assert result.point_estimate == x.mean()
        assert result.a == pytest.approx(_skew_ratio(x), rel=1e-6)
        assert result.B_mean[0] == 500
        assert result.info['n'] == 20

    def test_ustats(self, resamples):
        x, counts, tt = resamples
        result = bcajack2(counts=counts, tt=tt, t0=x.mean())
        assert result.ustats['ustat'] == pytest.approx(2 * x.mean() - tt.mean())
        cov = (counts - counts.mean(axis=0)).T @ (tt - tt.mean()) / 499
        assert result.ustats['sdu'] == pytest.approx(np.sqrt(np.sum(cov ** 2)))

    def test_non_finite_replicates_excluded(self, resamples):
        x, counts, tt = resamples
        tt = tt.copy()
        tt[:25] = np.nan
        with pytest.warns(RuntimeWarning):
            result = bcajack2(counts=counts, tt=tt, t0=x.mean())
        assert result.n_missing == 25
        assert result.B_mean[0] == 475

    def test_mixed_inputs_raise(self, resamples):
        x, counts, tt = resamples
        with pytest.raises(ValidationError):
            bcajack2(x, 500, np.mean, counts=counts, tt=tt, t0=x.mean())

    def test_shape_mismatch(self, resamples):
        x, counts, tt = resamples
        with pytest.raises(DimensionError):
            bcajack2(counts=counts, tt=tt[:-1], t0=x.mean())


def _slow_when_first_repeated(x):
    if np.count_nonzero(x == 0.0) > 1:
        time.sleep(0.2)
    return np.mean(x)


class TestParallelEvaluation:

    def test_slow_minority_times_out_without_failing_run(self):
        # About a quarter of the resamples draw observation 0 twice
        x = np.arange(20.0)
        with pytest.warns(RuntimeWarning, match="excluded"):
            result = bcajack2(
                x, 60, _slow_when_first_repeated, n_workers=4, timeout=0.05, seed=0,
            )
        assert 0 < result.n_missing < 30
        assert result.B_mean[0] == 60 - result.n_missing
        assert np.isfinite(result.limits.bca).all()

    def test_timeout_without_workers_rejected(self):
        with pytest.raises(ValidationError, match="n_workers > 1"):
            bcajack2(np.arange(20.0), 60, np.mean, timeout=0.05)

    def test_process_executor_rejects_lambda(self):
        with pytest.raises(ValidationError, match="picklable"):
            bcajack2(
                np.arange(20.0), 60, lambda x: np.mean(x),
                n_workers=2, executor="process", seed=0,
            )
