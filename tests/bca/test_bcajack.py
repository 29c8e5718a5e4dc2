"""
End-to-end tests for bcajack (nonparametric, jackknife acceleration).
"""

import numpy as np
import pytest
from scipy import stats

from pybcaboot import bcajack
from pybcaboot.core.exceptions import EstimatorFailureError, InvalidParameterError
from pybcaboot.bca import BCaSolution
from pybcaboot.bca._common import (
    BOUNDARY_EXCEEDED,
    ESTIMATOR_FAILURE,
    ZERO_BOOTSTRAP_VARIANCE,
    ZERO_VARIANCE_JACKKNIFE,
)


def weighted_mean(x, w):
    return np.sum(x * w)


def correlation(z):
    return np.corrcoef(z[:, 0], z[:, 1])[0, 1]


def mean_needs_first(x):
    if x[0] != 0.0:
        raise ValueError("first observation missing")
    return np.mean(x)


class TestBasicMean:

    @pytest.fixture
    def result(self, normal_sample):
        return bcajack(normal_sample, 2000, np.mean, seed=1)

    def test_returns_solution(self, result):
        assert isinstance(result, BCaSolution)
        assert result.mode == 'jackknife'
        assert result.backend_name == 'cpu_bca'

    def test_point_estimate(self, result, normal_sample):
        assert result.point_estimate == pytest.approx(np.mean(normal_sample))

    def test_jackknife_se_of_mean(self, result, normal_sample):
        expected = np.std(normal_sample, ddof=1) / np.sqrt(len(normal_sample))
        assert result.jackknife_se == pytest.approx(expected)

    def test_bootstrap_se_close_to_jackknife(self, result):
        assert result.bootstrap_se == pytest.approx(result.jackknife_se, rel=0.15)

    def test_limits_ordered(self, result):
        bca = result.limits.bca
        assert np.all(np.isfinite(bca))
        assert np.all(np.diff(bca) > 0)

    def test_median_limit_near_estimate(self, result):
        row = result.limits.at(0.5)
        assert row['bca'] == pytest.approx(result.point_estimate, abs=0.5 * result.bootstrap_se)
        assert row['standard'] == pytest.approx(result.point_estimate)

    def test_standard_limits(self, result):
        expected = result.point_estimate + result.bootstrap_se * stats.norm.ppf(result.alpha)
        np.testing.assert_allclose(result.limits.standard, expected)

    def test_clean_run_has_no_diagnostics(self, result):
        assert result.diagnostics == ()
        assert result.warnings == ()
        assert result.n_missing == 0

    def test_internal_se_reported(self, result):
        assert np.all(result.limits.internal_se > 0)
        assert result.stats.jsd['theta'] == 0.0
        assert result.stats.jsd['z0'] > 0
        assert result.stats.jsd['sdboot'] > 0
        assert result.stats.jsd['a'] == 0.0

    def test_B_mean_and_ustats(self, result):
        B_used, mean_tt = result.B_mean
        assert B_used == 2000
        assert result.ustats['ustat'] == pytest.approx(2 * result.point_estimate - mean_tt)
        assert result.ustats['sdu'] > 0
        assert result.abc_stats is None

    def test_info_and_timing(self, result):
        assert result.info['n'] == 40
        assert result.info['B'] == 2000
        assert result.info['m'] == 40
        assert 'replicates' in result.timing
        assert 'jackknife' in result.timing

    def test_missing_alpha_raises_key_error(self, result):
        with pytest.raises(KeyError):
            result.limits.at(0.33)


class TestAcceleration:

    def test_skewed_mean_positive(self, skewed_sample):
        result = bcajack(skewed_sample, 500, np.mean, seed=0)
        x = skewed_sample - skewed_sample.mean()
        expected = np.sum(x ** 3) / (6 * np.sum(x ** 2) ** 1.5)
        assert result.a == pytest.approx(expected)

    def test_grouped_jackknife(self, skewed_sample):
        result = bcajack(skewed_sample, 500, np.mean, m=10, mr=3, seed=0)
        assert np.isfinite(result.a)
        assert result.info['m'] == 10
        assert result.stats.jsd['a'] >= 0.0


class TestInputs:

    def test_B_of_one_raises(self, normal_sample):
        with pytest.raises(InvalidParameterError):
            bcajack(normal_sample, 1, np.mean)

    def test_single_observation_raises(self):
        with pytest.raises(InvalidParameterError):
            bcajack(np.array([3.0]), 100, np.mean)

    def test_precomputed_replicates(self, normal_sample, rng):
        counts = rng.multinomial(40, np.full(40, 1 / 40), size=300)
        tt = counts @ normal_sample / 40
        result = bcajack(normal_sample, tt, np.mean)
        assert result.B_mean[0] == 300
        assert result.B_mean[1] == pytest.approx(np.mean(tt))

    def test_weights_match_rows(self, normal_sample):
        rows = bcajack(normal_sample, 500, np.mean, seed=3)
        weights = bcajack(normal_sample, 500, weighted_mean, stype="weights", seed=3)
        np.testing.assert_allclose(rows.limits.bca, weights.limits.bca, rtol=1e-8)
        assert rows.a == pytest.approx(weights.a)

    def test_matrix_data(self, paired_sample):
        result = bcajack(paired_sample, 500, correlation, seed=2)
        assert result.point_estimate == pytest.approx(correlation(paired_sample))
        assert np.all(result.limits.bca >= -1.0)
        assert np.all(result.limits.bca <= 1.0)

    def test_custom_alpha(self, normal_sample):
        result = bcajack(normal_sample, 200, np.mean, alpha=[0.95, 0.05], seed=1)
        np.testing.assert_array_equal(result.limits.alpha, [0.05, 0.95])
        assert len(result.limits) == 2


class TestReproducibility:

    def test_same_seed_same_result(self, normal_sample):
        first = bcajack(normal_sample, 300, np.mean, seed=11)
        second = bcajack(normal_sample, 300, np.mean, seed=11)
        np.testing.assert_array_equal(first.limits.bca, second.limits.bca)
        assert first.seed == 11

    def test_caller_generator(self, normal_sample):
        first = bcajack(normal_sample, 300, np.mean, rng=np.random.default_rng(4))
        second = bcajack(normal_sample, 300, np.mean, rng=np.random.default_rng(4))
        np.testing.assert_array_equal(first.limits.bca, second.limits.bca)

    def test_parallel_matches_sequential(self, normal_sample):
        seq = bcajack(normal_sample, 300, np.mean, seed=8)
        par = bcajack(normal_sample, 300, np.mean, seed=8, n_workers=3)
        np.testing.assert_array_equal(seq.limits.bca, par.limits.bca)


class TestDegenerateData:

    def test_zero_variance_replicates(self):
        result = bcajack(np.ones(10), 200, np.mean, seed=0)
        assert result.bootstrap_se == 0.0
        assert np.ptp(result.limits.bca) == 0.0
        assert result.limits.bca[0] == 1.0
        assert result.has_diagnostic(ZERO_BOOTSTRAP_VARIANCE)
        assert result.has_diagnostic(ZERO_VARIANCE_JACKKNIFE)
        assert result.has_diagnostic(BOUNDARY_EXCEEDED)
        assert result.a == 0.0


class TestEstimatorFailures:

    def test_failures_excluded_with_warning(self):
        data = np.arange(20.0)
        with pytest.warns(RuntimeWarning, match="excluded"):
            result = bcajack(data, 400, mean_needs_first, seed=5)
        assert result.n_missing > 0
        assert result.B_mean[0] == 400 - result.n_missing
        assert result.has_diagnostic(ESTIMATOR_FAILURE)
        assert result.info['n_missing'] == result.n_missing

    def test_threshold_exceeded(self):
        with pytest.raises(EstimatorFailureError) as exc_info:
            bcajack(np.arange(20.0), 400, mean_needs_first, max_missing_frac=0.1, seed=5)
        assert exc_info.value.stage == 'replicates'

    def test_point_failure(self):
        def broken(x):
            raise ZeroDivisionError

        with pytest.raises(EstimatorFailureError):
            bcajack(np.arange(5.0), 100, broken)


class TestInternalJackknifeSE:

    def test_replicate_jackknife(self, normal_sample):
        result = bcajack(normal_sample, 400, np.mean, internal_se="jackknife", J=10, K=2, seed=1)
        assert np.all(np.isfinite(result.limits.internal_se))
        assert np.all(result.limits.internal_se > 0)
        assert result.info['internal_se'] == 'jackknife'


class TestDisplay:

    def test_summary(self, normal_sample):
        text = bcajack(normal_sample, 200, np.mean, seed=1).summary()
        assert "jackknife acceleration" in text
        assert "Limits :" in text
        assert "Stats :" in text
        assert "B.mean" in text

    def test_repr(self, normal_sample):
        assert repr(bcajack(normal_sample, 200, np.mean, seed=1)).startswith("BCaSolution(")
