"""
Tests for internal (Monte Carlo) standard errors.
"""

import numpy as np
import pytest
from scipy import stats

from pybcaboot.bca._bias import bias_correction
from pybcaboot.bca._common import NUMERICAL_INSTABILITY
from pybcaboot.bca._influence import regression_acceleration
from pybcaboot.bca._limits import bca_limits
from pybcaboot.bca._se import (
    IDX_A,
    IDX_SIGMA,
    IDX_Z0,
    clamp_variance,
    delta_covariance,
    delta_limit_se,
    grouped_jackknife_se,
    jackknife_se,
    replicate_influence,
)


ALPHA = np.array([0.05, 0.5, 0.95])


class TestClampVariance:

    def test_valid_variance(self):
        se, diag = clamp_variance(4.0, "z0")
        assert se == 2.0
        assert diag is None

    def test_negative_clamped(self):
        se, diag = clamp_variance(-1e-3, "a")
        assert se == 0.0
        assert diag.code == NUMERICAL_INSTABILITY
        assert diag.alpha is None

    def test_nan_clamped_with_alpha(self):
        se, diag = clamp_variance(float("nan"), "BCa limit", 0.95)
        assert se == 0.0
        assert diag.alpha == 0.95


class TestJackknifeSE:

    def test_formula(self):
        assert jackknife_se(np.array([1.0, 2.0, 3.0])) == pytest.approx(np.sqrt(4.0 / 3.0))

    def test_constant(self):
        assert jackknife_se(np.full(5, 2.0)) == 0.0


class TestDeltaMethod:

    def test_influence_shape_and_centring(self, rng):
        tt = rng.standard_normal(300)
        phi = replicate_influence(tt, 0.0, 0.0, float(np.std(tt, ddof=1)))
        assert phi.shape == (300, 3)
        np.testing.assert_allclose(phi.mean(axis=0), 0.0, atol=1e-12)
        np.testing.assert_array_equal(phi[:, IDX_A], 0.0)

    def test_regression_fit_feeds_acceleration_column(self, rng):
        bb = rng.standard_normal((300, 2))
        tt = bb[:, 0] + 0.3 * bb[:, 1] ** 2 + 0.2 * rng.standard_normal(300)
        sdboot = float(np.std(tt, ddof=1))
        fit = regression_acceleration(bb, tt, "parametric", sdboot)
        phi = replicate_influence(tt, float(np.mean(tt)), 0.0, sdboot, fit)
        assert np.any(phi[:, IDX_A] != 0.0)

    def test_covariance_symmetric_psd(self, rng):
        tt = rng.standard_normal(500)
        phi = replicate_influence(tt, 0.1, 0.05, float(np.std(tt, ddof=1)))
        cov = delta_covariance(phi)
        np.testing.assert_allclose(cov, cov.T)
        assert np.all(np.linalg.eigvalsh(cov) >= -1e-15)

    def test_z0_se_matches_binomial(self, rng):
        tt = rng.standard_normal(2000)
        z0, p, _ = bias_correction(tt, 0.0)
        phi = replicate_influence(tt, 0.0, z0, float(np.std(tt, ddof=1)))
        cov = delta_covariance(phi)
        expected = np.sqrt(p * (1 - p) / 2000) / stats.norm.pdf(z0)
        assert np.sqrt(cov[IDX_Z0, IDX_Z0]) == pytest.approx(expected, rel=1e-6)

    def test_extra_variance_added_to_a(self, rng):
        phi = replicate_influence(rng.standard_normal(100), 0.0, 0.0, 1.0)
        base = delta_covariance(phi)
        bumped = delta_covariance(phi, extra_var_a=0.01)
        assert bumped[IDX_A, IDX_A] == pytest.approx(base[IDX_A, IDX_A] + 0.01)
        assert bumped[IDX_SIGMA, IDX_SIGMA] == base[IDX_SIGMA, IDX_SIGMA]

    def test_limit_se_non_negative(self, rng):
        tt = rng.standard_normal(1000)
        sdboot = float(np.std(tt, ddof=1))
        z0, _, _ = bias_correction(tt, 0.0)
        lims = bca_limits(tt, z0, 0.0, ALPHA)
        phi = replicate_influence(tt, 0.0, z0, sdboot)
        se, diags = delta_limit_se(tt, z0, ALPHA, lims, phi)
        assert se.shape == (3,)
        assert np.all(se > 0)
        assert np.all(se < sdboot)
        assert diags == ()

    def test_degenerate_rows_zero(self, rng):
        tt = rng.standard_normal(500)
        sdboot = float(np.std(tt, ddof=1))
        alpha = np.array([0.5, 0.975])
        lims = bca_limits(tt, 0.0, 0.6, alpha)
        phi = replicate_influence(tt, 0.0, 0.0, sdboot)
        se, _ = delta_limit_se(tt, 0.0, alpha, lims, phi)
        assert se[1] == 0.0
        assert se[0] > 0.0

    def test_constant_replicates_zero(self):
        tt = np.full(200, 1.5)
        lims = bca_limits(tt, 0.0, 0.0, ALPHA)
        phi = replicate_influence(tt, 1.5, 0.0, 0.0)
        se, diags = delta_limit_se(tt, 0.0, ALPHA, lims, phi)
        np.testing.assert_array_equal(se, 0.0)
        assert diags == ()

    def test_extra_variance_of_a_widens_tails(self, rng):
        tt = rng.standard_normal(1000)
        sdboot = float(np.std(tt, ddof=1))
        z0, _, _ = bias_correction(tt, 0.0)
        lims = bca_limits(tt, z0, 0.05, ALPHA)
        phi = replicate_influence(tt, 0.0, z0, sdboot)
        base, _ = delta_limit_se(tt, z0, ALPHA, lims, phi)
        bumped, _ = delta_limit_se(tt, z0, ALPHA, lims, phi, extra_var_a=1e-3)
        assert np.all(bumped >= base)
        assert bumped[2] > base[2]


class TestDeltaCalibration:
    """Delta-method SEs against the spread over independent replicate sets."""

    B = 1000
    RUNS = 200

    def test_limit_se_matches_replicate_spread(self):
        rng = np.random.default_rng(2024)
        limits = np.empty((self.RUNS, len(ALPHA)))
        reported = np.empty((self.RUNS, len(ALPHA)))
        for r in range(self.RUNS):
            tt = rng.standard_normal(self.B)
            z0, _, _ = bias_correction(tt, 0.0)
            lims = bca_limits(tt, z0, 0.0, ALPHA)
            phi = replicate_influence(tt, 0.0, z0, float(np.std(tt, ddof=1)))
            limits[r] = lims.bca
            reported[r], _ = delta_limit_se(tt, z0, ALPHA, lims, phi)
        ratio = reported.mean(axis=0) / limits.std(axis=0, ddof=1)
        np.testing.assert_array_less(0.75, ratio)
        np.testing.assert_array_less(ratio, 1.33)

    def test_parametric_acceleration_se_matches_spread(self):
        # Exact fit: beta is 1 on every run, so all the variation in a comes
        # from the third moment of the replicates themselves
        rng = np.random.default_rng(77)
        a_vals = np.empty(self.RUNS)
        reported = np.empty(self.RUNS)
        for r in range(self.RUNS):
            tt = rng.standard_normal(self.B)
            sdboot = float(np.std(tt, ddof=1))
            fit = regression_acceleration(tt[:, None], tt, "parametric", sdboot)
            cov = delta_covariance(replicate_influence(tt, 0.0, 0.0, sdboot, fit))
            a_vals[r] = fit.a
            reported[r] = np.sqrt(cov[IDX_A, IDX_A])
        # sd of mean(x^3) / 6 for standard normal x is sqrt(6 / B) / 6
        assert np.mean(reported) == pytest.approx(np.sqrt(6.0 / self.B) / 6.0, rel=0.1)
        assert np.mean(reported) / np.std(a_vals, ddof=1) == pytest.approx(1.0, abs=0.2)


class TestGroupedJackknife:

    def test_outputs(self, rng):
        tt = rng.standard_normal(400)
        stat_se, lim_se, diags = grouped_jackknife_se(tt, 0.0, 0.0, ALPHA, 10, 2, rng)
        assert set(stat_se) == {'z0', 'sdboot'}
        assert stat_se['z0'] > 0
        assert stat_se['sdboot'] > 0
        assert lim_se.shape == (3,)
        assert np.all(lim_se > 0)
        assert diags == ()

    def test_reproducible(self):
        tt = np.random.default_rng(3).standard_normal(200)
        first = grouped_jackknife_se(tt, 0.0, 0.0, ALPHA, 5, 3, np.random.default_rng(9))
        second = grouped_jackknife_se(tt, 0.0, 0.0, ALPHA, 5, 3, np.random.default_rng(9))
        np.testing.assert_array_equal(first[1], second[1])

    def test_degenerate_level_flagged(self, rng):
        tt = rng.standard_normal(200)
        alpha = np.array([0.5, 0.975])
        _, lim_se, diags = grouped_jackknife_se(tt, 0.0, 0.6, alpha, 5, 1, rng)
        assert lim_se[1] == 0.0
        assert diags[0].alpha == 0.975
