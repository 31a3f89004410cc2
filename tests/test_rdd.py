"""
Regression discontinuity: kernels, bandwidth selection, sharp and fuzzy
estimates, and the validity checks.
"""

import numpy as np
import pytest

from causal_methods import rdd
from causal_methods.utils import ols_fit


class TestKernels:

    def test_triangular(self):
        np.testing.assert_allclose(rdd.kernel_weights([0, 0.5, -0.5, 1.5]), [1, 0.5, 0.5, 0])

    def test_epanechnikov_and_uniform(self):
        np.testing.assert_allclose(rdd.kernel_weights([0, 2], "epanechnikov"), [0.75, 0])
        np.testing.assert_allclose(rdd.kernel_weights([0.9, -1.1], "uniform"), [0.5, 0])

    def test_unknown_kernel(self):
        with pytest.raises(ValueError):
            rdd.kernel_weights([0.1], "gaussian")

    def test_triangular_boundary_constant(self):
        assert rdd.boundary_constant("triangular") == pytest.approx(3.4375, abs=1e-3)

    def test_uniform_constant_on_unit_support(self):
        # 5.40 in Imbens-Kalyanaraman, whose uniform kernel has support [-1/2, 1/2]
        assert rdd.boundary_constant("uniform") == pytest.approx(2.70, abs=0.01)


class TestSharp:

    def test_recovers_jump(self, rdd_data):
        y, x = rdd_data
        res = rdd.estimate_rdd(y, x, 0.0, bandwidth=0.5)
        assert res["tau"] == pytest.approx(2.0, abs=0.15)
        assert res["ci_lo"] < 2.0 < res["ci_hi"]
        assert res["intercept_above"] - res["intercept_below"] == pytest.approx(res["tau"])

    def test_ik_bandwidth(self, rdd_data):
        y, x = rdd_data
        h = rdd.ik_bandwidth(y, x, 0.0)
        assert np.isfinite(h) and h > 0
        res = rdd.estimate_rdd(y, x, 0.0)
        assert res["bandwidth"] == pytest.approx(h)
        assert res["tau"] == pytest.approx(2.0, abs=0.15)

    def test_uniform_kernel_is_windowed_ols(self, rdd_data):
        y, x = rdd_data
        h = 0.4
        res = rdd.estimate_rdd(y, x, 0.0, bandwidth=h, kernel="uniform")
        m = np.abs(x) <= h
        T = (x[m] >= 0).astype(float)
        X = np.column_stack([np.ones(m.sum()), T, x[m], T * x[m]])
        b = ols_fit(X, y[m])[0]
        assert res["tau"] == pytest.approx(b[1])
        assert res["n_below"] + res["n_above"] == m.sum()

    def test_local_quadratic(self, rdd_data):
        y, x = rdd_data
        res = rdd.estimate_rdd(y, x, 0.0, bandwidth=0.8, order=2)
        assert len(res["beta"]) == 6
        assert res["tau"] == pytest.approx(2.0, abs=0.2)

    def test_rot_bandwidth_selector(self, rdd_data):
        y, x = rdd_data
        res = rdd.estimate_rdd(y, x, 0.0, bandwidth="rot")
        assert res["bandwidth"] == pytest.approx(rdd.rot_bandwidth(x))

    def test_too_few_observations(self, rdd_data):
        y, x = rdd_data
        with pytest.raises(ValueError):
            rdd.estimate_rdd(y, x, 0.0, bandwidth=1e-4)

    def test_bad_bandwidth(self, rdd_data):
        y, x = rdd_data
        with pytest.raises(ValueError):
            rdd.estimate_rdd(y, x, 0.0, bandwidth="cct")
        with pytest.raises(ValueError):
            rdd.estimate_rdd(y, x, 0.0, bandwidth=-1.0)

    def test_mortality_mva_jump(self, mortality):
        res = rdd.estimate_rdd(mortality["mva"], mortality["agecell"], 21.0)
        assert res["tau"] == pytest.approx(4.5, abs=2.5)
        assert res["tau"] > 0


class TestFuzzy:

    @pytest.fixture
    def fuzzy_data(self):
        rng = np.random.RandomState(12)
        n = 4000
        x = rng.uniform(-1, 1, n)
        d = (rng.uniform(size=n) < 0.2 + 0.6 * (x >= 0)).astype(float)
        y = 1 + 2 * d + x + rng.normal(0, 0.5, n)
        return y, d, x

    def test_recovers_late(self, fuzzy_data):
        y, d, x = fuzzy_data
        res = rdd.fuzzy_rdd(y, d, x, 0.0, bandwidth=0.5)
        assert res["tau"] == pytest.approx(2.0, abs=0.5)
        assert res["first_stage"] == pytest.approx(0.6, abs=0.1)
        assert res["first_stage_F"] > 10

    def test_wald_ratio(self, fuzzy_data):
        y, d, x = fuzzy_data
        res = rdd.fuzzy_rdd(y, d, x, 0.0, bandwidth=0.5)
        assert res["tau"] == pytest.approx(res["reduced_form"] / res["first_stage"])

    def test_sharp_design_equals_sharp_estimate(self, rdd_data):
        y, x = rdd_data
        d = (x >= 0).astype(float)
        fz = rdd.fuzzy_rdd(y, d, x, 0.0, bandwidth=0.5)
        sh = rdd.estimate_rdd(y, x, 0.0, bandwidth=0.5)
        assert fz["tau"] == pytest.approx(sh["tau"])

    def test_missing_values_dropped(self, fuzzy_data):
        y, d, x = (a.copy() for a in fuzzy_data)
        y[0], d[1], x[2] = np.nan, np.nan, np.nan
        res = rdd.fuzzy_rdd(y, d, x, 0.0, bandwidth=0.5)
        assert np.isfinite(res["tau"]) and np.isfinite(res["se"])
        rows = np.arange(3, len(x))
        ref = rdd.fuzzy_rdd(y[rows], d[rows], x[rows], 0.0, bandwidth=0.5)
        assert res["tau"] == pytest.approx(ref["tau"])


class TestChecks:

    def test_density_no_bunching(self, rdd_data):
        _, x = rdd_data
        res = rdd.mccrary_density_test(x, 0.0, bandwidth=0.2)
        assert not res["reject"]

    def test_density_bunching(self):
        rng = np.random.RandomState(2)
        x = np.concatenate([rng.uniform(-1, 1, 1000), rng.uniform(0, 0.1, 300)])
        assert rdd.mccrary_density_test(x, 0.0, bandwidth=0.2)["reject"]

    def test_bin_means_do_not_straddle_cutoff(self, rdd_data):
        y, x = rdd_data
        bins = rdd.bin_means(y, x, 0.0, n_bins=10)
        assert (bins.loc[bins["side"] == "below", "bin_mid"] < 0).all()
        assert (bins.loc[bins["side"] == "above", "bin_mid"] > 0).all()
        assert bins["n"].sum() == len(x)

    def test_bin_width(self, rdd_data):
        y, x = rdd_data
        bins = rdd.bin_means(y, x, 0.0, bin_width=0.25)
        assert len(bins) == 8

    def test_bandwidth_sensitivity(self, rdd_data):
        y, x = rdd_data
        tab = rdd.bandwidth_sensitivity(y, x, 0.0, [0.2, 0.4, 0.8])
        assert list(tab["bandwidth"]) == [0.2, 0.4, 0.8]
        assert (tab["n"].diff().dropna() > 0).all()
        assert ((tab["tau"] - 2.0).abs() < 0.3).all()

    def test_placebo_cutoffs_near_zero(self, rdd_data):
        y, x = rdd_data
        tab = rdd.placebo_cutoffs(y, x, 0.0, [-0.5, 0.5], bandwidth=0.3)
        assert list(tab["cutoff"]) == [-0.5, 0.5]
        assert (tab["tau"].abs() < 4 * tab["se"]).all()

    def test_global_fit(self, rdd_data):
        y, x = rdd_data
        assert rdd.global_rdd_fit(y, x, 0.0)["jump"] == pytest.approx(2.0, abs=0.1)

    def test_bias_corrected(self, rdd_data):
        y, x = rdd_data
        res = rdd.bias_corrected_rdd(y, x, 0.0, 0.5, n_boot=100, seed=3)
        assert res["tau_bc"] == pytest.approx(2.0, abs=0.25)
        assert res["se_bc"] > 0
        assert res["ci_lo"] < res["tau_bc"] < res["ci_hi"]
