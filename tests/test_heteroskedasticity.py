"""
Robust covariances, the Breusch-Pagan test and the within transformation.
"""

import numpy as np
import pandas as pd
import pytest

from causal_methods.utils import ols_fit, add_const
from causal_methods.heteroskedasticity import (
    hc_cov, cluster_cov, hc1_robust_se, breusch_pagan_test,
)
from causal_methods.fixed_effects import within_demean, n_absorbed, group_effects


def _fit(hetero, seed=0, n=800):
    rng = np.random.RandomState(seed)
    x = rng.uniform(0, 3, n)
    sd = 0.2 + x if hetero else np.ones(n)
    y = 1 + 0.5 * x + rng.normal(0, 1, n) * sd
    X = add_const(x)
    _, _, e, _ = ols_fit(X, y)
    return X, e


class TestSandwich:

    def test_hc0_matches_explicit_formula(self):
        X, e = _fit(True)
        bread = np.linalg.inv(X.T @ X)
        meat = sum(np.outer(xi, xi) * ei ** 2 for xi, ei in zip(X, e))
        np.testing.assert_allclose(hc_cov(X, e, "HC0"), bread @ meat @ bread)

    def test_hc3_exceeds_hc2_exceeds_hc0(self):
        X, e = _fit(True)
        se = {k: np.sqrt(np.diag(hc_cov(X, e, k))) for k in ("HC0", "HC2", "HC3")}
        assert np.all(se["HC3"] > se["HC2"])
        assert np.all(se["HC2"] > se["HC0"])

    def test_hc1_helper(self):
        X, e = _fit(True)
        np.testing.assert_allclose(hc1_robust_se(X, e),
                                   np.sqrt(np.diag(hc_cov(X, e, "HC1"))))

    def test_unknown_kind(self):
        X, e = _fit(False)
        with pytest.raises(ValueError):
            hc_cov(X, e, "HC5")

    def test_singleton_clusters_reduce_to_scaled_hc0(self):
        X, e = _fit(True, n=200)
        n, k = X.shape
        V, G = cluster_cov(X, e, np.arange(n))
        assert G == n
        expected = hc_cov(X, e, "HC0") * (n / (n - 1)) * ((n - 1) / (n - k))
        np.testing.assert_allclose(V, expected)


class TestBreuschPagan:

    def test_detects_heteroskedasticity(self):
        X, e = _fit(True)
        res = breusch_pagan_test(X, e)
        assert res["reject"]
        assert res["df"] == 1

    def test_homoskedastic_not_rejected(self):
        X, e = _fit(False, seed=4)
        assert breusch_pagan_test(X, e, alpha=0.001)["p_value"] > 0.001


class TestWithin:

    def test_one_way_group_means_are_zero(self):
        rng = np.random.RandomState(1)
        g = rng.randint(0, 5, 100)
        M = rng.normal(0, 1, (100, 2)) + g[:, None]
        out = within_demean(M, g)
        means = pd.DataFrame(out).groupby(g).mean().values
        np.testing.assert_allclose(means, 0, atol=1e-12)

    def test_vector_input_keeps_shape(self):
        g = np.array([0, 0, 1, 1])
        out = within_demean(np.array([1.0, 3.0, 5.0, 9.0]), g)
        np.testing.assert_allclose(out, [-1, 1, -2, 2])

    def test_weighted_means(self):
        g = np.array([0, 0])
        out = within_demean(np.array([0.0, 4.0]), g, weights=np.array([3.0, 1.0]))
        np.testing.assert_allclose(out, [-1.0, 3.0])

    def test_n_absorbed(self):
        a = np.array([0, 0, 1, 1, 2, 2])
        b = np.array([0, 1, 0, 1, 0, 1])
        assert n_absorbed(a) == 3
        assert n_absorbed([a, b]) == 4

    def test_group_effects_recovered(self):
        rng = np.random.RandomState(2)
        g = np.repeat(np.arange(4), 50)
        alpha = np.array([1.0, -1.0, 2.0, 0.5])
        x = rng.normal(0, 1, 200)
        y = alpha[g] + 2 * x
        fx = group_effects(y, x, 2.0, g)
        np.testing.assert_allclose(fx.values, alpha)
