import numpy as np
import pytest

from causal_methods.bootstrap import bootstrap_statistic, cluster_bootstrap


def test_se_of_mean():
    y = np.random.RandomState(0).normal(0, 2, 400)
    res = bootstrap_statistic(len(y), lambda idx: y[idx].mean(), n_boot=1000, seed=1)
    assert res["se"] == pytest.approx(2 / np.sqrt(400), rel=0.2)
    assert res["ci_lo"] < y.mean() < res["ci_hi"]
    assert res["n_failed"] == 0


def test_seed_reproducible():
    y = np.arange(50.0)
    a = bootstrap_statistic(50, lambda idx: y[idx].mean(), n_boot=100, seed=5)
    b = bootstrap_statistic(50, lambda idx: y[idx].mean(), n_boot=100, seed=5)
    np.testing.assert_array_equal(a["boot_estimates"], b["boot_estimates"])


def test_failed_replications_are_dropped():
    calls = {"n": 0}

    def flaky(idx):
        calls["n"] += 1
        if calls["n"] % 2 == 0:
            raise ValueError("degenerate draw")
        return float(len(idx))

    res = bootstrap_statistic(10, flaky, n_boot=20, seed=0)
    assert res["n_failed"] == 10
    assert len(res["boot_estimates"]) == 10


def test_all_failed_raises():
    def broken(idx):
        raise np.linalg.LinAlgError("singular")

    with pytest.raises(ValueError):
        bootstrap_statistic(10, broken, n_boot=5, seed=0)


def test_cluster_bootstrap_draws_whole_clusters():
    clusters = np.repeat(np.arange(6), 3)
    sizes = []

    def est(idx):
        sizes.append(len(idx))
        labels, counts = np.unique(clusters[idx], return_counts=True)
        assert (counts % 3 == 0).all()
        return float(len(labels))

    res = cluster_bootstrap(clusters, est, n_boot=50, seed=2)
    assert set(sizes) == {18}
    assert res["mean"] <= 6
