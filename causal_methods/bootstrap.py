"""
Bootstrap inference.

Nonparametric bootstrap over observations, and the cluster (block)
bootstrap that resamples whole matched subclasses.
"""

import numpy as np


def _summarize(boots, alpha):
    valid = boots[~np.isnan(boots)]
    if len(valid) < 2:
        raise ValueError("Fewer than two bootstrap replications succeeded")
    ci = np.percentile(valid, [100 * alpha / 2, 100 * (1 - alpha / 2)])
    return dict(
        boot_estimates=valid,
        se=np.std(valid, ddof=1),
        ci_lo=ci[0],
        ci_hi=ci[1],
        mean=np.mean(valid),
        n_failed=int(len(boots) - len(valid)),
    )


def bootstrap_statistic(n, estimator, n_boot=2000, seed=None, alpha=0.05):
    """
    Nonparametric bootstrap for an arbitrary estimator.

    Parameters
    ----------
    n : int
        Number of observations.
    estimator : callable
        Function (idx) -> scalar estimate, where ``idx`` is an integer
        array of resampled row positions.
    n_boot : int
        Number of bootstrap replications.
    seed : int or None
        Random seed.
    alpha : float
        Percentile interval covers 1 - alpha.

    Returns
    -------
    dict with keys:
        boot_estimates : array of successful bootstrap estimates
        se             : bootstrap standard error
        ci_lo, ci_hi   : percentile CI
        mean           : mean of bootstrap distribution
        n_failed       : replications that raised a numerical error
    """
    if seed is not None:
        np.random.seed(seed)

    boots = np.empty(n_boot)
    for b in range(n_boot):
        idx = np.random.choice(n, n, replace=True)
        try:
            boots[b] = estimator(idx)
        except (ValueError, np.linalg.LinAlgError):
            boots[b] = np.nan
    return _summarize(boots, alpha)


def cluster_bootstrap(clusters, estimator, n_boot=1000, seed=None, alpha=0.05):
    """
    Cluster bootstrap: resample whole clusters with replacement.

    Parameters
    ----------
    clusters : array-like, shape (n,)
        Cluster label of every observation (e.g. matched subclass).
    estimator : callable
        Function (idx) -> scalar, ``idx`` being the row positions of the
        resampled clusters (rows of a cluster drawn twice appear twice).

    Returns
    -------
    dict as in :func:`bootstrap_statistic`.
    """
    if seed is not None:
        np.random.seed(seed)

    clusters = np.asarray(clusters)
    labels, codes = np.unique(clusters, return_inverse=True)
    members = [np.flatnonzero(codes == g) for g in range(len(labels))]
    G = len(labels)

    boots = np.empty(n_boot)
    for b in range(n_boot):
        draw = np.random.choice(G, G, replace=True)
        idx = np.concatenate([members[g] for g in draw])
        try:
            boots[b] = estimator(idx)
        except (ValueError, np.linalg.LinAlgError):
            boots[b] = np.nan
    return _summarize(boots, alpha)
