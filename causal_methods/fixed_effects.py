"""
Fixed effects -- the within (demeaning) transformation.

One-way fixed effects are swept out exactly by subtracting group means.
Several sets of fixed effects are swept out by alternating projections
(demean by each grouping in turn until nothing changes), which converges
to the same residuals as the dummy-variable regression.
"""

import warnings

import numpy as np
import pandas as pd


def _group_demean(M, codes, w):
    """Subtract weighted group means from every column of M."""
    n_groups = codes.max() + 1
    sw = np.bincount(codes, weights=w, minlength=n_groups)
    out = np.empty_like(M)
    for j in range(M.shape[1]):
        sums = np.bincount(codes, weights=w * M[:, j], minlength=n_groups)
        out[:, j] = M[:, j] - (sums / sw)[codes]
    return out


def within_demean(M, groups, weights=None, tol=1e-10, max_iter=1000):
    """
    Demean the columns of M within each grouping.

    Parameters
    ----------
    M : ndarray, shape (n,) or (n, k)
        Variables to transform (outcome and regressors stacked together).
    groups : array-like of shape (n,), or list of such arrays
        Fixed-effect identifiers. A list absorbs several sets of effects.
    weights : ndarray, shape (n,), optional
        WLS weights; group means become weighted means.
    tol : float
        Convergence tolerance on the largest change (multi-way only).
    max_iter : int
        Iteration cap for alternating projections.

    Returns
    -------
    ndarray with the shape of M.
    """
    M = np.asarray(M, dtype=float)
    squeeze = M.ndim == 1
    if squeeze:
        M = M[:, None]
    w = np.ones(M.shape[0]) if weights is None else np.asarray(weights, dtype=float)

    if isinstance(groups, (list, tuple)):
        group_list = list(groups)
    else:
        group_list = [groups]
    codes = [pd.factorize(np.asarray(g))[0] for g in group_list]

    out = _group_demean(M, codes[0], w)
    if len(codes) > 1:
        for _ in range(max_iter):
            prev = out
            for c in codes:
                out = _group_demean(out, c, w)
            if np.max(np.abs(out - prev)) < tol:
                break
        else:
            warnings.warn("Alternating projections did not converge; "
                          "fixed effects may be only partially absorbed")

    return out[:, 0] if squeeze else out


def n_absorbed(groups):
    """
    Degrees of freedom used up by absorbed fixed effects.

    One grouping with G levels costs G (it replaces the intercept);
    each further grouping costs its number of levels minus one.
    """
    if not isinstance(groups, (list, tuple)):
        groups = [groups]
    levels = [len(pd.unique(np.asarray(g))) for g in groups]
    return levels[0] + sum(g - 1 for g in levels[1:])


def group_effects(y, X, beta, groups, weights=None):
    """
    Recover one-way fixed effects after a within regression.

    alpha_g = mean_g(y - X beta)

    Returns
    -------
    Series indexed by group label.
    """
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X[:, None]
    resid = np.asarray(y, dtype=float) - X @ np.atleast_1d(beta)
    w = np.ones(len(resid)) if weights is None else np.asarray(weights, dtype=float)
    frame = pd.DataFrame({"g": np.asarray(groups), "wr": w * resid, "w": w})
    sums = frame.groupby("g")[["wr", "w"]].sum()
    return sums["wr"] / sums["w"]
