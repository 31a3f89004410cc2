"""
Heteroskedasticity -- detection and robust covariance matrices.

Provides the Koenker (studentized) Breusch-Pagan test, HC0-HC3
sandwich covariances and the cluster-robust (Liang-Zeger) covariance,
all for (optionally) weighted least squares fits.
"""

import numpy as np
import pandas as pd
from scipy import stats
from .utils import ols_fit

HC_TYPES = ("HC0", "HC1", "HC2", "HC3")


def _bread(X, w):
    return np.linalg.pinv(X.T @ (X * w[:, None]))


def hc_cov(X, residuals, kind="HC1", weights=None, df_resid=None):
    """
    Heteroskedasticity-consistent (sandwich) covariance matrix.

    V = (X'WX)^{-1} [ sum_i omega_i x_i x_i' ] (X'WX)^{-1}

    with omega_i = (w_i e_i)^2 scaled by
        HC0 : 1
        HC1 : n / (n - k)
        HC2 : 1 / (1 - h_ii)
        HC3 : 1 / (1 - h_ii)^2
    where h_ii are the (weighted) leverages.

    Parameters
    ----------
    X : ndarray, shape (n, k)
    residuals : ndarray, shape (n,)
    kind : {"HC0", "HC1", "HC2", "HC3"}
    weights : ndarray, shape (n,), optional
        WLS weights.
    df_resid : int, optional
        Residual degrees of freedom for the HC1 correction; defaults to
        n - k. Pass it when regressors were absorbed before fitting.

    Returns
    -------
    ndarray, shape (k, k)
    """
    if kind not in HC_TYPES:
        raise ValueError(f"kind must be one of {HC_TYPES}, got {kind!r}")
    X = np.asarray(X, dtype=float)
    n, k = X.shape
    w = np.ones(n) if weights is None else np.asarray(weights, dtype=float)
    bread = _bread(X, w)
    omega = (w * residuals) ** 2

    if kind == "HC1":
        omega = omega * n / (df_resid if df_resid is not None else n - k)
    elif kind in ("HC2", "HC3"):
        h = w * np.einsum("ij,jk,ik->i", X, bread, X)
        h = np.clip(h, 0, 1 - 1e-12)
        omega = omega / (1 - h) if kind == "HC2" else omega / (1 - h) ** 2

    meat = (X.T * omega) @ X
    return bread @ meat @ bread


def cluster_cov(X, residuals, clusters, weights=None, df_resid=None):
    """
    Cluster-robust covariance (Liang & Zeger 1986) with the Stata
    finite-sample correction  G/(G-1) * (n-1)/(n-k).

    B = sum_g (X_g' W_g e_g)(X_g' W_g e_g)'

    Parameters
    ----------
    X : ndarray, shape (n, k)
    residuals : ndarray, shape (n,)
    clusters : array-like, shape (n,)
        Cluster labels.
    weights : ndarray, optional
    df_resid : int, optional
        Replaces n - k in the correction factor.

    Returns
    -------
    V : ndarray, shape (k, k)
    n_clusters : int
    """
    X = np.asarray(X, dtype=float)
    n, k = X.shape
    w = np.ones(n) if weights is None else np.asarray(weights, dtype=float)
    bread = _bread(X, w)

    scores = pd.DataFrame(X * (w * residuals)[:, None])
    scores = scores.groupby(np.asarray(clusters)).sum().values
    G = scores.shape[0]
    if G < 2:
        raise ValueError("Cluster-robust covariance needs at least 2 clusters")

    meat = scores.T @ scores
    dof = df_resid if df_resid is not None else n - k
    corr = (G / (G - 1)) * ((n - 1) / dof)
    return bread @ meat @ bread * corr, G


def hc1_robust_se(X, residuals, weights=None):
    """HC1 (Huber-White) standard errors."""
    return np.sqrt(np.diag(hc_cov(X, residuals, "HC1", weights)))


def breusch_pagan_test(X, residuals, alpha=0.05):
    """
    Koenker's studentized Breusch-Pagan test.

    Regress e^2 on X; under H0 (homoskedasticity) LM = n * R^2 is
    chi-squared with k - 1 degrees of freedom.

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design matrix of the original regression, including the constant.
    residuals : ndarray, shape (n,)

    Returns
    -------
    dict with keys: lm_stat, df, p_value, reject
    """
    X = np.asarray(X, dtype=float)
    n, k = X.shape
    esq = np.asarray(residuals, dtype=float) ** 2
    _, _, u, _ = ols_fit(X, esq)
    r2 = 1 - (u @ u) / ((esq - esq.mean()) @ (esq - esq.mean()))
    lm = n * r2
    p_value = stats.chi2.sf(lm, k - 1)
    return dict(lm_stat=lm, df=k - 1, p_value=p_value, reject=p_value < alpha)
