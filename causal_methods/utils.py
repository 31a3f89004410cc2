"""
Shared linear-algebra helpers used across the estimator modules.
"""

import numpy as np
from scipy import stats


def ols_fit(X, y):
    """
    OLS estimation via the normal equations.

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design matrix (should include a constant column if an intercept is desired).
    y : ndarray, shape (n,)
        Outcome vector.

    Returns
    -------
    b : ndarray, shape (k,)
        Coefficient estimates  beta_hat = (X'X)^{-1} X'y.
    se : ndarray, shape (k,)
        Homoskedastic standard errors.
    e : ndarray, shape (n,)
        Residuals  y - X @ b.
    s2 : float
        Estimated error variance  e'e / (n - k).
    """
    return wls_fit(X, y, None)


def wls_fit(X, y, weights=None):
    """
    Weighted least squares: beta_hat = (X'WX)^{-1} X'Wy.

    With ``weights=None`` this is plain OLS. Units with zero weight
    contribute nothing but still count towards n, so callers should drop
    them first when the residual degrees of freedom matter.

    Returns
    -------
    b, se, e, s2 : as in :func:`ols_fit`; ``s2 = sum(w e^2) / (n - k)``.
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    n, k = X.shape
    w = np.ones(n) if weights is None else np.asarray(weights, dtype=float)
    sw = np.sqrt(w)
    b = np.linalg.lstsq(X * sw[:, None], y * sw, rcond=None)[0]
    e = y - X @ b
    s2 = (w * e ** 2).sum() / (n - k)
    XtWX_inv = np.linalg.pinv(X.T @ (X * w[:, None]))
    se = np.sqrt(np.diag(s2 * XtWX_inv))
    return b, se, e, s2


def add_const(x):
    """
    Prepend a column of ones (intercept) to the design matrix.

    Parameters
    ----------
    x : ndarray
        1-d array or 2-d matrix of regressors.

    Returns
    -------
    X : ndarray, shape (n, k+1)
        Design matrix with leading ones column.
    """
    x = np.asarray(x, dtype=float)
    x = np.atleast_2d(x).T if x.ndim == 1 else x
    return np.column_stack([np.ones(x.shape[0]), x])


def t_inference(beta, se, df, alpha=0.05):
    """
    t statistics, two-sided p-values and (1 - alpha) confidence bounds.

    ``df=None`` switches to the normal approximation.
    """
    beta = np.asarray(beta, dtype=float)
    se = np.asarray(se, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        t = beta / se
    if df is None:
        p = 2 * stats.norm.sf(np.abs(t))
        crit = stats.norm.ppf(1 - alpha / 2)
    else:
        p = 2 * stats.t.sf(np.abs(t), df)
        crit = stats.t.ppf(1 - alpha / 2, df)
    return dict(t=t, p_value=p, ci_lo=beta - crit * se, ci_hi=beta + crit * se)
