"""
Binary outcomes -- logit and probit by maximum likelihood.

Used to estimate propensity scores. Logit is fitted by Newton-Raphson
(iteratively reweighted least squares), probit by BFGS on the negative
log-likelihood; both report Fisher-information standard errors.
"""

import warnings

import numpy as np
from scipy import stats
from scipy.optimize import minimize


def logistic(z):
    """Logistic (sigmoid) CDF: 1 / (1 + exp(-z))."""
    return 1 / (1 + np.exp(-np.clip(z, -500, 500)))


def _loglik(p, y, w):
    p = np.clip(p, 1e-12, 1 - 1e-12)
    return np.sum(w * (y * np.log(p) + (1 - y) * np.log(1 - p)))


def _nll_probit(b, X, y, w):
    """Negative log-likelihood for probit."""
    return -_loglik(stats.norm.cdf(X @ b), y, w)


def _check_binary(y):
    y = np.asarray(y, dtype=float)
    if not np.isin(y, (0, 1)).all():
        raise ValueError("Outcome must be coded 0/1")
    if y.min() == y.max():
        raise ValueError("Outcome has no variation")
    return y


def fit_logit(X, y, weights=None, tol=1e-10, max_iter=100):
    """
    Logit MLE via Newton-Raphson.

    Each step solves  (X'WX) delta = X'(y - p),  W = diag(w p (1 - p)).

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design matrix (with constant).
    y : ndarray, shape (n,)
        Binary outcome (0/1).
    weights : ndarray, optional
        Frequency / sampling weights.
    tol : float
        Convergence tolerance on the largest coefficient change.
    max_iter : int

    Returns
    -------
    dict with keys:
        beta      : MLE coefficient vector
        se        : standard errors from the inverse Fisher information
        cov       : covariance matrix
        p_hat     : predicted probabilities
        eta       : linear predictor X @ beta
        loglik    : log-likelihood at the optimum
        n_iter    : Newton iterations used
        converged : bool
    """
    X = np.asarray(X, dtype=float)
    y = _check_binary(y)
    w = np.ones(len(y)) if weights is None else np.asarray(weights, dtype=float)

    beta = np.zeros(X.shape[1])
    converged = False
    for it in range(1, max_iter + 1):
        p = logistic(X @ beta)
        grad = X.T @ (w * (y - p))
        info = X.T @ (X * (w * p * (1 - p))[:, None])
        step = np.linalg.lstsq(info, grad, rcond=None)[0]
        beta = beta + step
        if np.max(np.abs(step)) < tol:
            converged = True
            break

    if not converged:
        warnings.warn(f"Logit did not converge in {max_iter} iterations "
                      "(possible perfect separation)")

    eta = X @ beta
    p = logistic(eta)
    info = X.T @ (X * (w * p * (1 - p))[:, None])
    cov = np.linalg.pinv(info)
    return dict(
        beta=beta,
        se=np.sqrt(np.diag(cov)),
        cov=cov,
        p_hat=p,
        eta=eta,
        loglik=_loglik(p, y, w),
        n_iter=it,
        converged=converged,
    )


def fit_probit(X, y, weights=None, start=None):
    """
    Probit MLE via BFGS optimization.

    Standard errors use the expected information
    X' diag(phi^2 / (Phi (1 - Phi))) X.

    Returns
    -------
    dict with the same keys as :func:`fit_logit` (``n_iter`` counts
    optimizer iterations).
    """
    X = np.asarray(X, dtype=float)
    y = _check_binary(y)
    w = np.ones(len(y)) if weights is None else np.asarray(weights, dtype=float)
    if start is None:
        start = np.zeros(X.shape[1])

    res = minimize(_nll_probit, start, args=(X, y, w), method="BFGS")
    if not res.success:
        warnings.warn(f"Probit optimizer did not converge: {res.message}")

    eta = X @ res.x
    P = np.clip(stats.norm.cdf(eta), 1e-12, 1 - 1e-12)
    phi = stats.norm.pdf(eta)
    info = X.T @ (X * (w * phi ** 2 / (P * (1 - P)))[:, None])
    cov = np.linalg.pinv(info)
    return dict(
        beta=res.x,
        se=np.sqrt(np.diag(cov)),
        cov=cov,
        p_hat=stats.norm.cdf(eta),
        eta=eta,
        loglik=-res.fun,
        n_iter=res.nit,
        converged=bool(res.success),
    )


def pseudo_r2(model, y, weights=None):
    """McFadden's pseudo R^2 = 1 - logL(model) / logL(intercept only)."""
    y = np.asarray(y, dtype=float)
    w = np.ones(len(y)) if weights is None else np.asarray(weights, dtype=float)
    p0 = np.average(y, weights=w)
    ll0 = _loglik(np.full(len(y), p0), y, w)
    return 1 - model["loglik"] / ll0
