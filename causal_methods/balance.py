"""
Covariate balance diagnostics for matched / weighted samples.

Reports, per covariate, the treated and control means, the standardized
mean difference, the variance ratio and empirical-CDF distances, before
and after matching. Standardization always uses the unweighted full
sample so that "before" and "after" are on the same scale.
"""

import numpy as np
import pandas as pd

from .ols import _is_categorical

ESTIMANDS = ("ATT", "ATC", "ATE")


def weighted_mean(x, w):
    return np.sum(w * x) / np.sum(w)


def weighted_var(x, w):
    """Unbiased weighted variance (reliability weights)."""
    w = np.asarray(w, dtype=float)
    m = weighted_mean(x, w)
    sw = w.sum()
    denom = sw - (w ** 2).sum() / sw
    if denom <= 0:
        return np.nan
    return np.sum(w * (x - m) ** 2) / denom


def _is_binary(x):
    return np.isin(np.unique(x[~np.isnan(x)]), (0, 1)).all()


def _sd_denominator(x, t, estimand):
    if estimand == "ATT":
        return np.std(x[t], ddof=1)
    if estimand == "ATC":
        return np.std(x[~t], ddof=1)
    return np.sqrt((np.var(x[t], ddof=1) + np.var(x[~t], ddof=1)) / 2)


def standardized_difference(x, treat, weights=None, estimand="ATT"):
    """
    Standardized mean difference (treated minus control).

    The denominator is the unweighted SD of the treated group (ATT),
    of the control group (ATC) or sqrt((s1^2 + s0^2) / 2) (ATE).
    """
    if estimand not in ESTIMANDS:
        raise ValueError(f"estimand must be one of {ESTIMANDS}, got {estimand!r}")
    x = np.asarray(x, dtype=float)
    t = np.asarray(treat).astype(bool)
    w = np.ones(len(x)) if weights is None else np.asarray(weights, dtype=float)

    sd = _sd_denominator(x, t, estimand)
    diff = weighted_mean(x[t], w[t]) - weighted_mean(x[~t], w[~t])
    return diff / sd if sd > 0 else np.nan


def variance_ratio(x, treat, weights=None):
    """Weighted variance of treated over control (NaN for binary x)."""
    x = np.asarray(x, dtype=float)
    if _is_binary(x):
        return np.nan
    t = np.asarray(treat).astype(bool)
    w = np.ones(len(x)) if weights is None else np.asarray(weights, dtype=float)
    v0 = weighted_var(x[~t], w[~t])
    return weighted_var(x[t], w[t]) / v0 if v0 > 0 else np.nan


def ecdf_stats(x, treat, weights=None):
    """
    Mean and maximum absolute difference between the (weighted) empirical
    CDFs of the two groups, evaluated at every observed value.

    Returns
    -------
    dict with keys: ecdf_mean, ecdf_max
    """
    x = np.asarray(x, dtype=float)
    t = np.asarray(treat).astype(bool)
    w = np.ones(len(x)) if weights is None else np.asarray(weights, dtype=float)
    grid = np.unique(x)

    def _cdf(xs, ws):
        order = np.argsort(xs)
        xs, cum = xs[order], np.cumsum(ws[order]) / ws.sum()
        pos = np.searchsorted(xs, grid, side="right")
        return np.where(pos > 0, cum[np.maximum(pos - 1, 0)], 0.0)

    gap = np.abs(_cdf(x[t], w[t]) - _cdf(x[~t], w[~t]))
    return dict(ecdf_mean=gap.mean(), ecdf_max=gap.max())


def _covariate_matrix(df, covariates):
    """Numeric covariate columns; categorical ones expand to one dummy per level."""
    blocks = []
    for col in covariates:
        s = df[col]
        if _is_categorical(s):
            blocks.append(pd.get_dummies(s, prefix=col, prefix_sep="_").astype(float))
        else:
            blocks.append(s.astype(float).rename(col).to_frame())
    return pd.concat(blocks, axis=1)


def balance_table(df, treatment, covariates, weights=None, estimand="ATT",
                  distance=None):
    """
    Balance table in the layout of MatchIt's ``summary()``.

    Parameters
    ----------
    df : DataFrame
        Full (unmatched) sample; SD denominators come from it.
    treatment : str
    covariates : list of str
    weights : array-like, optional
        Matching weights aligned with ``df`` (0 for unmatched units).
        ``None`` gives the unadjusted table.
    estimand : {"ATT", "ATC", "ATE"}
    distance : array-like, optional
        Propensity score / distance to report as the first row.

    Returns
    -------
    DataFrame indexed by covariate with columns
    mean_treated, mean_control, std_mean_diff, var_ratio, ecdf_mean, ecdf_max.
    """
    X = _covariate_matrix(df, covariates)
    if distance is not None:
        X.insert(0, "distance", np.asarray(distance, dtype=float))
    t = df[treatment].astype(float).values.astype(bool)
    w = np.ones(len(df)) if weights is None else np.asarray(weights, dtype=float)

    rows = {}
    for col in X.columns:
        x = X[col].values
        valid = ~np.isnan(x)
        keep = valid & (w > 0)
        sd = _sd_denominator(x[valid], t[valid], estimand)
        xk, tk, wk = x[keep], t[keep], w[keep]
        diff = weighted_mean(xk[tk], wk[tk]) - weighted_mean(xk[~tk], wk[~tk])
        e = ecdf_stats(xk, tk, wk)
        rows[col] = dict(
            mean_treated=weighted_mean(xk[tk], wk[tk]),
            mean_control=weighted_mean(xk[~tk], wk[~tk]),
            std_mean_diff=diff / sd if sd > 0 else np.nan,
            var_ratio=variance_ratio(xk, tk, wk),
            ecdf_mean=e["ecdf_mean"],
            ecdf_max=e["ecdf_max"],
        )
    return pd.DataFrame(rows).T


def compare_balance(before, after):
    """
    Percent balance improvement, 100 * (|before| - |after|) / |before|.

    Variance ratios are compared on the |log| scale.
    """
    cols = ["std_mean_diff", "ecdf_mean", "ecdf_max"]
    b = before[cols].abs()
    a = after[cols].abs()
    imp = 100 * (b - a) / b
    vb = np.abs(np.log(before["var_ratio"].astype(float)))
    va = np.abs(np.log(after["var_ratio"].astype(float)))
    imp.insert(1, "var_ratio", 100 * (vb - va) / vb)
    return imp.replace([np.inf, -np.inf], np.nan)


def summarize_match(result, covariates):
    """
    Before / after balance for a matching result.

    Returns
    -------
    dict with keys: before, after, improvement, max_abs_smd_before,
    max_abs_smd_after
    """
    df = result["data"]
    before = balance_table(df, result["treatment"], covariates,
                           estimand=result["estimand"], distance=result["distance"])
    after = balance_table(df, result["treatment"], covariates,
                          weights=result["weights"], estimand=result["estimand"],
                          distance=result["distance"])
    return dict(
        before=before,
        after=after,
        improvement=compare_balance(before, after),
        max_abs_smd_before=before["std_mean_diff"].abs().max(),
        max_abs_smd_after=after["std_mean_diff"].abs().max(),
    )
