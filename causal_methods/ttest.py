"""
Descriptive comparison: two-sample and one-sample t-tests.

Welch's unequal-variance test is the default, matching what most
statistics packages do for a two-group comparison.
"""

import numpy as np
from scipy import stats


def ttest_ind(y1, y0, equal_var=False, alpha=0.05):
    """
    Two-sample t-test for the difference in means  mean(y1) - mean(y0).

    Welch:
        se = sqrt(s1^2/n1 + s0^2/n0)
        df = se^4 / [ (s1^2/n1)^2/(n1-1) + (s0^2/n0)^2/(n0-1) ]
    Pooled (``equal_var=True``):
        s_p^2 = [(n1-1) s1^2 + (n0-1) s0^2] / (n1 + n0 - 2)
        se = s_p * sqrt(1/n1 + 1/n0),  df = n1 + n0 - 2

    Parameters
    ----------
    y1, y0 : array-like
        Outcomes of the two groups. NaNs are dropped.
    equal_var : bool
        Use the pooled-variance test instead of Welch.
    alpha : float
        1 - confidence level of the reported interval.

    Returns
    -------
    dict with keys:
        mean_1, mean_0, diff, se, t_stat, df, p_value, ci_lo, ci_hi,
        n_1, n_0, equal_var
    """
    y1 = np.asarray(y1, dtype=float)
    y0 = np.asarray(y0, dtype=float)
    y1 = y1[~np.isnan(y1)]
    y0 = y0[~np.isnan(y0)]
    n1, n0 = len(y1), len(y0)
    if n1 < 2 or n0 < 2:
        raise ValueError(f"Each group needs at least 2 observations (got {n1}, {n0})")

    v1, v0 = y1.var(ddof=1), y0.var(ddof=1)
    diff = y1.mean() - y0.mean()

    if equal_var:
        df = n1 + n0 - 2
        sp2 = ((n1 - 1) * v1 + (n0 - 1) * v0) / df
        se = np.sqrt(sp2 * (1 / n1 + 1 / n0))
    else:
        a, b = v1 / n1, v0 / n0
        se = np.sqrt(a + b)
        df = (a + b) ** 2 / (a ** 2 / (n1 - 1) + b ** 2 / (n0 - 1))

    t_stat = diff / se
    p_value = 2 * stats.t.sf(abs(t_stat), df)
    crit = stats.t.ppf(1 - alpha / 2, df)

    return dict(
        mean_1=y1.mean(),
        mean_0=y0.mean(),
        diff=diff,
        se=se,
        t_stat=t_stat,
        df=df,
        p_value=p_value,
        ci_lo=diff - crit * se,
        ci_hi=diff + crit * se,
        n_1=n1,
        n_0=n0,
        equal_var=equal_var,
    )


def ttest_one_sample(y, mu=0.0, alpha=0.05):
    """
    One-sample t-test of H0: E[y] = mu.

    Returns
    -------
    dict with keys: mean, diff, se, t_stat, df, p_value, ci_lo, ci_hi, n
    """
    y = np.asarray(y, dtype=float)
    y = y[~np.isnan(y)]
    n = len(y)
    if n < 2:
        raise ValueError("Need at least 2 observations")
    se = y.std(ddof=1) / np.sqrt(n)
    diff = y.mean() - mu
    t_stat = diff / se
    df = n - 1
    crit = stats.t.ppf(1 - alpha / 2, df)
    return dict(
        mean=y.mean(),
        diff=diff,
        se=se,
        t_stat=t_stat,
        df=df,
        p_value=2 * stats.t.sf(abs(t_stat), df),
        ci_lo=y.mean() - crit * se,
        ci_hi=y.mean() + crit * se,
        n=n,
    )


def compare_groups(df, outcome, group, treated_value=1, equal_var=False):
    """
    Group summary plus the two-sample t-test for a binary grouping column.

    Returns
    -------
    dict with keys:
        summary : DataFrame indexed by group value (mean, sd, n, se)
        test    : output of :func:`ttest_ind` (treated minus other group)
    """
    sub = df[[outcome, group]].dropna()
    levels = sub[group].unique()
    if len(levels) != 2:
        raise ValueError(f"{group!r} must have exactly two levels, found {len(levels)}")
    if treated_value not in levels:
        raise ValueError(f"{treated_value!r} is not a level of {group!r}")

    summary = sub.groupby(group)[outcome].agg(["mean", "std", "count"])
    summary = summary.rename(columns={"std": "sd", "count": "n"})
    summary["se"] = summary["sd"] / np.sqrt(summary["n"])

    y1 = sub.loc[sub[group] == treated_value, outcome]
    y0 = sub.loc[sub[group] != treated_value, outcome]
    return dict(summary=summary, test=ttest_ind(y1, y0, equal_var=equal_var))


def summarize_by(df, outcome, by):
    """Mean, SD and count of ``outcome`` for every level of ``by``."""
    out = df.groupby(by)[outcome].agg(["mean", "std", "count"])
    return out.rename(columns={"std": "sd", "count": "n"})
