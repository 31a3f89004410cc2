"""
Propensity scores -- P(T = 1 | X) as a scalar matching index.

The score is estimated by a logit (or probit) of the treatment on the
covariates. Matching can use either the score itself or its linear
predictor ("linear" distance), which spreads out scores near 0 and 1.
"""

import warnings

import numpy as np
import pandas as pd

from .ols import build_design
from .logit import fit_logit, fit_probit

LINKS = ("logit", "probit")
DISTANCES = ("ps", "linear")
DISCARD = ("none", "treated", "control", "both")


def estimate_propensity(df, treatment, covariates, link="logit", distance="ps"):
    """
    Estimate propensity scores.

    Parameters
    ----------
    df : DataFrame
    treatment : str
        Binary 0/1 treatment column.
    covariates : list of str
        Pre-treatment covariates; categorical columns become dummies.
    link : {"logit", "probit"}
    distance : {"ps", "linear"}
        Which scale the returned ``distance`` is on.

    Returns
    -------
    dict with keys:
        ps       : Series of propensity scores (index of the rows used)
        distance : Series on the requested scale
        model    : fitted logit / probit dict
        names    : design column names
        treat    : Series of treatment indicators
        n_dropped: rows dropped for missing values
    """
    if link not in LINKS:
        raise ValueError(f"link must be one of {LINKS}, got {link!r}")
    if distance not in DISTANCES:
        raise ValueError(f"distance must be one of {DISTANCES}, got {distance!r}")

    cols = [treatment] + list(covariates)
    data = df[cols].dropna()
    n_dropped = len(df) - len(data)
    if n_dropped:
        warnings.warn(f"Dropped {n_dropped} rows with missing treatment or covariates")

    X, names, _ = build_design(data, covariates)
    T = data[treatment].astype(float).values
    model = fit_logit(X, T) if link == "logit" else fit_probit(X, T)

    ps = pd.Series(model["p_hat"], index=data.index, name="ps")
    dist = ps if distance == "ps" else pd.Series(model["eta"], index=data.index,
                                                 name="distance")
    return dict(
        ps=ps,
        distance=dist.rename("distance"),
        model=model,
        names=names,
        treat=pd.Series(T, index=data.index, name=treatment),
        n_dropped=n_dropped,
    )


def common_support(score, treat, discard="both"):
    """
    Common-support restriction on a propensity score.

    "treated" drops treated units whose score lies outside the range of
    the controls, "control" the reverse, "both" applies both rules.

    Returns
    -------
    ndarray of bool, True for units kept.
    """
    if discard not in DISCARD:
        raise ValueError(f"discard must be one of {DISCARD}, got {discard!r}")
    score = np.asarray(score, dtype=float)
    treat = np.asarray(treat).astype(bool)
    keep = np.ones(len(score), dtype=bool)
    if discard == "none":
        return keep

    t_lo, t_hi = score[treat].min(), score[treat].max()
    c_lo, c_hi = score[~treat].min(), score[~treat].max()
    if discard in ("treated", "both"):
        keep &= ~(treat & ((score < c_lo) | (score > c_hi)))
    if discard in ("control", "both"):
        keep &= ~(~treat & ((score < t_lo) | (score > t_hi)))
    return keep


def overlap_summary(score, treat):
    """Quantiles of the score by treatment group."""
    frame = pd.DataFrame({"score": np.asarray(score, dtype=float),
                          "group": np.where(np.asarray(treat) == 1, "treated", "control")})
    q = frame.groupby("group")["score"].describe()
    return q[["count", "mean", "min", "25%", "50%", "75%", "max"]]
