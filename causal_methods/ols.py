"""
Linear regression on named DataFrame columns.

Plain OLS, fixed effects (as dummies or absorbed by the within
transformation), interactions and weighted least squares, with
classical, HC0-HC3 or cluster-robust standard errors.
"""

import numpy as np
import pandas as pd

from .utils import wls_fit, t_inference
from . import fixed_effects as fe
from .heteroskedasticity import hc_cov, cluster_cov, HC_TYPES

SE_TYPES = ("classical",) + HC_TYPES + ("cluster",)


def _is_categorical(s):
    return (s.dtype == object or isinstance(s.dtype, pd.CategoricalDtype)
            or pd.api.types.is_string_dtype(s))


def _expand(df, col, levels=None):
    """
    Expand one column into named design columns.

    Numeric columns pass through; categorical ones become treatment
    dummies ``col[T.level]`` with the first level as reference.
    """
    s = df[col]
    if not _is_categorical(s):
        return {col: s.astype(float).values}, None
    if levels is None:
        levels = sorted(s.dropna().unique(), key=str)
    return ({f"{col}[T.{lev}]": (s == lev).astype(float).values
             for lev in levels[1:]}, levels)


def build_design(df, regressors=(), interactions=(), fixed_effects=(),
                 const=True, levels=None):
    """
    Build a named design matrix.

    Parameters
    ----------
    df : DataFrame
    regressors : list of str
        Main effects.
    interactions : list of (str, str)
        Each pair adds the product ``a:b``. Categorical members are
        expanded to dummies first, giving one product per level.
    fixed_effects : list of str
        Grouping columns entered as dummies (first level dropped).
    const : bool
        Include an intercept column named ``const``.
    levels : dict, optional
        Category levels to reuse (from a previous call) so that
        prediction data get the same columns.

    Returns
    -------
    X : ndarray, shape (n, k)
    names : list of str
    levels : dict mapping categorical column -> ordered levels
    """
    levels = dict(levels or {})
    columns = {}
    if const:
        columns["const"] = np.ones(len(df))

    def _add(col):
        block, lev = _expand(df, col, levels.get(col))
        if lev is not None:
            levels[col] = lev
        return block

    for col in regressors:
        columns.update(_add(col))
    for a, b in interactions:
        block_a, block_b = _add(a), _add(b)
        for na, va in block_a.items():
            for nb, vb in block_b.items():
                columns[f"{na}:{nb}"] = va * vb
    for col in fixed_effects:
        s = df[col].astype(str)
        lev = levels.get(col) or sorted(s.unique())
        levels[col] = lev
        for level in lev[1:]:
            columns[f"{col}[T.{level}]"] = (s == level).astype(float).values

    names = list(columns)
    X = np.column_stack([columns[n] for n in names]) if names else np.empty((len(df), 0))
    return X, names, levels


def regress(df, outcome, regressors=(), interactions=(), fixed_effects=(),
            absorb=False, weights=None, se_type="classical", cluster=None,
            alpha=0.05):
    """
    Least-squares regression of ``outcome`` on named columns.

    Parameters
    ----------
    df : DataFrame
    outcome : str
    regressors : list of str
    interactions : list of (str, str)
    fixed_effects : list of str
        Grouping columns. Entered as dummies unless ``absorb`` is True.
    absorb : bool
        Sweep the fixed effects out with the within transformation
        instead of estimating their dummies. Slopes are identical.
    weights : str or array-like, optional
        Column name or array of WLS weights. Rows with zero weight are
        dropped (as for matched samples).
    se_type : {"classical", "HC0", "HC1", "HC2", "HC3", "cluster"}
    cluster : str or array-like, optional
        Cluster labels, required for ``se_type="cluster"``.
    alpha : float
        1 - confidence level.

    Returns
    -------
    dict with keys:
        params, bse, tvalues, pvalues : Series indexed by term name
        conf_int   : DataFrame (ci_lo, ci_hi)
        cov        : DataFrame covariance matrix
        nobs, df_resid, r2, adj_r2
        residuals, fitted : ndarray
        se_type, outcome, n_clusters, absorbed, spec
    """
    if se_type not in SE_TYPES:
        raise ValueError(f"se_type must be one of {SE_TYPES}, got {se_type!r}")
    if se_type == "cluster" and cluster is None:
        raise ValueError("se_type='cluster' requires cluster labels")
    if absorb and not fixed_effects:
        raise ValueError("absorb=True needs at least one fixed-effect column")

    data = df.copy()
    needed = [outcome] + list(regressors) + list(fixed_effects)
    for a, b in interactions:
        needed += [a, b]
    if isinstance(weights, str):
        needed.append(weights)
        data["_w"] = data[weights]
    else:
        data["_w"] = 1.0 if weights is None else np.asarray(weights, dtype=float)
    if isinstance(cluster, str):
        needed.append(cluster)
        data["_cl"] = data[cluster]
    elif cluster is not None:
        data["_cl"] = np.asarray(cluster)
    needed = list(dict.fromkeys(needed + ["_w"]))

    data = data.dropna(subset=needed)
    data = data[data["_w"] > 0]
    if data.empty:
        raise ValueError("No complete observations to fit")

    y = data[outcome].astype(float).values
    w = data["_w"].astype(float).values

    X, names, levels = build_design(
        data, regressors, interactions,
        () if absorb else fixed_effects, const=not absorb,
    )
    n = len(y)

    if absorb:
        groups = [data[c].values for c in fixed_effects]
        both = fe.within_demean(np.column_stack([y, X]), groups, w)
        y_fit, X_fit = both[:, 0], both[:, 1:]
        keep = np.abs(X_fit).max(axis=0) > 1e-10
        X_fit = X_fit[:, keep]
        names = [nm for nm, k in zip(names, keep) if k]
        extra = fe.n_absorbed(groups)
    else:
        y_fit, X_fit = y, X
        extra = 0

    k = X_fit.shape[1]
    df_resid = n - k - extra
    if df_resid <= 0:
        raise ValueError(f"Not enough observations ({n}) for {k + extra} parameters")

    b, _, e, _ = wls_fit(X_fit, y_fit, w)
    s2 = (w * e ** 2).sum() / df_resid

    n_clusters = None
    if se_type == "classical":
        cov = s2 * np.linalg.pinv(X_fit.T @ (X_fit * w[:, None]))
        inf_df = df_resid
    elif se_type == "cluster":
        cov, n_clusters = cluster_cov(X_fit, e, data["_cl"].values, w,
                                      df_resid=df_resid)
        inf_df = n_clusters - 1
    else:
        cov = hc_cov(X_fit, e, se_type, w, df_resid=df_resid)
        inf_df = df_resid

    se = np.sqrt(np.diag(cov))
    inf = t_inference(b, se, inf_df, alpha)

    ybar = np.average(y, weights=w)
    sst = (w * (y - ybar) ** 2).sum()
    ssr = (w * e ** 2).sum()
    r2 = 1 - ssr / sst if sst > 0 else np.nan
    adj_r2 = 1 - (1 - r2) * (n - 1) / df_resid

    idx = pd.Index(names, name="term")
    return dict(
        params=pd.Series(b, index=idx),
        bse=pd.Series(se, index=idx),
        tvalues=pd.Series(inf["t"], index=idx),
        pvalues=pd.Series(inf["p_value"], index=idx),
        conf_int=pd.DataFrame({"ci_lo": inf["ci_lo"], "ci_hi": inf["ci_hi"]},
                              index=idx),
        cov=pd.DataFrame(cov, index=idx, columns=idx),
        nobs=n,
        df_resid=df_resid,
        r2=r2,
        adj_r2=adj_r2,
        residuals=e,
        fitted=y - e,
        se_type=se_type,
        outcome=outcome,
        n_clusters=n_clusters,
        absorbed=list(fixed_effects) if absorb else [],
        spec=dict(regressors=list(regressors), interactions=list(interactions),
                  fixed_effects=[] if absorb else list(fixed_effects),
                  levels=levels),
    )


def coef_table(res, terms=None):
    """Tidy coefficient table: coef, se, t, p, ci_lo, ci_hi."""
    tab = pd.DataFrame({
        "coef": res["params"],
        "se": res["bse"],
        "t": res["tvalues"],
        "p": res["pvalues"],
    }).join(res["conf_int"])
    if terms is not None:
        tab = tab.loc[list(terms)]
    return tab


def predict(res, df):
    """
    Fitted values for new data from a (non-absorbed) regression.

    Category levels are fixed to those seen when fitting.
    """
    if res["absorbed"]:
        raise ValueError("Cannot predict from a regression with absorbed fixed effects")
    spec = res["spec"]
    X, names, _ = build_design(df, spec["regressors"], spec["interactions"],
                               spec["fixed_effects"], const="const" in res["params"].index,
                               levels=spec["levels"])
    frame = pd.DataFrame(X, columns=names, index=df.index)
    frame = frame.reindex(columns=res["params"].index, fill_value=0.0)
    return frame.values @ res["params"].values


def lincom(res, weights, alpha=0.05):
    """
    Linear combination of coefficients, e.g. the slope of ``univ`` for
    women in an interaction model: ``{"univ": 1, "univ:female": 1}``.

    Returns
    -------
    dict with keys: estimate, se, t_stat, p_value, ci_lo, ci_hi
    """
    terms = list(weights)
    missing = [t for t in terms if t not in res["params"].index]
    if missing:
        raise ValueError(f"Unknown terms: {missing}")
    c = np.array([weights[t] for t in terms], dtype=float)
    est = c @ res["params"][terms].values
    se = np.sqrt(c @ res["cov"].loc[terms, terms].values @ c)
    df = res["n_clusters"] - 1 if res["n_clusters"] else res["df_resid"]
    inf = t_inference(np.array([est]), np.array([se]), df, alpha)
    return dict(estimate=est, se=se, t_stat=inf["t"][0], p_value=inf["p_value"][0],
                ci_lo=inf["ci_lo"][0], ci_hi=inf["ci_hi"][0])


def format_table(results, labels=None, terms=None, digits=3):
    """
    Side-by-side regression table (coefficient with SE below) for
    several fitted models, as printed in the workshop documents.
    """
    if labels is None:
        labels = [f"({i + 1})" for i in range(len(results))]
    if terms is None:
        terms = []
        for r in results:
            terms += [t for t in r["params"].index if t not in terms]

    rows = {}
    for t in terms:
        coef_row, se_row = [], []
        for r in results:
            if t in r["params"].index:
                p = r["pvalues"][t]
                stars = "***" if p < 0.01 else "**" if p < 0.05 else "*" if p < 0.1 else ""
                coef_row.append(f"{r['params'][t]:.{digits}f}{stars}")
                se_row.append(f"({r['bse'][t]:.{digits}f})")
            else:
                coef_row += [""]
                se_row += [""]
        rows[t] = coef_row
        rows[f"{t} "] = se_row
    rows["N"] = [str(r["nobs"]) for r in results]
    rows["R2"] = [f"{r['r2']:.3f}" for r in results]
    rows["FE"] = [", ".join(r["absorbed"] + r["spec"]["fixed_effects"]) or "-"
                  for r in results]
    return pd.DataFrame(rows, index=labels).T
