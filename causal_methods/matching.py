"""
Matching on a distance measure (usually the propensity score).

Nearest neighbour
    Greedy 1:k matching of each treated unit to the closest control(s),
    optionally with replacement and a caliper expressed in standard
    deviations of the distance. Treated units with no control inside the
    caliper are left unmatched.

Full matching
    Optimal full matching (Rosenbaum 1991; Hansen 2004): every unit is
    placed in a subclass containing at least one treated and one control
    unit, minimising the total within-subclass treated-control distance.
    Subclasses are stars (one treated with several controls, or one
    control with several treated), so the problem is a minimum-weight
    edge cover of the bipartite distance graph. That cover is obtained
    from a maximum-savings assignment (``linear_sum_assignment``) on the
    reduced costs  d(i, j) - min_j' d(i, j') - min_i' d(i', j).

Both return a result dict consumed by :func:`match_data`,
:func:`sample_sizes` and the balance module.
"""

import warnings

import numpy as np
import pandas as pd
from scipy import stats
from scipy.optimize import linear_sum_assignment
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from .propensity import common_support
from .ols import regress
from .bootstrap import cluster_bootstrap

ESTIMANDS = ("ATT", "ATC", "ATE")
ORDERS = ("largest", "smallest", "random", "data")


def _inputs(df, treatment, distance):
    treat = df[treatment].astype(float).values
    if not np.isin(treat, (0, 1)).all():
        raise ValueError(f"{treatment!r} must be coded 0/1")
    if isinstance(distance, str):
        dist = df[distance].astype(float).values
    elif isinstance(distance, pd.Series):
        dist = distance.reindex(df.index).astype(float).values
    else:
        dist = np.asarray(distance, dtype=float)
    if len(dist) != len(df) or np.isnan(dist).any():
        raise ValueError("distance must have one non-missing value per row")
    if treat.sum() == 0 or treat.sum() == len(treat):
        raise ValueError("Need both treated and control units")
    return treat.astype(bool), dist


def _caliper_width(dist, caliper, std_caliper):
    if caliper is None:
        return None
    if caliper <= 0:
        raise ValueError("caliper must be positive")
    return caliper * np.std(dist, ddof=1) if std_caliper else caliper


def _normalize(weights, treat, matched):
    """Scale each group's weights to sum to its matched count."""
    w = weights.copy()
    for grp in (treat, ~treat):
        m = grp & matched
        total = w[m].sum()
        if total > 0:
            w[m] *= m.sum() / total
    return w


def match_weights(treat, subclass, estimand="ATT"):
    """
    Subclass weights for a stratified / full-matched sample.

    Within subclass s with n_t treated and n_c controls:
        ATT : treated 1,         controls n_t / n_c
        ATC : treated n_c / n_t, controls 1
        ATE : treated n_s / n_t, controls n_s / n_c
    Units without a subclass get weight 0. Each group is then rescaled
    so its weights sum to the number of matched units in it.
    """
    if estimand not in ESTIMANDS:
        raise ValueError(f"estimand must be one of {ESTIMANDS}, got {estimand!r}")
    treat = np.asarray(treat).astype(bool)
    subclass = np.asarray(subclass, dtype=float)
    matched = ~np.isnan(subclass)

    frame = pd.DataFrame({"s": subclass[matched], "t": treat[matched]})
    n_t = frame.groupby("s")["t"].transform("sum").values.astype(float)
    n_all = frame.groupby("s")["t"].transform("size").values.astype(float)
    n_c = n_all - n_t
    t = frame["t"].values

    if estimand == "ATT":
        w_m = np.where(t, 1.0, n_t / n_c)
    elif estimand == "ATC":
        w_m = np.where(t, n_c / n_t, 1.0)
    else:
        w_m = np.where(t, n_all / n_t, n_all / n_c)

    w = np.zeros(len(treat))
    w[matched] = w_m
    return _normalize(w, treat, matched)


def _order_treated(dist, t_idx, order, seed):
    if order not in ORDERS:
        raise ValueError(f"order must be one of {ORDERS}, got {order!r}")
    if order == "largest":
        return t_idx[np.argsort(-dist[t_idx], kind="stable")]
    if order == "smallest":
        return t_idx[np.argsort(dist[t_idx], kind="stable")]
    if order == "random":
        rng = np.random.RandomState(seed)
        return rng.permutation(t_idx)
    return t_idx


def nearest_neighbor(df, treatment, distance, ratio=1, replace=False,
                     caliper=None, std_caliper=True, order="largest",
                     discard="none", seed=None):
    """
    Greedy nearest-neighbour matching on a scalar distance.

    Parameters
    ----------
    df : DataFrame
    treatment : str
        Binary treatment column.
    distance : str or array-like
        Column name, or values aligned with ``df`` (e.g. propensity scores).
    ratio : int
        Controls per treated unit (k in 1:k matching).
    replace : bool
        Allow a control to be reused for several treated units.
    caliper : float, optional
        Maximum admissible distance.
    std_caliper : bool
        Interpret ``caliper`` in standard deviations of the distance.
    order : {"largest", "smallest", "random", "data"}
        Order in which treated units pick their matches.
    discard : {"none", "treated", "control", "both"}
        Common-support restriction applied before matching.
    seed : int, optional
        Seed for ``order="random"``.

    Returns
    -------
    dict with keys:
        method, estimand, treat, distance, weights, subclass, matched,
        discarded, match_matrix ({treated position: [control positions]}),
        caliper (absolute width or None), ratio, replace, data
    """
    if ratio < 1:
        raise ValueError("ratio must be >= 1")
    treat, dist = _inputs(df, treatment, distance)
    keep = common_support(dist, treat, discard)
    width = _caliper_width(dist, caliper, std_caliper)

    t_idx = np.flatnonzero(treat & keep)
    c_idx = np.flatnonzero(~treat & keep)
    available = np.ones(len(c_idx), dtype=bool)
    matches = {i: [] for i in t_idx}
    order_idx = _order_treated(dist, t_idx, order, seed)
    active = set(t_idx)

    # MatchIt-style rounds: every treated unit gets its r-th match before
    # anyone gets an (r+1)-th.
    for _ in range(ratio):
        for i in order_idx:
            if i not in active:
                continue
            gap = np.abs(dist[c_idx] - dist[i])
            cand = available.copy()
            if replace:
                cand[:] = True
                taken = np.isin(c_idx, matches[i])
                cand &= ~taken
            if width is not None:
                cand &= gap <= width
            if not cand.any():
                active.discard(i)
                continue
            j = np.flatnonzero(cand)[np.argmin(gap[cand])]
            matches[i].append(c_idx[j])
            if not replace:
                available[j] = False

    matches = {i: m for i, m in matches.items() if m}
    unmatched_t = len(t_idx) - len(matches)
    if unmatched_t:
        warnings.warn(f"{unmatched_t} treated units had no admissible match")

    n = len(df)
    weights = np.zeros(n)
    subclass = np.full(n, np.nan)
    for s, (i, ctrls) in enumerate(sorted(matches.items())):
        weights[i] = 1.0
        for c in ctrls:
            weights[c] += 1.0 / len(ctrls)
        if not replace:
            subclass[i] = s + 1
            subclass[ctrls] = s + 1

    matched = weights > 0
    weights = _normalize(weights, treat, matched)

    return dict(
        method="nearest",
        estimand="ATT",
        treatment=treatment,
        treat=treat,
        distance=dist,
        weights=weights,
        subclass=subclass,
        matched=matched,
        discarded=~keep,
        match_matrix=matches,
        caliper=width,
        ratio=ratio,
        replace=replace,
        data=df,
    )


def _edge_cover(D):
    """
    Minimum-weight edge cover of a complete bipartite graph with costs D
    (inf marks forbidden edges). Every row and column must have at least
    one finite entry. Returns a list of (row, col) edges forming stars.
    """
    mu_r = D.min(axis=1)
    mu_c = D.min(axis=0)
    reduced = D - mu_r[:, None] - mu_c[None, :]
    savings = np.where(np.isfinite(reduced), np.minimum(reduced, 0.0), 0.0)

    rows, cols = linear_sum_assignment(savings)
    edges = {(r, c) for r, c in zip(rows, cols) if savings[r, c] < 0}

    covered_r = {r for r, _ in edges}
    covered_c = {c for _, c in edges}
    for r in range(D.shape[0]):
        if r not in covered_r:
            edges.add((r, int(np.argmin(D[r]))))
    for c in range(D.shape[1]):
        if c not in covered_c:
            edges.add((int(np.argmin(D[:, c])), c))

    # Zero-cost ties can leave paths of length three; dropping the middle
    # edge keeps a cover without raising the cost.
    deg_r = np.bincount([r for r, _ in edges], minlength=D.shape[0])
    deg_c = np.bincount([c for _, c in edges], minlength=D.shape[1])
    for r, c in sorted(edges, key=lambda e: -D[e]):
        if deg_r[r] > 1 and deg_c[c] > 1:
            edges.discard((r, c))
            deg_r[r] -= 1
            deg_c[c] -= 1
    return sorted(edges)


def full_matching(df, treatment, distance, caliper=None, std_caliper=True,
                  estimand="ATT", discard="none"):
    """
    Optimal full matching on a scalar distance.

    Parameters
    ----------
    df : DataFrame
    treatment : str
    distance : str or array-like
    caliper : float, optional
        Treated-control pairs further apart are never placed together;
        units with no admissible partner are left unmatched.
    std_caliper : bool
        Interpret ``caliper`` in standard deviations of the distance.
    estimand : {"ATT", "ATC", "ATE"}
        Determines the subclass weights.
    discard : {"none", "treated", "control", "both"}

    Returns
    -------
    dict with keys:
        method, estimand, treat, distance, weights, subclass, matched,
        discarded, edges (list of (treated position, control position)),
        total_distance, caliper, data
    """
    if estimand not in ESTIMANDS:
        raise ValueError(f"estimand must be one of {ESTIMANDS}, got {estimand!r}")
    treat, dist = _inputs(df, treatment, distance)
    keep = common_support(dist, treat, discard)
    width = _caliper_width(dist, caliper, std_caliper)

    t_idx = np.flatnonzero(treat & keep)
    c_idx = np.flatnonzero(~treat & keep)
    D = np.abs(dist[t_idx][:, None] - dist[c_idx][None, :])
    if width is not None:
        D = np.where(D <= width, D, np.inf)
        ok_t = np.isfinite(D).any(axis=1)
        ok_c = np.isfinite(D).any(axis=0)
        dropped = (~ok_t).sum() + (~ok_c).sum()
        if dropped:
            warnings.warn(f"{dropped} units had no partner within the caliper")
        t_idx, c_idx = t_idx[ok_t], c_idx[ok_c]
        D = D[np.ix_(ok_t, ok_c)]
    if len(t_idx) == 0 or len(c_idx) == 0:
        raise ValueError("No treated-control pairs left to match")

    local = _edge_cover(D)
    n_t = len(t_idx)
    rows = [r for r, _ in local]
    cols = [n_t + c for _, c in local]
    graph = coo_matrix((np.ones(len(local)), (rows, cols)),
                       shape=(n_t + len(c_idx),) * 2)
    _, labels = connected_components(graph, directed=False)

    n = len(df)
    subclass = np.full(n, np.nan)
    subclass[t_idx] = labels[:n_t] + 1
    subclass[c_idx] = labels[n_t:] + 1

    edges = [(int(t_idx[r]), int(c_idx[c])) for r, c in local]
    weights = match_weights(treat, subclass, estimand)

    return dict(
        method="full",
        estimand=estimand,
        treatment=treatment,
        treat=treat,
        distance=dist,
        weights=weights,
        subclass=subclass,
        matched=~np.isnan(subclass),
        discarded=~keep,
        edges=edges,
        total_distance=float(sum(D[r, c] for r, c in local)),
        caliper=width,
        data=df,
    )


def match_data(result):
    """
    Matched rows with ``weights``, ``subclass`` and ``distance`` columns.
    """
    out = result["data"].copy()
    out["distance"] = result["distance"]
    out["weights"] = result["weights"]
    out["subclass"] = result["subclass"]
    return out[result["matched"]]


def sample_sizes(result):
    """
    Sample-size table (control / treated columns) as MatchIt reports it.

    The effective sample size is (sum w)^2 / sum w^2 over matched units.
    """
    treat, w = result["treat"], result["weights"]
    matched, discarded = result["matched"], result["discarded"]
    rows = {}
    for label, grp in (("Control", ~treat), ("Treated", treat)):
        wm = w[grp & matched]
        ess = wm.sum() ** 2 / (wm ** 2).sum() if wm.size else 0.0
        rows[label] = {
            "All": int(grp.sum()),
            "Matched (ESS)": round(float(ess), 2),
            "Matched": int((grp & matched).sum()),
            "Unmatched": int((grp & ~matched & ~discarded).sum()),
            "Discarded": int((grp & discarded).sum()),
        }
    return pd.DataFrame(rows, dtype=object)


def estimate_effect(matched, outcome, treatment, covariates=(), se_type="cluster",
                    cluster="subclass", n_boot=999, seed=None, alpha=0.05):
    """
    Treatment effect from a weighted outcome regression on matched data.

    outcome ~ treatment (+ covariates), weighted by the matching weights.

    Parameters
    ----------
    matched : DataFrame
        Output of :func:`match_data`.
    se_type : {"cluster", "HC0", "HC1", "HC2", "HC3", "classical", "bootstrap"}
        "cluster" clusters on ``cluster`` (the subclass). Matching with
        replacement has no subclasses, so it falls back to HC1.
        "bootstrap" resamples whole subclasses.

    Returns
    -------
    dict with keys:
        estimate, se, t_stat, p_value, ci_lo, ci_hi, n, n_clusters,
        se_type, regression
    """
    regressors = [treatment] + list(covariates)
    clustered = se_type in ("cluster", "bootstrap")
    if clustered and matched[cluster].isna().all():
        warnings.warn("No subclasses (matching with replacement); using HC1 SEs")
        se_type = "HC1"
        clustered = False

    fit_se = "cluster" if clustered else se_type
    res = regress(matched, outcome, regressors, weights="weights",
                  se_type=fit_se, cluster=cluster if clustered else None,
                  alpha=alpha)
    out = dict(
        estimate=res["params"][treatment],
        se=res["bse"][treatment],
        t_stat=res["tvalues"][treatment],
        p_value=res["pvalues"][treatment],
        ci_lo=res["conf_int"].loc[treatment, "ci_lo"],
        ci_hi=res["conf_int"].loc[treatment, "ci_hi"],
        n=res["nobs"],
        n_clusters=res["n_clusters"],
        se_type=se_type,
        regression=res,
    )

    if se_type == "bootstrap":
        frame = matched.reset_index(drop=True)

        def _att(idx):
            return regress(frame.iloc[idx], outcome, regressors,
                           weights="weights")["params"][treatment]

        boot = cluster_bootstrap(frame[cluster].values, _att, n_boot=n_boot,
                                 seed=seed, alpha=alpha)
        out.update(se=boot["se"], ci_lo=boot["ci_lo"], ci_hi=boot["ci_hi"],
                   t_stat=out["estimate"] / boot["se"],
                   p_value=2 * stats.norm.sf(abs(out["estimate"] / boot["se"])),
                   boot=boot)
    return out
