"""
Regression Discontinuity Design (RDD)

Sharp and fuzzy RDD by kernel-weighted local polynomial regression,
the Imbens-Kalyanaraman (2012) plug-in bandwidth, a bootstrap
bias-corrected estimate, the McCrary-style density check and the
binned means used for RD plots.
"""

import warnings

import numpy as np
import pandas as pd
from scipy import stats
from scipy.integrate import quad

from .utils import ols_fit, add_const, wls_fit, t_inference
from .heteroskedasticity import hc_cov
from .bootstrap import bootstrap_statistic

KERNELS = ("triangular", "epanechnikov", "uniform")


def kernel_weights(u, kernel="triangular"):
    """
    Kernel weights for scaled distances u = (x - c) / h, zero for |u| > 1.
    """
    if kernel not in KERNELS:
        raise ValueError(f"kernel must be one of {KERNELS}, got {kernel!r}")
    a = np.abs(np.asarray(u, dtype=float))
    inside = a <= 1
    if kernel == "triangular":
        return np.where(inside, 1 - a, 0.0)
    if kernel == "epanechnikov":
        return np.where(inside, 0.75 * (1 - a ** 2), 0.0)
    return np.where(inside, 0.5, 0.0)


def boundary_constant(kernel="triangular"):
    """
    Bandwidth constant C_K of the local-linear boundary estimator.

    With the equivalent kernel K*(u) = (mu2 - mu1 u) K(u) / (mu0 mu2 - mu1^2)
    on [0, 1], C_K = ( int K*^2 / (4 * (0.5 int u^2 K*)^2) )^{1/5}.
    Triangular gives 3.4375, the value tabulated by Imbens & Kalyanaraman.
    """
    K = lambda u: float(kernel_weights(u, kernel))
    mu = [quad(lambda u, j=j: u ** j * K(u), 0, 1)[0] for j in range(3)]
    det = mu[0] * mu[2] - mu[1] ** 2
    kstar = lambda u: (mu[2] - mu[1] * u) * K(u) / det
    bias = 0.5 * quad(lambda u: u ** 2 * kstar(u), 0, 1)[0]
    var = quad(lambda u: kstar(u) ** 2, 0, 1)[0]
    return (var / (4 * bias ** 2)) ** 0.2


def _design(xc, order, treated=None):
    """[1, T, xc, T*xc, xc^2, T*xc^2, ...] for a sharp local fit."""
    cols = [np.ones(len(xc))]
    if treated is not None:
        cols.append(treated)
    for p in range(1, order + 1):
        cols.append(xc ** p)
        if treated is not None:
            cols.append(treated * xc ** p)
    return np.column_stack(cols)


def rot_bandwidth(x, cutoff=0.0):
    """Rule-of-thumb bandwidth 1.84 * sd(x) * n^(-1/5)."""
    x = np.asarray(x, dtype=float)
    return 1.84 * np.std(x, ddof=1) * len(x) ** (-0.2)


def ik_bandwidth(y, running_var, cutoff=0.0, kernel="triangular"):
    """
    Imbens & Kalyanaraman (2012) MSE-optimal bandwidth for sharp RDD.

    Step 1: pilot bandwidth h1 = 1.84 S_x N^(-1/5); density f(c) and
            conditional variance sigma^2(c) from the observations within h1.
    Step 2: third derivative from a global cubic with a jump (data between
            the medians of each side); pilot bandwidths h2 for local
            quadratic fits giving the second derivatives m2 on each side,
            plus the regularization terms r = 2160 sigma^2 / (N_h2 h2^4).
    Step 3: h = C_K [ 2 sigma^2 / (f(c) ((m2+ - m2-)^2 + r+ + r-)) ]^(1/5) N^(-1/5)

    Returns
    -------
    float
    """
    y = np.asarray(y, dtype=float)
    x = np.asarray(running_var, dtype=float)
    N = len(x)
    xc = x - cutoff
    left, right = xc < 0, xc >= 0
    if left.sum() < 5 or right.sum() < 5:
        raise ValueError("Need at least 5 observations on each side of the cutoff")

    h1 = 1.84 * np.std(x, ddof=1) * N ** (-0.2)
    in_l = left & (xc >= -h1)
    in_r = right & (xc <= h1)
    n_l, n_r = in_l.sum(), in_r.sum()
    if n_l < 2 or n_r < 2:
        raise ValueError("Too few observations within the pilot bandwidth")
    f_c = (n_l + n_r) / (2 * N * h1)
    sigma2 = (((y[in_l] - y[in_l].mean()) ** 2).sum()
              + ((y[in_r] - y[in_r].mean()) ** 2).sum()) / (n_l + n_r)

    med_l, med_r = np.median(xc[left]), np.median(xc[right])
    mid = (xc >= med_l) & (xc <= med_r)
    Xg = np.column_stack([np.ones(mid.sum()), right[mid].astype(float),
                          xc[mid], xc[mid] ** 2, xc[mid] ** 3])
    m3 = 6 * ols_fit(Xg, y[mid])[0][4]

    n_left_all, n_right_all = left.sum(), right.sum()
    base = sigma2 / (f_c * max(m3 ** 2, 0.01))
    h2_l = 3.56 * base ** (1 / 7) * n_left_all ** (-1 / 7)
    h2_r = 3.56 * base ** (1 / 7) * n_right_all ** (-1 / 7)

    def _curvature(side, h2):
        sel = side & (np.abs(xc) <= h2)
        if sel.sum() < 3:
            sel = side
        X2 = _design(xc[sel], 2)
        return 2 * ols_fit(X2, y[sel])[0][2], sel.sum()

    m2_l, n2_l = _curvature(left, h2_l)
    m2_r, n2_r = _curvature(right, h2_r)
    r_l = 2160 * sigma2 / (n2_l * h2_l ** 4)
    r_r = 2160 * sigma2 / (n2_r * h2_r ** 4)

    h = boundary_constant(kernel) * (
        2 * sigma2 / (f_c * ((m2_r - m2_l) ** 2 + r_l + r_r))
    ) ** 0.2 * N ** (-0.2)
    if not np.isfinite(h) or h <= 0:
        raise ValueError("IK bandwidth computation failed")
    return float(h)


def _resolve_bandwidth(y, x, cutoff, bandwidth, kernel):
    if bandwidth == "ik":
        return ik_bandwidth(y, x, cutoff, kernel)
    if bandwidth == "rot":
        return rot_bandwidth(x, cutoff)
    if isinstance(bandwidth, str):
        raise ValueError(f"Unknown bandwidth selector {bandwidth!r}")
    if bandwidth <= 0:
        raise ValueError("bandwidth must be positive")
    return float(bandwidth)


def estimate_rdd(y, running_var, cutoff=0.0, bandwidth="ik", kernel="triangular",
                 order=1, alpha=0.05):
    """
    Sharp RDD via kernel-weighted local polynomial regression.

    Within the window |x - c| <= h, fits
        y = a + tau*T + sum_p [b_p (x-c)^p + g_p T (x-c)^p] + eps,
    T = 1{x >= c}, weighting by K((x - c)/h). tau_hat is the jump in the
    regression function at the cutoff. SEs are HC1.

    Parameters
    ----------
    y : ndarray, shape (n,)
        Outcome.
    running_var : ndarray, shape (n,)
        Running (forcing) variable.
    cutoff : float
        Treatment assignment threshold.
    bandwidth : float or {"ik", "rot"}
        Half-width of the estimation window, or a selector.
    kernel : {"triangular", "epanechnikov", "uniform"}
    order : int
        Polynomial order (1 = local linear).
    alpha : float

    Returns
    -------
    dict with keys:
        tau, se, t_stat, p_value, ci_lo, ci_hi : jump estimate and inference
        beta        : full coefficient vector
        bandwidth, kernel, order
        n_below, n_above : observations with positive weight on each side
        intercept_below, intercept_above : fitted values at the cutoff
        residuals
    """
    y = np.asarray(y, dtype=float)
    x = np.asarray(running_var, dtype=float)
    ok = ~(np.isnan(y) | np.isnan(x))
    y, x = y[ok], x[ok]
    h = _resolve_bandwidth(y, x, cutoff, bandwidth, kernel)

    xc = x - cutoff
    w = kernel_weights(xc / h, kernel)
    m = w > 0
    treated = (xc[m] >= 0).astype(float)
    n_above, n_below = int(treated.sum()), int((1 - treated).sum())
    if min(n_above, n_below) < order + 2:
        raise ValueError(f"Too few observations within bandwidth {h:.3f} "
                         f"({n_below} below, {n_above} above)")

    X = _design(xc[m], order, treated)
    b, _, e, _ = wls_fit(X, y[m], w[m])
    cov = hc_cov(X, e, "HC1", w[m])
    se = np.sqrt(np.diag(cov))
    inf = t_inference(b[1:2], se[1:2], None, alpha)

    return dict(
        tau=b[1],
        se=se[1],
        t_stat=inf["t"][0],
        p_value=inf["p_value"][0],
        ci_lo=inf["ci_lo"][0],
        ci_hi=inf["ci_hi"][0],
        beta=b,
        bandwidth=h,
        kernel=kernel,
        order=order,
        n_below=n_below,
        n_above=n_above,
        intercept_below=b[0],
        intercept_above=b[0] + b[1],
        residuals=e,
    )


def fuzzy_rdd(y, treatment, running_var, cutoff=0.0, bandwidth="ik",
              kernel="triangular", alpha=0.05):
    """
    Fuzzy RDD: local-linear Wald / 2SLS estimator.

    The crossing indicator Z = 1{x >= c} instruments actual treatment D:
        tau = jump in E[y|x] / jump in E[D|x]
    estimated as kernel-weighted 2SLS of y on [1, D, xc, Z*xc] with
    instruments [1, Z, xc, Z*xc], HC1 sandwich SEs.

    Returns
    -------
    dict with keys:
        tau, se, t_stat, p_value, ci_lo, ci_hi,
        first_stage (jump in D), first_stage_se, first_stage_F,
        reduced_form (jump in y), bandwidth, kernel, n_below, n_above
    """
    y = np.asarray(y, dtype=float)
    d = np.asarray(treatment, dtype=float)
    x = np.asarray(running_var, dtype=float)
    ok = ~(np.isnan(y) | np.isnan(d) | np.isnan(x))
    y, d, x = y[ok], d[ok], x[ok]
    h = _resolve_bandwidth(y, x, cutoff, bandwidth, kernel)

    xc = x - cutoff
    w = kernel_weights(xc / h, kernel)
    m = w > 0
    z = (xc[m] >= 0).astype(float)
    if min(z.sum(), (1 - z).sum()) < 3:
        raise ValueError(f"Too few observations within bandwidth {h:.3f}")
    wm, ym, dm, xm = w[m], y[m], d[m], xc[m]

    first = estimate_rdd(d, x, cutoff, h, kernel, 1, alpha)
    reduced = estimate_rdd(y, x, cutoff, h, kernel, 1, alpha)
    if abs(first["tau"]) < 1e-8:
        raise ValueError("No first-stage discontinuity in treatment at the cutoff")

    Z = np.column_stack([np.ones(len(z)), z, xm, z * xm])
    X = np.column_stack([np.ones(len(z)), dm, xm, z * xm])
    ZWX_inv = np.linalg.inv(Z.T @ (X * wm[:, None]))
    beta = ZWX_inv @ (Z.T @ (wm * ym))
    e = ym - X @ beta
    n, k = X.shape
    meat = (Z.T * (wm * e) ** 2) @ Z
    cov = ZWX_inv @ meat @ ZWX_inv.T * n / (n - k)
    se = np.sqrt(np.diag(cov))
    inf = t_inference(beta[1:2], se[1:2], None, alpha)

    if first["t_stat"] ** 2 < 10:
        warnings.warn(f"Weak first stage (F = {first['t_stat'] ** 2:.1f})")

    return dict(
        tau=beta[1],
        se=se[1],
        t_stat=inf["t"][0],
        p_value=inf["p_value"][0],
        ci_lo=inf["ci_lo"][0],
        ci_hi=inf["ci_hi"][0],
        first_stage=first["tau"],
        first_stage_se=first["se"],
        first_stage_F=first["t_stat"] ** 2,
        reduced_form=reduced["tau"],
        bandwidth=h,
        kernel=kernel,
        n_below=int((1 - z).sum()),
        n_above=int(z.sum()),
    )


def mccrary_density_test(running_var, cutoff, bandwidth=10, alpha=0.001):
    """
    McCrary (2008) style density check for manipulation at the cutoff.

    Compares counts in equal-width windows on each side of the cutoff;
    under no bunching they are equal in expectation.

    Parameters
    ----------
    running_var : ndarray, shape (n,)
        Running variable.
    cutoff : float
        Cutoff value.
    bandwidth : float
        Window width for counting on each side.
    alpha : float
        Significance level.

    Returns
    -------
    dict with keys:
        z_stat    : z-test statistic
        p_value   : two-sided p-value
        reject    : bool, True if p < alpha
        n_below   : count below cutoff in window
        n_above   : count above cutoff in window
    """
    running_var = np.asarray(running_var, dtype=float)
    below = np.sum((running_var >= cutoff - bandwidth) & (running_var < cutoff))
    above = np.sum((running_var >= cutoff) & (running_var < cutoff + bandwidth))
    if above + below == 0:
        raise ValueError("No observations within the density window")
    z_stat = (above - below) / np.sqrt(above + below)
    p_value = 2 * stats.norm.sf(abs(z_stat))

    return dict(
        z_stat=z_stat,
        p_value=p_value,
        reject=p_value < alpha,
        n_below=int(below),
        n_above=int(above),
    )


def bias_corrected_rdd(y, running_var, cutoff, bandwidth, kernel="triangular",
                       n_boot=500, seed=None, alpha=0.05):
    """
    Bias-corrected RDD estimate using local quadratic fits on each side.

    Approximates the Calonico, Cattaneo & Titiunik (2014) approach: the
    quadratic term absorbs the leading bias of the local-linear fit, and
    the SE is bootstrapped over observations in the window.

    Returns
    -------
    dict with keys:
        tau_bc  : bias-corrected estimate
        se_bc   : bootstrap SE
        ci_lo   : lower percentile CI bound
        ci_hi   : upper percentile CI bound
        n_failed: bootstrap draws with too few points on a side
    """
    y = np.asarray(y, dtype=float)
    x = np.asarray(running_var, dtype=float)
    xc = x - cutoff
    w = kernel_weights(xc / bandwidth, kernel)
    mask = w > 0
    xw, yw, ww = xc[mask], y[mask], w[mask]

    def _tau(idx):
        xb, yb, wb = xw[idx], yw[idx], ww[idx]
        tr = (xb >= 0).astype(float)
        if tr.sum() < 3 or (1 - tr).sum() < 3:
            raise ValueError("too few points on one side")
        return wls_fit(_design(xb, 2, tr), yb, wb)[0][1]

    tau_bc = _tau(np.arange(len(yw)))
    boot = bootstrap_statistic(len(yw), _tau, n_boot=n_boot, seed=seed, alpha=alpha)

    return dict(
        tau_bc=tau_bc,
        se_bc=boot["se"],
        ci_lo=boot["ci_lo"],
        ci_hi=boot["ci_hi"],
        n_failed=boot["n_failed"],
    )


def global_rdd_fit(y, running_var, cutoff, order=1):
    """
    Global polynomial fit on each side of the cutoff (full sample).

    Useful for the full-sample visualization.

    Returns
    -------
    dict with keys:
        beta_below, beta_above : coefficients in (x - c) on each side
        jump : estimated discontinuity at the cutoff
    """
    y = np.asarray(y, dtype=float)
    xc = np.asarray(running_var, dtype=float) - cutoff
    below = xc < 0
    b_bel = ols_fit(_design(xc[below], order), y[below])[0]
    b_abo = ols_fit(_design(xc[~below], order), y[~below])[0]
    return dict(beta_below=b_bel, beta_above=b_abo, jump=b_abo[0] - b_bel[0])


def bin_means(y, running_var, cutoff, n_bins=20, bin_width=None):
    """
    Binned means for an RD plot; bins never straddle the cutoff.

    Parameters
    ----------
    n_bins : int
        Bins per side (ignored when ``bin_width`` is given).
    bin_width : float, optional

    Returns
    -------
    DataFrame with columns bin_mid, mean, n, side ("below" / "above").
    """
    y = np.asarray(y, dtype=float)
    xc = np.asarray(running_var, dtype=float) - cutoff
    frames = []
    for side, sel in (("below", xc < 0), ("above", xc >= 0)):
        xs, ys = xc[sel], y[sel]
        if len(xs) == 0:
            continue
        lo, hi = (xs.min(), 0.0) if side == "below" else (0.0, xs.max())
        if bin_width is not None:
            k = max(int(np.ceil((hi - lo) / bin_width)), 1)
            edges = (np.arange(k + 1) * bin_width + lo if side == "above"
                     else hi - np.arange(k + 1)[::-1] * bin_width)
        else:
            edges = np.linspace(lo, hi, n_bins + 1)
        codes = np.clip(np.searchsorted(edges, xs, side="right") - 1, 0, len(edges) - 2)
        g = pd.DataFrame({"bin": codes, "y": ys}).groupby("bin")["y"].agg(["mean", "size"])
        mids = (edges[:-1] + edges[1:]) / 2
        frames.append(pd.DataFrame({
            "bin_mid": mids[g.index] + cutoff,
            "mean": g["mean"].values,
            "n": g["size"].values,
            "side": side,
        }))
    return pd.concat(frames, ignore_index=True)


def bandwidth_sensitivity(y, running_var, cutoff, bandwidths, kernel="triangular",
                          order=1):
    """Sharp RDD estimate for each bandwidth in ``bandwidths``."""
    rows = []
    for h in bandwidths:
        r = estimate_rdd(y, running_var, cutoff, h, kernel, order)
        rows.append(dict(bandwidth=h, tau=r["tau"], se=r["se"], ci_lo=r["ci_lo"],
                         ci_hi=r["ci_hi"], n=r["n_below"] + r["n_above"]))
    return pd.DataFrame(rows)


def placebo_cutoffs(y, running_var, true_cutoff, placebos, bandwidth,
                    kernel="triangular"):
    """
    Sharp RDD estimates at fake cutoffs, each using only the data on the
    same side of the true cutoff. Jumps there should be near zero.
    """
    y = np.asarray(y, dtype=float)
    x = np.asarray(running_var, dtype=float)
    rows = []
    for c in placebos:
        side = x < true_cutoff if c < true_cutoff else x >= true_cutoff
        try:
            r = estimate_rdd(y[side], x[side], c, bandwidth, kernel)
        except ValueError as e:
            warnings.warn(f"Placebo cutoff {c}: {e}")
            continue
        rows.append(dict(cutoff=c, tau=r["tau"], se=r["se"], p_value=r["p_value"]))
    return pd.DataFrame(rows)
