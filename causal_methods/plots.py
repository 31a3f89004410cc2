"""
Workshop figures.

Every function builds a matplotlib figure in the shared house style and
returns it; :func:`causal_methods.report.savefig` writes and closes it.
"""

import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from .rdd import bin_means, global_rdd_fit

# -- Style --
plt.rcParams.update({
    "figure.facecolor": "#FAFAFA", "axes.facecolor": "#FAFAFA",
    "axes.edgecolor": "#333", "axes.labelcolor": "#222",
    "xtick.color": "#555", "ytick.color": "#555", "text.color": "#222",
    "font.size": 10, "axes.titlesize": 12, "axes.titleweight": "bold",
    "axes.grid": True, "grid.alpha": 0.25, "grid.color": "#AAA", "figure.dpi": 140,
})
CB, CO, CG, CR, CP, CY = "#2171B5", "#E6550D", "#31A354", "#DE2D26", "#756BB1", "#888"


def plot_group_means(summary, title="Group means", ylabel="Outcome"):
    """
    Bar chart of group means with 95% CIs.

    ``summary`` is the frame from :func:`causal_methods.ttest.summarize_by`
    (columns mean, sd, n; one row per group).
    """
    half = 1.96 * summary["sd"] / np.sqrt(summary["n"])
    labels = [str(i) for i in summary.index]
    fig, ax = plt.subplots(figsize=(6, 4.5))
    ax.bar(labels, summary["mean"], yerr=half, capsize=6,
           color=[CB, CO, CG, CP][:len(labels)], alpha=.8, edgecolor="white")
    for i, (m, n) in enumerate(zip(summary["mean"], summary["n"])):
        ax.text(i, m / 2, f"{m:.2f}\n(n={int(n)})", ha="center", color="white",
                fontsize=9, fontweight="bold")
    ax.set_ylabel(ylabel); ax.set_title(title)
    fig.tight_layout()
    return fig


def plot_coefficients(results, term, labels=None, title=None):
    """Point estimates and CIs of one coefficient across several regressions."""
    labels = labels or [f"({i + 1})" for i in range(len(results))]
    est = np.array([r["params"][term] for r in results])
    lo = np.array([r["conf_int"].loc[term, "ci_lo"] for r in results])
    hi = np.array([r["conf_int"].loc[term, "ci_hi"] for r in results])
    ypos = np.arange(len(results))[::-1]

    fig, ax = plt.subplots(figsize=(7, 1.2 + 0.7 * len(results)))
    ax.errorbar(est, ypos, xerr=[est - lo, hi - est], fmt="o", color=CB,
                ms=8, capsize=5, lw=2)
    ax.axvline(0, color=CR, ls="--", lw=1.5)
    ax.set_yticks(ypos); ax.set_yticklabels(labels)
    ax.set_xlabel(f"Coefficient on {term} (95% CI)")
    ax.set_title(title or f"Estimates of {term}")
    fig.tight_layout()
    return fig


def plot_interaction(res, x_term, by_term, x_values=(0, 1), by_values=(0, 1),
                     x_labels=None, by_labels=None, ylabel="Predicted outcome"):
    """
    Predicted outcome for the 2x2 cells of a binary interaction, other
    regressors held at zero (relative to the intercept).
    """
    p = res["params"]
    inter = f"{x_term}:{by_term}"
    x_labels = x_labels or [str(v) for v in x_values]
    by_labels = by_labels or [f"{by_term}={v}" for v in by_values]

    fig, ax = plt.subplots(figsize=(6, 4.5))
    for b, lab, c in zip(by_values, by_labels, (CB, CO)):
        yhat = [p.get("const", 0.0) + p[x_term] * xv + p[by_term] * b
                + p.get(inter, 0.0) * xv * b for xv in x_values]
        ax.plot(x_labels, yhat, "o-", color=c, lw=2.5, ms=9, label=lab)
    ax.set_ylabel(ylabel); ax.set_xlabel(x_term)
    ax.set_title(f"Interaction {x_term} x {by_term}")
    ax.legend(fontsize=8)
    fig.tight_layout()
    return fig


def plot_propensity_overlap(ps, treat, weights=None, title="Propensity score overlap"):
    """Histograms of the score by group, optionally weighted by matching weights."""
    ps = np.asarray(ps, dtype=float)
    t = np.asarray(treat).astype(bool)
    bins = np.linspace(0, 1, 26)
    panels = [("Before matching", np.ones(len(ps)))]
    if weights is not None:
        panels.append(("After matching", np.asarray(weights, dtype=float)))

    fig, axes = plt.subplots(1, len(panels), figsize=(6 * len(panels), 4.5),
                             squeeze=False)
    for ax, (name, w) in zip(axes[0], panels):
        ax.hist(ps[~t], bins=bins, weights=w[~t], color=CB, alpha=.5,
                edgecolor="white", density=True, label="Control")
        ax.hist(ps[t], bins=bins, weights=w[t], color=CO, alpha=.5,
                edgecolor="white", density=True, label="Treated")
        ax.set_xlabel("Propensity score"); ax.set_ylabel("Density")
        ax.set_title(name); ax.legend(fontsize=8)
    fig.suptitle(title, fontsize=14, y=1.03)
    fig.tight_layout()
    return fig


def love_plot(balances, labels=None, threshold=0.1, title="Covariate balance"):
    """
    Absolute standardized mean differences per covariate for one or more
    balance tables (e.g. unadjusted, nearest, full).
    """
    labels = labels or [f"Sample {i + 1}" for i in range(len(balances))]
    covs = list(balances[0].index)
    ypos = np.arange(len(covs))[::-1]
    markers = ["o", "s", "^", "D"]

    fig, ax = plt.subplots(figsize=(7, 1.5 + 0.4 * len(covs)))
    for i, (bal, lab) in enumerate(zip(balances, labels)):
        smd = bal.reindex(covs)["std_mean_diff"].astype(float).abs()
        ax.scatter(smd, ypos, s=50, marker=markers[i % 4],
                   color=[CR, CB, CG, CP][i % 4], label=lab, zorder=3)
    ax.axvline(threshold, color=CY, ls="--", lw=1.5)
    ax.set_yticks(ypos); ax.set_yticklabels(covs)
    ax.set_xlabel("|Standardized mean difference|")
    ax.set_title(title); ax.legend(fontsize=8)
    fig.tight_layout()
    return fig


def plot_rdd(y, running_var, cutoff, rdd_result=None, n_bins=20, order=1,
             xlabel="Running var", ylabel="Outcome", title="Regression discontinuity"):
    """
    RD plot: binned means, global polynomial fits on each side and, when
    ``rdd_result`` is given, the local fit inside its bandwidth.
    """
    y = np.asarray(y, dtype=float)
    x = np.asarray(running_var, dtype=float)
    bins = bin_means(y, x, cutoff, n_bins=n_bins)
    fit = global_rdd_fit(y, x, cutoff, order=order)

    fig, ax = plt.subplots(figsize=(7.5, 5))
    for side, c in (("below", CB), ("above", CO)):
        b = bins[bins["side"] == side]
        ax.scatter(b["bin_mid"], b["mean"], s=30, color=c, alpha=.8,
                   edgecolors="none", label=f"Bin means ({side})")
    xb = np.linspace(x.min(), cutoff, 100)
    xa = np.linspace(cutoff, x.max(), 100)
    ax.plot(xb, np.polyval(fit["beta_below"][::-1], xb - cutoff), c=CB, lw=1.5, alpha=.6)
    ax.plot(xa, np.polyval(fit["beta_above"][::-1], xa - cutoff), c=CO, lw=1.5, alpha=.6)

    if rdd_result is not None and rdd_result["order"] == 1:
        h, b = rdd_result["bandwidth"], rdd_result["beta"]
        lo, hi = max(cutoff - h, x.min()), min(cutoff + h, x.max())
        xbl = np.linspace(lo, cutoff, 50); xal = np.linspace(cutoff, hi, 50)
        ax.plot(xbl, b[0] + b[2] * (xbl - cutoff), c=CB, lw=2.5)
        ax.plot(xal, (b[0] + b[1]) + (b[2] + b[3]) * (xal - cutoff), c=CO, lw=2.5)
        ax.axvspan(lo, hi, alpha=.07, color=CY)
        yl, yr = b[0], b[0] + b[1]
        ax.annotate("", xy=(cutoff, yr), xytext=(cutoff, yl),
                    arrowprops=dict(arrowstyle="<->", color=CR, lw=2.5))
        ax.text(cutoff + 0.02 * (x.max() - x.min()), (yl + yr) / 2,
                f"tau_hat={rdd_result['tau']:.2f}", fontsize=10, color=CR,
                fontweight="bold")
    ax.axvline(cutoff, color=CR, ls="--", lw=2, label=f"Cutoff={cutoff:g}")
    ax.set_xlabel(xlabel); ax.set_ylabel(ylabel); ax.set_title(title)
    ax.legend(fontsize=7)
    fig.tight_layout()
    return fig


def plot_bandwidth_sensitivity(table, chosen=None, title="Bandwidth sensitivity"):
    """Estimate and CI against bandwidth (frame from ``bandwidth_sensitivity``)."""
    fig, ax = plt.subplots(figsize=(7, 4.5))
    ax.fill_between(table["bandwidth"], table["ci_lo"], table["ci_hi"],
                    color=CB, alpha=.15, label="95% CI")
    ax.plot(table["bandwidth"], table["tau"], "o-", color=CB, lw=2, ms=6, label="tau_hat")
    ax.axhline(0, color=CY, lw=1)
    if chosen is not None:
        ax.axvline(chosen, color=CR, ls="--", lw=1.5, label=f"Selected h={chosen:.2f}")
    ax.set_xlabel("Bandwidth"); ax.set_ylabel("RDD estimate")
    ax.set_title(title); ax.legend(fontsize=8)
    fig.tight_layout()
    return fig
