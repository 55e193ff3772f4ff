import os
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from matplotlib.lines import Line2D

from pca import explained_variance

COLORS = ["#345995", "#B80C09", "#D4AF37", "#2E6F40"]


def _finish(fig, fig_path=None, dpi=150):
    sns.despine(fig=fig)
    fig.tight_layout()
    if fig_path:
        parent = os.path.dirname(os.path.abspath(fig_path))
        os.makedirs(parent, exist_ok=True)
        fig.savefig(fig_path, dpi=dpi, bbox_inches="tight")
    return fig


def _arrow(ax, x0, y0, dx, dy, color, label=None):
    ax.annotate(
        "", xy=(x0 + dx, y0 + dy), xytext=(x0, y0),
        arrowprops=dict(arrowstyle="->", color=color, lw=2),
    )
    if label is not None:
        ax.text(x0 + 1.08 * dx, y0 + 1.08 * dy, label, color=color,
                fontsize=10, ha="center", va="center", fontweight="bold")


def plot_pair_with_eigenvectors(scaled, x, y, eigenvalues=None, eigenvectors=None,
                                fig_path=None, dpi=150):
    """
    Scatter of two (standardised) variables with the eigenvector directions
    drawn from the data centroid, each scaled by sqrt(eigenvalue).
    """
    for c in (x, y):
        if c not in scaled.columns:
            raise KeyError(f"Column '{c}' not found in DataFrame")
    fig, ax = plt.subplots(figsize=(6, 6))
    ax.scatter(scaled[x], scaled[y], s=25, color="0.4", alpha=0.7, edgecolor="k", linewidth=0.3)

    if eigenvectors is not None:
        x0, y0 = float(scaled[x].mean()), float(scaled[y].mean())
        for j, pc in enumerate(eigenvectors.columns):
            length = np.sqrt(max(float(eigenvalues[pc]), 0.0)) if eigenvalues is not None else 1.0
            dx = float(eigenvectors.loc[x, pc]) * length
            dy = float(eigenvectors.loc[y, pc]) * length
            _arrow(ax, x0, y0, dx, dy, COLORS[j % len(COLORS)], label=pc)

    ax.set_xlabel(x)
    ax.set_ylabel(y)
    ax.set_aspect("equal", adjustable="datalim")
    ax.grid(which='major', linestyle='--', alpha=0.2)
    return _finish(fig, fig_path, dpi)


def plot_scree(eigenvalues, fig_path=None, dpi=150):
    """
    a. eigenvalues with the Kaiser line at 1; b. proportion and cumulative
    proportion of variance explained.
    """
    ev = explained_variance(eigenvalues)
    pos = np.arange(len(ev))

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(10, 4))

    ax1.plot(pos, ev["eigenvalue"], marker="o", color=COLORS[0], lw=2)
    ax1.axhline(1.0, linestyle="--", color=COLORS[1], alpha=0.7)
    ax1.set_xticks(pos)
    ax1.set_xticklabels(ev.index)
    ax1.set_ylabel("Eigenvalue")
    ax1.set_title('a.', loc='left', fontweight='bold', fontsize=15)
    ax1.grid(which='major', linestyle='--', alpha=0.2)

    ax2.bar(pos, ev["proportion"], color=COLORS[0], edgecolor="k", alpha=0.7)
    ax2.plot(pos, ev["cumulative"], marker="o", color=COLORS[2], lw=2)
    ax2.set_xticks(pos)
    ax2.set_xticklabels(ev.index)
    ax2.set_ylim(0, 1.05)
    ax2.set_ylabel("Proportion of variance")
    ax2.set_title('b.', loc='left', fontweight='bold', fontsize=15)
    ax2.grid(which='major', linestyle='--', alpha=0.2)
    ax2.legend(
        handles=[
            Line2D([0], [0], color=COLORS[0], lw=6, alpha=0.7, label="Proportion"),
            Line2D([0], [0], color=COLORS[2], lw=2, marker="o", label="Cumulative"),
        ],
        loc="center right", frameon=True, edgecolor="k",
    )
    return _finish(fig, fig_path, dpi)


def plot_biplot(result, pcs=(1, 2), fig_path=None, dpi=150):
    """
    Component scores with variable loadings overlaid as arrows.
    """
    cx, cy = f"PC{pcs[0]}", f"PC{pcs[1]}"
    for c in (cx, cy):
        if c not in result.x.columns:
            raise KeyError(f"Component '{c}' not available (have {list(result.x.columns)})")
    scores = result.x
    rot = result.rotation

    fig, ax = plt.subplots(figsize=(7, 6))
    ax.scatter(scores[cx], scores[cy], s=20, color=COLORS[0], alpha=0.6, edgecolor="k", linewidth=0.3)

    reach = float(np.nanmax(np.abs(scores[[cx, cy]].to_numpy()))) if len(scores) else 1.0
    longest = float(np.nanmax(np.abs(rot[[cx, cy]].to_numpy()))) or 1.0
    k = 0.8 * reach / longest
    for var in rot.index:
        _arrow(ax, 0.0, 0.0, k * float(rot.loc[var, cx]), k * float(rot.loc[var, cy]),
               COLORS[1], label=var)

    prop = result.summary().loc["Proportion of Variance"]
    ax.axhline(0, color="0.6", lw=0.8)
    ax.axvline(0, color="0.6", lw=0.8)
    ax.set_xlabel(f"{cx} ({100 * prop[cx]:.1f}%)")
    ax.set_ylabel(f"{cy} ({100 * prop[cy]:.1f}%)")
    ax.grid(which='major', linestyle='--', alpha=0.2)
    return _finish(fig, fig_path, dpi)


def plot_prevalence_bars(table, x, hue=None, y="prevalence", fig_path=None, dpi=150):
    """
    Bar chart of prevalence by `x` (and `hue`), from a long-format table such
    as descriptive.stratified_prevalence(). Wilson error bars are drawn when
    there is no hue and the table has lower/upper columns.
    """
    data = table.reset_index() if x not in table.columns else table.copy()
    for c in [x, y] + ([hue] if hue else []):
        if c not in data.columns:
            raise KeyError(f"Column '{c}' not found in table")
    data[x] = data[x].astype(str)
    if hue:
        data[hue] = data[hue].astype(str)
    order = list(dict.fromkeys(data[x]))

    fig, ax = plt.subplots(figsize=(7, 4.5))
    palette = COLORS[:data[hue].nunique()] if hue and data[hue].nunique() <= len(COLORS) else None
    sns.barplot(
        data=data, x=x, y=y, hue=hue, order=order, ax=ax,
        errorbar=None, palette=palette,
        color=None if hue else COLORS[0],
        edgecolor="k", alpha=0.8,
    )
    if hue is None and {"lower", "upper"} <= set(data.columns) and data[x].is_unique:
        d = data.set_index(x).loc[order]
        ax.errorbar(
            np.arange(len(order)), d[y],
            yerr=[np.clip(d[y] - d["lower"], 0, None), np.clip(d["upper"] - d[y], 0, None)],
            fmt="none", ecolor="k", capsize=4,
        )
    ax.set_ylabel("Prevalence")
    ax.set_xlabel(x)
    ax.grid(which='major', axis='y', linestyle='--', alpha=0.2)
    if hue:
        ax.legend(title=hue, frameon=True, edgecolor="k")
    return _finish(fig, fig_path, dpi)


def plot_odds_ratios(or_table, drop_intercept=True, fig_path=None, dpi=150):
    """
    Forest plot of odds ratios with confidence limits on a log axis.
    """
    t = or_table.copy()
    if drop_intercept:
        t = t.drop(index="(Intercept)", errors="ignore")
    for c in ("OR", "lower", "upper"):
        if c not in t.columns:
            raise KeyError(f"Column '{c}' not found in table")
    if t.empty:
        raise ValueError("No odds ratios to plot.")
    pos = np.arange(len(t))[::-1]

    fig, ax = plt.subplots(figsize=(7, 0.6 * len(t) + 1.5))
    ax.errorbar(
        t["OR"], pos,
        xerr=[np.clip(t["OR"] - t["lower"], 0, None), np.clip(t["upper"] - t["OR"], 0, None)],
        fmt="o", color=COLORS[0], ecolor="k", capsize=3, markersize=7,
    )
    ax.axvline(1.0, linestyle="--", color=COLORS[1], alpha=0.7)
    ax.set_xscale("log")
    ax.set_yticks(pos)
    ax.set_yticklabels([str(i) for i in t.index])
    ax.set_xlabel("Odds ratio (log scale)")
    ax.grid(which='major', axis='x', linestyle='--', alpha=0.2)
    return _finish(fig, fig_path, dpi)
