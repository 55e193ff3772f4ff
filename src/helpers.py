# src/helpers.py
"""
General-purpose helpers shared across both labs.

This module centralizes reusable utilities that are agnostic to domain specifics:
- Liberal column detection and label normalisation.
- List/string coercions for config values.
- Filename suffix manipulation.
- Component naming and the eigenvector sign convention.
- Small distribution helpers (standard normal, chi-square) used for
  confidence intervals and p-values.

All functions are pure and side-effect free, facilitating reuse and unit testing.

IMPORTANT: This module does not import project-specific modules to avoid circular
dependencies. Callers must supply any configuration defaults they need.
"""
from __future__ import annotations

import os
import re

import numpy as np
import pandas as pd
from scipy import special, stats

# ---------------------------------------------------------------------------
# Column / label helpers
# ---------------------------------------------------------------------------

def _find_col(df: pd.DataFrame, must_include: list[str]) -> str | None:
    """
    Return the first column name in `df` whose lowercase name contains *all*
    substrings in `must_include`. Used for robust header detection.

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame with candidate columns.
    must_include : list[str]
        Substrings that must all appear in the lowercase column name.

    Returns
    -------
    str | None
        Original column name or None if not found.
    """
    for orig in df.columns:
        lc = str(orig).lower()
        if all(s.lower() in lc for s in must_include):
            return orig
    return None


_WS = re.compile(r"\s+")

def _norm_label(x) -> str:
    """
    Lowercase, strip and collapse internal whitespace.

    Stata value labels often carry stray double spaces ("hiv  positive"),
    so every label comparison in the recoders goes through this.
    """
    return _WS.sub(" ", str(x)).strip().lower()


# ---------------------------------------------------------------------------
# List / string coercions for config-like values
# ---------------------------------------------------------------------------

def _coerce_list(x):
    """
    Coerce input to a flat list of strings.

    Rules
    -----
    - If `x` is a list, flatten one level; split any string items on ';' or ','.
    - If `x` is a string, split on ';' or ',' and strip.
    - Otherwise return None (caller should fall back to project defaults).

    Parameters
    ----------
    x : Any

    Returns
    -------
    list[str] | None
    """
    if isinstance(x, (list, tuple)):
        flat: list[str] = []
        for it in x:
            if isinstance(it, (list, tuple)):
                flat.extend(str(v) for v in it)
            elif isinstance(it, str) and (";" in it or "," in it):
                flat.extend(
                    [s.strip() for s in it.replace(",", ";").split(";") if s.strip()]
                )
            else:
                flat.append(str(it))
        return flat
    if isinstance(x, str):
        if ";" in x or "," in x:
            return [s.strip() for s in x.replace(",", ";").split(";") if s.strip()]
        return [x.strip()]
    return None


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def _with_suffix(fname: str, suffix: str) -> str:
    """
    Insert a suffix before the file extension.

    Example
    -------
    _with_suffix("scores.csv", "_2var") -> "scores_2var.csv"
    """
    if not suffix:
        return fname
    base, ext = os.path.splitext(fname)
    return f"{base}{suffix}{ext}"


# ---------------------------------------------------------------------------
# PCA helpers
# ---------------------------------------------------------------------------

def _component_names(k: int) -> list[str]:
    """Return ['PC1', ..., 'PCk']."""
    return [f"PC{i}" for i in range(1, int(k) + 1)]


_PIVOT_TOL = 1e-10


def _orient_columns(vectors: np.ndarray) -> np.ndarray:
    """
    Flip eigenvector signs so the largest-magnitude entry of each column is positive.

    Eigenvectors are only defined up to sign; fixing the sign makes manual
    eigendecomposition and SVD-based PCA directly comparable. Entries within
    1e-10 of the column maximum count as tied and the first of them is the
    pivot, so both routes pick the same entry whatever the rounding noise.

    Parameters
    ----------
    vectors : np.ndarray
        (p, k) matrix with eigenvectors in columns.

    Returns
    -------
    np.ndarray
        Copy of `vectors` with the sign convention applied.
    """
    V = np.array(vectors, dtype=float, copy=True)
    if V.ndim != 2 or V.size == 0:
        return V
    # ties (e.g. +-1/sqrt(2) for two standardised variables) go to the first row
    A = np.abs(V)
    pivots = np.argmax(A >= A.max(axis=0) - _PIVOT_TOL, axis=0)
    signs = np.sign(V[pivots, np.arange(V.shape[1])])
    signs[signs == 0] = 1.0
    return V * signs


# ---------------------------------------------------------------------------
# Distribution helpers (scipy.stats / scipy.special)
# ---------------------------------------------------------------------------

def _xlogy(x, y) -> np.ndarray:
    """
    Elementwise x * log(y) with the convention 0 * log(0) = 0.
    """
    return special.xlogy(np.asarray(x, dtype=float), np.asarray(y, dtype=float))


def _normal_quantile(p: float) -> float:
    """Inverse standard-normal CDF."""
    if not 0.0 < p < 1.0:
        raise ValueError(f"p must lie in (0, 1), got {p!r}")
    return float(stats.norm.ppf(p))


def _z_for_conf(conf: float) -> float:
    """Two-sided critical value, e.g. conf=0.95 -> 1.959964."""
    if not 0.0 < conf < 1.0:
        raise ValueError(f"conf must lie in (0, 1), got {conf!r}")
    return _normal_quantile(0.5 + conf / 2.0)


def _normal_sf(z) -> np.ndarray:
    """
    Two-sided standard-normal tail probability P(|Z| > |z|).

    NaN stays NaN (e.g. an undefined standard error); +-inf gives 0.
    """
    z = np.abs(np.asarray(z, dtype=float))
    return 2.0 * stats.norm.sf(z)


def _chi2_sf(x: float, df: int) -> float:
    """
    Chi-square survival function P(X > x) for a positive integer `df`.
    """
    k = int(df)
    if k < 1:
        raise ValueError(f"df must be a positive integer, got {df!r}")
    return float(stats.chi2.sf(float(x), k))
