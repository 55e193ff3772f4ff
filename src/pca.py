# src/pca.py
"""
Principal component analysis, derived by hand and via the built-in route.

The manual route mirrors what students do on the board:
    scale -> covariance matrix -> eigendecomposition -> scores.
`prcomp` is the one-call equivalent (SVD of the centred/scaled data), returning
the same quantities R's `prcomp` does so the two can be compared side by side.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from helpers import _component_names, _orient_columns


# ---------------------------------------------------------------------
# Column selection and scaling
# ---------------------------------------------------------------------
def select_numeric(df: pd.DataFrame, columns=None) -> pd.DataFrame:
    """
    Return the requested columns (or every numeric column) as floats.
    """
    if columns is not None:
        columns = list(columns)
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise KeyError(f"Columns not found in DataFrame: {missing}")
        out = df[columns]
        bad = [c for c in columns if not pd.api.types.is_numeric_dtype(out[c])]
        if bad:
            raise ValueError(f"Columns must be numeric for PCA: {bad}")
    else:
        out = df.select_dtypes(include="number")
        if out.shape[1] == 0:
            raise ValueError("No numeric columns available for PCA.")
    return out.astype(float)


def _center_scale(df: pd.DataFrame, center: bool = True, scale: bool = True):
    """
    Centre and/or scale columns the way R's `scale()` does.

    When centred, the scale is the ordinary standard deviation (ddof=1); when not
    centred it is the root-mean-square sqrt(sum(x^2)/(n-1)).

    Returns
    -------
    (pd.DataFrame, pd.Series | None, pd.Series | None)
        Transformed data, the centre used, the scale used.
    """
    X = df.astype(float)
    n = len(X)
    ctr = None
    scl = None
    if center:
        ctr = X.mean(axis=0)
        X = X - ctr
    if scale:
        if n < 2:
            raise ValueError("Need at least 2 rows to scale columns.")
        scl = np.sqrt((X ** 2).sum(axis=0) / (n - 1))
        const = scl.index[~(scl > 0)].tolist()
        if const:
            raise ValueError(f"Cannot rescale a constant/zero column to unit variance: {const}")
        X = X / scl
    return X, ctr, scl


def scale_columns(df: pd.DataFrame, center: bool = True, scale: bool = True) -> pd.DataFrame:
    """
    Standardise columns: subtract the mean, divide by the standard deviation.

    Parameters
    ----------
    df : pd.DataFrame
        Numeric columns.
    center, scale : bool
        As in R's `scale(x, center, scale)`.

    Returns
    -------
    pd.DataFrame
        Same shape, index and columns as `df`.
    """
    X, _, _ = _center_scale(df, center=center, scale=scale)
    return X


# ---------------------------------------------------------------------
# Manual derivation
# ---------------------------------------------------------------------
def covariance_matrix(df: pd.DataFrame) -> pd.DataFrame:
    """
    Sample covariance matrix computed by hand: Xc' Xc / (n - 1).

    On standardised columns this is the correlation matrix.
    """
    X = df.to_numpy(dtype=float)
    n = X.shape[0]
    if n < 2:
        raise ValueError("Need at least 2 rows to compute a covariance matrix.")
    if np.isnan(X).any():
        raise ValueError("Covariance input contains missing values; drop them first.")
    Xc = X - X.mean(axis=0)
    C = (Xc.T @ Xc) / (n - 1)
    return pd.DataFrame(C, index=df.columns, columns=df.columns)


def eigen_decompose(cov) -> tuple[pd.Series, pd.DataFrame]:
    """
    Eigendecomposition of a symmetric (covariance) matrix.

    Eigenvalues are returned in descending order; eigenvectors are unit length,
    stored in columns, and oriented so that their largest-magnitude entry is
    positive.

    Parameters
    ----------
    cov : pd.DataFrame or array-like
        Square symmetric matrix.

    Returns
    -------
    (pd.Series, pd.DataFrame)
        eigenvalues indexed PC1..PCp; eigenvectors (variables x PC1..PCp).
    """
    if isinstance(cov, pd.DataFrame):
        labels = list(cov.index)
        A = cov.to_numpy(dtype=float)
    else:
        A = np.asarray(cov, dtype=float)
        labels = [f"V{i}" for i in range(1, A.shape[0] + 1)] if A.ndim == 2 else []
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {A.shape}")
    if not np.allclose(A, A.T, atol=1e-10):
        raise ValueError("Covariance matrix must be symmetric.")

    vals, vecs = np.linalg.eigh(A)
    order = np.argsort(vals)[::-1]
    vals = vals[order]
    vecs = _orient_columns(vecs[:, order])

    names = _component_names(len(vals))
    eigenvalues = pd.Series(vals, index=names, name="eigenvalue")
    eigenvectors = pd.DataFrame(vecs, index=labels, columns=names)
    return eigenvalues, eigenvectors


def component_scores(scaled: pd.DataFrame, eigenvectors: pd.DataFrame) -> pd.DataFrame:
    """
    Project observations onto the eigenvectors (scores = X V).
    """
    missing = [c for c in eigenvectors.index if c not in scaled.columns]
    if missing:
        raise KeyError(f"Eigenvector variables not found in data: {missing}")
    X = scaled[list(eigenvectors.index)].to_numpy(dtype=float)
    S = X @ eigenvectors.to_numpy(dtype=float)
    return pd.DataFrame(S, index=scaled.index, columns=eigenvectors.columns)


def explained_variance(eigenvalues) -> pd.DataFrame:
    """
    Proportion and cumulative proportion of variance per component.
    """
    ev = pd.Series(eigenvalues, dtype=float)
    total = float(ev.sum())
    if not np.isfinite(total) or total <= 0:
        raise ValueError("Eigenvalues must sum to a positive number.")
    prop = ev / total
    return pd.DataFrame({
        "eigenvalue": ev,
        "proportion": prop,
        "cumulative": prop.cumsum(),
    })


# ---------------------------------------------------------------------
# Built-in equivalent
# ---------------------------------------------------------------------
@dataclass
class PCAResult:
    """
    Output of `prcomp`, field-for-field with R's prcomp object.

    sdev     : standard deviations of the components (sqrt of eigenvalues)
    rotation : variables x components matrix of eigenvectors
    center   : column means subtracted (None if not centred)
    scale    : column scales divided by (None if not scaled)
    x        : observations x components matrix of scores
    """
    sdev: pd.Series
    rotation: pd.DataFrame
    center: Optional[pd.Series]
    scale: Optional[pd.Series]
    x: pd.DataFrame
    n_obs: int

    @property
    def eigenvalues(self) -> pd.Series:
        return (self.sdev ** 2).rename("eigenvalue")

    @property
    def loadings(self) -> pd.DataFrame:
        """Eigenvectors scaled by sdev; correlations with the PCs when scale=True."""
        return self.rotation * self.sdev.to_numpy()

    def summary(self) -> pd.DataFrame:
        """Importance of components, as printed by summary(prcomp(...))."""
        ev = explained_variance(self.eigenvalues)
        return pd.DataFrame(
            [self.sdev.to_numpy(), ev["proportion"].to_numpy(), ev["cumulative"].to_numpy()],
            index=["Standard deviation", "Proportion of Variance", "Cumulative Proportion"],
            columns=self.sdev.index,
        )


def prcomp(
    df: pd.DataFrame,
    columns=None,
    *,
    center: bool = True,
    scale: bool = True,
    dropna: bool = True,
) -> PCAResult:
    """
    Principal components via singular value decomposition of the data matrix.

    Parameters
    ----------
    df : pd.DataFrame
        Input data; non-numeric columns are ignored unless named in `columns`.
    columns : list[str], optional
        Columns to use. Defaults to all numeric columns.
    center, scale : bool
        Standardisation applied before the decomposition.
    dropna : bool
        Drop rows with missing values (logged). If False, missing values raise.

    Returns
    -------
    PCAResult
    """
    data = select_numeric(df, columns)
    miss = data.isna().any(axis=1)
    if miss.any():
        if not dropna:
            raise ValueError(f"{int(miss.sum())} rows contain missing values.")
        logging.warning(f"[pca] Dropped {int(miss.sum())} rows with missing values before PCA.")
        data = data.loc[~miss]
    n = len(data)
    if n < 2:
        raise ValueError("Need at least 2 complete rows for PCA.")

    X, ctr, scl = _center_scale(data, center=center, scale=scale)
    _, S, Vt = np.linalg.svd(X.to_numpy(dtype=float), full_matrices=False)
    V = _orient_columns(Vt.T)

    names = _component_names(V.shape[1])
    sdev = pd.Series(S / np.sqrt(n - 1), index=names, name="sdev")
    rotation = pd.DataFrame(V, index=data.columns, columns=names)
    scores = pd.DataFrame(X.to_numpy(dtype=float) @ V, index=data.index, columns=names)
    return PCAResult(sdev=sdev, rotation=rotation, center=ctr, scale=scl, x=scores, n_obs=n)
