# src/regression.py
"""
Logistic regression (binomial GLM with logit link) fitted by iteratively
reweighted least squares, following R's glm defaults:

    start   : mu = (y + 0.5) / 2
    control : epsilon = 1e-8 on |dev - dev_old| / (|dev| + 0.1), maxit = 25

Design matrices mimic R's model.matrix with treatment contrasts: an
'(Intercept)' column, numeric predictors as-is, and one dummy per
non-reference level named '<var><level>'.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from helpers import _xlogy, _normal_sf, _z_for_conf, _chi2_sf

_ETA_THRESH = -np.log(np.finfo(float).eps)   # R's binomial()$linkinv clamp
_MU_EPS = 10 * np.finfo(float).eps


# ---------------------------------------------------------------------
# Design matrix
# ---------------------------------------------------------------------
def _level_name(v) -> str:
    if isinstance(v, (float, np.floating)) and float(v).is_integer():
        return str(int(v))
    return str(v)


def _is_categorical(s: pd.Series, var: str, categorical) -> bool:
    if var in categorical:
        return True
    if pd.api.types.is_bool_dtype(s):
        return False
    return not pd.api.types.is_numeric_dtype(s)


def _resolve_levels(df: pd.DataFrame, predictors, categorical=None, reference=None) -> Dict[str, list]:
    """
    Ordered levels per categorical predictor, reference level first.

    Only levels present in `df` are kept; categorical dtypes keep their
    category order, everything else is sorted.
    """
    categorical = set(categorical or [])
    reference = dict(reference or {})
    levels: Dict[str, list] = {}
    for var in predictors:
        if var not in df.columns:
            raise KeyError(f"Predictor '{var}' not found in DataFrame")
        s = df[var]
        if not _is_categorical(s, var, categorical):
            continue
        present = s.dropna()
        if isinstance(s.dtype, pd.CategoricalDtype):
            seen = set(present.unique().tolist())
            lv = [c for c in s.cat.categories if c in seen]
        else:
            lv = sorted(present.unique().tolist())
        if len(lv) < 2:
            raise ValueError(f"Categorical predictor '{var}' needs at least 2 levels, found {lv}")
        ref = reference.get(var, lv[0])
        if ref not in lv:
            matches = [x for x in lv if _level_name(x) == str(ref)]
            if not matches:
                raise ValueError(f"Reference level {ref!r} not among levels of '{var}': {lv}")
            ref = matches[0]
        levels[var] = [ref] + [x for x in lv if x != ref]
    return levels


def design_matrix(df: pd.DataFrame, predictors, categorical=None, reference=None, levels=None) -> pd.DataFrame:
    """
    Build the model matrix for `predictors`.

    Parameters
    ----------
    df : pd.DataFrame
    predictors : list[str]
    categorical : list[str], optional
        Predictors to dummy-code even if numeric (e.g. 0/1/2 codes).
        Non-numeric predictors are always dummy-coded.
    reference : dict, optional
        {var: reference level}. Defaults to the first level.
    levels : dict, optional
        Pre-resolved levels (as stored on a fitted model), used for prediction.

    Returns
    -------
    pd.DataFrame
        Float matrix with '(Intercept)' first.
    """
    predictors = list(predictors)
    if levels is None:
        levels = _resolve_levels(df, predictors, categorical, reference)
    cols = {"(Intercept)": pd.Series(1.0, index=df.index)}
    for var in predictors:
        if var not in df.columns:
            raise KeyError(f"Predictor '{var}' not found in DataFrame")
        s = df[var]
        if var in levels:
            obj = s.astype(object)
            miss = s.isna()
            for lv in levels[var][1:]:
                d = (obj == lv).astype(float)
                d[miss] = np.nan
                cols[f"{var}{_level_name(lv)}"] = d
        else:
            cols[var] = pd.to_numeric(s, errors="coerce").astype(float)
    return pd.DataFrame(cols, index=df.index)


# ---------------------------------------------------------------------
# Fit
# ---------------------------------------------------------------------
def _deviance(y: np.ndarray, mu: np.ndarray) -> float:
    return float(-2.0 * np.sum(_xlogy(y, mu) + _xlogy(1.0 - y, 1.0 - mu)))


def _linkinv(eta: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(eta, -_ETA_THRESH, _ETA_THRESH)))


@dataclass
class LogitResult:
    """
    Fitted logistic regression. Coefficients are on the log-odds scale.
    """
    params: pd.Series
    bse: pd.Series
    zvalues: pd.Series
    pvalues: pd.Series
    cov_params: pd.DataFrame
    deviance: float
    null_deviance: float
    df_resid: int
    df_null: int
    aic: float
    n_obs: int
    iterations: int
    converged: bool
    outcome: str
    predictors: List[str]
    levels: Dict[str, list] = field(default_factory=dict)

    @property
    def loglik(self) -> float:
        return -0.5 * self.deviance

    def summary(self) -> pd.DataFrame:
        """Coefficient table as printed by summary(glm(...))."""
        return pd.DataFrame({
            "Estimate": self.params,
            "Std. Error": self.bse,
            "z value": self.zvalues,
            "Pr(>|z|)": self.pvalues,
        })

    def odds_ratios(self, conf: float = 0.95) -> pd.DataFrame:
        """exp(coef) with Wald confidence limits."""
        z = _z_for_conf(conf)
        return pd.DataFrame({
            "OR": np.exp(self.params),
            "lower": np.exp(self.params - z * self.bse),
            "upper": np.exp(self.params + z * self.bse),
        })

    def predict(self, df: pd.DataFrame, kind: str = "response") -> pd.Series:
        """
        Predicted probabilities (kind='response') or log-odds (kind='link').
        """
        X = design_matrix(df, self.predictors, levels=self.levels)
        X = X.reindex(columns=self.params.index, fill_value=0.0)
        eta = X.to_numpy(dtype=float) @ self.params.to_numpy(dtype=float)
        if kind == "link":
            return pd.Series(eta, index=df.index, name="eta")
        if kind == "response":
            return pd.Series(_linkinv(eta), index=df.index, name="fitted")
        raise ValueError(f"kind must be 'response' or 'link', got {kind!r}")


def fit_logistic(
    df: pd.DataFrame,
    outcome: str,
    predictors,
    categorical=None,
    reference=None,
    *,
    max_iter: int = 25,
    tol: float = 1e-8,
) -> LogitResult:
    """
    Fit P(outcome = 1) = logit^-1(X beta) by IRLS.

    Rows with a missing outcome or predictor are dropped (na.omit) and the
    count is logged.

    Parameters
    ----------
    df : pd.DataFrame
    outcome : str
        0/1 column.
    predictors : list[str]
    categorical, reference :
        See `design_matrix`.
    max_iter : int
        Maximum IRLS iterations.
    tol : float
        Relative deviance convergence tolerance.

    Returns
    -------
    LogitResult
    """
    predictors = [predictors] if isinstance(predictors, str) else list(predictors)
    for c in [outcome] + predictors:
        if c not in df.columns:
            raise KeyError(f"Column '{c}' not found in DataFrame")

    data = df[[outcome] + predictors]
    complete = data.notna().all(axis=1)
    dropped = int((~complete).sum())
    if dropped:
        logging.warning(f"[logit] {dropped} observations deleted due to missingness.")
    data = data.loc[complete]

    y_s = pd.to_numeric(data[outcome], errors="coerce")
    if not y_s.isin([0, 1]).all():
        bad = sorted(y_s[~y_s.isin([0, 1])].unique().tolist())[:5]
        raise ValueError(f"Outcome '{outcome}' must be coded 0/1; found {bad}")

    levels = _resolve_levels(data, predictors, categorical, reference)
    X_df = design_matrix(data, predictors, levels=levels)
    X = X_df.to_numpy(dtype=float)
    y = y_s.to_numpy(dtype=float)
    n, k = X.shape
    if n <= k:
        raise ValueError(f"Not enough observations ({n}) for {k} coefficients.")
    if np.linalg.matrix_rank(X) < k:
        raise ValueError("Design matrix is rank deficient (collinear predictors or empty levels).")

    mu = (y + 0.5) / 2.0
    eta = np.log(mu / (1.0 - mu))
    dev_old = _deviance(y, mu)
    beta = np.zeros(k)
    converged = False
    it = 0
    for it in range(1, max_iter + 1):
        w = mu * (1.0 - mu)
        z = eta + (y - mu) / w
        XtW = X.T * w
        try:
            beta = np.linalg.solve(XtW @ X, XtW @ z)
        except np.linalg.LinAlgError:
            raise ValueError("Information matrix is singular; check for collinear predictors.")
        eta = X @ beta
        mu = _linkinv(eta)
        dev = _deviance(y, mu)
        if abs(dev - dev_old) / (abs(dev) + 0.1) < tol:
            converged = True
            break
        dev_old = dev

    if not converged:
        logging.warning(f"[logit] glm.fit: algorithm did not converge after {max_iter} iterations.")
    if np.any(mu < _MU_EPS) or np.any(mu > 1.0 - _MU_EPS):
        logging.warning("[logit] glm.fit: fitted probabilities numerically 0 or 1 occurred.")

    w = mu * (1.0 - mu)
    cov = np.linalg.inv((X.T * w) @ X)
    names = list(X_df.columns)
    params = pd.Series(beta, index=names, name="coef")
    bse = pd.Series(np.sqrt(np.diag(cov)), index=names, name="se")
    zvals = (params / bse).rename("z")
    pvals = pd.Series(_normal_sf(zvals.to_numpy()), index=names, name="p")

    deviance = _deviance(y, mu)
    null_dev = _deviance(y, np.full(n, y.mean()))
    return LogitResult(
        params=params,
        bse=bse,
        zvalues=zvals,
        pvalues=pvals,
        cov_params=pd.DataFrame(cov, index=names, columns=names),
        deviance=deviance,
        null_deviance=null_dev,
        df_resid=int(n - k),
        df_null=int(n - 1),
        aic=float(deviance + 2 * k),
        n_obs=int(n),
        iterations=int(it),
        converged=converged,
        outcome=outcome,
        predictors=predictors,
        levels=levels,
    )


# ---------------------------------------------------------------------
# Model comparison
# ---------------------------------------------------------------------
def likelihood_ratio_test(reduced: LogitResult, full: LogitResult) -> pd.Series:
    """
    LR chi-square test of a nested `reduced` model against `full`.
    """
    if reduced.n_obs != full.n_obs:
        raise ValueError(
            f"Models were fitted to different numbers of observations ({reduced.n_obs} vs {full.n_obs})."
        )
    dof = reduced.df_resid - full.df_resid
    if dof <= 0:
        raise ValueError("The full model must have more parameters than the reduced model.")
    stat = max(reduced.deviance - full.deviance, 0.0)
    return pd.Series({"statistic": stat, "df": int(dof), "p_value": _chi2_sf(stat, dof)}, name="LRT")


def compare_models(models: Dict[str, LogitResult]) -> pd.DataFrame:
    """
    Analysis-of-deviance table over models listed from smallest to largest.
    """
    rows = []
    prev: Optional[LogitResult] = None
    for name, m in models.items():
        row = {"model": name, "n_obs": m.n_obs, "Resid. Df": m.df_resid,
               "Resid. Dev": m.deviance, "AIC": m.aic,
               "Df": np.nan, "Deviance": np.nan, "Pr(>Chi)": np.nan}
        if prev is not None and prev.n_obs == m.n_obs and prev.df_resid > m.df_resid:
            lrt = likelihood_ratio_test(prev, m)
            row.update({"Df": lrt["df"], "Deviance": lrt["statistic"], "Pr(>Chi)": lrt["p_value"]})
        rows.append(row)
        prev = m
    return pd.DataFrame(rows).set_index("model")
