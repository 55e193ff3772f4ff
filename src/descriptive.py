# src/descriptive.py
"""
Descriptive epidemiology: recoding, frequency/prevalence tables, stratified
tables and measures of association.

Conventions
-----------
- Binary variables are coded 1 (case / exposed) and 0 (non-case / unexposed),
  with NaN for missing. Recoders produce exactly this coding.
- 2x2 tables are laid out with exposure in rows and outcome in columns:

                 case   non-case
    exposed        a        b
    unexposed      c        d
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import stats

from helpers import _find_col, _norm_label, _coerce_list, _z_for_conf


# ---------------------------------------------------------------------
# Recoding
# ---------------------------------------------------------------------
def _key(v) -> Optional[str]:
    """Comparable key for a raw value: integral numbers -> '1', labels -> normalised text."""
    if v is None or (not isinstance(v, str) and pd.isna(v)):
        return None
    if isinstance(v, (int, float, np.integer, np.floating)) and not isinstance(v, bool):
        f = float(v)
        if f.is_integer():
            return str(int(f))
        return repr(f)
    return _norm_label(v)


def _keys(s: pd.Series) -> pd.Series:
    return pd.Series([_key(v) for v in s.astype(object)], index=s.index, dtype=object)


def recode_binary(s: pd.Series, positive, negative=None) -> pd.Series:
    """
    Recode a variable to 1/0/NaN.

    Parameters
    ----------
    s : pd.Series
        Raw variable (labels, categorical or numeric codes).
    positive : list
        Values coded 1. Labels match case- and whitespace-insensitively.
    negative : list, optional
        Values coded 0. When None, every other non-missing value is coded 0.

    Returns
    -------
    pd.Series
        float Series of 1.0, 0.0 and NaN, same index as `s`.
    """
    pos = {_key(v) for v in positive}
    neg = None if negative is None else {_key(v) for v in negative}
    if neg is not None and pos & neg:
        raise ValueError(f"Values listed as both positive and negative: {sorted(pos & neg)}")

    keys = _keys(s)
    out = pd.Series(np.nan, index=s.index, dtype=float, name=s.name)
    is_pos = keys.isin(pos)
    out[is_pos] = 1.0
    if neg is None:
        out[keys.notna() & ~is_pos] = 0.0
    else:
        out[keys.isin(neg)] = 0.0
    return out


def recode_values(s: pd.Series, mapping: dict) -> pd.Series:
    """
    Map raw values to new values; anything not in `mapping` becomes NaN.
    """
    norm = {_key(k): v for k, v in mapping.items()}
    vals = [norm.get(k, np.nan) if k is not None else np.nan for k in _keys(s)]
    return pd.Series(vals, index=s.index, name=s.name).infer_objects()


def _age_labels(breaks: List[float], right: bool) -> List[str]:
    labels = []
    for lo, hi in zip(breaks[:-1], breaks[1:]):
        if float(lo).is_integer() and float(hi).is_integer():
            lo_i, hi_i = int(lo), int(hi)
            labels.append(f"{lo_i + 1}-{hi_i}" if right else f"{lo_i}-{hi_i - 1}")
        else:
            labels.append(f"{lo}-{hi}")
    return labels


def recode_age_groups(s: pd.Series, breaks, labels=None, right: bool = False) -> pd.Series:
    """
    Group ages into intervals with pandas.cut.

    With the default closed-left intervals, breaks [15, 20, 25] give '15-19',
    '20-24'. Ages outside the breaks become NaN.
    """
    breaks = sorted(float(b) for b in breaks)
    if len(breaks) < 2:
        raise ValueError("Need at least two breaks to form age groups.")
    if labels is None:
        labels = _age_labels(breaks, right)
    elif len(labels) != len(breaks) - 1:
        raise ValueError(f"Expected {len(breaks) - 1} labels, got {len(labels)}")
    ages = pd.to_numeric(s, errors="coerce")
    return pd.cut(ages, bins=breaks, labels=labels, right=right)


def apply_recodes(df: pd.DataFrame, recodes: Dict[str, dict]) -> pd.DataFrame:
    """
    Apply config-driven recodes and return a copy with the new columns.

    Each entry maps a new column name to a rule:
        {"type": "binary", "source": col, "positive": [...], "negative": [...]}
        {"type": "map", "source": col, "mapping": {...}}
        {"type": "age_groups", "source": col, "breaks": [...], "labels": [...]}
    `source` defaults to the new column name (in-place recode). A source
    missing verbatim is matched case-insensitively against the headers
    (e.g. 'hiv03' finds 'HIV03').
    """
    out = df.copy()
    for name, rule in (recodes or {}).items():
        source = rule.get("source", name)
        if source not in out.columns:
            found = _find_col(out, [str(source)])
            if found is None:
                raise KeyError(f"Recode '{name}': source column '{source}' not found.")
            print(f"[recode] '{name}': using column '{found}' for source '{source}'.")
            source = found
        kind = rule.get("type", "binary")
        source_missing = int(out[source].isna().sum())
        if kind == "binary":
            positive = rule.get("positive")
            if isinstance(positive, str):
                positive = _coerce_list(positive)
            if not positive:
                raise ValueError(f"Recode '{name}': binary recode needs 'positive' values.")
            negative = rule.get("negative")
            if isinstance(negative, str):
                negative = _coerce_list(negative)
            out[name] = recode_binary(out[source], positive, negative)
        elif kind == "map":
            out[name] = recode_values(out[source], rule.get("mapping") or {})
        elif kind == "age_groups":
            out[name] = recode_age_groups(
                out[source], rule["breaks"], rule.get("labels"), bool(rule.get("right", False))
            )
        else:
            raise ValueError(f"Recode '{name}': unknown type {kind!r}")
        n_missing = int(out[name].isna().sum()) - source_missing
        if n_missing > 0:
            logging.warning(f"[recode] '{name}': {n_missing} non-missing '{source}' values left unmatched (NaN).")
    return out


# ---------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------
def summarize_numeric(df: pd.DataFrame, columns=None) -> pd.DataFrame:
    """
    Five-number summary plus mean and missing count, like R's summary().
    """
    data = df[list(columns)] if columns is not None else df.select_dtypes(include="number")
    rows = {}
    for c in data.columns:
        x = pd.to_numeric(data[c], errors="coerce")
        rows[c] = {
            "Min.": x.min(), "1st Qu.": x.quantile(0.25), "Median": x.median(),
            "Mean": x.mean(), "3rd Qu.": x.quantile(0.75), "Max.": x.max(),
            "NA's": int(x.isna().sum()),
        }
    return pd.DataFrame.from_dict(rows, orient="index")


def frequency_table(df: pd.DataFrame, col: str, dropna: bool = False) -> pd.DataFrame:
    """
    Counts and percentages of each value of `col` (missing kept unless dropna).
    """
    if col not in df.columns:
        raise KeyError(f"Column '{col}' not found in DataFrame")
    counts = df[col].value_counts(dropna=dropna, sort=False)
    if not isinstance(df[col].dtype, pd.CategoricalDtype):
        counts = counts.sort_index()
    total = counts.sum()
    pct = 100.0 * counts / total if total > 0 else counts.astype(float)
    out = pd.DataFrame({
        "n": counts.astype(int),
        "percent": pct.astype(float),
        "cumulative_percent": pct.cumsum().astype(float),
    })
    out.index.name = col
    return out


def cross_tab(df: pd.DataFrame, row: str, col: str, normalize=None, margins: bool = False) -> pd.DataFrame:
    """
    Two-way table of counts, or percentages when `normalize` is given.

    normalize : {None, 'index', 'columns', 'all'}
        'index' gives row percentages (e.g. outcome distribution by exposure).
    """
    for c in (row, col):
        if c not in df.columns:
            raise KeyError(f"Column '{c}' not found in DataFrame")
    if normalize not in (None, "index", "columns", "all"):
        raise ValueError(f"normalize must be None, 'index', 'columns' or 'all', got {normalize!r}")
    tab = pd.crosstab(
        df[row], df[col],
        margins=margins, margins_name="Total",
        normalize=normalize if normalize is not None else False,
    )
    if normalize is not None:
        tab = tab * 100.0
    return tab


def _binary_outcome(df: pd.DataFrame, col: str) -> pd.Series:
    if col not in df.columns:
        raise KeyError(f"Column '{col}' not found in DataFrame")
    y = pd.to_numeric(df[col], errors="coerce")
    bad = ~y.dropna().isin([0, 1])
    if bad.any():
        raise ValueError(f"Column '{col}' must be coded 0/1; found {sorted(y.dropna()[bad].unique())[:5]}")
    return y


def _wilson(cases, n, z):
    """Wilson score interval for a binomial proportion (vectorised)."""
    cases = np.asarray(cases, dtype=float)
    n = np.asarray(n, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        p = cases / n
        denom = 1.0 + z ** 2 / n
        centre = (p + z ** 2 / (2.0 * n)) / denom
        half = z * np.sqrt(p * (1.0 - p) / n + z ** 2 / (4.0 * n ** 2)) / denom
    return p, np.clip(centre - half, 0.0, 1.0), np.clip(centre + half, 0.0, 1.0)


def prevalence(df: pd.DataFrame, outcome: str, by=None, conf: float = 0.95) -> pd.DataFrame:
    """
    Prevalence of a 0/1 outcome, overall or by group, with Wilson CIs.

    Returns
    -------
    pd.DataFrame
        Columns n, cases, prevalence, lower, upper; indexed by the group
        levels (or 'All' when `by` is None).
    """
    y = _binary_outcome(df, outcome)
    z = _z_for_conf(conf)
    if by is None:
        yy = y.dropna()
        out = pd.DataFrame({"n": [int(yy.size)], "cases": [int(yy.sum())]}, index=pd.Index(["All"]))
    else:
        by = [by] if isinstance(by, str) else list(by)
        for c in by:
            if c not in df.columns:
                raise KeyError(f"Column '{c}' not found in DataFrame")
        work = df[by].copy()
        work["_y"] = y
        work = work.dropna(subset=["_y"])
        g = work.groupby(by, observed=True, dropna=True)["_y"]
        out = pd.DataFrame({"n": g.count().astype(int), "cases": g.sum().astype(int)})
    p, lo, hi = _wilson(out["cases"], out["n"], z)
    out["prevalence"] = p
    out["lower"] = lo
    out["upper"] = hi
    return out


def stratified_prevalence(df: pd.DataFrame, outcome: str, exposure: str, strata, conf: float = 0.95) -> pd.DataFrame:
    """
    Prevalence of `outcome` by `exposure` within each level of `strata` (long format).
    """
    strata = [strata] if isinstance(strata, str) else list(strata)
    return prevalence(df, outcome, by=strata + [exposure], conf=conf).reset_index()


# ---------------------------------------------------------------------
# Measures of association
# ---------------------------------------------------------------------
@dataclass
class TwoByTwo:
    """Exposure (rows) by outcome (columns) counts."""
    a: float
    b: float
    c: float
    d: float

    @property
    def n(self) -> float:
        return self.a + self.b + self.c + self.d

    def as_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [[self.a, self.b], [self.c, self.d]],
            index=["exposed", "unexposed"], columns=["case", "non-case"],
        )


def two_by_two(df: pd.DataFrame, outcome: str, exposure: str) -> TwoByTwo:
    """
    Build the 2x2 table from 0/1 outcome and exposure columns (complete cases).
    """
    y = _binary_outcome(df, outcome)
    x = _binary_outcome(df, exposure)
    ok = y.notna() & x.notna()
    y, x = y[ok], x[ok]
    return TwoByTwo(
        a=float(((x == 1) & (y == 1)).sum()),
        b=float(((x == 1) & (y == 0)).sum()),
        c=float(((x == 0) & (y == 1)).sum()),
        d=float(((x == 0) & (y == 0)).sum()),
    )


def odds_ratio(table: TwoByTwo, conf: float = 0.95) -> pd.Series:
    """
    Odds ratio ad/bc with a Woolf (log) confidence interval.

    A zero cell triggers the Haldane correction (0.5 added to every cell).
    """
    a, b, c, d = table.a, table.b, table.c, table.d
    if min(a, b, c, d) == 0:
        logging.warning("[epi] Zero cell in 2x2 table; adding 0.5 to every cell (Haldane).")
        a, b, c, d = a + 0.5, b + 0.5, c + 0.5, d + 0.5
    est = (a * d) / (b * c)
    se = float(np.sqrt(1 / a + 1 / b + 1 / c + 1 / d))
    z = _z_for_conf(conf)
    return pd.Series({
        "OR": est,
        "lower": float(np.exp(np.log(est) - z * se)),
        "upper": float(np.exp(np.log(est) + z * se)),
        "se_log": se,
    }, name="OR")


def prevalence_ratio(table: TwoByTwo, conf: float = 0.95) -> pd.Series:
    """
    Ratio of prevalence among exposed to prevalence among unexposed, log-scale CI.
    """
    a, b, c, d = table.a, table.b, table.c, table.d
    if (a + b) == 0 or (c + d) == 0:
        raise ValueError("Prevalence ratio needs both exposed and unexposed observations.")
    if a == 0 or c == 0:
        logging.warning("[epi] Zero cases in an exposure group; adding 0.5 to every cell (Haldane).")
        a, b, c, d = a + 0.5, b + 0.5, c + 0.5, d + 0.5
    p1 = a / (a + b)
    p0 = c / (c + d)
    est = p1 / p0
    se = float(np.sqrt(1 / a - 1 / (a + b) + 1 / c - 1 / (c + d)))
    z = _z_for_conf(conf)
    return pd.Series({
        "PR": est,
        "lower": float(np.exp(np.log(est) - z * se)),
        "upper": float(np.exp(np.log(est) + z * se)),
        "p_exposed": p1,
        "p_unexposed": p0,
    }, name="PR")


@dataclass
class MantelHaenszelResult:
    """
    Crude, stratum-specific and Mantel-Haenszel pooled odds ratios.

    pct_change is the percent change from crude to adjusted,
    100 * (adjusted - crude) / crude; a change of more than
    10% is the usual rule of thumb for confounding by the stratifier.
    """
    strata: pd.DataFrame
    crude: pd.Series
    adjusted: pd.Series
    pct_change: float

    def confounded(self, threshold: float = 10.0) -> bool:
        return bool(abs(self.pct_change) > threshold)

    def to_frame(self) -> pd.DataFrame:
        top = pd.DataFrame(
            [self.crude[["OR", "lower", "upper"]], self.adjusted[["OR", "lower", "upper"]]],
            index=["crude", "mantel_haenszel"],
        )
        strat = self.strata.set_index("stratum")[["OR", "lower", "upper"]]
        strat.index = [f"stratum: {s}" for s in strat.index]
        return pd.concat([top, strat])


def mantel_haenszel(df: pd.DataFrame, outcome: str, exposure: str, strata, conf: float = 0.95) -> MantelHaenszelResult:
    """
    Mantel-Haenszel odds ratio adjusted for `strata`, with the
    Robins-Breslow-Greenland variance for the log pooled OR.

    Strata lacking variation in exposure or outcome carry no information and
    are skipped (logged).
    """
    strata = [strata] if isinstance(strata, str) else list(strata)
    for c in strata:
        if c not in df.columns:
            raise KeyError(f"Column '{c}' not found in DataFrame")
    work = df[[outcome, exposure] + strata].copy()
    work[outcome] = _binary_outcome(df, outcome)
    work[exposure] = _binary_outcome(df, exposure)
    work = work.dropna()
    if work.empty:
        raise ValueError("No complete observations for Mantel-Haenszel analysis.")

    crude = odds_ratio(two_by_two(work, outcome, exposure), conf=conf)

    rows = []
    sR = sS = sPR = sPSQR = sQS = 0.0
    key = strata[0] if len(strata) == 1 else strata
    for level, grp in work.groupby(key, observed=True):
        t = two_by_two(grp, outcome, exposure)
        if (t.a + t.b) == 0 or (t.c + t.d) == 0 or (t.a + t.c) == 0 or (t.b + t.d) == 0:
            logging.warning(f"[epi] Stratum {level!r} has no variation in exposure or outcome; skipped.")
            continue
        n = t.n
        R = t.a * t.d / n
        S = t.b * t.c / n
        P = (t.a + t.d) / n
        Q = (t.b + t.c) / n
        sR += R
        sS += S
        sPR += P * R
        sPSQR += P * S + Q * R
        sQS += Q * S
        so = odds_ratio(t, conf=conf)
        rows.append({"stratum": level, "a": t.a, "b": t.b, "c": t.c, "d": t.d,
                     "OR": so["OR"], "lower": so["lower"], "upper": so["upper"]})

    if not rows:
        raise ValueError("No informative strata for Mantel-Haenszel analysis.")
    if sR == 0 or sS == 0:
        raise ValueError("Mantel-Haenszel odds ratio is undefined (zero or infinite).")

    or_mh = sR / sS
    var_log = sPR / (2 * sR ** 2) + sPSQR / (2 * sR * sS) + sQS / (2 * sS ** 2)
    se = float(np.sqrt(var_log))
    z = _z_for_conf(conf)
    adjusted = pd.Series({
        "OR": or_mh,
        "lower": float(np.exp(np.log(or_mh) - z * se)),
        "upper": float(np.exp(np.log(or_mh) + z * se)),
        "se_log": se,
    }, name="OR_MH")
    pct = 100.0 * (or_mh - crude["OR"]) / crude["OR"]
    return MantelHaenszelResult(strata=pd.DataFrame(rows), crude=crude, adjusted=adjusted, pct_change=float(pct))


@dataclass
class ChiSquareResult:
    statistic: float
    df: int
    p_value: float
    observed: pd.DataFrame
    expected: pd.DataFrame


def chisq_test(df: pd.DataFrame, row: str, col: str, correct: bool = True) -> ChiSquareResult:
    """
    Pearson's chi-square test of independence, as R's chisq.test.

    Yates' continuity correction is applied to 2x2 tables when `correct`.
    """
    obs = cross_tab(df, row, col)
    if obs.shape[0] < 2 or obs.shape[1] < 2:
        raise ValueError(f"Chi-square test needs at least a 2x2 table, got {obs.shape}")
    O = obs.to_numpy(dtype=float)
    # scipy only corrects when dof == 1, i.e. exactly the 2x2 case
    stat, p, dof, E = stats.chi2_contingency(O, correction=correct)
    if (E < 5).any():
        logging.warning("[epi] Chi-squared approximation may be incorrect (expected count < 5).")
    return ChiSquareResult(
        statistic=float(stat),
        df=int(dof),
        p_value=float(p),
        observed=obs,
        expected=pd.DataFrame(E, index=obs.index, columns=obs.columns),
    )
