# ------------------------------------------------------------------------------
# Batch runner for both course labs.
# - PCA lab (beers2.csv):
#     * manual derivation on 2 and 3 standardised variables:
#       covariance matrix -> eigenvalues/eigenvectors -> scores
#     * prcomp on every selected column, checked against the manual route
# - Descriptive epidemiology lab (Stata survey file):
#     * config-driven recodes, written to tz2.csv
#     * frequency, prevalence and stratified prevalence tables
#     * crude vs Mantel-Haenszel odds ratios, chi-square test
#     * crude and adjusted logistic regression with an LR test
# - Tables go to results_dir/{pca,epi}; figures to figures_dir.
# - Single TQDM progress bar over the selected labs.
# ------------------------------------------------------------------------------


from __future__ import annotations
from typing import Optional, Dict, List
import os
import argparse
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from tqdm import tqdm

from data_loaders import _load_config, read_beers, read_survey, write_recoded
from helpers import _coerce_list, _with_suffix
from pca import (
    select_numeric, scale_columns, covariance_matrix, eigen_decompose,
    component_scores, explained_variance, prcomp,
)
from descriptive import (
    apply_recodes, recode_age_groups, frequency_table, prevalence,
    stratified_prevalence, mantel_haenszel, chisq_test, two_by_two, prevalence_ratio,
)
from regression import fit_logistic, compare_models
from figures_static import (
    plot_pair_with_eigenvectors, plot_scree, plot_biplot,
    plot_prevalence_bars, plot_odds_ratios,
)

# ------------------------------- Config loading -------------------------------
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
CONFIG_PATH = os.path.join(ROOT_DIR, "config.yaml")


def _show(title: str, df: pd.DataFrame, cfg: dict) -> None:
    if bool(cfg.get("diagnostics", {}).get("print_tables", True)):
        print(f"\n{title}\n{df.round(4).to_string()}")


def _save(df: pd.DataFrame, out_dir: str, fname: str, index: bool = True) -> str:
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, fname)
    df.to_csv(path, index=index)
    return path


def _figure(fig, cfg: dict, PATHS: dict, name: str) -> None:
    fcfg = cfg.get("figures", {})
    path = os.path.join(PATHS["figures_dir"], f"{name}.{fcfg.get('format', 'pdf')}")
    os.makedirs(PATHS["figures_dir"], exist_ok=True)
    fig.savefig(path, dpi=int(fcfg.get("dpi", 150)), bbox_inches="tight")
    plt.close(fig)


# ------------------------------------ PCA -------------------------------------
def run_pca(cfg: dict, PATHS: dict) -> Dict[str, pd.DataFrame]:
    """
    Manual 2- and 3-variable PCA plus prcomp on all selected beer columns.
    """
    P = cfg.get("pca", {})
    FN = cfg.get("filenames", {})
    figs_on = bool(cfg.get("figures", {}).get("enabled", True))
    center = bool(P.get("center", True))
    scale = bool(P.get("scale", True))
    out_dir = os.path.join(PATHS["results_dir"], "pca")

    beers = read_beers(PATHS["beers_csv"])
    data = select_numeric(beers, _coerce_list(P.get("columns")))
    n_before = len(data)
    data = data.dropna()
    if len(data) < n_before:
        print(f"[pca] Dropped {n_before - len(data)} beers with missing ratings.")
    print(f"[pca] {len(data)} beers x {data.shape[1]} variables: {list(data.columns)}")
    if data.shape[1] < 2:
        raise ValueError("PCA needs at least two numeric columns.")

    subsets = {"2var": _coerce_list(P.get("two_var")) or list(data.columns[:2])}
    if data.shape[1] >= 3:
        subsets["3var"] = _coerce_list(P.get("three_var")) or list(data.columns[:3])

    results: Dict[str, pd.DataFrame] = {}
    manual_full = None
    for tag, cols in subsets.items():
        scaled = scale_columns(data[cols], center=center, scale=scale)
        cov = covariance_matrix(scaled)
        vals, vecs = eigen_decompose(cov)
        scores = component_scores(scaled, vecs)
        eigen = vecs.T.assign(eigenvalue=vals).join(explained_variance(vals)[["proportion", "cumulative"]])
        results[f"cov_{tag}"] = cov
        results[f"eigen_{tag}"] = eigen
        results[f"scores_{tag}"] = scores
        _show(f"[pca] Covariance matrix ({tag})", cov, cfg)
        _show(f"[pca] Eigenvalues and eigenvectors ({tag})", eigen, cfg)
        print(f"[pca] {tag}: trace={np.trace(cov.to_numpy()):.4f}, sum(eigenvalues)={vals.sum():.4f}")
        _save(cov, out_dir, f"cov_{tag}.csv")
        _save(eigen, out_dir, _with_suffix(FN.get("eigen", "eigen.csv"), f"_{tag}"))
        if figs_on:
            _figure(plot_pair_with_eigenvectors(scaled, cols[0], cols[1], vals, vecs), cfg, PATHS,
                    f"pca_pair_{tag}")
        if len(cols) == data.shape[1]:
            manual_full = vals

    res = prcomp(data, center=center, scale=scale, dropna=bool(P.get("dropna", True)))
    summary = res.summary()
    results["summary"] = summary
    results["rotation"] = res.rotation
    results["scores"] = res.x
    _show("[pca] prcomp summary", summary, cfg)
    _show("[pca] prcomp rotation", res.rotation, cfg)
    if manual_full is not None:
        same = bool(np.allclose(res.eigenvalues.to_numpy(), manual_full.to_numpy()))
        print(f"[pca] prcomp eigenvalues match the manual eigendecomposition: {same}")

    _save(summary, out_dir, FN.get("pca_summary", "prcomp_summary.csv"))
    _save(res.rotation, out_dir, FN.get("pca_rotation", "prcomp_rotation.csv"))
    _save(res.x, out_dir, FN.get("pca_scores", "prcomp_scores.csv"))

    if figs_on:
        _figure(plot_scree(res.eigenvalues), cfg, PATHS, "pca_scree")
        if res.x.shape[1] >= 2:
            _figure(plot_biplot(res), cfg, PATHS, "pca_biplot")
    print(f"[output] PCA tables saved in {out_dir}")
    return results


# ----------------------------------- Epi --------------------------------------
def run_epi(cfg: dict, PATHS: dict) -> Dict[str, object]:
    """
    Recode the survey, write tz2.csv, then tabulate and model the outcome.
    """
    S = cfg.get("survey", {})
    R = cfg.get("regression", {})
    FN = cfg.get("filenames", {})
    figs_on = bool(cfg.get("figures", {}).get("enabled", True))
    conf = float(S.get("conf", 0.95))
    out_dir = os.path.join(PATHS["results_dir"], "epi")

    raw = read_survey(PATHS["survey_file"], convert_categoricals=bool(S.get("convert_categoricals", True)))
    print(f"[epi] Loaded survey: {len(raw):,} respondents, {raw.shape[1]} variables")
    rec = apply_recodes(raw, cfg.get("recodes", {}))
    write_recoded(rec, PATHS["recoded_csv"])
    print(f"[epi] Recoded {list(cfg.get('recodes', {}))} -> {PATHS['recoded_csv']}")

    outcome = S["outcome"]
    exposure = S["exposure"]
    strata: List[str] = _coerce_list(S.get("strata")) or []

    work = rec.copy()
    age_col = S.get("age")
    breaks = S.get("age_breaks")
    by_vars = [exposure] + strata
    if age_col in work.columns and breaks:
        work["agegrp"] = recode_age_groups(work[age_col], breaks)
        by_vars.append("agegrp")

    results: Dict[str, object] = {}

    freq = pd.concat(
        {c: frequency_table(work, c).reset_index().rename(columns={c: "level"})
         for c in [outcome] + by_vars},
        names=["variable", "row"],
    ).reset_index(level="row", drop=True)
    results["frequency"] = freq
    _show("[epi] Frequency tables", freq, cfg)

    prev_parts = {"overall": prevalence(work, outcome, conf=conf).rename_axis("level").reset_index()}
    for v in by_vars:
        prev_parts[v] = prevalence(work, outcome, by=v, conf=conf).rename_axis("level").reset_index()
    prev = pd.concat(prev_parts, names=["variable", "row"]).reset_index(level="row", drop=True)
    results["prevalence"] = prev
    _show(f"[epi] Prevalence of {outcome}", prev, cfg)

    table = two_by_two(work, outcome, exposure)
    results["two_by_two"] = table.as_frame()
    results["prevalence_ratio"] = prevalence_ratio(table, conf=conf)
    _show(f"[epi] 2x2 table: {exposure} x {outcome}", table.as_frame(), cfg)

    chi = chisq_test(work, exposure, outcome)
    results["chisq"] = chi
    print(f"[epi] Pearson chi-square ({exposure} x {outcome}): X2={chi.statistic:.3f}, df={chi.df}, p={chi.p_value:.4g}")

    if strata:
        strat = stratified_prevalence(work, outcome, exposure, strata, conf=conf)
        results["stratified"] = strat
        _show(f"[epi] Prevalence of {outcome} by {exposure} within {strata}", strat, cfg)
        _save(strat, out_dir, FN.get("stratified", "stratified_prevalence.csv"), index=False)

        mh = mantel_haenszel(work, outcome, exposure, strata, conf=conf)
        results["mantel_haenszel"] = mh
        _show("[epi] Crude vs Mantel-Haenszel odds ratios", mh.to_frame(), cfg)
        print(f"[epi] Crude -> adjusted change: {mh.pct_change:+.1f}% "
              f"({'suggests' if mh.confounded() else 'no evidence of'} confounding by {strata})")
        _save(mh.to_frame(), out_dir, FN.get("mantel_haenszel", "mantel_haenszel.csv"))
        if figs_on:
            _figure(plot_prevalence_bars(strat, x=strata[0], hue=exposure), cfg, PATHS, "epi_stratified_prevalence")

    crude_preds = _coerce_list(R.get("crude")) or [exposure]
    adj_preds = _coerce_list(R.get("adjusted")) or crude_preds
    categorical = _coerce_list(R.get("categorical")) or []
    reference = R.get("reference") or {}
    fit_kw = dict(max_iter=int(R.get("max_iter", 25)), tol=float(R.get("tol", 1e-8)))

    # both models on the same complete cases so they are nested
    cc = work.dropna(subset=list(dict.fromkeys([outcome] + crude_preds + adj_preds)))
    crude = fit_logistic(cc, outcome, crude_preds, categorical, reference, **fit_kw)
    adjusted = fit_logistic(cc, outcome, adj_preds, categorical, reference, **fit_kw)
    results["logit_crude"] = crude
    results["logit_adjusted"] = adjusted

    logit_tab = pd.concat({
        "crude": crude.summary().join(crude.odds_ratios(conf)),
        "adjusted": adjusted.summary().join(adjusted.odds_ratios(conf)),
    }, names=["model", "term"])
    results["logit"] = logit_tab
    _show("[epi] Logistic regression", logit_tab, cfg)

    models = {"crude": crude}
    if adjusted.df_resid < crude.df_resid:
        models["adjusted"] = adjusted
    anova = compare_models(models)
    results["anova"] = anova
    _show("[epi] Analysis of deviance", anova, cfg)

    _save(freq, out_dir, FN.get("frequency", "frequency.csv"))
    _save(prev, out_dir, FN.get("prevalence", "prevalence.csv"))
    _save(logit_tab, out_dir, FN.get("logit", "logit.csv"))
    _save(anova, out_dir, "anova.csv")

    if figs_on:
        _figure(plot_prevalence_bars(prev_parts[exposure], x="level"), cfg, PATHS, "epi_prevalence_by_exposure")
        _figure(plot_odds_ratios(adjusted.odds_ratios(conf)), cfg, PATHS, "epi_odds_ratios")
    print(f"[output] Epi tables saved in {out_dir}")
    return results


# ----------------------------------- Main -------------------------------------
LABS = {"pca": run_pca, "epi": run_epi}


def main(argv: Optional[List[str]] = None) -> Dict[str, dict]:
    parser = argparse.ArgumentParser(description="Run the Social Epidemiology course labs end-to-end.")
    parser.add_argument("--config", default=CONFIG_PATH, help="YAML config (defaults to ./config.yaml)")
    parser.add_argument("--only", choices=sorted(LABS), action="append",
                        help="Run only this lab (repeatable).")
    args = parser.parse_args(argv)

    cfg, PATHS = _load_config(ROOT_DIR, args.config)
    os.makedirs(PATHS["results_dir"], exist_ok=True)

    selected = args.only or list(LABS)
    out: Dict[str, dict] = {}
    for name in tqdm(selected, desc="labs", unit="lab"):
        out[name] = LABS[name](cfg, PATHS)
    print(f"[output] Results saved in {PATHS['results_dir']}")
    return out


if __name__ == "__main__":
    main()
