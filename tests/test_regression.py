# tests/test_regression.py
"""
Test suite for regression.py

Tests cover:
- Treatment-contrast design matrices
- Logistic regression by IRLS (estimates, standard errors, diagnostics)
- Prediction from a fitted model
- Likelihood-ratio tests and deviance tables
"""

import logging
import os
import sys

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from regression import (
    design_matrix,
    fit_logistic,
    likelihood_ratio_test,
    compare_models,
    LogitResult,
)


def _cells(a, b, c, d, **extra):
    rows = ([(1, 1)] * a + [(1, 0)] * b + [(0, 1)] * c + [(0, 0)] * d)
    df = pd.DataFrame(rows, columns=["female", "hiv"])
    for k, v in extra.items():
        df[k] = v
    return df


@pytest.fixture
def table_df():
    return _cells(20, 80, 10, 90)


@pytest.fixture
def confounded_df():
    return pd.concat([_cells(40, 40, 10, 10, urban="urban"),
                      _cells(5, 45, 20, 180, urban="rural")], ignore_index=True)


@pytest.fixture
def survey():
    """Simulated respondents with a known logistic model."""
    rng = np.random.default_rng(7)
    n = 1500
    female = rng.integers(0, 2, size=n)
    age = rng.integers(15, 50, size=n)
    urban = rng.choice(["rural", "urban"], size=n, p=[0.7, 0.3])
    eta = -1.0 + 0.5 * female + 0.04 * (age - 30) + 0.8 * (urban == "urban")
    hiv = rng.binomial(1, 1.0 / (1.0 + np.exp(-eta)))
    return pd.DataFrame({"hiv": hiv, "female": female, "age": age, "urban": urban})


# ============================================================================
# Design matrix
# ============================================================================
class TestDesignMatrix:
    """Test design_matrix"""

    def test_numeric_predictors(self, survey):
        X = design_matrix(survey, ["female", "age"])
        assert list(X.columns) == ["(Intercept)", "female", "age"]
        assert (X["(Intercept)"] == 1.0).all()

    def test_string_predictor_dummy_coded(self, survey):
        X = design_matrix(survey, ["urban"])
        assert list(X.columns) == ["(Intercept)", "urbanurban"]
        assert X["urbanurban"].sum() == (survey["urban"] == "urban").sum()

    def test_reference_level(self, survey):
        X = design_matrix(survey, ["urban"], reference={"urban": "urban"})
        assert list(X.columns) == ["(Intercept)", "urbanrural"]

    def test_numeric_codes_as_categorical(self):
        df = pd.DataFrame({"region": [0, 1, 2, 1, 0]})
        X = design_matrix(df, ["region"], categorical=["region"])
        assert list(X.columns) == ["(Intercept)", "region1", "region2"]
        assert X["region2"].tolist() == [0.0, 0.0, 1.0, 0.0, 0.0]

    def test_categorical_dtype_keeps_order(self):
        s = pd.Categorical(["low", "high", "mid", "low"], categories=["low", "mid", "high"])
        X = design_matrix(pd.DataFrame({"ses": s}), ["ses"])
        assert list(X.columns) == ["(Intercept)", "sesmid", "seshigh"]

    def test_missing_kept_as_nan(self):
        df = pd.DataFrame({"urban": ["urban", None, "rural"]})
        X = design_matrix(df, ["urban"])
        assert np.isnan(X["urbanurban"].iloc[1])

    def test_single_level_rejected(self):
        with pytest.raises(ValueError, match="at least 2 levels"):
            design_matrix(pd.DataFrame({"urban": ["urban", "urban"]}), ["urban"])

    def test_bad_reference(self, survey):
        with pytest.raises(ValueError, match="Reference level"):
            design_matrix(survey, ["urban"], reference={"urban": "suburban"})

    def test_missing_predictor(self, survey):
        with pytest.raises(KeyError):
            design_matrix(survey, ["income"])


# ============================================================================
# Fit
# ============================================================================
class TestFitLogistic:
    """Test fit_logistic"""

    def test_single_binary_predictor_matches_2x2(self, table_df):
        m = fit_logistic(table_df, "hiv", ["female"])
        assert isinstance(m, LogitResult)
        assert m.converged
        assert np.exp(m.params["female"]) == pytest.approx(2.25, rel=1e-6)
        assert m.params["(Intercept)"] == pytest.approx(np.log(10 / 90), rel=1e-6)
        assert m.bse["female"] == pytest.approx(np.sqrt(1 / 20 + 1 / 80 + 1 / 10 + 1 / 90), rel=1e-5)

    def test_string_predictor_name(self, table_df):
        m = fit_logistic(table_df, "hiv", "female")
        assert m.predictors == ["female"]

    def test_adjusted_or_matches_mantel_haenszel(self, confounded_df):
        crude = fit_logistic(confounded_df, "hiv", ["female"])
        adj = fit_logistic(confounded_df, "hiv", ["female", "urban"])
        assert np.exp(crude.params["female"]) == pytest.approx(8550 / 2550, rel=1e-6)
        assert np.exp(adj.params["female"]) == pytest.approx(1.0, abs=1e-5)
        assert "urbanurban" in adj.params.index

    def test_recovers_simulated_effects(self, survey):
        m = fit_logistic(survey, "hiv", ["female", "age", "urban"])
        assert m.params["female"] == pytest.approx(0.5, abs=0.35)
        assert m.params["age"] == pytest.approx(0.04, abs=0.025)
        assert m.params["urbanurban"] == pytest.approx(0.8, abs=0.35)

    def test_mean_fitted_equals_mean_outcome(self, survey):
        m = fit_logistic(survey, "hiv", ["female", "age", "urban"])
        fitted = m.predict(survey)
        assert fitted.mean() == pytest.approx(survey["hiv"].mean(), abs=1e-6)

    def test_fit_statistics(self, survey):
        m = fit_logistic(survey, "hiv", ["female", "age", "urban"])
        assert m.n_obs == len(survey)
        assert m.df_resid == len(survey) - 4
        assert m.df_null == len(survey) - 1
        assert m.aic == pytest.approx(m.deviance + 2 * 4)
        assert m.loglik == pytest.approx(-0.5 * m.deviance)
        assert m.deviance < m.null_deviance

    def test_summary_layout(self, survey):
        s = fit_logistic(survey, "hiv", ["female", "age"]).summary()
        assert list(s.columns) == ["Estimate", "Std. Error", "z value", "Pr(>|z|)"]
        assert list(s.index) == ["(Intercept)", "female", "age"]
        np.testing.assert_allclose(s["z value"], s["Estimate"] / s["Std. Error"])
        assert s["Pr(>|z|)"].between(0, 1).all()

    def test_odds_ratios(self, table_df):
        ors = fit_logistic(table_df, "hiv", ["female"]).odds_ratios()
        assert list(ors.columns) == ["OR", "lower", "upper"]
        assert ors.loc["female", "lower"] < 2.25 < ors.loc["female", "upper"]
        narrow = fit_logistic(table_df, "hiv", ["female"]).odds_ratios(conf=0.80)
        assert narrow.loc["female", "lower"] > ors.loc["female", "lower"]

    def test_drops_missing_rows(self, table_df, caplog):
        df = table_df.astype(float)
        df.loc[0, "female"] = np.nan
        df.loc[5, "hiv"] = np.nan
        with caplog.at_level(logging.WARNING):
            m = fit_logistic(df, "hiv", ["female"])
        assert m.n_obs == 198
        assert "2 observations deleted" in caplog.text

    def test_outcome_must_be_binary(self, table_df):
        df = table_df.copy()
        df.loc[0, "hiv"] = 2
        with pytest.raises(ValueError, match="0/1"):
            fit_logistic(df, "hiv", ["female"])

    def test_collinear_predictors(self, table_df):
        df = table_df.assign(female_copy=table_df["female"])
        with pytest.raises(ValueError, match="rank deficient"):
            fit_logistic(df, "hiv", ["female", "female_copy"])

    def test_too_few_observations(self):
        df = pd.DataFrame({"hiv": [0, 1], "female": [0, 1]})
        with pytest.raises(ValueError):
            fit_logistic(df, "hiv", ["female"])

    def test_non_convergence_logged(self, survey, caplog):
        with caplog.at_level(logging.WARNING):
            m = fit_logistic(survey, "hiv", ["female", "age", "urban"], max_iter=1)
        assert not m.converged
        assert m.iterations == 1
        assert "did not converge" in caplog.text

    def test_missing_column(self, table_df):
        with pytest.raises(KeyError):
            fit_logistic(table_df, "hiv", ["urban"])


class TestPredict:
    """Test LogitResult.predict"""

    def test_response_and_link(self, table_df):
        m = fit_logistic(table_df, "hiv", ["female"])
        new = pd.DataFrame({"female": [0, 1]})
        np.testing.assert_allclose(m.predict(new).to_numpy(), [0.1, 0.2], atol=1e-6)
        np.testing.assert_allclose(m.predict(new, kind="link").to_numpy(),
                                   [np.log(1 / 9), np.log(0.25)], atol=1e-5)

    def test_categorical_levels_reused(self, confounded_df):
        m = fit_logistic(confounded_df, "hiv", ["female", "urban"])
        new = pd.DataFrame({"female": [0, 0], "urban": ["rural", "urban"]})
        p = m.predict(new).to_numpy()
        np.testing.assert_allclose(p, [0.1, 0.5], atol=1e-6)

    def test_bad_kind(self, table_df):
        m = fit_logistic(table_df, "hiv", ["female"])
        with pytest.raises(ValueError):
            m.predict(table_df, kind="odds")


# ============================================================================
# Model comparison
# ============================================================================
class TestModelComparison:
    """Test likelihood_ratio_test and compare_models"""

    def test_lrt(self, survey):
        m1 = fit_logistic(survey, "hiv", ["female"])
        m2 = fit_logistic(survey, "hiv", ["female", "age", "urban"])
        lrt = likelihood_ratio_test(m1, m2)
        assert lrt["df"] == 2
        assert lrt["statistic"] == pytest.approx(m1.deviance - m2.deviance)
        assert lrt["p_value"] < 0.05

    def test_lrt_wrong_order(self, survey):
        m1 = fit_logistic(survey, "hiv", ["female"])
        m2 = fit_logistic(survey, "hiv", ["female", "age"])
        with pytest.raises(ValueError):
            likelihood_ratio_test(m2, m1)

    def test_lrt_different_samples(self, survey):
        m1 = fit_logistic(survey.iloc[:1000], "hiv", ["female"])
        m2 = fit_logistic(survey, "hiv", ["female", "age"])
        with pytest.raises(ValueError, match="different numbers"):
            likelihood_ratio_test(m1, m2)

    def test_compare_models_table(self, survey):
        models = {
            "crude": fit_logistic(survey, "hiv", ["female"]),
            "adjusted": fit_logistic(survey, "hiv", ["female", "age", "urban"]),
        }
        tab = compare_models(models)
        assert list(tab.index) == ["crude", "adjusted"]
        assert np.isnan(tab.loc["crude", "Df"])
        assert tab.loc["adjusted", "Df"] == 2
        assert tab.loc["adjusted", "Deviance"] > 0
        assert tab.loc["adjusted", "AIC"] == pytest.approx(models["adjusted"].aic)
