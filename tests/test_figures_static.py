# tests/test_figures_static.py
"""
Smoke tests for figures_static.py: every plot returns a Figure, saves when
given a path, and rejects inputs it cannot draw.
"""

import os
import sys

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from figures_static import (
    plot_pair_with_eigenvectors,
    plot_scree,
    plot_biplot,
    plot_prevalence_bars,
    plot_odds_ratios,
)
from pca import select_numeric, scale_columns, covariance_matrix, eigen_decompose, prcomp


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


@pytest.fixture
def beers():
    rng = np.random.default_rng(3)
    base = rng.normal(size=40)
    return pd.DataFrame({
        "beer": [f"b{i}" for i in range(40)],
        "cost": base + rng.normal(scale=0.5, size=40),
        "alcohol": base + rng.normal(scale=0.8, size=40),
        "taste": -base + rng.normal(scale=1.0, size=40),
    })


@pytest.fixture
def prevalence_table():
    return pd.DataFrame({
        "n": [100, 120, 90],
        "cases": [5, 12, 18],
        "prevalence": [0.05, 0.10, 0.20],
        "lower": [0.02, 0.06, 0.13],
        "upper": [0.11, 0.17, 0.29],
    }, index=pd.Index(["15-19", "20-24", "25-29"], name="agegrp"))


class TestPCAFigures:
    """Test PCA plots"""

    def test_pair_with_eigenvectors(self, beers, tmp_path):
        z = scale_columns(select_numeric(beers, ["cost", "alcohol"]))
        vals, vecs = eigen_decompose(covariance_matrix(z))
        path = tmp_path / "figs" / "pair.png"
        fig = plot_pair_with_eigenvectors(z, "cost", "alcohol", vals, vecs, fig_path=str(path))
        assert isinstance(fig, plt.Figure)
        assert path.exists()

    def test_pair_without_vectors(self, beers):
        z = scale_columns(select_numeric(beers))
        fig = plot_pair_with_eigenvectors(z, "cost", "taste")
        assert fig.axes[0].get_xlabel() == "cost"

    def test_pair_missing_column(self, beers):
        with pytest.raises(KeyError):
            plot_pair_with_eigenvectors(select_numeric(beers), "cost", "bitterness")

    def test_scree_two_panels(self, beers, tmp_path):
        res = prcomp(beers)
        path = tmp_path / "scree.pdf"
        fig = plot_scree(res.eigenvalues, fig_path=str(path))
        assert len(fig.axes) == 2
        assert fig.axes[0].get_title(loc="left") == "a."
        assert path.exists()

    def test_biplot_labels(self, beers):
        res = prcomp(beers)
        fig = plot_biplot(res)
        assert fig.axes[0].get_xlabel().startswith("PC1 (")
        labels = {t.get_text() for t in fig.axes[0].texts}
        assert {"cost", "alcohol", "taste"} <= labels

    def test_biplot_unknown_component(self, beers):
        res = prcomp(beers, columns=["cost", "alcohol"])
        with pytest.raises(KeyError):
            plot_biplot(res, pcs=(1, 3))


class TestEpiFigures:
    """Test prevalence and odds ratio plots"""

    def test_prevalence_from_indexed_table(self, prevalence_table, tmp_path):
        path = tmp_path / "prev.png"
        fig = plot_prevalence_bars(prevalence_table, x="agegrp", fig_path=str(path))
        assert isinstance(fig, plt.Figure)
        assert path.exists()

    def test_prevalence_with_hue(self):
        strat = pd.DataFrame({
            "urban": ["rural", "rural", "urban", "urban"],
            "female": [0, 1, 0, 1],
            "prevalence": [0.04, 0.06, 0.08, 0.12],
            "lower": [0.02, 0.04, 0.05, 0.09],
            "upper": [0.07, 0.09, 0.12, 0.16],
        })
        fig = plot_prevalence_bars(strat, x="urban", hue="female")
        assert fig.axes[0].get_legend() is not None

    def test_prevalence_missing_column(self, prevalence_table):
        with pytest.raises(KeyError):
            plot_prevalence_bars(prevalence_table, x="agegrp", hue="urban")

    def test_odds_ratio_forest(self, tmp_path):
        ors = pd.DataFrame({
            "OR": [0.11, 1.8, 1.02],
            "lower": [0.07, 1.3, 1.01],
            "upper": [0.17, 2.5, 1.04],
        }, index=["(Intercept)", "female", "age"])
        path = tmp_path / "or.pdf"
        fig = plot_odds_ratios(ors, fig_path=str(path))
        ticks = [t.get_text() for t in fig.axes[0].get_yticklabels()]
        assert "(Intercept)" not in ticks
        assert fig.axes[0].get_xscale() == "log"
        assert path.exists()

    def test_odds_ratio_empty(self):
        ors = pd.DataFrame({"OR": [0.1], "lower": [0.05], "upper": [0.2]}, index=["(Intercept)"])
        with pytest.raises(ValueError):
            plot_odds_ratios(ors)
