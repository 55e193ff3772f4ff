"""
Test suite for helpers.py

Tests cover:
- Column detection and label normalisation
- Config coercions and filename helpers
- Component naming and eigenvector orientation
- Normal and chi-square distribution helpers
"""

import os
import sys

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from helpers import (
    _find_col,
    _norm_label,
    _coerce_list,
    _with_suffix,
    _component_names,
    _orient_columns,
    _xlogy,
    _normal_quantile,
    _z_for_conf,
    _normal_sf,
    _chi2_sf,
)


class TestColumnHelpers:
    """Test column matching and label normalisation"""

    def test_find_col_case_insensitive(self):
        df = pd.DataFrame(columns=['Age', 'HIV03', 'Urban'])
        assert _find_col(df, ['hiv']) == 'HIV03'
        assert _find_col(df, ['age']) == 'Age'

    def test_find_col_all_substrings_required(self):
        df = pd.DataFrame(columns=['hiv_result', 'hiv_weight'])
        assert _find_col(df, ['hiv', 'weight']) == 'hiv_weight'

    def test_find_col_no_match(self):
        df = pd.DataFrame(columns=['a', 'b'])
        assert _find_col(df, ['zzz']) is None

    def test_norm_label_collapses_whitespace(self):
        assert _norm_label("  HIV  Positive ") == "hiv positive"

    def test_norm_label_non_string(self):
        assert _norm_label(3) == "3"


class TestCoercions:
    """Test config-value coercions"""

    def test_string_split(self):
        assert _coerce_list("a; b,c") == ['a', 'b', 'c']

    def test_single_string(self):
        assert _coerce_list(" urban ") == ['urban']

    def test_list_flattening(self):
        assert _coerce_list(['a', ['b', 'c'], 'd,e']) == ['a', 'b', 'c', 'd', 'e']

    def test_none_returns_none(self):
        assert _coerce_list(None) is None

    def test_with_suffix(self):
        assert _with_suffix("scores.csv", "_2var") == "scores_2var.csv"

    def test_with_empty_suffix(self):
        assert _with_suffix("scores.csv", "") == "scores.csv"


class TestPCAHelpers:
    """Test component naming and sign convention"""

    def test_component_names(self):
        assert _component_names(3) == ['PC1', 'PC2', 'PC3']

    def test_orient_flips_negative_pivot(self):
        V = np.array([[-0.6, 0.8],
                      [-0.8, -0.6]])
        out = _orient_columns(V)
        np.testing.assert_allclose(out[:, 0], [0.6, 0.8])
        np.testing.assert_allclose(out[:, 1], [0.8, -0.6])

    def test_orient_does_not_modify_input(self):
        V = np.array([[-1.0, 0.0], [0.0, 1.0]])
        _orient_columns(V)
        assert V[0, 0] == -1.0

    def test_orient_tie_resolved_by_first_row(self):
        h = 1 / np.sqrt(2)
        a = np.array([[-h, h], [h + 1e-15, h]])
        b = np.array([[-h - 1e-15, h], [h, h]])
        np.testing.assert_allclose(_orient_columns(a)[:, 0], [h, -h])
        np.testing.assert_allclose(_orient_columns(b)[:, 0], [h, -h])
        np.testing.assert_allclose(_orient_columns(-a), _orient_columns(a))

    def test_largest_entry_positive(self):
        rng = np.random.default_rng(1)
        V = rng.normal(size=(4, 4))
        out = _orient_columns(V)
        pivots = np.argmax(np.abs(out), axis=0)
        assert np.all(out[pivots, np.arange(4)] > 0)


class TestDistributionHelpers:
    """Test normal and chi-square helpers against textbook values"""

    def test_xlogy_zero_convention(self):
        np.testing.assert_allclose(_xlogy([0, 1, 2], [0, 1, np.e]), [0.0, 0.0, 2.0])

    def test_normal_quantile(self):
        assert _normal_quantile(0.975) == pytest.approx(1.959964, abs=1e-6)

    def test_z_for_conf(self):
        assert _z_for_conf(0.95) == pytest.approx(1.959964, abs=1e-6)
        assert _z_for_conf(0.90) == pytest.approx(1.644854, abs=1e-6)

    def test_z_for_conf_invalid(self):
        with pytest.raises(ValueError):
            _z_for_conf(1.5)

    def test_normal_sf_two_sided(self):
        assert float(_normal_sf(1.959964)) == pytest.approx(0.05, abs=1e-6)
        assert float(_normal_sf(0.0)) == pytest.approx(1.0)
        assert float(_normal_sf(-1.959964)) == pytest.approx(0.05, abs=1e-6)

    def test_normal_sf_nan_propagates(self):
        out = _normal_sf(np.array([np.nan, np.inf, -np.inf, 1.0]))
        assert np.isnan(out[0])
        assert out[1] == 0.0
        assert out[2] == 0.0
        assert out[3] == pytest.approx(0.3173105, abs=1e-7)

    @pytest.mark.parametrize("x, df", [(3.841459, 1), (5.991465, 2), (7.814728, 3), (9.487729, 4)])
    def test_chi2_critical_values(self, x, df):
        assert _chi2_sf(x, df) == pytest.approx(0.05, abs=1e-5)

    def test_chi2_at_zero(self):
        assert _chi2_sf(0.0, 3) == 1.0

    def test_chi2_invalid_df(self):
        with pytest.raises(ValueError):
            _chi2_sf(1.0, 0)
