"""
Balance statistics before and after matching.
"""

import numpy as np
import pandas as pd
import pytest

from causal_methods.balance import (
    standardized_difference, variance_ratio, ecdf_stats, balance_table,
    compare_balance, summarize_match, weighted_var,
)
from causal_methods.matching import full_matching, nearest_neighbor
from causal_methods.propensity import estimate_propensity


@pytest.fixture
def scored(matching_df):
    df = matching_df.copy()
    df["ps"] = estimate_propensity(df, "t", ["x1", "x2"])["ps"]
    return df


def test_standardized_difference_att_scale():
    x = np.array([1.0, 2.0, 3.0, 0.0, 0.0, 0.0])
    t = np.array([1, 1, 1, 0, 0, 0])
    assert standardized_difference(x, t) == pytest.approx(2.0)


def test_standardized_difference_weights_shift_control_mean():
    x = np.array([1.0, 2.0, 3.0, 0.0, 3.0])
    t = np.array([1, 1, 1, 0, 0])
    w = np.array([1, 1, 1, 0, 1.0])
    # weighted control mean 3, treated mean 2, sd treated 1
    assert standardized_difference(x, t, w) == pytest.approx(-1.0)


def test_ate_denominator_pools_variances():
    x = np.array([0.0, 2.0, 0.0, 4.0])
    t = np.array([1, 1, 0, 0])
    sd = np.sqrt((2.0 + 8.0) / 2)
    assert standardized_difference(x, t, estimand="ATE") == pytest.approx(-1.0 / sd)


def test_unknown_estimand():
    with pytest.raises(ValueError):
        standardized_difference(np.ones(4), [1, 1, 0, 0], estimand="LATE")


def test_weighted_var_unweighted_case():
    x = np.array([1.0, 4.0, 7.0])
    assert weighted_var(x, np.ones(3)) == pytest.approx(np.var(x, ddof=1))


def test_variance_ratio():
    t = np.array([1, 1, 1, 0, 0, 0])
    x = np.array([0.0, 2.0, 4.0, 1.0, 2.0, 3.0])
    assert variance_ratio(x, t) == pytest.approx(4.0)
    assert np.isnan(variance_ratio(np.array([0, 1, 1, 0, 1, 0.0]), t))


def test_ecdf_stats_extremes():
    t = np.array([1, 1, 0, 0])
    same = ecdf_stats(np.array([1.0, 2.0, 1.0, 2.0]), t)
    apart = ecdf_stats(np.array([5.0, 6.0, 1.0, 2.0]), t)
    assert same["ecdf_max"] == 0
    assert apart["ecdf_max"] == pytest.approx(1.0)


class TestBalanceTable:

    def test_columns_and_rows(self, scored):
        tab = balance_table(scored, "t", ["x1", "x2"], distance=scored["ps"])
        assert list(tab.index) == ["distance", "x1", "x2"]
        assert list(tab.columns) == ["mean_treated", "mean_control", "std_mean_diff",
                                     "var_ratio", "ecdf_mean", "ecdf_max"]
        assert tab.loc["x1", "std_mean_diff"] > 0.3

    def test_categorical_covariate_expands(self, survey):
        tab = balance_table(survey, "univ", ["age", "country"])
        assert "country_DE" in tab.index
        assert "country" not in tab.index

    def test_string_dtype_covariate_expands(self, scored):
        df = scored.copy()
        df["region"] = pd.array(np.where(df["x1"] > 0, "a", "b"), dtype="string")
        tab = balance_table(df, "t", ["x1", "region"])
        assert {"region_a", "region_b"} <= set(tab.index)

    def test_matching_improves_balance(self, scored):
        res = full_matching(scored, "t", "ps")
        out = summarize_match(res, ["x1", "x2"])
        assert out["max_abs_smd_after"] < out["max_abs_smd_before"]
        assert out["max_abs_smd_after"] < 0.15
        assert out["improvement"].loc["x1", "std_mean_diff"] > 50

    def test_summarize_nearest(self, scored):
        out = summarize_match(nearest_neighbor(scored, "t", "ps", caliper=0.2), ["x1"])
        assert set(out) == {"before", "after", "improvement",
                            "max_abs_smd_before", "max_abs_smd_after"}


def test_compare_balance_percent():
    cols = ["mean_treated", "mean_control", "std_mean_diff", "var_ratio",
            "ecdf_mean", "ecdf_max"]
    before = pd.DataFrame([[1, 0, 0.5, 2.0, 0.2, 0.4]], index=["x"], columns=cols)
    after = pd.DataFrame([[1, 1, 0.0, 1.0, 0.1, 0.1]], index=["x"], columns=cols)
    imp = compare_balance(before, after)
    assert imp.loc["x", "std_mean_diff"] == pytest.approx(100)
    assert imp.loc["x", "var_ratio"] == pytest.approx(100)
    assert imp.loc["x", "ecdf_mean"] == pytest.approx(50)
