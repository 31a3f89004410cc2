"""
Regression: named designs, fixed effects, robust / clustered SEs,
interactions and linear combinations.
"""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from causal_methods.ols import (
    regress, build_design, coef_table, predict, lincom, format_table,
)
from causal_methods.utils import ols_fit, add_const


@pytest.fixture
def linear_df():
    rng = np.random.RandomState(5)
    n = 500
    x = rng.normal(0, 1, n)
    z = rng.normal(0, 1, n)
    g = rng.randint(0, 10, n)
    y = 1.0 + 2.0 * x - 0.5 * z + 0.3 * g + rng.normal(0, 1, n)
    return pd.DataFrame({"y": y, "x": x, "z": z, "g": g.astype(str)})


@pytest.fixture
def panel_df():
    rng = np.random.RandomState(9)
    units, periods = 30, 8
    unit = np.repeat(np.arange(units), periods)
    time = np.tile(np.arange(periods), units)
    a_i = rng.normal(0, 1, units)[unit]
    d_t = rng.normal(0, 1, periods)[time]
    x = rng.normal(0, 1, units * periods) + a_i
    y = 1.5 * x + a_i + d_t + rng.normal(0, 0.5, units * periods)
    df = pd.DataFrame({"y": y, "x": x, "unit": unit, "time": time})
    # unbalanced, so the two-way demeaning has to iterate
    return df.drop(index=[3, 50, 51, 120]).reset_index(drop=True)


class TestDesign:

    def test_categorical_expands_with_reference_level(self, linear_df):
        X, names, levels = build_design(linear_df, ["x", "g"])
        assert names[0] == "const"
        assert "g[T.0]" not in names
        assert "g[T.9]" in names
        assert X.shape == (len(linear_df), 2 + 9)
        assert levels["g"][0] == "0"

    def test_interaction_column(self, survey):
        _, names, _ = build_design(survey, ["univ", "female"], [("univ", "female")])
        assert names == ["const", "univ", "female", "univ:female"]


class TestRegress:

    def test_recovers_coefficients(self, linear_df):
        res = regress(linear_df, "y", ["x", "z"], fixed_effects=["g"])
        assert res["params"]["x"] == pytest.approx(2.0, abs=0.15)
        assert res["params"]["z"] == pytest.approx(-0.5, abs=0.15)

    def test_classical_matches_ols_fit(self, linear_df):
        res = regress(linear_df, "y", ["x", "z"])
        b, se, _, _ = ols_fit(add_const(linear_df[["x", "z"]].values), linear_df["y"].values)
        np.testing.assert_allclose(res["params"].values, b)
        np.testing.assert_allclose(res["bse"].values, se)

    def test_absorbed_equals_dummies(self, survey):
        dummies = regress(survey, "trust", ["univ", "female", "age"],
                          fixed_effects=["country"])
        absorbed = regress(survey, "trust", ["univ", "female", "age"],
                           fixed_effects=["country"], absorb=True)
        for term in ("univ", "female", "age"):
            assert absorbed["params"][term] == pytest.approx(dummies["params"][term])
            assert absorbed["bse"][term] == pytest.approx(dummies["bse"][term])
        assert absorbed["df_resid"] == dummies["df_resid"]
        assert "const" not in absorbed["params"].index

    def test_two_way_absorbed_equals_dummies(self, panel_df):
        dummies = regress(panel_df, "y", ["x"], fixed_effects=["unit", "time"])
        absorbed = regress(panel_df, "y", ["x"], fixed_effects=["unit", "time"],
                           absorb=True)
        assert absorbed["params"]["x"] == pytest.approx(dummies["params"]["x"], abs=1e-6)
        assert absorbed["df_resid"] == dummies["df_resid"]

    def test_hc1_is_scaled_hc0(self, linear_df):
        hc0 = regress(linear_df, "y", ["x", "z"], se_type="HC0")
        hc1 = regress(linear_df, "y", ["x", "z"], se_type="HC1")
        n, k = hc0["nobs"], 3
        np.testing.assert_allclose(hc1["bse"].values,
                                   hc0["bse"].values * np.sqrt(n / (n - k)))

    def test_cluster_inference_uses_g_minus_one(self, linear_df):
        res = regress(linear_df, "y", ["x", "z"], se_type="cluster", cluster="g")
        assert res["n_clusters"] == 10
        t = res["tvalues"]["x"]
        assert res["pvalues"]["x"] == pytest.approx(2 * stats.t.sf(abs(t), 9))

    def test_cluster_requires_labels(self, linear_df):
        with pytest.raises(ValueError):
            regress(linear_df, "y", ["x"], se_type="cluster")

    def test_single_cluster_raises(self, linear_df):
        with pytest.raises(ValueError):
            regress(linear_df, "y", ["x"], se_type="cluster",
                    cluster=np.zeros(len(linear_df)))

    def test_unknown_se_type(self, linear_df):
        with pytest.raises(ValueError):
            regress(linear_df, "y", ["x"], se_type="HC9")

    def test_zero_weights_are_dropped(self, linear_df):
        w = np.ones(len(linear_df))
        w[:100] = 0
        res = regress(linear_df, "y", ["x"], weights=w)
        sub = regress(linear_df.iloc[100:], "y", ["x"])
        assert res["nobs"] == len(linear_df) - 100
        assert res["params"]["x"] == pytest.approx(sub["params"]["x"])

    def test_missing_rows_dropped(self, linear_df):
        df = linear_df.copy()
        df.loc[:9, "z"] = np.nan
        assert regress(df, "y", ["x", "z"])["nobs"] == len(df) - 10


class TestPostEstimation:

    def test_predict_reproduces_fitted(self, linear_df):
        res = regress(linear_df, "y", ["x"], fixed_effects=["g"])
        np.testing.assert_allclose(predict(res, linear_df), res["fitted"])

    def test_predict_refuses_absorbed(self, linear_df):
        res = regress(linear_df, "y", ["x"], fixed_effects=["g"], absorb=True)
        with pytest.raises(ValueError):
            predict(res, linear_df)

    def test_lincom_slope_for_women(self, survey):
        res = regress(survey, "trust", ["univ", "female"],
                      interactions=[("univ", "female")], se_type="HC1")
        out = lincom(res, {"univ": 1, "univ:female": 1})
        V = res["cov"]
        assert out["estimate"] == pytest.approx(
            res["params"]["univ"] + res["params"]["univ:female"])
        assert out["se"] == pytest.approx(np.sqrt(
            V.loc["univ", "univ"] + V.loc["univ:female", "univ:female"]
            + 2 * V.loc["univ", "univ:female"]))

    def test_lincom_unknown_term(self, linear_df):
        res = regress(linear_df, "y", ["x"])
        with pytest.raises(ValueError):
            lincom(res, {"nope": 1})

    def test_coef_table_columns(self, linear_df):
        tab = coef_table(regress(linear_df, "y", ["x", "z"]), ["x"])
        assert list(tab.columns) == ["coef", "se", "t", "p", "ci_lo", "ci_hi"]
        assert list(tab.index) == ["x"]

    def test_format_table_layout(self, linear_df):
        r1 = regress(linear_df, "y", ["x"])
        r2 = regress(linear_df, "y", ["x", "z"], fixed_effects=["g"], absorb=True)
        tab = format_table([r1, r2], terms=["x", "z"])
        assert list(tab.columns) == ["(1)", "(2)"]
        assert tab.loc["z", "(1)"] == ""
        assert tab.loc["FE", "(2)"] == "g"
        assert tab.loc["N", "(1)"] == str(len(linear_df))
