"""
Figures and PDF assembly.
"""

import matplotlib.pyplot as plt
import pytest
from matplotlib.figure import Figure

from causal_methods import plots, rdd
from causal_methods.balance import balance_table
from causal_methods.ols import regress
from causal_methods.report import Report, savefig
from causal_methods.ttest import summarize_by


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


class TestPlots:

    def test_group_means(self, survey):
        fig = plots.plot_group_means(summarize_by(survey, "trust", "univ"))
        assert isinstance(fig, Figure)

    def test_coefficients_and_interaction(self, survey):
        r1 = regress(survey, "trust", ["univ"])
        r2 = regress(survey, "trust", ["univ", "female"],
                     interactions=[("univ", "female")])
        assert isinstance(plots.plot_coefficients([r1, r2], "univ"), Figure)
        fig = plots.plot_interaction(r2, "univ", "female")
        assert len(fig.axes[0].lines) == 2

    def test_overlap_panels(self, matching_df):
        ps = matching_df["x1"].rank(pct=True).values * 0.98
        fig = plots.plot_propensity_overlap(ps, matching_df["t"].values)
        assert len(fig.axes) == 1
        fig = plots.plot_propensity_overlap(ps, matching_df["t"].values,
                                            weights=matching_df["x2"].values + 1)
        assert len(fig.axes) == 2

    def test_love_plot(self, matching_df):
        tab = balance_table(matching_df, "t", ["x1", "x2"])
        fig = plots.love_plot([tab, tab], labels=["a", "b"])
        assert len(fig.axes[0].get_yticks()) == 2
        assert len(fig.axes[0].collections) == 2

    def test_rdd_plots(self, rdd_data):
        y, x = rdd_data
        res = rdd.estimate_rdd(y, x, 0.0, bandwidth=0.5)
        assert isinstance(plots.plot_rdd(y, x, 0.0, res), Figure)
        sens = rdd.bandwidth_sensitivity(y, x, 0.0, [0.3, 0.6])
        assert isinstance(plots.plot_bandwidth_sensitivity(sens, chosen=0.5), Figure)


class TestReport:

    def test_savefig_creates_directories(self, tmp_path):
        fig, ax = plt.subplots()
        ax.plot([0, 1], [0, 1])
        path = savefig(fig, str(tmp_path / "sub" / "f.png"))
        assert (tmp_path / "sub" / "f.png").exists()
        assert path.endswith("f.png")

    def test_build_pdf(self, tmp_path):
        report = Report("TITLE", subtitle="sub", intro="line one\n\nline <two>",
                        outdir=str(tmp_path))
        fig, ax = plt.subplots()
        ax.plot([0, 1], [1, 0])
        report.add("1. First\n\nsome text & a table\n  a   b", fig)
        report.add("2. Text only\nmore")
        assert len(report.figures()) == 1
        assert (tmp_path / "fig01.png").exists()

        pdf = report.build_pdf("out.pdf")
        with open(pdf, "rb") as f:
            assert f.read(4) == b"%PDF"
