"""Unit tests for per-gene Tweedie GLM differential expression."""

import logging

import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm
from statsmodels.stats.multitest import multipletests
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from data.glm import RESULT_COLUMNS, fit_tweedie_glm, tweedie_differential_expression
from data.utils import RESISTANCE_COL, RESISTANT, SUSCEPTIBLE


def _make_dataset():
    samples = ["R1", "R2", "R3", "R4", "P1", "P2", "P3", "P4"]
    expr_df = pd.DataFrame(
        {
            # 4-fold higher in resistant samples
            "b0001": [400.0, 405.0, 395.0, 402.0, 100.0, 102.0, 98.0, 101.0],
            # same distribution in both groups
            "b0002": [100.0, 110.0, 90.0, 105.0, 100.0, 110.0, 90.0, 105.0],
            # 4-fold lower in resistant samples
            "b0003": [25.0, 26.0, 24.0, 25.5, 100.0, 104.0, 96.0, 101.0],
            # no signal
            "b0004": [0.0] * 8,
        },
        index=samples,
    ).T
    expr_df.index.name = "gene_id"
    annot_df = pd.DataFrame(
        {RESISTANCE_COL: [RESISTANT] * 4 + [SUSCEPTIBLE] * 4}, index=samples
    )
    return expr_df, annot_df


class TestFitTweedieGlm:

    def test_log2_fold_change(self):
        y = np.array([400.0, 405.0, 395.0, 402.0, 100.0, 102.0, 98.0, 101.0])
        condition = np.array([1, 1, 1, 1, 0, 0, 0, 0])

        stats = fit_tweedie_glm(y, condition)

        expected = np.log2(y[:4].mean() / y[4:].mean())
        assert stats["log2FoldChange"] == pytest.approx(expected, rel=1e-4)
        assert stats["coef"] == pytest.approx(expected * np.log(2), rel=1e-4)
        assert stats["pvalue"] < 1e-6

    def test_group_without_signal(self):
        y = np.array([0.0, 0.0, 0.0, 5.0, 6.0, 7.0])
        condition = np.array([1, 1, 1, 0, 0, 0])

        stats = fit_tweedie_glm(y, condition)

        assert all(np.isnan(v) for v in stats.values())


class TestTweedieDifferentialExpression:

    def test_results(self, caplog):
        expr_df, annot_df = _make_dataset()

        with caplog.at_level(logging.WARNING):
            result_df = tweedie_differential_expression(
                expr_df, annot_df, RESISTANCE_COL, RESISTANT, SUSCEPTIBLE
            )

        assert result_df.columns.tolist() == list(RESULT_COLUMNS)
        assert result_df.index.tolist() == expr_df.index.tolist()
        assert result_df.index.name == "gene_id"

        assert result_df.loc["b0001", "log2FoldChange"] == pytest.approx(2.0, abs=0.05)
        assert result_df.loc["b0003", "log2FoldChange"] == pytest.approx(-2.0, abs=0.05)
        assert result_df.loc["b0002", "log2FoldChange"] == pytest.approx(0.0, abs=1e-6)
        assert result_df.loc["b0002", "pvalue"] > 0.9
        assert result_df.loc["b0001", "qvalue"] < 0.05

        # unfitted genes are reported but excluded from the correction
        assert result_df.loc["b0004"].isna().all()
        assert "could not be fitted for 1 out of 4 genes" in caplog.text

        fitted = result_df.dropna()
        assert (fitted["qvalue"] >= fitted["pvalue"] - 1e-12).all()

    def test_extra_samples_are_ignored(self):
        expr_df, annot_df = _make_dataset()
        annot_df.loc["X1", RESISTANCE_COL] = "unknown"
        expr_df["X1"] = 1e6

        result_df = tweedie_differential_expression(
            expr_df, annot_df, RESISTANCE_COL, RESISTANT, SUSCEPTIBLE
        )

        assert result_df.loc["b0001", "log2FoldChange"] == pytest.approx(2.0, abs=0.05)

    def test_negative_values(self):
        expr_df, annot_df = _make_dataset()
        expr_df.loc["b0002", "R1"] = -1.0

        with pytest.raises(ValueError, match="non-negative"):
            tweedie_differential_expression(
                expr_df, annot_df, RESISTANCE_COL, RESISTANT, SUSCEPTIBLE
            )

    def test_missing_group(self):
        expr_df, annot_df = _make_dataset()

        with pytest.raises(ValueError, match="Both"):
            tweedie_differential_expression(
                expr_df.loc[:, ["R1", "R2", "R3", "R4"]],
                annot_df,
                RESISTANCE_COL,
                RESISTANT,
                SUSCEPTIBLE,
            )

    def test_fit_failures_are_excluded_from_correction(self, monkeypatch, caplog):
        expr_df, annot_df = _make_dataset()
        failing = expr_df.loc["b0002"].values
        original_fit = sm.GLM.fit

        def fit(model, *args, **kwargs):
            if np.allclose(model.endog, failing):
                raise ConvergenceWarning("IRLS did not converge")
            return original_fit(model, *args, **kwargs)

        monkeypatch.setattr(sm.GLM, "fit", fit)

        with caplog.at_level(logging.WARNING):
            result_df = tweedie_differential_expression(
                expr_df, annot_df, RESISTANCE_COL, RESISTANT, SUSCEPTIBLE
            )

        assert result_df.loc["b0002"].isna().all()
        assert "could not be fitted for 2 out of 4 genes" in caplog.text

        fitted = result_df.loc[["b0001", "b0003"]]
        expected = multipletests(fitted["pvalue"].values, method="fdr_bh")[1]
        assert fitted["qvalue"].values == pytest.approx(expected)

    def test_signal_in_one_group_only(self, caplog):
        expr_df, annot_df = _make_dataset()
        # switched off in every resistant strain
        expr_df.loc["b0003", ["R1", "R2", "R3", "R4"]] = 0.0

        with caplog.at_level(logging.WARNING):
            result_df = tweedie_differential_expression(
                expr_df, annot_df, RESISTANCE_COL, RESISTANT, SUSCEPTIBLE
            )

        assert result_df.loc["b0003"].isna().all()
        assert "1 genes have no signal in resistant samples only" in caplog.text
        assert "b0003" in caplog.text
        # all-zero genes are not reported as one-group genes
        assert "no signal in susceptible samples only" not in caplog.text
        assert result_df.loc["b0001", "qvalue"] < 0.05
