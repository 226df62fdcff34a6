"""Unit tests for expression processing and result manipulation helpers."""

import logging

import numpy as np
import pandas as pd
import pytest

from data.utils import (
    LFC_LEVELS,
    PARENT,
    RESISTANT,
    SUSCEPTIBLE,
    align_samples,
    annotate_samples,
    collapse_gene_ids,
    combine_de_results,
    de_results_summary,
    filter_de_results,
    filter_df,
    filter_expression,
    gene_membership,
    get_antibiotics,
    parallelize_map,
    select_contrast_samples,
    threshold_str,
    top_genes,
    transform_expression,
)


def _make_result(lfcs, qvalues, genes=None):
    genes = genes or [f"b{i:04d}" for i in range(len(lfcs))]
    return pd.DataFrame(
        {
            "log2FoldChange": lfcs,
            "pvalue": [q / 2 for q in qvalues],
            "qvalue": qvalues,
        },
        index=pd.Index(genes, name="gene_id"),
    )


class TestFilterDf:

    def test_all_conditions_must_match(self, annot_df):
        df = filter_df(annot_df, {"resistance": [RESISTANT], "antibiotic": ["AMK"]})
        assert df.index.tolist() == ["GSM1", "GSM2"]

    def test_unknown_column(self, annot_df):
        with pytest.raises(ValueError, match="not part of the dataframe"):
            filter_df(annot_df, {"strain": ["MDS42"]})


class TestAlignSamples:

    def test_common_samples_in_annotation_order(self, expr_df, annot_df):
        annot_sub = annot_df.loc[["GSM4", "GSM1", "GSM2"]]
        expr_sub = expr_df.drop(columns=["GSM2"])

        expr_aligned, annot_aligned = align_samples(expr_sub, annot_sub)

        assert expr_aligned.columns.tolist() == ["GSM4", "GSM1"]
        assert annot_aligned.index.tolist() == ["GSM4", "GSM1"]

    def test_no_common_samples(self, expr_df, annot_df):
        annot_df = annot_df.rename(index=lambda x: x.replace("GSM", "S"))
        with pytest.raises(ValueError, match="no samples in common"):
            align_samples(expr_df, annot_df)


class TestFilterExpression:

    def test_min_samples_and_missing_values(self):
        expr_df = pd.DataFrame(
            {
                "s1": [0.0, 5.0, 5.0, np.nan],
                "s2": [0.0, 0.0, 5.0, 5.0],
                "s3": [1.0, 0.0, 5.0, 5.0],
            },
            index=["g1", "g2", "g3", "g4"],
        )

        assert filter_expression(expr_df, min_samples=2).index.tolist() == ["g3"]
        assert filter_expression(expr_df, min_samples=1).index.tolist() == [
            "g1",
            "g2",
            "g3",
        ]
        assert filter_expression(
            expr_df, min_samples=2, drop_na=False
        ).index.tolist() == ["g3", "g4"]

    def test_min_value(self):
        expr_df = pd.DataFrame({"s1": [1.0, 10.0], "s2": [2.0, 20.0]}, index=["g1", "g2"])
        assert filter_expression(expr_df, min_value=5.0, min_samples=2).index.tolist() == [
            "g2"
        ]


class TestTransformExpression:

    def test_log2_and_unlog2(self):
        expr_df = pd.DataFrame({"s1": [0.0, 1.0, 3.0]})

        log_df = transform_expression(expr_df, "log2")
        assert log_df["s1"].tolist() == pytest.approx([0.0, 1.0, 2.0])

        linear_df = transform_expression(pd.DataFrame({"s1": [0.0, 3.0]}), "unlog2")
        assert linear_df["s1"].tolist() == pytest.approx([1.0, 8.0])

    def test_tss(self):
        expr_df = pd.DataFrame({"s1": [1.0, 3.0], "s2": [5.0, 5.0]})
        tss_df = transform_expression(expr_df, "tss", scale=100)

        assert tss_df["s1"].tolist() == pytest.approx([25.0, 75.0])
        assert tss_df.sum(axis=0).tolist() == pytest.approx([100.0, 100.0])

    def test_none_returns_copy(self, expr_df):
        out_df = transform_expression(expr_df, "none")
        out_df.iloc[0, 0] = -1
        assert expr_df.iloc[0, 0] != -1

    def test_unsupported_method(self, expr_df):
        with pytest.raises(ValueError, match="not supported"):
            transform_expression(expr_df, "vst")


class TestCollapseGeneIds:

    def test_aggregates_and_drops_unmapped(self):
        expr_df = pd.DataFrame(
            {"s1": [1.0, 3.0, 10.0, 7.0], "s2": [2.0, 4.0, 20.0, 7.0]},
            index=["p1", "p2", "p3", "p4"],
        )
        gene_map = pd.Series({"p1": "b0001", "p2": "b0001", "p3": "b0002"})

        collapsed_df = collapse_gene_ids(expr_df, gene_map)

        assert collapsed_df.index.tolist() == ["b0001", "b0002"]
        assert collapsed_df.loc["b0001"].tolist() == pytest.approx([2.0, 3.0])

        summed_df = collapse_gene_ids(expr_df, gene_map, agg="sum")
        assert summed_df.loc["b0001"].tolist() == pytest.approx([4.0, 6.0])


class TestAnnotateSamples:

    def test_labels(self, samples_df, caplog):
        with caplog.at_level(logging.WARNING):
            annot_df = annotate_samples(samples_df)

        assert annot_df.index.tolist() == ["GSM1", "GSM2", "GSM3", "GSM4", "GSM5"]
        assert annot_df["antibiotic"].tolist() == ["AMK", "AMK", "CPZ", PARENT, PARENT]
        assert annot_df["resistance"].tolist() == [RESISTANT] * 3 + [SUSCEPTIBLE] * 2
        assert "GSM6" in caplog.text

    def test_custom_patterns(self):
        samples_df = pd.DataFrame(
            {"source": ["MDS42 ancestor", "strain evolved in ENX", "ancestor"]},
            index=["s1", "s2", "s3"],
        )

        annot_df = annotate_samples(
            samples_df,
            source_col="source",
            antibiotic_pattern=r"evolved in (?P<antibiotic>\w+)",
            parent_pattern="ancestor",
        )

        assert annot_df["antibiotic"].tolist() == [PARENT, "ENX", PARENT]

    def test_missing_source_column(self, samples_df):
        with pytest.raises(ValueError, match="not found"):
            annotate_samples(samples_df, source_col="source_name_ch1")

    def test_pattern_without_group(self, samples_df):
        with pytest.raises(ValueError, match="named group"):
            annotate_samples(samples_df, antibiotic_pattern=r"^[A-Z]+")

    def test_no_parent(self, samples_df):
        with pytest.raises(ValueError, match="No parent samples"):
            annotate_samples(samples_df.drop(index=["GSM4", "GSM5"]))


class TestContrastSamples:

    def test_get_antibiotics(self, annot_df):
        assert get_antibiotics(annot_df) == ["AMK", "CPZ"]

    def test_resistant_first_then_parent(self, annot_df):
        contrast_df = select_contrast_samples(annot_df, "AMK")
        assert contrast_df.index.tolist() == ["GSM1", "GSM2", "GSM4", "GSM5"]

    def test_missing_groups(self, annot_df):
        with pytest.raises(ValueError, match="No resistant samples"):
            select_contrast_samples(annot_df, "TET")
        with pytest.raises(ValueError, match="No susceptible"):
            select_contrast_samples(annot_df.loc[["GSM1", "GSM3"]], "AMK")


class TestFilterDeResults:

    @pytest.fixture
    def result(self):
        return _make_result(
            lfcs=[2.0, -3.0, 0.5, 1.5, -1.0, np.nan],
            qvalues=[0.01, 0.001, 0.001, 0.2, 0.01, 0.01],
        )

    def test_levels(self, result):
        assert filter_de_results(result, lfc_level="all").index.tolist() == [
            "b0000",
            "b0001",
        ]
        assert filter_de_results(result, lfc_level="up").index.tolist() == ["b0000"]
        assert filter_de_results(result, lfc_level="down").index.tolist() == ["b0001"]

    def test_thresholds_are_strict(self, result):
        # |LFC| == 1.0 is not above the threshold
        assert "b0004" not in filter_de_results(result, lfc_th=1.0).index
        assert "b0004" in filter_de_results(result, lfc_th=0.9).index
        assert filter_de_results(
            result, p_col="pvalue", p_th=0.15, lfc_th=1.0
        ).index.tolist() == ["b0000", "b0001", "b0003"]

    def test_invalid_level(self, result):
        with pytest.raises(ValueError, match="lfc_level"):
            filter_de_results(result, lfc_level="both")


def test_threshold_str():
    assert threshold_str(0.05) == "0_05"
    assert threshold_str(1.0) == "1_0"


class TestSummaries:

    def test_de_results_summary(self):
        results_filtered = {
            ("AMK", "qvalue", 0.05, "down", 1.0): _make_result([-2.0], [0.01]),
            ("AMK", "qvalue", 0.05, "all", 1.0): _make_result([2.0, -2.0, 3.0], [0.01] * 3),
            ("AMK", "qvalue", 0.05, "up", 1.0): _make_result([2.0, 3.0], [0.01] * 2),
            ("CPZ", "qvalue", 0.05, "all", 1.0): _make_result([], []),
            ("CPZ", "qvalue", 0.05, "up", 1.0): _make_result([], []),
            ("CPZ", "qvalue", 0.05, "down", 1.0): _make_result([], []),
        }

        summary_df = de_results_summary(results_filtered)

        assert summary_df.columns.tolist() == list(LFC_LEVELS)
        assert summary_df.index.names == ["antibiotic", "p_col", "p_th", "lfc_th"]
        assert summary_df.loc[("AMK", "qvalue", 0.05, 1.0)].tolist() == [3, 2, 1]
        assert summary_df.loc[("CPZ", "qvalue", 0.05, 1.0)].tolist() == [0, 0, 0]

    def test_gene_membership(self):
        membership_df = gene_membership({"AMK": ["b1", "b2"], "CPZ": ["b2"], "ENX": []})

        assert membership_df.index.tolist() == ["b1", "b2"]
        assert membership_df["AMK"].tolist() == [True, True]
        assert membership_df["CPZ"].tolist() == [False, True]
        assert not membership_df["ENX"].any()

    def test_combine_de_results(self):
        results = {
            "AMK": _make_result([2.0, -2.0, 0.1], [0.01, 0.02, 0.9], ["b1", "b2", "b3"]),
            "CPZ": _make_result([3.0, 0.2], [0.001, 0.5], ["b2", "b3"]),
        }
        significant = {"AMK": ["b1", "b2"], "CPZ": ["b2"]}

        combined_df = combine_de_results(results, significant)

        assert combined_df.index.tolist() == ["b2", "b1"]
        assert combined_df["n_antibiotics"].tolist() == [2, 1]
        assert combined_df.loc["b2", "CPZ_log2FoldChange"] == pytest.approx(3.0)
        assert np.isnan(combined_df.loc["b1", "CPZ_qvalue"])
        assert combined_df.columns.tolist() == [
            "AMK_log2FoldChange",
            "AMK_qvalue",
            "CPZ_log2FoldChange",
            "CPZ_qvalue",
            "n_antibiotics",
        ]

    def test_top_genes(self):
        result = _make_result(
            [1.0, -4.0, 4.0, 2.0], [0.01, 0.02, 0.01, 0.001], ["b1", "b2", "b3", "b4"]
        )

        assert top_genes(result, 3) == ["b3", "b2", "b4"]
        assert top_genes(result, 10, genes=["b1", "b4", "b9"]) == ["b4", "b1"]


def test_parallelize_map():
    assert sorted(parallelize_map(abs, [-1, -2, 3], processes=2, method="fork")) == [
        1,
        2,
        3,
    ]
