"""Tests of the rpy2-backed stages, with the R calls replaced by recorders.

Importing these modules needs R and the Bioconductor packages they load, the
whole module is skipped otherwise.
"""

import pandas as pd
import pytest

try:
    import pipelines.differential_expression.utils as de_utils
    from components.functional_analysis import base as fa_base
    from components.functional_analysis import kegg
except Exception as e:  # R or one of its packages is missing
    pytest.skip(f"R backend not available: {e}", allow_module_level=True)

from data.utils import RESISTANCE_COL, RESISTANT, SUSCEPTIBLE


def _fake_compare_cluster(gene_clusters, **kwargs):
    return "compareClusterResult"


class _Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))


@pytest.fixture
def enrichment_df():
    return pd.DataFrame(
        {
            "Cluster": ["AMK", "CPZ"],
            "ID": ["eco00190", "eco02010"],
            "p.adjust": [0.001, 0.02],
        }
    )


class TestCompareClusterRunner:

    def test_result_saved_as_csv_and_rds(self, tmp_path, monkeypatch, enrichment_df):
        save_rds = _Recorder()
        monkeypatch.setattr(kegg, "compare_cluster", _fake_compare_cluster)
        monkeypatch.setattr(fa_base, "rpy2_df_to_pd_df", lambda r: enrichment_df)
        monkeypatch.setattr(fa_base, "save_rds", save_rds)
        monkeypatch.setattr(kegg.KEGGCompareCluster, "plot_all", lambda self: None)
        files_prefix = tmp_path / "kegg" / "compare_cluster_qvalue_0_05_all_1_0"

        cc = kegg.run_kegg_compare_cluster(
            gene_clusters={"AMK": ["b0001", "b0002"], "CPZ": ["b0003"]},
            files_prefix=files_prefix,
            plots_prefix=tmp_path / "plots" / "compare_cluster_qvalue_0_05_all_1_0",
            organism="eco",
        )

        assert not cc.is_empty
        assert files_prefix.with_suffix(".csv").is_file()
        assert save_rds.calls == [
            (("compareClusterResult", files_prefix.with_suffix(".RDS")), {})
        ]

    def test_empty_result_is_not_saved(self, tmp_path, monkeypatch, caplog):
        save_rds = _Recorder()
        monkeypatch.setattr(kegg, "compare_cluster", _fake_compare_cluster)
        monkeypatch.setattr(fa_base, "rpy2_df_to_pd_df", lambda r: pd.DataFrame())
        monkeypatch.setattr(fa_base, "save_rds", save_rds)
        monkeypatch.setattr(kegg.KEGGCompareCluster, "plot_all", lambda self: None)
        files_prefix = tmp_path / "compare_cluster"

        kegg.run_kegg_compare_cluster(
            gene_clusters={"AMK": ["b0001"]},
            files_prefix=files_prefix,
            plots_prefix=tmp_path / "compare_cluster",
        )

        assert save_rds.calls == []
        assert not files_prefix.with_suffix(".csv").exists()
        assert "Could not save RDS" in caplog.text

    def test_all_clusters_empty(self, tmp_path):
        assert (
            kegg.run_kegg_compare_cluster(
                gene_clusters={"AMK": [], "CPZ": []},
                files_prefix=tmp_path / "cc",
                plots_prefix=tmp_path / "cc",
            )
            is None
        )


class TestDifferentialExpression:

    @pytest.fixture
    def dataset(self):
        samples = ["R1", "R2", "R3", "P1", "P2", "P3"]
        expr_df = pd.DataFrame(
            {
                "b0001": [400.0, 405.0, 395.0, 100.0, 102.0, 98.0],
                "b0002": [100.0, 110.0, 90.0, 100.0, 110.0, 90.0],
                "b0003": [25.0, 26.0, 24.0, 100.0, 104.0, 96.0],
            },
            index=samples,
        ).T
        expr_df.index.name = "gene_id"
        annot_df = pd.DataFrame(
            {
                RESISTANCE_COL: [RESISTANT] * 3 + [SUSCEPTIBLE] * 3,
                "antibiotic": ["AMK"] * 3 + ["parent"] * 3,
            },
            index=samples,
        )
        return expr_df, annot_df

    def test_volcano_uses_filtered_significance_column(
        self, tmp_path, monkeypatch, dataset
    ):
        expr_df, annot_df = dataset
        volcano_plot = _Recorder()
        monkeypatch.setattr(de_utils, "volcano_plot", volcano_plot)
        monkeypatch.setattr(de_utils, "pca_plot", _Recorder())
        monkeypatch.setattr(de_utils, "degs_heatmap", _Recorder())

        result = de_utils.differential_expression(
            expr_df,
            annot_df,
            antibiotic="AMK",
            results_path=tmp_path / "AMK",
            plots_path=tmp_path / "AMK" / "plots",
            resistance_colors={RESISTANT: "#8B3A3A", SUSCEPTIBLE: "#4A708B"},
            p_cols=("pvalue",),
            p_ths=(0.01,),
            lfc_ths=(1.0,),
        )

        [(_, kwargs)] = volcano_plot.calls
        assert kwargs["y"] == "pvalue"
        assert kwargs["p_cutoff"] == 0.01
        assert kwargs["fc_cutoff"] == 1.0

        filtered = pd.read_csv(
            tmp_path / "AMK" / de_utils.filtered_results_file_name(
                "AMK", "pvalue", 0.01, "all", 1.0
            ),
            index_col=0,
        )
        assert sorted(filtered.index) == ["b0001", "b0003"]
        assert result.loc["b0001", "log2FoldChange"] == pytest.approx(2.0, abs=0.05)
        assert (tmp_path / "AMK" / "AMK_degs_summary.csv").is_file()
