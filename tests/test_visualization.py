"""Smoke tests for quality control and gene set plots."""

from pathlib import Path

import pytest

from data.utils import PARENT
from data.visualization import (
    category_colors,
    expression_distribution_plot,
    pca_plot,
    sample_correlation_clustermap,
    upset_plot,
)


class TestCategoryColors:

    def test_fixed_colors_are_kept(self):
        colors = category_colors(["AMK", "CPZ", PARENT], fixed={PARENT: "#808080"})

        assert set(colors) == {"AMK", "CPZ", PARENT}
        assert colors[PARENT] == "#808080"
        assert colors["AMK"] != colors["CPZ"]
        assert all(c.startswith("#") for c in colors.values())


class TestSamplePlots:

    def test_pca_html(self, tmp_path, expr_df, annot_df):
        save_path = tmp_path / "pca_antibiotic.html"

        fig = pca_plot(expr_df, annot_df, "antibiotic", save_path, title="PCA")

        assert save_path.is_file()
        assert len(fig.data) == annot_df["antibiotic"].nunique()

    def test_pca_unsupported_suffix(self, tmp_path, expr_df, annot_df):
        with pytest.raises(ValueError, match="suffix"):
            pca_plot(expr_df, annot_df, "antibiotic", tmp_path / "pca.jpg")

    def test_correlation_clustermap(self, tmp_path, expr_df, annot_df):
        save_path = tmp_path / "samples_correlation_clustermap.png"
        colors = category_colors(
            annot_df["antibiotic"].unique(), fixed={PARENT: "#808080"}
        )

        sample_correlation_clustermap(
            expr_df, annot_df, "antibiotic", colors, save_path, title="Correlation"
        )

        assert save_path.is_file()

    def test_expression_distribution(self, tmp_path, expr_df, annot_df):
        save_path = tmp_path / "expression_distribution.png"

        expression_distribution_plot(
            expr_df,
            annot_df,
            "resistance",
            save_path,
            colors={"resistant": "#8B3A3A", "susceptible": "#4A708B"},
        )

        assert save_path.is_file()


class TestUpsetPlot:

    def test_intersections(self, tmp_path):
        save_path = tmp_path / "degs_upsetplot.png"

        intersections = upset_plot(
            {"AMK": ["b1", "b2", "b3"], "CPZ": ["b2", "b3", "b4"], "ENX": []},
            save_path,
            title="DEGs",
        )

        assert save_path.is_file()
        assert sorted(intersections["id"]) == ["b1", "b2", "b3", "b4"]
        # empty sets are not plotted
        assert list(intersections.index.names) == ["AMK", "CPZ"]

    def test_all_sets_empty(self, tmp_path):
        with pytest.raises(ValueError, match="empty"):
            upset_plot({"AMK": [], "CPZ": []}, Path(tmp_path) / "upset.png")
