"""Visualization utilities for expression data and gene set comparisons.

This module provides functions to create and save sample-level quality control
plots (PCA, correlation clustermap, intensity distributions) with Plotly and
seaborn, and intersections of gene sets with UpSet plots.
"""

from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd
import plotly.express as px
import seaborn as sns
from matplotlib import pyplot as plt
from matplotlib.patches import Patch
from sklearn.decomposition import PCA
from upsetplot import UpSet, from_contents

IMAGE_SUFFIXES = (".png", ".pdf", ".svg")


def category_colors(
    categories: Iterable[str],
    palette: str = "tab10",
    fixed: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """Hex color per category, taken in order from a seaborn palette.

    Categories present in `fixed` keep their given color.
    """
    fixed = fixed or {}
    categories = [c for c in categories if c not in fixed]
    colors = sns.color_palette(palette, len(categories)).as_hex()
    return {**dict(zip(categories, colors)), **fixed}


def _check_suffix(save_path: Path, allowed: Iterable[str]) -> None:
    if save_path.suffix not in allowed:
        raise ValueError(
            f"Save file had suffix {save_path.suffix}, "
            f"but only {', '.join(allowed)} are possible."
        )


def pca_plot(
    expr_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    color_col: str,
    save_path: Path,
    title: str = "",
    colors: Optional[Dict[str, str]] = None,
) -> px.scatter:
    """Plot samples on their first two principal components.

    Args:
        expr_df: Expression matrix of shape [n_genes, n_samples].
        annot_df: Samples annotation indexed by sample id.
        color_col: Column of annot_df used to color samples.
        save_path: Where to save the plot. Image format depends on the suffix
            (.png, .pdf, .svg), ".html" saves an interactive plot.
        title: Plot title.
        colors: Optional mapping of color_col values to colors.

    Returns:
        px.scatter: Plotly figure object

    Raises:
        ValueError: If save_path has an unsupported suffix.
    """
    _check_suffix(save_path, (*IMAGE_SUFFIXES, ".html"))

    pca = PCA(n_components=2, random_state=8080)
    components = pca.fit_transform(expr_df.transpose())
    ratios = pca.explained_variance_ratio_ * 100

    pca_df = pd.DataFrame(
        components, index=expr_df.columns, columns=["PC1", "PC2"]
    ).assign(**{color_col: annot_df.loc[expr_df.columns, color_col].values})
    pca_df.index.name = "sample_id"
    fig = px.scatter(
        pca_df.reset_index(),
        x="PC1",
        y="PC2",
        labels={
            "PC1": f"PC 1 ({ratios[0]:.2f}%)",
            "PC2": f"PC 2 ({ratios[1]:.2f}%)",
        },
        color=color_col,
        color_discrete_map=colors or {},
        hover_name="sample_id",
        title=title,
    )

    if save_path.suffix == ".html":
        fig.write_html(str(save_path))
    else:
        fig.write_image(str(save_path))

    return fig


def sample_correlation_clustermap(
    expr_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    color_col: str,
    colors: Dict[str, str],
    save_path: Path,
    title: str = "",
) -> None:
    """Hierarchically clustered heatmap of Pearson correlations between samples.

    Args:
        expr_df: Expression matrix of shape [n_genes, n_samples], usually log2.
        annot_df: Samples annotation indexed by sample id.
        color_col: Column of annot_df used to color rows and columns.
        colors: Mapping of color_col values to colors.
        save_path: Where to save the plot.
        title: Plot title.
    """
    _check_suffix(save_path, IMAGE_SUFFIXES)

    corr_matrix = expr_df.corr()
    sample_colors = (
        annot_df.loc[corr_matrix.index, color_col].map(colors).fillna("#808080")
    ).rename("")

    g = sns.clustermap(
        corr_matrix,
        cmap="vlag",
        row_colors=sample_colors,
        col_colors=sample_colors,
        figsize=(10, 10),
        xticklabels=True,
        yticklabels=True,
    )
    g.figure.suptitle(title)

    present = sorted(set(annot_df.loc[corr_matrix.index, color_col]))
    handles = [Patch(facecolor=colors.get(name, "#808080")) for name in present]
    g.ax_heatmap.legend(
        handles,
        present,
        title=color_col,
        bbox_to_anchor=(1.25, 1.0),
        bbox_transform=g.figure.transFigure,
    )
    g.savefig(str(save_path), dpi=300, bbox_inches="tight")
    plt.close(g.figure)


def expression_distribution_plot(
    expr_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    hue_col: str,
    save_path: Path,
    title: str = "",
    colors: Optional[Dict[str, str]] = None,
) -> None:
    """Box plot of the intensity distribution of each sample.

    Args:
        expr_df: Expression matrix of shape [n_genes, n_samples].
        annot_df: Samples annotation indexed by sample id.
        hue_col: Column of annot_df used to color boxes.
        save_path: Where to save the plot.
        title: Plot title.
        colors: Optional mapping of hue_col values to colors.
    """
    _check_suffix(save_path, IMAGE_SUFFIXES)

    long_df = expr_df.melt(var_name="sample_id", value_name="intensity").join(
        annot_df[[hue_col]], on="sample_id"
    )

    plt.figure(facecolor="white", figsize=(max(8, 0.3 * expr_df.shape[1]), 6), dpi=200)
    sns.boxplot(
        data=long_df,
        x="sample_id",
        y="intensity",
        hue=hue_col,
        palette=colors,
        dodge=False,
        showfliers=False,
    )
    plt.xticks(rotation=90, fontsize=6)
    plt.title(title)
    plt.tight_layout()
    plt.savefig(str(save_path))
    plt.close()


def upset_plot(
    gene_sets: Dict[str, Iterable[str]],
    save_path: Path,
    title: str = "",
    min_subset_size: Optional[int] = None,
) -> pd.DataFrame:
    """UpSet plot of the intersections between gene sets.

    Empty sets are ignored.

    Args:
        gene_sets: Gene ids per set name.
        save_path: Where to save the plot.
        title: Plot title.
        min_subset_size: Hide intersections smaller than this.

    Returns:
        pd.DataFrame: Gene ids indexed by boolean set membership, as produced by
            upsetplot.from_contents.

    Raises:
        ValueError: If save_path has an unsupported suffix or all sets are empty.
    """
    _check_suffix(save_path, IMAGE_SUFFIXES)

    gene_sets = {k: set(v) for k, v in gene_sets.items() if len(set(v)) > 0}
    if not gene_sets:
        raise ValueError("All gene sets are empty, no intersection possible.")

    intersections = from_contents(gene_sets).sort_index(ascending=False)

    fig = plt.figure(figsize=(15, 5), dpi=300)
    UpSet(
        intersections,
        subset_size="count",
        element_size=None,
        show_counts=True,
        sort_by="cardinality",
        sort_categories_by=None,
        min_subset_size=min_subset_size,
    ).plot(fig=fig)
    plt.suptitle(title)
    plt.savefig(str(save_path))
    plt.close(fig)

    return intersections
