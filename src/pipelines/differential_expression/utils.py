"""
Utilities for differential gene expression analysis of resistant strains.

For one antibiotic, the resistant strains evolved under it are compared to the
susceptible parent strain with per-gene Tweedie generalized linear models. The
module handles:

1. Fitting the models, either with statsmodels or with the R package
   Tweedieverse, and saving the full results table.
2. Filtering significant genes by q-value, direction and fold change, and saving
   one table per threshold combination together with a summary of DEG counts.
3. Visualizations: volcano plot, supervised heatmaps of top DEGs and a PCA of
   the compared samples.
"""

import logging
from itertools import product
from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd
import rpy2.robjects as ro
from rpy2.robjects.conversion import localconverter

from data.glm import tweedie_differential_expression
from data.utils import (
    LFC_LEVELS,
    RESISTANCE_COL,
    RESISTANT,
    SUSCEPTIBLE,
    align_samples,
    de_results_summary,
    filter_de_results,
    select_contrast_samples,
    threshold_str,
    top_genes,
    transform_expression,
)
from data.visualization import pca_plot
from r_wrappers.complex_heatmaps import complex_heatmap, heatmap_annotation
from r_wrappers.visualization import volcano_plot

BACKENDS = ("statsmodels", "tweedieverse")


def results_file_name(antibiotic: str) -> str:
    return f"{antibiotic}_{RESISTANT}_vs_{SUSCEPTIBLE}_tweedie_results.csv"


def filtered_results_file_name(
    antibiotic: str, p_col: str, p_th: float, lfc_level: str, lfc_th: float
) -> str:
    return (
        f"{antibiotic}_{RESISTANT}_vs_{SUSCEPTIBLE}_{p_col}_{threshold_str(p_th)}_"
        f"{lfc_level}_{threshold_str(lfc_th)}_tweedie_results.csv"
    )


def fit_contrast(
    expr_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    results_path: Path,
    backend: str = "statsmodels",
    var_power: float = 1.5,
    exp_prefix: str = "",
    **tweedieverse_kwargs,
) -> pd.DataFrame:
    """
    Fit one Tweedie GLM per gene for the resistant vs. susceptible contrast.

    Args:
        expr_df: Non-negative expression matrix, restricted to contrast samples.
        annot_df: Annotation of contrast samples.
        results_path: Directory for backend-specific outputs.
        backend: "statsmodels" or "tweedieverse".
        var_power: Tweedie variance power (statsmodels backend only,
            Tweedieverse estimates it per gene).
        exp_prefix: Label used in log messages.
        **tweedieverse_kwargs: Additional arguments for Tweedieverse.

    Returns:
        Results indexed by gene id with columns "coef", "stderr",
            "log2FoldChange", "pvalue" and "qvalue".
    """
    if backend == "statsmodels":
        return tweedie_differential_expression(
            expr_df,
            annot_df,
            contrast_factor=RESISTANCE_COL,
            test=RESISTANT,
            control=SUSCEPTIBLE,
            var_power=var_power,
            exp_prefix=exp_prefix,
        )
    elif backend == "tweedieverse":
        # requires the R package only when selected
        from r_wrappers.tweedieverse import tweedieverse

        result = tweedieverse(
            expr_df,
            annot_df,
            output_path=results_path.joinpath("tweedieverse"),
            fixed_effects=[RESISTANCE_COL],
            reference=f"{RESISTANCE_COL},{SUSCEPTIBLE}",
            **tweedieverse_kwargs,
        )
        result = result[result["metadata"] == RESISTANCE_COL]
        return result.reindex(expr_df.index)[
            ["coef", "stderr", "log2FoldChange", "pvalue", "qvalue"]
        ]

    raise ValueError(f'backend must be one of {BACKENDS}, got "{backend}"')


def degs_heatmap(
    expr_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    result: pd.DataFrame,
    genes: Iterable[str],
    save_path: Path,
    resistance_colors: Dict[str, str],
    column_title: str,
    p_col: str = "qvalue",
    top_n: int = 100,
) -> None:
    """
    Supervised heatmap of the top DEGs (by absolute log2 fold change).
        Intensities are log2 transformed and centered by their gene mean.
    """
    genes = top_genes(result, top_n, p_col=p_col, genes=genes)
    values = transform_expression(expr_df.loc[genes], "log2")
    values = values.sub(values.mean(axis=1), axis=0)

    with localconverter(ro.default_converter):
        ha_column = heatmap_annotation(
            df=annot_df[[RESISTANCE_COL]],
            col={RESISTANCE_COL: resistance_colors},
            show_annotation_name=False,
        )
        complex_heatmap(
            values,
            save_path=save_path,
            width=10,
            height=max(6, 0.15 * len(genes) + 3),
            column_title=column_title,
            name="Centered log2 intensity",
            top_annotation=ha_column,
            column_split=ro.StrVector(annot_df[RESISTANCE_COL].tolist()),
            show_row_names=len(genes) <= 100,
            heatmap_legend_param=ro.r(
                'list(title_position = "topcenter", color_bar = "continuous",'
                ' legend_height = unit(5, "cm"), legend_direction = "horizontal")'
            ),
        )


def differential_expression(
    expr_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    antibiotic: str,
    results_path: Path,
    plots_path: Path,
    resistance_colors: Dict[str, str],
    p_cols: Iterable[str] = ("qvalue",),
    p_ths: Iterable[float] = (0.05,),
    lfc_levels: Iterable[str] = LFC_LEVELS,
    lfc_ths: Iterable[float] = (1.0,),
    backend: str = "statsmodels",
    var_power: float = 1.5,
    heatmap_top_n: int = 100,
    tweedieverse_kwargs: Optional[Dict] = None,
) -> pd.DataFrame:
    """
    Compare strains resistant to one antibiotic against the susceptible parent.

    Written files (in results_path):
        - <antibiotic>_resistant_vs_susceptible_tweedie_results.csv: all genes.
        - One filtered table per (p_col, p_th, lfc_level, lfc_th) combination.
        - <antibiotic>_degs_summary.csv: number of DEGs per combination.

    Written plots (in plots_path): volcano plot, PCA of the compared samples and
    one supervised heatmap per non-empty filtered table.

    Args:
        expr_df: Filtered, non-negative expression matrix of all samples.
        annot_df: Samples annotation with "resistance" and "antibiotic" columns.
        antibiotic: Antibiotic label of the resistant strains to test.
        results_path: Directory to store results tables.
        plots_path: Directory to store plots.
        resistance_colors: Colors for "resistant" and "susceptible".
        p_cols: Significance columns to filter by (e.g., "qvalue", "pvalue").
        p_ths: Significance thresholds.
        lfc_levels: Directions of change to keep ("all", "up", "down").
        lfc_ths: Absolute log2 fold change thresholds.
        backend: Model implementation, "statsmodels" or "tweedieverse".
        var_power: Tweedie variance power.
        heatmap_top_n: Maximum number of genes shown in heatmaps.
        tweedieverse_kwargs: Additional arguments for Tweedieverse.

    Returns:
        The unfiltered results table.
    """
    exp_prefix = f"{antibiotic}_{RESISTANT}_vs_{SUSCEPTIBLE}"
    results_path.mkdir(exist_ok=True, parents=True)
    plots_path.mkdir(exist_ok=True, parents=True)

    # 0. Samples of this contrast, resistant first
    annot_df_contrast = select_contrast_samples(annot_df, antibiotic)
    expr_df, annot_df_contrast = align_samples(expr_df, annot_df_contrast)
    logging.info(
        f"[{exp_prefix}] Comparing "
        f"{(annot_df_contrast[RESISTANCE_COL] == RESISTANT).sum()} resistant and "
        f"{(annot_df_contrast[RESISTANCE_COL] == SUSCEPTIBLE).sum()} susceptible "
        "samples."
    )

    # 1. Fit models and save results
    result = fit_contrast(
        expr_df,
        annot_df_contrast,
        results_path,
        backend=backend,
        var_power=var_power,
        exp_prefix=exp_prefix,
        **(tweedieverse_kwargs or {}),
    )
    result.to_csv(results_path.joinpath(results_file_name(antibiotic)))

    # 2. Volcano plot, against the first significance column
    p_cols, p_ths, lfc_ths = list(p_cols), list(p_ths), list(lfc_ths)
    with localconverter(ro.default_converter):
        volcano_plot(
            result,
            x="log2FoldChange",
            y=p_cols[0],
            save_path=plots_path.joinpath(f"{exp_prefix}_volcano_plot.png"),
            title=f"{antibiotic} resistant vs parent",
            p_cutoff=min(p_ths),
            fc_cutoff=min(lfc_ths),
        )

    # 3. PCA of compared samples
    pca_plot(
        transform_expression(expr_df, "log2"),
        annot_df_contrast,
        color_col=RESISTANCE_COL,
        save_path=plots_path.joinpath(f"{exp_prefix}_pca.png"),
        title=f"{antibiotic} resistant vs parent (log2)",
        colors=resistance_colors,
    )

    # 4. Filter results
    results_filtered = {}
    for p_col, p_th, lfc_level, lfc_th in product(p_cols, p_ths, lfc_levels, lfc_ths):
        result_filtered = filter_de_results(result, p_col, p_th, lfc_level, lfc_th)
        results_filtered[(antibiotic, p_col, p_th, lfc_level, lfc_th)] = (
            result_filtered
        )
        result_filtered.sort_values("log2FoldChange").to_csv(
            results_path.joinpath(
                filtered_results_file_name(antibiotic, p_col, p_th, lfc_level, lfc_th)
            )
        )

    # 5. Supervised heatmaps
    for (_, p_col, p_th, lfc_level, lfc_th), result_filtered in results_filtered.items():
        thresholds = f"{p_col}_{threshold_str(p_th)}_{lfc_level}_{threshold_str(lfc_th)}"
        if result_filtered.empty:
            logging.warning(
                f"[{exp_prefix}] No DEGs for {thresholds}, heatmap is skipped."
            )
            continue

        top_n = min(heatmap_top_n, len(result_filtered))
        degs_heatmap(
            expr_df,
            annot_df_contrast,
            result,
            genes=result_filtered.index,
            save_path=plots_path.joinpath(
                f"{exp_prefix}_{thresholds}_supervised_genes_clustering.png"
            ),
            resistance_colors=resistance_colors,
            column_title=(
                f"Top {top_n} DEGs in {antibiotic} resistant strains "
                f"(|LFC| > {lfc_th}, {p_col} < {p_th})"
            ),
            p_col=p_col,
            top_n=top_n,
        )

    # 6. Summary statistics
    de_results_summary(results_filtered).to_csv(
        results_path.joinpath(f"{antibiotic}_degs_summary.csv")
    )

    return result
