import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd
import rpy2.robjects as ro
from rpy2.robjects.conversion import localconverter

from data.utils import (
    LFC_LEVELS,
    de_results_summary,
    filter_de_results,
    gene_membership,
    combine_de_results,
    threshold_str,
)
from data.visualization import upset_plot
from pipelines.differential_expression.utils import results_file_name
from r_wrappers.complex_heatmaps import complex_heatmap


def load_de_results(
    results_root: Path, antibiotics: Iterable[str]
) -> Dict[str, pd.DataFrame]:
    """
    Load the unfiltered results table of each antibiotic. Antibiotics without
        results on disk are skipped with a warning.
    """
    results = {}
    for antibiotic in antibiotics:
        results_file = results_root.joinpath(antibiotic).joinpath(
            results_file_name(antibiotic)
        )
        try:
            results[antibiotic] = pd.read_csv(results_file, index_col=0)
        except FileNotFoundError:
            logging.warning(
                f"[{antibiotic}] Results file {results_file} not found, skipping."
            )
    return results


def intersect_degs(
    results_root: Path,
    antibiotics: Iterable[str],
    summary_path: Path,
    p_col: str = "qvalue",
    p_th: float = 0.05,
    lfc_level: str = "all",
    lfc_th: float = 1.0,
    heatmap_top_n: int = 100,
) -> Optional[pd.DataFrame]:
    """
    Compare the DEGs of all antibiotics for a given threshold combination.

    Written files (in summary_path/<p_col>_<p_th>_<lfc_level>_<lfc_th>):
        - degs_summary.csv: number of DEGs per antibiotic and direction.
        - degs_membership.csv: boolean gene x antibiotic table.
        - degs_combined.csv: log2 fold changes and q-values across antibiotics of
            every gene significant in at least one of them.
        - degs_upsetplot.png: intersections between DEG sets.
        - degs_lfc_heatmap.png: log2 fold changes of the most shared DEGs.

    Args:
        results_root: Directory with one results subdirectory per antibiotic.
        antibiotics: Antibiotics to compare.
        summary_path: Root directory to store the comparison.
        p_col: Significance column.
        p_th: Significance threshold.
        lfc_level: Direction of change ("all", "up", "down").
        lfc_th: Absolute log2 fold change threshold.
        heatmap_top_n: Maximum number of genes shown in the heatmap.

    Returns:
        The combined table, or None if no antibiotic has results.
    """
    # 0. Setup
    thresholds = f"{p_col}_{threshold_str(p_th)}_{lfc_level}_{threshold_str(lfc_th)}"
    save_path = summary_path.joinpath(thresholds)
    save_path.mkdir(exist_ok=True, parents=True)

    # 1. Load results and get DEGs
    results = load_de_results(results_root, antibiotics)
    if not results:
        logging.warning(f"[{thresholds}] No results found. No intersection possible.")
        return None

    de_results_summary(
        {
            (antibiotic, p_col, p_th, level, lfc_th): filter_de_results(
                result, p_col, p_th, level, lfc_th
            )
            for antibiotic, result in results.items()
            for level in LFC_LEVELS
        }
    ).to_csv(save_path.joinpath("degs_summary.csv"))

    degs = {
        antibiotic: filter_de_results(result, p_col, p_th, lfc_level, lfc_th).index
        for antibiotic, result in results.items()
    }

    # 2. Membership and combined tables
    gene_membership(degs).to_csv(save_path.joinpath("degs_membership.csv"))
    combined_df = combine_de_results(results, degs, p_col=p_col)
    combined_df.to_csv(save_path.joinpath("degs_combined.csv"))

    if combined_df.empty:
        logging.warning(
            f"[{thresholds}] All DEG sets are empty. No intersection possible."
        )
        return combined_df

    logging.info(
        f"[{thresholds}] {len(combined_df)} DEGs in at least one antibiotic, "
        f"{(combined_df['n_antibiotics'] == len(degs)).sum()} shared by all."
    )

    # 3. UpSet plot
    upset_plot(
        degs,
        save_path=save_path.joinpath("degs_upsetplot.png"),
        title=(
            "Intersecting DEGs \n("
            f"{'de' if lfc_level == 'all' else lfc_level}-regulated, "
            f"{p_col} < {p_th}, |LFC| > {lfc_th})"
        ),
    )

    # 4. Heatmap of fold changes of the most shared DEGs
    lfc_df = combined_df.filter(like="_log2FoldChange")
    lfc_df.columns = [c.replace("_log2FoldChange", "") for c in lfc_df.columns]
    top_n = min(heatmap_top_n, len(lfc_df))
    top_genes = (
        combined_df.assign(_max_abs_lfc=lfc_df.abs().max(axis=1))
        .sort_values(["n_antibiotics", "_max_abs_lfc"], ascending=False)
        .index[:top_n]
    )

    with localconverter(ro.default_converter):
        complex_heatmap(
            lfc_df.loc[top_genes].fillna(0),
            save_path=save_path.joinpath("degs_lfc_heatmap.png"),
            width=max(6, 0.5 * lfc_df.shape[1] + 3),
            height=max(6, 0.15 * top_n + 3),
            column_title=f"Top {top_n} shared DEGs ({thresholds})",
            name="log2 fold change",
            show_row_names=top_n <= 100,
            heatmap_legend_param=ro.r(
                'list(title_position = "topcenter", color_bar = "continuous",'
                ' legend_height = unit(5, "cm"), legend_direction = "horizontal")'
            ),
        )

    return combined_df
