import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import pandas as pd

from data.io import parse_characteristics, read_gene_map, read_series_matrix
from data.utils import (
    ANTIBIOTIC_COL,
    PARENT,
    RESISTANCE_COL,
    align_samples,
    annotate_samples,
    collapse_gene_ids,
    filter_expression,
    get_antibiotics,
    transform_expression,
)
from data.visualization import (
    category_colors,
    expression_distribution_plot,
    pca_plot,
    sample_correlation_clustermap,
)


def prepare_dataset(
    series_matrix_file: Path,
    data_path: Path,
    plots_path: Path,
    input_scale: str = "linear",
    antibiotic_colors: Optional[Dict[str, str]] = None,
    source_col: str = "title",
    antibiotic_pattern: str = r"^(?P<antibiotic>[A-Za-z]+)",
    parent_pattern: str = r"(?i)parent",
    min_value: float = 0.0,
    min_samples: int = 1,
    gene_map_file: Optional[Path] = None,
    gene_map_cols: Tuple[str, str] = ("probe_id", "gene_id"),
    exp_prefix: str = "",
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load a GEO series matrix, annotate samples by antibiotic and resistance status,
    filter genes and generate quality control plots.

    Written files (in data_path):
        - expression.csv: expression matrix as deposited.
        - samples_annotation.csv: sample metadata with "resistance" and
            "antibiotic" columns.
        - expression_filtered.csv: filtered, non-negative intensities on linear
            scale, ready for Tweedie models.

    Args:
        series_matrix_file: GEO series matrix (plain or gzipped).
        data_path: Directory to store processed tables.
        plots_path: Directory to store QC plots.
        input_scale: Scale of the deposited values, "linear" or "log2". Log2
            values are brought back to linear scale.
        antibiotic_colors: Color of each antibiotic label (including "parent").
            By default, colors are taken from the "tab10" palette.
        source_col: Sample metadata column encoding strain and antibiotic.
        antibiotic_pattern: Regular expression with a named group "antibiotic".
        parent_pattern: Regular expression identifying parent strain samples.
        min_value: Minimum (linear) intensity for a gene to count as expressed.
        min_samples: Minimum number of samples in which a gene must be expressed.
        gene_map_file: Optional CSV mapping matrix row ids to gene ids.
        gene_map_cols: Source and target columns of gene_map_file.
        exp_prefix: Label used in log messages and plot titles.

    Returns:
        Filtered expression matrix and samples annotation, aligned.

    Raises:
        ValueError: If input_scale is not supported, or negative values remain
            after bringing the matrix to linear scale.
    """
    if input_scale not in ("linear", "log2"):
        raise ValueError(f'input_scale must be "linear" or "log2", got "{input_scale}"')

    data_path.mkdir(exist_ok=True, parents=True)
    plots_path.mkdir(exist_ok=True, parents=True)

    # 1. Load data
    expr_df, samples_df = read_series_matrix(series_matrix_file)
    samples_df = parse_characteristics(samples_df)
    expr_df.to_csv(data_path.joinpath("expression.csv"))
    logging.info(
        f"[{exp_prefix}] Loaded {expr_df.shape[0]} genes and {expr_df.shape[1]} "
        "samples."
    )

    # 1.1. Linear scale
    if input_scale == "log2":
        expr_df = transform_expression(expr_df, "unlog2")

    # 1.2. Optionally rename rows to gene ids
    if gene_map_file is not None:
        expr_df = collapse_gene_ids(
            expr_df, read_gene_map(gene_map_file, *gene_map_cols)
        )
        expr_df.index.name = "gene_id"

    # 2. Annotate samples
    annot_df = annotate_samples(
        samples_df,
        source_col=source_col,
        antibiotic_pattern=antibiotic_pattern,
        parent_pattern=parent_pattern,
    )
    annot_df.to_csv(data_path.joinpath("samples_annotation.csv"))
    if antibiotic_colors is None:
        antibiotic_colors = category_colors(
            get_antibiotics(annot_df), fixed={PARENT: "#808080"}
        )
    logging.info(
        f"[{exp_prefix}] Samples per antibiotic:\n"
        f"{annot_df[ANTIBIOTIC_COL].value_counts().sort_index().to_string()}"
    )

    # 3. Filter and transform expression
    expr_df, annot_df = align_samples(expr_df, annot_df)
    if (expr_df < 0).any().any():
        raise ValueError(
            f"[{exp_prefix}] Expression matrix has negative values, which Tweedie "
            'models do not support. Check the input scale (e.g., "log2").'
        )

    expr_df = filter_expression(expr_df, min_value=min_value, min_samples=min_samples)
    expr_df.to_csv(data_path.joinpath("expression_filtered.csv"))

    # 4. Quality control plots (log2 scale)
    expr_log2 = transform_expression(expr_df.clip(lower=0), "log2")
    expression_distribution_plot(
        expr_log2,
        annot_df,
        hue_col=ANTIBIOTIC_COL,
        save_path=plots_path.joinpath("expression_distribution.png"),
        title=f"{exp_prefix} log2 intensities",
        colors=antibiotic_colors,
    )
    sample_correlation_clustermap(
        expr_log2,
        annot_df,
        color_col=ANTIBIOTIC_COL,
        colors=antibiotic_colors,
        save_path=plots_path.joinpath("samples_correlation_clustermap.png"),
        title=f"{exp_prefix} sample correlations (log2)",
    )
    for color_col, colors in (
        (ANTIBIOTIC_COL, antibiotic_colors),
        (RESISTANCE_COL, None),
    ):
        for suffix in (".png", ".html"):
            pca_plot(
                expr_log2,
                annot_df,
                color_col=color_col,
                save_path=plots_path.joinpath(f"pca_{color_col}{suffix}"),
                title=f"{exp_prefix} PCA (log2)",
                colors=colors,
            )

    return expr_df, annot_df
