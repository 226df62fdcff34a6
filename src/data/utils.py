"""Utility functions for expression data processing and result manipulation.

This module provides pandas-based utilities shared by all pipeline stages: filtering
and transforming expression matrices, annotating samples by antibiotic and
resistance status, selecting contrast samples, filtering differential expression
results and summarizing them across antibiotics. It also keeps the process pool
helper used by run scripts to dispatch independent jobs.
"""

import logging
import re
from copy import deepcopy
from multiprocessing import get_context
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

import numpy as np
import pandas as pd
from tqdm.rich import tqdm

RESISTANCE_COL: str = "resistance"
ANTIBIOTIC_COL: str = "antibiotic"
RESISTANT: str = "resistant"
SUSCEPTIBLE: str = "susceptible"
PARENT: str = "parent"
LFC_LEVELS: Tuple[str, ...] = ("all", "up", "down")

T = TypeVar("T")
R = TypeVar("R")


def parallelize_map(
    func: Callable[[T], R],
    inputs: Iterable[T],
    processes: int = 8,
    method: str = "spawn",
) -> List[R]:
    """Execute a function on multiple inputs in parallel using imap_unordered.

    Runs a function on multiple single arguments in parallel using a process pool
    with progress tracking via tqdm.

    Args:
        func: Function to execute in parallel (taking a single argument)
        inputs: Iterable of arguments to pass to the function
        processes: Number of parallel processes to use, defaults to 8
        method: Multiprocessing start method ('spawn', 'fork', or 'forkserver')

    Returns:
        List[R]: List of function results in potentially different order from inputs
    """
    inputs = list(inputs)
    with get_context(method).Pool(max(processes, 1), maxtasksperchild=1) as pool:
        return list(
            tqdm(
                pool.imap_unordered(func, inputs),
                total=len(inputs),
            )
        )


def filter_df(
    df: pd.DataFrame, filter_values: Dict[str, Iterable[Any]]
) -> pd.DataFrame:
    """Filter DataFrame rows based on values in specified columns.

    Args:
        df: DataFrame to be filtered
        filter_values: Dictionary mapping column names to allowable values,
            where only rows with matching values are kept

    Returns:
        pd.DataFrame: Filtered DataFrame containing only rows that match all criteria

    Raises:
        ValueError: If any key in filter_values is not a column in the DataFrame

    Example:
        >>> filter_df(annot_df, {"resistance": ["resistant"], "antibiotic": ["AMK"]})
    """
    unknown_cols = [k for k in filter_values.keys() if k not in df.columns]
    if unknown_cols:
        raise ValueError(f"Columns {unknown_cols} are not part of the dataframe")

    return df[
        np.logical_and.reduce(
            [
                df[column].isin(target_values)
                for column, target_values in filter_values.items()
            ]
        )
    ]


def align_samples(
    expr_df: pd.DataFrame, annot_df: pd.DataFrame
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Restrict an expression matrix and its samples annotation to common samples.

    The returned objects share the same samples in the same order (that of
    annot_df).

    Args:
        expr_df: Expression matrix of shape [n_genes, n_samples].
        annot_df: Samples annotation indexed by sample id.

    Raises:
        ValueError: If there are no samples in common.
    """
    common_samples = annot_df.index.intersection(expr_df.columns)
    if common_samples.empty:
        raise ValueError(
            "Expression matrix and samples annotation have no samples in common."
        )

    return expr_df.loc[:, common_samples], annot_df.loc[common_samples, :]


def filter_expression(
    expr_df: pd.DataFrame,
    min_value: float = 0.0,
    min_samples: int = 1,
    drop_na: bool = True,
) -> pd.DataFrame:
    """Filter out genes not expressed enough across samples.

    Args:
        expr_df: Expression matrix of shape [n_genes, n_samples].
        min_value: Minimum intensity a gene must exceed in a sample to count as
            expressed in that sample.
        min_samples: Minimum number of samples in which a gene must be expressed.
        drop_na: Whether to drop genes with missing values in any sample.

    Returns:
        pd.DataFrame: Filtered expression matrix.
    """
    n_genes = len(expr_df)
    if drop_na:
        expr_df = expr_df.dropna(how="any")

    expr_df = expr_df[(expr_df > min_value).sum(axis=1) >= min_samples]
    logging.info(f"Kept {len(expr_df)} out of {n_genes} genes after filtering.")

    return expr_df


def transform_expression(
    expr_df: pd.DataFrame, method: str = "none", scale: float = 1e6
) -> pd.DataFrame:
    """Transform an expression matrix.

    Args:
        expr_df: Expression matrix of shape [n_genes, n_samples].
        method: One of:
            - "none": values are returned unchanged.
            - "log2": log2(x + 1), used for visualization.
            - "unlog2": 2 ** x, for matrices deposited on log2 scale, since the
                Tweedie model expects non-negative intensities on linear scale.
            - "tss": total sum scaling, each sample is divided by its total and
                multiplied by `scale`.
        scale: Scaling factor for "tss".

    Raises:
        ValueError: If the method is not supported.
    """
    if method == "none":
        return expr_df.copy()
    elif method == "log2":
        return np.log2(expr_df + 1)
    elif method == "unlog2":
        return np.power(2.0, expr_df)
    elif method == "tss":
        return expr_df.div(expr_df.sum(axis=0), axis=1) * scale

    raise ValueError(
        f'Transform method "{method}" not supported. '
        'Use "none", "log2", "unlog2" or "tss".'
    )


def collapse_gene_ids(
    expr_df: pd.DataFrame, gene_map: pd.Series, agg: str = "mean"
) -> pd.DataFrame:
    """Rename expression rows to new gene ids, aggregating rows with the same id.

    Rows whose id is not present in gene_map are dropped.

    Args:
        expr_df: Expression matrix of shape [n_probes, n_samples].
        gene_map: Target gene ids indexed by the current row ids.
        agg: Aggregation applied to rows mapped to the same gene ("mean",
            "median", "max" or "sum").
    """
    common_ids = expr_df.index.intersection(gene_map.index)
    if common_ids.empty:
        logging.warning("None of the expression ids could be mapped.")

    expr_df = expr_df.loc[common_ids]
    return expr_df.groupby(gene_map[common_ids].values).agg(agg)


def annotate_samples(
    samples_df: pd.DataFrame,
    source_col: str = "title",
    antibiotic_pattern: str = r"^(?P<antibiotic>[A-Za-z]+)",
    parent_pattern: str = r"(?i)parent",
    resistance_col: str = RESISTANCE_COL,
    antibiotic_col: str = ANTIBIOTIC_COL,
) -> pd.DataFrame:
    """Annotate each sample with its resistance status and antibiotic label.

    Samples whose `source_col` value matches `parent_pattern` are the susceptible
    parent strain (antibiotic label "parent"). The antibiotic label of every other
    sample is the "antibiotic" named group of `antibiotic_pattern` (upper-cased),
    and those samples are annotated as resistant. Samples matching neither pattern
    are dropped with a warning.

    Args:
        samples_df: Samples metadata, indexed by sample id.
        source_col: Column whose values encode strain and antibiotic.
        antibiotic_pattern: Regular expression with a named group "antibiotic".
        parent_pattern: Regular expression identifying parent strain samples.
        resistance_col: Name of the new resistance status column.
        antibiotic_col: Name of the new antibiotic column.

    Returns:
        pd.DataFrame: Annotated copy of samples_df.

    Raises:
        ValueError: If source_col is missing, the antibiotic pattern has no
            "antibiotic" group, or no parent sample is found.
    """
    if source_col not in samples_df.columns:
        raise ValueError(f'Column "{source_col}" not found in samples annotation.')
    if "antibiotic" not in re.compile(antibiotic_pattern).groupindex:
        raise ValueError('antibiotic_pattern must define a named group "antibiotic".')

    annot_df = deepcopy(samples_df)
    source = annot_df[source_col].astype(str)

    # 1. Parent strain
    is_parent = source.str.contains(parent_pattern, regex=True)
    if not is_parent.any():
        raise ValueError(
            f'No parent samples found in "{source_col}" matching "{parent_pattern}".'
        )
    annot_df.loc[is_parent, resistance_col] = SUSCEPTIBLE
    annot_df.loc[is_parent, antibiotic_col] = PARENT

    # 2. Resistant strains
    antibiotics = source[~is_parent].str.extract(antibiotic_pattern)["antibiotic"]
    antibiotics = antibiotics.dropna().str.upper()
    annot_df.loc[antibiotics.index, resistance_col] = RESISTANT
    annot_df.loc[antibiotics.index, antibiotic_col] = antibiotics

    # 3. Drop unlabelled samples
    unlabelled = annot_df.index[annot_df[resistance_col].isna()]
    if len(unlabelled) > 0:
        logging.warning(
            f"Dropping {len(unlabelled)} samples that could not be annotated: "
            f"{unlabelled.tolist()}"
        )

    return annot_df.drop(index=unlabelled)


def get_antibiotics(
    annot_df: pd.DataFrame, antibiotic_col: str = ANTIBIOTIC_COL
) -> List[str]:
    """Sorted antibiotic labels present in a samples annotation, parent excluded."""
    return sorted(set(annot_df[antibiotic_col].dropna()) - {PARENT})


def select_contrast_samples(
    annot_df: pd.DataFrame,
    antibiotic: str,
    resistance_col: str = RESISTANCE_COL,
    antibiotic_col: str = ANTIBIOTIC_COL,
) -> pd.DataFrame:
    """Select resistant samples of one antibiotic plus all parent samples.

    Resistant samples come first, then parent samples.

    Raises:
        ValueError: If there are no resistant samples for the antibiotic or no
            parent samples.
    """
    test_df = filter_df(
        annot_df, {antibiotic_col: [antibiotic], resistance_col: [RESISTANT]}
    )
    control_df = filter_df(annot_df, {resistance_col: [SUSCEPTIBLE]})

    if test_df.empty:
        raise ValueError(f"No resistant samples found for antibiotic {antibiotic}.")
    if control_df.empty:
        raise ValueError("No susceptible parent samples found.")

    return pd.concat([test_df, control_df])


def filter_de_results(
    result: pd.DataFrame,
    p_col: str = "qvalue",
    p_th: float = 0.05,
    lfc_level: str = "all",
    lfc_th: float = 1.0,
    lfc_col: str = "log2FoldChange",
) -> pd.DataFrame:
    """
    Filter differential expression results according to statistics metrics.

    Args:
        result: Differential expression results, one row per gene.
        p_col: by which column to filter, usually "pvalue" or "qvalue"
        p_th: significance threshold, genes with p_col < p_th are kept
        lfc_level: genes to keep, "up" for up-regulated, "down" for
            down-regulated, and "all" for all.
        lfc_th: LFC threshold, genes with |LFC| > lfc_th are kept.
        lfc_col: Name of the log2 fold change column.

    Raises:
        ValueError: If lfc_level is not one of "all", "up" or "down".
    """
    if lfc_level not in LFC_LEVELS:
        raise ValueError(f'lfc_level must be one of {LFC_LEVELS}, got "{lfc_level}"')

    # 1. Filter by LFC level
    if lfc_level == "up":
        result = result[result[lfc_col] > 0]
    elif lfc_level == "down":
        result = result[result[lfc_col] < 0]

    # 2. Filter by LFC and significance thresholds
    return result[(result[lfc_col].abs() > lfc_th) & (result[p_col] < p_th)]


def threshold_str(value: float) -> str:
    """String representation of a threshold, safe to use in file names."""
    return str(value).replace(".", "_")


def de_results_summary(
    results_filtered: Dict[Tuple[str, str, float, str, float], pd.DataFrame],
) -> pd.DataFrame:
    """Count significant genes per antibiotic, threshold combination and direction.

    Args:
        results_filtered: Filtered results keyed by
            (antibiotic, p_col, p_th, lfc_level, lfc_th).

    Returns:
        pd.DataFrame: One row per (antibiotic, p_col, p_th, lfc_th) and one column
            per LFC level.
    """
    summary = {}
    for (antibiotic, p_col, p_th, lfc_level, lfc_th), result in results_filtered.items():
        summary.setdefault((antibiotic, p_col, p_th, lfc_th), {})[lfc_level] = len(
            result
        )

    summary_df = pd.DataFrame.from_dict(summary, orient="index")
    summary_df.index.names = ["antibiotic", "p_col", "p_th", "lfc_th"]
    return summary_df[[level for level in LFC_LEVELS if level in summary_df.columns]]


def combine_de_results(
    results: Dict[str, pd.DataFrame],
    significant: Dict[str, Iterable[str]],
    lfc_col: str = "log2FoldChange",
    p_col: str = "qvalue",
) -> pd.DataFrame:
    """Build a cross-antibiotic table of effect sizes for significant genes.

    Only genes significant in at least one antibiotic are included. Each
    antibiotic contributes two columns, "<antibiotic>_<lfc_col>" and
    "<antibiotic>_<p_col>", plus a final column "n_antibiotics" counting in how
    many antibiotics each gene is significant.

    Args:
        results: Unfiltered results per antibiotic, indexed by gene id.
        significant: Significant gene ids per antibiotic.
        lfc_col: Effect size column.
        p_col: Significance column.

    Returns:
        pd.DataFrame: Genes sorted by number of antibiotics (descending), then id.
    """
    genes = sorted(set().union(*[set(g) for g in significant.values()]))
    combined_df = pd.DataFrame(index=pd.Index(genes, name="gene_id"))

    for antibiotic, result in results.items():
        result = result.reindex(combined_df.index)
        combined_df[f"{antibiotic}_{lfc_col}"] = result[lfc_col]
        combined_df[f"{antibiotic}_{p_col}"] = result[p_col]

    membership_df = gene_membership(significant)
    combined_df["n_antibiotics"] = (
        membership_df.loc[combined_df.index].sum(axis=1).astype(int)
    )

    return combined_df.sort_values(
        ["n_antibiotics", "gene_id"], ascending=[False, True]
    )


def gene_membership(gene_sets: Dict[str, Iterable[str]]) -> pd.DataFrame:
    """Boolean gene x set table indicating which set contains each gene."""
    genes = sorted(set().union(*[set(g) for g in gene_sets.values()]))
    membership_df = pd.DataFrame(
        {name: [gene in set(gs) for gene in genes] for name, gs in gene_sets.items()},
        index=pd.Index(genes, name="gene_id"),
        dtype=bool,
    )
    return membership_df


def top_genes(
    result: pd.DataFrame,
    top_n: int,
    p_col: str = "qvalue",
    lfc_col: str = "log2FoldChange",
    genes: Optional[Iterable[str]] = None,
) -> List[str]:
    """Top genes sorted by absolute effect size (descending), then significance."""
    if genes is not None:
        result = result.loc[result.index.intersection(list(genes))]

    ranked = result.assign(_abs_lfc=result[lfc_col].abs()).sort_values(
        ["_abs_lfc", p_col], ascending=[False, True]
    )
    return ranked.index[:top_n].tolist()
