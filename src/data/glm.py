"""Per-gene Tweedie generalized linear models for differential expression.

Each gene is modelled independently as ``intensity ~ condition`` with a Tweedie
distribution and log link, so the condition coefficient is the natural-log fold
change of the test group over the control group. Wald p-values are corrected for
multiple testing with the Benjamini-Hochberg procedure. Fitting and correction are
delegated to statsmodels.
"""

import logging
import warnings
from typing import Dict

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.stats.multitest import multipletests
from statsmodels.tools.sm_exceptions import ConvergenceWarning, PerfectSeparationError
from tqdm.rich import tqdm

RESULT_COLUMNS = ("coef", "stderr", "log2FoldChange", "pvalue", "qvalue")


def fit_tweedie_glm(
    y: np.ndarray, condition: np.ndarray, var_power: float = 1.5
) -> Dict[str, float]:
    """Fit a Tweedie GLM with log link for a single gene.

    Args:
        y: Non-negative intensities, one per sample.
        condition: Binary indicator, 1 for test samples and 0 for controls.
        var_power: Tweedie variance power, between 1 (Poisson) and 2 (Gamma).

    Returns:
        A dictionary with the condition coefficient ("coef", natural log scale),
        its standard error ("stderr"), the log2 fold change ("log2FoldChange")
        and the Wald test p-value ("pvalue"). All values are NaN when the model
        cannot be fitted, and when either group has no positive intensity (e.g.,
        a gene switched off in every test sample), since the log fold change is
        then unbounded.
    """
    nan_result = dict(coef=np.nan, stderr=np.nan, log2FoldChange=np.nan, pvalue=np.nan)

    # A log-link mean cannot be estimated for a group without signal
    if (y[condition == 1] <= 0).all() or (y[condition == 0] <= 0).all():
        return nan_result

    design = sm.add_constant(condition.astype(float), has_constant="add")
    model = sm.GLM(y, design, family=sm.families.Tweedie(var_power=var_power))

    with warnings.catch_warnings():
        warnings.simplefilter("error", ConvergenceWarning)
        fit = model.fit()

    coef, stderr, pvalue = fit.params[1], fit.bse[1], fit.pvalues[1]
    if not np.isfinite([coef, stderr]).all():
        return nan_result

    return dict(
        coef=coef,
        stderr=stderr,
        log2FoldChange=coef / np.log(2),
        pvalue=pvalue,
    )


def tweedie_differential_expression(
    expr_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    contrast_factor: str,
    test: str,
    control: str,
    var_power: float = 1.5,
    exp_prefix: str = "",
) -> pd.DataFrame:
    """Test every gene for differential expression between two sample groups.

    Args:
        expr_df: Non-negative expression matrix of shape [n_genes, n_samples].
        annot_df: Samples annotation indexed by sample id.
        contrast_factor: Column of annot_df defining the groups.
        test: Level of contrast_factor used as test group (numerator).
        control: Level of contrast_factor used as reference group (denominator).
        var_power: Tweedie variance power.
        exp_prefix: Label used in log messages.

    Returns:
        pd.DataFrame: One row per gene (same index as expr_df) with columns
            "coef", "stderr", "log2FoldChange", "pvalue" and "qvalue". Genes that
            could not be fitted, or without signal in one of the groups, have NaN
            statistics and are excluded from the multiple testing correction.
            Both cases are logged as warnings.

    Raises:
        ValueError: If the matrix has negative values, or either group has no
            samples in the expression matrix.
    """
    # 0. Setup
    annot_df = annot_df[annot_df[contrast_factor].isin([test, control])]
    samples = annot_df.index.intersection(expr_df.columns)
    annot_df = annot_df.loc[samples]
    condition = (annot_df[contrast_factor] == test).astype(int).values

    if condition.sum() == 0 or condition.sum() == len(condition):
        raise ValueError(
            f"[{exp_prefix}] Both {test} and {control} samples are needed, got "
            f"{int(condition.sum())} {test} and "
            f"{int(len(condition) - condition.sum())} {control} samples."
        )

    expr_values = expr_df.loc[:, samples]
    if (expr_values < 0).any().any():
        raise ValueError(
            f"[{exp_prefix}] Tweedie models require non-negative intensities. "
            'Consider transforming log-scale data with method "unlog2".'
        )

    # 0.1. Genes switched on or off in one group only, their LFC is unbounded
    no_signal_test = (expr_values.loc[:, condition == 1] <= 0).all(axis=1)
    no_signal_control = (expr_values.loc[:, condition == 0] <= 0).all(axis=1)
    for no_signal, group in ((no_signal_test, test), (no_signal_control, control)):
        genes = expr_values.index[no_signal & ~(no_signal_test & no_signal_control)]
        if len(genes) > 0:
            logging.warning(
                f"[{exp_prefix}] {len(genes)} genes have no signal in {group} "
                f"samples only, their statistics are set to NaN: {genes.tolist()}"
            )

    # 1. Fit one model per gene
    stats, n_failed = {}, 0
    for gene_id, y in tqdm(
        expr_values.iterrows(), total=len(expr_values), desc=exp_prefix or None
    ):
        try:
            stats[gene_id] = fit_tweedie_glm(y.values.astype(float), condition, var_power)
        except (
            ConvergenceWarning,
            PerfectSeparationError,
            np.linalg.LinAlgError,
            ValueError,
        ) as e:
            logging.debug(f"[{exp_prefix}] Could not fit gene {gene_id}: {e}")
            stats[gene_id] = dict(
                coef=np.nan, stderr=np.nan, log2FoldChange=np.nan, pvalue=np.nan
            )

        if np.isnan(stats[gene_id]["pvalue"]):
            n_failed += 1

    if n_failed > 0:
        logging.warning(
            f"[{exp_prefix}] Tweedie GLM could not be fitted for {n_failed} out of "
            f"{len(expr_values)} genes, their statistics are set to NaN."
        )

    result_df = pd.DataFrame.from_dict(
        stats, orient="index", columns=list(RESULT_COLUMNS[:-1])
    ).astype(float)
    result_df.index.name = expr_df.index.name or "gene_id"

    # 2. Benjamini-Hochberg correction over fitted genes
    result_df["qvalue"] = np.nan
    fitted = result_df["pvalue"].notna()
    if fitted.any():
        result_df.loc[fitted, "qvalue"] = multipletests(
            result_df.loc[fitted, "pvalue"].values, method="fdr_bh"
        )[1]

    return result_df[list(RESULT_COLUMNS)]
