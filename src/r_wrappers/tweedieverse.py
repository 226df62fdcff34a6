"""
Wrappers for R package Tweedieverse

All functions have pythonic inputs and outputs.

Note that the arguments in python use "_" instead of ".".
rpy2 does this transformation for us.

Example:
R --> data.category
Python --> data_category
"""

from pathlib import Path
from typing import Any, Iterable

import numpy as np
import pandas as pd
from rpy2 import robjects as ro
from rpy2.robjects.packages import importr

from r_wrappers.utils import pd_df_to_rpy2_df

r_tweedieverse = importr("Tweedieverse")

RESULTS_FILE = "all_results.tsv"


def tweedieverse(
    expr_df: pd.DataFrame,
    annot_df: pd.DataFrame,
    output_path: Path,
    fixed_effects: Iterable[str],
    reference: str,
    **kwargs: Any,
) -> pd.DataFrame:
    """Run Tweedieverse per-feature differential abundance tests.

    Tweedieverse fits one Tweedie (compound Poisson) GLM per gene with a log
    link, so the reported coefficients are natural-log fold changes. Its own
    results files are written to output_path and the table of all associations
    is returned.

    Args:
        expr_df: Non-negative expression matrix of shape [n_genes, n_samples].
        annot_df: Samples annotation indexed by sample id.
        output_path: Directory where Tweedieverse writes its outputs.
        fixed_effects: Columns of annot_df included as fixed effects.
        reference: Reference levels of categorical variables, as expected by
            Tweedieverse, e.g., "resistance,susceptible".
        **kwargs: Additional arguments to pass to Tweedieverse.
            Common parameters include:
            - base_model: "CPLM" (default), "ZICP", "ZSCP" or "ZACP".
            - max_significance: q-value threshold for significant results.
            - prev_threshold: Minimum prevalence of non-zero values.
            - cores: Number of R cores.

    Returns:
        pd.DataFrame: Tweedieverse results indexed by gene id, with columns
            "metadata", "value", "coef", "stderr", "log2FoldChange", "pvalue"
            and "qvalue".

    References:
        https://github.com/himelmallick/Tweedieverse
    """
    # 0. Setup
    fixed_effects = list(fixed_effects)
    samples = annot_df.index.intersection(expr_df.columns)
    if len(samples) == 0:
        raise ValueError("Expression matrix and annotation have no samples in common.")
    output_path.mkdir(exist_ok=True, parents=True)

    # 1. Run model, Tweedieverse expects samples as rows
    r_tweedieverse.Tweedieverse(
        input_features=pd_df_to_rpy2_df(expr_df.loc[:, samples].transpose()),
        input_metadata=pd_df_to_rpy2_df(annot_df.loc[samples, fixed_effects]),
        output=str(output_path),
        fixed_effects=ro.StrVector(fixed_effects),
        reference=reference,
        **kwargs,
    )

    # 2. Collect results
    results = pd.read_csv(output_path.joinpath(RESULTS_FILE), sep="\t").rename(
        columns={"feature": "gene_id", "pval": "pvalue", "qval": "qvalue"}
    )
    results["log2FoldChange"] = results["coef"] / np.log(2)

    return results.set_index("gene_id")[
        ["metadata", "value", "coef", "stderr", "log2FoldChange", "pvalue", "qvalue"]
    ]
