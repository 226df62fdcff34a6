"""
Wrappers for R visualization packages.

All functions have pythonic inputs and outputs.

Note that the arguments in python use "_" instead of ".".
rpy2 does this transformation automatically.

Example:
    R --> data.category
    Python --> data_category
"""

from pathlib import Path
from typing import Any, Iterable, Optional

import pandas as pd
from rpy2 import robjects as ro
from rpy2.robjects.packages import importr

from r_wrappers.utils import pd_df_to_rpy2_df

r_enhanced_volcano = importr("EnhancedVolcano")
r_ggplot2 = importr("ggplot2")


def volcano_plot(
    data: pd.DataFrame,
    x: str,
    y: str,
    save_path: Path,
    title: str = "",
    p_cutoff: float = 0.05,
    fc_cutoff: float = 1.0,
    select_lab: Optional[Iterable[str]] = None,
    width: int = 10,
    height: int = 10,
    **kwargs: Any,
) -> None:
    """
    Creates an enhanced volcano plot of differential expression results.

    A volcano plot displays statistical significance versus magnitude of change.
    Genes without statistics (e.g., models that could not be fitted) are not
    shown. Gene ids (the index of data) are used as labels.

    Args:
        data: Differential expression results indexed by gene id.
        x: Column name in data containing log2 fold changes.
        y: Column name in data containing nominal or adjusted p-values.
        save_path: Path where to save the generated plot.
        title: Plot title.
        p_cutoff: Significance threshold drawn on the y axis.
        fc_cutoff: Absolute log2 fold change threshold drawn on the x axis.
        select_lab: Only label these genes. By default, EnhancedVolcano labels
            the most significant ones.
        width: Width of saved figure in inches.
        height: Height of saved figure in inches.
        **kwargs: Additional arguments to pass to EnhancedVolcano function.

   References:
        - http://bioconductor.org/packages/release/bioc/vignettes/EnhancedVolcano/inst/doc/EnhancedVolcano.html
        - https://rdrr.io/bioc/EnhancedVolcano/man/EnhancedVolcano.html
    """
    data = data.dropna(subset=[x, y])
    if data.empty:
        raise ValueError("No genes with both fold changes and p-values to plot.")

    if select_lab is not None:
        kwargs["selectLab"] = ro.StrVector(list(map(str, select_lab)))

    plot = r_enhanced_volcano.EnhancedVolcano(
        toptable=pd_df_to_rpy2_df(data[[x, y]]),
        lab=ro.StrVector(data.index.astype(str).tolist()),
        x=x,
        y=y,
        title=title,
        subtitle="",
        pCutoff=p_cutoff,
        FCcutoff=fc_cutoff,
        ylab=f"-log10({y})",
        **kwargs,
    )
    r_ggplot2.ggsave(str(save_path), plot, width=width, height=height, dpi=300)
