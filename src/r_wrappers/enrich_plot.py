"""
Wrappers for R package enrichplot

All functions have pythonic inputs and outputs.

Note that the arguments in python use "_" instead of ".".
rpy2 does this transformation for us.

Example:
R --> data.category
Python --> data_category
"""

from pathlib import Path
from typing import Any, Callable

import rpy2.robjects as ro
from rpy2.robjects.conversion import localconverter
from rpy2.robjects.packages import importr

r_enrichplot = importr("enrichplot")
r_ggplot2 = importr("ggplot2")


def _save_ggplot(
    plot_func: Callable,
    enrich_result: Any,
    save_path: Path,
    width: float,
    height: float,
    **kwargs: Any,
) -> None:
    """
    Draws a ggplot object with plot_func and saves it with ggsave. The image
        format is taken from the suffix of save_path.
    """
    with localconverter(ro.default_converter):
        plot = plot_func(enrich_result, **kwargs)
        r_ggplot2.ggsave(str(save_path), plot, width=width, height=height, dpi=320)


def dotplot(
    enrich_result: Any,
    save_path: Path,
    width: float = 10,
    height: float = 10,
    **kwargs: Any,
) -> None:
    """Dotplot of enriched terms.

    Works for enrichResult, gseaResult and compareClusterResult objects. In the
    latter case, there is one column of dots per gene cluster.

    Args:
        enrich_result: Enrichment result object from clusterProfiler.
        save_path: Path where the plot will be saved (e.g., ".png").
        width: Width of the saved figure in inches.
        height: Height of the saved figure in inches.
        **kwargs: Additional arguments to pass to dotplot.
            Common parameters include:
            - showCategory: Number of categories to show (default: 10).
            - font.size: Base font size.
            - title: Plot title.

    References:
        https://rdrr.io/bioc/enrichplot/man/dotplot.html
    """
    _save_ggplot(r_enrichplot.dotplot, enrich_result, save_path, width, height, **kwargs)


def barplot(
    enrich_result: Any,
    save_path: Path,
    width: float = 10,
    height: float = 10,
    **kwargs: Any,
) -> None:
    """Barplot of over-represented terms.

    Args:
        enrich_result: An enrichResult object from clusterProfiler.
        save_path: Path where the plot will be saved.
        width: Width of the saved figure in inches.
        height: Height of the saved figure in inches.
        **kwargs: Additional arguments to pass to barplot.enrichResult (e.g.,
            showCategory, x, title).

    References:
        https://rdrr.io/bioc/enrichplot/man/barplot.enrichResult.html
    """
    _save_ggplot(
        r_enrichplot.barplot_enrichResult,
        enrich_result,
        save_path,
        width,
        height,
        **kwargs,
    )


def pairwise_termsim(x: Any, **kwargs: Any) -> Any:
    """Compute the similarity between enriched terms based on their shared genes.

    References:
        https://rdrr.io/bioc/enrichplot/man/pairwise_termsim.html
    """
    with localconverter(ro.default_converter):
        return r_enrichplot.pairwise_termsim(x, **kwargs)


def emapplot(
    enrich_result: Any,
    save_path: Path,
    width: float = 10,
    height: float = 10,
    **kwargs: Any,
) -> None:
    """Enrichment map: a network of enriched terms linked by shared genes.

    Term similarities are computed before plotting. For compareClusterResult
    objects, nodes are drawn as pies showing the contribution of each cluster.

    Args:
        enrich_result: Enrichment result object from clusterProfiler.
        save_path: Path where the plot will be saved.
        width: Width of the saved figure in inches.
        height: Height of the saved figure in inches.
        **kwargs: Additional arguments to pass to emapplot (e.g., showCategory).

    References:
        https://rdrr.io/bioc/enrichplot/man/emapplot.html
    """
    _save_ggplot(
        r_enrichplot.emapplot,
        pairwise_termsim(enrich_result),
        save_path,
        width,
        height,
        **kwargs,
    )


def gene_concept_net(
    enrich_result: Any,
    save_path: Path,
    width: float = 10,
    height: float = 10,
    **kwargs: Any,
) -> None:
    """Gene-concept network linking enriched terms to their genes.

    Args:
        enrich_result: An enrichResult or gseaResult object.
        save_path: Path where the plot will be saved.
        width: Width of the saved figure in inches.
        height: Height of the saved figure in inches.
        **kwargs: Additional arguments to pass to cnetplot (e.g., showCategory,
            foldChange, circular).

    References:
        https://rdrr.io/bioc/enrichplot/man/cnetplot.html
    """
    _save_ggplot(r_enrichplot.cnetplot, enrich_result, save_path, width, height, **kwargs)
