"""
Wrappers for R package clusterProfiler

All functions have pythonic inputs and outputs.

Note that the arguments in python use "_" instead of ".".
rpy2 does this transformation for us.

Example:
R --> data.category
Python --> data_category
"""

from typing import Any, Dict, Iterable

import pandas as pd
from rpy2 import robjects as ro
from rpy2.robjects.packages import importr

from r_wrappers.utils import gene_clusters_list, rpy2_df_to_pd_df

r_cluster_profiler = importr("clusterProfiler")


def enrich_kegg(gene_names: ro.StrVector, **kwargs: Any) -> Any:
    """Perform KEGG pathway enrichment analysis on a gene set.

    This function performs over-representation analysis to identify enriched
    KEGG pathways for a given set of genes, with FDR control for multiple testing.

    Args:
        gene_names: A vector of gene identifiers (for E. coli K-12, KEGG ids are
            b-numbers such as "b0002").
        **kwargs: Additional arguments to pass to the enrichKEGG function.
            Common parameters include:
            - organism: KEGG organism code, e.g., "eco" for E. coli K-12 MG1655.
            - keyType: One of "kegg", "ncbi-geneid", "ncbi-proteinid", "uniprot".
            - pvalueCutoff: P-value cutoff (default: 0.05).
            - pAdjustMethod: Method for multiple testing correction (default: "BH").
            - universe: Background genes to use for enrichment analysis.
            - minGSSize: Minimum size of gene sets to consider.
            - maxGSSize: Maximum size of gene sets to consider.
            - qvalueCutoff: q-value cutoff (default: 0.2).

    Returns:
        Any: An enrichResult object containing enriched KEGG pathways.

    References:
        https://rdrr.io/bioc/clusterProfiler/man/enrichKEGG.html
    """
    return r_cluster_profiler.enrichKEGG(gene=gene_names, **kwargs)


def gse_kegg(gene_list: ro.FloatVector, **kwargs: Any) -> Any:
    """Perform Gene Set Enrichment Analysis with KEGG pathways.

    This function performs GSEA to identify enriched KEGG pathways
    for a ranked list of genes.

    Args:
        gene_list: A named vector with gene IDs as names and ranking metric
            as values (e.g., log fold changes), sorted in decreasing order.
        **kwargs: Additional arguments to pass to the gseKEGG function.
            Common parameters include:
            - organism: KEGG organism code, e.g., "eco".
            - keyType: Type of gene identifier provided.
            - pvalueCutoff: P-value cutoff (default: 0.05).
            - pAdjustMethod: Method for multiple testing correction (default: "BH").
            - minGSSize: Minimum size of gene sets to consider.
            - maxGSSize: Maximum size of gene sets to consider.
            - seed: Random seed for reproducibility.

    Returns:
        Any: A gseaResult object containing GSEA results for KEGG pathways.

    References:
        https://rdrr.io/bioc/clusterProfiler/man/gseKEGG.html
    """
    return r_cluster_profiler.gseKEGG(geneList=gene_list, **kwargs)


def compare_cluster(
    gene_clusters: Dict[str, Iterable[str]], fun: str = "enrichKEGG", **kwargs: Any
) -> Any:
    """Compare functional profiles among several gene clusters.

    Runs the same enrichment function on every cluster and gathers the results in
    a single object, so that enriched terms can be compared across clusters (e.g.,
    the DEGs of each antibiotic).

    Args:
        gene_clusters: Gene ids per cluster name. Empty clusters are dropped.
        fun: Name of the enrichment function, e.g., "enrichKEGG" or "enrichMKEGG".
        **kwargs: Additional arguments passed on to `fun` (e.g., organism,
            keyType, pvalueCutoff, pAdjustMethod, universe).

    Returns:
        Any: A compareClusterResult object.

    References:
        https://rdrr.io/bioc/clusterProfiler/man/compareCluster.html
    """
    return r_cluster_profiler.compareCluster(
        geneClusters=gene_clusters_list(gene_clusters), fun=fun, **kwargs
    )


def bitr_kegg(
    gene_ids: Iterable[str], from_type: str, to_type: str, organism: str = "eco"
) -> pd.DataFrame:
    """Translate gene ids using KEGG's conversion API.

    Args:
        gene_ids: Gene identifiers to translate.
        from_type: One of "kegg", "ncbi-geneid", "ncbi-proteinid" or "uniprot".
        to_type: One of "kegg", "ncbi-geneid", "ncbi-proteinid" or "uniprot".
        organism: KEGG organism code.

    Returns:
        pd.DataFrame: Two columns, from_type and to_type. Genes that could not be
            mapped are not included.

    References:
        https://rdrr.io/bioc/clusterProfiler/man/bitr_kegg.html
    """
    return rpy2_df_to_pd_df(
        r_cluster_profiler.bitr_kegg(
            ro.StrVector(list(map(str, gene_ids))),
            fromType=from_type,
            toType=to_type,
            organism=organism,
        )
    )
