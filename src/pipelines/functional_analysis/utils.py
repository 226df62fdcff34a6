"""
Utilities for KEGG pathway enrichment of differentially expressed genes.

The DEGs of every antibiotic are treated as one gene cluster and compared at once
with clusterProfiler's compareCluster, so that pathways shared by, or specific to,
each resistance can be spotted in a single table and dot plot. Optionally, each
antibiotic is also analysed on its own with over-representation analysis (ORA)
and gene set enrichment analysis (GSEA) on its ranked fold changes.

Gene identifiers must be KEGG gene ids (b-numbers for E. coli K-12), either
directly in the results tables or through a gene map.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Tuple

import pandas as pd
import rpy2.robjects as ro

from components.functional_analysis.kegg import (
    run_kegg_compare_cluster,
    run_kegg_gsea,
    run_kegg_ora,
)
from data.utils import threshold_str
from pipelines.differential_expression.utils import results_file_name
from r_wrappers.cluster_profiler import bitr_kegg
from r_wrappers.utils import prepare_gene_list


def prepare_gene_lists(
    result: pd.DataFrame,
    gene_map: Optional[pd.Series] = None,
    p_col: str = "qvalue",
    p_th: float = 0.05,
    lfc_level: str = "all",
    lfc_th: float = 1.0,
) -> Tuple[ro.FloatVector, ro.FloatVector]:
    """
    Background (all tested genes) and filtered (DEGs) gene lists, as named
        vectors of log2 fold changes sorted in decreasing order.
    """
    background_genes = prepare_gene_list(result, gene_map=gene_map)
    filtered_genes = prepare_gene_list(
        result,
        gene_map=gene_map,
        p_col=p_col,
        p_th=p_th,
        lfc_level=lfc_level,
        lfc_th=lfc_th,
    )
    return background_genes, filtered_genes


def kegg_enrichment(
    results_root: Path,
    antibiotics: Iterable[str],
    func_path: Path,
    plots_path: Path,
    p_col: str = "qvalue",
    p_th: float = 0.05,
    lfc_level: str = "all",
    lfc_th: float = 1.0,
    gene_map: Optional[pd.Series] = None,
    from_type: Optional[str] = None,
    organism: str = "eco",
    key_type: str = "kegg",
    enrich_p_th: float = 0.05,
    per_antibiotic: bool = True,
    run_gsea: bool = True,
) -> Optional[pd.DataFrame]:
    """
    KEGG enrichment of the DEGs of every antibiotic.

    Written files:
        - func_path/compare_cluster_<thresholds>.csv: one row per enriched
            (antibiotic, pathway) pair.
        - func_path/<antibiotic>/<antibiotic>_<thresholds>_ora.csv and
            <antibiotic>_gsea.csv, if per_antibiotic.
        - Dot plots and enrichment maps of each result in plots_path.

    Args:
        results_root: Directory with one results subdirectory per antibiotic.
        antibiotics: Antibiotics to include, each is one cluster.
        func_path: Directory to store enrichment tables.
        plots_path: Directory to store enrichment plots.
        p_col: Significance column used to select DEGs.
        p_th: Significance threshold used to select DEGs.
        lfc_level: Direction of change of DEGs ("all", "up", "down").
        lfc_th: Absolute log2 fold change threshold used to select DEGs.
        gene_map: Optional KEGG gene ids indexed by the ids of the results.
        from_type: If given and gene_map is None, results ids of this type
            ("ncbi-geneid", "ncbi-proteinid" or "uniprot") are translated to
            KEGG ids with bitr_kegg.
        organism: KEGG organism code.
        key_type: KEGG key type of the gene ids.
        enrich_p_th: Adjusted p-value cutoff of enriched pathways.
        per_antibiotic: Whether to also run ORA for each antibiotic.
        run_gsea: Whether to also run GSEA for each antibiotic.

    Returns:
        The compareCluster table, or None if it could not be computed.
    """
    thresholds = f"{p_col}_{threshold_str(p_th)}_{lfc_level}_{threshold_str(lfc_th)}"
    func_kwargs = dict(
        organism=organism,
        keyType=key_type,
        pvalueCutoff=enrich_p_th,
        pAdjustMethod="BH",
    )

    # 1. Load results
    results = {}
    for antibiotic in antibiotics:
        results_file = results_root.joinpath(antibiotic).joinpath(
            results_file_name(antibiotic)
        )
        if not results_file.exists():
            logging.warning(
                f"[{antibiotic}] Results file {results_file} not found, skipping."
            )
            continue
        results[antibiotic] = pd.read_csv(results_file, index_col=0).rename(index=str)

    if not results:
        logging.warning(f"[{thresholds}] No results found, skipping KEGG enrichment.")
        return None

    # 2. Translate gene ids to KEGG ids
    if gene_map is None and from_type is not None:
        ids_df = bitr_kegg(
            sorted(set().union(*[set(r.index) for r in results.values()])),
            from_type=from_type,
            to_type=key_type,
            organism=organism,
        )
        ids_df = ids_df.drop_duplicates(subset=ids_df.columns[0], keep=False)
        gene_map = ids_df.set_index(ids_df.columns[0])[ids_df.columns[1]]
        logging.info(
            f"[{thresholds}] {len(gene_map)} genes could be translated from "
            f"{from_type} to {key_type} ids."
        )

    # 3. Prepare gene lists
    gene_lists = {}
    for antibiotic, result in results.items():
        gene_lists[antibiotic] = prepare_gene_lists(
            result,
            gene_map=gene_map,
            p_col=p_col,
            p_th=p_th,
            lfc_level=lfc_level,
            lfc_th=lfc_th,
        )
        if len(gene_lists[antibiotic][1]) == 0:
            logging.warning(f"[{antibiotic}] No DEGs for {thresholds}.")

    # 4. Compare clusters
    universe = sorted(
        set().union(
            *[
                set(background.names)
                for background, _ in gene_lists.values()
                if len(background) > 0
            ]
        )
    )
    cc = run_kegg_compare_cluster(
        gene_clusters={
            antibiotic: list(filtered.names)
            for antibiotic, (_, filtered) in gene_lists.items()
            if len(filtered) > 0
        },
        files_prefix=func_path.joinpath(f"compare_cluster_{thresholds}"),
        plots_prefix=plots_path.joinpath(f"compare_cluster_{thresholds}"),
        universe=ro.StrVector(universe),
        **func_kwargs,
    )

    # 5. Per-antibiotic analyses
    if per_antibiotic:
        for antibiotic, (background_genes, filtered_genes) in gene_lists.items():
            if len(filtered_genes) > 0:
                run_kegg_ora(
                    background_genes=background_genes,
                    filtered_genes=filtered_genes,
                    files_prefix=func_path.joinpath(antibiotic).joinpath(
                        f"{antibiotic}_{thresholds}_ora"
                    ),
                    plots_prefix=plots_path.joinpath(antibiotic).joinpath(
                        f"{antibiotic}_{thresholds}_ora"
                    ),
                    **func_kwargs,
                )
            if run_gsea:
                run_kegg_gsea(
                    background_genes=background_genes,
                    files_prefix=func_path.joinpath(antibiotic).joinpath(
                        f"{antibiotic}_gsea"
                    ),
                    plots_prefix=plots_path.joinpath(antibiotic).joinpath(
                        f"{antibiotic}_gsea"
                    ),
                    seed=True,
                    **func_kwargs,
                )

    if cc is None or cc.is_empty:
        return None
    return cc.func_result_df
