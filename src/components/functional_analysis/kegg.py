import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import rpy2.robjects as ro
from pydantic import Field
from pydantic.dataclasses import dataclass
from rpy2.rinterface_lib.embedded import RRuntimeError

from components.functional_analysis.base import Config, FunctionalAnalysisBase
from r_wrappers.cluster_profiler import compare_cluster, enrich_kegg, gse_kegg


@dataclass(config=Config)
class KEGGora(FunctionalAnalysisBase):
    """
    Over-representation analysis for KEGG Pathways.

    Args:
        filtered_genes: DEGs as a named vector (KEGG ids -> log2 fold changes).
        background_genes: All tested genes, used as universe.
        func_kwargs: Additional arguments for enrichKEGG.
    """

    filtered_genes: Optional[ro.FloatVector] = None
    background_genes: Optional[ro.FloatVector] = None
    func_kwargs: dict = Field(default_factory=dict)

    def __post_init__(self):
        # 1. Get functional result
        self.func_result = enrich_kegg(
            self.filtered_genes.names,
            universe=self.background_genes.names,
            **self.func_kwargs,
        )
        super().__post_init__()

    def plot_all(self, **kwargs):
        self.barplot(showCategory=10, x="Count", **kwargs)
        self.dotplot(showCategory=10, x="Count", **kwargs)
        self.emapplot(**kwargs)
        self.gene_concept_net(foldChange=self.filtered_genes, **kwargs)


@dataclass(config=Config)
class KEGGgsea(FunctionalAnalysisBase):
    """
    Gene-set Enrichment analysis for KEGG Pathways.

    Args:
        background_genes: All tested genes ranked by log2 fold change.
        func_kwargs: Additional arguments for gseKEGG.
    """

    background_genes: Optional[ro.FloatVector] = None
    func_kwargs: dict = Field(default_factory=dict)

    def __post_init__(self):
        # 1. Get functional result
        self.func_result = gse_kegg(self.background_genes, **self.func_kwargs)
        super().__post_init__()

    def plot_all(self, **kwargs):
        self.dotplot(showCategory=10, **kwargs)
        self.emapplot(**kwargs)
        self.gene_concept_net(foldChange=self.background_genes, **kwargs)


@dataclass(config=Config)
class KEGGCompareCluster(FunctionalAnalysisBase):
    """
    KEGG over-representation analysis of several gene clusters at once, one per
    antibiotic, so that enriched pathways can be compared between them.

    Args:
        gene_clusters: KEGG gene ids per cluster name.
        func_kwargs: Additional arguments for compareCluster and enrichKEGG
            (e.g., organism, universe, pvalueCutoff).
    """

    gene_clusters: Dict[str, List[str]] = Field(default_factory=dict)
    func_kwargs: dict = Field(default_factory=dict)

    def __post_init__(self):
        # 1. Get functional result
        self.func_result = compare_cluster(
            self.gene_clusters, fun="enrichKEGG", **self.func_kwargs
        )
        super().__post_init__()

    def plot_all(self, **kwargs):
        n_clusters = len([v for v in self.gene_clusters.values() if v])
        self.dotplot(
            showCategory=5, width=max(8, 1.2 * n_clusters), height=12, **kwargs
        )
        self.emapplot(width=14, height=14, **kwargs)


def run_kegg_ora(
    background_genes: ro.FloatVector,
    filtered_genes: ro.FloatVector,
    files_prefix: Path,
    plots_prefix: Path,
    **func_kwargs: Any,
) -> Optional[KEGGora]:
    try:
        ora = KEGGora(
            files_prefix=files_prefix,
            plots_prefix=plots_prefix,
            filtered_genes=filtered_genes,
            background_genes=background_genes,
            func_kwargs=func_kwargs,
        )
        ora.save_all()
        ora.plot_all()
        return ora
    except RRuntimeError as e:
        logging.warning(
            f"[{plots_prefix.name}] Error computing functional result: \n\t{e}"
        )


def run_kegg_gsea(
    background_genes: ro.FloatVector,
    files_prefix: Path,
    plots_prefix: Path,
    **func_kwargs: Any,
) -> Optional[KEGGgsea]:
    try:
        gsea = KEGGgsea(
            files_prefix=files_prefix,
            plots_prefix=plots_prefix,
            background_genes=background_genes,
            func_kwargs=func_kwargs,
        )
        gsea.save_all()
        gsea.plot_all()
        return gsea
    except RRuntimeError as e:
        logging.warning(
            f"[{plots_prefix.name}] Error computing functional result: \n\t{e}"
        )


def run_kegg_compare_cluster(
    gene_clusters: Dict[str, Iterable[str]],
    files_prefix: Path,
    plots_prefix: Path,
    **func_kwargs: Any,
) -> Optional[KEGGCompareCluster]:
    gene_clusters = {k: list(map(str, v)) for k, v in gene_clusters.items()}
    if not any(gene_clusters.values()):
        logging.warning(
            f"[{plots_prefix.name}] All gene clusters are empty, skipping KEGG "
            "comparison."
        )
        return None

    try:
        cc = KEGGCompareCluster(
            files_prefix=files_prefix,
            plots_prefix=plots_prefix,
            gene_clusters=gene_clusters,
            func_kwargs=func_kwargs,
        )
        cc.save_all()
        cc.plot_all()
        return cc
    except RRuntimeError as e:
        logging.warning(
            f"[{plots_prefix.name}] Error computing functional result: \n\t{e}"
        )
