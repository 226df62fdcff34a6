from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import pandas as pd
import rpy2.robjects as ro
from rpy2.robjects import pandas2ri
from rpy2.robjects.conversion import localconverter
from rpy2.robjects.packages import importr

r_utils = importr("utils")
r_grdevices = importr("grDevices")


def rpy2_df_to_pd_df(rpy2_df: Any) -> pd.DataFrame:
    """
    Converts a rpy2 DataFrame object to a pandas Dataframe object.

    (docs in https://rpy2.github.io/doc/latest/html/pandas.html)
    """
    # 0. Ensure rpy2 object is (or is convertible to) an R dataframe
    with localconverter(ro.default_converter):
        rpy2_df = ro.r("as.data.frame")(rpy2_df)

    with localconverter(ro.default_converter + pandas2ri.converter):
        pd_from_r_df = ro.conversion.rpy2py(rpy2_df)

    return pd_from_r_df


def pd_df_to_rpy2_df(pd_df: pd.DataFrame) -> ro.DataFrame:
    """
    Converts a pandas DataFrame object to a rpy2 Dataframe object.

        (docs in https://rpy2.github.io/doc/latest/html/pandas.html)
    """

    with localconverter(ro.default_converter + pandas2ri.converter):
        r_from_pd_df = ro.conversion.py2rpy(pd_df)
    return r_from_pd_df


def pd_df_to_r_matrix(pd_df: pd.DataFrame) -> Any:
    """
    Converts a numeric pandas DataFrame to an R matrix, keeping row and column
        names.
    """
    mat = ro.r("as.matrix")(pd_df_to_rpy2_df(pd_df))
    mat.rownames = ro.StrVector(pd_df.index.astype(str).tolist())
    mat.colnames = ro.StrVector(pd_df.columns.astype(str).tolist())
    return mat


def save_rds(obj: Any, save_path: Path):
    """
    Saves a given R object into an .RDS file.
    """
    # 0. Ensure path has the right extension
    if save_path.suffix != ".RDS":
        raise ValueError("The extension of the file provided must be .RDS")

    ro.r.saveRDS(obj, file=str(save_path))


@contextmanager
def open_graphics_device(
    save_path: Path, width: float = 10, height: float = 10, res: int = 300
):
    """
    Opens an R graphics device matching the file extension of save_path and
        closes it on exit. Base R and grid plots drawn inside the context are
        written to save_path.

    Args:
        save_path: Output file, either ".png" or ".pdf".
        width: Width of the figure in inches.
        height: Height of the figure in inches.
        res: Resolution in pixels per inch (only for ".png").
    """
    if save_path.suffix == ".png":
        r_grdevices.png(
            str(save_path), width=width, height=height, units="in", res=res
        )
    elif save_path.suffix == ".pdf":
        r_grdevices.pdf(str(save_path), width=width, height=height)
    else:
        raise ValueError(
            f"Save file had suffix {save_path.suffix}, but only .png and .pdf are"
            " possible."
        )

    try:
        yield
    finally:
        r_grdevices.dev_off()


def prepare_gene_list(
    genes: pd.DataFrame,
    gene_map: Optional[pd.Series] = None,
    p_col: str = "qvalue",
    p_th: Optional[float] = None,
    lfc_col: str = "log2FoldChange",
    lfc_level: str = "all",
    lfc_th: Optional[float] = None,
    numeric_col: str = "log2FoldChange",
) -> ro.FloatVector:
    """
    Prepares a gene list from differential expression results to match the
        expected format of clusterProfiler. If a gene map is provided, gene ids
        are translated and genes without a (unique) translation are removed.

    Args:
        genes: A dataframe indexed by gene ids, containing at least a numeric
            column that can be used to rank them.
        gene_map: Optional target ids (e.g., KEGG ids) indexed by gene ids.
        p_col: Name of p-value column.
        p_th: Optionally filter by p_col.
        lfc_col: Name of LFC column.
        lfc_level: genes to keep, "up" for up-regulated, "down" for
            down-regulated, and "all" for all.
        lfc_th: Optionally filter by lfc_col.
        numeric_col: Column that should be used to retrieve the numeric vector
            for the gene list.

    Returns:
        Float vector (R object) with values sorted in decreasing order and names
            equal to gene ids.
    """
    genes_list = genes.dropna(subset=[numeric_col])

    # 1. Translate gene ids
    if gene_map is not None:
        genes_list = genes_list.loc[genes_list.index.intersection(gene_map.index)]
        genes_list.index = gene_map[genes_list.index].values
        genes_list = genes_list[~genes_list.index.duplicated(keep=False)]

    # 2. Filter results
    # 2.1. By p-value/q-value
    if p_th:
        genes_list = genes_list[genes_list[p_col] < p_th]

    # 2.2. By LFC level
    if lfc_level == "up":
        genes_list = genes_list[genes_list[lfc_col] > 0]
    elif lfc_level == "down":
        genes_list = genes_list[genes_list[lfc_col] < 0]

    # 2.3. By log2 Fold Change
    if lfc_th:
        genes_list = genes_list[genes_list[lfc_col].abs() > lfc_th]

    # 3. Sort by numeric column
    genes_list = genes_list.sort_values(numeric_col, ascending=False)

    # 4. Build gene list and return
    x = ro.FloatVector(genes_list[numeric_col].tolist())
    x.names = ro.StrVector(genes_list.index.astype(str).tolist())
    return x


def gene_clusters_list(gene_clusters: Dict[str, Iterable[str]]) -> ro.ListVector:
    """
    Builds a named R list of character vectors, one per gene cluster, as
        expected by clusterProfiler::compareCluster. Empty clusters are dropped.
    """
    gene_clusters = {k: [str(g) for g in v] for k, v in gene_clusters.items()}
    return ro.ListVector(
        {name: ro.StrVector(genes) for name, genes in gene_clusters.items() if genes}
    )
