import argparse
import functools
import logging
import multiprocessing
import warnings
from itertools import product
from multiprocessing import freeze_support
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd
from rich import traceback
from rpy2.rinterface_lib.callbacks import logger as rpy2_logger
from tqdm.rich import tqdm

from data.io import read_gene_map
from data.utils import get_antibiotics, parallelize_map
from pipelines.functional_analysis.utils import kegg_enrichment
from utils import run_func_dict

_ = traceback.install()
rpy2_logger.setLevel(logging.ERROR)
logging.basicConfig(force=True)
logging.getLogger().setLevel(logging.WARNING)
warnings.filterwarnings("ignore")

parser = argparse.ArgumentParser()
parser.add_argument(
    "--root-dir",
    type=str,
    help="Root directory",
    nargs="?",
    default="/media/ssd/storage",
)
parser.add_argument(
    "--threads",
    type=int,
    help="Number of threads for parallel processing",
    nargs="?",
    default=multiprocessing.cpu_count() - 2,
)
parser.add_argument(
    "--gene-map",
    type=str,
    help=(
        "Optional CSV with columns gene_id and kegg_id, needed when results are "
        "not indexed by KEGG gene ids (b-numbers)"
    ),
    nargs="?",
    default=None,
)
parser.add_argument(
    "--from-type",
    type=str,
    help=(
        "Gene id type of the results, translated to KEGG ids when no gene map "
        "is given"
    ),
    choices=("ncbi-geneid", "ncbi-proteinid", "uniprot"),
    default=None,
)

user_args = vars(parser.parse_args())
STORAGE: Path = Path(user_args["root_dir"])
DATA_ROOT: Path = STORAGE.joinpath("GSE59408")
ANNOT_PATH: Path = DATA_ROOT.joinpath("data").joinpath("samples_annotation.csv")
RESULTS_ROOT: Path = DATA_ROOT.joinpath("tweedie")
FUNC_PATH: Path = DATA_ROOT.joinpath("functional").joinpath("kegg")
PLOTS_PATH: Path = FUNC_PATH.joinpath("plots")
ORGANISM: str = "eco"  # E. coli K-12 MG1655, b-numbers as KEGG gene ids
KEY_TYPE: str = "kegg"
P_COLS: Iterable[str] = ("qvalue",)
P_THS: Iterable[float] = (0.05,)
LFC_LEVELS: Iterable[str] = ("all", "up", "down")
LFC_THS: Iterable[float] = (1.0,)
ENRICH_P_TH: float = 0.05
PARALLEL: bool = True

gene_map: Optional[pd.Series] = (
    read_gene_map(Path(user_args["gene_map"]), "gene_id", "kegg_id")
    if user_args["gene_map"]
    else None
)
antibiotics = get_antibiotics(pd.read_csv(ANNOT_PATH, index_col=0))

input_collection = [
    dict(
        results_root=RESULTS_ROOT,
        antibiotics=antibiotics,
        func_path=FUNC_PATH,
        plots_path=PLOTS_PATH,
        p_col=p_col,
        p_th=p_th,
        lfc_level=lfc_level,
        lfc_th=lfc_th,
        gene_map=gene_map,
        from_type=user_args["from_type"],
        organism=ORGANISM,
        key_type=KEY_TYPE,
        enrich_p_th=ENRICH_P_TH,
        per_antibiotic=True,
        # GSEA does not depend on thresholds, run it once
        run_gsea=(i == 0),
    )
    for i, (p_col, p_th, lfc_level, lfc_th) in enumerate(
        product(P_COLS, P_THS, LFC_LEVELS, LFC_THS)
    )
]

if __name__ == "__main__":
    freeze_support()
    if PARALLEL and len(input_collection) > 1:
        parallelize_map(
            functools.partial(run_func_dict, func=kegg_enrichment),
            input_collection,
            processes=min(user_args["threads"], len(input_collection)),
        )
    else:
        for ins in tqdm(input_collection):
            kegg_enrichment(**ins)
