import argparse
import functools
import logging
import multiprocessing
import warnings
from multiprocessing import freeze_support
from pathlib import Path
from typing import Dict, Iterable

import pandas as pd
from rich import traceback
from rpy2.rinterface_lib.callbacks import logger as rpy2_logger
from tqdm.rich import tqdm

from data.utils import RESISTANT, SUSCEPTIBLE, get_antibiotics, parallelize_map
from pipelines.differential_expression.utils import differential_expression
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

user_args = vars(parser.parse_args())
STORAGE: Path = Path(user_args["root_dir"])
DATA_ROOT: Path = STORAGE.joinpath("GSE59408")
DATA_PATH: Path = DATA_ROOT.joinpath("data")
EXPR_PATH: Path = DATA_PATH.joinpath("expression_filtered.csv")
ANNOT_PATH: Path = DATA_PATH.joinpath("samples_annotation.csv")
RESULTS_ROOT: Path = DATA_ROOT.joinpath("tweedie")
RESISTANCE_COLORS: Dict[str, str] = {
    RESISTANT: "#8B3A3A",
    SUSCEPTIBLE: "#4A708B",
}
P_COLS: Iterable[str] = ("qvalue",)
P_THS: Iterable[float] = (0.05,)
LFC_LEVELS: Iterable[str] = ("all", "up", "down")
LFC_THS: Iterable[float] = (1.0,)
BACKEND: str = "statsmodels"
VAR_POWER: float = 1.5
HEATMAP_TOP_N: int = 100
PARALLEL: bool = True

expr_df = pd.read_csv(EXPR_PATH, index_col=0)
annot_df = pd.read_csv(ANNOT_PATH, index_col=0)

input_collection = []
for antibiotic in get_antibiotics(annot_df):
    results_path = RESULTS_ROOT.joinpath(antibiotic)
    input_collection.append(
        dict(
            expr_df=expr_df,
            annot_df=annot_df,
            antibiotic=antibiotic,
            results_path=results_path,
            plots_path=results_path.joinpath("plots"),
            resistance_colors=RESISTANCE_COLORS,
            p_cols=P_COLS,
            p_ths=P_THS,
            lfc_levels=LFC_LEVELS,
            lfc_ths=LFC_THS,
            backend=BACKEND,
            var_power=VAR_POWER,
            heatmap_top_n=HEATMAP_TOP_N,
        )
    )

# Run differential expression, one job per antibiotic
if __name__ == "__main__":
    freeze_support()
    if PARALLEL and len(input_collection) > 1:
        parallelize_map(
            functools.partial(run_func_dict, func=differential_expression),
            input_collection,
            processes=min(user_args["threads"], len(input_collection)),
        )
    else:
        for ins in tqdm(input_collection):
            differential_expression(**ins)
