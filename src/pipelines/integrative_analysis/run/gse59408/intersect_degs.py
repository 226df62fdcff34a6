import argparse
import logging
import warnings
from itertools import product
from pathlib import Path
from typing import Iterable

import pandas as pd
from rich import traceback
from rpy2.rinterface_lib.callbacks import logger as rpy2_logger
from tqdm.rich import tqdm

from data.utils import get_antibiotics
from pipelines.integrative_analysis.utils import intersect_degs

_ = traceback.install()
rpy2_logger.setLevel(logging.ERROR)
logging.basicConfig(force=True)
logging.getLogger().setLevel(logging.INFO)
warnings.filterwarnings("ignore")

parser = argparse.ArgumentParser()
parser.add_argument(
    "--root-dir",
    type=str,
    help="Root directory",
    nargs="?",
    default="/media/ssd/storage",
)

user_args = vars(parser.parse_args())
STORAGE: Path = Path(user_args["root_dir"])
DATA_ROOT: Path = STORAGE.joinpath("GSE59408")
ANNOT_PATH: Path = DATA_ROOT.joinpath("data").joinpath("samples_annotation.csv")
RESULTS_ROOT: Path = DATA_ROOT.joinpath("tweedie")
SUMMARY_PATH: Path = RESULTS_ROOT.joinpath("summary")
P_COLS: Iterable[str] = ("qvalue",)
P_THS: Iterable[float] = (0.05,)
LFC_LEVELS: Iterable[str] = ("all", "up", "down")
LFC_THS: Iterable[float] = (1.0,)
HEATMAP_TOP_N: int = 100

antibiotics = get_antibiotics(pd.read_csv(ANNOT_PATH, index_col=0))

input_collection = [
    dict(
        results_root=RESULTS_ROOT,
        antibiotics=antibiotics,
        summary_path=SUMMARY_PATH,
        p_col=p_col,
        p_th=p_th,
        lfc_level=lfc_level,
        lfc_th=lfc_th,
        heatmap_top_n=HEATMAP_TOP_N,
    )
    for p_col, p_th, lfc_level, lfc_th in product(P_COLS, P_THS, LFC_LEVELS, LFC_THS)
]

if __name__ == "__main__":
    for ins in tqdm(input_collection):
        intersect_degs(**ins)
