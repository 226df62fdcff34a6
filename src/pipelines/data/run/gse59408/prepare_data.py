import argparse
import logging
import warnings
from pathlib import Path
from typing import Optional

from rich import traceback

from pipelines.data.utils import prepare_dataset

_ = traceback.install()
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
parser.add_argument(
    "--series-matrix",
    type=str,
    help="GEO series matrix file, defaults to <root-dir>/GSE59408/data/raw",
    nargs="?",
    default=None,
)
parser.add_argument(
    "--input-scale",
    type=str,
    help=(
        "Scale of the deposited intensities. GSE59408 values are deposited as "
        "log2 and are brought back to linear scale for the Tweedie models"
    ),
    choices=("linear", "log2"),
    default="log2",
)
parser.add_argument(
    "--gene-map",
    type=str,
    help="Optional CSV with columns probe_id and gene_id (KEGG ids)",
    nargs="?",
    default=None,
)

user_args = vars(parser.parse_args())
STORAGE: Path = Path(user_args["root_dir"])
DATASET: str = "GSE59408"
DATA_ROOT: Path = STORAGE.joinpath(DATASET)
DATA_PATH: Path = DATA_ROOT.joinpath("data")
PLOTS_PATH: Path = DATA_PATH.joinpath("plots")
SERIES_MATRIX_PATH: Path = (
    Path(user_args["series_matrix"])
    if user_args["series_matrix"]
    else DATA_PATH.joinpath("raw").joinpath(f"{DATASET}_series_matrix.txt.gz")
)
GENE_MAP_PATH: Optional[Path] = (
    Path(user_args["gene_map"]) if user_args["gene_map"] else None
)
# Sample titles start with the antibiotic abbreviation (e.g., "AMK resistant
# strain 1"), parent strain titles contain "parent"
SOURCE_COL: str = "title"
ANTIBIOTIC_PATTERN: str = r"^(?P<antibiotic>[A-Za-z]+)"
PARENT_PATTERN: str = r"(?i)parent"
MIN_VALUE: float = 0.0
MIN_SAMPLES: int = 3

if __name__ == "__main__":
    prepare_dataset(
        series_matrix_file=SERIES_MATRIX_PATH,
        data_path=DATA_PATH,
        plots_path=PLOTS_PATH,
        input_scale=user_args["input_scale"],
        source_col=SOURCE_COL,
        antibiotic_pattern=ANTIBIOTIC_PATTERN,
        parent_pattern=PARENT_PATTERN,
        min_value=MIN_VALUE,
        min_samples=MIN_SAMPLES,
        gene_map_file=GENE_MAP_PATH,
        exp_prefix=DATASET,
    )
