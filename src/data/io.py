import gzip
import io
import logging
import re
from pathlib import Path
from typing import Tuple

import numpy as np
import pandas as pd

SERIES_TABLE_BEGIN: str = "!series_matrix_table_begin"
SERIES_TABLE_END: str = "!series_matrix_table_end"


def read_text(file_path: Path) -> str:
    """Read a plain or gzip-compressed text file.

    Args:
        file_path: Path to the file. Files whose suffix is ".gz" are decompressed.

    Returns:
        str: File contents decoded as UTF-8.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        raise FileNotFoundError(f"File not found: {file_path}")

    if file_path.suffix == ".gz":
        with gzip.open(str(file_path), "rt", errors="replace") as fp:
            return fp.read()

    return file_path.read_text(errors="replace")


def _split_metadata_line(line: str) -> Tuple[str, list]:
    """Split a "!Key<TAB>value<TAB>value..." line into key and unquoted values."""
    key, *values = line.rstrip("\n").split("\t")
    return key.lstrip("!").strip(), [v.strip().strip('"') for v in values]


def read_series_matrix(file_path: Path) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Parse a GEO series matrix file into an expression matrix and a samples table.

    Metadata lines start with "!". Lines whose key starts with "Sample_" hold one
    value per sample and become columns of the samples table (the "Sample_" prefix
    is removed). Repeated keys, such as "Sample_characteristics_ch1", are numbered
    in order of appearance ("characteristics_ch1", "characteristics_ch1_1", ...).

    The expression table is enclosed between "!series_matrix_table_begin" and
    "!series_matrix_table_end". When neither marker is present, every non-empty
    line not starting with "!" is considered part of the table.

    Args:
        file_path: Path to the series matrix (".txt" or ".txt.gz").

    Returns:
        A tuple containing:
            - expr_df: Numeric expression matrix of shape [n_genes, n_samples],
                indexed by the first column of the table (usually "ID_REF").
            - samples_df: Samples metadata, indexed by sample id (column names of
                expr_df).

    Raises:
        ValueError: If only one table marker is present, or no table is found.
    """
    text = read_text(file_path)
    lines = text.splitlines()

    # 1. Locate expression table
    has_begin = any(line.startswith(SERIES_TABLE_BEGIN) for line in lines)
    has_end = any(line.startswith(SERIES_TABLE_END) for line in lines)
    if has_begin != has_end:
        raise ValueError(
            f"Malformed series matrix {Path(file_path).name}: both "
            f"{SERIES_TABLE_BEGIN} and {SERIES_TABLE_END} markers are required."
        )

    table_lines, metadata_lines, in_table = [], [], False
    for line in lines:
        if line.startswith(SERIES_TABLE_BEGIN):
            in_table = True
        elif line.startswith(SERIES_TABLE_END):
            in_table = False
        elif line.startswith("!"):
            metadata_lines.append(line)
        elif line.strip() and (in_table or not has_begin):
            table_lines.append(line)

    if not table_lines:
        raise ValueError(f"No expression table found in {Path(file_path).name}")

    # 2. Expression matrix
    expr_df = pd.read_csv(
        io.StringIO("\n".join(table_lines)), sep="\t", index_col=0, quotechar='"'
    )
    expr_df.columns = [str(c).strip('"') for c in expr_df.columns]
    expr_df.index = [str(idx).strip('"') for idx in expr_df.index]
    expr_df.index.name = "gene_id"
    expr_df = expr_df.apply(pd.to_numeric, errors="coerce")

    # 3. Samples metadata
    samples_metadata = {}
    for line in metadata_lines:
        key, values = _split_metadata_line(line)
        if not key.startswith("Sample_") or len(values) != len(expr_df.columns):
            continue

        key = key[len("Sample_") :]
        col, i = key, 0
        while col in samples_metadata:
            i += 1
            col = f"{key}_{i}"
        samples_metadata[col] = values

    samples_df = pd.DataFrame(samples_metadata, index=expr_df.columns)
    samples_df.index.name = "sample_id"

    if "geo_accession" in samples_df.columns and (
        samples_df["geo_accession"].tolist() != samples_df.index.tolist()
    ):
        logging.warning(
            f"[{Path(file_path).name}] Sample accessions do not match the expression"
            " table header, keeping table header as sample ids."
        )

    return expr_df, samples_df


def parse_characteristics(
    samples_df: pd.DataFrame, prefix: str = "characteristics_ch1"
) -> pd.DataFrame:
    """Expand GEO "key: value" characteristics columns into one column per key.

    Args:
        samples_df: Samples metadata as returned by `read_series_matrix`.
        prefix: Prefix of the characteristics columns to expand.

    Returns:
        pd.DataFrame: Copy of samples_df with a new column per characteristic key.
            Keys are lower-cased and non-word characters are replaced by "_".
            Values without a "key: value" structure are left untouched.
    """
    samples_df = samples_df.copy()
    for col in [c for c in samples_df.columns if c.startswith(prefix)]:
        for sample_id, value in samples_df[col].items():
            if not isinstance(value, str) or ":" not in value:
                continue
            key, val = value.split(":", 1)
            key = re.sub(r"\W+", "_", key.strip().lower()).strip("_")
            samples_df.loc[sample_id, key] = val.strip()

    return samples_df.replace("", np.nan)


def read_gene_map(
    file_path: Path, from_col: str, to_col: str, sep: str = ","
) -> pd.Series:
    """Load a gene identifier map (e.g., probe or symbol to KEGG gene id).

    Rows with missing values are dropped, as are source ids mapped to more than
    one target id.

    Args:
        file_path: Table with at least from_col and to_col columns.
        from_col: Column with the identifiers used in the expression matrix.
        to_col: Column with the target identifiers.
        sep: Column separator.

    Returns:
        pd.Series: Target ids indexed by source ids.
    """
    map_df = pd.read_csv(file_path, sep=sep, dtype=str, comment="#")
    missing_cols = [c for c in (from_col, to_col) if c not in map_df.columns]
    if missing_cols:
        raise ValueError(f"Columns {missing_cols} not found in {file_path}")

    map_df = map_df[[from_col, to_col]].dropna().drop_duplicates()
    map_df = map_df.drop_duplicates(subset=[from_col], keep=False)

    return map_df.set_index(from_col)[to_col]
