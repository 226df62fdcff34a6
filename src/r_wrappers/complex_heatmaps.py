"""
Wrappers for R package ComplexHeatmap

All functions have pythonic inputs and outputs.

Note that the arguments in python use "_" instead of ".".
rpy2 does this transformation for us.

Example:
R --> data.category
Python --> data_category
"""

from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd
from rpy2 import robjects as ro
from rpy2.robjects.packages import importr

from r_wrappers.utils import open_graphics_device, pd_df_to_r_matrix, pd_df_to_rpy2_df

r_complex_heatmaps = importr("ComplexHeatmap")


def complex_heatmap(
    values_matrix: pd.DataFrame,
    save_path: Path,
    width: float = 10,
    height: float = 20,
    heatmap_legend_side: str = "right",
    annotation_legend_side: str = "right",
    **kwargs: Any,
) -> None:
    """Create a complex heatmap visualization and save it to a file.

    Args:
        values_matrix: Numeric values for the heatmap, rows are usually genes and
            columns samples. Row and column names are kept.
        save_path: Path where the generated plot will be saved (".png" or ".pdf").
        width: Width of the saved figure in inches.
        height: Height of the saved figure in inches.
        heatmap_legend_side: Position of the heatmap legend ("right", "left",
            "bottom", or "top").
        annotation_legend_side: Position of the annotation legend ("right", "left",
            "bottom", or "top").
        **kwargs: Additional arguments to pass to the Heatmap function.
            Common parameters include:
            - name: Name of the heatmap, used as the title for the color legend.
            - cluster_rows: Whether to cluster rows (default: TRUE).
            - cluster_columns: Whether to cluster columns (default: TRUE).
            - show_row_names: Whether to show row names (default: TRUE).
            - top_annotation: Annotation to add to the top of the heatmap.
            - column_split: Splits columns into different groups.

    References:
        https://rdrr.io/bioc/ComplexHeatmap/man/Heatmap.html
    """
    # 0. Compute heatmap
    ht = r_complex_heatmaps.Heatmap(
        pd_df_to_r_matrix(values_matrix),
        **kwargs,
        row_names_max_width=ro.r("unit")(10, "cm"),
        column_names_max_height=ro.r("unit")(10, "cm"),
    )

    # 1. Save heatmap
    with open_graphics_device(save_path, width=width, height=height):
        r_complex_heatmaps.draw(
            ht,
            heatmap_legend_side=heatmap_legend_side,
            annotation_legend_side=annotation_legend_side,
            merge_legend=True,
        )


def heatmap_annotation(
    df: pd.DataFrame, col: Optional[Dict[str, Dict[str, str]]] = None, **kwargs: Any
) -> Any:
    """Create a heatmap annotation object for annotating heatmap columns.

    Args:
        df: A DataFrame where each column will be treated as a simple annotation.
        col: A dictionary of dictionaries, where each element is a column name
            of df containing a mapping of column values to colors. For example:
            {"resistance": {"resistant": "#e41a1c", "susceptible": "#377eb8"}}
        **kwargs: Additional arguments to pass to the HeatmapAnnotation function.

    Returns:
        Any: A HeatmapAnnotation object that can be passed to complex_heatmap
        as top_annotation.

    Raises:
        ValueError: If any keys in col are not column names in df.

    References:
        https://rdrr.io/bioc/ComplexHeatmap/man/HeatmapAnnotation.html
    """
    if col is None:
        col = ro.NULL
    else:
        # 0. Process colors, only values present in df are kept
        if [x for x in col.keys() if x not in df.columns]:
            raise ValueError("Some keys in col are not part of df")

        named_colors = {}
        for k, colors in col.items():
            present = {v: c for v, c in colors.items() if v in set(df[k])}
            vector = ro.StrVector(list(present.values()))
            vector.names = ro.StrVector(list(present.keys()))
            named_colors[k] = vector
        col = ro.ListVector(named_colors)

    return r_complex_heatmaps.HeatmapAnnotation(
        df=pd_df_to_rpy2_df(df.astype(str)), col=col, **kwargs
    )
