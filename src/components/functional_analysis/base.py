import logging
from pathlib import Path
from typing import Any, Callable

from pydantic import ConfigDict
from pydantic.dataclasses import dataclass
from rpy2.rinterface_lib.embedded import RRuntimeError

from r_wrappers.enrich_plot import barplot, dotplot, emapplot, gene_concept_net
from r_wrappers.utils import rpy2_df_to_pd_df, save_rds

Config = ConfigDict(arbitrary_types_allowed=True)


@dataclass(config=Config)
class FunctionalAnalysisBase:
    """
    Base class for functional analyses of gene lists.

    Child classes compute `func_result` (an R enrichment object) and then call
    `super().__post_init__()`, which converts it to a dataframe and creates the
    output directories. Saving and plotting are skipped with a warning when the
    result is empty.

    Args:
        files_prefix: Path prefix for all generated data files.
        plots_prefix: Path prefix for all generated plot files.

    Attributes:
        func_result: Raw functional analysis result from R.
        func_result_df: DataFrame representation of the functional analysis result.
    """

    files_prefix: Path
    plots_prefix: Path

    def __post_init__(self) -> None:
        # 1. Get dataframe of result
        try:
            self.func_result_df = rpy2_df_to_pd_df(self.func_result)
        except RRuntimeError as e:
            logging.warning(f"[{self.plots_prefix.name}] {e}")
            self.func_result_df = None

        # 2. Create paths
        self.files_prefix.parent.mkdir(exist_ok=True, parents=True)
        self.plots_prefix.parent.mkdir(exist_ok=True, parents=True)

    @property
    def is_empty(self) -> bool:
        return self.func_result_df is None or self.func_result_df.empty

    def save_rds(self) -> None:
        """Save functional analysis result as R data file (.RDS)."""
        if not self.is_empty:
            save_rds(self.func_result, self.files_prefix.with_suffix(".RDS"))
        else:
            logging.warning(
                f"[{self.plots_prefix.name}] Could not save RDS. "
                "Functional result is None or empty."
            )

    def save_csv(self) -> None:
        """Save functional analysis result as CSV file."""
        if not self.is_empty:
            self.func_result_df.to_csv(self.files_prefix.with_suffix(".csv"))
        else:
            logging.warning(
                f"[{self.plots_prefix.name}] Could not save CSV. "
                "Functional result is None or empty."
            )

    def save_all(self) -> None:
        """Save functional analysis result as RDS and CSV files."""
        self.save_rds()
        self.save_csv()

    def _plot(self, plot_func: Callable, plot_name: str, **kwargs: Any) -> None:
        if self.is_empty:
            logging.warning(
                f"[{self.plots_prefix.name}] Could not plot {plot_name}. "
                "Functional result is None or empty."
            )
            return

        try:
            save_path = Path(f"{self.plots_prefix}_{plot_name}.png")
            plot_func(self.func_result, save_path, **kwargs)
        except RRuntimeError as e:
            logging.warning(
                f"[{self.plots_prefix.name}] Error plotting {plot_name}: \n\t{e}"
            )

    def barplot(self, **kwargs: Any) -> None:
        """
        Bar plot of enriched terms: gene count or ratio as bar height, color-coded
            by adjusted p-value.
        """
        self._plot(barplot, "barplot", **kwargs)

    def dotplot(self, **kwargs: Any) -> None:
        """
        Dot plot of enriched terms, similar to the bar plot with gene counts
            encoded as dot size.
        """
        self._plot(dotplot, "dotplot", **kwargs)

    def emapplot(self, **kwargs: Any) -> None:
        """
        Enrichment map: enriched terms are connected when their gene sets
            overlap, so that related pathways cluster together.
        """
        self._plot(emapplot, "emapplot", **kwargs)

    def gene_concept_net(self, **kwargs: Any) -> None:
        """Network linking enriched pathways to the genes driving them."""
        self._plot(gene_concept_net, "cnetplot", **kwargs)
