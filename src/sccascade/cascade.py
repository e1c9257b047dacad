"""
Gene cascade processing.

Combines pseudotime windowing, windowed expression aggregation, background
noise estimation and impulse fitting into a single Cascade result.
"""

import time
import numpy as np
import pandas as pd
from typing import Optional, Sequence, Callable, Union

from .aggregate import (
    ExpressionLookup, aggregate_windows, scale_to_max,
    sample_background_genes, mean_of_logs
)
from .impulse import SlopeLimit, fit_genes
from .noise import background_noise_sd
from .results import Cascade
from .windows import WindowSummary, pseudotime_moving_window, window_pseudotime_info, resolve_pseudotime


def _log(message: str):
    print(f"{time.strftime('%Y-%m-%d %H:%M:%S')}: {message}")


def process_gene_cascade(
    expression: ExpressionLookup,
    pseudotime: Union[np.ndarray, pd.Series, pd.DataFrame],
    genes: Sequence,
    cells: Optional[Sequence] = None,
    background_genes: Optional[Sequence] = None,
    pseudotime_key: Optional[str] = None,
    moving_window: int = 3,
    cells_per_window: float = 10,
    name_by: str = "mean",
    onset_thresh: float = 0.1,
    k: float = 50,
    a: float = 0.05,
    limit_single_slope: str = "none",
    noise_mult: float = 1.0,
    n_starts: int = 3,
    max_nfev: int = 2000,
    random_state: int = 0,
    n_background: int = 1000,
    variable_genes: Sequence = (),
    reducer: Callable[[np.ndarray], float] = mean_of_logs,
    n_jobs: int = 1,
    verbose: bool = False,
    verbose_genes: bool = False
) -> Cascade:
    """
    Process a gene cascade along pseudotime.

    Parameters
    ----------
    expression : DataFrame or callable
        Log-space expression, genes x cells DataFrame or (gene, cell) -> value.
    pseudotime : ndarray, Series or DataFrame
        Pseudotime of the cells. A DataFrame holds one column per pseudotime
        axis; select one with `pseudotime_key`.
    genes : sequence
        Target genes to fit.
    cells : sequence, optional
        Cells to include. Defaults to all cells with finite pseudotime.
    background_genes : sequence, optional
        Genes for the background noise model. If None, `n_background` genes not
        in `variable_genes` are sampled from the expression DataFrame.
    pseudotime_key : str, optional
        Pseudotime axis to use.
    moving_window : int, default=3
        Number of base buckets merged into each window.
    cells_per_window : float, default=10
        Target number of cells per base bucket.
    name_by : {"mean", "min", "max"}, default="mean"
        Statistic used for window pseudotimes.
    onset_thresh : float, default=0.1
        Onset/offset level as a fraction of each fitted curve's range.
    k : float, default=50
        Sigmoid slope prior.
    a : float, default=0.05
        Minimum effect size.
    limit_single_slope : {"none", "on", "off"}, default="none"
        Restrict single-sigmoid fits to rising ("on") or falling ("off").
    noise_mult : float, default=1.0
        Multiplier of the background SD in the effect threshold.
    n_starts : int, default=3
        Optimizer starts per sigmoid family.
    max_nfev : int, default=2000
        Residual evaluations per optimizer start.
    random_state : int, default=0
        Random seed for background sampling and optimizer starts.
    n_background : int, default=1000
        Number of background genes to sample when none are given.
    variable_genes : sequence, default=()
        Genes excluded from background sampling.
    reducer : callable, default=mean_of_logs
        Aggregates log-space values of one gene within one window.
    n_jobs : int, default=1
        Worker threads for aggregation and fitting.
    verbose : bool, default=False
        Print progress information.
    verbose_genes : bool, default=False
        If verbose, also print each gene as it is fitted.

    Returns
    -------
    cascade : Cascade

    Raises
    ------
    InvalidParameter
        If the window configuration cannot produce any window.
    EmptyWindow
        If a window has no cells.
    InsufficientData
        If the background noise cannot be estimated.
    """
    genes = list(genes)
    limit_single_slope = SlopeLimit(limit_single_slope)
    name_by = WindowSummary(name_by)

    if cells is None:
        all_cells, pt = resolve_pseudotime(pseudotime, None, pseudotime_key)
        cells = all_cells[np.isfinite(pt)]
        if verbose and len(cells) < len(all_cells):
            _log(f"Ignoring {len(all_cells) - len(cells)} cells with non-finite pseudotime.")

    if background_genes is None:
        if not isinstance(expression, pd.DataFrame):
            raise ValueError("background_genes must be given when expression is not a DataFrame")
        background_genes = sample_background_genes(
            expression.index, exclude=variable_genes,
            n_genes=n_background, random_state=random_state
        )
    background_genes = list(background_genes)

    if verbose:
        _log("Calculating moving window expression.")
    windows = pseudotime_moving_window(
        cells, pseudotime,
        moving_window=moving_window,
        cells_per_window=cells_per_window,
        name_by=name_by,
        pseudotime_key=pseudotime_key
    )
    pt_info = window_pseudotime_info(windows)
    if verbose:
        _log(f"  {windows.n_windows} windows from {windows.n_base} base buckets of ~{cells_per_window} cells")

    mean_expression = aggregate_windows(windows, genes, expression, reducer=reducer, n_jobs=n_jobs)
    scaled_expression = scale_to_max(mean_expression)

    if verbose:
        _log("Calculating background expression noise.")
    mean_expression_bg = aggregate_windows(
        windows, background_genes, expression, reducer=reducer, n_jobs=n_jobs
    )
    scaled_expression_bg = scale_to_max(mean_expression_bg)
    sd_bg = background_noise_sd(scaled_expression_bg)
    if verbose:
        _log(f"  sd_bg = {sd_bg:.4f} from {len(background_genes)} background genes")

    if verbose:
        _log("Fitting impulse model for all genes.")
    progress = None
    if verbose and verbose_genes:
        def progress(i, total, gene):
            _log(f"  {gene} ({i + 1}/{total})")

    impulse_fits = fit_genes(
        scaled_expression, windows.times, sd_bg,
        genes=genes,
        n_jobs=n_jobs,
        progress_callback=progress,
        k=k,
        a=a,
        onset_thresh=onset_thresh,
        limit_single_slope=limit_single_slope,
        noise_mult=noise_mult,
        n_starts=n_starts,
        max_nfev=max_nfev,
        random_state=random_state
    )

    timing = pd.DataFrame(
        {
            'time_on': [impulse_fits[g].time_on for g in genes],
            'time_off': [impulse_fits[g].time_off for g in genes],
        },
        index=pd.Index(genes)
    )

    failed = [g for g in genes if impulse_fits[g].is_failed]
    if verbose and failed:
        _log(f"Impulse fits failed for {len(failed)} genes: {failed[:10]}")

    return Cascade(
        windows=windows,
        pt_info=pt_info,
        mean_expression=mean_expression,
        scaled_expression=scaled_expression,
        mean_expression_bg=mean_expression_bg,
        scaled_expression_bg=scaled_expression_bg,
        sd_bg=sd_bg,
        impulse_fits=impulse_fits,
        timing=timing,
        config={
            'pseudotime_key': pseudotime_key,
            'n_cells': int(sum(len(b) for b in windows.base_buckets)),
            'n_genes': len(genes),
            'n_background': len(background_genes),
            'moving_window': windows.moving_window,
            'cells_per_window': cells_per_window,
            'name_by': name_by.value,
            'onset_thresh': onset_thresh,
            'k': k,
            'a': a,
            'limit_single_slope': limit_single_slope.value,
            'noise_mult': noise_mult,
            'min_effect': a + noise_mult * sd_bg,
            'n_starts': n_starts,
            'max_nfev': max_nfev,
            'random_state': random_state
        }
    )
