"""
Pseudotime moving windows.

Orders cells by pseudotime, partitions them into near-equal base buckets and
emits overlapping windows made of consecutive buckets, each labelled with a
summary pseudotime.
"""

import numpy as np
import pandas as pd
from enum import Enum
from typing import Optional, Union, List, Tuple, Sequence
from dataclasses import dataclass

from .exceptions import InvalidParameter


class WindowSummary(str, Enum):
    """Statistic used to assign one pseudotime to each window."""
    MEAN = "mean"
    MIN = "min"
    MAX = "max"

    def reduce(self, values: np.ndarray) -> float:
        return float(_SUMMARY_REDUCERS[self](values))


_SUMMARY_REDUCERS = {
    WindowSummary.MEAN: np.mean,
    WindowSummary.MIN: np.min,
    WindowSummary.MAX: np.max,
}


@dataclass(frozen=True)
class MovingWindows:
    """
    Overlapping pseudotime windows.

    Attributes
    ----------
    cells : list of ndarray
        Cell IDs in each emitted window, in pseudotime order.
    pseudotime : list of ndarray
        Pseudotime of the cells in each emitted window.
    times : ndarray of shape (n_windows,)
        Summary pseudotime of each window (unrounded; used for fitting).
    labels : ndarray of shape (n_windows,)
        Summary pseudotime rounded to 3 decimals, for display only.
    base_buckets : list of ndarray
        Cell IDs of the disjoint base buckets the windows are built from.
    n_base : int
        Number of base buckets.
    moving_window : int
        Number of consecutive base buckets merged into each window.
    name_by : WindowSummary
        Statistic used for times/labels.
    """
    cells: List[np.ndarray]
    pseudotime: List[np.ndarray]
    times: np.ndarray
    labels: np.ndarray
    base_buckets: List[np.ndarray]
    n_base: int
    moving_window: int
    name_by: WindowSummary

    @property
    def n_windows(self) -> int:
        return len(self.cells)

    def __len__(self) -> int:
        return len(self.cells)


def resolve_pseudotime(
    pseudotime: Union[np.ndarray, pd.Series, pd.DataFrame],
    cells: Optional[Sequence] = None,
    pseudotime_key: Optional[str] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Look up pseudotime values for a set of cells.

    Parameters
    ----------
    pseudotime : ndarray, Series or DataFrame
        Either values aligned with `cells`, a Series indexed by cell ID, or a
        DataFrame of cells x pseudotime axes.
    cells : sequence, optional
        Cell IDs. If None, all cells of the Series/DataFrame index are used
        (or 0..n-1 for plain arrays).
    pseudotime_key : str, optional
        Column of a DataFrame to use. May be omitted for single-column frames.

    Returns
    -------
    cells : ndarray of shape (n_cells,)
    pt : ndarray of shape (n_cells,)
    """
    if isinstance(pseudotime, pd.DataFrame):
        if pseudotime_key is None:
            if pseudotime.shape[1] != 1:
                raise ValueError(
                    f"pseudotime_key is required for a DataFrame with {pseudotime.shape[1]} columns"
                )
            pseudotime_key = pseudotime.columns[0]
        pseudotime = pseudotime[pseudotime_key]

    if isinstance(pseudotime, pd.Series):
        if cells is None:
            cells = pseudotime.index.to_numpy()
        cells = np.asarray(cells)
        pt = pseudotime.loc[cells].to_numpy(dtype=float)
        return cells, pt

    pt = np.asarray(pseudotime, dtype=float).ravel()
    if cells is None:
        cells = np.arange(len(pt))
    cells = np.asarray(cells)
    if len(cells) != len(pt):
        raise ValueError(f"cells and pseudotime must have same length: {len(cells)} vs {len(pt)}")
    return cells, pt


def base_bucket_bounds(n_cells: int, n_base: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Start/end indices of near-equal contiguous buckets.

    Bucket i covers sorted positions [starts[i], ends[i]) with
    ends[i] = round((i + 1) * n_cells / n_base), so sizes differ by at most one.
    """
    ends = np.round(np.arange(1, n_base + 1) * n_cells / n_base).astype(int)
    starts = np.concatenate([[0], ends[:-1]])
    return starts, ends


def pseudotime_moving_window(
    cells: Optional[Sequence],
    pseudotime: Union[np.ndarray, pd.Series, pd.DataFrame],
    moving_window: int = 3,
    cells_per_window: float = 10,
    name_by: Union[str, WindowSummary] = "mean",
    pseudotime_key: Optional[str] = None
) -> MovingWindows:
    """
    Build overlapping pseudotime windows.

    Parameters
    ----------
    cells : sequence or None
        Cell IDs to include. If None, every cell of `pseudotime` is used.
    pseudotime : ndarray, Series or DataFrame
        Pseudotime of the cells (see `resolve_pseudotime`).
    moving_window : int, default=3
        Number of consecutive base buckets merged into each window.
    cells_per_window : float, default=10
        Target number of cells per base bucket.
    name_by : {"mean", "min", "max"}, default="mean"
        Summary statistic used to assign a pseudotime to each window.
    pseudotime_key : str, optional
        Pseudotime axis when `pseudotime` is a DataFrame.

    Returns
    -------
    windows : MovingWindows

    Raises
    ------
    InvalidParameter
        If moving_window < 1, cells_per_window <= 0, no cells are given,
        pseudotime is not finite, or there are fewer base buckets than
        moving_window.

    Notes
    -----
    The number of base buckets is round(n_cells / cells_per_window), clamped to
    [1, n_cells]. The number of emitted windows is n_base - moving_window + 1.
    Cells with equal pseudotime keep their input order.
    """
    if int(moving_window) != moving_window or moving_window < 1:
        raise InvalidParameter(f"moving_window must be a positive integer, got {moving_window}")
    if not cells_per_window > 0:
        raise InvalidParameter(f"cells_per_window must be positive, got {cells_per_window}")
    moving_window = int(moving_window)
    name_by = WindowSummary(name_by)

    cells, pt = resolve_pseudotime(pseudotime, cells, pseudotime_key)
    n_cells = len(cells)
    if n_cells == 0:
        raise InvalidParameter("No cells provided for windowing")
    if not np.all(np.isfinite(pt)):
        raise InvalidParameter(f"{np.sum(~np.isfinite(pt))} cells have non-finite pseudotime")

    n_base = int(np.round(n_cells / cells_per_window))
    n_base = min(max(n_base, 1), n_cells)
    n_windows = n_base - moving_window + 1
    if n_windows < 1:
        raise InvalidParameter(
            f"moving_window={moving_window} exceeds the {n_base} base buckets "
            f"available ({n_cells} cells, cells_per_window={cells_per_window})"
        )

    order = np.argsort(pt, kind='stable')
    sorted_cells = cells[order]
    sorted_pt = pt[order]

    starts, ends = base_bucket_bounds(n_cells, n_base)
    base_buckets = [sorted_cells[s:e] for s, e in zip(starts, ends)]

    # Buckets are contiguous in sorted order, so a window is one slice
    window_cells = []
    window_pt = []
    for i in range(n_windows):
        lo, hi = starts[i], ends[i + moving_window - 1]
        window_cells.append(sorted_cells[lo:hi])
        window_pt.append(sorted_pt[lo:hi])

    times = np.array([name_by.reduce(p) for p in window_pt])

    return MovingWindows(
        cells=window_cells,
        pseudotime=window_pt,
        times=times,
        labels=np.round(times, 3),
        base_buckets=base_buckets,
        n_base=n_base,
        moving_window=moving_window,
        name_by=name_by
    )


def window_pseudotime_info(windows: MovingWindows) -> pd.DataFrame:
    """
    Pseudotime summary of each window.

    Returns
    -------
    info : DataFrame with columns 'mean', 'min', 'max', 'width'
        One row per window, indexed by window number.
    """
    rows = []
    for pt in windows.pseudotime:
        lo, hi = np.min(pt), np.max(pt)
        rows.append((np.mean(pt), lo, hi, hi - lo))
    info = pd.DataFrame(rows, columns=['mean', 'min', 'max', 'width'])
    info.index.name = 'window'
    return info
