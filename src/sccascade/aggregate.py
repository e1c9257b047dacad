"""
Windowed expression aggregation.

Computes one representative expression value per (gene, window) pair from
log-transformed single-cell expression, and scales each gene to its maximum.
"""

import numpy as np
import pandas as pd
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Union, Sequence, List

from .exceptions import EmptyWindow, InsufficientData
from .windows import MovingWindows


ExpressionLookup = Union[pd.DataFrame, Callable[[object, object], float]]


def mean_of_logs(values: np.ndarray, base: float = np.e) -> float:
    """
    Mean of log-transformed values, taken in linear space.

    Parameters
    ----------
    values : ndarray
        Values of the form log_base(1 + x).
    base : float, default=e
        Logarithm base of the input.

    Returns
    -------
    aggregate : float
        log_base(1 + mean(x)). With the natural base this is
        log1p(mean(expm1(values))).
    """
    values = np.asarray(values, dtype=float)
    if base == np.e:
        return float(np.log1p(np.mean(np.expm1(values))))
    return float(np.log1p(np.mean(np.expm1(values * np.log(base)))) / np.log(base))


def _window_block(expression, genes, window_cells):
    if isinstance(expression, pd.DataFrame):
        return expression.loc[genes, window_cells].to_numpy(dtype=float)
    return np.array([[expression(g, c) for c in window_cells] for g in genes], dtype=float)


def aggregate_windows(
    windows: Union[MovingWindows, Sequence[Sequence]],
    genes: Sequence,
    expression: ExpressionLookup,
    reducer: Callable[[np.ndarray], float] = mean_of_logs,
    n_jobs: int = 1
) -> pd.DataFrame:
    """
    Aggregate expression of each gene within each window.

    Parameters
    ----------
    windows : MovingWindows or sequence of cell-ID sequences
        Cells belonging to each window.
    genes : sequence
        Genes to aggregate.
    expression : DataFrame or callable
        Log-space expression, either a genes x cells DataFrame or a function
        (gene, cell) -> value.
    reducer : callable, default=mean_of_logs
        Reduces the log-space values of one gene in one window to one value.
    n_jobs : int, default=1
        Number of worker threads (one window per task).

    Returns
    -------
    table : DataFrame of shape (n_genes, n_windows)
        Rows indexed by gene, columns by window number.

    Raises
    ------
    EmptyWindow
        If any window has no cells.
    KeyError
        If genes are missing from an expression DataFrame.
    """
    window_cells = windows.cells if isinstance(windows, MovingWindows) else list(windows)
    genes = list(genes)

    for i, cells in enumerate(window_cells):
        if len(cells) == 0:
            raise EmptyWindow(f"Window {i} contains no cells")

    if isinstance(expression, pd.DataFrame):
        missing = pd.Index(genes).difference(expression.index)
        if len(missing) > 0:
            raise KeyError(f"{len(missing)} genes not found in expression data: {list(missing[:10])}")

    def aggregate_one(cells) -> np.ndarray:
        block = _window_block(expression, genes, list(cells))
        return np.array([reducer(row) for row in block], dtype=float)

    if n_jobs is not None and n_jobs > 1 and len(window_cells) > 1:
        with ThreadPoolExecutor(max_workers=min(n_jobs, len(window_cells))) as executor:
            columns = list(executor.map(aggregate_one, window_cells))
    else:
        columns = [aggregate_one(cells) for cells in window_cells]

    values = np.column_stack(columns) if columns else np.zeros((len(genes), 0))
    table = pd.DataFrame(values, index=pd.Index(genes), columns=pd.RangeIndex(len(window_cells), name='window'))
    return table


def scale_to_max(table: pd.DataFrame) -> pd.DataFrame:
    """
    Divide each row by its own maximum.

    Rows whose maximum is not a positive finite number (all zero, all
    negative or all NaN) are set to NaN.

    Returns
    -------
    scaled : DataFrame
        Same shape as table; every defined row has maximum exactly 1.
    """
    row_max = table.max(axis=1, skipna=True)
    valid = np.isfinite(row_max) & (row_max > 0)
    scaled = table.div(row_max.where(valid), axis=0)
    return scaled


def sample_background_genes(
    all_genes: Sequence,
    exclude: Sequence = (),
    n_genes: int = 1000,
    random_state: Optional[int] = 0
) -> List:
    """
    Sample background genes for the noise model.

    Parameters
    ----------
    all_genes : sequence
        All measured genes.
    exclude : sequence, default=()
        Genes not allowed in the background (e.g. variable genes).
    n_genes : int, default=1000
        Number of genes to sample. If fewer are available, all are used.
    random_state : int, optional
        Random seed.

    Returns
    -------
    background : list
        Sampled genes in their original order.
    """
    candidates = pd.Index(all_genes).difference(pd.Index(exclude), sort=False)
    if len(candidates) == 0:
        raise InsufficientData("No genes left to sample background from")

    if len(candidates) <= n_genes:
        return list(candidates)

    rng = np.random.default_rng(random_state)
    picked = np.sort(rng.choice(len(candidates), size=n_genes, replace=False))
    return list(candidates[picked])


def expression_from_anndata(adata, layer: Optional[str] = None) -> pd.DataFrame:
    """
    Genes x cells expression DataFrame from an AnnData object.

    Parameters
    ----------
    adata : AnnData
        Annotated data matrix with log-transformed expression in X or a layer.
    layer : str, optional
        Layer to use instead of X.

    Returns
    -------
    expression : DataFrame of shape (n_genes, n_cells)
    """
    X = adata.X if layer is None else adata.layers[layer]
    if hasattr(X, "toarray"):
        X = X.toarray()
    X = np.asarray(X, dtype=float)
    return pd.DataFrame(X.T, index=pd.Index(adata.var_names), columns=pd.Index(adata.obs_names))
