"""
Synthetic data generation for testing and demonstration.

Simulates cells along a pseudotime axis with genes that switch on, switch off,
pulse, or stay flat, plus flat background genes, and samples Poisson counts
stored as log1p expression.
"""

import numpy as np
import pandas as pd
from scipy.special import expit
from typing import Optional, Dict


def gene_profile(
    t: np.ndarray,
    kind: str = "rise",
    time_on: float = 0.3,
    time_off: float = 0.7,
    base: float = 0.2,
    amplitude: float = 8.0,
    slope: float = 30.0
) -> np.ndarray:
    """
    Mean expression (linear scale) of a gene along pseudotime.

    Parameters
    ----------
    t : ndarray
        Pseudotime values.
    kind : str, default="rise"
        Profile type: "rise", "fall", "pulse" or "flat".
    time_on, time_off : float
        Switching times (midpoints of the transitions).
    base : float, default=0.2
        Expression when off.
    amplitude : float, default=8.0
        Expression added when on.
    slope : float, default=30.0
        Steepness of the transitions.

    Returns
    -------
    mean : ndarray, same shape as t
    """
    t = np.asarray(t, dtype=float)
    on = expit(slope * (t - time_on))
    off = expit(-slope * (t - time_off))

    if kind == "rise":
        shape = on
    elif kind == "fall":
        shape = off
    elif kind == "pulse":
        shape = on * off
    elif kind == "flat":
        shape = np.ones_like(t)
    else:
        raise ValueError(f"Unknown profile kind: {kind}")

    return base + amplitude * shape


def generate_synthetic_cascade(
    n_cells: int = 600,
    n_background: int = 50,
    genes: Optional[Dict[str, dict]] = None,
    background_range: tuple = (0.5, 3.0),
    random_state: int = 0
) -> dict:
    """
    Generate a synthetic gene cascade dataset.

    Parameters
    ----------
    n_cells : int, default=600
        Number of cells.
    n_background : int, default=50
        Number of flat background genes.
    genes : dict, optional
        Target genes as {name: gene_profile keyword arguments}. Defaults to an
        early and a late rising gene, a falling gene, a pulse and a flat gene.
    background_range : tuple, default=(0.5, 3.0)
        Range of mean expression for background genes.
    random_state : int, default=0
        Random seed.

    Returns
    -------
    dataset : dict with keys:
        - 'expression': DataFrame (genes x cells) of log1p counts
        - 'pseudotime': Series of pseudotime indexed by cell
        - 'genes': list of target genes
        - 'background_genes': list of background genes
        - 'profiles': dict of the profile parameters of each target gene
    """
    rng = np.random.default_rng(random_state)

    if genes is None:
        genes = {
            'rise_early': {'kind': 'rise', 'time_on': 0.3},
            'rise_late': {'kind': 'rise', 'time_on': 0.6},
            'fall': {'kind': 'fall', 'time_off': 0.5},
            'pulse': {'kind': 'pulse', 'time_on': 0.3, 'time_off': 0.7},
            'flat': {'kind': 'flat', 'base': 3.0, 'amplitude': 0.0},
        }

    cells = [f"cell_{i:04d}" for i in range(n_cells)]
    pt = rng.uniform(0, 1, n_cells)

    rows = {}
    for name, kwargs in genes.items():
        rows[name] = rng.poisson(gene_profile(pt, **kwargs))

    background_genes = [f"bg_{i:04d}" for i in range(n_background)]
    bg_means = rng.uniform(background_range[0], background_range[1], n_background)
    for name, mean in zip(background_genes, bg_means):
        rows[name] = rng.poisson(mean, n_cells)

    counts = pd.DataFrame.from_dict(rows, orient='index', columns=cells)
    expression = np.log1p(counts.astype(float))

    return {
        'expression': expression,
        'pseudotime': pd.Series(pt, index=cells, name='pseudotime'),
        'genes': list(genes.keys()),
        'background_genes': background_genes,
        'profiles': genes
    }
