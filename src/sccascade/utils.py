"""
Utility functions for sccascade.

Provides smoothing and level-crossing helpers shared by initial-guess
estimation and onset/offset derivation.
"""

import numpy as np
from scipy.ndimage import uniform_filter1d
from typing import Tuple


def moving_average(values: np.ndarray, size: int = 3) -> np.ndarray:
    """
    Centered moving average with edge replication.

    Parameters
    ----------
    values : ndarray of shape (n,)
        Values to smooth.
    size : int, default=3
        Window length. Clipped to the number of values.

    Returns
    -------
    smoothed : ndarray of shape (n,)
    """
    values = np.asarray(values, dtype=float)
    if len(values) < 2:
        return values.copy()
    size = max(1, min(int(size), len(values)))
    return uniform_filter1d(values, size=size, mode='nearest')


def level_crossings(
    x: np.ndarray,
    y: np.ndarray,
    level: float
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find where a sampled curve crosses a horizontal level.

    Parameters
    ----------
    x : ndarray of shape (n,)
        Sorted sample positions.
    y : ndarray of shape (n,)
        Curve values at x.
    level : float
        Level to cross.

    Returns
    -------
    up : ndarray
        Positions of upward crossings (below/at level -> above level).
    down : ndarray
        Positions of downward crossings (above level -> below/at level).

    Notes
    -----
    Crossing positions are linearly interpolated between the two samples
    that bracket the level.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)

    above = y > level
    up_idx = np.flatnonzero(~above[:-1] & above[1:])
    down_idx = np.flatnonzero(above[:-1] & ~above[1:])

    return _interpolate_crossing(x, y, up_idx, level), _interpolate_crossing(x, y, down_idx, level)


def _interpolate_crossing(x, y, idx, level):
    if len(idx) == 0:
        return np.array([])
    dy = y[idx + 1] - y[idx]
    frac = np.where(dy != 0, (level - y[idx]) / np.where(dy != 0, dy, 1.0), 0.0)
    return x[idx] + np.clip(frac, 0, 1) * (x[idx + 1] - x[idx])


def first_crossing(
    x: np.ndarray,
    y: np.ndarray,
    level: float,
    rising: bool = True,
    default: float = np.nan
) -> float:
    """
    Earliest position where y crosses level in the given direction.

    Returns default if the curve never crosses.
    """
    up, down = level_crossings(x, y, level)
    crossings = up if rising else down
    if len(crossings) == 0:
        return default
    return float(crossings[0])
