"""
Impulse model families.

The three curve families fitted to windowed expression traces:

- linear:  y = a*t + b
- single:  y = h0 + (h1 - h0) * sigma(b1*(t - t1))
- double:  y = (1/h1) * (h0 + (h1 - h0) * sigma(b1*(t - t1)))
                      * (h2 + (h1 - h2) * sigma(-b2*(t - t2)))

where sigma is the logistic function. The double sigmoid moves from the
baseline h0 to the plateau h1 around t1, then to the final level h2 around t2.
"""

import numpy as np
from enum import IntEnum
from scipy.special import expit
from typing import Dict, Tuple

from .utils import level_crossings


class FitType(IntEnum):
    """Model family selected for a gene."""
    FAILED = -1
    LINEAR = 0
    SINGLE = 1
    DOUBLE = 2


PARAM_NAMES: Dict[FitType, Tuple[str, ...]] = {
    FitType.FAILED: (),
    FitType.LINEAR: ('a', 'b'),
    FitType.SINGLE: ('b1', 'h0', 'h1', 't1'),
    FitType.DOUBLE: ('b1', 'b2', 'h0', 'h1', 'h2', 't1', 't2'),
}


def impulse_linear(t, a, b):
    return a * np.asarray(t, dtype=float) + b


def impulse_single(t, b1, h0, h1, t1):
    t = np.asarray(t, dtype=float)
    return h0 + (h1 - h0) * expit(b1 * (t - t1))


def impulse_double(t, b1, b2, h0, h1, h2, t1, t2):
    t = np.asarray(t, dtype=float)
    rise = h0 + (h1 - h0) * expit(b1 * (t - t1))
    fall = h2 + (h1 - h2) * expit(-b2 * (t - t2))
    return rise * fall / h1


def impulse_single_jac(t, b1, h0, h1, t1):
    """Jacobian of impulse_single, columns in PARAM_NAMES order."""
    t = np.asarray(t, dtype=float)
    s = expit(b1 * (t - t1))
    ds = s * (1 - s)
    return np.column_stack([
        (h1 - h0) * ds * (t - t1),
        1 - s,
        s,
        -(h1 - h0) * ds * b1,
    ])


def impulse_double_jac(t, b1, b2, h0, h1, h2, t1, t2):
    """Jacobian of impulse_double, columns in PARAM_NAMES order."""
    t = np.asarray(t, dtype=float)
    s1 = expit(b1 * (t - t1))
    s2 = expit(-b2 * (t - t2))
    ds1 = s1 * (1 - s1)
    ds2 = s2 * (1 - s2)
    rise = h0 + (h1 - h0) * s1
    fall = h2 + (h1 - h2) * s2
    return np.column_stack([
        (h1 - h0) * ds1 * (t - t1) * fall / h1,
        rise * (h1 - h2) * ds2 * (t2 - t) / h1,
        (1 - s1) * fall / h1,
        (s1 * fall + rise * s2) / h1 - rise * fall / h1 ** 2,
        rise * (1 - s2) / h1,
        -(h1 - h0) * ds1 * b1 * fall / h1,
        rise * (h1 - h2) * ds2 * b2 / h1,
    ])


_MODEL_FUNCTIONS = {
    FitType.LINEAR: impulse_linear,
    FitType.SINGLE: impulse_single,
    FitType.DOUBLE: impulse_double,
}


def evaluate_model(fit_type: FitType, t: np.ndarray, params: Dict[str, float]) -> np.ndarray:
    """
    Evaluate a model family at times t.

    Parameters
    ----------
    fit_type : FitType
        Model family. FAILED evaluates to NaN everywhere.
    t : ndarray
        Times.
    params : dict
        Parameter values keyed by the names in PARAM_NAMES[fit_type].

    Returns
    -------
    y : ndarray, same shape as t
    """
    fit_type = FitType(fit_type)
    if fit_type == FitType.FAILED:
        return np.full(np.shape(t), np.nan)
    args = [params[name] for name in PARAM_NAMES[fit_type]]
    return _MODEL_FUNCTIONS[fit_type](t, *args)


def derive_onset_offset(
    fit_type: FitType,
    params: Dict[str, float],
    t_min: float,
    t_max: float,
    onset_thresh: float = 0.1,
    min_effect: float = 0.0,
    n_grid: int = 1000
) -> Tuple[float, float]:
    """
    Onset and offset times of a fitted curve.

    The curve is evaluated on a dense grid over [t_min, t_max]. The switching
    level is lo + onset_thresh * (hi - lo), where lo/hi are the curve's
    extremes on that range. For double sigmoids the rising edge uses the
    minimum before the peak as lo and the falling edge the minimum after it,
    so an impulse that settles on a higher final plateau still turns off.

    Parameters
    ----------
    fit_type : FitType
        Model family.
    params : dict
        Fitted parameters.
    t_min, t_max : float
        Observed time range.
    onset_thresh : float, default=0.1
        Switching level as a fraction of the curve's range.
    min_effect : float, default=0.0
        Curves whose range is below this never switch.
    n_grid : int, default=1000
        Grid resolution.

    Returns
    -------
    time_on : float
        Earliest upward crossing of the level. NaN if there is none (flat
        curve, or already on at t_min).
    time_off : float
        Latest downward crossing, if the curve ends below the level. +inf if
        the curve never turns off. NaN only for FAILED fits.
    """
    fit_type = FitType(fit_type)
    if fit_type == FitType.FAILED:
        return np.nan, np.nan

    grid = np.linspace(t_min, t_max, n_grid)
    curve = evaluate_model(fit_type, grid, params)
    if not np.all(np.isfinite(curve)):
        return np.nan, np.inf

    lo, hi = float(np.min(curve)), float(np.max(curve))
    if hi - lo < min_effect or hi - lo <= 0:
        return np.nan, np.inf

    if fit_type == FitType.DOUBLE:
        # Each edge is measured from the peak to its own lower plateau
        p = int(np.argmax(curve))
        lo_on = float(np.min(curve[:p + 1]))
        lo_off = float(np.min(curve[p:]))
        on_level = lo_on + onset_thresh * (hi - lo_on)
        off_level = lo_off + onset_thresh * (hi - lo_off)
        up, _ = level_crossings(grid[:p + 1], curve[:p + 1], on_level)
        _, down = level_crossings(grid[p:], curve[p:], off_level)
        end_level = off_level
    else:
        level = lo + onset_thresh * (hi - lo)
        up, down = level_crossings(grid, curve, level)
        end_level = level

    time_on = float(up[0]) if len(up) > 0 else np.nan
    if len(down) > 0 and curve[-1] <= end_level:
        time_off = float(down[-1])
    else:
        time_off = np.inf
    return time_on, time_off
