"""
Impulse model fitting.

Fits double-sigmoid, single-sigmoid and linear models to a gene's windowed,
scaled expression trace, keeps the most complex model whose effect exceeds the
background noise threshold, and derives onset/offset times from it.
"""

import numpy as np
import pandas as pd
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Optional, Dict, Tuple, Callable, Union, Sequence

from .exceptions import InvalidParameter
from .models import (
    FitType, PARAM_NAMES, impulse_single, impulse_double,
    impulse_single_jac, impulse_double_jac, evaluate_model, derive_onset_offset
)
from .optimize import multi_start_least_squares
from .results import ImpulseFit
from .utils import moving_average, first_crossing


class SlopeLimit(str, Enum):
    """Sign constraint on the single-sigmoid slope."""
    NONE = "none"
    ON = "on"
    OFF = "off"


# Minimum number of finite points needed to attempt each sigmoid family
MIN_POINTS = {FitType.SINGLE: 4, FitType.DOUBLE: 7}

N_GRID = 1000


def _height_bounds(y: np.ndarray) -> Tuple[float, float]:
    span = max(np.ptp(y), 0.1)
    return float(np.min(y) - span), float(np.max(y) + span)


def _curve_on_range(fit_type, params, t_min, t_max):
    grid = np.linspace(t_min, t_max, N_GRID)
    return evaluate_model(fit_type, grid, params)


def single_sigmoid_start(
    x: np.ndarray,
    y: np.ndarray,
    k: float,
    limit: SlopeLimit = SlopeLimit.NONE
) -> Dict[str, float]:
    """
    Initial single-sigmoid parameters.

    The direction is rising if the maximum comes after the minimum (or is
    forced by `limit`); t1 is where the trace first crosses its half-max in
    that direction.
    """
    i_min, i_max = int(np.argmin(y)), int(np.argmax(y))
    if limit == SlopeLimit.ON:
        rising = True
    elif limit == SlopeLimit.OFF:
        rising = False
    else:
        rising = i_max >= i_min

    y_min, y_max = float(y[i_min]), float(y[i_max])
    t1 = first_crossing(x, y, 0.5 * (y_min + y_max), rising=rising,
                        default=0.5 * (x[0] + x[-1]))
    return {'b1': k if rising else -k, 'h0': y_min, 'h1': y_max, 't1': t1}


def double_sigmoid_start(x: np.ndarray, y: np.ndarray, k: float) -> Dict[str, float]:
    """
    Initial double-sigmoid parameters.

    Uses a 3-point moving average of the trace: the peak sets h1, the minima
    before/after it set h0/h2, and the half-max crossings on the way up and
    down set t1/t2.
    """
    ys = moving_average(y, 3)
    p = int(np.argmax(ys))
    h1 = float(ys[p])
    h0 = float(np.min(ys[:p + 1]))
    h2 = float(np.min(ys[p:]))

    t1 = first_crossing(x[:p + 1], ys[:p + 1], 0.5 * (h0 + h1), rising=True, default=x[0])
    t2 = first_crossing(x[p:], ys[p:], 0.5 * (h1 + h2), rising=False, default=x[-1])
    if t1 >= t2:
        t1, t2 = float(x[0]), float(x[-1])

    return {'b1': k, 'b2': k, 'h0': h0, 'h1': max(h1, 1e-3), 'h2': h2, 't1': t1, 't2': t2}


def fit_single_sigmoid(
    x: np.ndarray,
    y: np.ndarray,
    k: float = 50,
    limit: Union[str, SlopeLimit] = SlopeLimit.NONE,
    n_starts: int = 3,
    max_nfev: int = 2000,
    random_state: int = 0
) -> Tuple[Dict[str, float], float]:
    """
    Least-squares single-sigmoid fit.

    Parameters
    ----------
    x, y : ndarray of shape (n,)
        Sorted finite times and expression.
    k : float, default=50
        Slope prior; the start uses |b1| = k and |b1| is bounded by 4k.
    limit : {"none", "on", "off"}, default="none"
        Constrain b1 to be non-negative ("on") or non-positive ("off").
    n_starts, max_nfev, random_state
        Passed to multi_start_least_squares.

    Returns
    -------
    params : dict
    sse : float

    Raises
    ------
    RuntimeError
        If the optimizer does not converge.
    """
    limit = SlopeLimit(limit)
    start = single_sigmoid_start(x, y, k, limit)
    h_lo, h_hi = _height_bounds(y)
    b_lo = 0.0 if limit == SlopeLimit.ON else -4 * k
    b_hi = 0.0 if limit == SlopeLimit.OFF else 4 * k

    names = PARAM_NAMES[FitType.SINGLE]
    lb = np.array([b_lo, h_lo, h_lo, x[0]])
    ub = np.array([b_hi, h_hi, h_hi, x[-1]])

    def residuals(theta):
        return impulse_single(x, *theta) - y

    def jacobian(theta):
        return impulse_single_jac(x, *theta)

    theta, sse, _ = multi_start_least_squares(
        residuals, np.array([start[n] for n in names]), (lb, ub),
        n_starts=n_starts, random_state=random_state, max_nfev=max_nfev,
        jac_fn=jacobian
    )
    return dict(zip(names, map(float, theta))), sse


def fit_double_sigmoid(
    x: np.ndarray,
    y: np.ndarray,
    k: float = 50,
    n_starts: int = 3,
    max_nfev: int = 2000,
    random_state: int = 0
) -> Tuple[Dict[str, float], float]:
    """
    Least-squares double-sigmoid (impulse) fit.

    Slopes b1 (rise) and b2 (fall) are bounded to [0, 4k]; transition times to
    the observed time range; the plateau h1 to be positive.

    Raises
    ------
    RuntimeError
        If the optimizer does not converge or the trace has no positive values.
    """
    start = double_sigmoid_start(x, y, k)
    h_lo, h_hi = _height_bounds(y)
    h1_lo = max(h_lo, 1e-3)
    if h1_lo >= h_hi:
        raise RuntimeError("Trace has no positive values for the plateau")

    names = PARAM_NAMES[FitType.DOUBLE]
    lb = np.array([0.0, 0.0, h_lo, h1_lo, h_lo, x[0], x[0]])
    ub = np.array([4 * k, 4 * k, h_hi, h_hi, h_hi, x[-1], x[-1]])

    def residuals(theta):
        return impulse_double(x, *theta) - y

    def jacobian(theta):
        return impulse_double_jac(x, *theta)

    theta, sse, _ = multi_start_least_squares(
        residuals, np.array([start[n] for n in names]), (lb, ub),
        n_starts=n_starts, random_state=random_state, max_nfev=max_nfev,
        jac_fn=jacobian
    )
    return dict(zip(names, map(float, theta))), sse


def fit_linear(x: np.ndarray, y: np.ndarray) -> Tuple[Dict[str, float], float]:
    """Ordinary least-squares line; needs at least 2 distinct times."""
    a, b = np.polyfit(x, y, 1)
    sse = float(np.sum((a * x + b - y) ** 2))
    return {'a': float(a), 'b': float(b)}, sse


def double_sigmoid_degeneracy(
    params: Dict[str, float],
    t_min: float,
    t_max: float,
    min_effect: float
) -> Optional[str]:
    """
    Reason a double-sigmoid fit is not a real impulse, or None.

    A fit is degenerate if t1 >= t2, or if on the observed time range the
    curve rises by less than min_effect before its peak or falls by less than
    min_effect after it.
    """
    if params['t1'] >= params['t2']:
        return "t1 >= t2"
    curve = _curve_on_range(FitType.DOUBLE, params, t_min, t_max)
    if not np.all(np.isfinite(curve)):
        return "non-finite curve"
    p = int(np.argmax(curve))
    rise = curve[p] - np.min(curve[:p + 1])
    fall = curve[p] - np.min(curve[p:])
    if rise < min_effect:
        return f"rise {rise:.3f} below effect threshold {min_effect:.3f}"
    if fall < min_effect:
        return f"fall {fall:.3f} below effect threshold {min_effect:.3f}"
    return None


def single_sigmoid_degeneracy(
    params: Dict[str, float],
    t_min: float,
    t_max: float,
    min_effect: float,
    limit: Union[str, SlopeLimit] = SlopeLimit.NONE
) -> Optional[str]:
    """
    Reason a single-sigmoid fit is not a real switch, or None.

    A fit is degenerate if its range over the observed times is below
    min_effect, or if its direction contradicts a slope limit.
    """
    limit = SlopeLimit(limit)
    curve = _curve_on_range(FitType.SINGLE, params, t_min, t_max)
    if not np.all(np.isfinite(curve)):
        return "non-finite curve"
    effect = np.ptp(curve)
    if effect < min_effect:
        return f"effect {effect:.3f} below effect threshold {min_effect:.3f}"
    direction = np.sign((params['h1'] - params['h0']) * params['b1'])
    if limit == SlopeLimit.ON and direction <= 0:
        return "falling fit with slopes limited to rising"
    if limit == SlopeLimit.OFF and direction >= 0:
        return "rising fit with slopes limited to falling"
    return None


def impulse_fit(
    x: np.ndarray,
    y: np.ndarray,
    sd_bg: float,
    k: float = 50,
    a: float = 0.05,
    onset_thresh: float = 0.1,
    limit_single_slope: Union[str, SlopeLimit] = "none",
    noise_mult: float = 1.0,
    n_starts: int = 3,
    max_nfev: int = 2000,
    random_state: int = 0
) -> ImpulseFit:
    """
    Fit an impulse model to one gene's expression trace.

    Parameters
    ----------
    x : ndarray of shape (n_windows,)
        Window pseudotimes.
    y : ndarray of shape (n_windows,)
        Scaled expression of the gene in each window. Non-finite points are
        ignored.
    sd_bg : float
        Background noise standard deviation.
    k : float, default=50
        Rise/fall rate prior (sigmoid slope).
    a : float, default=0.05
        Minimum effect size.
    onset_thresh : float, default=0.1
        Onset/offset level as a fraction of the fitted curve's range.
    limit_single_slope : {"none", "on", "off"}, default="none"
        Restrict single-sigmoid fits to rising ("on") or falling ("off").
    noise_mult : float, default=1.0
        Multiplier of sd_bg in the effect threshold a + noise_mult * sd_bg.
    n_starts : int, default=3
        Optimizer starts per sigmoid family.
    max_nfev : int, default=2000
        Residual evaluations per optimizer start.
    random_state : int, default=0
        Seed for perturbed starts.

    Returns
    -------
    fit : ImpulseFit

    Notes
    -----
    Selection: the double sigmoid is kept if it converges and is a real
    impulse (see double_sigmoid_degeneracy); otherwise the single sigmoid if
    it converges and exceeds the effect threshold; otherwise the linear fit.
    Traces with fewer than 2 distinct finite time points give a FAILED fit.
    """
    x = np.asarray(x, dtype=float).ravel()
    y = np.asarray(y, dtype=float).ravel()
    if len(x) != len(y):
        raise ValueError(f"x and y must have same length: {len(x)} vs {len(y)}")
    if not np.isfinite(sd_bg) or sd_bg < 0:
        raise InvalidParameter(f"sd_bg must be a non-negative number, got {sd_bg}")
    if not k > 0:
        raise InvalidParameter(f"k must be positive, got {k}")
    if not 0 < onset_thresh < 1:
        raise InvalidParameter(f"onset_thresh must be in (0, 1), got {onset_thresh}")
    limit = SlopeLimit(limit_single_slope)

    mask = np.isfinite(x) & np.isfinite(y)
    order = np.argsort(x[mask], kind='stable')
    x, y = x[mask][order], y[mask][order]
    n_points = len(x)

    if len(np.unique(x)) < 2:
        return ImpulseFit.failed(
            f"Fewer than 2 distinct finite time points ({n_points} finite points)",
            n_points=n_points
        )

    t_min, t_max = float(x[0]), float(x[-1])
    min_effect = a + noise_mult * sd_bg
    messages = []
    selected = None

    if n_points >= MIN_POINTS[FitType.DOUBLE]:
        try:
            params, sse = fit_double_sigmoid(
                x, y, k, n_starts=n_starts, max_nfev=max_nfev, random_state=random_state
            )
            reason = double_sigmoid_degeneracy(params, t_min, t_max, min_effect)
            if reason is None:
                selected = (FitType.DOUBLE, params, sse)
            else:
                messages.append(f"double sigmoid degenerate: {reason}")
        except RuntimeError as e:
            messages.append(f"double sigmoid failed: {e}")
    else:
        messages.append(f"double sigmoid skipped: {n_points} points")

    if selected is None and n_points >= MIN_POINTS[FitType.SINGLE]:
        try:
            params, sse = fit_single_sigmoid(
                x, y, k, limit=limit, n_starts=n_starts, max_nfev=max_nfev,
                random_state=random_state
            )
            reason = single_sigmoid_degeneracy(params, t_min, t_max, min_effect, limit)
            if reason is None:
                selected = (FitType.SINGLE, params, sse)
            else:
                messages.append(f"single sigmoid degenerate: {reason}")
        except RuntimeError as e:
            messages.append(f"single sigmoid failed: {e}")

    if selected is None:
        try:
            params, sse = fit_linear(x, y)
        except (np.linalg.LinAlgError, ValueError) as e:
            messages.append(f"linear fit failed: {e}")
            return ImpulseFit.failed("; ".join(messages), n_points=n_points)
        selected = (FitType.LINEAR, params, sse)

    fit_type, params, sse = selected
    time_on, time_off = derive_onset_offset(
        fit_type, params, t_min, t_max,
        onset_thresh=onset_thresh, min_effect=min_effect, n_grid=N_GRID
    )

    return ImpulseFit(
        type=fit_type,
        params=params,
        time_on=time_on,
        time_off=time_off,
        sse=float(sse),
        n_points=n_points,
        message="; ".join(messages)
    )


def fit_genes(
    scaled_expression: pd.DataFrame,
    times: np.ndarray,
    sd_bg: float,
    genes: Optional[Sequence] = None,
    n_jobs: int = 1,
    progress_callback: Optional[Callable[[int, int, object], None]] = None,
    **fit_kwargs
) -> Dict[object, ImpulseFit]:
    """
    Fit impulse models for every gene of a scaled expression table.

    Parameters
    ----------
    scaled_expression : DataFrame of shape (n_genes, n_windows)
        Scaled expression, one row per gene.
    times : ndarray of shape (n_windows,)
        Window pseudotimes.
    sd_bg : float
        Background noise standard deviation.
    genes : sequence, optional
        Genes to fit. Defaults to all rows.
    n_jobs : int, default=1
        Number of worker threads.
    progress_callback : callable, optional
        Called as progress_callback(index, total, gene) before each gene.
    **fit_kwargs
        Passed to impulse_fit.

    Returns
    -------
    fits : dict
        ImpulseFit per gene, in gene order.

    Raises
    ------
    InvalidParameter
        If the fitting configuration is invalid. Numerical errors while
        fitting one gene are recorded as a FAILED fit for that gene.
    """
    if genes is None:
        genes = list(scaled_expression.index)
    else:
        genes = list(genes)
    times = np.asarray(times, dtype=float)
    total = len(genes)
    if len(times) != scaled_expression.shape[1]:
        raise ValueError(
            f"times and expression windows must have same length: "
            f"{len(times)} vs {scaled_expression.shape[1]}"
        )
    if 'limit_single_slope' in fit_kwargs:
        fit_kwargs['limit_single_slope'] = SlopeLimit(fit_kwargs['limit_single_slope'])

    def fit_one(item):
        i, gene = item
        if progress_callback:
            progress_callback(i, total, gene)
        y = scaled_expression.loc[gene].to_numpy(dtype=float)
        try:
            return impulse_fit(times, y, sd_bg, **fit_kwargs)
        except InvalidParameter:
            raise
        except (ValueError, FloatingPointError, np.linalg.LinAlgError) as e:
            return ImpulseFit.failed(
                f"{type(e).__name__}: {e}",
                n_points=int(np.sum(np.isfinite(y)))
            )

    items = list(enumerate(genes))
    if n_jobs is not None and n_jobs > 1 and total > 1:
        with ThreadPoolExecutor(max_workers=min(n_jobs, total)) as executor:
            fits = list(executor.map(fit_one, items))
    else:
        fits = [fit_one(item) for item in items]

    return dict(zip(genes, fits))
