"""
Optimization routines for impulse model fitting.

Implements multi-start bounded nonlinear least squares with an evaluation cap
on every start.
"""

import numpy as np
from scipy.optimize import least_squares
from typing import Callable, Optional, Tuple, Dict, Any
import warnings


def multi_start_least_squares(
    residual_fn: Callable[[np.ndarray], np.ndarray],
    x0_base: np.ndarray,
    bounds: Tuple[np.ndarray, np.ndarray],
    n_starts: int = 3,
    scale: Optional[np.ndarray] = None,
    random_state: int = 0,
    max_nfev: int = 2000,
    jac_fn: Optional[Callable[[np.ndarray], np.ndarray]] = None
) -> Tuple[np.ndarray, float, Dict[str, Any]]:
    """
    Multi-start trust-region least squares.

    Parameters
    ----------
    residual_fn : callable
        Function r(theta) -> residual vector.
    x0_base : ndarray of shape (n_params,)
        Initial point of the first start. Later starts add Gaussian
        perturbations of size `scale` and are clipped into bounds.
    bounds : tuple of ndarray
        Lower and upper bounds (lb, ub); lb < ub element-wise.
    n_starts : int, default=3
        Number of starts.
    scale : ndarray of shape (n_params,), optional
        Perturbation size per parameter. Defaults to a tenth of the bound width
        (or 1 for unbounded parameters).
    random_state : int, default=0
        Random seed; identical inputs give identical results.
    max_nfev : int, default=2000
        Maximum residual evaluations per start.
    jac_fn : callable, optional
        Function J(theta) -> Jacobian of the residuals, shape (n_residuals,
        n_params). If None, a finite-difference Jacobian is used.

    Returns
    -------
    x_best : ndarray
        Best converged parameter vector.
    cost_best : float
        Sum of squared residuals at x_best.
    info : dict
        Optimization info with keys 'nfev', 'success', 'message', 'all_results'.

    Raises
    ------
    RuntimeError
        If no start converged.
    """
    rng = np.random.default_rng(random_state)
    lb, ub = (np.asarray(b, dtype=float) for b in bounds)
    x0_base = np.clip(np.asarray(x0_base, dtype=float), lb, ub)
    n_params = len(x0_base)

    if scale is None:
        width = ub - lb
        scale = np.where(np.isfinite(width), 0.1 * width, 1.0)

    best_result = None
    best_cost = np.inf
    all_results = []

    for i in range(n_starts):
        if i == 0:
            x0 = x0_base.copy()
        else:
            x0 = np.clip(x0_base + rng.normal(0, 1, n_params) * scale, lb, ub)

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                result = least_squares(
                    residual_fn,
                    x0,
                    bounds=(lb, ub),
                    method='trf',
                    jac=jac_fn if jac_fn is not None else '2-point',
                    max_nfev=max_nfev
                )
        except (ValueError, np.linalg.LinAlgError) as e:
            all_results.append({
                'x': x0,
                'cost': np.inf,
                'success': False,
                'nfev': 0,
                'error': str(e)
            })
            continue

        cost = float(np.sum(result.fun ** 2))
        all_results.append({
            'x': result.x,
            'cost': cost,
            'success': result.success,
            'nfev': result.nfev
        })

        if result.success and np.isfinite(cost) and cost < best_cost:
            best_cost = cost
            best_result = result

    if best_result is None:
        raise RuntimeError("No optimization start converged")

    info = {
        'nfev': best_result.nfev,
        'success': best_result.success,
        'message': best_result.message,
        'all_results': all_results
    }

    return best_result.x, best_cost, info
