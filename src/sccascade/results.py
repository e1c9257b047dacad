"""
Result containers for impulse fits and gene cascades.

Timing sentinels
----------------
time_on
    Finite: pseudotime at which the gene turns on.
    NaN: no onset observed (flat trace, already on at the first window, or a
    failed fit).
time_off
    Finite: pseudotime at which the gene turns off.
    +inf: no offset observed (the gene never turns off).
    NaN: failed fit only.
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from .models import FitType, PARAM_NAMES, evaluate_model, derive_onset_offset
from .windows import MovingWindows


@dataclass(frozen=True)
class ImpulseFit:
    """
    Impulse model fit of one gene.

    Attributes
    ----------
    type : FitType
        Selected model family.
    params : dict
        Fitted parameters of that family (see models.PARAM_NAMES).
    time_on : float
        Onset time (see module docstring for sentinels).
    time_off : float
        Offset time (see module docstring for sentinels).
    sse : float
        Residual sum of squares of the selected model.
    n_points : int
        Number of finite points the model was fitted to.
    message : str
        Reason for falling back or failing, if any.
    """
    type: FitType
    params: Dict[str, float] = field(default_factory=dict)
    time_on: float = np.nan
    time_off: float = np.nan
    sse: float = np.nan
    n_points: int = 0
    message: str = ""

    @classmethod
    def failed(cls, message: str, n_points: int = 0) -> "ImpulseFit":
        return cls(type=FitType.FAILED, n_points=n_points, message=message)

    @property
    def is_failed(self) -> bool:
        return self.type == FitType.FAILED

    @property
    def turns_on(self) -> bool:
        return bool(np.isfinite(self.time_on))

    @property
    def turns_off(self) -> bool:
        return bool(np.isfinite(self.time_off))

    def evaluate(self, t: np.ndarray) -> np.ndarray:
        """Evaluate the fitted curve at times t."""
        return evaluate_model(self.type, t, self.params)

    def onset_offset(
        self,
        t_min: float,
        t_max: float,
        onset_thresh: float = 0.1,
        min_effect: float = 0.0
    ):
        """Recompute (time_on, time_off) for another threshold or time range."""
        return derive_onset_offset(
            self.type, self.params, t_min, t_max,
            onset_thresh=onset_thresh, min_effect=min_effect
        )

    def as_dict(self) -> Dict[str, Any]:
        """Flat record: type, all parameter slots (NaN when unused), timing."""
        record = {'type': int(self.type)}
        for name in PARAM_NAMES[FitType.LINEAR] + PARAM_NAMES[FitType.DOUBLE]:
            record[name] = self.params.get(name, np.nan)
        record.update({
            'time_on': self.time_on,
            'time_off': self.time_off,
            'sse': self.sse,
            'n_points': self.n_points,
            'message': self.message
        })
        return record


@dataclass(frozen=True)
class Cascade:
    """
    Results of gene cascade processing.

    Attributes
    ----------
    windows : MovingWindows
        Pseudotime windows the expression was aggregated over.
    pt_info : DataFrame
        Per-window pseudotime 'mean', 'min', 'max', 'width'.
    mean_expression : DataFrame of shape (n_genes, n_windows)
        Aggregated expression of target genes.
    scaled_expression : DataFrame of shape (n_genes, n_windows)
        mean_expression with each gene scaled to its maximum.
    mean_expression_bg : DataFrame of shape (n_background, n_windows)
        Aggregated expression of background genes.
    scaled_expression_bg : DataFrame of shape (n_background, n_windows)
        Scaled background expression.
    sd_bg : float
        Standard deviation of scaled background expression.
    impulse_fits : dict
        ImpulseFit per target gene, in gene order.
    timing : DataFrame
        Columns 'time_on', 'time_off', indexed by gene.
    config : dict
        Configuration used for processing.
    """
    windows: MovingWindows
    pt_info: pd.DataFrame
    mean_expression: pd.DataFrame
    scaled_expression: pd.DataFrame
    mean_expression_bg: pd.DataFrame
    scaled_expression_bg: pd.DataFrame
    sd_bg: float
    impulse_fits: Dict[Any, ImpulseFit]
    timing: pd.DataFrame
    config: Dict[str, Any] = field(default_factory=dict)

    @property
    def genes(self) -> List:
        return list(self.impulse_fits.keys())

    @property
    def window_times(self) -> np.ndarray:
        """Unrounded summary pseudotime of each window."""
        return self.windows.times

    @property
    def failed_genes(self) -> List:
        return [g for g, fit in self.impulse_fits.items() if fit.is_failed]

    def fit_types(self) -> pd.Series:
        """Selected FitType per gene."""
        return pd.Series(
            {g: fit.type for g, fit in self.impulse_fits.items()},
            name='type', dtype=object
        )

    def fit_table(self) -> pd.DataFrame:
        """All fits as a flat table, one row per gene."""
        return pd.DataFrame.from_dict(
            {g: fit.as_dict() for g, fit in self.impulse_fits.items()},
            orient='index'
        )

    def gene_order(self) -> List:
        """
        Genes ordered for a cascade heatmap.

        Sorted by time_on, then time_off. Genes without an onset come first
        (they are on from the start), except genes that never switch
        (no onset and no offset), which come last, followed by failed fits.
        """
        timing = self.timing[['time_on', 'time_off']].copy()
        never = timing['time_on'].isna() & np.isposinf(timing['time_off'])
        failed = timing['time_off'].isna()
        timing.loc[never, 'time_on'] = np.inf
        timing.loc[failed, ['time_on', 'time_off']] = np.inf
        timing['_failed'] = failed
        timing = timing.sort_values(
            ['_failed', 'time_on', 'time_off'],
            na_position='first', kind='mergesort'
        )
        return list(timing.index)

    def ordered_scaled_expression(self) -> pd.DataFrame:
        """Scaled expression with rows in gene_order()."""
        return self.scaled_expression.loc[self.gene_order()]

    def fitted_curves(self, times: Optional[np.ndarray] = None) -> pd.DataFrame:
        """
        Evaluate every fit.

        Parameters
        ----------
        times : ndarray, optional
            Times to evaluate at. If None, uses window_times.

        Returns
        -------
        curves : DataFrame of shape (n_genes, n_times)
            Rows indexed by gene, columns by time. Failed fits are NaN.
        """
        if times is None:
            times = self.window_times
        times = np.asarray(times, dtype=float)
        curves = {g: fit.evaluate(times) for g, fit in self.impulse_fits.items()}
        return pd.DataFrame.from_dict(curves, orient='index', columns=times)
