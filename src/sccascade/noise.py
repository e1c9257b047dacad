"""
Background expression noise model.
"""

import numpy as np
import pandas as pd
from typing import Union

from .exceptions import InsufficientData


def background_noise_sd(scaled_background: Union[pd.DataFrame, np.ndarray]) -> float:
    """
    Standard deviation of scaled background expression.

    Parameters
    ----------
    scaled_background : DataFrame or ndarray
        Background genes x windows, each row scaled to its maximum.

    Returns
    -------
    sd_bg : float
        Sample standard deviation (N - 1 denominator) of all finite values.

    Raises
    ------
    InsufficientData
        If fewer than 2 finite values are available.
    """
    values = np.asarray(scaled_background, dtype=float).ravel()
    values = values[np.isfinite(values)]
    if len(values) < 2:
        raise InsufficientData(
            f"Background noise needs at least 2 finite values, got {len(values)}"
        )
    return float(np.std(values, ddof=1))
