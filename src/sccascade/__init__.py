"""
SCCASCADE: Single-Cell gene Cascades

Estimate when genes turn on and off along pseudotime by fitting impulse models
(linear, single sigmoid, double sigmoid) to windowed single-cell expression.
"""

__version__ = "0.1.0"

from .exceptions import CascadeError, InvalidParameter, EmptyWindow, InsufficientData
from .windows import MovingWindows, WindowSummary, pseudotime_moving_window, window_pseudotime_info
from .aggregate import (
    mean_of_logs, aggregate_windows, scale_to_max,
    sample_background_genes, expression_from_anndata
)
from .noise import background_noise_sd
from .models import FitType
from .impulse import SlopeLimit, impulse_fit, fit_genes
from .results import ImpulseFit, Cascade
from .cascade import process_gene_cascade

__all__ = [
    "__version__",
    "CascadeError",
    "InvalidParameter",
    "EmptyWindow",
    "InsufficientData",
    "MovingWindows",
    "WindowSummary",
    "pseudotime_moving_window",
    "window_pseudotime_info",
    "mean_of_logs",
    "aggregate_windows",
    "scale_to_max",
    "sample_background_genes",
    "expression_from_anndata",
    "background_noise_sd",
    "FitType",
    "SlopeLimit",
    "impulse_fit",
    "fit_genes",
    "ImpulseFit",
    "Cascade",
    "process_gene_cascade",
]
