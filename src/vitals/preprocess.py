"""Signal preprocessing for the heart and breath pipelines."""

from __future__ import annotations

import numpy as np

PRUNING_SKO_COEFF = 3.0


def normalize_latest(window: np.ndarray) -> float:
    """Normalize the newest sample of ``window`` by the window statistics.

    Returns ``(x[-1] - mean) / std``; when the window is flat the value is
    only centered (which makes it 0).

    Args:
        window: 1D array, oldest first, newest last.
    """
    x = np.asarray(window, dtype=np.float64)
    if x.size == 0:
        return 0.0
    mean = float(x.mean())
    std = float(x.std())
    if std > 0.0:
        return (float(x[-1]) - mean) / std
    return float(x[-1]) - mean


def prune_outliers(x: np.ndarray, coeff: float = PRUNING_SKO_COEFF) -> np.ndarray:
    """Replace samples beyond ``coeff`` standard deviations with the mean.

    Args:
        x: 1D array.
        coeff: threshold in standard deviations.
    """
    x = np.array(x, dtype=np.float64)
    if x.size == 0:
        return x
    mean = float(x.mean())
    std = float(x.std())
    if std > 0.0:
        x[np.abs(x - mean) > coeff * std] = mean
    return x


def center(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64)
    return x - float(x.mean()) if x.size else x.copy()


def window_average(x: np.ndarray) -> float:
    """Mean of a window, 0.0 when empty."""
    x = np.asarray(x, dtype=np.float64)
    return float(x.mean()) if x.size else 0.0
