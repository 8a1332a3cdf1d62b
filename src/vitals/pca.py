"""Colour channel selection and PCA alignment."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy import linalg

logger = logging.getLogger(__name__)

PCA_SUCCESS = 1
PCA_BAD_INPUT = -1
PCA_SOLVER_FAILED = -2


class ColorChannel(enum.Enum):
    RED = "red"
    GREEN = "green"
    BLUE = "blue"
    RGB = "rgb"
    PCA = "pca"


def combine_channels(red: float, green: float, blue: float, mode: ColorChannel) -> float:
    """Per-sample value of the fixed channel for ``mode``.

    PCA cannot run per sample, so it enrolls Green here and the projection is
    computed over whole windows by :func:`align_to_green`.
    """
    if mode is ColorChannel.RED:
        return red
    if mode is ColorChannel.BLUE:
        return blue
    if mode is ColorChannel.RGB:
        return (red + green + blue) / 3.0
    return green


@dataclass
class PcaResult:
    raw: np.ndarray  # N x 3
    variance: np.ndarray  # (3,), descending
    basis: np.ndarray  # 3 x 3, columns are basis vectors
    status: int

    @property
    def ok(self) -> bool:
        return self.status == PCA_SUCCESS


def principal_components(raw: np.ndarray) -> PcaResult:
    """Eigendecomposition of the channel covariance of an N x 3 matrix."""
    x = np.asarray(raw, dtype=np.float64)
    empty = PcaResult(x, np.zeros(3), np.eye(3), PCA_BAD_INPUT)
    if x.ndim != 2 or x.shape[1] != 3 or x.shape[0] < 2 or not np.all(np.isfinite(x)):
        return empty
    xc = x - x.mean(axis=0)
    cov = (xc.T @ xc) / float(x.shape[0] - 1)
    try:
        w, v = linalg.eigh(cov)
    except linalg.LinAlgError:
        logger.warning("PCA eigendecomposition failed", exc_info=True)
        return PcaResult(x, np.zeros(3), np.eye(3), PCA_SOLVER_FAILED)
    order = np.argsort(w)[::-1]
    return PcaResult(x, np.clip(w[order], 0.0, None), v[:, order], PCA_SUCCESS)


def _corr(a: np.ndarray, b: np.ndarray) -> float:
    sa = float(a.std())
    sb = float(b.std())
    if sa == 0.0 or sb == 0.0:
        return 0.0
    return float(np.mean((a - a.mean()) * (b - b.mean())) / (sa * sb))


def align_to_green(raw: np.ndarray) -> Tuple[np.ndarray, PcaResult]:
    """Project channels on the component that best follows raw Green.

    The largest-variance axis is often motion or illumination, so the basis
    vector is chosen by its correlation with the Green column instead. On a
    failed decomposition the centered Green column is returned.

    Returns:
        (projection, pca_result)
    """
    res = principal_components(raw)
    x = np.asarray(raw, dtype=np.float64)
    if not res.ok:
        logger.warning("PCA status %d, falling back to green channel", res.status)
        if x.ndim == 2 and x.shape[1] == 3:
            g = x[:, 1]
            return g - g.mean(), res
        return np.zeros(0), res
    xc = x - x.mean(axis=0)
    green = x[:, 1]
    best, best_corr = 0, 0.0
    for k in range(3):
        c = _corr(xc @ res.basis[:, k], green)
        if abs(c) > abs(best_corr):
            best, best_corr = k, c
    proj = xc @ res.basis[:, best]
    if best_corr < 0:
        proj = -proj
    return proj, res
