"""SpO2 proxy from the ratio of ratios of two colour channels.

AC is the spectral amplitude at the heart-rate bin, DC the channel mean, so
``R = (AC_red / DC_red) / (AC_blue / DC_blue)`` does not depend on the
absolute scale of either channel.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .spectrum import FftPlan


@dataclass
class Spo2Calibration:
    """Linear map ``spo2 = a - b * R`` clamped to [0, 100]."""

    a: float = 110.0
    b: float = 25.0

    def __call__(self, ratio: float) -> float:
        return float(np.clip(self.a - self.b * ratio, 0.0, 100.0))


def nearest_bin(frequency: float, fs: float, length: int) -> int:
    if fs <= 0:
        return 0
    return int(np.clip(round(frequency * length / fs), 0, length // 2))


def ac_dc(plan: FftPlan, x: np.ndarray, index: int) -> tuple[float, float]:
    """(AC, DC) of a raw window: amplitude at ``index`` and the mean level."""
    x = np.asarray(x, dtype=np.float64)
    dc = float(x.mean())
    amp = plan.amplitude(x - dc)
    return float(amp[int(index)]), dc


def ratio_of_ratios(
    red_plan: FftPlan,
    blue_plan: FftPlan,
    red: np.ndarray,
    blue: np.ndarray,
    index: int,
) -> Optional[float]:
    """Return R, or None when a DC level or the blue AC term is zero."""
    red_ac, red_dc = ac_dc(red_plan, red, index)
    blue_ac, blue_dc = ac_dc(blue_plan, blue, index)
    if red_dc == 0.0 or blue_dc == 0.0 or blue_ac == 0.0:
        return None
    return (red_ac / red_dc) / (blue_ac / blue_dc)
