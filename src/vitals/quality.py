"""Quality metrics for rPPG spectra.

SNR here is a plain amplitude ratio: the mean amplitude of the dominant
harmonic (peak bin and its half-interval neighbours) over the mean amplitude
of the rest of the search band.
"""

from __future__ import annotations

import numpy as np


def snr_ratio(
    amplitude: np.ndarray,
    band: np.ndarray,
    peak_index: int,
    half_interval: int = 2,
) -> float:
    """Estimate SNR of the peak at ``peak_index`` inside a frequency band.

    Args:
        amplitude: one-sided amplitude spectrum.
        band: boolean mask (same size) selecting the search band.
        peak_index: index of the dominant bin.
        half_interval: neighbours on each side counted as signal.

    The signal term is the mean amplitude of the peak bin together with its
    ``half_interval`` neighbours, not the single peak bin. A flat spectrum
    therefore scores about 1.0 and windowing leakage around a true peak is
    not counted as noise.

    Returns 0.0 when there is no signal energy; ``inf`` when the band has no
    bins left for the noise estimate but the peak is non-zero.
    """
    a = np.asarray(amplitude, dtype=np.float64)
    n = int(a.size)
    if n == 0:
        return 0.0
    i0 = max(0, int(peak_index) - int(half_interval))
    i1 = min(n, int(peak_index) + int(half_interval) + 1)
    sig = float(np.mean(a[i0:i1]))
    if sig <= 0.0:
        return 0.0
    noise_mask = np.asarray(band, dtype=bool).copy()
    noise_mask[i0:i1] = False
    if not np.any(noise_mask):
        return float("inf")
    noise = float(np.mean(a[noise_mask]))
    if noise <= 0.0:
        return float("inf")
    return sig / noise


def is_reliable(snr: float, threshold: float, snr_control: bool = True) -> bool:
    """Reliability rule: SNR above threshold, or always when control is off."""
    if not snr_control:
        return True
    return bool(snr >= threshold)
