from __future__ import annotations

import numpy as np

from vitals.quality import is_reliable, snr_ratio


def test_snr_ratio_peak_higher_than_noise() -> None:
    # Construct a spectrum with a clear peak at index 10
    a = np.ones(64, dtype=np.float64)
    a[10] = 50.0
    band = np.ones(64, dtype=bool)
    s = snr_ratio(a, band, peak_index=10, half_interval=2)
    assert np.isclose(s, (50.0 + 4.0) / 5.0)
    assert is_reliable(s, threshold=2.0)


def test_snr_ratio_flat_spectrum_is_about_one() -> None:
    a = np.ones(64, dtype=np.float64)
    band = np.zeros(64, dtype=bool)
    band[5:40] = True
    s = snr_ratio(a, band, peak_index=20, half_interval=2)
    assert np.isclose(s, 1.0)
    assert not is_reliable(s, threshold=2.0)


def test_snr_ratio_zero_signal() -> None:
    a = np.zeros(32)
    band = np.ones(32, dtype=bool)
    assert snr_ratio(a, band, peak_index=4) == 0.0
    assert snr_ratio(np.zeros(0), np.zeros(0, dtype=bool), 0) == 0.0


def test_snr_ratio_without_noise_bins() -> None:
    a = np.ones(8)
    band = np.zeros(8, dtype=bool)
    band[3:6] = True
    assert snr_ratio(a, band, peak_index=4, half_interval=2) == float("inf")


def test_reliability_ignores_snr_when_control_disabled() -> None:
    assert not is_reliable(0.5, threshold=2.0, snr_control=True)
    assert is_reliable(0.5, threshold=2.0, snr_control=False)
