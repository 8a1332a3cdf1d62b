from __future__ import annotations

import numpy as np

from vitals.preprocess import center, normalize_latest, prune_outliers, window_average


def test_normalize_latest_constant_signal() -> None:
    x = np.ones(15, dtype=np.float64) * 42.0
    # flat window is only centered
    assert normalize_latest(x) == 0.0


def test_normalize_latest_uses_window_stats() -> None:
    x = np.array([1.0, 2.0, 3.0])
    expected = (3.0 - 2.0) / np.std(x)
    assert np.isclose(normalize_latest(x), expected)
    assert normalize_latest(np.zeros(0)) == 0.0


def test_prune_outliers_replaces_spike_with_mean() -> None:
    x = np.zeros(100)
    x[10] = 100.0
    y = prune_outliers(x, coeff=3.0)
    assert y[10] == 1.0  # mean before pruning
    assert np.all(y[np.arange(100) != 10] == 0.0)
    # input untouched
    assert x[10] == 100.0


def test_prune_outliers_keeps_sinusoid() -> None:
    t = np.arange(0, 10.0, 1 / 30.0)
    x = np.sin(2 * np.pi * 1.2 * t)
    assert np.array_equal(prune_outliers(x), x)


def test_center_and_window_average() -> None:
    x = np.array([1.0, 2.0, 6.0])
    assert np.isclose(center(x).mean(), 0.0)
    assert window_average(x) == 3.0
    assert window_average(np.zeros(0)) == 0.0
