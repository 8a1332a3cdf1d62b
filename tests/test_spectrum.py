from __future__ import annotations

import numpy as np
import pytest

from vitals.spectrum import (
    BREATH_BOTTOM_LIMIT,
    BREATH_TOP_LIMIT,
    AnalyzerState,
    FftPlan,
    SpectralAnalyzer,
    sample_rate,
)


def _periods(n: int, fs: float) -> np.ndarray:
    return np.full(n, 1000.0 / fs)


def test_sample_rate_from_periods_ignores_zero() -> None:
    p = np.array([0.0, 33.0, 34.0, 33.0, 0.0])
    assert np.isclose(sample_rate(p), 1000.0 / (100.0 / 3.0))
    assert sample_rate(np.zeros(4)) == 0.0


def test_plan_amplitude_of_pure_tone() -> None:
    n = 64
    plan = FftPlan(n)
    x = np.cos(2 * np.pi * 8 * np.arange(n) / n)
    amp = plan.amplitude(x)
    assert amp.shape == (n // 2 + 1,)
    assert int(np.argmax(amp)) == 8
    with pytest.raises(ValueError):
        plan.execute(np.zeros(n - 1))


def test_plan_close_releases_descriptor() -> None:
    plan = FftPlan(32)
    plan.close()
    assert plan.closed
    with pytest.raises(RuntimeError):
        plan.execute(np.zeros(32))


def test_sinusoid_detected_within_one_bin() -> None:
    fs = 30.0
    n = 256
    for f0 in (0.9, 1.25, 1.7, 2.6):
        t = np.arange(n) / fs
        x = np.sin(2 * np.pi * f0 * t) + 0.01 * np.random.RandomState(0).randn(n)
        an = SpectralAnalyzer(n)
        res = an.analyze(x, _periods(n - 1, fs))
        assert res is not None
        assert abs(res.frequency - f0) <= fs / n
        assert res.reliable
        assert res.snr >= 2.0
        assert np.isclose(res.per_minute, 60.0 * res.frequency)


def test_frame_timing_jitter_is_tolerated() -> None:
    rng = np.random.RandomState(3)
    n = 256
    periods = 1000.0 / 30.0 + rng.uniform(-3.0, 3.0, size=n)
    t = np.cumsum(periods) / 1000.0
    f0 = 1.25
    x = np.sin(2 * np.pi * f0 * t)
    res = SpectralAnalyzer(n).analyze(x, periods[1:])
    assert res is not None
    assert abs(res.frequency - f0) <= res.fs / n
    assert res.reliable


def test_pure_noise_is_not_reliable() -> None:
    n = 1024
    x = np.random.RandomState(0).randn(n)
    res = SpectralAnalyzer(n).analyze(x, _periods(n - 1, 30.0))
    assert res is not None
    assert res.snr < 2.0
    assert not res.reliable


def test_snr_control_disabled_reports_reliable() -> None:
    n = 1024
    x = np.random.RandomState(0).randn(n)
    res = SpectralAnalyzer(n).analyze(x, _periods(n - 1, 30.0), snr_control=False)
    assert res is not None
    assert res.reliable


def test_pruning_suppresses_spike() -> None:
    fs = 30.0
    n = 256
    x = np.sin(2 * np.pi * 1.25 * np.arange(n) / fs)
    x[100] = 50.0
    an = SpectralAnalyzer(n)
    pruned = an.analyze(x, _periods(n - 1, fs), pruning=True)
    raw = an.analyze(x, _periods(n - 1, fs), pruning=False)
    assert pruned is not None and raw is not None
    assert pruned.signal.max() < 2.0
    assert raw.signal.max() > 40.0
    assert abs(pruned.frequency - 1.25) <= fs / n


def test_analysis_is_repeatable_and_leaves_input_alone() -> None:
    fs = 30.0
    n = 221
    x = np.sin(2 * np.pi * 1.4 * np.arange(n) / fs) + 3.0
    before = x.copy()
    an = SpectralAnalyzer(n)
    a = an.analyze(x, _periods(n - 1, fs))
    b = an.analyze(x, _periods(n - 1, fs))
    assert a is not None and b is not None
    assert a.frequency == b.frequency and a.snr == b.snr
    assert np.array_equal(a.amplitude, b.amplitude)
    assert np.array_equal(x, before)


def test_breath_band_parameters() -> None:
    fs = 10.0
    n = 256
    x = np.sin(2 * np.pi * 0.3 * np.arange(n) / fs)
    an = SpectralAnalyzer(n, BREATH_BOTTOM_LIMIT, BREATH_TOP_LIMIT, 2, 2.0)
    res = an.analyze(x, _periods(n - 1, fs))
    assert res is not None
    assert abs(res.frequency - 0.3) <= fs / n


def test_state_machine_and_missing_timing() -> None:
    n = 64
    an = SpectralAnalyzer(n)
    assert an.state is AnalyzerState.IDLE
    an.mark_ready(True)
    assert an.state is AnalyzerState.READY
    assert an.analyze(np.zeros(n), np.zeros(n - 1)) is None
    res = an.analyze(np.zeros(n), _periods(n - 1, 30.0))
    assert res is not None and not res.reliable
    assert an.state is AnalyzerState.READY
    an.close()
    assert an.state is AnalyzerState.IDLE


def test_invalid_band_rejected() -> None:
    with pytest.raises(ValueError):
        SpectralAnalyzer(64, band_low=3.0, band_high=1.0)
    with pytest.raises(ValueError):
        SpectralAnalyzer(64, half_interval=0)
    with pytest.raises(ValueError):
        FftPlan(4)
