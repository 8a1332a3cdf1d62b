"""Spectral harmonic analysis shared by the heart and breath pipelines."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import fft as sp_fft

from .preprocess import PRUNING_SKO_COEFF, center, prune_outliers
from .quality import is_reliable, snr_ratio

logger = logging.getLogger(__name__)

BOTTOM_LIMIT = 0.8  # Hz, 48 bpm
TOP_LIMIT = 3.5  # Hz, 210 bpm
SNR_THRESHOLD = 2.0
HALF_INTERVAL = 2

BREATH_BOTTOM_LIMIT = 0.2  # Hz, 12 rpm
BREATH_TOP_LIMIT = 0.5  # Hz, 30 rpm
BREATH_SNR_THRESHOLD = 2.0
BREATH_HALF_INTERVAL = 2


class FftPlan:
    """Transform descriptor for one fixed length.

    Holds the Hann window and the bin index vector so that repeated analyses
    allocate nothing but their outputs. Owned by a single analyzer.
    """

    def __init__(self, length: int) -> None:
        if int(length) < 8:
            raise ValueError("FFT length must be >= 8")
        self.length = int(length)
        self.window: Optional[np.ndarray] = np.hanning(self.length)
        self.bins: Optional[np.ndarray] = np.arange(self.length // 2 + 1)

    @property
    def closed(self) -> bool:
        return self.window is None

    def execute(self, x: np.ndarray) -> np.ndarray:
        """Forward complex FFT of a real series (imaginary part zero)."""
        if self.window is None:
            raise RuntimeError("FFT plan is closed")
        x = np.asarray(x, dtype=np.float64)
        if x.size != self.length:
            raise ValueError(f"expected {self.length} samples, got {x.size}")
        return sp_fft.fft((x * self.window).astype(np.complex128))

    def amplitude(self, x: np.ndarray) -> np.ndarray:
        """One-sided amplitude spectrum (``length // 2 + 1`` bins)."""
        return np.abs(self.execute(x)[: self.length // 2 + 1])

    def close(self) -> None:
        self.window = None
        self.bins = None


def sample_rate(periods_ms: np.ndarray) -> float:
    """Sampling rate [Hz] from a history of frame periods in milliseconds."""
    p = np.asarray(periods_ms, dtype=np.float64)
    p = p[p > 0]
    if p.size == 0:
        return 0.0
    return 1000.0 / float(p.mean())


class AnalyzerState(enum.Enum):
    IDLE = "idle"
    READY = "ready"
    ANALYZING = "analyzing"


@dataclass
class SpectrumResult:
    frequency: float  # Hz, centroid of the dominant harmonic
    snr: float
    reliable: bool
    peak_index: int
    fs: float
    signal: np.ndarray  # centered (and pruned) input window
    amplitude: np.ndarray  # one-sided amplitude spectrum

    @property
    def per_minute(self) -> float:
        return 60.0 * self.frequency


class SpectralAnalyzer:
    """Locate the dominant harmonic in a band and score its SNR."""

    def __init__(
        self,
        length: int,
        band_low: float = BOTTOM_LIMIT,
        band_high: float = TOP_LIMIT,
        half_interval: int = HALF_INTERVAL,
        snr_threshold: float = SNR_THRESHOLD,
    ) -> None:
        if not 0.0 <= band_low < band_high:
            raise ValueError("band must satisfy 0 <= low < high")
        if int(half_interval) < 1:
            raise ValueError("half_interval must be >= 1")
        self.plan = FftPlan(length)
        self.band_low = float(band_low)
        self.band_high = float(band_high)
        self.half_interval = int(half_interval)
        self.snr_threshold = float(snr_threshold)
        self.state = AnalyzerState.IDLE

    @property
    def length(self) -> int:
        return self.plan.length

    def mark_ready(self, ready: bool) -> None:
        if self.state is not AnalyzerState.ANALYZING:
            self.state = AnalyzerState.READY if ready else AnalyzerState.IDLE

    def analyze(
        self,
        signal: np.ndarray,
        periods_ms: np.ndarray,
        pruning: bool = True,
        snr_control: bool = True,
    ) -> Optional[SpectrumResult]:
        """Analyze one full window.

        Returns None when the sampling rate cannot be derived from
        ``periods_ms`` or the band holds no bins.
        """
        fs = sample_rate(periods_ms)
        if fs <= 0.0:
            logger.debug("no valid frame periods, skipping analysis")
            return None
        self.state = AnalyzerState.ANALYZING
        try:
            x = prune_outliers(signal, PRUNING_SKO_COEFF) if pruning else signal
            x = center(x)
            amp = self.plan.amplitude(x)
            bins = self.plan.bins
            freqs = bins * (fs / self.length)
            band = (freqs >= self.band_low) & (freqs <= self.band_high)
            if not np.any(band):
                logger.debug("band %.2f-%.2f Hz empty at fs=%.2f", self.band_low, self.band_high, fs)
                return None
            band_idx = np.flatnonzero(band)
            peak = int(band_idx[np.argmax(amp[band_idx])])
            i0 = max(0, peak - self.half_interval)
            i1 = min(amp.size, peak + self.half_interval + 1)
            weights = amp[i0:i1]
            total = float(weights.sum())
            if total > 0.0:
                centroid = float(np.dot(bins[i0:i1], weights)) / total
            else:
                centroid = float(peak)
            snr = snr_ratio(amp, band, peak, self.half_interval)
            return SpectrumResult(
                frequency=centroid * fs / self.length,
                snr=snr,
                reliable=is_reliable(snr, self.snr_threshold, snr_control),
                peak_index=peak,
                fs=fs,
                signal=x,
                amplitude=amp,
            )
        finally:
            self.state = AnalyzerState.READY

    def close(self) -> None:
        self.plan.close()
        self.state = AnalyzerState.IDLE
