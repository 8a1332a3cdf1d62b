"""Respiration rate from the slow component of the rPPG signal.

The per-frame raw signal is averaged and decimated into a short history so
the breath band (0.2-0.5 Hz) gets usable resolution, then the shared spectral
analyzer runs on it with breath-band parameters.
"""

from __future__ import annotations

import logging
from typing import Optional

from .buffer import RingBuffer
from .preprocess import normalize_latest, window_average
from .spectrum import (
    BREATH_BOTTOM_LIMIT,
    BREATH_HALF_INTERVAL,
    BREATH_SNR_THRESHOLD,
    BREATH_TOP_LIMIT,
    SpectralAnalyzer,
    SpectrumResult,
)

logger = logging.getLogger(__name__)

DEFAULT_BREATH_NORMALIZATION_INTERVAL = 26
DEFAULT_BREATH_AVERAGE = 16
DEFAULT_BREATH_STROBE = 3


class BreathExtractor:
    def __init__(
        self,
        length: int,
        strobe: int = DEFAULT_BREATH_STROBE,
        average: int = DEFAULT_BREATH_AVERAGE,
        cn_interval: int = DEFAULT_BREATH_NORMALIZATION_INTERVAL,
    ) -> None:
        self.raw = RingBuffer(length)  # averaged, not centered
        self.signal = RingBuffer(length)  # centered on cn_interval
        self.periods = RingBuffer(length)  # ms between breath samples
        self.analyzer = SpectralAnalyzer(
            length,
            BREATH_BOTTOM_LIMIT,
            BREATH_TOP_LIMIT,
            BREATH_HALF_INTERVAL,
            BREATH_SNR_THRESHOLD,
        )
        self.strobe = 1
        self.average = 1
        self.cn_interval = 1
        self.set_strobe(strobe)
        self.set_average(average)
        self.set_cn_interval(cn_interval)
        self._strobe_counter = 0
        self._elapsed_ms = 0.0

    @property
    def length(self) -> int:
        return self.raw.length

    def set_strobe(self, value: int) -> None:
        if int(value) < 1:
            raise ValueError("breath strobe must be >= 1")
        self.strobe = int(value)

    def set_average(self, value: int) -> None:
        if int(value) < 1:
            raise ValueError("breath average must be >= 1")
        self.average = int(value)

    def set_cn_interval(self, value: int) -> None:
        if int(value) < 1:
            raise ValueError("breath CN interval must be >= 1")
        self.cn_interval = int(value)

    def feed(self, raw_history: RingBuffer, period_ms: float) -> bool:
        """Account for one ingested frame; returns True on a strobe.

        ``raw_history`` must already contain the newest raw value.
        """
        self._elapsed_ms += max(0.0, float(period_ms))
        self._strobe_counter += 1
        if self._strobe_counter < self.strobe:
            return False
        self._strobe_counter = 0
        self.raw.push(window_average(raw_history.latest(self.average)))
        # the very first breath sample has no full period behind it
        self.periods.push(self._elapsed_ms if self.raw.count > 1 else 0.0)
        self._elapsed_ms = 0.0
        self.signal.push(normalize_latest(self.raw.latest(self.cn_interval)))
        self.analyzer.mark_ready(self.signal.full)
        return True

    def compute(self, pruning: bool = True, snr_control: bool = True) -> Optional[SpectrumResult]:
        if not self.signal.full:
            logger.debug("breath buffer %d/%d, idle", len(self.signal), self.length)
            return None
        periods = self.periods.latest(min(self.length, self.raw.count - 1))
        return self.analyzer.analyze(
            self.signal.latest(self.length),
            periods,
            pruning=pruning,
            snr_control=snr_control,
        )

    def close(self) -> None:
        self.analyzer.close()
