"""Time-domain pulse counter.

A 9-tap moving average is differentiated; the sign of the latest two
derivative values drives a binary +1/-1 output and every rising edge counts
one pulse wave. Cheap enough to run on every frame and independent of the
spectral path, so it gives a rough rate before the FFT window fills.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .buffer import RingBuffer

DIGITAL_FILTER_LENGTH = 9


class DigitalFilter:
    def __init__(self, interval: int, history: int) -> None:
        if int(interval) < 1:
            raise ValueError("pulse interval must be >= 1")
        self.interval = int(interval)  # samples per latched rate
        self.window = RingBuffer(DIGITAL_FILTER_LENGTH)
        self.derivative = RingBuffer(2)
        self.binary = RingBuffer(history, fill=-1.0)
        self.output = -1.0
        self.smoothed = 0.0
        self.pulse_counter = 0
        self.zero_crossings = 0
        self.rate: Optional[float] = None  # Hz, latched at interval end
        self._samples = 0
        self._elapsed_ms = 0.0

    def step(self, value: float, period_ms: float) -> float:
        """Feed one normalized sample; returns the binary output."""
        self.window.push(value)
        previous = self.smoothed
        self.smoothed = float(np.mean(self.window.latest(DIGITAL_FILTER_LENGTH)))
        if self.window.count > 1:
            self.derivative.push(self.smoothed - previous)
        if self.derivative.full:
            d_new, d_old = self.derivative.at(0), self.derivative.at(1)
            if d_new > 0.0 and d_old > 0.0 and self.output < 0.0:
                self.output = 1.0
                self.zero_crossings += 1
                self.pulse_counter += 1
            elif d_new < 0.0 and d_old < 0.0 and self.output > 0.0:
                self.output = -1.0
        self.binary.push(self.output)

        self._elapsed_ms += max(0.0, float(period_ms))
        self._samples += 1
        if self._samples >= self.interval:
            if self._elapsed_ms > 0.0:
                self.rate = 1000.0 * self.pulse_counter / self._elapsed_ms
            self.pulse_counter = 0
            self._samples = 0
            self._elapsed_ms = 0.0
        return self.output

    def set_interval(self, value: int) -> None:
        if int(value) < 1:
            raise ValueError("pulse interval must be >= 1")
        self.interval = int(value)
