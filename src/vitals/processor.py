"""Streaming vital-sign processor.

One instance owns every buffer and FFT plan it uses. Feed it one sample per
frame with :meth:`HarmonicProcessor.ingest` and call the ``compute_*``
triggers whenever fresh estimates are wanted; results go to the observers
subscribed on :attr:`HarmonicProcessor.events` and are also returned.

Not thread-safe: serialize calls on one instance externally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

import numpy as np

from .buffer import RingBuffer
from .events import (
    BreathRateUpdate,
    CurrentValues,
    EventBus,
    HeartRateUpdate,
    MeasurementsUpdate,
    PulseRateUpdate,
    RangeWarning,
    ScalarUpdate,
    SignalTrace,
    SpectrumTrace,
    Spo2Update,
    TooNoisy,
    trace,
)
from .pca import ColorChannel, align_to_green, combine_channels
from .prefilter import DigitalFilter
from .preprocess import normalize_latest
from .ranges import ConfidenceLevel, Sex, WarningEngine, WarningTableStatus
from .respiration import (
    DEFAULT_BREATH_AVERAGE,
    DEFAULT_BREATH_NORMALIZATION_INTERVAL,
    DEFAULT_BREATH_STROBE,
    BreathExtractor,
)
from .spectrum import AnalyzerState, FftPlan, SpectralAnalyzer, SpectrumResult
from .spo2 import Spo2Calibration, nearest_bin, ratio_of_ratios

logger = logging.getLogger(__name__)

DEFAULT_DATA_LENGTH = 221
DEFAULT_BUFFER_LENGTH = 221
DEFAULT_NORMALIZATION_INTERVAL = 15


@dataclass
class ProcessorConfig:
    data_length: int = DEFAULT_DATA_LENGTH
    buffer_length: int = DEFAULT_BUFFER_LENGTH
    breath_length: Optional[int] = None  # defaults to data_length
    color_channel: ColorChannel = ColorChannel.GREEN
    pca: bool = False
    pruning: bool = True
    snr_control: bool = True
    estimation_interval: int = DEFAULT_NORMALIZATION_INTERVAL
    pulse_interval: Optional[int] = None  # defaults to data_length
    breath_strobe: int = DEFAULT_BREATH_STROBE
    breath_average: int = DEFAULT_BREATH_AVERAGE
    breath_cn_interval: int = DEFAULT_BREATH_NORMALIZATION_INTERVAL
    instance_id: int = 0
    calibration: Spo2Calibration = field(default_factory=Spo2Calibration)


class HarmonicProcessor:
    def __init__(self, config: Optional[ProcessorConfig] = None, events: Optional[EventBus] = None) -> None:
        cfg = replace(config) if config is not None else ProcessorConfig()
        if cfg.data_length < 8:
            raise ValueError("data_length must be >= 8")
        if not 8 <= cfg.buffer_length <= cfg.data_length:
            raise ValueError("buffer_length must be in [8, data_length]")
        if cfg.breath_length is None:
            cfg.breath_length = cfg.data_length
        if cfg.pulse_interval is None:
            cfg.pulse_interval = cfg.data_length
        cfg.color_channel = ColorChannel(cfg.color_channel)
        self.config = cfg
        self.events = events if events is not None else EventBus()

        n = cfg.data_length
        self.red = RingBuffer(n)
        self.green = RingBuffer(n)
        self.blue = RingBuffer(n)
        self.periods = RingBuffer(n)  # ms
        self.raw = RingBuffer(n)  # selected channel, not centered
        self.heart = RingBuffer(n)  # centered and normalized
        self.prefilter = DigitalFilter(cfg.pulse_interval, n)
        self.breath = BreathExtractor(
            cfg.breath_length, cfg.breath_strobe, cfg.breath_average, cfg.breath_cn_interval
        )
        self.heart_analyzer = SpectralAnalyzer(cfg.buffer_length)
        self.red_plan = FftPlan(cfg.buffer_length)
        self.blue_plan = FftPlan(cfg.buffer_length)
        self.warnings = WarningEngine()
        self._check_intervals()

        self.heart_rate = 0.0  # Hz
        self.heart_snr = 0.0
        self.breath_rate = 0.0  # Hz
        self.breath_snr = 0.0
        self.spo2: Optional[float] = None
        self._heart_frequency: Optional[float] = None  # last reliable one
        self._heart_fs = 0.0
        self._last_time: Optional[float] = None
        self._closed = False

    # -- lifecycle -----------------------------------------------------------
    def close(self) -> None:
        """Release FFT plans. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.heart_analyzer.close()
        self.breath.close()
        self.red_plan.close()
        self.blue_plan.close()
        logger.debug("processor %d closed", self.config.instance_id)

    def __enter__(self) -> "HarmonicProcessor":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Processor is closed")

    # -- ingestion -----------------------------------------------------------
    def ingest(self, red: float, green: float, blue: float, area: float, timestamp: float) -> None:
        """Append one frame: channel sums over the ROI, its area, time in ms."""
        self._check_open()
        a = float(max(area, 1))
        r, g, b = float(red) / a, float(green) / a, float(blue) / a
        t = float(timestamp)
        period = 0.0 if self._last_time is None else t - self._last_time
        self._last_time = t

        self.red.push(r)
        self.green.push(g)
        self.blue.push(b)
        self.periods.push(period)
        self.raw.push(combine_channels(r, g, b, self.config.color_channel))
        value = normalize_latest(self.raw.latest(self.config.estimation_interval))
        self.heart.push(value)
        binary = self.prefilter.step(value, period)
        self.breath.feed(self.raw, period)
        self.heart_analyzer.mark_ready(self.heart.count >= self.config.buffer_length)

        if self.events:
            iid = self.config.instance_id
            self.events.emit(ScalarUpdate(iid, "vpg", value))
            self.events.emit(ScalarUpdate(iid, "svpg", self.prefilter.smoothed))
            self.events.emit(ScalarUpdate(iid, "bvpg", binary))
            self.events.emit(CurrentValues(iid, value, r, g, b))

    enroll_data = ingest

    def _periods(self, n: int) -> np.ndarray:
        # the first ever period is a placeholder 0 and must not count
        return self.periods.latest(min(n, self.periods.count - 1))

    # -- triggers ------------------------------------------------------------
    def compute_heart_rate(self) -> Optional[SpectrumResult]:
        self._check_open()
        n = self.config.buffer_length
        iid = self.config.instance_id
        if self.heart.count < n:
            logger.debug("heart buffer %d/%d, idle", self.heart.count, n)
            return None
        periods = self._periods(n)
        if self.pca_active:
            raw = np.column_stack([self.red.latest(n), self.green.latest(n), self.blue.latest(n)])
            signal, _ = align_to_green(raw)
            self.events.emit(SignalTrace(iid, "pca", trace(signal)))
        else:
            signal = self.heart.latest(n)
        res = self.heart_analyzer.analyze(
            signal, periods, pruning=self.config.pruning, snr_control=self.config.snr_control
        )
        if res is None:
            return None
        self.heart_rate = res.frequency
        self.heart_snr = res.snr
        self._heart_fs = res.fs
        self._heart_frequency = res.frequency if res.reliable else None

        self.events.emit(SignalTrace(iid, "heart", trace(res.signal)))
        self.events.emit(SpectrumTrace(iid, "heart", trace(res.amplitude)))
        self.events.emit(SignalTrace(iid, "time", trace(periods)))
        self.events.emit(HeartRateUpdate(iid, res.frequency, res.snr, res.reliable))
        self.events.emit(ScalarUpdate(iid, "snr", res.snr))
        self.events.emit(ScalarUpdate(iid, "amplitude", float(res.amplitude[res.peak_index])))
        if not res.reliable:
            self.events.emit(TooNoisy(iid, "heart", res.snr))
        else:
            out = self.warnings.check(res.per_minute)
            if out is not None:
                logger.info("heart rate %.1f bpm outside [%.1f, %.1f]", res.per_minute, *out)
                self.events.emit(RangeWarning(iid, res.per_minute, out[0], out[1]))
        self._emit_measurements()
        return res

    def compute_breath_rate(self) -> Optional[SpectrumResult]:
        self._check_open()
        iid = self.config.instance_id
        res = self.breath.compute(pruning=self.config.pruning, snr_control=self.config.snr_control)
        if res is None:
            return None
        self.breath_rate = res.frequency
        self.breath_snr = res.snr
        self.events.emit(SignalTrace(iid, "breath", trace(res.signal)))
        self.events.emit(SpectrumTrace(iid, "breath", trace(res.amplitude)))
        self.events.emit(BreathRateUpdate(iid, res.frequency, res.snr))
        self.events.emit(ScalarUpdate(iid, "breath_snr", res.snr))
        if not res.reliable:
            self.events.emit(TooNoisy(iid, "breath", res.snr))
        self._emit_measurements()
        return res

    def compute_spo2(self, index: Optional[int] = None) -> Optional[float]:
        """Ratio-of-ratios SpO2 at the heart bin (or at bin ``index``).

        No-op until :meth:`compute_heart_rate` has produced a reliable rate.
        """
        self._check_open()
        n = self.config.buffer_length
        if self._heart_frequency is None:
            logger.debug("no reliable heart frequency, SpO2 skipped")
            return None
        if index is None:
            index = nearest_bin(self._heart_frequency, self._heart_fs, n)
        elif not 0 < int(index) <= n // 2:
            raise ValueError(f"spectral index must be in [1, {n // 2}]")
        ratio = ratio_of_ratios(
            self.red_plan, self.blue_plan, self.red.latest(n), self.blue.latest(n), int(index)
        )
        if ratio is None:
            return None
        self.spo2 = self.config.calibration(ratio)
        self.events.emit(Spo2Update(self.config.instance_id, self.spo2))
        return self.spo2

    def count_frequency(self) -> Optional[float]:
        """Latest pulse-counter rate in Hz, None before the first interval."""
        self._check_open()
        rate = self.prefilter.rate
        if rate is None:
            return None
        iid = self.config.instance_id
        self.events.emit(SignalTrace(iid, "binary", trace(self.prefilter.binary.latest(self.data_length))))
        self.events.emit(PulseRateUpdate(iid, rate))
        return rate

    def _emit_measurements(self) -> None:
        self.events.emit(
            MeasurementsUpdate(
                self.config.instance_id,
                60.0 * self.heart_rate,
                self.heart_snr,
                60.0 * self.breath_rate,
                self.breath_snr,
            )
        )

    # -- warning table -------------------------------------------------------
    def load_warning_rates(
        self,
        path: str | Path,
        sex: Sex,
        age: int,
        confidence: ConfidenceLevel,
    ) -> WarningTableStatus:
        self._check_open()
        return self.warnings.load(path, sex, age, confidence)

    # -- configuration -------------------------------------------------------
    def _check_intervals(self) -> None:
        cfg = self.config
        if not 1 <= cfg.estimation_interval <= cfg.data_length:
            raise ValueError("estimation_interval must be in [1, data_length]")
        if cfg.pulse_interval < 1:
            raise ValueError("pulse_interval must be >= 1")
        if not 1 <= cfg.breath_average <= cfg.data_length:
            raise ValueError("breath_average must be in [1, data_length]")
        if not 1 <= cfg.breath_cn_interval <= cfg.breath_length:
            raise ValueError("breath_cn_interval must be in [1, breath_length]")

    @property
    def pca_active(self) -> bool:
        return self.config.pca or self.config.color_channel is ColorChannel.PCA

    @property
    def state(self) -> AnalyzerState:
        return self.heart_analyzer.state

    @property
    def data_length(self) -> int:
        return self.config.data_length

    @property
    def buffer_length(self) -> int:
        return self.config.buffer_length

    @property
    def estimation_interval(self) -> int:
        return self.config.estimation_interval

    @property
    def pulse_interval(self) -> int:
        return self.prefilter.interval

    @property
    def breath_strobe(self) -> int:
        return self.config.breath_strobe

    @property
    def breath_average(self) -> int:
        return self.config.breath_average

    @property
    def breath_cn_interval(self) -> int:
        return self.config.breath_cn_interval

    @property
    def instance_id(self) -> int:
        return self.config.instance_id

    def switch_color_mode(self, mode: ColorChannel | str) -> None:
        self.config.color_channel = ColorChannel(mode)

    def set_pca_mode(self, enabled: bool) -> None:
        self.config.pca = bool(enabled)

    def set_estimation_interval(self, value: int) -> None:
        if not 1 <= int(value) <= self.config.data_length:
            raise ValueError("estimation_interval must be in [1, data_length]")
        self.config.estimation_interval = int(value)

    def set_pulse_interval(self, value: int) -> None:
        self.prefilter.set_interval(value)
        self.config.pulse_interval = int(value)

    def set_breath_strobe(self, value: int) -> None:
        self.breath.set_strobe(value)
        self.config.breath_strobe = int(value)

    def set_breath_average(self, value: int) -> None:
        if int(value) > self.config.data_length:
            raise ValueError("breath_average must be in [1, data_length]")
        self.breath.set_average(value)
        self.config.breath_average = int(value)

    def set_breath_cn_interval(self, value: int) -> None:
        if int(value) > self.breath.length:
            raise ValueError("breath_cn_interval must be in [1, breath_length]")
        self.breath.set_cn_interval(value)
        self.config.breath_cn_interval = int(value)

    def set_snr_control(self, enabled: bool) -> None:
        self.config.snr_control = bool(enabled)

    def set_pruning(self, enabled: bool) -> None:
        self.config.pruning = bool(enabled)

    def set_id(self, value: int) -> None:
        self.config.instance_id = int(value)
