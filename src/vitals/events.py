"""Typed events published by a processor and a minimal observer bus."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    instance_id: int

    @property
    def kind_name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        for k, v in d.items():
            if isinstance(v, np.ndarray):
                d[k] = v.tolist()
            elif isinstance(v, tuple):
                d[k] = list(v)
        d["event"] = self.kind_name
        return d


@dataclass(frozen=True)
class SignalTrace(Event):
    kind: str  # heart | breath | pca | binary | time
    values: Tuple[float, ...] = field(default=())


@dataclass(frozen=True)
class SpectrumTrace(Event):
    kind: str  # heart | breath
    values: Tuple[float, ...] = field(default=())


@dataclass(frozen=True)
class HeartRateUpdate(Event):
    frequency: float  # Hz
    snr: float
    reliable: bool

    @property
    def bpm(self) -> float:
        return 60.0 * self.frequency


@dataclass(frozen=True)
class BreathRateUpdate(Event):
    frequency: float  # Hz
    snr: float


@dataclass(frozen=True)
class PulseRateUpdate(Event):
    frequency: float  # Hz, from the time-domain counter


@dataclass(frozen=True)
class Spo2Update(Event):
    value: float


@dataclass(frozen=True)
class ScalarUpdate(Event):
    name: str  # vpg | svpg | bvpg | snr | amplitude | breath_snr
    value: float


@dataclass(frozen=True)
class CurrentValues(Event):
    signal: float
    mean_red: float
    mean_green: float
    mean_blue: float


@dataclass(frozen=True)
class TooNoisy(Event):
    pipeline: str  # heart | breath
    snr: float


@dataclass(frozen=True)
class RangeWarning(Event):
    rate: float  # bpm
    low: float
    high: float


@dataclass(frozen=True)
class MeasurementsUpdate(Event):
    heart_rate: float  # bpm
    heart_snr: float
    breath_rate: float  # per minute
    breath_snr: float


Observer = Callable[[Event], None]


def trace(values: np.ndarray) -> Tuple[float, ...]:
    return tuple(float(v) for v in np.asarray(values).ravel())


class EventBus:
    """Fan events out to subscribed callables in subscription order."""

    def __init__(self) -> None:
        self._observers: list[Observer] = []

    def subscribe(self, observer: Observer) -> Observer:
        self._observers.append(observer)
        return observer

    def unsubscribe(self, observer: Observer) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    def __bool__(self) -> bool:
        return bool(self._observers)

    def emit(self, event: Event) -> None:
        for obs in list(self._observers):
            try:
                obs(event)
            except Exception:
                logger.exception("observer %r failed on %s", obs, event.kind_name)
