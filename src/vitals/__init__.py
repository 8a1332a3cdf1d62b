"""Streaming rPPG vital-sign engine.

Heart rate, breath rate and an SpO2 proxy from per-frame colour sums.
"""

from .events import EventBus
from .pca import ColorChannel
from .processor import HarmonicProcessor, ProcessorConfig
from .ranges import ConfidenceLevel, Sex, WarningTableStatus

__all__ = [
    "buffer",
    "prefilter",
    "pca",
    "preprocess",
    "spectrum",
    "quality",
    "respiration",
    "spo2",
    "ranges",
    "events",
    "processor",
    "service",
    "ColorChannel",
    "ConfidenceLevel",
    "EventBus",
    "HarmonicProcessor",
    "ProcessorConfig",
    "Sex",
    "WarningTableStatus",
]

__version__ = "0.1.0"
