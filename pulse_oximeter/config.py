"""
Measurement configuration.

Every constant used by the acquisition window, the quality gate and the
two estimators lives here so a single object can be handed to the
:class:`~pulse_oximeter.session.MeasurementController`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional


@dataclass
class MeasurementConfig:
    """
    Parameters for one camera PPG measurement.

    The defaults reproduce the reference behaviour: a 3 s countdown, a
    15 s sampling window, and a 50 × 50 px region of interest sampled
    from the red channel.
    """

    # Timing
    countdown_seconds: float = 3.0
    window_ms: int = 15_000

    # Frame sampling
    roi_size: int = 50
    color_order: str = "BGR"        # OpenCV frames; use "RGBA" for canvas-style buffers
    max_capture_fps: float = 240.0
    max_samples: Optional[int] = None   # None → window × max_capture_fps

    # Quality gate
    min_samples: int = 100
    saturation_low: float = 5.0
    saturation_high: float = 250.0
    min_cv_percent: float = 0.5

    # Heart rate
    threshold_factor: float = 0.5
    refractory_seconds: float = 0.3
    bpm_low: int = 40
    bpm_high: int = 200
    reject_implausible: bool = False    # False → clamp, True → ImplausibleReading

    # Oxygenation
    spo2_low: int = 90
    spo2_high: int = 100
    min_perfusion_index: float = 0.3
    low_perfusion_index: float = 1.0
    fallback_spo2: int = 95
    low_confidence_midpoint: int = 96

    def __post_init__(self) -> None:
        if self.countdown_seconds < 0:
            raise ValueError("countdown_seconds must be >= 0")
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")
        if self.roi_size <= 0:
            raise ValueError("roi_size must be positive")
        if "R" not in self.color_order.upper():
            raise ValueError(f"color_order {self.color_order!r} has no red channel")
        if self.max_capture_fps <= 0:
            raise ValueError("max_capture_fps must be positive")
        if self.max_samples is None:
            self.max_samples = math.ceil(self.window_seconds * self.max_capture_fps)
        if self.max_samples < self.min_samples:
            raise ValueError("max_samples must be >= min_samples")
        if not 0 <= self.saturation_low < self.saturation_high <= 255:
            raise ValueError("saturation limits must satisfy 0 <= low < high <= 255")
        if self.bpm_low >= self.bpm_high:
            raise ValueError("bpm_low must be below bpm_high")
        if self.spo2_low >= self.spo2_high:
            raise ValueError("spo2_low must be below spo2_high")

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0

    @classmethod
    def strict(cls) -> "MeasurementConfig":
        """
        Configuration that reports ``ImplausibleReading`` instead of
        clamping an out-of-range heart rate.
        """
        return cls(reject_implausible=True)
