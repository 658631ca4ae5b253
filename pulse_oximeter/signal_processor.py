"""
PPG signal processor.

Algorithm
---------
1. Remove the DC (baseline) component from the red-channel series.
2. Heart rate: count strict local maxima that clear an adaptive
   threshold (half the detrended standard deviation) and respect a
   0.3 s refractory period, then scale the count to beats per minute.
3. SpO2: perfusion index = RMS(AC) / DC × 100.  Weak perfusion falls
   back to a conservative value; otherwise the modulation ratio is fed
   through the empirical curve ``110 - 25 × R``.

Notes
-----
True pulse oximetry uses red (~660 nm) **and** infrared (~940 nm) light.
A phone camera only gives visible red, so the SpO2 figure is a
single-wavelength heuristic for wellness tracking, not a clinical reading.

The effective sample rate is derived from ``len(buffer) / window`` rather
than an assumed FPS, so any capture cadence works.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

import numpy as np
from scipy.signal import argrelmax, detrend as _scipy_detrend

logger = logging.getLogger(__name__)


class Confidence(Enum):
    NORMAL = "normal"
    LOW = "low"


@dataclass(frozen=True)
class HeartRateResult:
    bpm: int            # clamped to the physiological range
    raw_bpm: int        # before clamping
    peak_count: int


@dataclass(frozen=True)
class OxygenationResult:
    spo2: int
    perfusion_index: float
    confidence: Confidence


def detrend(intensities) -> np.ndarray:
    """Return ``intensities - mean(intensities)`` as a float64 array."""
    signal = np.asarray(intensities, dtype=np.float64)
    if signal.size == 0:
        return signal
    return _scipy_detrend(signal, type="constant")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class HeartRateEstimator:
    """
    Adaptive peak counter.

    Parameters
    ----------
    window_seconds:
        Duration of the sampling window the buffer covers.
    threshold_factor:
        Peaks must exceed ``threshold_factor × stddev`` of the detrended
        signal.  Scales with pulse strength.
    refractory_seconds:
        Minimum spacing between accepted peaks, so one systolic upswing is
        never counted twice.
    bpm_low, bpm_high:
        Physiological range the result is clamped to.
    """

    def __init__(
        self,
        window_seconds: float = 15.0,
        threshold_factor: float = 0.5,
        refractory_seconds: float = 0.3,
        bpm_low: int = 40,
        bpm_high: int = 200,
    ) -> None:
        self.window_seconds = window_seconds
        self.threshold_factor = threshold_factor
        self.refractory_seconds = refractory_seconds
        self.bpm_low = bpm_low
        self.bpm_high = bpm_high

    def estimate(self, intensities) -> HeartRateResult:
        peaks = self.find_peaks(intensities)
        minutes = self.window_seconds / 60.0
        raw_bpm = _round_half_up(len(peaks) / minutes)
        bpm = max(self.bpm_low, min(self.bpm_high, raw_bpm))
        logger.debug("Heart rate: %d peaks → raw %d BPM, reported %d BPM",
                     len(peaks), raw_bpm, bpm)
        return HeartRateResult(bpm=bpm, raw_bpm=raw_bpm, peak_count=len(peaks))

    def find_peaks(self, intensities) -> np.ndarray:
        """Return the indices of accepted peaks, in ascending order."""
        ac = detrend(intensities)
        if ac.size < 3:
            return np.array([], dtype=np.intp)

        threshold = self.threshold_factor * float(np.std(ac))
        min_distance = self.min_peak_distance(ac.size)

        accepted = []
        for i in argrelmax(ac, order=1)[0]:
            if ac[i] <= threshold:
                continue
            if accepted and i - accepted[-1] < min_distance:
                continue
            accepted.append(int(i))
        return np.array(accepted, dtype=np.intp)

    def min_peak_distance(self, sample_count: int) -> int:
        return int(math.floor(sample_count / self.window_seconds * self.refractory_seconds))


class OxygenationEstimator:
    """
    Perfusion-index SpO2 model over a single (red) wavelength.

    Parameters
    ----------
    spo2_low, spo2_high:
        Range the calibrated value is clamped to.
    min_perfusion_index:
        Below this (percent) the signal is too weak for the curve and
        ``fallback_spo2`` is returned with low confidence.
    low_perfusion_index:
        Below this the calibrated value is pulled halfway toward
        ``low_confidence_midpoint`` and flagged low confidence.
    """

    def __init__(
        self,
        spo2_low: int = 90,
        spo2_high: int = 100,
        min_perfusion_index: float = 0.3,
        low_perfusion_index: float = 1.0,
        fallback_spo2: int = 95,
        low_confidence_midpoint: int = 96,
    ) -> None:
        self.spo2_low = spo2_low
        self.spo2_high = spo2_high
        self.min_perfusion_index = min_perfusion_index
        self.low_perfusion_index = low_perfusion_index
        self.fallback_spo2 = fallback_spo2
        self.low_confidence_midpoint = low_confidence_midpoint

    def estimate(self, intensities) -> OxygenationResult:
        signal = np.asarray(intensities, dtype=np.float64)
        dc = float(np.mean(signal)) if signal.size else 0.0
        if dc <= 0:
            logger.warning("SpO2: no DC component – returning fallback %d%%.",
                           self.fallback_spo2)
            return OxygenationResult(self.fallback_spo2, 0.0, Confidence.LOW)

        ac = float(np.sqrt(np.mean(detrend(signal) ** 2)))
        modulation = ac / dc
        perfusion_index = modulation * 100.0

        if perfusion_index < self.min_perfusion_index:
            logger.warning(
                "Poor perfusion (PI=%.3f%%) – SpO2 reading unreliable, reporting %d%%.",
                perfusion_index, self.fallback_spo2,
            )
            return OxygenationResult(self.fallback_spo2, perfusion_index, Confidence.LOW)

        raw = 110.0 - 25.0 * modulation
        spo2 = max(self.spo2_low, min(self.spo2_high, _round_half_up(raw)))

        confidence = Confidence.NORMAL
        if perfusion_index < self.low_perfusion_index:
            spo2 = _round_half_up((spo2 + self.low_confidence_midpoint) / 2.0)
            confidence = Confidence.LOW

        return OxygenationResult(spo2, perfusion_index, confidence)
