"""
Unit tests for the detrender and the heart-rate / SpO2 estimators.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from pulse_oximeter.quality import QualityGate
from pulse_oximeter.signal_processor import (
    Confidence,
    HeartRateEstimator,
    OxygenationEstimator,
    detrend,
)


def _sine(n=300, window_s=15.0, hz=1.2, mean=100.0, amplitude=5.0) -> np.ndarray:
    # Phase offset keeps every crest off the midpoint between two samples.
    t = np.arange(n) * (window_s / n)
    return mean + amplitude * np.sin(2 * np.pi * hz * t + 0.3)


# ---------------------------------------------------------------------------
# Detrender
# ---------------------------------------------------------------------------

class TestDetrend:

    def test_removes_mean(self):
        ac = detrend([10.0, 12.0, 14.0, 16.0])
        np.testing.assert_allclose(ac, [-3.0, -1.0, 1.0, 3.0])

    def test_zero_mean_output(self):
        ac = detrend(_sine(mean=180.0))
        assert abs(float(np.mean(ac))) < 1e-9

    def test_input_untouched(self):
        raw = _sine()
        before = raw.copy()
        detrend(raw)
        np.testing.assert_array_equal(raw, before)

    def test_empty(self):
        assert detrend([]).size == 0


# ---------------------------------------------------------------------------
# Heart rate
# ---------------------------------------------------------------------------

class TestHeartRateEstimator:

    def test_synthetic_72_bpm(self):
        """300 samples over 15 s of a clean 1.2 Hz sine → ~72 BPM."""
        hr = HeartRateEstimator(window_seconds=15.0)
        result = hr.estimate(_sine())
        assert abs(result.bpm - 72) <= 5, f"Expected ~72 BPM, got {result.bpm}"
        assert result.peak_count == 18

    def test_sample_rate_derived_from_count(self):
        """Same pulse captured at 30 fps instead of 20 fps gives the same BPM."""
        hr = HeartRateEstimator(window_seconds=15.0)
        result = hr.estimate(_sine(n=450))
        assert abs(result.bpm - 72) <= 5

    def test_min_peak_distance(self):
        hr = HeartRateEstimator(window_seconds=15.0, refractory_seconds=0.3)
        assert hr.min_peak_distance(300) == 6
        assert hr.min_peak_distance(450) == 9

    def test_refractory_period_suppresses_double_peaks(self):
        """A notch right after each beat must not be counted as a second beat."""
        signal = _sine()
        peaks = HeartRateEstimator(window_seconds=15.0).find_peaks(signal)
        for p in peaks:
            if p + 2 < signal.size:
                signal[p + 2] = signal[p] - 0.1
                signal[p + 1] = signal[p] - 0.5
        hr = HeartRateEstimator(window_seconds=15.0)
        assert hr.estimate(signal).peak_count == 18

    def test_peaks_are_strict_local_maxima_above_threshold(self):
        signal = _sine()
        hr = HeartRateEstimator(window_seconds=15.0)
        ac = detrend(signal)
        threshold = 0.5 * np.std(ac)
        for i in hr.find_peaks(signal):
            assert ac[i] > ac[i - 1] and ac[i] > ac[i + 1]
            assert ac[i] > threshold

    def test_clamped_high(self):
        alternating = np.tile([100.0, 110.0], 150)
        hr = HeartRateEstimator(window_seconds=15.0, refractory_seconds=0.0)
        result = hr.estimate(alternating)
        assert result.raw_bpm > 200
        assert result.bpm == 200

    def test_clamped_low(self):
        signal = np.full(300, 100.0)
        signal[150] = 150.0
        result = HeartRateEstimator(window_seconds=15.0).estimate(signal)
        assert result.peak_count == 1
        assert result.raw_bpm == 4
        assert result.bpm == 40

    def test_short_signal(self):
        result = HeartRateEstimator().estimate([100.0, 101.0])
        assert result.peak_count == 0
        assert result.bpm == 40

    def test_deterministic(self):
        rng = np.random.default_rng(7)
        signal = _sine() + rng.normal(0, 1.0, 300)
        hr = HeartRateEstimator(window_seconds=15.0)
        assert hr.estimate(signal) == hr.estimate(signal.copy())

    @pytest.mark.parametrize("seed", range(10))
    def test_bpm_always_in_range_for_valid_buffers(self, seed):
        rng = np.random.default_rng(seed)
        n = int(rng.integers(100, 600))
        signal = rng.uniform(60.0, 200.0, n)
        assert QualityGate().evaluate(signal).valid
        result = HeartRateEstimator(window_seconds=15.0).estimate(signal)
        assert isinstance(result.bpm, int)
        assert 40 <= result.bpm <= 200


# ---------------------------------------------------------------------------
# Oxygenation
# ---------------------------------------------------------------------------

class TestOxygenationEstimator:

    def test_strong_perfusion(self):
        result = OxygenationEstimator().estimate(_sine(amplitude=5.0))
        assert result.perfusion_index == pytest.approx(5.0 / np.sqrt(2), rel=1e-3)
        assert result.spo2 == 100
        assert result.confidence is Confidence.NORMAL

    def test_very_weak_perfusion_returns_fallback(self):
        result = OxygenationEstimator().estimate(_sine(amplitude=0.2))
        assert result.perfusion_index < 0.3
        assert result.spo2 == 95
        assert result.confidence is Confidence.LOW

    def test_low_perfusion_pulled_toward_midpoint(self):
        result = OxygenationEstimator().estimate(_sine(amplitude=1.0))
        assert 0.3 <= result.perfusion_index < 1.0
        # calibrated 100 → (100 + 96) / 2
        assert result.spo2 == 98
        assert result.confidence is Confidence.LOW

    def test_clamped_to_lower_bound(self):
        signal = np.tile([10.0, 190.0], 150)
        result = OxygenationEstimator().estimate(signal)
        # modulation 0.9 → 110 - 22.5 = 87.5 → clamped
        assert result.spo2 == 90
        assert result.confidence is Confidence.NORMAL

    def test_midpoint_rounds_half_up(self):
        ox = OxygenationEstimator(spo2_low=90, spo2_high=93, low_perfusion_index=1000.0)
        result = ox.estimate(_sine(amplitude=5.0))
        # clamped 93 → (93 + 96) / 2 = 94.5 → 95
        assert result.spo2 == 95

    def test_no_dc_component(self):
        result = OxygenationEstimator().estimate(np.zeros(200))
        assert result.spo2 == 95
        assert result.confidence is Confidence.LOW

    @pytest.mark.parametrize("seed", range(10))
    def test_spo2_always_in_range(self, seed):
        rng = np.random.default_rng(seed)
        signal = rng.uniform(5.0, 250.0, 300) * rng.uniform(0.01, 1.0)
        result = OxygenationEstimator().estimate(signal)
        assert isinstance(result.spo2, int)
        assert 90 <= result.spo2 <= 100

    def test_deterministic(self):
        signal = _sine(amplitude=0.8)
        ox = OxygenationEstimator()
        assert ox.estimate(signal) == ox.estimate(signal.copy())
