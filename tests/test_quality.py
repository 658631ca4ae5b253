"""
Unit tests for the signal-quality gate.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from pulse_oximeter.config import MeasurementConfig
from pulse_oximeter.errors import FailureReason
from pulse_oximeter.quality import QualityGate


def _pulse(n=300, mean=120.0, amplitude=4.0) -> np.ndarray:
    t = np.arange(n) / 20.0
    return mean + amplitude * np.sin(2 * np.pi * 1.2 * t + 0.3)


class TestQualityGate:

    def test_clean_signal_valid(self):
        report = QualityGate().evaluate(_pulse())
        assert report.valid is True
        assert report.rejection_reason is None
        assert report.count == 300
        assert report.mean == pytest.approx(120.0, abs=1e-6)
        assert report.coefficient_of_variation >= 0.5

    def test_report_statistics(self):
        signal = np.array([100.0, 110.0] * 60)
        report = QualityGate().evaluate(signal)
        assert report.count == 120
        assert report.min == 100.0
        assert report.max == 110.0
        # stddev 5 / mean 105
        assert report.coefficient_of_variation == pytest.approx(5 / 105 * 100)

    @pytest.mark.parametrize("value", [0.0, 128.0, 255.0])
    def test_short_buffer_insufficient_regardless_of_values(self, value):
        report = QualityGate().evaluate(np.full(50, value))
        assert report.valid is False
        assert report.rejection_reason is FailureReason.INSUFFICIENT_SAMPLES

    def test_empty_buffer(self):
        report = QualityGate().evaluate([])
        assert report.count == 0
        assert report.rejection_reason is FailureReason.INSUFFICIENT_SAMPLES

    def test_exactly_min_samples_accepted(self):
        assert QualityGate().evaluate(_pulse(n=100)).valid

    @pytest.mark.parametrize("n", [100, 450, 2000])
    def test_constant_signal_poor_quality(self, n):
        report = QualityGate().evaluate(np.full(n, 128.0))
        assert report.coefficient_of_variation == 0.0
        assert report.rejection_reason is FailureReason.POOR_SIGNAL_QUALITY

    def test_bright_sample_saturates(self):
        signal = _pulse()
        signal[42] = 250.5
        report = QualityGate().evaluate(signal)
        assert report.rejection_reason is FailureReason.SIGNAL_SATURATION

    def test_dark_sample_saturates(self):
        signal = _pulse()
        signal[-1] = 4.9
        report = QualityGate().evaluate(signal)
        assert report.rejection_reason is FailureReason.SIGNAL_SATURATION

    def test_limits_inclusive(self):
        signal = _pulse()
        signal[0] = 250.0
        signal[1] = 5.0
        assert QualityGate().evaluate(signal).valid

    def test_saturation_checked_before_variance(self):
        signal = np.full(300, 255.0)
        assert QualityGate().evaluate(signal).rejection_reason is FailureReason.SIGNAL_SATURATION

    def test_low_variation_rejected(self):
        report = QualityGate().evaluate(_pulse(amplitude=0.5))
        # 0.5 / sqrt(2) / 120 * 100 ≈ 0.29 %
        assert report.rejection_reason is FailureReason.POOR_SIGNAL_QUALITY

    @pytest.mark.parametrize("seed", range(8))
    def test_random_valid_buffers(self, seed):
        rng = np.random.default_rng(seed)
        signal = rng.uniform(20.0, 230.0, int(rng.integers(100, 1000)))
        assert QualityGate().evaluate(signal).valid


class TestSampleBudget:

    def test_budget_follows_window(self):
        assert MeasurementConfig().max_samples == 3600
        assert MeasurementConfig(window_ms=60_000).max_samples == 14_400
        assert MeasurementConfig(window_ms=60_000, max_capture_fps=30).max_samples == 1800

    def test_explicit_budget_kept(self):
        assert MeasurementConfig(max_samples=500).max_samples == 500
        with pytest.raises(ValueError):
            MeasurementConfig(max_samples=50)
