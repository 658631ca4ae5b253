"""
Unit tests for Sample and SampleBuffer.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from pulse_oximeter.samples import BufferFrozen, Sample, SampleBuffer


class TestSampleBuffer:

    def test_append_in_order(self):
        buf = SampleBuffer(max_samples=10)
        assert buf.append(Sample(0.0, 100.0))
        assert buf.append(Sample(0.05, 101.0))
        assert len(buf) == 2
        np.testing.assert_array_equal(buf.intensities(), [100.0, 101.0])

    def test_non_increasing_timestamp_dropped(self):
        buf = SampleBuffer(max_samples=10)
        buf.append(Sample(1.0, 100.0))
        assert buf.append(Sample(1.0, 120.0)) is False
        assert buf.append(Sample(0.5, 120.0)) is False
        assert len(buf) == 1

    def test_capacity_cap(self):
        buf = SampleBuffer(max_samples=3)
        for i in range(5):
            buf.append(Sample(float(i), 100.0 + i))
        assert len(buf) == 3
        # oldest samples are kept, not evicted
        np.testing.assert_array_equal(buf.intensities(), [100.0, 101.0, 102.0])

    def test_frozen_rejects_append(self):
        buf = SampleBuffer(max_samples=3)
        buf.append(Sample(0.0, 100.0))
        buf.freeze()
        assert buf.frozen
        with pytest.raises(BufferFrozen):
            buf.append(Sample(1.0, 100.0))
        assert len(buf) == 1

    def test_intensities_is_a_copy(self):
        buf = SampleBuffer(max_samples=3)
        buf.append(Sample(0.0, 100.0))
        arr = buf.intensities()
        arr[0] = 0.0
        assert buf.intensities()[0] == 100.0

    def test_iteration(self):
        buf = SampleBuffer(max_samples=3)
        buf.append(Sample(0.0, 100.0))
        buf.append(Sample(1.0, 110.0))
        assert [s.timestamp for s in buf] == [0.0, 1.0]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            SampleBuffer(max_samples=0)

    def test_sample_immutable(self):
        s = Sample(0.0, 100.0)
        with pytest.raises(AttributeError):
            s.intensity = 5.0
