"""
PPG samples and the per-session sample buffer.

A :class:`Sample` is one timestamped mean red-channel intensity.  The
:class:`SampleBuffer` collects them for the duration of the sampling
window and is frozen before any analysis runs.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterator, List

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Sample:
    """One reading: monotonic ``timestamp`` (seconds) and ``intensity`` (0 – 255)."""

    timestamp: float
    intensity: float


class BufferFrozen(RuntimeError):
    """Raised when appending to a buffer after :meth:`SampleBuffer.freeze`."""


class SampleBuffer:
    """
    Append-only, capacity-capped store of samples for one session.

    Parameters
    ----------
    max_samples:
        Sample budget for the measurement window.  Samples arriving once
        the budget is spent are dropped, never evicted.

    Appends and reads share one lock so a frame callback can never
    interleave with :meth:`freeze` or :meth:`intensities`.
    """

    def __init__(self, max_samples: int) -> None:
        if max_samples <= 0:
            raise ValueError("max_samples must be positive")
        self.max_samples = max_samples
        self._samples: List[Sample] = []
        self._frozen = False
        self._lock = threading.Lock()
        self._overflow_logged = False

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def append(self, sample: Sample) -> bool:
        """
        Append *sample*; return *False* if it was dropped.

        A sample is dropped when the budget is spent or when its timestamp
        does not advance past the previous one.  Appending to a frozen
        buffer raises :class:`BufferFrozen`.
        """
        with self._lock:
            if self._frozen:
                raise BufferFrozen("Sample buffer is frozen.")
            if self._samples and sample.timestamp <= self._samples[-1].timestamp:
                logger.debug("Dropping sample with non-increasing timestamp %.6f",
                             sample.timestamp)
                return False
            if len(self._samples) >= self.max_samples:
                if not self._overflow_logged:
                    logger.warning("Sample budget of %d reached – dropping further frames.",
                                   self.max_samples)
                    self._overflow_logged = True
                return False
            self._samples.append(sample)
            return True

    def freeze(self) -> None:
        """Stop accepting samples.  Idempotent."""
        with self._lock:
            self._frozen = True

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self._frozen

    def intensities(self) -> np.ndarray:
        """Return the intensity series as a float64 array (a copy)."""
        with self._lock:
            return np.array([s.intensity for s in self._samples], dtype=np.float64)

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        with self._lock:
            snapshot = list(self._samples)
        return iter(snapshot)
