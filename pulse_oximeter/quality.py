"""
Signal-quality gate.

Runs once on the frozen sample buffer, before either estimator.  Checks,
in order:

1. enough samples were collected,
2. no sample is saturated (finger pressed too lightly / too hard, or no
   finger at all),
3. the signal varies enough to carry a pulse (coefficient of variation).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import FailureReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QualityReport:
    count: int
    mean: float
    coefficient_of_variation: float     # percent
    min: float
    max: float
    valid: bool
    rejection_reason: Optional[FailureReason] = None


class QualityGate:
    """
    Parameters
    ----------
    min_samples:
        Fewer samples than this → ``INSUFFICIENT_SAMPLES``.
    saturation_low, saturation_high:
        Any sample below *low* or above *high* → ``SIGNAL_SATURATION``.
    min_cv_percent:
        Coefficient of variation (stddev / mean × 100) below this →
        ``POOR_SIGNAL_QUALITY``.
    """

    def __init__(
        self,
        min_samples: int = 100,
        saturation_low: float = 5.0,
        saturation_high: float = 250.0,
        min_cv_percent: float = 0.5,
    ) -> None:
        self.min_samples = min_samples
        self.saturation_low = saturation_low
        self.saturation_high = saturation_high
        self.min_cv_percent = min_cv_percent

    def evaluate(self, intensities) -> QualityReport:
        """Return a :class:`QualityReport` for the intensity series."""
        signal = np.asarray(intensities, dtype=np.float64)
        count = int(signal.size)

        if count == 0:
            mean = lo = hi = cv = 0.0
        else:
            mean = float(np.mean(signal))
            lo = float(np.min(signal))
            hi = float(np.max(signal))
            std = float(np.std(signal))
            cv = (std / mean) * 100.0 if mean > 0 else 0.0

        reason = None
        if count < self.min_samples:
            reason = FailureReason.INSUFFICIENT_SAMPLES
        elif hi > self.saturation_high or lo < self.saturation_low:
            reason = FailureReason.SIGNAL_SATURATION
        elif cv < self.min_cv_percent:
            reason = FailureReason.POOR_SIGNAL_QUALITY

        if reason is not None:
            logger.warning(
                "Quality gate rejected buffer: %s (n=%d mean=%.2f cv=%.3f%% min=%.1f max=%.1f)",
                reason.value, count, mean, cv, lo, hi,
            )

        return QualityReport(
            count=count,
            mean=mean,
            coefficient_of_variation=cv,
            min=lo,
            max=hi,
            valid=reason is None,
            rejection_reason=reason,
        )
