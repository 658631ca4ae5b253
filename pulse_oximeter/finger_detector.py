"""
Finger-on-lens detector.

When a fingertip covers the camera, the region of interest becomes:
  - Dominated by red tones (light passing through blood-perfused tissue).
  - Low in spatial variance (uniform colour, no edges).

The result is only an advisory shown to the user; sampling continues
either way and the quality gate has the final word.
"""

from __future__ import annotations

import numpy as np


class FingerDetector:
    """
    Heuristic check: is the lens covered by a finger?

    Parameters
    ----------
    variance_threshold:
        Maximum allowed *spatial variance* of the red channel.  A covered
        lens yields a nearly uniform field.  Default: 800.
    red_dominance:
        Minimum ratio ``mean_red / mean_green`` required to confirm skin
        tone.  Default: 1.05.
    color_order:
        Channel order of the patch, e.g. ``"BGR"`` or ``"RGBA"``.
    """

    def __init__(
        self,
        variance_threshold: float = 800.0,
        red_dominance: float = 1.05,
        color_order: str = "BGR",
    ) -> None:
        self.variance_threshold = variance_threshold
        self.red_dominance = red_dominance
        order = color_order.upper()
        self._r = order.index("R")
        self._g = order.index("G")

    def is_finger(self, patch: np.ndarray) -> bool:
        """Return *True* if the ``H × W × C`` *patch* looks like a covered lens."""
        r_ch = patch[:, :, self._r].astype(np.float64)
        g_ch = patch[:, :, self._g].astype(np.float64)

        red_ratio = float(r_ch.mean()) / (float(g_ch.mean()) + 1e-6)
        uniform_enough = float(r_ch.var()) < self.variance_threshold
        skin_tone = red_ratio >= self.red_dominance

        return uniform_enough and skin_tone
