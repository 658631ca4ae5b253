"""
Frame → sample conversion.

Blood absorbs red light, so the mean red intensity of a fingertip pressed
against the lens rises and falls with each pulse.  The extractor averages
the red channel over a square region of interest in the frame centre.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple

import numpy as np

from .samples import Sample

logger = logging.getLogger(__name__)


class SignalExtractor:
    """
    Turn raw frames into :class:`~pulse_oximeter.samples.Sample` objects.

    Parameters
    ----------
    roi_size:
        Side length, in pixels, of the square sampled from the frame centre.
        Clipped to the frame when the frame is smaller.
    color_order:
        Channel order of incoming frames, e.g. ``"BGR"`` for OpenCV or
        ``"RGBA"`` for browser-canvas pixel buffers.
    clock:
        Monotonic time source, in seconds.
    """

    def __init__(
        self,
        roi_size: int = 50,
        color_order: str = "BGR",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.roi_size = roi_size
        self.color_order = color_order.upper()
        self.red_index = self.color_order.index("R")
        self.clock = clock

    def extract(
        self,
        frame: Optional[np.ndarray],
        width: int,
        height: int,
        timestamp: float | None = None,
    ) -> Sample | None:
        """
        Return a sample for *frame*, or *None* if the frame is not usable.

        *frame* may be an ``H × W × C`` array or a flat pixel buffer of
        ``width * height * C`` values.  Frames that are missing, empty or
        whose size does not match the stated dimensions are treated as not
        yet decoded and dropped.
        """
        patch = self.roi_patch(frame, width, height)
        if patch is None:
            return None
        return self.sample(patch, timestamp)

    def roi_patch(self, frame, width: int, height: int) -> np.ndarray | None:
        """Return the ``h × w × C`` region of interest, or *None* if undecoded."""
        pixels = self._as_image(frame, width, height)
        if pixels is None:
            logger.debug("Dropping undecoded frame (%sx%s).", width, height)
            return None
        x, y, w, h = self.roi_for(width, height)
        return pixels[y:y + h, x:x + w]

    def sample(self, patch: np.ndarray, timestamp: float | None = None) -> Sample:
        """Average the red channel of an ROI *patch*."""
        intensity = float(np.mean(patch[:, :, self.red_index], dtype=np.float64))
        ts = self.clock() if timestamp is None else timestamp
        return Sample(timestamp=ts, intensity=intensity)

    def roi_for(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """Return ``(x, y, w, h)`` of the centred region of interest."""
        side = min(self.roi_size, width, height)
        cx, cy = width // 2, height // 2
        return cx - side // 2, cy - side // 2, side, side

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _as_image(self, frame, width: int, height: int) -> np.ndarray | None:
        if frame is None or width <= 0 or height <= 0:
            return None
        pixels = np.asarray(frame)
        if pixels.size == 0:
            return None
        channels = len(self.color_order)

        if pixels.ndim == 1:
            if pixels.size != width * height * channels:
                return None
            return pixels.reshape(height, width, channels)

        if pixels.ndim != 3 or pixels.shape[0] != height or pixels.shape[1] != width:
            return None
        if pixels.shape[2] <= self.red_index:
            return None
        return pixels
