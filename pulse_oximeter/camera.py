"""
Camera capture device.

Wraps picamera2 to provide OpenCV-compatible BGR frames.  Falls back to
OpenCV VideoCapture (any webcam) when picamera2 is unavailable, which is
handy for development on non-Pi hardware.

Opening walks a list of camera indices, preferred camera first, so a
missing rear camera degrades to whatever camera is present.  Failures
are mapped onto :class:`~pulse_oximeter.errors.CameraAccessDenied`,
:class:`~pulse_oximeter.errors.CameraUnavailable` and
:class:`~pulse_oximeter.errors.CameraInUse`.
"""

from __future__ import annotations

import errno
import logging
from typing import Generator, Sequence, Tuple

import cv2
import numpy as np

from .errors import (
    CameraAccessDenied,
    CameraError,
    CameraInUse,
    CameraUnavailable,
    IlluminationUnsupported,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Try importing picamera2 (only available on Raspberry Pi OS)
# ---------------------------------------------------------------------------
try:
    from picamera2 import Picamera2
    _PICAMERA2_AVAILABLE = True
except ImportError:
    _PICAMERA2_AVAILABLE = False
    logger.info("picamera2 not found – using OpenCV VideoCapture.")


def _classify(exc: BaseException) -> type[CameraError]:
    """Map a backend exception onto the camera error taxonomy."""
    if isinstance(exc, PermissionError):
        return CameraAccessDenied
    if isinstance(exc, OSError) and exc.errno == errno.EBUSY:
        return CameraInUse
    text = str(exc).lower()
    if "permission" in text or "not allowed" in text:
        return CameraAccessDenied
    if "busy" in text or "in use" in text:
        return CameraInUse
    return CameraUnavailable


class CameraDevice:
    """
    Capture device for fingertip PPG.

    Parameters
    ----------
    resolution:
        (width, height) of captured frames.
    fps:
        Target frame rate.  The measurement does not depend on it.
    camera_indices:
        OpenCV camera indices to try in order (fallback backend only).
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (640, 480),
        fps: int = 30,
        camera_indices: Sequence[int] = (0,),
    ) -> None:
        self.resolution = resolution
        self.fps = fps
        self.camera_indices = tuple(camera_indices)

        self._cam: "Picamera2 | cv2.VideoCapture | None" = None
        self._use_picamera2 = _PICAMERA2_AVAILABLE

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._cam is not None

    def open(self) -> None:
        """Initialise and start the camera, or raise a :class:`CameraError`."""
        if self._cam is not None:
            return
        if self._use_picamera2:
            self._open_picamera2()
        else:
            self._open_opencv()
        logger.info(
            "Camera opened – backend=%s resolution=%s fps=%d",
            "picamera2" if self._use_picamera2 else "opencv",
            self.resolution,
            self.fps,
        )

    def close(self) -> None:
        """Stop and release the camera.  Idempotent."""
        if self._cam is None:
            return
        cam, self._cam = self._cam, None
        if self._use_picamera2:
            cam.stop()
            cam.close()
        else:
            cam.release()
        logger.info("Camera closed.")

    def __enter__(self) -> "CameraDevice":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def set_torch(self, enabled: bool) -> None:
        # Neither backend exposes flash/torch control.
        raise IlluminationUnsupported(
            f"{'picamera2' if self._use_picamera2 else 'opencv'} backend has no torch control"
        )

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> np.ndarray | None:
        """
        Capture a single frame.

        Returns
        -------
        numpy.ndarray
            BGR image array (H × W × 3, dtype uint8), or *None* on failure.
        """
        if self._cam is None:
            raise RuntimeError("Camera is not open.  Call open() first.")

        if self._use_picamera2:
            return self._read_picamera2()
        return self._read_opencv()

    def frames(self) -> Generator[np.ndarray, None, None]:
        """
        Yield frames until the camera is closed or keeps failing.

        Usage::

            with CameraDevice() as cam:
                for frame in cam.frames():
                    process(frame)
        """
        _null_streak = 0
        while self._cam is not None:
            frame = self.read_frame()
            if frame is None:
                _null_streak += 1
                if _null_streak >= 10:
                    logger.error(
                        "Camera returned 10 consecutive None frames – aborting."
                    )
                    break
                continue
            _null_streak = 0
            yield frame

    # ------------------------------------------------------------------
    # Private helpers – picamera2
    # ------------------------------------------------------------------

    def _open_picamera2(self) -> None:
        try:
            cam = Picamera2()
        except (RuntimeError, OSError, IndexError) as exc:
            raise _classify(exc)(f"Cannot open picamera2 device: {exc}") from exc

        w, h = self.resolution
        try:
            # RGB888 is the safest 3-channel format across Pi camera models.
            config = cam.create_video_configuration(
                main={"size": (w, h), "format": "RGB888"},
                buffer_count=4,
            )
            cam.configure(config)
            cam.start()
        except (RuntimeError, OSError) as exc:
            cam.close()
            raise _classify(exc)(f"Cannot start picamera2 device: {exc}") from exc
        self._cam = cam

    def _read_picamera2(self) -> np.ndarray | None:
        frame = self._cam.capture_array("main")
        if frame is None:
            logger.warning("capture_array returned None.")
            return None
        # Drop alpha channel if camera returned 4-channel XRGB/RGBA
        if frame.ndim == 3 and frame.shape[2] == 4:
            frame = frame[:, :, :3]
        # picamera2 RGB888 → OpenCV BGR
        return cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)

    # ------------------------------------------------------------------
    # Private helpers – OpenCV fallback
    # ------------------------------------------------------------------

    def _open_opencv(self) -> None:
        error: CameraError = CameraUnavailable("No camera indices configured.")
        for index in self.camera_indices:
            cap = cv2.VideoCapture(index)
            if not cap.isOpened():
                cap.release()
                logger.warning("Camera index %d could not be opened.", index)
                error = CameraUnavailable(f"Cannot open video capture device index={index}")
                continue

            w, h = self.resolution
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            cap.set(cv2.CAP_PROP_FPS, self.fps)

            # A device held by another process opens but refuses to deliver.
            ok, _ = cap.read()
            if not ok:
                cap.release()
                logger.warning("Camera index %d opened but delivered no frame.", index)
                error = CameraInUse(f"Video capture device index={index} is busy")
                continue

            self._cam = cap
            return
        raise error

    def _read_opencv(self) -> np.ndarray | None:
        ok, frame = self._cam.read()
        if not ok:
            logger.warning("VideoCapture.read() returned False.")
            return None
        return frame
