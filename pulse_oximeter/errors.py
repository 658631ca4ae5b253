"""
Exceptions and terminal failure reasons.

Acquisition-time problems are raised as exceptions from
``start_session``.  Signal-quality problems are only known once the
sampling window has closed, so they are reported as a
:class:`FailureReason` on the session instead.
"""

from __future__ import annotations

from enum import Enum


class FailureReason(Enum):
    """Why a measurement session ended in ``FAILED``."""

    CAMERA_ACCESS_DENIED = "camera_access_denied"
    CAMERA_UNAVAILABLE = "camera_unavailable"
    CAMERA_IN_USE = "camera_in_use"
    INSUFFICIENT_SAMPLES = "insufficient_samples"
    SIGNAL_SATURATION = "signal_saturation"
    POOR_SIGNAL_QUALITY = "poor_signal_quality"
    IMPLAUSIBLE_READING = "implausible_reading"

    @property
    def instruction(self) -> str:
        """User-facing hint for this failure."""
        return _INSTRUCTIONS[self]


_INSTRUCTIONS = {
    FailureReason.CAMERA_ACCESS_DENIED:
        "Camera permission denied. Please allow camera access and try again.",
    FailureReason.CAMERA_UNAVAILABLE:
        "No camera found. Please ensure your device has a camera and try again.",
    FailureReason.CAMERA_IN_USE:
        "Camera is in use by another app. Close other apps using the camera and try again.",
    FailureReason.INSUFFICIENT_SAMPLES:
        "Measurement failed. Not enough data collected. Please try again.",
    FailureReason.SIGNAL_SATURATION:
        "Signal quality issue. Adjust finger pressure - not too light, not too heavy.",
    FailureReason.POOR_SIGNAL_QUALITY:
        "Poor signal detected. Please ensure your finger fully covers the camera lens and try again.",
    FailureReason.IMPLAUSIBLE_READING:
        "Unusual reading detected. Please ensure stable finger placement and try again.",
}


class PulseOximeterError(Exception):
    """Base class for every error raised by this package."""


class SessionAlreadyActive(PulseOximeterError):
    """A measurement is already running on this capture device."""


class CameraError(PulseOximeterError):
    """The capture device could not be acquired."""

    reason: FailureReason = FailureReason.CAMERA_UNAVAILABLE


class CameraAccessDenied(CameraError):
    reason = FailureReason.CAMERA_ACCESS_DENIED


class CameraUnavailable(CameraError):
    reason = FailureReason.CAMERA_UNAVAILABLE


class CameraInUse(CameraError):
    reason = FailureReason.CAMERA_IN_USE


class IlluminationUnsupported(PulseOximeterError):
    """The capture device has no controllable torch."""
