"""
Pulse Oximeter — camera photoplethysmography (PPG) vital-sign estimator.
Place your fingertip over the camera lens; the system samples the red
channel for a fixed window and estimates heart rate and SpO2.

Readings are wellness estimates, not medical-grade oximetry.
"""

from .config import MeasurementConfig
from .errors import (
    CameraAccessDenied,
    CameraError,
    CameraInUse,
    CameraUnavailable,
    FailureReason,
    IlluminationUnsupported,
    PulseOximeterError,
    SessionAlreadyActive,
)
from .session import AcquisitionState, MeasurementController, MeasurementResult, SessionStatus

__version__ = "0.1.0"
__author__ = "pulse_oximeter"
