"""
Acquisition state machine and host interface.

One :class:`MeasurementController` owns one capture device and runs at
most one :class:`MeasurementSession` on it at a time::

    IDLE → COUNTDOWN (3 s) → SAMPLING (15 s) → VALIDATING → COMPLETE | FAILED

The host pushes frames with :meth:`MeasurementController.feed_frame` at
whatever rate its camera produces them.  Timer boundaries are evaluated
against a monotonic clock whenever the host feeds a frame, polls, or asks
for status; nothing runs in the background.  When frames stop arriving
the host should keep calling :meth:`~MeasurementController.poll` so the
window can close.

All public methods serialise on one lock, so ``cancel_session`` returns
only after frame delivery has stopped and the device has been released.
"""

from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .config import MeasurementConfig
from .errors import CameraError, FailureReason, PulseOximeterError, SessionAlreadyActive
from .finger_detector import FingerDetector
from .illumination import IlluminationController, IlluminationStatus
from .quality import QualityGate, QualityReport
from .samples import SampleBuffer
from .signal_extractor import SignalExtractor
from .signal_processor import Confidence, HeartRateEstimator, OxygenationEstimator

logger = logging.getLogger(__name__)

SessionHandle = str

DISCLAIMER = (
    "This reading is a photoplethysmography (PPG) estimate for educational and "
    "wellness tracking purposes only. It is NOT a medical device and should NOT "
    "be used for diagnosis or treatment decisions."
)

NORMAL_HEART_RATE = (60, 100)
NORMAL_SPO2 = (95, 100)


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

class AcquisitionState(Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    SAMPLING = "sampling"
    VALIDATING = "validating"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AcquisitionState.COMPLETE, AcquisitionState.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (
            AcquisitionState.COUNTDOWN,
            AcquisitionState.SAMPLING,
            AcquisitionState.VALIDATING,
        )


_TRANSITIONS = {
    AcquisitionState.IDLE: {AcquisitionState.COUNTDOWN},
    AcquisitionState.COUNTDOWN: {AcquisitionState.SAMPLING, AcquisitionState.IDLE},
    AcquisitionState.SAMPLING: {AcquisitionState.VALIDATING, AcquisitionState.IDLE},
    AcquisitionState.VALIDATING: {
        AcquisitionState.COMPLETE,
        AcquisitionState.FAILED,
        AcquisitionState.IDLE,
    },
    AcquisitionState.COMPLETE: {AcquisitionState.IDLE},
    AcquisitionState.FAILED: {AcquisitionState.IDLE},
}

_INSTRUCTIONS = {
    AcquisitionState.IDLE: "Place your finger over the back camera and flashlight.",
    AcquisitionState.COUNTDOWN: "Keep your finger still and steady.",
    AcquisitionState.SAMPLING: "Measuring... Keep very still!",
    AcquisitionState.VALIDATING: "Analysing signal...",
    AcquisitionState.COMPLETE: "Measurement complete!",
}


class InvalidTransition(PulseOximeterError):
    pass


def transition(current: AcquisitionState, target: AcquisitionState) -> AcquisitionState:
    """Return *target* if the state machine allows ``current → target``."""
    if target not in _TRANSITIONS[current]:
        raise InvalidTransition(f"{current.name} → {target.name} is not allowed")
    return target


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MeasurementResult:
    heart_rate_bpm: int
    spo2_percent: int
    confidence: Confidence
    perfusion_index: float
    quality: QualityReport
    disclaimer: str = DISCLAIMER

    @property
    def heart_rate_normal(self) -> bool:
        low, high = NORMAL_HEART_RATE
        return low <= self.heart_rate_bpm <= high

    @property
    def spo2_normal(self) -> bool:
        low, high = NORMAL_SPO2
        return low <= self.spo2_percent <= high


@dataclass(frozen=True)
class SessionStatus:
    state: AcquisitionState
    elapsed_ms: int
    progress_percent: float
    illumination_status: IlluminationStatus
    countdown_remaining: int = 0
    instruction: str = _INSTRUCTIONS[AcquisitionState.IDLE]
    advisory: Optional[str] = None
    finger_detected: Optional[bool] = None


@dataclass
class MeasurementSession:
    id: SessionHandle
    start_time: float
    buffer: SampleBuffer
    state: AcquisitionState = AcquisitionState.IDLE
    illumination_status: IlluminationStatus = IlluminationStatus.OFF
    advisory: Optional[str] = None
    sampling_start: Optional[float] = None
    elapsed_ms: int = 0
    finger_detected: Optional[bool] = None
    quality: Optional[QualityReport] = None
    result: Optional[MeasurementResult] = None
    failure: Optional[FailureReason] = None
    notified: bool = field(default=False, repr=False)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class MeasurementController:
    """
    Runs measurement sessions on a single capture device.

    Parameters
    ----------
    device:
        Capture device with ``open()``, ``close()`` and optionally
        ``set_torch(enabled)``.  ``open()`` raises
        :class:`~pulse_oximeter.errors.CameraError` subclasses.
    config:
        Measurement parameters; defaults to :class:`MeasurementConfig`.
    clock:
        Monotonic time source in seconds.
    on_complete, on_failure:
        Optional callbacks ``(handle, result)`` / ``(handle, reason)``,
        fired once per session outside the controller lock.
    """

    def __init__(
        self,
        device,
        config: MeasurementConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        on_complete: Callable[[SessionHandle, MeasurementResult], None] | None = None,
        on_failure: Callable[[SessionHandle, FailureReason], None] | None = None,
    ) -> None:
        self.device = device
        self.config = config or MeasurementConfig()
        self.clock = clock
        self.on_complete = on_complete
        self.on_failure = on_failure

        cfg = self.config
        self.extractor = SignalExtractor(
            roi_size=cfg.roi_size, color_order=cfg.color_order, clock=clock,
        )
        self.finger_detector = (
            FingerDetector(color_order=cfg.color_order)
            if "G" in cfg.color_order.upper() else None
        )
        self.quality_gate = QualityGate(
            min_samples=cfg.min_samples,
            saturation_low=cfg.saturation_low,
            saturation_high=cfg.saturation_high,
            min_cv_percent=cfg.min_cv_percent,
        )
        self.heart_rate = HeartRateEstimator(
            window_seconds=cfg.window_seconds,
            threshold_factor=cfg.threshold_factor,
            refractory_seconds=cfg.refractory_seconds,
            bpm_low=cfg.bpm_low,
            bpm_high=cfg.bpm_high,
        )
        self.oxygenation = OxygenationEstimator(
            spo2_low=cfg.spo2_low,
            spo2_high=cfg.spo2_high,
            min_perfusion_index=cfg.min_perfusion_index,
            low_perfusion_index=cfg.low_perfusion_index,
            fallback_spo2=cfg.fallback_spo2,
            low_confidence_midpoint=cfg.low_confidence_midpoint,
        )
        self.illumination = IlluminationController(device)

        self._session: MeasurementSession | None = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_session(self) -> SessionHandle:
        """
        Acquire the device and begin the countdown.

        Raises :class:`SessionAlreadyActive` while another session is
        running, or a :class:`CameraError` if the device cannot be opened.
        A finished but unacknowledged session is discarded.
        """
        with self._lock:
            current = self._session
            if current is not None and current.state.is_active:
                raise SessionAlreadyActive(
                    f"Session {current.id} is {current.state.value}."
                )
            if current is not None:
                logger.info("Discarding unacknowledged %s session %s.",
                            current.state.value, current.id)
                self._session = None

            try:
                self.device.open()
            except CameraError as exc:
                logger.warning("Camera acquisition failed (%s): %s", exc.reason.value, exc)
                self.device.close()
                raise

            try:
                session = MeasurementSession(
                    id=uuid.uuid4().hex,
                    start_time=self.clock(),
                    buffer=SampleBuffer(self.config.max_samples),
                )
                self.illumination.reset()
                session.illumination_status = self.illumination.request(True)
                session.advisory = self.illumination.advisory
                session.state = transition(session.state, AcquisitionState.COUNTDOWN)
            except BaseException:
                self._release_device()
                raise

            self._session = session
            logger.info("Session %s started (torch=%s).",
                        session.id, session.illumination_status.value)
            return session.id

    def cancel_session(self, handle: SessionHandle) -> None:
        """Stop the session and release the device.  Safe to call repeatedly."""
        with self._lock:
            session = self._lookup(handle)
            if session is None:
                return
            try:
                if not session.state.is_terminal:
                    self._release_device(session)
            finally:
                session.state = transition(session.state, AcquisitionState.IDLE)
                self._session = None
            logger.info("Session %s cancelled.", handle)

    def acknowledge(self, handle: SessionHandle) -> bool:
        """Close a COMPLETE or FAILED session.  Returns *False* otherwise."""
        with self._lock:
            session = self._lookup(handle)
            if session is None or not session.state.is_terminal:
                return False
            session.state = transition(session.state, AcquisitionState.IDLE)
            self._session = None
            return True

    def feed_frame(self, handle: SessionHandle, frame, width: int, height: int) -> None:
        """Push one frame.  Ignored unless *handle* is the current SAMPLING session."""
        with self._lock:
            session = self._lookup(handle)
            if session is None:
                return
            now = self.clock()
            finished = self._advance(session, now)
            if session.state is AcquisitionState.SAMPLING:
                patch = self.extractor.roi_patch(frame, width, height)
                if patch is not None:
                    if self.finger_detector is not None:
                        session.finger_detected = self.finger_detector.is_finger(patch)
                    session.buffer.append(self.extractor.sample(patch, now))
        self._notify(finished)

    def poll(self, handle: SessionHandle) -> AcquisitionState:
        """Advance timers without a frame and return the current state."""
        with self._lock:
            session = self._lookup(handle)
            if session is None:
                return AcquisitionState.IDLE
            finished = self._advance(session, self.clock())
            state = session.state
        self._notify(finished)
        return state

    def get_status(self, handle: SessionHandle) -> SessionStatus:
        with self._lock:
            session = self._lookup(handle)
            if session is None:
                return SessionStatus(
                    state=AcquisitionState.IDLE,
                    elapsed_ms=0,
                    progress_percent=0.0,
                    illumination_status=IlluminationStatus.OFF,
                )
            now = self.clock()
            finished = self._advance(session, now)
            status = self._status(session, now)
        self._notify(finished)
        return status

    def get_result(self, handle: SessionHandle) -> MeasurementResult | None:
        with self._lock:
            session = self._lookup(handle)
            return session.result if session is not None else None

    def get_failure(self, handle: SessionHandle) -> FailureReason | None:
        with self._lock:
            session = self._lookup(handle)
            return session.failure if session is not None else None

    def toggle_illumination(
        self, handle: SessionHandle, enable: bool | None = None,
    ) -> IlluminationStatus:
        """Manually switch the torch during COUNTDOWN or SAMPLING."""
        with self._lock:
            session = self._lookup(handle)
            if session is None:
                return IlluminationStatus.OFF
            if session.state in (AcquisitionState.COUNTDOWN, AcquisitionState.SAMPLING):
                if enable is None:
                    status = self.illumination.toggle()
                else:
                    status = self.illumination.request(enable)
                session.illumination_status = status
                session.advisory = self.illumination.advisory
            return session.illumination_status

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _lookup(self, handle: SessionHandle) -> MeasurementSession | None:
        session = self._session
        if session is None or session.id != handle:
            return None
        return session

    def _advance(self, session: MeasurementSession, now: float) -> MeasurementSession | None:
        """Apply due timer transitions; return *session* if it just finished."""
        cfg = self.config
        if session.state is AcquisitionState.COUNTDOWN:
            if now - session.start_time >= cfg.countdown_seconds:
                session.sampling_start = session.start_time + cfg.countdown_seconds
                session.state = transition(session.state, AcquisitionState.SAMPLING)
                logger.info("Session %s sampling.", session.id)

        if session.state is AcquisitionState.SAMPLING:
            if now - session.sampling_start >= cfg.window_seconds:
                self._close_window(session)
                return session
        return None

    def _close_window(self, session: MeasurementSession) -> None:
        session.buffer.freeze()
        session.elapsed_ms = self.config.window_ms
        session.state = transition(session.state, AcquisitionState.VALIDATING)
        try:
            self._release_device(session)
        except Exception as exc:                         # noqa: BLE001
            # The buffer is already frozen; a release problem must not cost
            # the host its result or callback.
            logger.warning("Session %s: releasing capture device failed: %s",
                           session.id, exc)
        self._evaluate(session)

    def _evaluate(self, session: MeasurementSession) -> None:
        cfg = self.config
        intensities = session.buffer.intensities()
        report = self.quality_gate.evaluate(intensities)
        session.quality = report
        if not report.valid:
            self._fail(session, report.rejection_reason)
            return

        heart = self.heart_rate.estimate(intensities)
        if cfg.reject_implausible and not cfg.bpm_low <= heart.raw_bpm <= cfg.bpm_high:
            logger.warning("Implausible heart rate %d BPM (%d peaks).",
                           heart.raw_bpm, heart.peak_count)
            self._fail(session, FailureReason.IMPLAUSIBLE_READING)
            return

        oxygen = self.oxygenation.estimate(intensities)
        session.result = MeasurementResult(
            heart_rate_bpm=heart.bpm,
            spo2_percent=oxygen.spo2,
            confidence=oxygen.confidence,
            perfusion_index=oxygen.perfusion_index,
            quality=report,
        )
        session.state = transition(session.state, AcquisitionState.COMPLETE)
        logger.info("Session %s complete: HR=%d BPM SpO2=%d%% (%s confidence, n=%d).",
                    session.id, heart.bpm, oxygen.spo2, oxygen.confidence.value,
                    report.count)

    def _fail(self, session: MeasurementSession, reason: FailureReason) -> None:
        session.failure = reason
        session.state = transition(session.state, AcquisitionState.FAILED)
        logger.info("Session %s failed: %s", session.id, reason.value)

    def _release_device(self, session: MeasurementSession | None = None) -> None:
        try:
            if self.illumination.status is IlluminationStatus.ON:
                self.illumination.request(False)
        finally:
            self.device.close()
            if session is not None and session.illumination_status is IlluminationStatus.ON:
                session.illumination_status = IlluminationStatus.OFF

    def _status(self, session: MeasurementSession, now: float) -> SessionStatus:
        cfg = self.config
        countdown_remaining = 0
        if session.state is AcquisitionState.COUNTDOWN:
            elapsed_ms = 0
            remaining = cfg.countdown_seconds - (now - session.start_time)
            countdown_remaining = max(0, math.ceil(remaining))
        elif session.state is AcquisitionState.SAMPLING:
            elapsed_ms = int((now - session.sampling_start) * 1000)
        else:
            elapsed_ms = session.elapsed_ms
        progress = min(elapsed_ms / cfg.window_ms * 100.0, 100.0)

        if session.state is AcquisitionState.FAILED:
            instruction = session.failure.instruction
        else:
            instruction = _INSTRUCTIONS[session.state]

        return SessionStatus(
            state=session.state,
            elapsed_ms=elapsed_ms,
            progress_percent=progress,
            illumination_status=session.illumination_status,
            countdown_remaining=countdown_remaining,
            instruction=instruction,
            advisory=session.advisory,
            finger_detected=session.finger_detected,
        )

    def _notify(self, session: MeasurementSession | None) -> None:
        if session is None or session.notified:
            return
        session.notified = True
        if session.result is not None and self.on_complete is not None:
            self.on_complete(session.id, session.result)
        elif session.failure is not None and self.on_failure is not None:
            self.on_failure(session.id, session.failure)
