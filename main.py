#!/usr/bin/env python3
"""
Pulse Oximeter – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --resolution WxH         Camera resolution (default: 640x480)
    --fps INT                Target frame rate  (default: 30)
    --camera-index INT ...   OpenCV camera indices to try, in order (default: 0)
    --window FLOAT           Sampling window in seconds (default: 15)
    --countdown FLOAT        Countdown before sampling in seconds (default: 3)
    --roi INT                Side of the sampled centre square in px (default: 50)
    --reject-implausible     Fail instead of clamping an out-of-range heart rate
    --log-level LEVEL        Logging level (default: INFO)

Press Ctrl-C to cancel a running measurement.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time

from pulse_oximeter.camera import CameraDevice
from pulse_oximeter.config import MeasurementConfig
from pulse_oximeter.errors import CameraError, SessionAlreadyActive
from pulse_oximeter.session import MeasurementController

logger = logging.getLogger("pulse_oximeter")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fingertip PPG heart-rate / SpO2 estimate via camera",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--resolution", default="640x480",
                        help="Camera resolution, e.g. 640x480")
    parser.add_argument("--fps", type=int, default=30,
                        help="Target capture frame rate")
    parser.add_argument("--camera-index", type=int, nargs="+", default=[0],
                        help="OpenCV VideoCapture indices to try, in order")
    parser.add_argument("--window", type=float, default=15.0,
                        help="Sampling window in seconds")
    parser.add_argument("--countdown", type=float, default=3.0,
                        help="Countdown before sampling in seconds")
    parser.add_argument("--roi", type=int, default=50,
                        help="Side of the sampled centre square in pixels")
    parser.add_argument("--reject-implausible", action="store_true",
                        help="Report an implausible reading instead of clamping BPM")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Measurement
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 640x480.")
        return 1

    try:
        config = MeasurementConfig(
            countdown_seconds=args.countdown,
            window_ms=int(args.window * 1000),
            roi_size=args.roi,
            reject_implausible=args.reject_implausible,
        )
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    camera = CameraDevice(
        resolution=(res_w, res_h),
        fps=args.fps,
        camera_indices=args.camera_index,
    )
    controller = MeasurementController(camera, config=config)

    try:
        handle = controller.start_session()
    except (CameraError, SessionAlreadyActive) as exc:
        logger.error("%s", exc)
        if isinstance(exc, CameraError):
            print(exc.reason.instruction)
        return 1

    status = controller.get_status(handle)
    if status.advisory:
        print(status.advisory)

    last_log = 0.0
    try:
        while not status.state.is_terminal:
            frame = camera.read_frame() if camera.is_open else None
            if frame is not None:
                h, w = frame.shape[:2]
                controller.feed_frame(handle, frame, w, h)
            else:
                time.sleep(0.01)
            status = controller.get_status(handle)

            now = time.monotonic()
            if now - last_log >= 1.0:
                last_log = now
                if status.countdown_remaining:
                    print(f"Starting in {status.countdown_remaining}…  {status.instruction}")
                else:
                    finger = {True: "yes", False: "no", None: "?"}[status.finger_detected]
                    print(f"[{status.progress_percent:5.1f}%] {status.instruction}  finger={finger}")
    except KeyboardInterrupt:
        controller.cancel_session(handle)
        logger.info("Interrupted.")
        return 130

    try:
        result = controller.get_result(handle)
        if result is None:
            print(controller.get_failure(handle).instruction)
            return 2

        print(f"Heart rate: {result.heart_rate_bpm} BPM "
              f"({'normal' if result.heart_rate_normal else 'outside'} 60-100)")
        print(f"SpO2:       {result.spo2_percent}% "
              f"({'normal' if result.spo2_normal else 'outside'} 95-100, "
              f"{result.confidence.value} confidence)")
        print(f"Perfusion index: {result.perfusion_index:.2f}%")
        print(result.disclaimer)
        return 0
    finally:
        controller.acknowledge(handle)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
