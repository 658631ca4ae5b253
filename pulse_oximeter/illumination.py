"""
Torch (flash) control.

Turning the torch on improves contrast through the fingertip but many
devices cannot do it.  The controller negotiates the capability and
reports one of four states; a failure here is only ever an advisory and
never stops a measurement.
"""

from __future__ import annotations

import logging
from enum import Enum

from .errors import IlluminationUnsupported

logger = logging.getLogger(__name__)


class IlluminationStatus(Enum):
    OFF = "off"
    ON = "on"
    UNSUPPORTED = "unsupported"
    ERROR = "error"


UNSUPPORTED_ADVISORY = (
    "Flashlight unavailable. Continuing without flashlight - ensure good lighting."
)
ERROR_ADVISORY = (
    "Failed to control flashlight. It may not be supported on this device."
)


class IlluminationController:
    """
    Wraps a capture device's ``set_torch(enabled)`` method.

    The device signals a missing capability by lacking ``set_torch`` or by
    raising :class:`~pulse_oximeter.errors.IlluminationUnsupported`.  Any
    other exception is recorded as ``ERROR``.
    """

    def __init__(self, device) -> None:
        self._device = device
        self.status = IlluminationStatus.OFF
        self.advisory: str | None = None

    def request(self, enable: bool = True) -> IlluminationStatus:
        """Try to switch the torch on or off and return the new status."""
        if self.status is IlluminationStatus.UNSUPPORTED:
            return self.status

        set_torch = getattr(self._device, "set_torch", None)
        if set_torch is None:
            return self._unsupported("device has no torch control")

        try:
            set_torch(enable)
        except IlluminationUnsupported as exc:
            return self._unsupported(str(exc))
        except Exception as exc:                         # noqa: BLE001
            logger.warning("Torch toggle failed: %s", exc)
            self.status = IlluminationStatus.ERROR
            self.advisory = ERROR_ADVISORY
            return self.status

        self.status = IlluminationStatus.ON if enable else IlluminationStatus.OFF
        self.advisory = None
        logger.info("Torch %s.", self.status.value)
        return self.status

    def toggle(self) -> IlluminationStatus:
        return self.request(self.status is not IlluminationStatus.ON)

    def reset(self) -> None:
        """Forget the negotiated state, e.g. once the device is released."""
        self.status = IlluminationStatus.OFF
        self.advisory = None

    def _unsupported(self, detail: str) -> IlluminationStatus:
        logger.warning("Torch not supported: %s", detail)
        self.status = IlluminationStatus.UNSUPPORTED
        self.advisory = UNSUPPORTED_ADVISORY
        return self.status
