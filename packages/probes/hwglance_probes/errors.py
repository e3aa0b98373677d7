"""Probe and discovery error types."""

from __future__ import annotations

import errno
from enum import Enum


class ProbeErrorKind(str, Enum):
    PERMISSION_DENIED = "PermissionDenied"
    DEVICE_REMOVED = "DeviceRemoved"
    TIMEOUT = "Timeout"
    MALFORMED_READING = "MalformedReading"


class ProbeError(Exception):
    def __init__(self, kind: ProbeErrorKind, message: str = "") -> None:
        super().__init__(f"{kind.value}: {message}" if message else kind.value)
        self.kind = kind
        self.message = message

    @property
    def transient(self) -> bool:
        return self.kind is not ProbeErrorKind.DEVICE_REMOVED

    @classmethod
    def from_os_error(cls, exc: OSError) -> "ProbeError":
        """Map a failed sysfs read onto the probe error taxonomy."""
        if isinstance(exc, PermissionError):
            return cls(ProbeErrorKind.PERMISSION_DENIED, str(exc))
        # The device node went away under us.
        if isinstance(exc, FileNotFoundError) or exc.errno in (errno.ENODEV, errno.ENXIO):
            return cls(ProbeErrorKind.DEVICE_REMOVED, str(exc))
        if isinstance(exc, TimeoutError) or exc.errno == errno.ETIMEDOUT:
            return cls(ProbeErrorKind.TIMEOUT, str(exc))
        return cls(ProbeErrorKind.MALFORMED_READING, str(exc))


class DiscoveryFailure(RuntimeError):
    """No telemetry source produced a single probe."""
