"""Hardware sensor probes, probe sources and the probe registry."""

from .base import Probe, ProbeSource, RawReading, ReadOutcome
from .errors import DiscoveryFailure, ProbeError, ProbeErrorKind
from .models import KIND_ORDER, MetricKind, PollingCost, ProbeDescriptor, RawSample, RawUnit, SensorId
from .registry import ProbeRegistry, SourceStatus
from .taxonomy import CATEGORY_ORDER, CATEGORY_TITLES

try:  # pragma: no cover - psutil is optional at import time for minimal test environments
    from .sources import FallbackSource, default_sources
except Exception:  # pragma: no cover
    FallbackSource = None  # type: ignore[assignment]
    default_sources = None  # type: ignore[assignment]

__all__ = [
    "CATEGORY_ORDER",
    "CATEGORY_TITLES",
    "DiscoveryFailure",
    "KIND_ORDER",
    "MetricKind",
    "PollingCost",
    "Probe",
    "ProbeDescriptor",
    "ProbeError",
    "ProbeErrorKind",
    "ProbeRegistry",
    "ProbeSource",
    "RawReading",
    "RawSample",
    "RawUnit",
    "ReadOutcome",
    "SensorId",
    "SourceStatus",
]

if default_sources is not None:
    __all__.extend(["FallbackSource", "default_sources"])
