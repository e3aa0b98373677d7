"""Core services: sample collection, normalization, frame layout, scheduling and settings."""

from .collector import CollectStats, SampleCollector, TickSamples
from .config import AppConfig, load_config, normalize_config, save_config
from .diagnostics import DiagnosticsExporter, build_doctor_payload, sample_tick_summary
from .frame import PLACEHOLDER, STALE_GLYPH, FrameBuilder, format_metric
from .models import UNITS, Frame, FrameCell, FrameRow, Metric, Validity
from .normalizer import DEFAULT_LIMITS, Limits, normalize, normalize_reading
from .sinks import FrameSink, RenderTargetUnavailable, RenderTargetUnsupported

try:  # Keep import side effects tolerant in minimal test environments.
    from .scheduler import RefreshScheduler, SchedulerState, SchedulerStatus
except Exception:  # pragma: no cover
    RefreshScheduler = None  # type: ignore[assignment]
    SchedulerState = None  # type: ignore[assignment]
    SchedulerStatus = None  # type: ignore[assignment]

__all__ = [
    "AppConfig",
    "CollectStats",
    "DEFAULT_LIMITS",
    "DiagnosticsExporter",
    "Frame",
    "FrameBuilder",
    "FrameCell",
    "FrameRow",
    "FrameSink",
    "Limits",
    "Metric",
    "PLACEHOLDER",
    "RefreshScheduler",
    "RenderTargetUnavailable",
    "RenderTargetUnsupported",
    "STALE_GLYPH",
    "SampleCollector",
    "SchedulerState",
    "SchedulerStatus",
    "TickSamples",
    "UNITS",
    "Validity",
    "build_doctor_payload",
    "format_metric",
    "load_config",
    "normalize",
    "normalize_config",
    "normalize_reading",
    "sample_tick_summary",
    "save_config",
]
