"""Raw probe readings to uniform metrics."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping

from hwglance_probes import KIND_ORDER, MetricKind, ProbeDescriptor, ProbeError, ProbeErrorKind, RawSample, RawUnit, SensorId

from .models import UNITS, Metric, Validity

# (kind, raw unit) -> divisor onto the display unit. Dividing by an exact
# power of ten keeps 450 dC at 45.0 rather than 45.00000000000001.
_DIVISOR: dict[tuple[MetricKind, RawUnit], float] = {
    (MetricKind.TEMPERATURE, RawUnit.MILLI_CELSIUS): 1000.0,
    (MetricKind.TEMPERATURE, RawUnit.DECI_CELSIUS): 10.0,
    (MetricKind.TEMPERATURE, RawUnit.CELSIUS): 1.0,
    (MetricKind.UTILIZATION, RawUnit.PERCENT): 1.0,
    (MetricKind.FREQUENCY, RawUnit.HZ): 1_000_000.0,
    (MetricKind.FREQUENCY, RawUnit.KHZ): 1000.0,
    (MetricKind.FREQUENCY, RawUnit.MHZ): 1.0,
}


@dataclass(frozen=True)
class Limits:
    """Plausible physical range per kind; readings outside become Unavailable."""

    temperature_min_c: float = 0.0
    temperature_max_c: float = 150.0
    utilization_min_pct: float = 0.0
    utilization_max_pct: float = 100.0
    frequency_min_mhz: float = 1.0
    frequency_max_mhz: float = 10_000.0

    def bounds(self, kind: MetricKind) -> tuple[float, float]:
        if kind is MetricKind.TEMPERATURE:
            return self.temperature_min_c, self.temperature_max_c
        if kind is MetricKind.UTILIZATION:
            return self.utilization_min_pct, self.utilization_max_pct
        return self.frequency_min_mhz, self.frequency_max_mhz


DEFAULT_LIMITS = Limits()


def scale(kind: MetricKind, raw: RawSample) -> float:
    value = float(raw.value)
    if kind is MetricKind.UTILIZATION and raw.unit is RawUnit.FRACTION:
        return value * 100.0
    divisor = _DIVISOR.get((kind, raw.unit))
    if divisor is None:
        raise ProbeError(ProbeErrorKind.MALFORMED_READING, f"{raw.unit.value} is not a {kind.value} unit")
    return value / divisor


def _unavailable(sensor_id: SensorId, kind: MetricKind, error: ProbeErrorKind | None = None) -> Metric:
    return Metric(sensor_id=sensor_id, kind=kind, value=None, unit=UNITS[kind], validity=Validity.UNAVAILABLE, error=error)


def _stale(sensor_id: SensorId, kind: MetricKind) -> Metric:
    return Metric(sensor_id=sensor_id, kind=kind, value=None, unit=UNITS[kind], validity=Validity.STALE_READ_ERROR, error=ProbeErrorKind.MALFORMED_READING)


def normalize(
    sensor_id: SensorId,
    kind: MetricKind,
    outcome: RawSample | ProbeError | None,
    limits: Limits = DEFAULT_LIMITS,
) -> Metric:
    """Turn one raw outcome into a metric. Pure: same input, same metric."""
    if outcome is None:
        return _unavailable(sensor_id, kind)
    if isinstance(outcome, ProbeError):
        if outcome.kind is ProbeErrorKind.MALFORMED_READING:
            return _stale(sensor_id, kind)
        return _unavailable(sensor_id, kind, outcome.kind)

    try:
        value = scale(kind, outcome)
    except ProbeError:
        return _stale(sensor_id, kind)
    if not math.isfinite(value):
        return _stale(sensor_id, kind)

    low, high = limits.bounds(kind)
    if value < low or value > high:
        return _unavailable(sensor_id, kind)
    return Metric(sensor_id=sensor_id, kind=kind, value=value, unit=UNITS[kind], validity=Validity.OK)


def normalize_reading(
    descriptor: ProbeDescriptor,
    outcome: Mapping[MetricKind, RawSample | ProbeError] | ProbeError | None,
    limits: Limits = DEFAULT_LIMITS,
) -> dict[MetricKind, Metric]:
    """Normalize every capability of one probe; a whole-probe error applies to all of them."""
    out: dict[MetricKind, Metric] = {}
    for kind in KIND_ORDER:
        if kind not in descriptor.capabilities:
            continue
        if outcome is None or isinstance(outcome, ProbeError):
            out[kind] = normalize(descriptor.sensor_id, kind, outcome, limits)
        else:
            out[kind] = normalize(descriptor.sensor_id, kind, outcome.get(kind), limits)
    return out
