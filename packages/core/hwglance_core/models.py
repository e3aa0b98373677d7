"""Typed metric and frame models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from hwglance_probes import MetricKind, ProbeErrorKind, SensorId


class Validity(str, Enum):
    OK = "Ok"
    UNAVAILABLE = "Unavailable"
    STALE_READ_ERROR = "StaleReadError"


UNITS: dict[MetricKind, str] = {
    MetricKind.TEMPERATURE: "°C",
    MetricKind.UTILIZATION: "%",
    MetricKind.FREQUENCY: "MHz",
}


@dataclass(frozen=True)
class Metric:
    sensor_id: SensorId
    kind: MetricKind
    value: float | None
    unit: str
    validity: Validity
    error: ProbeErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.validity is Validity.OK


@dataclass(frozen=True)
class FrameCell:
    kind: MetricKind
    text: str
    metric: Metric | None


@dataclass(frozen=True)
class FrameRow:
    sensor_id: SensorId
    label: str
    category: str
    cells: tuple[FrameCell, ...]

    def metric(self, kind: MetricKind) -> Metric | None:
        for cell in self.cells:
            if cell.kind is kind:
                return cell.metric
        return None


@dataclass(frozen=True)
class Frame:
    tick: int
    timestamp: datetime
    rows: tuple[FrameRow, ...]
    columns: tuple[MetricKind, ...]
    label_width: int
    column_widths: dict[MetricKind, int] = field(default_factory=dict)

    def sensor_ids(self) -> list[SensorId]:
        return [row.sensor_id for row in self.rows]
