"""Stable, column-aligned frame layout."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping, Sequence

from hwglance_probes import KIND_ORDER, MetricKind, ProbeDescriptor, SensorId

from .logging_setup import get_logger
from .models import UNITS, Frame, FrameCell, FrameRow, Metric, Validity

PLACEHOLDER = "--"
STALE_GLYPH = "??"

_VALUE_FORMATS: dict[MetricKind, str] = {
    MetricKind.TEMPERATURE: "{:.1f}",
    MetricKind.UTILIZATION: "{:.0f}",
    MetricKind.FREQUENCY: "{:.0f}",
}


def format_metric(metric: Metric, placeholder: str = PLACEHOLDER, stale_glyph: str = STALE_GLYPH) -> str:
    if metric.validity is Validity.OK and metric.value is not None:
        return _VALUE_FORMATS[metric.kind].format(metric.value) + metric.unit
    if metric.validity is Validity.STALE_READ_ERROR:
        return stale_glyph
    return placeholder


class FrameBuilder:
    """Lays out one row per active sensor in registry order.

    Column widths only ever grow within a run so the columns do not jitter
    as values change length from tick to tick.
    """

    def __init__(self, placeholder: str = PLACEHOLDER, stale_glyph: str = STALE_GLYPH) -> None:
        self.placeholder = placeholder
        self.stale_glyph = stale_glyph
        self._label_width = 0
        self._widths: dict[MetricKind, int] = {}
        self._tick = 0
        self._previous: list[SensorId] = []
        self.logger = get_logger()

    @property
    def label_width(self) -> int:
        return self._label_width

    @property
    def column_widths(self) -> dict[MetricKind, int]:
        return dict(self._widths)

    def _columns(self, descriptors: Sequence[ProbeDescriptor]) -> tuple[MetricKind, ...]:
        present = set(self._widths)
        for descriptor in descriptors:
            present.update(descriptor.capabilities)
        return tuple(k for k in KIND_ORDER if k in present)

    def build(
        self,
        descriptors: Sequence[ProbeDescriptor],
        metrics: Mapping[SensorId, Mapping[MetricKind, Metric]],
        timestamp: datetime | None = None,
    ) -> Frame:
        ordered = sorted(descriptors, key=lambda d: d.order)
        columns = self._columns(ordered)
        for kind in columns:
            self._widths.setdefault(kind, 0)
        rows: list[FrameRow] = []

        for descriptor in ordered:
            sensor_metrics = metrics.get(descriptor.sensor_id, {})
            cells: list[FrameCell] = []
            for kind in columns:
                if kind not in descriptor.capabilities:
                    cells.append(FrameCell(kind=kind, text="", metric=None))
                    continue
                metric = sensor_metrics.get(kind) or Metric(
                    sensor_id=descriptor.sensor_id,
                    kind=kind,
                    value=None,
                    unit=UNITS[kind],
                    validity=Validity.UNAVAILABLE,
                )
                text = format_metric(metric, self.placeholder, self.stale_glyph)
                self._widths[kind] = max(self._widths.get(kind, 0), len(text))
                cells.append(FrameCell(kind=kind, text=text, metric=metric))
            self._label_width = max(self._label_width, len(descriptor.label))
            rows.append(
                FrameRow(
                    sensor_id=descriptor.sensor_id,
                    label=descriptor.label,
                    category=descriptor.category,
                    cells=tuple(cells),
                )
            )

        current = [row.sensor_id for row in rows]
        still_shown = set(current)
        gone = [sid for sid in self._previous if sid not in still_shown]
        for sensor_id in gone:
            self.logger.info("row removed %s", sensor_id, extra={"event": "row_removed"})
        self._previous = current

        self._tick += 1
        return Frame(
            tick=self._tick,
            timestamp=timestamp or datetime.now(timezone.utc),
            rows=tuple(rows),
            columns=columns,
            label_width=self._label_width,
            column_widths=dict(self._widths),
        )
