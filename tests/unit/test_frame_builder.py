import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "probes"))
sys.path.insert(0, str(ROOT / "packages" / "core"))

from hwglance_core.frame import FrameBuilder, format_metric
from hwglance_core.models import Metric, Validity
from hwglance_core.normalizer import normalize
from hwglance_probes import MetricKind, PollingCost, ProbeDescriptor, RawSample, RawUnit, SensorId

T = MetricKind.TEMPERATURE
U = MetricKind.UTILIZATION


def _descriptor(category, instance, label, kinds, order):
    return ProbeDescriptor(
        sensor_id=SensorId(category, instance),
        label=label,
        category=category,
        capabilities=frozenset(kinds),
        cost=PollingCost.CHEAP,
        order=order,
        source="test",
    )


PKG = _descriptor("cpu", "package0", "CPU Package id 0", {T}, (0, 0))
LOAD = _descriptor("cpu", "total0", "CPU Total", {U}, (0, 1))
EDGE = _descriptor("gpu", "edge0", "GPU Edge", {T}, (1, 2))


def _temp(descriptor, celsius):
    return {T: normalize(descriptor.sensor_id, T, RawSample(celsius, RawUnit.CELSIUS))}


class FormatTests(unittest.TestCase):
    def test_format(self):
        sid = SensorId("cpu", "package0")
        self.assertEqual(format_metric(Metric(sid, T, 45.0, "°C", Validity.OK)), "45.0°C")
        self.assertEqual(format_metric(Metric(sid, U, 37.4, "%", Validity.OK)), "37%")
        self.assertEqual(format_metric(Metric(sid, MetricKind.FREQUENCY, 3400.0, "MHz", Validity.OK)), "3400MHz")
        self.assertEqual(format_metric(Metric(sid, T, None, "°C", Validity.UNAVAILABLE)), "--")
        self.assertEqual(format_metric(Metric(sid, T, None, "°C", Validity.STALE_READ_ERROR)), "??")


class FrameBuilderTests(unittest.TestCase):
    def test_rows_follow_registry_order(self):
        builder = FrameBuilder()
        frame = builder.build([EDGE, LOAD, PKG], {PKG.sensor_id: _temp(PKG, 50), EDGE.sensor_id: _temp(EDGE, 60)})
        self.assertEqual(frame.sensor_ids(), [PKG.sensor_id, LOAD.sensor_id, EDGE.sensor_id])
        self.assertEqual(frame.columns, (T, U))
        self.assertEqual(frame.tick, 1)

    def test_missing_capability_is_blank_and_missing_metric_is_placeholder(self):
        builder = FrameBuilder()
        frame = builder.build([PKG, LOAD], {PKG.sensor_id: _temp(PKG, 50)})
        pkg_row, load_row = frame.rows
        self.assertEqual(pkg_row.cells[1].text, "")
        self.assertIsNone(pkg_row.cells[1].metric)
        self.assertEqual(load_row.cells[0].text, "")
        self.assertEqual(load_row.cells[1].text, "--")
        self.assertIs(load_row.metric(U).validity, Validity.UNAVAILABLE)

    def test_widths_never_shrink(self):
        builder = FrameBuilder()
        first = builder.build([PKG], {PKG.sensor_id: _temp(PKG, 5)})
        second = builder.build([PKG], {PKG.sensor_id: _temp(PKG, 105.5)})
        third = builder.build([PKG], {PKG.sensor_id: _temp(PKG, 5)})
        self.assertEqual(first.column_widths[T], len("5.0°C"))
        self.assertEqual(second.column_widths[T], len("105.5°C"))
        self.assertEqual(third.column_widths[T], len("105.5°C"))
        self.assertEqual(third.label_width, len("CPU Package id 0"))

    def test_removed_sensor_drops_its_row_but_keeps_columns(self):
        builder = FrameBuilder()
        builder.build([PKG, LOAD, EDGE], {})
        frame = builder.build([PKG, EDGE], {})
        self.assertEqual(len(frame.rows), 2)
        self.assertNotIn(LOAD.sensor_id, frame.sensor_ids())
        self.assertEqual(frame.columns, (T, U))

    def test_custom_glyphs(self):
        builder = FrameBuilder(placeholder="n/a", stale_glyph="!")
        stale = {T: Metric(PKG.sensor_id, T, None, "°C", Validity.STALE_READ_ERROR)}
        frame = builder.build([PKG, EDGE], {PKG.sensor_id: stale})
        self.assertEqual([row.cells[0].text for row in frame.rows], ["!", "n/a"])


if __name__ == "__main__":
    unittest.main()
