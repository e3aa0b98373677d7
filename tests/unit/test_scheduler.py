import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "probes"))
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from hwglance_core import FrameBuilder, RenderTargetUnavailable, SampleCollector, Validity
from hwglance_core.scheduler import RefreshScheduler, SchedulerState
from hwglance_probes import MetricKind, ProbeRegistry, SensorId
from probe_fakes import FakeProbe, FakeSource, RecordingSink, cpu_probes


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class SlowCollector(SampleCollector):
    def __init__(self, registry, clock, cost_s):
        super().__init__(registry, timeout_ms=200)
        self.clock = clock
        self.cost_s = cost_s

    def collect(self):
        self.clock.now += self.cost_s
        return super().collect()


class StoppingCollector(SampleCollector):
    def __init__(self, registry):
        super().__init__(registry, timeout_ms=200)
        self.scheduler = None

    def collect(self):
        samples = super().collect()
        self.scheduler.stop()
        return samples


class SchedulerTests(unittest.TestCase):
    def _registry(self, probes=None):
        source = FakeSource("hwmon", cpu_probes() if probes is None else probes)
        registry = ProbeRegistry([source])
        registry.discover()
        return source, registry

    def test_runs_fixed_number_of_ticks(self):
        _, registry = self._registry()
        sink = RecordingSink()
        scheduler = RefreshScheduler(
            registry,
            SampleCollector(registry, timeout_ms=200),
            FrameBuilder(),
            sinks=[sink],
            interval_ms=10,
        )
        status = scheduler.run(max_ticks=3)

        self.assertEqual(status.ticks, 3)
        self.assertEqual(status.rendered, 3)
        self.assertIs(status.state, SchedulerState.STOPPED)
        self.assertTrue(sink.closed)
        self.assertEqual([f.tick for f in sink.frames], [1, 2, 3])
        for frame in sink.frames:
            self.assertEqual(len(frame.rows), len(registry))
            self.assertEqual(frame.rows[0].metric(MetricKind.TEMPERATURE).value, 55.0)
        self.assertEqual(scheduler.recent_events()[-1]["event"], "stopped")

    def test_failing_probe_only_blanks_its_own_cell(self):
        probes = cpu_probes()
        probes[0].error = PermissionError("denied")
        _, registry = self._registry(probes)
        sink = RecordingSink()
        scheduler = RefreshScheduler(registry, SampleCollector(registry), FrameBuilder(), sinks=[sink], interval_ms=10)
        scheduler.run(max_ticks=1)

        frame = sink.frames[0]
        validity = {row.sensor_id: row.metric(MetricKind.TEMPERATURE).validity for row in frame.rows}
        self.assertIs(validity[SensorId("cpu", "core1")], Validity.UNAVAILABLE)
        self.assertIs(validity[SensorId("cpu", "core0")], Validity.OK)
        self.assertIs(validity[SensorId("cpu", "package0")], Validity.OK)

    def test_overrun_skips_missed_slots(self):
        _, registry = self._registry()
        clock = FakeClock()
        scheduler = RefreshScheduler(
            registry,
            SlowCollector(registry, clock, cost_s=0.25),
            FrameBuilder(),
            sinks=[RecordingSink()],
            interval_ms=100,
            clock=clock,
        )
        status = scheduler.run(max_ticks=2)
        self.assertEqual(status.ticks, 2)
        self.assertEqual(status.skipped_ticks, 2)
        overruns = [e for e in scheduler.recent_events() if e["event"] == "tick_overrun"]
        self.assertEqual(len(overruns), 1)
        self.assertEqual(overruns[0]["skipped"], 2)

    def test_stop_during_poll_abandons_the_tick(self):
        _, registry = self._registry()
        sink = RecordingSink()
        collector = StoppingCollector(registry)
        scheduler = RefreshScheduler(registry, collector, FrameBuilder(), sinks=[sink], interval_ms=10)
        collector.scheduler = scheduler
        status = scheduler.run()

        self.assertEqual(sink.frames, [])
        self.assertEqual(status.abandoned_ticks, 1)
        self.assertIs(status.state, SchedulerState.STOPPED)
        self.assertTrue(sink.closed)

    def test_render_target_unavailable_stops_the_loop(self):
        _, registry = self._registry()

        def _fail(_frame):
            raise RenderTargetUnavailable("stdout closed")

        broken = RecordingSink(on_emit=_fail)
        scheduler = RefreshScheduler(registry, SampleCollector(registry), FrameBuilder(), sinks=[broken], interval_ms=10)
        with self.assertRaises(RenderTargetUnavailable):
            scheduler.run(max_ticks=5)
        self.assertIs(scheduler.status.state, SchedulerState.STOPPED)
        self.assertEqual(scheduler.status.last_error, "stdout closed")
        self.assertTrue(broken.closed)

    def test_broken_extra_sink_does_not_stop_display(self):
        _, registry = self._registry()

        def _fail(_frame):
            raise ValueError("exporter down")

        good = RecordingSink()
        scheduler = RefreshScheduler(
            registry,
            SampleCollector(registry),
            FrameBuilder(),
            sinks=[RecordingSink(on_emit=_fail), good],
            interval_ms=10,
        )
        scheduler.run(max_ticks=2)
        self.assertEqual(len(good.frames), 2)

    def test_removed_device_disappears_from_next_frame(self):
        probes = cpu_probes()
        _, registry = self._registry(probes)
        core0 = [p for p in probes if p.key == "cpu:core0"][0]

        def _unplug(frame):
            if frame.tick == 1:
                core0.error = FileNotFoundError("temp2_input")

        sink = RecordingSink(on_emit=_unplug)
        scheduler = RefreshScheduler(registry, SampleCollector(registry), FrameBuilder(), sinks=[sink], interval_ms=10)
        status = scheduler.run(max_ticks=3)

        self.assertIn(SensorId("cpu", "core0"), sink.frames[0].sensor_ids())
        self.assertNotIn(SensorId("cpu", "core0"), sink.frames[1].sensor_ids())
        self.assertNotIn(SensorId("cpu", "core0"), sink.frames[2].sensor_ids())
        self.assertEqual(len(sink.frames[2].rows), 2)
        self.assertEqual(status.removed, 1)

    def test_periodic_rescan_adds_new_rows(self):
        source, registry = self._registry()

        def _plug(frame):
            if frame.tick == 1:
                source.probes.append(FakeProbe("cpu:core2", "CPU Core 2"))

        sink = RecordingSink(on_emit=_plug)
        scheduler = RefreshScheduler(
            registry,
            SampleCollector(registry),
            FrameBuilder(),
            sinks=[sink],
            interval_ms=30,
            rescan_interval_s=0.01,
        )
        scheduler.run(max_ticks=3)
        self.assertEqual(len(sink.frames[0].rows), 3)
        self.assertEqual(len(sink.frames[-1].rows), 4)
        self.assertEqual(sink.frames[-1].sensor_ids()[-1], SensorId("cpu", "core2"))

    def test_hot_added_row_does_not_move_existing_rows(self):
        source = FakeSource(
            "hwmon",
            [
                FakeProbe("cpu:pkg", "CPU Package id 0"),
                FakeProbe("gpu:edge", "GPU Edge", category="gpu"),
            ],
        )
        registry = ProbeRegistry([source])
        registry.discover()

        def _plug(frame):
            if frame.tick == 1:
                source.probes.append(FakeProbe("cpu:core0", "CPU Core 0"))

        sink = RecordingSink(on_emit=_plug)
        scheduler = RefreshScheduler(
            registry,
            SampleCollector(registry),
            FrameBuilder(),
            sinks=[sink],
            interval_ms=30,
            rescan_interval_s=0.01,
        )
        scheduler.run(max_ticks=3)
        edge = SensorId("gpu", "edge0")
        self.assertEqual([frame.sensor_ids().index(edge) for frame in sink.frames], [1, 1, 1])
        self.assertEqual(sink.frames[-1].sensor_ids()[-1], SensorId("cpu", "core0"))


if __name__ == "__main__":
    unittest.main()
