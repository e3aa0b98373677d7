import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "probes"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from hwglance_probes import DiscoveryFailure, MetricKind, ProbeRegistry, SensorId
from probe_fakes import FakeProbe, FakeSource, cpu_probes


def _ids(registry):
    return [str(d.sensor_id) for d in registry.descriptors()]


class RegistryTests(unittest.TestCase):
    def test_ids_and_intra_category_order(self):
        registry = ProbeRegistry([FakeSource("hwmon", cpu_probes())])
        registry.discover()
        self.assertEqual(_ids(registry), ["cpu.package0", "cpu.core0", "cpu.core1"])
        labels = [d.label for d in registry.descriptors()]
        self.assertEqual(labels, ["CPU Package id 0", "CPU Core 0", "CPU Core 1"])

    def test_category_order(self):
        probes = [
            FakeProbe("disk", "SSD (NVMe nvme0)", category="disk"),
            FakeProbe("gpu", "GPU Edge", category="gpu"),
            FakeProbe("cpu", "CPU Package id 0"),
        ]
        registry = ProbeRegistry([FakeSource("hwmon", probes)])
        registry.discover()
        self.assertEqual([d.category for d in registry.descriptors()], ["cpu", "gpu", "disk"])

    def test_rediscover_keeps_ids(self):
        registry = ProbeRegistry([FakeSource("hwmon", cpu_probes())])
        first = registry.discover()
        second = registry.discover()
        self.assertEqual(first, second)
        self.assertEqual(len(registry), 3)

    def test_hot_added_device_goes_after_existing_rows(self):
        source = FakeSource("hwmon", cpu_probes() + [FakeProbe("gpu", "GPU Edge", category="gpu")])
        registry = ProbeRegistry([source])
        registry.discover()
        source.probes.append(FakeProbe("cpu:core2", "CPU Core 2"))
        source.probes.append(FakeProbe("disk", "SSD (NVMe nvme0)", category="disk"))
        registry.discover()
        self.assertEqual(
            _ids(registry),
            ["cpu.package0", "cpu.core0", "cpu.core1", "gpu.edge0", "cpu.core2", "disk.nvme0"],
        )

    def test_removed_id_is_never_reused(self):
        source = FakeSource("hwmon", cpu_probes())
        registry = ProbeRegistry([source])
        registry.discover()
        core1 = [p for p in source.probes if p.key == "cpu:core1"][0]
        source.probes.remove(core1)
        registry.discover()
        self.assertNotIn("cpu.core1", _ids(registry))
        self.assertIn(SensorId("cpu", "core1"), registry.retired)
        self.assertTrue(core1.closed)

        source.probes.append(FakeProbe("cpu:core1", "CPU Core 1"))
        registry.discover()
        self.assertNotIn("cpu.core1", _ids(registry))
        self.assertIn("cpu.core2", _ids(registry))

    def test_deregister(self):
        registry = ProbeRegistry([FakeSource("hwmon", cpu_probes())])
        registry.discover()
        self.assertTrue(registry.deregister(SensorId("cpu", "core0")))
        self.assertFalse(registry.deregister(SensorId("cpu", "core0")))
        self.assertIsNone(registry.get(SensorId("cpu", "core0")))
        self.assertEqual(len(registry), 2)

    def test_failing_source_is_skipped(self):
        registry = ProbeRegistry(
            [
                FakeSource("nvml", error=PermissionError("denied")),
                FakeSource("drm", error=RuntimeError("no driver")),
                FakeSource("hwmon", cpu_probes()),
            ]
        )
        registry.discover()
        self.assertEqual(len(registry), 3)
        status = {s.name: s for s in registry.source_status}
        self.assertFalse(status["nvml"].ok)
        self.assertIn("permission denied", status["nvml"].error)
        self.assertEqual(status["drm"].error, "no driver")
        self.assertTrue(status["hwmon"].ok)
        self.assertEqual(status["hwmon"].probes, 3)

    def test_source_failing_on_rescan_keeps_its_probes(self):
        source = FakeSource("hwmon", cpu_probes())
        registry = ProbeRegistry([source])
        registry.discover()
        source.error = OSError("busy")
        registry.discover()
        self.assertEqual(len(registry), 3)

    def test_no_gpu_means_no_gpu_rows(self):
        registry = ProbeRegistry([FakeSource("hwmon", cpu_probes()), FakeSource("nvml", [])])
        registry.discover()
        self.assertFalse([d for d in registry.descriptors() if d.category == "gpu"])

    def test_category_filter(self):
        probes = cpu_probes() + [FakeProbe("gpu", "GPU Edge", category="gpu")]
        registry = ProbeRegistry([FakeSource("hwmon", probes)], enabled_categories=["gpu"])
        registry.discover()
        self.assertEqual(_ids(registry), ["gpu.edge0"])

    def test_require_probes(self):
        registry = ProbeRegistry([FakeSource("hwmon", [])])
        registry.discover()
        with self.assertRaises(DiscoveryFailure):
            registry.require_probes()

    def test_describe_and_close(self):
        source = FakeSource("hwmon", [FakeProbe("gpu", "GPU Edge", category="gpu", kinds=(MetricKind.TEMPERATURE,))])
        registry = ProbeRegistry([source])
        registry.discover()
        row = registry.describe()[0]
        self.assertEqual(row["sensor_id"], "gpu.edge0")
        self.assertEqual(row["capabilities"], ["Temperature"])
        self.assertEqual(row["source"], "hwmon")
        registry.close()
        self.assertTrue(source.closed)
        self.assertTrue(source.probes[0].closed)


if __name__ == "__main__":
    unittest.main()
