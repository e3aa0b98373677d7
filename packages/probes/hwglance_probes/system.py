"""psutil-backed probes: CPU and RAM load, plus fallbacks where sysfs is missing."""

from __future__ import annotations

import threading
import time
from typing import Any

import psutil

from .base import Probe, ProbeSource
from .errors import ProbeError, ProbeErrorKind
from .models import MetricKind, RawSample, RawUnit
from .taxonomy import classify, humanize, rank_within, slug_for


class CpuLoadProbe(Probe):
    category = "cpu"
    slug = "total"

    def __init__(self) -> None:
        super().__init__(key="psutil:cpu_percent", label="CPU Total", rank=(0, -1, "cpu total"))
        # Prime non-blocking CPU measurement.
        psutil.cpu_percent(interval=None)

    @property
    def capabilities(self) -> frozenset[MetricKind]:
        return frozenset({MetricKind.UTILIZATION})

    def read_utilization(self) -> RawSample:
        return RawSample(value=float(psutil.cpu_percent(interval=None)), unit=RawUnit.PERCENT)


class CpuClockProbe(Probe):
    """Aggregate CPU clock for platforms without per-core cpufreq in sysfs."""

    category = "cpu"
    slug = "clock"

    def __init__(self) -> None:
        super().__init__(key="psutil:cpu_freq", label="CPU clock", rank=(0, 0, "cpu clock"))

    @property
    def capabilities(self) -> frozenset[MetricKind]:
        return frozenset({MetricKind.FREQUENCY})

    def read_frequency(self) -> RawSample:
        freq = psutil.cpu_freq()
        if freq is None:
            raise ProbeError(ProbeErrorKind.MALFORMED_READING, "cpu_freq returned nothing")
        return RawSample(value=float(freq.current), unit=RawUnit.MHZ)


class MemoryLoadProbe(Probe):
    category = "memory"
    slug = "ram"

    def __init__(self) -> None:
        super().__init__(key="psutil:virtual_memory", label="RAM used", rank=(0, 0, "ram"))

    @property
    def capabilities(self) -> frozenset[MetricKind]:
        return frozenset({MetricKind.UTILIZATION})

    def read_utilization(self) -> RawSample:
        vm = psutil.virtual_memory()
        if vm.total <= 0:
            raise ProbeError(ProbeErrorKind.MALFORMED_READING, "zero total memory")
        return RawSample(value=float(vm.percent), unit=RawUnit.PERCENT)


class TemperatureSnapshot:
    """One ``psutil.sensors_temperatures()`` call shared by all probes of a tick.

    psutil walks every hwmon chip on each call, so concurrent reads within
    ``max_age_s`` of each other reuse the same result.
    """

    def __init__(self, max_age_s: float = 0.05) -> None:
        self.max_age_s = max_age_s
        self._lock = threading.Lock()
        self._taken: float | None = None
        self._temps: dict[str, list[Any]] = {}

    def get(self) -> dict[str, list[Any]]:
        with self._lock:
            now = time.monotonic()
            if self._taken is None or now - self._taken >= self.max_age_s:
                self._temps = psutil.sensors_temperatures()
                self._taken = now
            return self._temps


class PsutilTemperatureProbe(Probe):
    def __init__(self, chip: str, index: int, raw_label: str, snapshot: TemperatureSnapshot | None = None) -> None:
        category = classify(chip)
        label = humanize(category, chip, raw_label)
        super().__init__(
            key=f"psutil:temp:{chip}:{index}",
            label=label,
            category=category,
            rank=rank_within(category, raw_label or label),
        )
        self.chip = chip
        self.index = index
        self.snapshot = snapshot or TemperatureSnapshot()
        self.slug = slug_for(category, label)

    @property
    def capabilities(self) -> frozenset[MetricKind]:
        return frozenset({MetricKind.TEMPERATURE})

    def read_temperature(self) -> RawSample:
        # A chip missing from one snapshot is transient; a rescan retires it for good.
        entries = self.snapshot.get().get(self.chip) or []
        if self.index >= len(entries):
            raise ProbeError(ProbeErrorKind.MALFORMED_READING, f"{self.chip}[{self.index}] missing from sensors_temperatures")
        current = entries[self.index].current
        if current is None:
            raise ProbeError(ProbeErrorKind.MALFORMED_READING, f"{self.chip}[{self.index}] has no value")
        return RawSample(value=float(current), unit=RawUnit.CELSIUS)


class SystemLoadSource(ProbeSource):
    name = "psutil"

    def discover(self) -> list[Probe]:
        return [CpuLoadProbe(), MemoryLoadProbe()]


class CpuClockSource(ProbeSource):
    name = "psutil-cpufreq"

    def discover(self) -> list[Probe]:
        try:
            freq = psutil.cpu_freq()
        except (NotImplementedError, OSError):
            return []
        if freq is None or not freq.current:
            return []
        return [CpuClockProbe()]


class PsutilTemperatureSource(ProbeSource):
    name = "psutil-temperatures"

    def __init__(self) -> None:
        self.snapshot = TemperatureSnapshot()

    def discover(self) -> list[Probe]:
        if getattr(psutil, "sensors_temperatures", None) is None:
            return []
        probes: list[Probe] = []
        for chip, entries in sorted(self.snapshot.get().items()):
            for index, entry in enumerate(entries):
                probes.append(
                    PsutilTemperatureProbe(chip=chip, index=index, raw_label=entry.label or "", snapshot=self.snapshot)
                )
        return probes
