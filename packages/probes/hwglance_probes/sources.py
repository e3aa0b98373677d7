"""Default probe source set for this machine."""

from __future__ import annotations

from pathlib import Path

from .base import Probe, ProbeSource
from .nvml import NvmlSource
from .sysfs import DEFAULT_SYSFS_ROOT, CpuFrequencySource, DrmGpuSource, HwmonSource
from .system import CpuClockSource, PsutilTemperatureSource, SystemLoadSource


class FallbackSource(ProbeSource):
    """Use ``fallback`` only when ``primary`` finds nothing."""

    def __init__(self, primary: ProbeSource, fallback: ProbeSource) -> None:
        self.primary = primary
        self.fallback = fallback
        self.name = primary.name

    def discover(self) -> list[Probe]:
        probes = self.primary.discover()
        if probes:
            return probes
        return self.fallback.discover()

    def close(self) -> None:
        self.primary.close()
        self.fallback.close()


def default_sources(sysfs_root: Path | str = DEFAULT_SYSFS_ROOT, nvml: bool = True) -> list[ProbeSource]:
    root = Path(sysfs_root)
    sources: list[ProbeSource] = [
        SystemLoadSource(),
        FallbackSource(HwmonSource(root), PsutilTemperatureSource()),
        FallbackSource(CpuFrequencySource(root), CpuClockSource()),
        DrmGpuSource(root),
    ]
    if nvml:
        sources.append(NvmlSource())
    return sources
