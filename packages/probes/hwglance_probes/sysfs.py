"""Linux sysfs probe sources: hwmon temperatures, cpufreq clocks and DRM GPU load."""

from __future__ import annotations

import re
from pathlib import Path

from .base import Probe, ProbeSource
from .errors import ProbeError, ProbeErrorKind
from .models import MetricKind, RawSample, RawUnit
from .taxonomy import classify, humanize, rank_within, slug_for

DEFAULT_SYSFS_ROOT = Path("/sys")

_CPU_DIR_RE = re.compile(r"^cpu(\d+)$")
_CARD_RE = re.compile(r"^card(\d+)$")


def _read_value(path: Path) -> float:
    text = path.read_text(encoding="ascii").strip()
    if not text:
        raise ProbeError(ProbeErrorKind.MALFORMED_READING, f"empty reading from {path}")
    try:
        return float(text)
    except ValueError as exc:
        raise ProbeError(ProbeErrorKind.MALFORMED_READING, f"{path}: {text!r}") from exc


def _read_text(path: Path, default: str = "") -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError:
        return default


def _device_key(base: Path) -> str:
    """hwmonN numbering is not stable across rescans; the backing device path is."""
    device = base / "device"
    try:
        return str(device.resolve(strict=True))
    except OSError:
        return str(base.resolve())


class HwmonTemperatureProbe(Probe):
    def __init__(self, path: Path, chip: str, raw_label: str, key: str) -> None:
        category = classify(chip)
        label = humanize(category, chip, raw_label, path.resolve())
        super().__init__(key=key, label=label, category=category, rank=rank_within(category, raw_label or label))
        self.path = path
        self.chip = chip
        self.slug = slug_for(category, label)

    @property
    def capabilities(self) -> frozenset[MetricKind]:
        return frozenset({MetricKind.TEMPERATURE})

    def read_temperature(self) -> RawSample:
        return RawSample(value=_read_value(self.path), unit=RawUnit.MILLI_CELSIUS)


class HwmonSource(ProbeSource):
    name = "hwmon"

    def __init__(self, sysfs_root: Path = DEFAULT_SYSFS_ROOT) -> None:
        self.root = Path(sysfs_root) / "class" / "hwmon"

    def discover(self) -> list[Probe]:
        probes: list[Probe] = []
        if not self.root.is_dir():
            return probes
        for base in sorted(self.root.iterdir()):
            if not base.is_dir():
                continue
            chip = _read_text(base / "name", default=base.name)
            device_key = _device_key(base)
            for input_file in sorted(base.glob("temp*_input")):
                stem = input_file.name[: -len("_input")]
                raw_label = _read_text(base / f"{stem}_label")
                probes.append(
                    HwmonTemperatureProbe(
                        path=input_file,
                        chip=chip,
                        raw_label=raw_label,
                        key=f"hwmon:{device_key}:{chip}:{stem}",
                    )
                )
        return probes


class CpuFrequencyProbe(Probe):
    category = "cpu"
    slug = "freq"

    def __init__(self, core: int, path: Path) -> None:
        super().__init__(key=f"cpufreq:cpu{core}", label=f"CPU Core {core} clock")
        self.core = core
        self.path = path

    @property
    def capabilities(self) -> frozenset[MetricKind]:
        return frozenset({MetricKind.FREQUENCY})

    def read_frequency(self) -> RawSample:
        return RawSample(value=_read_value(self.path), unit=RawUnit.KHZ)


class CpuFrequencySource(ProbeSource):
    name = "cpufreq"

    def __init__(self, sysfs_root: Path = DEFAULT_SYSFS_ROOT) -> None:
        self.root = Path(sysfs_root) / "devices" / "system" / "cpu"

    def discover(self) -> list[Probe]:
        found: list[CpuFrequencyProbe] = []
        if not self.root.is_dir():
            return []
        for entry in self.root.iterdir():
            m = _CPU_DIR_RE.match(entry.name)
            if not m:
                continue
            cpufreq = entry / "cpufreq"
            for candidate in ("scaling_cur_freq", "cpuinfo_cur_freq"):
                path = cpufreq / candidate
                if path.exists():
                    found.append(CpuFrequencyProbe(core=int(m.group(1)), path=path))
                    break
        found.sort(key=lambda p: p.core)
        return list(found)


class DrmGpuProbe(Probe):
    """Load and shader clock of a DRM card exposing ``gpu_busy_percent`` (amdgpu)."""

    category = "gpu"

    def __init__(self, card: str, busy_path: Path, freq_path: Path | None, key: str, driver: str) -> None:
        super().__init__(key=key, label=f"GPU {driver} ({card})", rank=(2, 0, card))
        self.card = card
        self.slug = driver or "drm"
        self.busy_path = busy_path
        self.freq_path = freq_path

    @property
    def capabilities(self) -> frozenset[MetricKind]:
        kinds = {MetricKind.UTILIZATION}
        if self.freq_path is not None:
            kinds.add(MetricKind.FREQUENCY)
        return frozenset(kinds)

    def read_utilization(self) -> RawSample:
        return RawSample(value=_read_value(self.busy_path), unit=RawUnit.PERCENT)

    def read_frequency(self) -> RawSample:
        if self.freq_path is None:
            raise NotImplementedError
        return RawSample(value=_read_value(self.freq_path), unit=RawUnit.HZ)


class DrmGpuSource(ProbeSource):
    name = "drm"

    def __init__(self, sysfs_root: Path = DEFAULT_SYSFS_ROOT) -> None:
        self.root = Path(sysfs_root) / "class" / "drm"

    def discover(self) -> list[Probe]:
        probes: list[Probe] = []
        if not self.root.is_dir():
            return probes
        for card in sorted(self.root.iterdir()):
            if not _CARD_RE.match(card.name):
                continue
            device = card / "device"
            busy = device / "gpu_busy_percent"
            if not busy.exists():
                continue
            freq_path = None
            hwmon_root = device / "hwmon"
            if hwmon_root.is_dir():
                for hw in sorted(hwmon_root.iterdir()):
                    if (hw / "freq1_input").exists():
                        freq_path = hw / "freq1_input"
                        break
            try:
                driver = (device / "driver").resolve(strict=True).name
            except OSError:
                driver = "drm"
            probes.append(
                DrmGpuProbe(
                    card=card.name,
                    busy_path=busy,
                    freq_path=freq_path,
                    key=f"drm:{_device_key(card)}",
                    driver=driver,
                )
            )
        return probes
