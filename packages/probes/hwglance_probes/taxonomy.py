"""Sensor classification, naming and ordering."""

from __future__ import annotations

import re
from pathlib import Path

# Display grouping order. Unknown categories sort last.
CATEGORY_ORDER = ("cpu", "gpu", "memory", "disk", "wifi", "ethernet", "system", "chipset", "other")

CATEGORY_TITLES = {
    "cpu": "CPU",
    "gpu": "GPU",
    "memory": "Memory",
    "disk": "Disk",
    "wifi": "Wi-Fi",
    "ethernet": "Ethernet",
    "system": "System (ACPI)",
    "chipset": "Chipset",
    "other": "Other",
}

_ETHERNET_DRIVERS = ("r8169", "r8125", "igc", "e1000")
_CORE_RE = re.compile(r"core\s*(\d+)")


def category_rank(category: str) -> int:
    try:
        return CATEGORY_ORDER.index(category)
    except ValueError:
        return len(CATEGORY_ORDER)


def classify(chip: str) -> str:
    """Map an hwmon chip name onto a display category."""
    r = chip.lower()
    if any(s in r for s in ("coretemp", "k10temp", "zenpower", "cpu")):
        return "cpu"
    if any(s in r for s in ("amdgpu", "nvidia", "gpu", "nouveau", "radeon")):
        return "gpu"
    if "nvme" in r or "drivetemp" in r:
        return "disk"
    if "spd" in r:
        return "memory"
    if "iwlwifi" in r:
        return "wifi"
    if any(s in r for s in _ETHERNET_DRIVERS):
        return "ethernet"
    if "acpitz" in r:
        return "system"
    if "pch" in r or "isa" in r:
        return "chipset"
    return "other"


def nvme_hint(path: Path) -> str | None:
    for part in reversed(path.parts):
        if part.startswith("nvme"):
            return part
    return None


def core_index(label: str) -> int | None:
    m = _CORE_RE.search(label.lower())
    return int(m.group(1)) if m else None


def humanize(category: str, chip: str, raw_label: str, path: Path | None = None) -> str:
    label = raw_label.strip() or chip
    lo = label.lower()
    if category == "cpu":
        return label if lo.startswith("cpu") else f"CPU {label}"
    if category == "gpu":
        if "edge" in lo:
            return "GPU Edge"
        if "hotspot" in lo or "junction" in lo:
            return "GPU Hotspot"
        if "mem" in lo:
            return "GPU Memory"
        return "GPU"
    if category == "disk":
        hint = nvme_hint(path) if path is not None else None
        if hint:
            return f"SSD (NVMe {hint})"
        if "nvme" in chip.lower():
            return "SSD (NVMe)"
        return "Drive"
    if category == "memory":
        return "SPD Hub" if lo.startswith("spd") else "Memory"
    if category == "wifi":
        return "Wi-Fi"
    if category == "ethernet":
        for driver in _ETHERNET_DRIVERS:
            if driver in chip.lower() or driver in lo:
                return f"Ethernet ({driver})"
        return "Ethernet"
    if category == "system":
        return f"ACPI {label}" if label != chip else "ACPI"
    if category == "chipset":
        return f"Chipset {label}" if label != chip else "Chipset"
    return label


def slug_for(category: str, label: str) -> str:
    """Short instance prefix used in the sensor id, e.g. ``package`` in ``cpu.package0``."""
    lo = label.lower()
    if category == "cpu":
        if "package" in lo or "composite" in lo or "tctl" in lo or "tdie" in lo:
            return "package"
        if core_index(lo) is not None:
            return "core"
        return "temp"
    if category == "gpu":
        if "edge" in lo:
            return "edge"
        if "hotspot" in lo:
            return "hotspot"
        if "memory" in lo:
            return "mem"
        return "temp"
    if category == "disk":
        return "nvme" if "nvme" in lo or "ssd" in lo else "drive"
    if category == "memory":
        return "spd" if "spd" in lo else "temp"
    if category == "wifi":
        return "wifi"
    if category == "ethernet":
        return "eth"
    if category == "system":
        return "acpi"
    if category == "chipset":
        return "pch"
    return re.sub(r"[^a-z0-9]+", "", lo) or "sensor"


def rank_within(category: str, label: str) -> tuple:
    """Intra-category sort key: CPU package before cores by index, GPU edge before hotspot."""
    lo = label.lower()
    if category == "cpu":
        if "package" in lo or "composite" in lo or "tctl" in lo:
            tier = 0
        elif core_index(lo) is not None:
            tier = 1
        else:
            tier = 3
        idx = core_index(lo)
        return (tier, idx if idx is not None else 1 << 30, lo)
    if category == "gpu":
        if "edge" in lo:
            tier = 0
        elif "hotspot" in lo:
            tier = 1
        else:
            tier = 2
        return (tier, 0, lo)
    return (2, 0, lo)
