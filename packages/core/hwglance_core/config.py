"""Persistent settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from hwglance_probes import CATEGORY_ORDER

from .logging_setup import get_logger
from .normalizer import Limits


CONFIG_VERSION = 2


@dataclass
class RefreshConfig:
    interval_ms: int = 1000
    tick_timeout_ms: int = 800
    max_workers: int = 8
    rescan_interval_s: float = 0.0


@dataclass
class SensorsConfig:
    enabled_categories: list[str] = field(default_factory=list)
    sysfs_root: str = "/sys"
    nvml: bool = True


@dataclass
class LimitsConfig:
    temperature_min_c: float = 0.0
    temperature_max_c: float = 150.0
    utilization_min_pct: float = 0.0
    utilization_max_pct: float = 100.0
    frequency_min_mhz: float = 1.0
    frequency_max_mhz: float = 10_000.0


def _default_thresholds() -> dict[str, list[float]]:
    return {
        "cpu": [90.0, 100.0],
        "gpu": [85.0, 95.0],
        "memory": [70.0, 85.0],
        "disk": [70.0, 80.0],
        "wifi": [80.0, 90.0],
        "ethernet": [80.0, 90.0],
        "system": [80.0, 95.0],
        "chipset": [85.0, 95.0],
        "other": [90.0, 100.0],
    }


@dataclass
class ThresholdsConfig:
    # category -> [warn_c, hot_c]
    temperature: dict[str, list[float]] = field(default_factory=_default_thresholds)


@dataclass
class DisplayConfig:
    placeholder: str = "--"
    stale_glyph: str = "??"
    color: bool = True


@dataclass
class DiagnosticsConfig:
    keep_log_files: int = 7
    debug: bool = False


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    sensors: SensorsConfig = field(default_factory=SensorsConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)

    def normalizer_limits(self) -> Limits:
        return Limits(**asdict(self.limits))

    def temperature_thresholds(self) -> dict[str, tuple[float, float]]:
        return {k: (float(v[0]), float(v[1])) for k, v in self.thresholds.temperature.items()}


def config_path() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "hwglance" / "config.json"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "hwglance" / "config.json"
    base = os.environ.get("XDG_CONFIG_HOME")
    return (Path(base) if base else Path.home() / ".config") / "hwglance" / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    for k, v in (raw or {}).items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _normalize_refresh(cfg: AppConfig) -> None:
    cfg.refresh.interval_ms = max(100, min(60_000, int(cfg.refresh.interval_ms)))
    # A tick must be able to finish inside its own interval.
    cfg.refresh.tick_timeout_ms = max(10, min(cfg.refresh.interval_ms, int(cfg.refresh.tick_timeout_ms)))
    cfg.refresh.max_workers = max(1, min(64, int(cfg.refresh.max_workers)))
    cfg.refresh.rescan_interval_s = float(max(0.0, cfg.refresh.rescan_interval_s))


def _normalize_sensors(cfg: AppConfig) -> None:
    cats = [str(c).lower() for c in (cfg.sensors.enabled_categories or [])]
    unknown = [c for c in cats if c not in CATEGORY_ORDER]
    if unknown:
        get_logger().warning(
            "ignoring unknown sensor categories: %s",
            ", ".join(unknown),
            extra={"event": "config_unknown_categories"},
        )
    cfg.sensors.enabled_categories = [c for c in cats if c in CATEGORY_ORDER]
    if cats and not cfg.sensors.enabled_categories:
        get_logger().warning(
            "no known sensor categories left in enabled_categories, showing all",
            extra={"event": "config_categories_reset"},
        )


def _normalize_limits(cfg: AppConfig) -> None:
    lim = cfg.limits
    for lo_name, hi_name in (
        ("temperature_min_c", "temperature_max_c"),
        ("utilization_min_pct", "utilization_max_pct"),
        ("frequency_min_mhz", "frequency_max_mhz"),
    ):
        lo = float(getattr(lim, lo_name))
        hi = float(getattr(lim, hi_name))
        if hi < lo:
            lo, hi = hi, lo
        setattr(lim, lo_name, lo)
        setattr(lim, hi_name, hi)


def _normalize_thresholds(cfg: AppConfig) -> None:
    merged = _default_thresholds()
    for category, pair in (cfg.thresholds.temperature or {}).items():
        try:
            warn, hot = float(pair[0]), float(pair[1])
        except (TypeError, ValueError, IndexError):
            continue
        merged[str(category).lower()] = [min(warn, hot), max(warn, hot)]
    cfg.thresholds.temperature = merged


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = int(raw.get("config_version", 1))
    data = dict(raw)

    if version < 2:
        # v1 stored the refresh rate as samples per second at the top level.
        refresh = dict(data.get("refresh", {}) or {})
        sample_hz = data.pop("sample_hz", None)
        if sample_hz:
            refresh.setdefault("interval_ms", int(1000 / float(sample_hz)))
        data["refresh"] = refresh
        data.setdefault("thresholds", {})
        data["config_version"] = 2

    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return AppConfig()

    data = _migrate(raw)
    cfg = AppConfig(
        config_version=int(data.get("config_version", CONFIG_VERSION)),
        refresh=_merge(RefreshConfig, data.get("refresh", {})),
        sensors=_merge(SensorsConfig, data.get("sensors", {})),
        limits=_merge(LimitsConfig, data.get("limits", {})),
        thresholds=_merge(ThresholdsConfig, data.get("thresholds", {})),
        display=_merge(DisplayConfig, data.get("display", {})),
        diagnostics=_merge(DiagnosticsConfig, data.get("diagnostics", {})),
    )

    normalize_config(cfg)
    return cfg


def normalize_config(cfg: AppConfig) -> AppConfig:
    _normalize_refresh(cfg)
    _normalize_sensors(cfg)
    _normalize_limits(cfg)
    _normalize_thresholds(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
