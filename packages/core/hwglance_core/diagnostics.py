"""Doctor report and offline support bundle helpers."""

from __future__ import annotations

import json
import platform
import re
import tempfile
import zipfile
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from hwglance_probes import ProbeRegistry

from .config import AppConfig, config_path
from .logging_setup import log_dir

if TYPE_CHECKING:
    from .scheduler import RefreshScheduler


_SECRET_RE = re.compile(r"(token|secret|password|apikey|api_key|auth)", re.IGNORECASE)


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(k):
                out[k] = "***REDACTED***"
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def build_doctor_payload(cfg: AppConfig, registry: ProbeRegistry) -> dict[str, Any]:
    """Summarize the host, the effective config and what discovery found.

    The registry is expected to have run ``discover()`` already.
    """
    return {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "config_path": str(config_path()),
        "log_dir": str(log_dir()),
        "config": redact(asdict(cfg)),
        "sources": [asdict(status) for status in registry.source_status],
        "probes": registry.describe(),
        "retired": sorted(str(sid) for sid in registry.retired),
    }


def sample_tick_summary(scheduler: RefreshScheduler) -> dict[str, Any]:
    """Scheduler status after a doctor refresh, plus what each row would show."""
    rows: list[dict[str, Any]] = []
    frame = scheduler.last_frame
    if frame is not None:
        for row in frame.rows:
            rows.append(
                {
                    "sensor_id": str(row.sensor_id),
                    "label": row.label,
                    "cells": {cell.kind.value: cell.text for cell in row.cells},
                    "validity": {
                        cell.kind.value: cell.metric.validity.value for cell in row.cells if cell.metric is not None
                    },
                }
            )
    status = asdict(scheduler.status)
    status["state"] = scheduler.status.state.value
    return {"status": status, "rows": rows}


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, Path):
        return str(value)
    return value


class DiagnosticsExporter:
    def __init__(self, app_name: str = "hwglance") -> None:
        self.app_name = app_name

    def bundle(
        self,
        cfg: AppConfig,
        doctor_payload: dict[str, Any],
        recent_events: list[dict[str, Any]] | None = None,
        output_dir: Path | None = None,
    ) -> Path:
        """Write a zip with the doctor report, redacted config and local logs."""
        output_base = output_dir or Path(tempfile.gettempdir())
        output_base.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        zip_path = output_base / f"{self.app_name}-diagnostics-{stamp}.zip"
        logs = log_dir()

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            manifest = {
                "app": self.app_name,
                "created_utc": datetime.now(timezone.utc).isoformat(),
                "host": platform.platform(),
                "python": platform.python_version(),
                "config_path": str(config_path()),
                "log_dir": str(logs),
            }
            zf.writestr("manifest.json", json.dumps(manifest, indent=2, sort_keys=True))
            zf.writestr("doctor.json", json.dumps(redact(doctor_payload), indent=2, sort_keys=True, default=_jsonable))
            zf.writestr("config.redacted.json", json.dumps(redact(asdict(cfg)), indent=2, sort_keys=True))
            zf.writestr(
                "scheduler_events.json",
                json.dumps(redact(recent_events or []), indent=2, sort_keys=True, default=_jsonable),
            )
            for item in sorted(logs.glob("*.log*")):
                zf.write(item, arcname=f"logs/{item.name}")

        return zip_path
