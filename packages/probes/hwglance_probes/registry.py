"""Probe discovery and stable sensor id assignment."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from .base import Probe, ProbeSource
from .errors import DiscoveryFailure
from .models import ProbeDescriptor, SensorId
from .taxonomy import CATEGORY_ORDER, category_rank

logger = logging.getLogger("hwglance.probes")


@dataclass
class SourceStatus:
    name: str
    ok: bool = False
    probes: int = 0
    error: str | None = None
    checked_utc: str | None = None


class ProbeRegistry:
    """Owns every discovered probe for the lifetime of a run.

    Sensor ids are handed out per ``(category, slug)`` from a counter that
    never goes backwards, so an id retired by hot-unplug is never given to
    another device.
    """

    def __init__(self, sources: Iterable[ProbeSource], enabled_categories: Iterable[str] | None = None) -> None:
        self._sources = list(sources)
        enabled = frozenset(enabled_categories or ())
        self._enabled = enabled or None
        self._lock = threading.RLock()
        self._entries: dict[SensorId, tuple[ProbeDescriptor, Probe]] = {}
        self._by_key: dict[str, SensorId] = {}
        self._retired: set[SensorId] = set()
        self._next_index: dict[tuple[str, str], int] = {}
        self._sequence = 0
        self._scanned = False
        self._status: dict[str, SourceStatus] = {s.name: SourceStatus(name=s.name) for s in self._sources}

    @property
    def source_status(self) -> list[SourceStatus]:
        return list(self._status.values())

    @property
    def retired(self) -> frozenset[SensorId]:
        with self._lock:
            return frozenset(self._retired)

    def _allowed(self, probe: Probe) -> bool:
        return self._enabled is None or probe.category in self._enabled

    def _scan(self) -> dict[str, list[Probe]]:
        found: dict[str, list[Probe]] = {}
        for source in self._sources:
            status = self._status[source.name]
            status.checked_utc = datetime.now(timezone.utc).isoformat()
            try:
                probes = source.discover()
            except PermissionError as exc:
                status.ok, status.probes, status.error = False, 0, f"permission denied: {exc}"
                logger.warning(
                    "probe source %s not accessible: %s",
                    source.name,
                    exc,
                    extra={"event": "source_permission_denied"},
                )
                continue
            except Exception as exc:
                status.ok, status.probes, status.error = False, 0, str(exc) or type(exc).__name__
                logger.warning(
                    "probe source %s unavailable: %s",
                    source.name,
                    status.error,
                    extra={"event": "source_unavailable"},
                )
                continue
            kept = [p for p in probes if self._allowed(p)]
            status.ok, status.probes, status.error = True, len(kept), None
            found[source.name] = kept
        return found

    def _register(self, probe: Probe, source: str, group: int) -> ProbeDescriptor:
        slot = (probe.category, probe.slug)
        index = self._next_index.get(slot, 0)
        self._next_index[slot] = index + 1
        sensor_id = SensorId(category=probe.category, instance=f"{probe.slug}{index}")
        descriptor = ProbeDescriptor(
            sensor_id=sensor_id,
            label=probe.label,
            category=probe.category,
            capabilities=probe.capabilities,
            cost=probe.cost,
            order=(group, self._sequence),
            source=source,
        )
        self._sequence += 1
        self._entries[sensor_id] = (descriptor, probe)
        self._by_key[probe.key] = sensor_id
        return descriptor

    def discover(self) -> frozenset[ProbeDescriptor]:
        """Scan every source; safe to call again for a rescan.

        A device that is still present keeps its sensor id. Devices missing
        from a source that scanned cleanly are deregistered. The first scan
        groups rows by category; devices that show up on a later scan are
        appended after every existing row so no visible row moves.
        """
        found = self._scan()
        with self._lock:
            fresh: list[tuple[Probe, str]] = []
            seen: set[str] = set()
            for source_name, probes in found.items():
                for probe in probes:
                    if probe.key in seen:
                        continue
                    seen.add(probe.key)
                    if probe.key not in self._by_key:
                        fresh.append((probe, source_name))

            for sensor_id, (descriptor, probe) in list(self._entries.items()):
                if descriptor.source in found and probe.key not in seen:
                    self.deregister(sensor_id, reason="missing on rescan")

            fresh.sort(key=lambda item: (category_rank(item[0].category), item[0].rank))
            hot_added = len(CATEGORY_ORDER) + 1
            for probe, source_name in fresh:
                group = hot_added if self._scanned else category_rank(probe.category)
                descriptor = self._register(probe, source_name, group)
                logger.info(
                    "probe registered %s (%s)",
                    descriptor.sensor_id,
                    descriptor.label,
                    extra={"event": "probe_registered", "sensor_id": str(descriptor.sensor_id)},
                )
            self._scanned = True
            return frozenset(d for d, _ in self._entries.values())

    def deregister(self, sensor_id: SensorId, reason: str = "device removed") -> bool:
        with self._lock:
            entry = self._entries.pop(sensor_id, None)
            if entry is None:
                return False
            descriptor, probe = entry
            self._by_key.pop(probe.key, None)
            self._retired.add(sensor_id)
        probe.close()
        logger.warning(
            "probe deregistered %s (%s): %s",
            sensor_id,
            descriptor.label,
            reason,
            extra={"event": "probe_deregistered", "sensor_id": str(sensor_id)},
        )
        return True

    def active(self) -> list[tuple[ProbeDescriptor, Probe]]:
        with self._lock:
            return sorted(self._entries.values(), key=lambda entry: entry[0].order)

    def descriptors(self) -> list[ProbeDescriptor]:
        return [d for d, _ in self.active()]

    def get(self, sensor_id: SensorId) -> ProbeDescriptor | None:
        with self._lock:
            entry = self._entries.get(sensor_id)
            return entry[0] if entry else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def require_probes(self) -> None:
        if not len(self):
            failed = {s.name: s.error for s in self.source_status if s.error}
            raise DiscoveryFailure(f"no telemetry probes discovered (source errors: {failed or 'none'})")

    def describe(self) -> list[dict[str, Any]]:
        return [
            {
                "sensor_id": str(d.sensor_id),
                "label": d.label,
                "category": d.category,
                "capabilities": sorted(k.value for k in d.capabilities),
                "cost": d.cost.value,
                "source": d.source,
            }
            for d in self.descriptors()
        ]

    def close(self) -> None:
        with self._lock:
            entries = list(self._entries.values())
        for _, probe in entries:
            probe.close()
        for source in self._sources:
            source.close()
