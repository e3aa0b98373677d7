"""Concurrent per-tick probe polling under a hard deadline."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from typing import Union

from hwglance_probes import Probe, ProbeError, ProbeErrorKind, ProbeRegistry, RawReading, SensorId

from .logging_setup import get_logger

TickResult = Union[RawReading, ProbeError]


@dataclass
class CollectStats:
    elapsed_s: float = 0.0
    polled: int = 0
    timeouts: list[SensorId] = field(default_factory=list)
    failures: dict[SensorId, ProbeErrorKind] = field(default_factory=dict)
    removed: list[SensorId] = field(default_factory=list)


@dataclass
class TickSamples:
    results: dict[SensorId, TickResult]
    stats: CollectStats


def _timed_read(probe: Probe) -> tuple[RawReading, float]:
    start = time.perf_counter()
    reading = probe.read()
    return reading, time.perf_counter() - start


class ProbeReader:
    """Runs probe reads on daemon threads, at most ``max_workers`` at once.

    A read given up on with :meth:`abandon` hands its slot back straight away,
    so a hung sysfs or NVML call neither starves the other probes nor keeps
    the interpreter alive at exit.
    """

    def __init__(self, max_workers: int = 8) -> None:
        self._slots = threading.Semaphore(max(1, max_workers))
        self._lock = threading.Lock()
        self._holding: set[Future] = set()
        self._closed = False

    def submit(self, probe: Probe) -> Future:
        if self._closed:
            raise RuntimeError("reader is closed")
        future: Future = Future()
        thread = threading.Thread(
            target=self._run,
            args=(future, probe),
            name=f"hwglance-probe-{probe.key}",
            daemon=True,
        )
        thread.start()
        return future

    def _run(self, future: Future, probe: Probe) -> None:
        self._slots.acquire()
        with self._lock:
            self._holding.add(future)
        try:
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = _timed_read(probe)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)
        finally:
            self._release(future)

    def _release(self, future: Future) -> None:
        with self._lock:
            if future not in self._holding:
                return
            self._holding.discard(future)
        self._slots.release()

    def abandon(self, future: Future) -> None:
        """Stop counting ``future`` against the worker limit."""
        if future.cancel():
            return
        self._release(future)

    @property
    def busy(self) -> int:
        with self._lock:
            return len(self._holding)

    def close(self) -> None:
        self._closed = True


class SampleCollector:
    """Reads every registered probe once per tick.

    Anything still pending when the tick deadline passes is reported as a
    timeout, its eventual result is dropped and it stops counting against
    ``max_workers``. A probe that is still stuck from an earlier tick is not
    resubmitted until it returns.
    """

    def __init__(self, registry: ProbeRegistry, timeout_ms: int = 800, max_workers: int = 8) -> None:
        self.registry = registry
        self.timeout_s = max(timeout_ms, 1) / 1000
        self._reader = ProbeReader(max_workers=max_workers)
        self._inflight: dict[SensorId, Future] = {}
        self._last_error: dict[SensorId, ProbeErrorKind] = {}
        self.logger = get_logger()

    def collect(self) -> TickSamples:
        started = time.monotonic()
        deadline = started + self.timeout_s
        results: dict[SensorId, TickResult] = {}
        stats = CollectStats()
        pending: dict[Future, tuple[SensorId, Probe]] = {}

        for descriptor, probe in self.registry.active():
            sensor_id = descriptor.sensor_id
            stats.polled += 1
            previous = self._inflight.get(sensor_id)
            if previous is not None and not previous.done():
                results[sensor_id] = ProbeError(ProbeErrorKind.TIMEOUT, "previous read still pending")
                continue
            future = self._reader.submit(probe)
            self._inflight[sensor_id] = future
            pending[future] = (sensor_id, probe)

        if pending:
            remaining = max(deadline - time.monotonic(), 0.0)
            wait(pending, timeout=remaining)

        for future, (sensor_id, probe) in pending.items():
            if not future.done():
                self._reader.abandon(future)
                results[sensor_id] = ProbeError(ProbeErrorKind.TIMEOUT, f"no reading within {self.timeout_s:.3f}s")
                continue
            self._inflight.pop(sensor_id, None)
            results[sensor_id] = self._unpack(future, probe)

        for sensor_id, result in results.items():
            self._account(sensor_id, result, stats)

        stats.elapsed_s = time.monotonic() - started
        return TickSamples(results=results, stats=stats)

    def _unpack(self, future: Future, probe: Probe) -> TickResult:
        try:
            reading, elapsed = future.result()
        except ProbeError as exc:
            return exc
        except OSError as exc:
            return ProbeError.from_os_error(exc)
        except Exception as exc:
            self.logger.warning(
                "probe %r raised %s",
                probe,
                type(exc).__name__,
                exc_info=True,
                extra={"event": "probe_exception"},
            )
            return ProbeError(ProbeErrorKind.MALFORMED_READING, f"{type(exc).__name__}: {exc}")
        if elapsed > probe.timeout_s:
            return ProbeError(ProbeErrorKind.TIMEOUT, f"read took {elapsed:.3f}s")
        return reading

    def _account(self, sensor_id: SensorId, result: TickResult, stats: CollectStats) -> None:
        if not isinstance(result, ProbeError):
            if self._last_error.pop(sensor_id, None) is not None:
                self.logger.info("probe %s recovered", sensor_id, extra={"event": "probe_recovered", "sensor_id": str(sensor_id)})
            return

        stats.failures[sensor_id] = result.kind
        if result.kind is ProbeErrorKind.TIMEOUT:
            stats.timeouts.append(sensor_id)
            self.logger.debug("probe %s timed out: %s", sensor_id, result.message, extra={"event": "probe_timeout", "sensor_id": str(sensor_id)})
        elif self._last_error.get(sensor_id) is not result.kind:
            self.logger.info("probe %s failed: %s", sensor_id, result, extra={"event": "probe_error", "sensor_id": str(sensor_id)})
        self._last_error[sensor_id] = result.kind

        if result.kind is ProbeErrorKind.DEVICE_REMOVED:
            self._last_error.pop(sensor_id, None)
            self._inflight.pop(sensor_id, None)
            if self.registry.deregister(sensor_id, reason=result.message or "device removed"):
                stats.removed.append(sensor_id)

    def close(self) -> None:
        for future in self._inflight.values():
            self._reader.abandon(future)
        self._reader.close()
        self._inflight.clear()
