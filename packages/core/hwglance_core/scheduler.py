"""Fixed-cadence poll, normalize and render loop with cooperative shutdown."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable

from hwglance_probes import ProbeRegistry

from .collector import SampleCollector
from .frame import FrameBuilder
from .logging_setup import get_logger
from .models import Frame
from .normalizer import DEFAULT_LIMITS, Limits, normalize_reading
from .sinks import FrameSink, RenderTargetUnavailable


class SchedulerState(str, Enum):
    IDLE = "Idle"
    POLLING = "Polling"
    NORMALIZING = "Normalizing"
    RENDERING = "Rendering"
    SHUTTING_DOWN = "ShuttingDown"
    STOPPED = "Stopped"


@dataclass
class SchedulerStatus:
    state: SchedulerState = SchedulerState.IDLE
    ticks: int = 0
    rendered: int = 0
    skipped_ticks: int = 0
    abandoned_ticks: int = 0
    last_tick_s: float = 0.0
    timeouts: int = 0
    removed: int = 0
    rows: int = 0
    last_error: str | None = None


class RefreshScheduler:
    def __init__(
        self,
        registry: ProbeRegistry,
        collector: SampleCollector,
        builder: FrameBuilder,
        sinks: Iterable[FrameSink] = (),
        interval_ms: int = 1000,
        limits: Limits = DEFAULT_LIMITS,
        rescan_interval_s: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.collector = collector
        self.builder = builder
        self.sinks = list(sinks)
        self.interval_s = max(interval_ms, 1) / 1000
        self.limits = limits
        self.rescan_interval_s = rescan_interval_s
        self._clock = clock
        self._stop = threading.Event()
        self._status = SchedulerStatus()
        self._events: list[dict[str, Any]] = []
        self._last_rescan = clock()
        self._last_frame: Frame | None = None
        self.logger = get_logger()

    @property
    def status(self) -> SchedulerStatus:
        return self._status

    @property
    def last_frame(self) -> Frame | None:
        return self._last_frame

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        return self._events[-limit:]

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "state": self._status.state.value,
        }
        row.update(fields)
        self._events.append(row)
        if len(self._events) > 1000:
            self._events = self._events[-1000:]

    def _set_state(self, state: SchedulerState) -> None:
        self._status.state = state

    def stop(self) -> None:
        """Request shutdown; honoured between ticks and after the poll deadline."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def tick(self) -> Frame | None:
        """Run one poll -> normalize -> render cycle.

        Returns None when shutdown was requested while polling; that tick is
        abandoned so the last complete frame stays on screen.
        """
        self._set_state(SchedulerState.POLLING)
        samples = self.collector.collect()
        self._status.ticks += 1
        self._status.timeouts += len(samples.stats.timeouts)
        self._status.removed += len(samples.stats.removed)
        for sensor_id in samples.stats.removed:
            self._log_event("probe_removed", sensor_id=str(sensor_id))

        if self._stop.is_set():
            self._status.abandoned_ticks += 1
            self._log_event("tick_abandoned", tick=self._status.ticks)
            return None

        self._set_state(SchedulerState.NORMALIZING)
        descriptors = self.registry.descriptors()
        metrics = {
            d.sensor_id: normalize_reading(d, samples.results.get(d.sensor_id), self.limits)
            for d in descriptors
        }

        self._set_state(SchedulerState.RENDERING)
        frame = self.builder.build(descriptors, metrics)
        for sink in self.sinks:
            try:
                sink.emit(frame)
            except RenderTargetUnavailable:
                raise
            except Exception as exc:
                self._status.last_error = str(exc)
                self.logger.exception("frame sink %r failed", sink, extra={"event": "sink_error"})
        self._last_frame = frame
        self._status.rendered += 1
        self._status.rows = len(frame.rows)
        self._set_state(SchedulerState.IDLE)
        return frame

    def _maybe_rescan(self, now: float) -> None:
        if self.rescan_interval_s <= 0 or now - self._last_rescan < self.rescan_interval_s:
            return
        self._last_rescan = now
        before = len(self.registry)
        self.registry.discover()
        self._log_event("rescan", before=before, after=len(self.registry))

    def run(self, max_ticks: int | None = None) -> SchedulerStatus:
        self.logger.info(
            "refresh loop started interval=%.3fs probes=%d",
            self.interval_s,
            len(self.registry),
            extra={"event": "scheduler_started"},
        )
        self._log_event("started", interval_s=self.interval_s)
        try:
            while not self._stop.is_set():
                started = self._clock()
                self._maybe_rescan(started)
                self.tick()
                elapsed = self._clock() - started
                self._status.last_tick_s = elapsed

                if max_ticks is not None and self._status.ticks >= max_ticks:
                    break

                if elapsed > self.interval_s:
                    # Never queue missed ticks; resume on the next slot boundary.
                    missed = int(elapsed // self.interval_s)
                    self._status.skipped_ticks += missed
                    self._log_event("tick_overrun", elapsed_s=elapsed, skipped=missed)
                    self.logger.debug(
                        "tick overran interval by %.3fs, skipping %d",
                        elapsed - self.interval_s,
                        missed,
                        extra={"event": "tick_overrun"},
                    )
                    next_start = started + (missed + 1) * self.interval_s
                else:
                    next_start = started + self.interval_s
                self._stop.wait(max(0.0, next_start - self._clock()))
        except RenderTargetUnavailable as exc:
            self._status.last_error = str(exc)
            self.logger.error("render target unavailable: %s", exc, extra={"event": "render_target_unavailable"})
            raise
        finally:
            self._shutdown()
        return self._status

    def _shutdown(self) -> None:
        self._set_state(SchedulerState.SHUTTING_DOWN)
        self._log_event("shutting_down")
        for sink in self.sinks:
            try:
                sink.close()
            except Exception:
                self.logger.exception("frame sink %r failed to close", sink, extra={"event": "sink_close_error"})
        self.collector.close()
        self._set_state(SchedulerState.STOPPED)
        self._log_event("stopped", ticks=self._status.ticks, skipped=self._status.skipped_ticks)
        self.logger.info(
            "refresh loop stopped ticks=%d skipped=%d",
            self._status.ticks,
            self._status.skipped_ticks,
            extra={"event": "scheduler_stopped"},
        )
