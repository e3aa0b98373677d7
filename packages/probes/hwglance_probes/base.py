"""Probe capability interface and probe source contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Mapping, Union

from .errors import ProbeError, ProbeErrorKind
from .models import KIND_ORDER, MetricKind, PollingCost, RawSample
from .taxonomy import rank_within

ReadOutcome = Union[RawSample, ProbeError]
RawReading = Mapping[MetricKind, ReadOutcome]


class Probe(ABC):
    """Accessor for one physical sensor source.

    Subclasses declare ``capabilities`` and implement the matching
    ``read_*`` methods. ``key`` identifies the physical device and must be
    stable across rescans for as long as the device stays present.
    """

    category: str = "other"
    slug: str = "sensor"
    cost: PollingCost = PollingCost.CHEAP
    timeout_s: float = 0.5

    def __init__(self, key: str, label: str, category: str | None = None, rank: tuple | None = None) -> None:
        self.key = key
        self.label = label
        if category is not None:
            self.category = category
        # Sort key within the category at first discovery.
        self.rank = rank if rank is not None else rank_within(self.category, label)

    @property
    @abstractmethod
    def capabilities(self) -> frozenset[MetricKind]:
        ...

    def read_temperature(self) -> RawSample:
        raise NotImplementedError

    def read_utilization(self) -> RawSample:
        raise NotImplementedError

    def read_frequency(self) -> RawSample:
        raise NotImplementedError

    def _reader(self, kind: MetricKind) -> Callable[[], RawSample]:
        if kind is MetricKind.TEMPERATURE:
            return self.read_temperature
        if kind is MetricKind.UTILIZATION:
            return self.read_utilization
        return self.read_frequency

    def read(self) -> dict[MetricKind, ReadOutcome]:
        """Read every capability once.

        A removed device fails the whole read; any other error is kept
        per capability so the remaining readings still surface.
        """
        out: dict[MetricKind, ReadOutcome] = {}
        for kind in KIND_ORDER:
            if kind not in self.capabilities:
                continue
            try:
                out[kind] = self._reader(kind)()
            except ProbeError as exc:
                if exc.kind is ProbeErrorKind.DEVICE_REMOVED:
                    raise
                out[kind] = exc
            except OSError as exc:
                err = ProbeError.from_os_error(exc)
                if err.kind is ProbeErrorKind.DEVICE_REMOVED:
                    raise err from exc
                out[kind] = err
            except ValueError as exc:
                out[kind] = ProbeError(ProbeErrorKind.MALFORMED_READING, str(exc))
        return out

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r}, label={self.label!r})"


class ProbeSource(ABC):
    """Discovers the probes of one hardware family."""

    name: str = "source"

    @abstractmethod
    def discover(self) -> list[Probe]:
        ...

    def close(self) -> None:
        pass
