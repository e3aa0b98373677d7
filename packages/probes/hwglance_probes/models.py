"""Typed sensor probe models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MetricKind(str, Enum):
    TEMPERATURE = "Temperature"
    UTILIZATION = "Utilization"
    FREQUENCY = "Frequency"


# Display and column order.
KIND_ORDER = (MetricKind.TEMPERATURE, MetricKind.UTILIZATION, MetricKind.FREQUENCY)


class RawUnit(str, Enum):
    MILLI_CELSIUS = "mC"
    DECI_CELSIUS = "dC"
    CELSIUS = "C"
    HZ = "Hz"
    KHZ = "kHz"
    MHZ = "MHz"
    PERCENT = "percent"
    FRACTION = "fraction"


class PollingCost(str, Enum):
    CHEAP = "cheap"
    MODERATE = "moderate"
    EXPENSIVE = "expensive"


@dataclass(frozen=True)
class RawSample:
    value: float
    unit: RawUnit


@dataclass(frozen=True, order=True)
class SensorId:
    category: str
    instance: str

    def __str__(self) -> str:
        return f"{self.category}.{self.instance}"

    @classmethod
    def parse(cls, text: str) -> "SensorId":
        category, _, instance = text.partition(".")
        if not category or not instance:
            raise ValueError(f"invalid sensor id: {text!r}")
        return cls(category=category, instance=instance)


@dataclass(frozen=True)
class ProbeDescriptor:
    sensor_id: SensorId
    label: str
    category: str
    capabilities: frozenset[MetricKind]
    cost: PollingCost
    order: tuple[int, int]
    source: str
