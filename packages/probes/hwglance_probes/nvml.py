"""NVIDIA GPU probes over NVML with graceful fallbacks."""

from __future__ import annotations

from typing import Any, Callable

from .base import Probe, ProbeSource
from .errors import ProbeError, ProbeErrorKind
from .models import MetricKind, PollingCost, RawSample, RawUnit


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return str(value)


class _NvmlCall:
    """Translate NVML error codes into probe errors."""

    def __init__(self, nvml: Any) -> None:
        self._nvml = nvml

    def __call__(self, fn: Callable[..., Any], *args: Any) -> Any:
        nvml = self._nvml
        try:
            return fn(*args)
        except nvml.NVMLError as exc:
            code = getattr(exc, "value", None)
            if code == nvml.NVML_ERROR_GPU_IS_LOST:
                raise ProbeError(ProbeErrorKind.DEVICE_REMOVED, str(exc)) from exc
            if code == nvml.NVML_ERROR_NO_PERMISSION:
                raise ProbeError(ProbeErrorKind.PERMISSION_DENIED, str(exc)) from exc
            if code == nvml.NVML_ERROR_TIMEOUT:
                raise ProbeError(ProbeErrorKind.TIMEOUT, str(exc)) from exc
            raise ProbeError(ProbeErrorKind.MALFORMED_READING, str(exc)) from exc


class NvmlGpuProbe(Probe):
    category = "gpu"
    slug = "nvidia"
    cost = PollingCost.MODERATE
    timeout_s = 0.75

    def __init__(self, nvml: Any, handle: Any, index: int, uuid: str, name: str, kinds: frozenset[MetricKind]) -> None:
        super().__init__(key=f"nvml:{uuid}", label=f"GPU {name}", rank=(0, index, name.lower()))
        self._nvml = nvml
        self._call = _NvmlCall(nvml)
        self._handle = handle
        self._kinds = kinds
        self.index = index

    @property
    def capabilities(self) -> frozenset[MetricKind]:
        return self._kinds

    def read_temperature(self) -> RawSample:
        nvml = self._nvml
        temp = self._call(nvml.nvmlDeviceGetTemperature, self._handle, nvml.NVML_TEMPERATURE_GPU)
        return RawSample(value=float(temp), unit=RawUnit.CELSIUS)

    def read_utilization(self) -> RawSample:
        util = self._call(self._nvml.nvmlDeviceGetUtilizationRates, self._handle)
        return RawSample(value=float(util.gpu), unit=RawUnit.PERCENT)

    def read_frequency(self) -> RawSample:
        nvml = self._nvml
        clock = self._call(nvml.nvmlDeviceGetClockInfo, self._handle, nvml.NVML_CLOCK_GRAPHICS)
        return RawSample(value=float(clock), unit=RawUnit.MHZ)


class NvmlMemoryProbe(Probe):
    category = "gpu"
    slug = "vram"
    cost = PollingCost.MODERATE
    timeout_s = 0.75

    def __init__(self, nvml: Any, handle: Any, index: int, uuid: str, name: str) -> None:
        super().__init__(key=f"nvml:{uuid}:memory", label=f"GPU {name} VRAM", rank=(0, index, f"{name.lower()} vram"))
        self._nvml = nvml
        self._call = _NvmlCall(nvml)
        self._handle = handle

    @property
    def capabilities(self) -> frozenset[MetricKind]:
        return frozenset({MetricKind.UTILIZATION})

    def read_utilization(self) -> RawSample:
        mem = self._call(self._nvml.nvmlDeviceGetMemoryInfo, self._handle)
        if not mem.total:
            raise ProbeError(ProbeErrorKind.MALFORMED_READING, "zero total VRAM")
        return RawSample(value=float(mem.used) / float(mem.total), unit=RawUnit.FRACTION)


class NvmlSource(ProbeSource):
    name = "nvml"

    def __init__(self, nvml: Any | None = None) -> None:
        self._nvml = nvml
        self._initialized = False

    def _module(self) -> Any:
        if self._nvml is None:
            import pynvml  # type: ignore

            self._nvml = pynvml
        return self._nvml

    def _supported(self, fn: Callable[..., Any], *args: Any) -> bool:
        nvml = self._nvml
        try:
            fn(*args)
        except nvml.NVMLError:
            return False
        return True

    def discover(self) -> list[Probe]:
        nvml = self._module()
        if not self._initialized:
            nvml.nvmlInit()
            self._initialized = True

        probes: list[Probe] = []
        for index in range(int(nvml.nvmlDeviceGetCount())):
            handle = nvml.nvmlDeviceGetHandleByIndex(index)
            uuid = _text(nvml.nvmlDeviceGetUUID(handle))
            name = _text(nvml.nvmlDeviceGetName(handle)).replace("NVIDIA ", "")

            kinds = set()
            if self._supported(nvml.nvmlDeviceGetTemperature, handle, nvml.NVML_TEMPERATURE_GPU):
                kinds.add(MetricKind.TEMPERATURE)
            if self._supported(nvml.nvmlDeviceGetUtilizationRates, handle):
                kinds.add(MetricKind.UTILIZATION)
            if self._supported(nvml.nvmlDeviceGetClockInfo, handle, nvml.NVML_CLOCK_GRAPHICS):
                kinds.add(MetricKind.FREQUENCY)
            if kinds:
                probes.append(NvmlGpuProbe(nvml, handle, index, uuid, name, frozenset(kinds)))
            if self._supported(nvml.nvmlDeviceGetMemoryInfo, handle):
                probes.append(NvmlMemoryProbe(nvml, handle, index, uuid, name))
        return probes

    def close(self) -> None:
        if self._initialized:
            try:
                self._nvml.nvmlShutdown()
            except self._nvml.NVMLError:
                pass
            self._initialized = False
