"""Frame sink seam shared by the terminal renderer and any exporter."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import Frame


class RenderTargetUnsupported(RuntimeError):
    """The output cannot do in-place redraw; callers fall back to plain lines."""


class RenderTargetUnavailable(RuntimeError):
    """The output cannot be written at all."""


@runtime_checkable
class FrameSink(Protocol):
    def emit(self, frame: Frame) -> None:
        ...

    def close(self) -> None:
        ...
