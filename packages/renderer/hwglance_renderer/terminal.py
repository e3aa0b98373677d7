"""Terminal and plain-text frame sinks."""

from __future__ import annotations

import os
import shutil
import sys
from typing import TextIO

from hwglance_core import Frame, RenderTargetUnavailable, RenderTargetUnsupported
from hwglance_core.logging_setup import get_logger

from .layout import CLEAR_LINE, CSI, HIDE_CURSOR, SHOW_CURSOR, Thresholds, fit_width, format_frame


class _StreamSink:
    def __init__(self, stream: TextIO) -> None:
        self.stream = stream

    def _write(self, text: str) -> None:
        try:
            self.stream.write(text)
            self.stream.flush()
        except (OSError, ValueError) as exc:
            raise RenderTargetUnavailable(f"cannot write frame: {exc}") from exc


class PlainRenderer(_StreamSink):
    """Line-oriented dump for pipes, files and dumb terminals."""

    def __init__(self, stream: TextIO, separator: bool = True) -> None:
        super().__init__(stream)
        self.separator = separator

    def emit(self, frame: Frame) -> None:
        lines = format_frame(frame)
        text = "\n".join(lines) + "\n" if lines else ""
        if self.separator:
            text += "\n"
        self._write(text)

    def close(self) -> None:
        return None


class TerminalRenderer(_StreamSink):
    """Redraws the frame in place.

    After the first frame the cursor is moved back to the top of the block
    and every line is rewritten, so the output always spans exactly as many
    lines as the newest frame has rows. Lines are clipped to the terminal
    width so no row wraps onto a second line.
    """

    def __init__(
        self,
        stream: TextIO,
        thresholds: Thresholds | None = None,
        color: bool = True,
        width: int | None = None,
    ) -> None:
        super().__init__(stream)
        self.thresholds = thresholds if color else None
        self.width = width
        self._lines_drawn = 0
        self._started = False

    @property
    def lines_drawn(self) -> int:
        return self._lines_drawn

    def emit(self, frame: Frame) -> None:
        columns = self.width or shutil.get_terminal_size().columns
        lines = [fit_width(line, columns) for line in format_frame(frame, self.thresholds)]
        out: list[str] = []
        if not self._started:
            out.append(HIDE_CURSOR)
        elif self._lines_drawn:
            out.append(f"{CSI}{self._lines_drawn}A\r")
        for line in lines:
            out.append(f"{CLEAR_LINE}{line}\n")
        extra = self._lines_drawn - len(lines)
        if extra > 0:
            # Wipe the rows of removed sensors, then return to the end of the block.
            out.append(f"{CLEAR_LINE}\n" * extra)
            out.append(f"{CSI}{extra}A")
        self._write("".join(out))
        self._started = True
        self._lines_drawn = len(lines)

    def close(self) -> None:
        if not self._started:
            return
        self._started = False
        try:
            self._write(SHOW_CURSOR)
        except RenderTargetUnavailable:
            get_logger().debug("could not restore cursor", extra={"event": "cursor_restore_failed"})


def check_terminal(stream: TextIO) -> None:
    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        raise RenderTargetUnsupported("output is not a terminal")
    if os.environ.get("TERM", "") in ("", "dumb"):
        raise RenderTargetUnsupported("terminal does not support cursor movement")


def select_renderer(
    stream: TextIO | None = None,
    plain: bool = False,
    thresholds: Thresholds | None = None,
    color: bool = True,
) -> PlainRenderer | TerminalRenderer:
    stream = stream if stream is not None else sys.stdout
    if stream is None or getattr(stream, "closed", False):
        raise RenderTargetUnavailable("no writable output stream")
    if plain:
        return PlainRenderer(stream)
    try:
        check_terminal(stream)
    except RenderTargetUnsupported as exc:
        get_logger().info(
            "falling back to plain output: %s",
            exc,
            extra={"event": "render_target_unsupported"},
        )
        return PlainRenderer(stream)
    return TerminalRenderer(stream, thresholds=thresholds, color=color)
