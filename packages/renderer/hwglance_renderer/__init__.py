"""Renderer package for live telemetry frames."""

from .layout import color_by_thresholds, format_frame, format_row, strip_ansi
from .terminal import PlainRenderer, TerminalRenderer, check_terminal, select_renderer

__all__ = [
    "PlainRenderer",
    "TerminalRenderer",
    "check_terminal",
    "color_by_thresholds",
    "format_frame",
    "format_row",
    "select_renderer",
    "strip_ansi",
]
